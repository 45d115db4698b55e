# piv_billing/services/status_ledger.py
"""
Day-level status derivation for a single panel.

A panel is billable from its installation anchor onwards. Events then move
it in and out of service:

- a deactivation dated ``d`` keeps the panel active through ``d`` and takes
  effect the day after;
- a reactivation dated ``d`` makes the panel active from ``d`` itself;
- events with other target statuses only change the status shown on the
  day they land.

When several events share a day, the last one listed decides the status
shown for that day.
"""

from __future__ import annotations

import calendar
import logging
from datetime import date, timedelta
from typing import Iterable, Iterator, List, Optional

from piv_billing.models.billing import CurrentStatus, DayStatus
from piv_billing.models.event import BillingEffect, PanelEvent
from piv_billing.models.panel import Panel, PanelStatus

log = logging.getLogger("piv.ledger")

STATUS_LABELS = {
    PanelStatus.INSTALLED: "Instalado",
    PanelStatus.REMOVED: "Eliminado",
    PanelStatus.MAINTENANCE: "Mantenimiento",
    PanelStatus.PENDING_INSTALLATION: "Pendiente Instalación",
    PanelStatus.PENDING_REMOVAL: "Pendiente Eliminación",
    PanelStatus.UNKNOWN: "Desconocido",
}


def status_label(status: Optional[PanelStatus]) -> str:
    if status is None:
        return "Inicial"
    return STATUS_LABELS.get(status, str(status).replace("_", " "))


def events_for_panel(panel_id: str, events: Iterable[PanelEvent]) -> List[PanelEvent]:
    """Events of one panel in date order; same-day events keep their listed order."""
    own = [e for e in events if e.panel_id == panel_id and e.event_date is not None]
    return sorted(own, key=lambda e: e.event_date)


def _effective_events(panel: Panel, events: Iterable[PanelEvent]) -> List[PanelEvent]:
    ordered = events_for_panel(panel.panel_id, events)
    anchor = panel.installed_on
    # Nothing before the first installation can change billability.
    return [e for e in ordered if e.event_date >= anchor]


def _event_note(event: PanelEvent) -> str:
    if event.notes:
        return event.notes
    return f"{status_label(event.old_status)} -> {status_label(event.new_status)}"


def iter_day_statuses(
    panel: Panel,
    events: Iterable[PanelEvent],
    start: date,
    end: date,
) -> Iterator[DayStatus]:
    """Yield one DayStatus per day from ``start`` to ``end`` inclusive."""
    if end < start:
        return

    anchor = panel.installed_on
    if anchor is None:
        day = start
        while day <= end:
            yield DayStatus(day=day, status=PanelStatus.UNKNOWN, billable=False)
            day += timedelta(days=1)
        return

    ordered = _effective_events(panel, events)
    idx = 0
    active = True

    day = start
    while day <= end:
        if day < anchor:
            yield DayStatus(day=day, status=PanelStatus.PENDING_INSTALLATION, billable=False)
            day += timedelta(days=1)
            continue

        # Apply every event dated strictly before today in full.
        while idx < len(ordered) and ordered[idx].event_date < day:
            effect = ordered[idx].effect
            if effect is BillingEffect.DEACTIVATE:
                active = False
            elif effect is BillingEffect.REACTIVATE:
                active = True
            idx += 1

        same_day: list[PanelEvent] = []
        look = idx
        while look < len(ordered) and ordered[look].event_date == day:
            same_day.append(ordered[look])
            look += 1

        # A same-day deactivation only bites tomorrow; a reactivation counts today.
        billable = active or any(e.effect is BillingEffect.REACTIVATE for e in same_day)

        if same_day:
            status = same_day[-1].new_status
            notes = "; ".join(_event_note(e) for e in same_day)
        else:
            status = PanelStatus.INSTALLED if billable else PanelStatus.REMOVED
            notes = ""

        yield DayStatus(day=day, status=status, billable=billable, notes=notes)
        day += timedelta(days=1)


def derive_day_status(panel: Panel, events: Iterable[PanelEvent], day: date) -> DayStatus:
    return next(iter_day_statuses(panel, events, day, day))


def is_billable(panel: Panel, events: Iterable[PanelEvent], day: date) -> bool:
    return derive_day_status(panel, events, day).billable


def derive_current_status(
    panel: Panel,
    events: Iterable[PanelEvent],
    *,
    today: Optional[date] = None,
    simulate: bool = False,
) -> CurrentStatus:
    """
    Status to present for a panel right now.

    By default this is the status carried by the chronologically last event
    (ties go to the last one listed). Without events the installation anchor
    decides: installed once the anchor has passed, pending before it. A
    panel with neither keeps its declared status.

    ``simulate=True`` instead runs the day-level ledger for ``today``.
    """
    today = today or date.today()

    if simulate:
        day_status = derive_day_status(panel, events, today)
        return CurrentStatus(status=day_status.status, as_of=today)

    ordered = events_for_panel(panel.panel_id, events)
    if ordered:
        latest = ordered[-1]
        return CurrentStatus(status=latest.new_status, as_of=latest.event_date)

    anchor = panel.installed_on
    if anchor is not None:
        if anchor <= today:
            return CurrentStatus(status=PanelStatus.INSTALLED, as_of=anchor)
        return CurrentStatus(status=PanelStatus.PENDING_INSTALLATION, as_of=anchor)

    log.debug("Panel %s has no anchor and no events; keeping declared status", panel.panel_id)
    return CurrentStatus(status=panel.declared_status, as_of=None)


def month_history(
    panel: Panel,
    events: Iterable[PanelEvent],
    year: int,
    month: int,
) -> List[DayStatus]:
    """Day-by-day statuses of a calendar month, each with a display note."""
    first = date(year, month, 1)
    last = date(year, month, calendar.monthrange(year, month)[1])
    history = []
    for day_status in iter_day_statuses(panel, events, first, last):
        if not day_status.notes:
            if (
                day_status.status is PanelStatus.PENDING_INSTALLATION
                and panel.installed_on is not None
            ):
                scheduled = panel.installed_on.strftime("%d/%m/%Y")
                day_status.notes = f"Pendiente Instalación (Programada: {scheduled})"
            else:
                day_status.notes = status_label(day_status.status)
        history.append(day_status)
    return history
