# piv_billing/services/event_adapters.py
"""
Normalise the two event row shapes found in imports into ``PanelEvent``.

Status-pair rows carry ``(estado anterior -> estado nuevo, fecha)``.
Action rows carry ``(tipo, fecha)`` where ``tipo`` is a removal or a
reinstallation; they map onto the same pair model:

    DESINSTALACION  ->  installed -> removed
    REINSTALACION   ->  removed   -> installed
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Any, Mapping, Optional

from piv_billing.models.event import EventAction, PanelEvent
from piv_billing.models.panel import ALL_PANEL_STATUSES, PanelStatus
from piv_billing.services.date_parsing import parse_date

# "Vigencia" column of the panel sheet.
VIGENCIA_STATUS = {
    "ok": PanelStatus.INSTALLED,
    "en rev.": PanelStatus.MAINTENANCE,
    "mantenimiento": PanelStatus.MAINTENANCE,
    "desinstalado": PanelStatus.REMOVED,
    "pendiente": PanelStatus.PENDING_INSTALLATION,
}

EVENT_STATUS = {
    "instalado": PanelStatus.INSTALLED,
    "eliminado": PanelStatus.REMOVED,
    "mantenimiento": PanelStatus.MAINTENANCE,
    "pendiente instalacion": PanelStatus.PENDING_INSTALLATION,
    "pendiente instalación": PanelStatus.PENDING_INSTALLATION,
    "pendiente eliminacion": PanelStatus.PENDING_REMOVAL,
    "pendiente eliminación": PanelStatus.PENDING_REMOVAL,
    "desconocido": PanelStatus.UNKNOWN,
    **VIGENCIA_STATUS,
    **{status.value: status for status in ALL_PANEL_STATUSES},
}

ACTION_KINDS = {
    "desinstalacion": EventAction.DEACTIVATION,
    "desinstalación": EventAction.DEACTIVATION,
    "deactivate": EventAction.DEACTIVATION,
    "deactivation": EventAction.DEACTIVATION,
    "reinstalacion": EventAction.REACTIVATION,
    "reinstalación": EventAction.REACTIVATION,
    "reactivate": EventAction.REACTIVATION,
    "reactivation": EventAction.REACTIVATION,
}

ACTION_TRANSITIONS = {
    EventAction.DEACTIVATION: (PanelStatus.INSTALLED, PanelStatus.REMOVED),
    EventAction.REACTIVATION: (PanelStatus.REMOVED, PanelStatus.INSTALLED),
}

HEADER_ALIASES = {
    "panelid": "panel_id",
    "panel_id": "panel_id",
    "panel": "panel_id",
    "código parada": "panel_id",
    "codigo parada": "panel_id",
    "fecha": "date",
    "date": "date",
    "estado anterior": "old_status",
    "oldstatus": "old_status",
    "old_status": "old_status",
    "estado nuevo": "new_status",
    "newstatus": "new_status",
    "new_status": "new_status",
    "notas evento": "notes",
    "notas": "notes",
    "notes": "notes",
    "tipo": "action",
    "action": "action",
}


def _clean(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def lookup_status(raw: Any) -> Optional[PanelStatus]:
    if isinstance(raw, PanelStatus):
        return raw
    return EVENT_STATUS.get(_clean(raw).lower())


def lookup_vigencia(raw: Any) -> PanelStatus:
    return VIGENCIA_STATUS.get(_clean(raw).lower(), PanelStatus.PENDING_INSTALLATION)


def lookup_action(raw: Any) -> Optional[EventAction]:
    if isinstance(raw, EventAction):
        return raw
    return ACTION_KINDS.get(_clean(raw).lower())


@dataclass
class EventDraft:
    """An event row after header mapping, before validation against the store."""

    panel_id: str = ""
    event_date: Optional[date] = None
    old_status: Optional[PanelStatus] = None
    new_status: Optional[PanelStatus] = None
    notes: Optional[str] = None
    action: Optional[EventAction] = None
    raw: dict[str, str] = field(default_factory=dict)
    problems: list[str] = field(default_factory=list)

    def to_event(self) -> PanelEvent:
        return PanelEvent(
            panel_id=self.panel_id,
            event_date=self.event_date,
            new_status=self.new_status,
            old_status=self.old_status,
            notes=self.notes or None,
            action=self.action,
        )


def map_headers(row: Mapping[str, Any]) -> dict[str, Any]:
    mapped: dict[str, Any] = {}
    for header, value in row.items():
        key = HEADER_ALIASES.get(str(header).strip().lower())
        if key and key not in mapped:
            mapped[key] = value
    return mapped


def _base_draft(fields: Mapping[str, Any]) -> EventDraft:
    draft = EventDraft(
        panel_id=_clean(fields.get("panel_id")),
        notes=_clean(fields.get("notes")) or None,
        raw={k: _clean(v) for k, v in fields.items()},
    )
    draft.event_date = parse_date(fields.get("date"))
    if draft.event_date is None:
        draft.problems.append(
            f"date '{draft.raw.get('date', '')}' is invalid or missing; use YYYY-MM-DD, dd/mm/yyyy or a sheet date"
        )
    return draft


def from_status_row(fields: Mapping[str, Any]) -> EventDraft:
    draft = _base_draft(fields)

    raw_new = _clean(fields.get("new_status"))
    draft.new_status = lookup_status(raw_new)
    if draft.new_status is None:
        allowed = ", ".join(s.value for s in ALL_PANEL_STATUSES)
        draft.problems.append(f"new status '{raw_new}' is not valid. Allowed: {allowed}")

    raw_old = _clean(fields.get("old_status"))
    if raw_old:
        draft.old_status = lookup_status(raw_old)
        if draft.old_status is None:
            draft.problems.append(f"old status '{raw_old}' is not valid")
    return draft


def from_action_row(fields: Mapping[str, Any]) -> EventDraft:
    draft = _base_draft(fields)

    raw_action = _clean(fields.get("action"))
    draft.action = lookup_action(raw_action)
    if draft.action is None:
        draft.problems.append(
            f"action '{raw_action}' is not valid. Allowed: {EventAction.DEACTIVATION.value}, {EventAction.REACTIVATION.value}"
        )
    else:
        draft.old_status, draft.new_status = ACTION_TRANSITIONS[draft.action]
    return draft


def normalize_event_row(row: Mapping[str, Any]) -> EventDraft:
    """Pick the adapter from the row's columns; status pairs win when both are present."""
    fields = map_headers(row)
    if _clean(fields.get("new_status")) or "action" not in fields:
        return from_status_row(fields)
    return from_action_row(fields)


def action_event(panel_id: str, on: date, action: EventAction, notes: str | None = None) -> PanelEvent:
    old_status, new_status = ACTION_TRANSITIONS[action]
    return PanelEvent(
        panel_id=panel_id,
        event_date=on,
        new_status=new_status,
        old_status=old_status,
        notes=notes,
        action=action,
    )
