# piv_billing/services/panel_repository.py

from __future__ import annotations

import logging
from datetime import date
from typing import Callable, Dict, Iterable, List, Optional

from piv_billing.models.event import PanelEvent
from piv_billing.models.panel import Panel
from piv_billing.models.results import OperationResult
from piv_billing.services.status_ledger import derive_current_status, events_for_panel


class PanelRepository:
    """
    In-memory store of panels and their event log.

    Every write recomputes the derived status fields of the panels it
    touches before returning, so reads never see a stale status.
    """

    def __init__(self, *, clock: Optional[Callable[[], date]] = None):
        self._clock = clock or date.today
        self._log = logging.getLogger("piv.repository")
        self._panels: Dict[str, Panel] = {}
        self._events: List[PanelEvent] = []

    # ------------------------------------------------------------------
    def today(self) -> date:
        return self._clock()

    def seed(self, panels: Iterable[Panel], events: Iterable[PanelEvent] = ()) -> None:
        """Replace the whole store with trusted data (fixtures, snapshots)."""
        self.clear()
        for panel in panels:
            if panel.panel_id in self._panels:
                raise ValueError(f"Duplicate panel id in seed data: {panel.panel_id}")
            self._panels[panel.panel_id] = panel
        for event in events:
            if event.panel_id not in self._panels:
                raise ValueError(f"Seed event {event.event_id} references unknown panel {event.panel_id}")
            self._events.append(event)
        self.refresh_all()
        self._log.info("Seeded %d panels and %d events", len(self._panels), len(self._events))

    def clear(self) -> OperationResult:
        panels_deleted = len(self._panels)
        events_deleted = len(self._events)
        self._panels.clear()
        self._events.clear()
        return OperationResult(
            success=True,
            message=f"All PIV data cleared ({panels_deleted} panels and {events_deleted} events).",
            deleted=panels_deleted + events_deleted,
        )

    # Reads -----------------------------------------------------------
    @property
    def panels(self) -> List[Panel]:
        return [self._panels[pid] for pid in sorted(self._panels)]

    @property
    def events(self) -> List[PanelEvent]:
        return list(self._events)

    def panel_ids(self) -> set[str]:
        return set(self._panels)

    def has_panel(self, panel_id: str) -> bool:
        return panel_id in self._panels

    def get_panel(self, panel_id: str) -> Optional[Panel]:
        return self._panels.get(panel_id)

    def get_event(self, event_id: str) -> Optional[PanelEvent]:
        for event in self._events:
            if event.event_id == event_id:
                return event
        return None

    def events_for(self, panel_id: str) -> List[PanelEvent]:
        return events_for_panel(panel_id, self._events)

    # Writes ----------------------------------------------------------
    def add_panels(self, panels: Iterable[Panel]) -> None:
        added = list(panels)
        for panel in added:
            if panel.panel_id in self._panels:
                raise ValueError(f"Panel {panel.panel_id} already exists")
        for panel in added:
            self._panels[panel.panel_id] = panel
        for panel in added:
            self.refresh(panel.panel_id)

    def add_events(self, events: Iterable[PanelEvent]) -> None:
        added = list(events)
        for event in added:
            if event.panel_id not in self._panels:
                raise ValueError(f"Event {event.event_id} references unknown panel {event.panel_id}")
        self._events.extend(added)
        for panel_id in {e.panel_id for e in added}:
            self.refresh(panel_id)

    def replace_panel(self, panel: Panel) -> None:
        if panel.panel_id not in self._panels:
            raise KeyError(panel.panel_id)
        self._panels[panel.panel_id] = panel
        self.refresh(panel.panel_id)

    def replace_event(self, event: PanelEvent) -> PanelEvent:
        for idx, current in enumerate(self._events):
            if current.event_id == event.event_id:
                if event.panel_id not in self._panels:
                    raise ValueError(f"Event {event.event_id} references unknown panel {event.panel_id}")
                self._events[idx] = event
                for panel_id in {current.panel_id, event.panel_id}:
                    self.refresh(panel_id)
                return current
        raise KeyError(event.event_id)

    # ------------------------------------------------------------------
    def refresh(self, panel_id: str) -> None:
        panel = self._panels.get(panel_id)
        if panel is None:
            return
        current = derive_current_status(panel, self.events_for(panel_id), today=self.today())
        if panel.status != current.status or panel.last_status_update != current.as_of:
            self._log.debug(
                "Panel %s status %s -> %s (as of %s)",
                panel_id,
                panel.status,
                current.status,
                current.as_of,
            )
        panel.status = current.status
        panel.last_status_update = current.as_of

    def refresh_all(self) -> None:
        for panel_id in list(self._panels):
            self.refresh(panel_id)
