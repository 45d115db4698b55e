# piv_billing/services/reconciliation.py

from __future__ import annotations

import dataclasses
import logging
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, List, Mapping, Optional

from piv_billing.config import ImportConfig
from piv_billing.models.event import EventAction, PanelEvent
from piv_billing.models.panel import Panel, PanelStatus
from piv_billing.models.results import OperationResult
from piv_billing.services.date_parsing import parse_date
from piv_billing.services.event_adapters import (
    ACTION_TRANSITIONS,
    EventDraft,
    action_event,
    lookup_action,
    lookup_status,
    lookup_vigencia,
    normalize_event_row,
)
from piv_billing.services.panel_repository import PanelRepository

REQUIRED_PANEL_HEADERS = ("Código parada", "Municipio Marquesina", "Vigencia")

DEFAULT_MUNICIPALITY = "Sin especificar"
DEFAULT_CLIENT = "Sin asignar"

# Sheet column -> (Panel field, default when blank)
PANEL_TEXT_COLUMNS = {
    "Direccion CCE (Clear Channel)": ("address", ""),
    "Observaciones": ("notes", ""),
    "Código Marquesina": ("shelter_code", ""),
    "Tipo PIV": ("piv_type", ""),
    "Industrial": ("industrial", ""),
}

# Free-form columns kept in Panel.attributes
PANEL_ATTRIBUTE_COLUMNS = {
    "Funcionamiento": "Sin revisar",
    "Diagnóstico": "",
    "TÉCNICO": "Sin asignar",
}

ANCHOR_COLUMNS = ("PIV Instalado", "Última instalación/reinstalación")
REMOVAL_COLUMN = "PIV Desinstalado"
REINSTALL_COLUMN = "PIV Reinstalado"
RATE_COLUMN = "Importe mensual"

PANEL_TEXT_FIELDS = {"municipality", "client", "address", "notes", "shelter_code", "piv_type", "industrial"}


def _clean(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _is_blank_row(row: Mapping[str, Any]) -> bool:
    return not any(_clean(cell) for cell in row.values())


def _parse_rate(raw: Any) -> tuple[Optional[Decimal], bool]:
    """Return (rate, ok). Blank input is ok and means "use the default"."""
    if raw is None or isinstance(raw, bool):
        return None, raw is None
    if isinstance(raw, Decimal):
        rate = raw
    elif isinstance(raw, (int, float)):
        rate = Decimal(str(raw))
    else:
        text = _clean(raw).replace("€", "").replace(",", ".").strip()
        if not text:
            return None, True
        try:
            rate = Decimal(text)
        except InvalidOperation:
            return None, False
    if not rate.is_finite():
        return None, False
    return rate, True


class _BatchReport:
    def __init__(self, max_errors: int):
        self.max_errors = max_errors
        self.processed = 0
        self.accepted = 0
        self.skipped = 0
        self.errors: list[str] = []

    def skip(self, message: str) -> None:
        self.skipped += 1
        self.errors.append(message)

    def result(self, done_message: str) -> OperationResult:
        message = f"Records processed: {self.processed}. Added: {self.accepted}. Skipped: {self.skipped}."
        if self.errors:
            message += f" Errors: {len(self.errors)}."
        elif self.accepted:
            message += f" {done_message}"
        return OperationResult(
            success=self.accepted > 0,
            message=message,
            processed=self.processed,
            accepted=self.accepted,
            skipped=self.skipped,
            errors=self.errors[: self.max_errors],
            error_count=len(self.errors),
        )


def _checked_anchor(value: Any, errors: list[str]) -> Optional[date]:
    parsed = parse_date(value)
    if parsed is None and _clean(value):
        errors.append(f"installation date '{_clean(value)}' is invalid")
    return parsed


def _checked_rate(value: Any, errors: list[str]) -> Optional[Decimal]:
    rate, ok = _parse_rate(value)
    if not ok:
        errors.append(f"monthly amount '{_clean(value)}' is not a number")
    return rate


def _failure(message: str, error: Optional[str] = None, **counts) -> OperationResult:
    errors = [error or message]
    return OperationResult(success=False, message=message, errors=errors, error_count=1, **counts)


def _rejected(prefix: str, errors: list[str], max_errors: int) -> OperationResult:
    return OperationResult(
        success=False,
        message=f"{prefix}: {'; '.join(errors)}",
        processed=1,
        skipped=1,
        errors=errors[:max_errors],
        error_count=len(errors),
    )


class ReconciliationService:
    """
    Validate-merge-recompute cycle for panels and events.

    Batches are validated in full before anything is written: every row gets
    an add/skip decision, then all accepted rows go into the repository in
    one update. Nothing here raises on bad input; problems come back in the
    OperationResult.
    """

    def __init__(self, repository: PanelRepository, cfg: ImportConfig | None = None, log=None):
        self.repo = repository
        self.cfg = cfg or ImportConfig()
        self.log = log or logging.getLogger("piv.reconciliation")

    # ------------------------------------------------------------------
    # Panels
    # ------------------------------------------------------------------
    def import_panels(self, rows: Iterable[Mapping[str, Any]]) -> OperationResult:
        all_rows = list(rows)
        data_rows = [row for row in all_rows if not _is_blank_row(row)]

        if not data_rows:
            return _failure(
                "No processable data found. Check that headers are on row "
                f"{self.cfg.panel_first_data_row - 1} and data starts on row {self.cfg.panel_first_data_row}.",
                "No data found to import.",
            )

        headers = set()
        for row in data_rows:
            headers.update(str(h) for h in row.keys())
        missing = [h for h in REQUIRED_PANEL_HEADERS if h not in headers]
        if missing:
            return _failure(
                f"Missing required headers: {', '.join(missing)}.",
                processed=len(data_rows),
            )

        report = _BatchReport(self.cfg.max_errors)
        known_ids = self.repo.panel_ids()
        batch_ids: set[str] = set()
        new_panels: list[Panel] = []
        new_events: list[PanelEvent] = []

        for index, row in enumerate(data_rows):
            row_no = index + self.cfg.panel_first_data_row
            report.processed += 1

            panel_id = _clean(row.get("Código parada"))
            if not panel_id:
                report.skip(f"Row {row_no}: 'Código parada' is required and cannot be empty.")
                continue
            if panel_id in known_ids or panel_id in batch_ids:
                report.skip(
                    f"Row {row_no}: panel '{panel_id}' already exists or is duplicated in this file. Skipped."
                )
                continue

            rate, rate_ok = _parse_rate(row.get(RATE_COLUMN))
            if not rate_ok:
                report.skip(f"Row {row_no} (Panel {panel_id}): monthly amount '{_clean(row.get(RATE_COLUMN))}' is not a number.")
                continue

            panel = self._panel_from_row(panel_id, row, rate)
            new_panels.append(panel)
            new_events.extend(self._events_from_row(panel, row))
            batch_ids.add(panel_id)
            report.accepted += 1

        if new_panels:
            self.repo.add_panels(new_panels)
        if new_events:
            self.repo.add_events(new_events)

        self.log.info(
            "Panel import: processed=%d added=%d skipped=%d synthesized_events=%d",
            report.processed,
            report.accepted,
            report.skipped,
            len(new_events),
        )
        for message in report.errors:
            self.log.debug("Skipped: %s", message)
        return report.result("Panel import completed.")

    def _panel_from_row(self, panel_id: str, row: Mapping[str, Any], rate: Optional[Decimal]) -> Panel:
        anchor = None
        for column in ANCHOR_COLUMNS:
            anchor = parse_date(row.get(column))
            if anchor is not None:
                break

        text_fields = {
            field_name: _clean(row.get(column)) or default
            for column, (field_name, default) in PANEL_TEXT_COLUMNS.items()
        }
        attributes = {
            column: _clean(row.get(column)) or default
            for column, default in PANEL_ATTRIBUTE_COLUMNS.items()
        }

        return Panel(
            panel_id=panel_id,
            installed_on=anchor,
            monthly_rate=rate,
            municipality=_clean(row.get("Municipio Marquesina")) or DEFAULT_MUNICIPALITY,
            client=_clean(row.get("Empresas concesionarias")) or DEFAULT_CLIENT,
            declared_status=lookup_vigencia(row.get("Vigencia")),
            attributes=attributes,
            **text_fields,
        )

    def _events_from_row(self, panel: Panel, row: Mapping[str, Any]) -> List[PanelEvent]:
        """Removal/reinstall date columns become action events."""
        removed_on = parse_date(row.get(REMOVAL_COLUMN))
        reinstalled_on = parse_date(row.get(REINSTALL_COLUMN))

        events = []
        if removed_on is not None:
            events.append(action_event(panel.panel_id, removed_on, EventAction.DEACTIVATION))
            if reinstalled_on is not None and reinstalled_on > removed_on:
                events.append(action_event(panel.panel_id, reinstalled_on, EventAction.REACTIVATION))
        return events

    def add_panel(self, panel: Panel) -> OperationResult:
        panel_id = _clean(panel.panel_id)
        if not panel_id:
            return _failure("Panel identifier is required.")
        if self.repo.has_panel(panel_id):
            return _failure(f"Panel {panel_id} already exists.")

        errors: list[str] = []
        installed_on = _checked_anchor(panel.installed_on, errors)
        rate = _checked_rate(panel.monthly_rate, errors)
        if errors:
            return _rejected(f"Panel {panel_id} not added", errors, self.cfg.max_errors)

        declared = lookup_status(panel.declared_status) or PanelStatus.PENDING_INSTALLATION
        fresh = dataclasses.replace(
            panel,
            panel_id=panel_id,
            installed_on=installed_on,
            monthly_rate=rate,
            municipality=_clean(panel.municipality) or DEFAULT_MUNICIPALITY,
            client=_clean(panel.client) or DEFAULT_CLIENT,
            declared_status=declared,
        )
        self.repo.add_panels([fresh])
        self.log.info("Panel %s added", panel_id)
        return OperationResult(success=True, message=f"Panel {panel_id} added.", processed=1, accepted=1)

    def update_panel(self, panel_id: str, updates: Mapping[str, Any]) -> OperationResult:
        panel = self.repo.get_panel(panel_id)
        if panel is None:
            return _failure(f"Panel {panel_id} not found.")

        errors: list[str] = []
        changes: dict[str, Any] = {}
        for key, value in updates.items():
            if key == "panel_id":
                if _clean(value) != panel_id:
                    errors.append("Panel identifier cannot be changed.")
            elif key == "installed_on":
                changes["installed_on"] = _checked_anchor(value, errors)
            elif key == "monthly_rate":
                changes["monthly_rate"] = _checked_rate(value, errors)
            elif key == "declared_status":
                status = lookup_status(value)
                if status is None:
                    errors.append(f"status '{_clean(value)}' is not valid")
                changes["declared_status"] = status
            elif key == "municipality":
                changes[key] = _clean(value) or DEFAULT_MUNICIPALITY
            elif key == "client":
                changes[key] = _clean(value) or DEFAULT_CLIENT
            elif key in PANEL_TEXT_FIELDS:
                changes[key] = _clean(value)
            elif key == "attributes":
                changes[key] = {**panel.attributes, **dict(value or {})}
            else:
                errors.append(f"field '{key}' cannot be updated")

        if errors:
            return _rejected(f"Panel {panel_id} not updated", errors, self.cfg.max_errors)

        self.repo.replace_panel(dataclasses.replace(panel, **changes))
        self.log.info("Panel %s updated (%s)", panel_id, ", ".join(sorted(changes)) or "no changes")
        return OperationResult(success=True, message=f"Panel {panel_id} updated.", processed=1, updated=1)

    def delete_panel(self, panel_id: str) -> OperationResult:
        self.log.warning("Delete operation for panel %s is not implemented.", panel_id)
        return _failure("Panel deletion is not implemented.")

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------
    def _draft_problem(
        self,
        draft: EventDraft,
        known_ids: set[str],
        seen_keys: set[tuple],
        where: str,
    ) -> Optional[str]:
        if not draft.panel_id:
            return f"{where}: panelId is required."
        if draft.panel_id not in known_ids:
            return f"{where}: Panel with ID {draft.panel_id} not found. Skipped."
        if draft.problems:
            return f"{where} (Panel {draft.panel_id}): {'; '.join(draft.problems)}"
        key = (draft.panel_id, draft.event_date, draft.old_status, draft.new_status)
        if key in seen_keys:
            return f"{where} (Panel {draft.panel_id}): duplicate event skipped."
        return None

    def import_events(self, rows: Iterable[Mapping[str, Any]]) -> OperationResult:
        all_rows = list(rows)
        data_rows = [row for row in all_rows if not _is_blank_row(row)]

        if not data_rows:
            return _failure("No processable events found in the file.", "No events found to import.")

        report = _BatchReport(self.cfg.max_errors)
        known_ids = self.repo.panel_ids()
        seen_keys = {event.transition_key() for event in self.repo.events}
        staged: list[PanelEvent] = []

        for index, row in enumerate(data_rows):
            row_no = index + self.cfg.event_first_data_row
            report.processed += 1

            draft = normalize_event_row(row)
            problem = self._draft_problem(draft, known_ids, seen_keys, f"Row {row_no}")
            if problem:
                report.skip(problem)
                continue

            event = draft.to_event()
            seen_keys.add(event.transition_key())
            staged.append(event)
            report.accepted += 1

        if staged:
            # Recompute against the merged event log, not the pre-import one.
            self.repo.add_events(staged)

        self.log.info(
            "Event import: processed=%d added=%d skipped=%d panels_refreshed=%d",
            report.processed,
            report.accepted,
            report.skipped,
            len({e.panel_id for e in staged}),
        )
        for message in report.errors:
            self.log.debug("Skipped: %s", message)
        return report.result("Event import completed.")

    def add_event(self, event: PanelEvent | Mapping[str, Any]) -> OperationResult:
        if isinstance(event, PanelEvent):
            draft = self._draft_from_event(event)
        else:
            draft = normalize_event_row(event)

        seen_keys = {e.transition_key() for e in self.repo.events}
        problem = self._draft_problem(draft, self.repo.panel_ids(), seen_keys, "Event")
        if problem:
            return OperationResult(
                success=False,
                message=problem,
                processed=1,
                skipped=1,
                errors=[problem],
                error_count=1,
            )

        new_event = draft.to_event()
        if isinstance(event, PanelEvent):
            new_event.event_id = event.event_id
        self.repo.add_events([new_event])
        self.log.info("Event %s added for panel %s", new_event.event_id, new_event.panel_id)
        return OperationResult(
            success=True,
            message=f"Event for {new_event.panel_id} added.",
            processed=1,
            accepted=1,
        )

    def _draft_from_event(self, event: PanelEvent) -> EventDraft:
        draft = EventDraft(
            panel_id=_clean(event.panel_id),
            event_date=parse_date(event.event_date),
            notes=event.notes,
            action=lookup_action(event.action) if event.action else None,
        )
        if draft.event_date is None:
            draft.problems.append(f"date '{_clean(event.event_date)}' is invalid or missing")
        draft.new_status = lookup_status(event.new_status)
        if draft.new_status is None:
            draft.problems.append(f"new status '{_clean(event.new_status)}' is not valid")
        if event.old_status is not None and _clean(event.old_status):
            draft.old_status = lookup_status(event.old_status)
            if draft.old_status is None:
                draft.problems.append(f"old status '{_clean(event.old_status)}' is not valid")
        return draft

    def update_event(self, event_id: str, updates: Mapping[str, Any]) -> OperationResult:
        current = self.repo.get_event(event_id)
        if current is None:
            return _failure(f"Event with ID {event_id} not found.")

        merged = dataclasses.replace(current)
        pair_edited = False
        for key, value in updates.items():
            if key in ("date", "event_date"):
                merged.event_date = value
            elif key in ("old_status", "new_status"):
                setattr(merged, key, value)
                pair_edited = True
            elif key in ("panel_id", "notes"):
                setattr(merged, key, value)
            elif key != "action":
                return _failure(f"Event field '{key}' cannot be updated.")

        # An action always dictates the pair; a hand-edited pair drops the action
        # and any old status that only came from it.
        if "action" in updates:
            raw_action = updates["action"]
            action = lookup_action(raw_action)
            merged.action = action or (raw_action if _clean(raw_action) else None)
            if action is not None:
                merged.old_status, merged.new_status = ACTION_TRANSITIONS[action]
        elif pair_edited:
            if current.action is not None and "old_status" not in updates:
                merged.old_status = None
            merged.action = None

        draft = self._draft_from_event(merged)
        if merged.action is not None and draft.action is None:
            draft.problems.append(f"action '{_clean(merged.action)}' is not valid")

        others = {e.transition_key() for e in self.repo.events if e.event_id != event_id}
        problem = self._draft_problem(draft, self.repo.panel_ids(), others, f"Event {event_id}")
        if problem:
            return OperationResult(
                success=False,
                message=problem,
                processed=1,
                skipped=1,
                errors=[problem],
                error_count=1,
            )

        updated = draft.to_event()
        updated.event_id = event_id
        previous = self.repo.replace_event(updated)
        if previous.panel_id != updated.panel_id:
            self.log.info("Event %s moved from panel %s to %s", event_id, previous.panel_id, updated.panel_id)
        return OperationResult(success=True, message=f"Event {event_id} updated.", processed=1, updated=1)

    def delete_event(self, event_id: str) -> OperationResult:
        self.log.warning("Delete operation for event %s is not implemented.", event_id)
        return _failure("Event deletion is not implemented.")

    # ------------------------------------------------------------------
    def clear_all(self) -> OperationResult:
        result = self.repo.clear()
        self.log.info(result.message)
        return result


def reconcile_panels(
    rows: Iterable[Mapping[str, Any]],
    repository: PanelRepository,
    cfg: ImportConfig | None = None,
) -> OperationResult:
    return ReconciliationService(repository, cfg).import_panels(rows)


def reconcile_events(
    rows: Iterable[Mapping[str, Any]],
    repository: PanelRepository,
    cfg: ImportConfig | None = None,
) -> OperationResult:
    return ReconciliationService(repository, cfg).import_events(rows)
