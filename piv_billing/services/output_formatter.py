# piv_billing/services/output_formatter.py

from __future__ import annotations

import json
from typing import Iterable, Mapping, Optional

from piv_billing.models.billing import BillingRecord, DayStatus, MonthSummary
from piv_billing.models.panel import Panel
from piv_billing.models.results import OperationResult
from piv_billing.services.status_ledger import status_label


def _fmt_date(value) -> Optional[str]:
    return value.isoformat() if value is not None else None


def record_to_dict(record: BillingRecord) -> dict:
    return {
        "panel_id": record.panel_id,
        "year": record.year,
        "month": record.month,
        "billed_days": record.billed_days,
        "total_days_in_month": record.total_days_in_month,
        "active_days": record.active_days,
        "amount": f"{record.amount:.2f}",
        "status": record.panel.status.value if record.panel else None,
    }


def day_to_dict(day: DayStatus) -> dict:
    return {
        "date": day.day.isoformat(),
        "status": day.status.value,
        "billable": day.billable,
        "notes": day.notes,
    }


def panel_to_dict(panel: Panel) -> dict:
    return {
        "panel_id": panel.panel_id,
        "status": panel.status.value,
        "last_status_update": _fmt_date(panel.last_status_update),
        "installed_on": _fmt_date(panel.installed_on),
        "municipality": panel.municipality,
        "client": panel.client,
        "monthly_rate": f"{panel.monthly_rate:.2f}" if panel.monthly_rate is not None else None,
    }


def summary_to_dict(summary: MonthSummary) -> dict:
    return {
        "year": summary.year,
        "month": summary.month,
        "total_amount": f"{summary.total_amount:.2f}",
        "active_panels": summary.active_panels,
        "inactive_panels": summary.inactive_panels,
        "needs_attention": [p.panel_id for p in summary.needs_attention],
        "records": [record_to_dict(r) for r in summary.records],
    }


def result_to_dict(result: OperationResult) -> dict:
    return {
        "success": result.success,
        "message": result.message,
        "processed": result.processed,
        "accepted": result.accepted,
        "updated": result.updated,
        "skipped": result.skipped,
        "deleted": result.deleted,
        "error_count": result.error_count,
        "errors": list(result.errors),
    }


def emit_json(payload) -> None:
    print(json.dumps(payload, indent=2, ensure_ascii=False))


# ----------------------------------------------------------------------
def emit_billing_human(records: Iterable[BillingRecord]) -> None:
    records = list(records)
    total = sum(r.amount for r in records)
    for record in records:
        status_txt = f" status={status_label(record.panel.status)}" if record.panel else ""
        print(
            f"[{record.panel_id}] {record.year:04d}-{record.month:02d} "
            f"days={record.billed_days}/{record.total_days_in_month}  "
            f"amount=€{record.amount:.2f}{status_txt}"
        )
    print(f"Total: €{total:.2f} ({len(records)} panels)")


def emit_history_human(panel_id: str, history: Iterable[DayStatus]) -> None:
    print(f"History for panel {panel_id}:")
    for day in history:
        mark = "billable" if day.billable else "not billable"
        print(f"{day.day.strftime('%d/%m/%Y')}  {status_label(day.status):<22} {mark:<13} {day.notes}")


def emit_status_human(panels: Iterable[Panel]) -> None:
    for panel in panels:
        since = panel.last_status_update.strftime("%d/%m/%Y") if panel.last_status_update else "n/a"
        print(f"[{panel.panel_id}] {status_label(panel.status)} (since {since})  {panel.municipality}")


def emit_import_human(results: Mapping[str, OperationResult]) -> None:
    for name, result in results.items():
        state = "OK" if result.success else "FAILED"
        print(f"[{name}] {state}: {result.message}")
        for error in result.errors:
            print(f"  - {error}")
        hidden = result.error_count - len(result.errors)
        if hidden > 0:
            print(f"  ... and {hidden} more")
