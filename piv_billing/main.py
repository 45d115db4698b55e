# piv_billing/main.py

from datetime import date, datetime
import json
import sys
from pathlib import Path

from .cli import build_parser
from .config import AppConfig, Config
from .logging import ConsoleLog, StructuredLog, RunLogEntry

from .services.billing_calculator import BillingCalculator
from .services.month_summary import MonthSummaryService
from .services.output_formatter import (
    emit_billing_human,
    emit_history_human,
    emit_import_human,
    emit_json,
    emit_status_human,
    day_to_dict,
    panel_to_dict,
    record_to_dict,
    result_to_dict,
    summary_to_dict,
)
from .services.panel_repository import PanelRepository
from .services.reconciliation import ReconciliationService
from .services.status_ledger import month_history


def _read_rows(path: str | None, log) -> list[dict]:
    if not path:
        return []
    target = Path(path).expanduser()
    if not target.exists():
        raise FileNotFoundError(f"Data file not found: {target}")
    with target.open("r", encoding="utf-8") as fh:
        rows = json.load(fh)
    if not isinstance(rows, list):
        raise ValueError(f"{target}: expected a JSON array of row objects")
    log.debug("Read %d rows from %s", len(rows), target)
    return rows


def load_data(service: ReconciliationService, panels_path, events_path, log) -> dict:
    """Import panel rows first, then event rows, so events can resolve their panels."""
    results = {}
    panel_rows = _read_rows(panels_path, log)
    if panel_rows:
        results["panels"] = service.import_panels(panel_rows)
    event_rows = _read_rows(events_path, log)
    if event_rows:
        results["events"] = service.import_events(event_rows)
    return results


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    app_cfg = Config.load(args.config) if args.config else AppConfig()
    console_logger = ConsoleLog(
        level="DEBUG" if args.debug else app_cfg.logging.console_level,
        quiet=args.quiet or app_cfg.logging.console_quiet,
        debug_modules=app_cfg.logging.debug_modules,
    )
    log = console_logger.setup()
    structured_logger = StructuredLog(
        app_cfg.logging.structured_path,
        app_cfg.logging.structured_enabled,
    )

    today = args.today or date.today()
    repo = PanelRepository(clock=lambda: today)
    reconciliation = ReconciliationService(repo, app_cfg.imports, log)
    calculator = BillingCalculator(app_cfg.billing, log)
    summary_service = MonthSummaryService(repo, calculator, log, app_cfg.reports)

    panels_path = args.panels or app_cfg.data.panels_path
    events_path = args.events or app_cfg.data.events_path
    try:
        import_results = load_data(reconciliation, panels_path, events_path, log)
    except (OSError, ValueError) as exc:
        log.error("Could not load data: %s", exc)
        return 2

    failed = [name for name, result in import_results.items() if not result.success]
    for name in failed:
        log.warning("%s import failed: %s", name, import_results[name].message)

    period = None
    records_payload = None
    summary_payload = None

    if args.command == "import-check":
        if args.json:
            emit_json({name: result_to_dict(r) for name, r in import_results.items()})
        else:
            emit_import_human(import_results)
        exit_code = 1 if failed else 0

    elif args.command == "billing":
        period = {"year": args.year, "month": args.month}
        if args.panel:
            records = [calculator.monthly_billing(args.panel, args.year, args.month, repo.events, repo.panels)]
        else:
            records = summary_service.records(args.year, args.month)
        records_payload = [record_to_dict(r) for r in records]
        if args.json:
            emit_json(records_payload)
        else:
            emit_billing_human(records)
        exit_code = 0

    elif args.command == "history":
        period = {"year": args.year, "month": args.month}
        panel = repo.get_panel(args.panel)
        if panel is None:
            log.error("Panel %s not found", args.panel)
            return 1
        history = month_history(panel, repo.events_for(panel.panel_id), args.year, args.month)
        if args.json:
            emit_json({"panel_id": panel.panel_id, "days": [day_to_dict(d) for d in history]})
        else:
            emit_history_human(panel.panel_id, history)
        exit_code = 0

    elif args.command == "status":
        panels = repo.panels
        if args.panel:
            panels = [p for p in panels if p.panel_id == args.panel]
        if args.json:
            emit_json([panel_to_dict(p) for p in panels])
        else:
            emit_status_human(panels)
        exit_code = 0

    elif args.command == "summary":
        period = {"year": args.year, "month": args.month}
        summary = summary_service.run(args.year, args.month, today=today)
        summary_payload = summary_to_dict(summary)
        if args.json:
            emit_json(summary_payload)
        else:
            print(summary_service.format_summary(summary))
        exit_code = 0

    else:
        raise ValueError(f"Unsupported command: {args.command}")

    if structured_logger.enabled:
        structured_logger.write(
            RunLogEntry(
                timestamp=datetime.now().isoformat(),
                command=args.command,
                period=period,
                records=records_payload,
                summary=summary_payload,
                import_results={name: result_to_dict(r) for name, r in import_results.items()} or None,
            )
        )

    return exit_code


if __name__ == "__main__":
    sys.exit(main())
