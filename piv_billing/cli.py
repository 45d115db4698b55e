# piv_billing/cli.py
import argparse
from datetime import date


def _iso_date(value):
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid date '{value}', expected YYYY-MM-DD")


def build_parser():
    parser = argparse.ArgumentParser(
        prog="piv-billing",
        description="PIV panel status and monthly billing"
    )

    parser.add_argument(
        "--config",
        default=None,
        help="Path to configuration file (optional)"
    )

    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable verbose debug logging"
    )

    parser.add_argument(
        "--quiet",
        action="store_true",
        help="Suppress log output"
    )

    parser.add_argument(
        "--json",
        action="store_true",
        help="Emit JSON instead of human-readable text"
    )

    parser.add_argument(
        "--panels",
        help="JSON file with panel rows (overrides [data] panels_path)"
    )

    parser.add_argument(
        "--events",
        help="JSON file with event rows (overrides [data] events_path)"
    )

    parser.add_argument(
        "--today",
        type=_iso_date,
        help="Reference date (YYYY-MM-DD) for current statuses; defaults to the system date"
    )

    sub = parser.add_subparsers(dest="command", required=True)

    cmd_billing = sub.add_parser("billing", help="Monthly billing per panel")
    cmd_billing.add_argument("--year", type=int, required=True)
    cmd_billing.add_argument("--month", type=int, required=True, choices=range(1, 13), metavar="MONTH")
    cmd_billing.add_argument("--panel", help="Only this panel")

    cmd_history = sub.add_parser("history", help="Day-by-day status of one panel for a month")
    cmd_history.add_argument("--panel", required=True)
    cmd_history.add_argument("--year", type=int, required=True)
    cmd_history.add_argument("--month", type=int, required=True, choices=range(1, 13), metavar="MONTH")

    cmd_status = sub.add_parser("status", help="Current status of panels")
    cmd_status.add_argument("--panel", help="Only this panel")

    cmd_summary = sub.add_parser("summary", help="Month overview: totals and panels needing attention")
    cmd_summary.add_argument("--year", type=int, required=True)
    cmd_summary.add_argument("--month", type=int, required=True, choices=range(1, 13), metavar="MONTH")

    sub.add_parser("import-check", help="Load the data files and report import results")

    return parser
