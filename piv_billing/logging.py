from __future__ import annotations

import json
import logging
import sys
from dataclasses import dataclass, fields, is_dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from pathlib import Path
from typing import Any, Iterable

APP_LOGGER = "piv"
CONSOLE_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def _qualified(name: str) -> str:
    """'ledger' and 'piv.ledger' name the same module logger."""
    name = name.strip()
    if name == APP_LOGGER or name.startswith(APP_LOGGER + "."):
        return name
    return f"{APP_LOGGER}.{name}"


class ConsoleLog:
    """
    Console logging for the CLI.

    Log lines go to stderr so that report output on stdout (human tables or
    ``--json``) stays machine-readable. ``debug_modules`` lowers single
    areas (``ledger``, ``billing``, ``reconciliation``...) to DEBUG without
    turning up the whole console.
    """

    def __init__(self, level: str = "INFO", quiet: bool = False, debug_modules: Iterable[str] | None = None):
        self.level = level.upper()
        self.quiet = quiet
        self.debug_modules = [_qualified(m) for m in (debug_modules or []) if m.strip()]

    def setup(self) -> logging.Logger:
        root = logging.getLogger()
        root.handlers.clear()
        root.setLevel(logging.DEBUG)

        if not self.quiet:
            handler = logging.StreamHandler(sys.stderr)
            threshold = logging.DEBUG if self.debug_modules else getattr(logging, self.level, logging.INFO)
            handler.setLevel(threshold)
            handler.setFormatter(logging.Formatter(CONSOLE_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
            root.addHandler(handler)

        app = logging.getLogger(APP_LOGGER)
        app.setLevel(getattr(logging, self.level, logging.INFO))
        for name in self.debug_modules:
            logging.getLogger(name).setLevel(logging.DEBUG)
        return app


@dataclass
class RunLogEntry:
    """One CLI invocation: what was asked for and what came out."""

    timestamp: str
    command: str
    period: dict[str, int] | None
    records: list[dict[str, Any]] | None
    summary: dict[str, Any] | None
    import_results: dict[str, Any] | None


def _to_jsonable(obj: Any) -> Any:
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, Decimal):
        return f"{obj:.2f}"
    if isinstance(obj, date):
        return obj.isoformat()
    if is_dataclass(obj):
        return {f.name: _to_jsonable(getattr(obj, f.name)) for f in fields(obj)}
    if isinstance(obj, dict):
        return {str(k): _to_jsonable(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [_to_jsonable(x) for x in obj]
    return obj


class StructuredLog:
    """Append-only JSON Lines history of CLI runs."""

    def __init__(self, path: str | None, enabled: bool = False):
        self.enabled = enabled and bool(path)
        self.path = Path(path).expanduser() if path else None
        if self.enabled:
            self.path.parent.mkdir(parents=True, exist_ok=True)

    def write(self, entry: RunLogEntry) -> None:
        if not self.enabled:
            return
        line = json.dumps(_to_jsonable(entry), ensure_ascii=False)
        try:
            with self.path.open("a", encoding="utf-8") as fh:
                fh.write(line + "\n")
        except OSError as exc:
            logging.getLogger(APP_LOGGER).warning("Could not append run log to %s: %s", self.path, exc)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
