# piv_billing/services/date_parsing.py
"""
Lenient date parsing for imported sheet cells.

Accepted inputs:

- ``date`` / ``datetime`` objects
- spreadsheet serial numbers (days since 1899-12-30, the 1900 date system)
- ISO text (``2024-03-05`` or a full ISO timestamp)
- ``d/m/y`` text with ``/``, ``-`` or ``.`` separators and 2 or 4 digit years

Ambiguous ``d/m`` vs ``m/d`` text is read day-first unless the second
component is above 12. Anything unparseable yields ``None``.
"""

from __future__ import annotations

import math
import re
from datetime import date, datetime, timedelta
from typing import Any, Optional

SERIAL_EPOCH = date(1899, 12, 30)

_ISO_DATE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})")
_DMY = re.compile(r"^(\d{1,2})[/\-.](\d{1,2})[/\-.](\d{2}|\d{4})$")


def from_serial(serial: float) -> Optional[date]:
    if isinstance(serial, bool) or not isinstance(serial, (int, float)):
        return None
    if math.isnan(serial) or math.isinf(serial) or serial <= 0:
        return None
    try:
        return SERIAL_EPOCH + timedelta(days=math.floor(serial))
    except OverflowError:
        return None


def _from_iso(text: str) -> Optional[date]:
    match = _ISO_DATE.match(text)
    if not match:
        return None
    if len(text) > 10:
        try:
            return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
        except ValueError:
            return None
    year, month, day = (int(x) for x in match.groups())
    try:
        return date(year, month, day)
    except ValueError:
        return None


def _from_dmy(text: str) -> Optional[date]:
    match = _DMY.match(text)
    if not match:
        return None
    first, second, raw_year = match.groups()
    part1, part2 = int(first), int(second)
    year = int(raw_year) if len(raw_year) == 4 else 2000 + int(raw_year)

    if part1 <= 12 and part2 > 12:
        month, day = part1, part2
    else:
        day, month = part1, part2
    try:
        return date(year, month, day)
    except ValueError:
        return None


def parse_date(value: Any) -> Optional[date]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return from_serial(value)
    if not isinstance(value, str):
        return None

    text = value.strip()
    if not text:
        return None
    return _from_iso(text) or _from_dmy(text)
