# piv_billing/models/billing.py
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import List, Optional

from piv_billing.models.panel import Panel, PanelStatus


@dataclass
class DayStatus:
    day: date
    status: PanelStatus
    billable: bool
    notes: str = ""


@dataclass
class CurrentStatus:
    status: PanelStatus
    as_of: Optional[date]


@dataclass
class BillingRecord:
    panel_id: str
    year: int
    month: int
    billed_days: int
    total_days_in_month: int
    amount: Decimal
    active_days: int = 0
    panel: Optional[Panel] = field(default=None, repr=False, compare=False)


@dataclass
class MonthSummary:
    year: int
    month: int
    records: List[BillingRecord]
    total_amount: Decimal
    active_panels: int
    inactive_panels: int
    needs_attention: List[Panel]
