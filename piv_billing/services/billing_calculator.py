# piv_billing/services/billing_calculator.py

from __future__ import annotations

import calendar
import logging
from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Optional

from piv_billing.config import BillingConfig, DEFAULT_MONTHLY_RATE, STANDARD_MONTH_DAYS
from piv_billing.models.billing import BillingRecord
from piv_billing.models.event import PanelEvent
from piv_billing.models.panel import Panel
from piv_billing.services.status_ledger import iter_day_statuses

CENT = Decimal("0.01")

log = logging.getLogger("piv.billing")


def days_in_month(year: int, month: int) -> int:
    if not 1 <= month <= 12:
        raise ValueError(f"month must be in 1..12, got {month}")
    return calendar.monthrange(year, month)[1]


def effective_monthly_rate(panel: Panel, default_rate: Decimal = DEFAULT_MONTHLY_RATE) -> Decimal:
    rate = panel.monthly_rate
    if rate is not None and rate > 0:
        return Decimal(rate)
    return Decimal(default_rate)


def count_active_days(panel: Panel, events: Iterable[PanelEvent], year: int, month: int) -> int:
    natural_days = days_in_month(year, month)
    first = date(year, month, 1)
    last = date(year, month, natural_days)
    return sum(1 for day in iter_day_statuses(panel, events, first, last) if day.billable)


def prorate(days: int, monthly_rate: Decimal, standard_days: int = STANDARD_MONTH_DAYS) -> Decimal:
    """Amount for ``days`` at ``monthly_rate`` per standard month, rounded to cents."""
    if days <= 0 or monthly_rate <= 0:
        return Decimal("0.00")
    amount = Decimal(days) * Decimal(monthly_rate) / Decimal(standard_days)
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def _find_panel(panel_id: str, panels: Iterable[Panel]) -> Optional[Panel]:
    for panel in panels:
        if panel.panel_id == panel_id:
            return panel
    return None


def compute_monthly_billing(
    panel_id: str,
    year: int,
    month: int,
    events: Iterable[PanelEvent],
    panels: Iterable[Panel],
    *,
    default_rate: Decimal = DEFAULT_MONTHLY_RATE,
    standard_days: int = STANDARD_MONTH_DAYS,
) -> BillingRecord:
    """
    Billing for one panel and calendar month.

    A panel billable on every natural day of the month is billed as a
    standard month (``standard_days`` of ``standard_days``) whatever the
    month's length. Otherwise the record carries the active days against the
    natural day count. Unknown panels yield a zero record.
    """
    natural_days = days_in_month(year, month)
    panel = _find_panel(panel_id, panels)

    if panel is None:
        log.debug("Billing requested for unknown panel %s", panel_id)
        return BillingRecord(
            panel_id=panel_id,
            year=year,
            month=month,
            billed_days=0,
            total_days_in_month=natural_days,
            amount=Decimal("0.00"),
        )

    active_days = count_active_days(panel, events, year, month)

    if active_days >= natural_days:
        billed_days = standard_days
        total_days = standard_days
    else:
        billed_days = active_days
        total_days = natural_days

    rate = effective_monthly_rate(panel, default_rate)
    amount = prorate(billed_days, rate, standard_days)

    log.debug(
        "Panel %s %04d-%02d: active=%d natural=%d billed=%d/%d rate=%s amount=%s",
        panel_id,
        year,
        month,
        active_days,
        natural_days,
        billed_days,
        total_days,
        rate,
        amount,
    )

    return BillingRecord(
        panel_id=panel_id,
        year=year,
        month=month,
        billed_days=billed_days,
        total_days_in_month=total_days,
        amount=amount,
        active_days=active_days,
        panel=panel,
    )


class BillingCalculator:
    """Monthly billing bound to a billing configuration."""

    def __init__(self, cfg: BillingConfig | None = None, log=None):
        self.cfg = cfg or BillingConfig()
        self.log = log or logging.getLogger("piv.billing")

    def monthly_billing(
        self,
        panel_id: str,
        year: int,
        month: int,
        events: Iterable[PanelEvent],
        panels: Iterable[Panel],
    ) -> BillingRecord:
        return compute_monthly_billing(
            panel_id,
            year,
            month,
            events,
            panels,
            default_rate=self.cfg.default_monthly_rate,
            standard_days=self.cfg.standard_month_days,
        )

    def billing_for_panels(
        self,
        year: int,
        month: int,
        events: Iterable[PanelEvent],
        panels: Iterable[Panel],
    ) -> list[BillingRecord]:
        panel_list = list(panels)
        event_list = list(events)
        records = [
            self.monthly_billing(panel.panel_id, year, month, event_list, panel_list)
            for panel in panel_list
        ]
        self.log.debug("Computed %d billing records for %04d-%02d", len(records), year, month)
        return records
