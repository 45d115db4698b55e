from __future__ import annotations

from datetime import date, timedelta
from decimal import Decimal
from typing import List, Optional

from piv_billing.config import ReportsConfig
from piv_billing.models.billing import BillingRecord, MonthSummary
from piv_billing.models.panel import Panel, PanelStatus
from piv_billing.services.billing_calculator import BillingCalculator
from piv_billing.services.panel_repository import PanelRepository
from piv_billing.services.status_ledger import status_label

PENDING_STATUSES = (PanelStatus.PENDING_INSTALLATION, PanelStatus.PENDING_REMOVAL)


class MonthSummaryService:
    def __init__(
        self,
        repository: PanelRepository,
        calculator: BillingCalculator,
        log,
        cfg: Optional[ReportsConfig] = None,
    ):
        self.repo = repository
        self.calculator = calculator
        self.log = log
        self.cfg = cfg or ReportsConfig()

    # ------------------------------------------------------------------
    def records(self, year: int, month: int, *, billed_only: bool = True) -> List[BillingRecord]:
        records = self.calculator.billing_for_panels(year, month, self.repo.events, self.repo.panels)
        if not billed_only:
            return records
        return [
            r for r in records
            if r.billed_days > 0 or (r.panel is not None and r.panel.status == PanelStatus.INSTALLED)
        ]

    # ------------------------------------------------------------------
    def needs_attention(self, today: Optional[date] = None) -> List[Panel]:
        """Panels whose last known status change is older than the staleness window."""
        today = today or self.repo.today()
        cutoff = today - timedelta(days=self.cfg.stale_after_days)
        stale = []
        for panel in self.repo.panels:
            if panel.status in PENDING_STATUSES:
                continue
            last_known = panel.last_status_update or panel.installed_on
            if last_known is not None and last_known < cutoff:
                stale.append(panel)
        return stale

    # ------------------------------------------------------------------
    def run(self, year: int, month: int, today: Optional[date] = None) -> MonthSummary:
        records = self.records(year, month)
        total = sum((r.amount for r in records), Decimal("0.00"))
        panels = self.repo.panels
        active = sum(1 for p in panels if p.status == PanelStatus.INSTALLED)
        stale = self.needs_attention(today)

        self.log.info(
            "Month %04d-%02d: %d billed panels, total %s, %d need attention",
            year,
            month,
            len(records),
            total,
            len(stale),
        )
        return MonthSummary(
            year=year,
            month=month,
            records=records,
            total_amount=total,
            active_panels=active,
            inactive_panels=len(panels) - active,
            needs_attention=stale,
        )

    # ------------------------------------------------------------------
    def format_summary(self, summary: MonthSummary) -> str:
        lines = [f"Billing for {summary.year:04d}-{summary.month:02d}:"]
        lines.append(f"Total billed: €{summary.total_amount:.2f}")
        lines.append(f"Active panels: {summary.active_panels}")
        lines.append(f"Inactive/other panels: {summary.inactive_panels}")

        if summary.needs_attention:
            lines.append(f"Needs attention ({self.cfg.stale_after_days}+ days without a status change):")
            for panel in summary.needs_attention:
                last_known = panel.last_status_update or panel.installed_on
                last_txt = last_known.strftime("%d/%m/%Y") if last_known else "n/a"
                lines.append(f"- {panel.panel_id}: {status_label(panel.status)} since {last_txt}")
        else:
            lines.append("Needs attention: none")

        return "\n".join(lines)
