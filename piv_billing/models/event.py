# piv_billing/models/event.py
from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import date
from enum import Enum

from piv_billing.models.panel import PanelStatus


class EventAction(str, Enum):
    """Action kinds used by the removal/reinstallation import sheets."""

    DEACTIVATION = "DESINSTALACION"
    REACTIVATION = "REINSTALACION"


class BillingEffect(Enum):
    DEACTIVATE = "deactivate"
    REACTIVATE = "reactivate"


def _new_event_id() -> str:
    return uuid.uuid4().hex


@dataclass
class PanelEvent:
    panel_id: str
    event_date: date
    new_status: PanelStatus
    old_status: PanelStatus | None = None
    notes: str | None = None
    action: EventAction | None = None
    event_id: str = field(default_factory=_new_event_id)

    @property
    def effect(self) -> BillingEffect | None:
        if self.new_status == PanelStatus.REMOVED:
            return BillingEffect.DEACTIVATE
        if self.new_status == PanelStatus.INSTALLED:
            return BillingEffect.REACTIVATE
        return None

    def transition_key(self) -> tuple:
        """Identity used for duplicate detection: panel, date and transition."""
        return (self.panel_id, self.event_date, self.old_status, self.new_status)
