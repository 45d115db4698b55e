# piv_billing/models/panel.py
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum


class PanelStatus(str, Enum):
    INSTALLED = "installed"
    REMOVED = "removed"
    MAINTENANCE = "maintenance"
    PENDING_INSTALLATION = "pending_installation"
    PENDING_REMOVAL = "pending_removal"
    UNKNOWN = "unknown"

    def __str__(self) -> str:
        return self.value


ALL_PANEL_STATUSES = tuple(PanelStatus)


@dataclass
class Panel:
    panel_id: str
    installed_on: date | None = None
    monthly_rate: Decimal | None = None
    municipality: str = "Sin especificar"
    client: str = "Sin asignar"
    address: str = ""
    notes: str = ""
    shelter_code: str = ""
    piv_type: str = ""
    industrial: str = ""
    declared_status: PanelStatus = PanelStatus.PENDING_INSTALLATION
    attributes: dict[str, str] = field(default_factory=dict)

    # Derived from the event history; written only by PanelRepository.
    status: PanelStatus = field(default=PanelStatus.UNKNOWN, init=False)
    last_status_update: date | None = field(default=None, init=False)
