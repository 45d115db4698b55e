# piv_billing/tests/fixtures.py
from datetime import date

from piv_billing.models.event import PanelEvent
from piv_billing.models.panel import Panel, PanelStatus
from piv_billing.services.panel_repository import PanelRepository


TODAY = date(2024, 6, 15)


def make_panel(panel_id="P-001", installed_on=date(2024, 1, 1), rate=None, **kwargs):
    return Panel(panel_id=panel_id, installed_on=installed_on, monthly_rate=rate, **kwargs)


def removal(panel_id, on, notes=None):
    return PanelEvent(
        panel_id=panel_id,
        event_date=on,
        new_status=PanelStatus.REMOVED,
        old_status=PanelStatus.INSTALLED,
        notes=notes,
    )


def reinstall(panel_id, on, notes=None):
    return PanelEvent(
        panel_id=panel_id,
        event_date=on,
        new_status=PanelStatus.INSTALLED,
        old_status=PanelStatus.REMOVED,
        notes=notes,
    )


def make_repo(panels=(), events=(), today=TODAY):
    repo = PanelRepository(clock=lambda: today)
    repo.seed(panels, events)
    return repo


def panel_row(panel_id, **overrides):
    """A panel sheet row as read from the import file."""
    row = {
        "Código parada": panel_id,
        "Municipio Marquesina": "Alcobendas",
        "Vigencia": "OK",
        "PIV Instalado": "01/01/2024",
        "Empresas concesionarias": "Interbus",
    }
    row.update(overrides)
    return row


def event_row(panel_id, fecha, old="Instalado", new="Eliminado", **extra):
    row = {
        "panelId": panel_id,
        "fecha": fecha,
        "estado anterior": old,
        "estado nuevo": new,
    }
    row.update(extra)
    return row
