from datetime import date, datetime
from decimal import Decimal

from piv_billing.config import ImportConfig
from piv_billing.models.event import EventAction
from piv_billing.models.panel import Panel, PanelStatus
from piv_billing.services.billing_calculator import compute_monthly_billing
from piv_billing.services.reconciliation import (
    ReconciliationService,
    reconcile_events,
    reconcile_panels,
)
from piv_billing.services.event_adapters import action_event
from piv_billing.tests.fixtures import event_row, make_panel, make_repo, panel_row, removal


def _service(*panels, events=(), cfg=None):
    repo = make_repo(panels, events)
    return ReconciliationService(repo, cfg), repo


# ----------------------------------------------------------------------
# Panels
# ----------------------------------------------------------------------
def test_import_panels_adds_and_computes_status():
    svc, repo = _service()
    result = svc.import_panels([panel_row("P-1"), panel_row("P-2", **{"Importe mensual": "40,50 €"})])

    assert result.success
    assert (result.processed, result.accepted, result.skipped) == (2, 2, 0)
    assert result.message == "Records processed: 2. Added: 2. Skipped: 0. Panel import completed."
    p2 = repo.get_panel("P-2")
    assert p2.monthly_rate == Decimal("40.50")
    assert p2.municipality == "Alcobendas"
    assert p2.client == "Interbus"
    assert p2.attributes["Funcionamiento"] == "Sin revisar"
    assert p2.status == PanelStatus.INSTALLED
    assert p2.last_status_update == date(2024, 1, 1)


def test_import_panels_duplicate_in_store_is_skipped():
    svc, repo = _service()
    svc.import_panels([panel_row("P-1")])

    result = svc.import_panels([panel_row("P-1"), panel_row("P-3")])
    assert result.success
    assert result.accepted == 1
    assert result.skipped == 1
    assert "already exists or is duplicated in this file" in result.errors[0]
    assert result.message.endswith("Errors: 1.")
    assert [p.panel_id for p in repo.panels] == ["P-1", "P-3"]


def test_import_panels_duplicate_within_batch():
    svc, repo = _service()
    result = svc.import_panels([panel_row("P-1"), panel_row("P-1", **{"Municipio Marquesina": "Otro"})])
    assert result.accepted == 1
    assert result.skipped == 1
    assert repo.get_panel("P-1").municipality == "Alcobendas"


def test_import_panels_missing_headers_fails_batch():
    svc, repo = _service()
    result = svc.import_panels([{"Código parada": "P-1"}])
    assert not result.success
    assert result.message == "Missing required headers: Municipio Marquesina, Vigencia."
    assert repo.panels == []


def test_import_panels_empty_batch():
    svc, _ = _service()
    result = svc.import_panels([{}, {"Código parada": "  "}])
    assert not result.success
    assert result.errors == ["No data found to import."]


def test_import_panels_row_level_problems():
    svc, repo = _service()
    result = svc.import_panels(
        [
            panel_row(""),
            panel_row("P-9", **{"Importe mensual": "mucho"}),
            panel_row("P-10"),
        ]
    )
    assert result.processed == 3
    assert result.accepted == 1
    assert result.skipped == 2
    assert result.errors[0] == "Row 6: 'Código parada' is required and cannot be empty."
    assert result.errors[1].startswith("Row 7 (Panel P-9): monthly amount 'mucho'")
    assert repo.panel_ids() == {"P-10"}


def test_import_panels_defaults_for_blank_fields():
    svc, repo = _service()
    svc.import_panels(
        [panel_row("P-6", Vigencia="Desinstalado", **{"PIV Instalado": "", "Municipio Marquesina": ""})]
    )
    panel = repo.get_panel("P-6")
    assert panel.municipality == "Sin especificar"
    assert panel.installed_on is None
    assert panel.declared_status == PanelStatus.REMOVED
    assert panel.status == PanelStatus.REMOVED
    assert panel.last_status_update is None


def test_import_panels_synthesizes_removal_and_reinstall_events():
    svc, repo = _service()
    svc.import_panels(
        [panel_row("P-5", **{"PIV Desinstalado": "10/03/2024", "PIV Reinstalado": "20/03/2024"})]
    )
    assert len(repo.events_for("P-5")) == 2
    panel = repo.get_panel("P-5")
    assert panel.status == PanelStatus.INSTALLED
    assert panel.last_status_update == date(2024, 3, 20)

    record = compute_monthly_billing("P-5", 2024, 3, repo.events, repo.panels)
    assert record.billed_days == 22


def test_reinstall_before_removal_is_not_synthesized():
    svc, repo = _service()
    svc.import_panels(
        [panel_row("P-5", **{"PIV Desinstalado": "20/03/2024", "PIV Reinstalado": "10/03/2024"})]
    )
    assert [e.new_status for e in repo.events_for("P-5")] == [PanelStatus.REMOVED]


def test_add_and_update_panel():
    svc, repo = _service()
    assert svc.add_panel(Panel(panel_id=" P-7 ", municipality="  ")).success
    panel = repo.get_panel("P-7")
    assert panel.municipality == "Sin especificar"
    assert panel.status == PanelStatus.PENDING_INSTALLATION

    assert not svc.add_panel(Panel(panel_id="P-7")).success

    result = svc.update_panel("P-7", {"monthly_rate": "50", "installed_on": "2024-05-01"})
    assert result.success
    assert result.updated == 1
    panel = repo.get_panel("P-7")
    assert panel.monthly_rate == Decimal("50")
    assert panel.status == PanelStatus.INSTALLED
    assert panel.last_status_update == date(2024, 5, 1)



def test_add_panel_normalises_text_date_and_rate():
    svc, repo = _service()
    assert svc.add_panel(Panel(panel_id="P-8", installed_on="01/03/2024", monthly_rate="40,00")).success

    panel = repo.get_panel("P-8")
    assert panel.installed_on == date(2024, 3, 1)
    assert panel.monthly_rate == Decimal("40.00")
    assert panel.status == PanelStatus.INSTALLED

    record = compute_monthly_billing("P-8", 2024, 3, repo.events, repo.panels)
    assert record.billed_days == 30
    assert record.amount == Decimal("40.00")


def test_add_panel_accepts_datetime_anchor():
    svc, repo = _service()
    assert svc.add_panel(Panel(panel_id="P-9", installed_on=datetime(2024, 3, 1, 8, 30))).success

    panel = repo.get_panel("P-9")
    assert type(panel.installed_on) is date
    repo.refresh_all()
    assert panel.status == PanelStatus.INSTALLED
    assert compute_monthly_billing("P-9", 2024, 2, repo.events, repo.panels).billed_days == 0


def test_add_panel_rejects_unparseable_date_and_rate():
    svc, repo = _service()
    result = svc.add_panel(Panel(panel_id="P-10", installed_on="garbage", monthly_rate="abc"))

    assert not result.success
    assert result.errors == [
        "installation date 'garbage' is invalid",
        "monthly amount 'abc' is not a number",
    ]
    assert not repo.has_panel("P-10")
    repo.refresh_all()

def test_update_panel_rejects_bad_fields():
    svc, repo = _service(make_panel("P-1"))
    result = svc.update_panel("P-1", {"panel_id": "P-2", "color": "red"})
    assert not result.success
    assert result.errors == ["Panel identifier cannot be changed.", "field 'color' cannot be updated"]
    assert repo.has_panel("P-1")
    assert not svc.update_panel("NOPE", {}).success


def test_deletes_are_not_implemented():
    svc, repo = _service(make_panel("P-1"))
    assert svc.delete_panel("P-1").message == "Panel deletion is not implemented."
    assert not svc.delete_event("whatever").success
    assert repo.has_panel("P-1")


# ----------------------------------------------------------------------
# Events
# ----------------------------------------------------------------------
def test_import_events_validates_every_row():
    svc, repo = _service(make_panel("P-1"))
    rows = [
        event_row("P-1", "10/03/2024"),
        event_row("P-404", "10/03/2024"),
        event_row("P-1", "99/99/2024"),
        event_row("P-1", "11/03/2024", new="roto"),
        event_row("P-1", "10/03/2024"),
        {},
    ]
    result = svc.import_events(rows)

    assert result.success
    assert (result.processed, result.accepted, result.skipped) == (5, 1, 4)
    assert result.errors[0] == "Row 3: Panel with ID P-404 not found. Skipped."
    assert result.errors[1].startswith("Row 4 (Panel P-1): date '99/99/2024'")
    assert result.errors[2].startswith("Row 5 (Panel P-1): new status 'roto' is not valid")
    assert result.errors[3] == "Row 6 (Panel P-1): duplicate event skipped."

    panel = repo.get_panel("P-1")
    assert panel.status == PanelStatus.REMOVED
    assert panel.last_status_update == date(2024, 3, 10)


def test_import_events_duplicate_of_stored_event():
    svc, repo = _service(make_panel("P-1"), events=[removal("P-1", date(2024, 3, 10))])
    result = reconcile_events([event_row("P-1", "2024-03-10")], repo)
    assert not result.success
    assert result.skipped == 1
    assert "duplicate event skipped" in result.errors[0]
    assert len(repo.events) == 1


def test_import_events_requires_panel_id():
    svc, _ = _service(make_panel("P-1"))
    result = svc.import_events([{"fecha": "2024-01-01", "estado nuevo": "Eliminado"}])
    assert result.errors == ["Row 2: panelId is required."]


def test_import_events_error_list_is_capped():
    svc, _ = _service(make_panel("P-1"), cfg=ImportConfig(max_errors=2))
    result = svc.import_events([event_row(f"X-{i}", "2024-01-01") for i in range(5)])
    assert not result.success
    assert len(result.errors) == 2
    assert result.error_count == 5
    assert result.message == "Records processed: 5. Added: 0. Skipped: 5. Errors: 5."


def test_import_events_empty_file():
    svc, _ = _service(make_panel("P-1"))
    result = svc.import_events([])
    assert not result.success
    assert result.errors == ["No events found to import."]


def test_add_event_from_mapping_and_duplicate():
    svc, repo = _service(make_panel("P-1"))
    row = {"panelId": "P-1", "fecha": "2024-03-10", "tipo": "DESINSTALACION"}
    assert svc.add_event(row).success
    assert repo.get_panel("P-1").status == PanelStatus.REMOVED

    again = svc.add_event(row)
    assert not again.success
    assert again.message == "Event (Panel P-1): duplicate event skipped."


def test_add_event_keeps_event_id():
    svc, repo = _service(make_panel("P-1"))
    event = removal("P-1", date(2024, 3, 10))
    assert svc.add_event(event).success
    assert repo.get_event(event.event_id) is not None


def test_update_event_moving_panels_refreshes_both():
    svc, repo = _service(make_panel("P-1"), make_panel("P-2"))
    event = removal("P-1", date(2024, 3, 10))
    svc.add_event(event)
    assert repo.get_panel("P-1").status == PanelStatus.REMOVED

    result = svc.update_event(event.event_id, {"panel_id": "P-2"})
    assert result.success

    p1 = repo.get_panel("P-1")
    p2 = repo.get_panel("P-2")
    assert p1.status == PanelStatus.INSTALLED
    assert p1.last_status_update == date(2024, 1, 1)
    assert p2.status == PanelStatus.REMOVED
    assert repo.events[0].event_id == event.event_id


def test_update_event_date_and_action():
    svc, repo = _service(make_panel("P-1"))
    event = removal("P-1", date(2024, 3, 10))
    svc.add_event(event)

    assert svc.update_event(event.event_id, {"date": "12/03/2024", "action": "REINSTALACION"}).success
    stored = repo.get_event(event.event_id)
    assert stored.event_date == date(2024, 3, 12)
    assert stored.new_status == PanelStatus.INSTALLED
    assert repo.get_panel("P-1").status == PanelStatus.INSTALLED



def test_update_event_new_status_drops_stale_action():
    svc, repo = _service(make_panel("P-1"))
    event = action_event("P-1", date(2024, 3, 10), EventAction.DEACTIVATION)
    svc.add_event(event)

    assert svc.update_event(event.event_id, {"new_status": "installed"}).success
    stored = repo.get_event(event.event_id)
    assert stored.action is None
    assert stored.old_status is None
    assert stored.new_status == PanelStatus.INSTALLED
    assert repo.get_panel("P-1").status == PanelStatus.INSTALLED


def test_update_event_action_wins_over_status_in_any_order():
    for updates in (
        {"new_status": "maintenance", "action": "REINSTALACION"},
        {"action": "REINSTALACION", "new_status": "maintenance"},
    ):
        svc, repo = _service(make_panel("P-1"))
        event = removal("P-1", date(2024, 3, 10))
        svc.add_event(event)

        assert svc.update_event(event.event_id, updates).success
        stored = repo.get_event(event.event_id)
        assert stored.action == EventAction.REACTIVATION
        assert stored.old_status == PanelStatus.REMOVED
        assert stored.new_status == PanelStatus.INSTALLED

def test_update_event_rejects_bad_input():
    svc, repo = _service(make_panel("P-1"))
    event = removal("P-1", date(2024, 3, 10))
    svc.add_event(event)

    bad_date = svc.update_event(event.event_id, {"date": "garbage"})
    assert not bad_date.success
    assert repo.get_event(event.event_id).event_date == date(2024, 3, 10)

    assert not svc.update_event(event.event_id, {"colour": "red"}).success
    assert not svc.update_event(event.event_id, {"panel_id": "P-404"}).success
    assert not svc.update_event("missing", {"notes": "x"}).success


def test_clear_then_billing_gives_zero_record():
    svc, repo = _service(make_panel("P-1"), events=[removal("P-1", date(2024, 3, 10))])
    result = svc.clear_all()
    assert result.success
    assert result.deleted == 2

    record = compute_monthly_billing("P-1", 2024, 3, repo.events, repo.panels)
    assert record.billed_days == 0
    assert record.amount == Decimal("0.00")


def test_module_level_reconcile_panels():
    repo = make_repo()
    result = reconcile_panels([panel_row("P-1")], repo)
    assert result.accepted == 1
    assert repo.has_panel("P-1")
