"""
Tests for the SQLite-backed appointment store and client records
"""
import sqlite3
from datetime import date

import pytest

import cycle
import store
from models import Preset

D = date.fromisoformat


@pytest.mark.integration
class TestFindLatestRenewal:
    """Tests for renewal anchor lookup"""

    def test_no_renewal(self, temp_db, add_appointment):
        add_appointment("ANA", "2024-01-05", "CORTE")
        assert store.AppointmentStore().find_latest_renewal("ANA") is None

    def test_case_and_accent_insensitive(self, temp_db, add_appointment):
        add_appointment("ANA", "2024-01-05", "RENOVAÇÃO 1 DIA")
        add_appointment("Ana", "2024-02-05", "renovacao 1 dia")
        add_appointment("ANA", "2024-03-05", "Renovação Plano")
        assert store.AppointmentStore().find_latest_renewal("ana") == D("2024-03-05")

    def test_other_client_renewal_ignored(self, temp_db, add_appointment):
        add_appointment("BRUNO", "2024-03-05", "RENOVAÇÃO 1 DIA")
        add_appointment("ANA", "2024-01-05", "RENOVAÇÃO 1 DIA")
        assert store.AppointmentStore().find_latest_renewal("ANA") == D("2024-01-05")

    def test_unparsable_dates_skipped(self, temp_db, add_appointment):
        add_appointment("ANA", "2024-01-05", "RENOVAÇÃO 1 DIA")
        add_appointment("ANA", "9999-99-99", "RENOVAÇÃO 1 DIA")
        assert store.AppointmentStore().find_latest_renewal("ANA") == D("2024-01-05")

    def test_backend_error_is_lookup_failure(self, temp_db, monkeypatch):
        def broken(*args, **kwargs):
            raise sqlite3.OperationalError("database is locked")

        monkeypatch.setattr(temp_db, "fetch_all", broken)
        with pytest.raises(store.LookupFailure):
            store.AppointmentStore().find_latest_renewal("ANA")


@pytest.mark.integration
class TestCountDistinctVisitDays:
    """Tests for visit-day counting in SQL"""

    def test_distinct_days(self, temp_db, add_appointment):
        for day in ("2024-01-12", "2024-01-12", "2024-01-19", "2024-01-26"):
            add_appointment("ANA", day)
        s = store.AppointmentStore()
        assert s.count_distinct_visit_days("ana", None, D("2024-02-01")) == 3
        assert s.count_distinct_visit_days("ANA", D("2024-01-19"), D("2024-01-26")) == 1

    def test_pause_sentinel_excluded(self, temp_db, add_appointment):
        add_appointment("PAUSA", "2024-01-12", "RESERVADO")
        assert store.AppointmentStore().count_distinct_visit_days("PAUSA", None, D("2024-02-01")) == 0

    def test_garbage_dates_ignored(self, temp_db, add_appointment):
        add_appointment("ANA", "2024-01-12")
        add_appointment("ANA", "12/01/2024")
        add_appointment("ANA", "")
        assert store.AppointmentStore().count_distinct_visit_days("ANA", None, D("2024-02-01")) == 1

    def test_empty_window(self, temp_db, add_appointment):
        add_appointment("ANA", "2024-01-12")
        assert store.AppointmentStore().count_distinct_visit_days("ANA", D("2024-02-01"), D("2024-02-01")) == 0

    def test_backend_error_is_lookup_failure(self, temp_db, monkeypatch):
        def broken(*args, **kwargs):
            raise sqlite3.OperationalError("no such table: appointments")

        monkeypatch.setattr(temp_db, "fetch_all", broken)
        with pytest.raises(store.LookupFailure):
            store.AppointmentStore().count_distinct_visit_days("ANA", None, D("2024-02-01"))


@pytest.mark.integration
class TestClientRecords:
    """Tests for client lookup and dirty-data handling"""

    def test_find_case_insensitive(self, temp_db, add_client):
        add_client("JOÃO", manual_reset_date="2024-01-05")
        client = store.ClientDirectory().find("joão")
        assert client is not None
        assert client.manual_reset_date == D("2024-01-05")
        assert client.has_cycle is True

    def test_find_missing(self, temp_db):
        assert store.ClientDirectory().find("NOBODY") is None
        assert store.ClientDirectory().find("  ") is None

    def test_malformed_record_is_lenient(self, temp_db, add_client):
        add_client("ANA", plan_type="mensal", cycle_limit=-3, manual_reset_date="05/01/2024", plan_price="abc")
        client = store.ClientDirectory().find("ANA")
        assert client.plan_type == "Mensal"
        assert client.cycle_limit == 0
        assert client.manual_reset_date is None
        assert client.plan_price is None

    def test_infinite_limit_is_unlimited(self, temp_db, add_client, add_appointment):
        add_client("ANA", cycle_limit=1e400)
        add_appointment("ANA", "2024-01-05", "RENOVAÇÃO 1 DIA")
        client = store.ClientDirectory().find("ANA")
        assert client.cycle_limit == 0

        result = cycle.booking_autofill("ANA", D("2024-01-12"), store.ClientDirectory(), store.AppointmentStore())
        assert result.window.used_count == 1
        assert result.is_renewal is False

    def test_preset_loaded(self, temp_db, add_client):
        add_client("CARLOS", plan_type="Nenhum", preset_service="CORTE", preset_value=50, preset_payment="PIX")
        client = store.ClientDirectory().find("carlos")
        assert client.preset == Preset(service="CORTE", value=50.0, payment="PIX")

    def test_save_client_upserts_by_name(self, temp_db):
        first = store.save_client("ana", None, "Mensal", 4, None, 120.0)
        second = store.save_client("ANA", "119", "Anual", 10, "2024-01-01", 1000.0)
        assert first == second
        client = store.get_client(first)
        assert client.name == "ANA"
        assert client.plan_type == "Anual"
        assert client.cycle_limit == 10

    def test_save_client_folds_accents_into_same_client(self, temp_db):
        first = store.save_client("JOÃO", None, "Mensal", 4, None, 120.0)
        second = store.save_client("JOAO", None, "Mensal", 6, None, 120.0)
        assert first == second
        assert len(store.list_clients()) == 1
        assert store.get_client(first).cycle_limit == 6

    def test_rename_onto_folded_duplicate_rejected(self, temp_db):
        store.save_client("JOÃO", None, "Mensal", 4, None, 120.0)
        other = store.save_client("PEDRO", None, "Nenhum", 0, None, None)
        with pytest.raises(ValueError, match="already exists"):
            store.save_client("joao", None, "Nenhum", 0, None, None, client_id=other)
        assert store.get_client(other).name == "PEDRO"

    def test_rename_keeps_own_id(self, temp_db):
        client_id = store.save_client("JOAO", None, "Mensal", 4, None, 120.0)
        assert store.save_client("João", None, "Mensal", 4, None, 120.0, client_id=client_id) == client_id
        assert store.get_client(client_id).name == "JOÃO"

    def test_notes_saved(self, temp_db):
        client_id = store.save_client("ANA", None, "Mensal", 4, None, 120.0,
                                      client_notes=" prefers scissors ", plan_notes="paid in cash")
        client = store.get_client(client_id)
        assert client.client_notes == "prefers scissors"
        assert client.plan_notes == "paid in cash"

        store.save_client("ANA", None, "Mensal", 4, None, 120.0, client_id=client_id, client_notes="")
        client = store.get_client(client_id)
        assert client.client_notes is None
        assert client.plan_notes is None

    def test_init_db_adds_notes_columns_to_old_table(self, tmp_path, monkeypatch):
        import db

        path = tmp_path / "old.db"
        conn = sqlite3.connect(path)
        conn.execute(
            """
            CREATE TABLE clients (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL UNIQUE COLLATE NOCASE,
                phone TEXT,
                plan_type TEXT NOT NULL DEFAULT 'Nenhum',
                cycle_limit INTEGER NOT NULL DEFAULT 0,
                manual_reset_date TEXT,
                plan_price REAL,
                preset_service TEXT,
                preset_value REAL,
                preset_payment TEXT,
                created_at TEXT NOT NULL DEFAULT (date('now'))
            )
            """
        )
        conn.execute("INSERT INTO clients(name) VALUES('ANA')")
        conn.commit()
        conn.close()

        monkeypatch.setattr(db, "DB_FILE", path)
        db.init_db()
        db.init_db()
        columns = {r["name"] for r in db.fetch_all("PRAGMA table_info(clients)")}
        assert {"client_notes", "plan_notes"} <= columns
        assert store.ClientDirectory().find("ana").client_notes is None

    def test_save_and_clear_preset(self, temp_db, add_client):
        client_id = add_client("CARLOS", plan_type="Nenhum")
        store.save_preset(client_id, Preset(service="corte", value=50.0, payment="PIX"))
        assert store.get_client(client_id).preset == Preset(service="CORTE", value=50.0, payment="PIX")
        store.save_preset(client_id, None)
        assert store.get_client(client_id).preset is None

    def test_reset_cycle(self, temp_db, add_client):
        client_id = add_client("ANA")
        store.reset_cycle(client_id, D("2024-04-01"))
        assert store.get_client(client_id).manual_reset_date == D("2024-04-01")

    def test_toggle_pause(self, temp_db, add_client):
        client_id = add_client("ANA", plan_type="Semestral")
        assert store.toggle_pause(store.get_client(client_id)) == "Pausado"
        assert store.toggle_pause(store.get_client(client_id)) == "Mensal"

    def test_list_subscribers(self, temp_db, add_client):
        add_client("ANA", plan_type="Mensal")
        add_client("BRUNO", plan_type="Pausado")
        add_client("CARLOS", plan_type="Nenhum")
        assert [c.name for c in store.list_subscribers()] == ["ANA", "BRUNO"]


@pytest.mark.integration
class TestAppointments:
    """Tests for appointment CRUD"""

    def test_add_and_list(self, temp_db):
        store.add_appointment("2024-01-12", "10:00", "ana", "", None, None)
        rows = store.list_appointments("2024-01-12")
        assert len(rows) == 1
        assert rows[0].client == "ANA"
        assert rows[0].service == "A DEFINIR"
        assert rows[0].payment_method == "PIX"

    def test_update_rejects_unknown_fields(self, temp_db):
        appt_id = store.add_appointment("2024-01-12", "10:00", "ANA", "CORTE", 50.0, "PIX")
        with pytest.raises(ValueError):
            store.update_appointment(appt_id, client="BRUNO", id=99)
        store.update_appointment(appt_id, service="2 DIA", payment_method="PLANO", value=0.0)
        row = store.list_appointments("2024-01-12")[0]
        assert (row.service, row.payment_method, row.value) == ("2 DIA", "PLANO", 0.0)

    def test_delete_changes_next_cycle_computation(self, temp_db, add_client, add_appointment):
        add_client("ANA", cycle_limit=2)
        add_appointment("ANA", "2024-01-05", "RENOVAÇÃO 1 DIA")
        extra = add_appointment("ANA", "2024-01-12", "2 DIA")
        clients, appts = store.ClientDirectory(), store.AppointmentStore()

        assert cycle.booking_autofill("ANA", D("2024-01-19"), clients, appts).is_renewal is True
        store.delete_appointment(extra)
        after = cycle.booking_autofill("ANA", D("2024-01-19"), clients, appts)
        assert after.is_renewal is False
        assert after.label == "2 DIA"

    def test_procedure_upsert(self, temp_db):
        store.save_procedure("corte", 55.0)
        prices = {p["name"]: p["price"] for p in store.list_procedures()}
        assert prices["CORTE"] == 55.0


@pytest.mark.integration
class TestEngineOverSqlite:
    """Cycle engine against the real store"""

    def test_scenario(self, temp_db, add_client, add_appointment):
        add_client("ANA", cycle_limit=4, plan_price=120.0)
        add_appointment("ANA", "2024-01-05", "RENOVAÇÃO 1 DIA", value=120.0, payment_method="PIX")
        add_appointment("ANA", "2024-01-12", "2 DIA")
        add_appointment("ana", "2024-01-12", "2 DIA")
        add_appointment("ANA", "2024-01-19", "3 DIA")
        add_appointment("PAUSA", "2024-01-20", "RESERVADO")

        result = cycle.booking_autofill("Ana", D("2024-01-26"), store.ClientDirectory(), store.AppointmentStore())
        assert result.window.start_date == D("2024-01-05")
        assert result.window.used_count == 3
        assert result.label == "4 DIA"
        assert result.is_renewal is False

    def test_manual_reset_overrides_older_renewal(self, temp_db, add_client, add_appointment):
        add_client("ANA", cycle_limit=4, manual_reset_date="2024-06-01")
        add_appointment("ANA", "2024-05-01", "RENOVAÇÃO 1 DIA")
        add_appointment("ANA", "2024-05-08", "2 DIA")
        add_appointment("ANA", "2024-06-03", "CORTE")

        result = cycle.booking_autofill("ANA", D("2024-06-10"), store.ClientDirectory(), store.AppointmentStore())
        assert result.window == cycle.CycleWindow(D("2024-06-01"), 1)
        assert result.label == "2 DIA"
