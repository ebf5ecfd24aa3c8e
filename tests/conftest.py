"""
Pytest configuration and shared fixtures
"""
import os
import sys
from datetime import date
from pathlib import Path

import pytest

# Add project root to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

os.environ.setdefault("APP_ENV", "testing")

from models import PAUSE_CLIENT, ClientPlan, fold_text  # noqa: E402
from store import LookupFailure  # noqa: E402


class FakeAppointmentStore:
    """In-memory appointment store with the same query semantics as store.AppointmentStore."""

    def __init__(self, appointments=None, fail=False):
        # (client, date, service)
        self.appointments = list(appointments or [])
        self.fail = fail
        self.calls = 0

    def add(self, client, day, service="CORTE"):
        self.appointments.append((client, day, service))

    def find_latest_renewal(self, client_name):
        self.calls += 1
        if self.fail:
            raise LookupFailure("store offline")
        dates = [
            d for c, d, s in self.appointments
            if fold_text(c) == fold_text(client_name) and "renova" in fold_text(s)
        ]
        return max(dates) if dates else None

    def count_distinct_visit_days(self, client_name, from_date, before_date):
        self.calls += 1
        if self.fail:
            raise LookupFailure("store offline")
        return len({
            d for c, d, s in self.appointments
            if fold_text(c) == fold_text(client_name)
            and fold_text(c) != fold_text(PAUSE_CLIENT)
            and d < before_date
            and (from_date is None or d >= from_date)
        })


class FakeClients:
    def __init__(self, *clients):
        self.by_name = {fold_text(c.name): c for c in clients}

    def find(self, name):
        return self.by_name.get(fold_text(name))


@pytest.fixture
def fake_store():
    return FakeAppointmentStore()


@pytest.fixture
def subscriber():
    """Monthly subscriber with a 4-visit cycle and a plan price"""
    return ClientPlan(name="ANA", plan_type="Mensal", cycle_limit=4, plan_price=120.0)


@pytest.fixture
def temp_db(tmp_path, monkeypatch):
    """Fresh SQLite database per test"""
    import db

    monkeypatch.setattr(db, "DB_FILE", tmp_path / "test.db")
    db.init_db()
    return db


@pytest.fixture
def add_client(temp_db):
    def _add(name, plan_type="Mensal", cycle_limit=4, manual_reset_date=None, plan_price=120.0,
             preset_service=None, preset_value=None, preset_payment=None):
        return temp_db.execute(
            """
            INSERT INTO clients(name, plan_type, cycle_limit, manual_reset_date, plan_price,
                preset_service, preset_value, preset_payment)
            VALUES(?,?,?,?,?,?,?,?)
            """,
            (name, plan_type, cycle_limit, manual_reset_date, plan_price,
             preset_service, preset_value, preset_payment),
        )
    return _add


@pytest.fixture
def add_appointment(temp_db):
    def _add(client, day, service="CORTE", value=0.0, payment_method="PLANO", time="10:00"):
        if isinstance(day, date):
            day = day.isoformat()
        return temp_db.execute(
            """
            INSERT INTO appointments(date, time, client, service, value, payment_method)
            VALUES(?,?,?,?,?,?)
            """,
            (day, time, client, service, value, payment_method),
        )
    return _add
