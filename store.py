"""
store.py
Appointment store and client records over SQLite, plus the CRUD helpers the
dashboard pages use.
"""

from __future__ import annotations

import logging
import sqlite3
from datetime import date

import db
import utils
from models import (
    PAUSE_CLIENT,
    PLAN_MONTHLY,
    PLAN_PAUSED,
    RENEWAL_MARKER,
    UNDEFINED_SERVICE,
    AppointmentRecord,
    ClientPlan,
    Preset,
    canonical_plan_type,
    fold_text,
    is_cycle_plan,
)

logger = logging.getLogger(__name__)


class LookupFailure(RuntimeError):
    """The appointment/client store could not be read. Distinct from 'nothing found'."""


def client_from_row(row) -> ClientPlan:
    """
    Build a ClientPlan from a clients row. Dirty data never raises:
    bad limits become 0 (unlimited), bad dates become None.
    """
    preset = Preset(
        service=(row["preset_service"] or None),
        value=utils.parse_money(row["preset_value"]),
        payment=(row["preset_payment"] or None),
    )
    return ClientPlan(
        id=row["id"],
        name=row["name"],
        phone=row["phone"],
        plan_type=canonical_plan_type(row["plan_type"]),
        cycle_limit=utils.coerce_limit(row["cycle_limit"]),
        manual_reset_date=utils.parse_date_or_none(row["manual_reset_date"]),
        plan_price=utils.parse_money(row["plan_price"]),
        preset=None if preset.is_empty() else preset,
        client_notes=(row["client_notes"] or None),
        plan_notes=(row["plan_notes"] or None),
    )


def appointment_from_row(row) -> AppointmentRecord:
    return AppointmentRecord(
        id=row["id"],
        date=row["date"],
        time=row["time"],
        client=row["client"],
        service=row["service"] or UNDEFINED_SERVICE,
        observations=row["observations"],
        value=utils.parse_money(row["value"]) or 0.0,
        payment_method=row["payment_method"] or "PIX",
    )


class AppointmentStore:
    """Read queries the cycle engine needs, backed by the appointments table."""

    def find_latest_renewal(self, client_name: str) -> date | None:
        try:
            rows = db.fetch_all(
                """
                SELECT date FROM appointments
                WHERE fold(client) = fold(?) AND instr(fold(service), ?) > 0
                ORDER BY date DESC
                """,
                (client_name, fold_text(RENEWAL_MARKER)),
            )
        except sqlite3.Error as e:
            logger.warning("Renewal lookup failed for %r: %s", client_name, e)
            raise LookupFailure(f"could not read renewals for {client_name!r}") from e

        for r in rows:
            anchor = utils.parse_date_or_none(r["date"])
            if anchor is not None:
                return anchor
        return None

    def count_distinct_visit_days(self, client_name: str, from_date: date | None, before_date: date) -> int:
        if from_date is not None and from_date >= before_date:
            return 0

        sql = """
            SELECT DISTINCT date FROM appointments
            WHERE fold(client) = fold(?) AND fold(client) != ? AND date < ?
        """
        params: list = [client_name, fold_text(PAUSE_CLIENT), before_date.isoformat()]
        if from_date is not None:
            sql += " AND date >= ?"
            params.append(from_date.isoformat())

        try:
            rows = db.fetch_all(sql, tuple(params))
        except sqlite3.Error as e:
            logger.warning("Usage lookup failed for %r: %s", client_name, e)
            raise LookupFailure(f"could not count visits for {client_name!r}") from e

        days = set()
        for r in rows:
            d = utils.parse_date_or_none(r["date"])
            if d is None or d >= before_date or (from_date is not None and d < from_date):
                continue
            days.add(d)
        return len(days)


class ClientDirectory:
    """Name -> client record lookup."""

    def find(self, name: str) -> ClientPlan | None:
        if not (name or "").strip():
            return None
        try:
            row = db.fetch_one("SELECT * FROM clients WHERE fold(name) = fold(?)", (name.strip(),))
        except sqlite3.Error as e:
            raise LookupFailure(f"could not read client {name!r}") from e
        return client_from_row(row) if row else None


# ---------- Clients ----------

def list_clients(search: str = "") -> list[ClientPlan]:
    sql = "SELECT * FROM clients WHERE 1=1"
    params = []
    if search.strip():
        sql += " AND (instr(fold(name), fold(?)) > 0 OR phone LIKE ?)"
        params.extend([search.strip(), f"%{search.strip()}%"])
    sql += " ORDER BY name COLLATE NOCASE ASC"
    return [client_from_row(r) for r in db.fetch_all(sql, tuple(params))]


def list_subscribers() -> list[ClientPlan]:
    """Clients on a plan, paused ones included."""
    return [
        c for c in list_clients()
        if c.has_cycle or fold_text(c.plan_type) == fold_text(PLAN_PAUSED)
    ]


def get_client(client_id: int) -> ClientPlan | None:
    row = db.fetch_one("SELECT * FROM clients WHERE id = ?", (client_id,))
    return client_from_row(row) if row else None


def save_client(name: str, phone: str | None, plan_type: str, cycle_limit: int,
                manual_reset_date: str | None, plan_price: float | None, client_id: int | None = None,
                client_notes: str | None = None, plan_notes: str | None = None) -> int:
    """
    Insert, or update when client_id is given or the name already exists.

    Names are unique after folding ("JOÃO" and "JOAO" are the same client):
    renaming a client onto another client's name raises ValueError.
    """
    params = (
        name.strip().upper(),
        (phone or "").strip() or None,
        plan_type,
        utils.coerce_limit(cycle_limit),
        manual_reset_date or None,
        plan_price,
        (client_notes or "").strip() or None,
        (plan_notes or "").strip() or None,
    )
    existing = db.fetch_one("SELECT id FROM clients WHERE fold(name) = fold(?)", (name.strip(),))
    if client_id is None:
        client_id = existing["id"] if existing else None
    elif existing and existing["id"] != client_id:
        raise ValueError(f"A client named {name.strip().upper()!r} already exists.")

    if client_id is not None:
        db.execute(
            """
            UPDATE clients SET name=?, phone=?, plan_type=?, cycle_limit=?, manual_reset_date=?, plan_price=?,
                client_notes=?, plan_notes=?
            WHERE id=?
            """,
            params + (client_id,),
        )
        logger.info("Client %s updated", client_id)
        return client_id

    new_id = db.execute(
        """
        INSERT INTO clients(name, phone, plan_type, cycle_limit, manual_reset_date, plan_price,
            client_notes, plan_notes)
        VALUES(?,?,?,?,?,?,?,?)
        """,
        params,
    )
    logger.info("Client %s created", new_id)
    return new_id


def save_preset(client_id: int, preset: Preset | None) -> None:
    if preset is None or preset.is_empty():
        db.execute(
            "UPDATE clients SET preset_service=NULL, preset_value=NULL, preset_payment=NULL WHERE id=?",
            (client_id,),
        )
        return
    db.execute(
        "UPDATE clients SET preset_service=?, preset_value=?, preset_payment=? WHERE id=?",
        ((preset.service or "").upper() or None, preset.value, preset.payment, client_id),
    )


def reset_cycle(client_id: int, on: date | None = None) -> str:
    """Operator override: start a new billing cycle on `on` (today by default)."""
    reset = (on or date.today()).isoformat()
    db.execute("UPDATE clients SET manual_reset_date=? WHERE id=?", (reset, client_id))
    logger.info("Cycle reset for client %s on %s", client_id, reset)
    return reset


def toggle_pause(client: ClientPlan) -> str:
    new_plan = PLAN_MONTHLY if not is_cycle_plan(client.plan_type) else PLAN_PAUSED
    db.execute("UPDATE clients SET plan_type=? WHERE id=?", (new_plan, client.id))
    return new_plan


def delete_client(client_id: int) -> None:
    db.execute("DELETE FROM clients WHERE id = ?", (client_id,))


# ---------- Appointments ----------

def list_appointments(day: str) -> list[AppointmentRecord]:
    rows = db.fetch_all(
        "SELECT * FROM appointments WHERE date = ? ORDER BY time ASC, id ASC",
        (day,),
    )
    return [appointment_from_row(r) for r in rows]


def client_appointments(client_name: str) -> list[AppointmentRecord]:
    rows = db.fetch_all(
        "SELECT * FROM appointments WHERE fold(client) = fold(?) ORDER BY date DESC, time DESC",
        (client_name,),
    )
    return [appointment_from_row(r) for r in rows]


def add_appointment(appt_date: str, time: str | None, client: str, service: str | None,
                    value: float | None, payment_method: str | None, observations: str | None = None) -> int:
    new_id = db.execute(
        """
        INSERT INTO appointments(date, time, client, service, observations, value, payment_method)
        VALUES(?,?,?,?,?,?,?)
        """,
        (
            appt_date,
            time or None,
            client.strip().upper(),
            (service or "").strip() or UNDEFINED_SERVICE,
            (observations or "").strip() or None,
            value or 0.0,
            payment_method or "PIX",
        ),
    )
    logger.info("Appointment %s booked for %s on %s", new_id, client, appt_date)
    return new_id


_APPOINTMENT_COLUMNS = ("date", "time", "client", "service", "observations", "value", "payment_method")


def update_appointment(appointment_id: int, **fields) -> None:
    updates = {k: v for k, v in fields.items() if k in _APPOINTMENT_COLUMNS}
    unknown = set(fields) - set(updates)
    if unknown:
        raise ValueError(f"Unknown appointment fields: {sorted(unknown)}")
    if not updates:
        return
    assignments = ", ".join(f"{k}=?" for k in updates)
    db.execute(
        f"UPDATE appointments SET {assignments} WHERE id=?",
        tuple(updates.values()) + (appointment_id,),
    )


def delete_appointment(appointment_id: int) -> None:
    db.execute("DELETE FROM appointments WHERE id = ?", (appointment_id,))


# ---------- Procedures ----------

def list_procedures() -> list[dict]:
    return [dict(r) for r in db.fetch_all("SELECT * FROM procedures ORDER BY name COLLATE NOCASE ASC")]


def save_procedure(name: str, price: float | None) -> None:
    existing = db.fetch_one("SELECT id FROM procedures WHERE fold(name) = fold(?)", (name.strip(),))
    if existing:
        db.execute("UPDATE procedures SET price=? WHERE id=?", (price, existing["id"]))
    else:
        db.execute("INSERT INTO procedures(name, price) VALUES(?, ?)", (name.strip().upper(), price))


def delete_procedure(procedure_id: int) -> None:
    db.execute("DELETE FROM procedures WHERE id = ?", (procedure_id,))
