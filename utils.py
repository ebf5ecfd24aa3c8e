"""
utils.py
Validation, dates, money parsing, exports, sample data.
"""

from __future__ import annotations

from datetime import date, timedelta
import pandas as pd

import db
from models import (
    BREAK_OBSERVATIONS,
    BREAK_SERVICE,
    PAUSE_CLIENT,
    PAY_COURTESY,
    PAY_PIX,
    PAY_PLAN,
    PLAN_ANNUAL,
    PLAN_MONTHS,
    PLAN_MONTHLY,
    PLAN_NONE,
    PLAN_PAUSED,
    PLAN_TYPES,
    RENEWAL_LABEL,
    fold_text,
)


def parse_iso(d: str) -> date:
    return date.fromisoformat(d)


def parse_date_or_none(value) -> date | None:
    """
    Lenient date parsing for stored data: date objects pass through,
    ISO strings are parsed, anything else (blank, garbage) is None.
    """
    if value is None:
        return None
    if isinstance(value, date):
        return value
    text = str(value).strip()
    if not text:
        return None
    try:
        # tolerate timestamps like '2024-01-05T10:00:00'
        return date.fromisoformat(text[:10])
    except ValueError:
        return None


def coerce_limit(value) -> int:
    """Cycle limit from a client record; negative or non-numeric means unlimited (0)."""
    try:
        limit = int(float(value))
    except (TypeError, ValueError, OverflowError):
        return 0
    return limit if limit > 0 else 0


def parse_money(value) -> float | None:
    """
    Accepts 50, '50', '50,00', 'R$ 50,00'. Returns None for blank/unparsable.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    text = str(value).replace("R$", "").strip()
    if not text:
        return None
    if "," in text:
        text = text.replace(".", "").replace(",", ".")
    try:
        return float(text)
    except ValueError:
        return None


def format_money(value, currency: str = "R$") -> str:
    amount = parse_money(value) or 0.0
    return f"{currency} {amount:,.2f}".replace(",", "X").replace(".", ",").replace("X", ".")


def add_months(start: date, months: int) -> date:
    """
    Add months while keeping day in valid range (e.g., Jan 31 + 1 month => Feb 28/29).
    """
    y = start.year + (start.month - 1 + months) // 12
    m = (start.month - 1 + months) % 12 + 1
    # last day of target month
    if m == 12:
        next_month = date(y + 1, 1, 1)
    else:
        next_month = date(y, m + 1, 1)
    last_day = next_month - timedelta(days=1)
    day = min(start.day, last_day.day)
    return date(y, m, day)


def next_due_date(reset_date: date | None, plan_type: str | None) -> date | None:
    if reset_date is None:
        return None
    months = next((v for k, v in PLAN_MONTHS.items() if fold_text(k) == fold_text(plan_type)), 1)
    return add_months(reset_date, months)


def is_payment_pending(reset_date: date | None, plan_type: str | None, today: date | None = None,
                       grace_days: int = 0) -> bool:
    """A subscriber is pending when no cycle was ever started or the next due date has passed."""
    if reset_date is None:
        return True
    today = today or date.today()
    return today > next_due_date(reset_date, plan_type) + timedelta(days=grace_days)


def visit_stats(appointments, today: date | None = None) -> dict:
    """Profile numbers from a client's appointments: only what already happened counts."""
    today = today or date.today()
    history = [a for a in appointments if (parse_date_or_none(a.date) or date.max) <= today]
    days = {parse_date_or_none(a.date) for a in history}
    total_spent = sum(a.value or 0.0 for a in history)
    return {
        "visit_count": len(days),
        "total_spent": total_spent,
        "average_ticket": total_spent / len(days) if days else 0.0,
        "last_visit": max(days) if days else None,
    }


def plan_stats(subscribers, today: date | None = None, grace_days: int = 0) -> dict:
    active = [c for c in subscribers if fold_text(c.plan_type) != fold_text(PLAN_PAUSED)]
    pending = [
        c for c in subscribers
        if is_payment_pending(c.manual_reset_date, c.plan_type, today=today, grace_days=grace_days)
    ]
    return {
        "active": len(active),
        "pending": len(pending),
        "mrr": sum(c.plan_price or 0.0 for c in subscribers),
    }


def break_slot_defaults() -> dict:
    return {
        "client": PAUSE_CLIENT,
        "service": BREAK_SERVICE,
        "value": 0.0,
        "payment_method": PAY_COURTESY,
        "observations": BREAK_OBSERVATIONS,
    }


def validate_client_inputs(name: str, plan_type: str, cycle_limit, plan_price, manual_reset_date: str | None) -> list[str]:
    errors: list[str] = []
    if not (name or "").strip():
        errors.append("Client name is required.")
    elif fold_text(name).strip() == fold_text(PAUSE_CLIENT):
        errors.append(f"'{PAUSE_CLIENT}' is reserved for breaks.")
    if plan_type not in PLAN_TYPES:
        errors.append("Unknown plan type.")
    try:
        if int(cycle_limit) < 0:
            errors.append("Cycle limit cannot be negative.")
    except (TypeError, ValueError):
        errors.append("Cycle limit must be a whole number.")
    if str(plan_price or "").strip() and parse_money(plan_price) is None:
        errors.append("Plan price must be numeric.")
    if manual_reset_date and parse_date_or_none(manual_reset_date) is None:
        errors.append("Reset date must be a valid ISO date (YYYY-MM-DD).")
    return errors


def validate_appointment_inputs(client: str, appt_date: str, value) -> list[str]:
    errors: list[str] = []
    if not (client or "").strip():
        errors.append("Client is required.")
    try:
        parse_iso(appt_date)
    except (TypeError, ValueError):
        errors.append("Date must be a valid ISO date (YYYY-MM-DD).")
    amount = parse_money(value)
    if amount is None:
        errors.append("Value must be numeric.")
    elif amount < 0:
        errors.append("Value cannot be negative.")
    return errors


def rows_to_csv_bytes(rows) -> bytes:
    df = pd.DataFrame([dict(r) for r in rows])
    return df.to_csv(index=False).encode("utf-8")


def revenue_summary_by_month() -> pd.DataFrame:
    rows = db.fetch_all(
        """
        SELECT substr(date, 1, 7) AS month, SUM(value) AS revenue, COUNT(DISTINCT date || fold(client)) AS visits
        FROM appointments
        WHERE fold(client) != ?
        GROUP BY substr(date, 1, 7)
        ORDER BY month DESC
        """,
        (fold_text(PAUSE_CLIENT),),
    )
    df = pd.DataFrame([dict(r) for r in rows])
    if df.empty:
        return pd.DataFrame(columns=["month", "revenue", "visits"])
    return df


def insert_sample_data() -> None:
    """
    Insert 3 clients and a few weeks of appointments (safe to run multiple times:
    existing client names are skipped, appointments are added each run).
    """
    today = date.today()
    cycle_start = today - timedelta(days=21)

    clients = [
        ("ANA", "11900000001", PLAN_MONTHLY, 4, cycle_start.isoformat(), 120.0, None, None, None),
        ("BRUNO", "11900000002", PLAN_ANNUAL, 0, (today - timedelta(days=90)).isoformat(), 1200.0, None, None, None),
        ("CARLOS", "11900000003", PLAN_NONE, 0, None, None, "CORTE", 50.0, PAY_PIX),
        ("DIEGO", "11900000004", PLAN_PAUSED, 4, None, 120.0, "CORTE + BARBA", 80.0, PAY_PIX),
    ]
    db.executemany(
        """
        INSERT OR IGNORE INTO clients(name, phone, plan_type, cycle_limit, manual_reset_date, plan_price,
            preset_service, preset_value, preset_payment)
        VALUES(?,?,?,?,?,?,?,?,?)
        """,
        clients,
    )

    week = timedelta(days=7)
    appointments = [
        (cycle_start.isoformat(), "09:00", "ANA", RENEWAL_LABEL, None, 120.0, PAY_PIX),
        ((cycle_start + week).isoformat(), "09:00", "ANA", "2 DIA", None, 0.0, PAY_PLAN),
        ((cycle_start + 2 * week).isoformat(), "09:00", "ANA", "3 DIA", None, 0.0, PAY_PLAN),
        ((today - timedelta(days=3)).isoformat(), "14:00", "CARLOS", "CORTE", None, 50.0, PAY_PIX),
        (today.isoformat(), "12:00", PAUSE_CLIENT, BREAK_SERVICE, BREAK_OBSERVATIONS, 0.0, PAY_COURTESY),
    ]
    db.executemany(
        """
        INSERT INTO appointments(date, time, client, service, observations, value, payment_method)
        VALUES(?,?,?,?,?,?,?)
        """,
        appointments,
    )
