"""
app.py
Streamlit Barbershop Dashboard (agenda, clients, plans).
Run: streamlit run app.py
"""

from __future__ import annotations

from datetime import date, timedelta
import pandas as pd
import streamlit as st

import cycle
import db
import store
import utils
from config import get_config
from logging_config import get_logger, setup_logging
from models import (
    PAUSE_CLIENT,
    PAYMENT_METHODS,
    PLAN_NONE,
    PLAN_PAUSED,
    PLAN_TYPES,
    PRESET_PAYMENT_METHODS,
    UNDEFINED_SERVICE,
    Preset,
)

CONFIG = get_config()
logger = get_logger(__name__)

st.set_page_config(page_title=CONFIG.APP_TITLE, layout="wide")

APPOINTMENTS = store.AppointmentStore()
CLIENTS = store.ClientDirectory()

NEW_CLIENT = "(new / walk-in)"


@st.cache_resource
def init_once():
    setup_logging(CONFIG)
    db.init_db()


def money(value) -> str:
    return utils.format_money(value, CONFIG.CURRENCY)


def autofill(client_name: str, day: date, form: dict) -> dict:
    """
    Run the cycle engine for a booking and overlay its defaults on `form`.
    On a store failure the form is returned untouched and the error is shown.
    """
    try:
        defaults = cycle.booking_autofill(
            client_name, day, CLIENTS, APPOINTMENTS,
            treat_failure_as_new=CONFIG.TREAT_LOOKUP_FAILURE_AS_NEW,
        )
    except store.LookupFailure as e:
        logger.warning("Autofill unavailable for %s: %s", client_name, e)
        st.session_state.autofill_error = "Could not read the client's history. Fill the fields manually."
        return form
    st.session_state.autofill_error = None
    return cycle.apply_defaults(form, defaults)


# ---------- Dashboard ----------

def dashboard_page():
    st.header("📊 Dashboard")

    today = date.today()
    month_start = today.replace(day=1).isoformat()
    month_end = (today.replace(day=28) + timedelta(days=4)).replace(day=1).isoformat()  # next month start
    monthly_rev = db.fetch_one(
        "SELECT COALESCE(SUM(value),0) AS s FROM appointments WHERE date >= ? AND date < ? AND fold(client) != fold(?)",
        (month_start, month_end, PAUSE_CLIENT),
    )["s"]

    todays = [a for a in store.list_appointments(today.isoformat()) if not a.is_break]
    subscribers = store.list_subscribers()
    stats = utils.plan_stats(subscribers, today=today, grace_days=CONFIG.PENDING_GRACE_DAYS)

    c1, c2, c3, c4 = st.columns(4)
    c1.metric("Appointments today", len(todays))
    c2.metric("Revenue (current month)", money(monthly_rev))
    c3.metric("Active subscribers", stats["active"])
    c4.metric("Renewals pending", stats["pending"])

    st.divider()

    st.subheader("Today")
    if todays:
        st.dataframe(
            pd.DataFrame([{"time": a.time, "client": a.client, "service": a.service, "value": a.value}
                          for a in todays]),
            use_container_width=True,
            hide_index=True,
        )
    else:
        st.caption("No appointments today.")


# ---------- Agenda ----------

def _booking_form_state() -> dict:
    return {
        "service": st.session_state.book_service,
        "payment_method": st.session_state.book_payment,
        "value": st.session_state.book_value,
    }


def _write_booking_form(form: dict) -> None:
    st.session_state.book_service = form.get("service") or ""
    method = form.get("payment_method")
    st.session_state.book_payment = method if method in PAYMENT_METHODS else PAYMENT_METHODS[0]
    st.session_state.book_value = float(form.get("value") or 0.0)


def _on_book_client_change():
    name = st.session_state.book_client
    if name == NEW_CLIENT:
        return
    _write_booking_form(autofill(name, st.session_state.agenda_day, _booking_form_state()))


def _on_procedure_change():
    chosen = st.session_state.book_procedure
    for p in store.list_procedures():
        if p["name"] == chosen:
            st.session_state.book_service = p["name"]
            if p["price"] is not None:
                st.session_state.book_value = float(p["price"])


def _on_mark_break():
    slot = utils.break_slot_defaults()
    st.session_state.book_break = True
    st.session_state.book_service = slot["service"]
    st.session_state.book_payment = slot["payment_method"]
    st.session_state.book_value = slot["value"]
    st.session_state.book_observations = slot["observations"]


def booking_form(day: date):
    st.subheader("➕ New appointment")

    st.session_state.setdefault("book_service", "")
    st.session_state.setdefault("book_payment", PAYMENT_METHODS[0])
    st.session_state.setdefault("book_value", 0.0)
    st.session_state.setdefault("book_observations", "")
    st.session_state.setdefault("book_break", False)

    names = [c.name for c in store.list_clients()]
    procedures = store.list_procedures()

    col1, col2, col3 = st.columns(3)
    with col1:
        time = st.time_input("Time", value=None, step=timedelta(minutes=20))
        st.selectbox("Client", [NEW_CLIENT] + names, key="book_client", on_change=_on_book_client_change,
                     disabled=st.session_state.book_break)
        walk_in = ""
        if st.session_state.book_client == NEW_CLIENT and not st.session_state.book_break:
            walk_in = st.text_input("Client name")
    with col2:
        st.selectbox("Procedure", ["—"] + [p["name"] for p in procedures], key="book_procedure",
                     on_change=_on_procedure_change)
        st.text_input("Service", key="book_service")
        st.number_input("Value", min_value=0.0, step=5.0, key="book_value")
    with col3:
        st.selectbox("Payment", PAYMENT_METHODS, key="book_payment")
        st.text_input("Observations", key="book_observations")
        st.button("Mark as break", on_click=_on_mark_break)

    if st.session_state.get("autofill_error"):
        st.warning(st.session_state.autofill_error)

    if st.session_state.book_break:
        client = utils.break_slot_defaults()["client"]
    elif st.session_state.book_client == NEW_CLIENT:
        client = walk_in
    else:
        client = st.session_state.book_client

    errors = utils.validate_appointment_inputs(client, day.isoformat(), st.session_state.book_value)
    if st.button("Book", type="primary", disabled=bool(errors)):
        store.add_appointment(
            day.isoformat(),
            time.strftime("%H:%M") if time else None,
            client,
            st.session_state.book_service,
            float(st.session_state.book_value),
            st.session_state.book_payment,
            st.session_state.book_observations,
        )
        for key in ("book_service", "book_payment", "book_value", "book_observations", "book_break",
                    "book_client", "book_procedure"):
            st.session_state.pop(key, None)
        st.success("Appointment booked.")
        st.rerun()


def appointment_row_editor(appt):
    """Inline editor for one agenda row; changing the client re-runs autofill for that day."""
    label = f"{appt.time or '--:--'}  {appt.client}  ·  {appt.service}  ·  {money(appt.value)}"
    with st.expander(label):
        c1, c2, c3, c4 = st.columns([2, 2, 1, 1])
        with c1:
            client = st.text_input("Client", value=appt.client, key=f"row_client_{appt.id}")
        with c2:
            service = st.text_input("Service", value=appt.service, key=f"row_service_{appt.id}")
        with c3:
            value = st.number_input("Value", value=float(appt.value), min_value=0.0, key=f"row_value_{appt.id}")
        with c4:
            method = st.selectbox(
                "Payment",
                PAYMENT_METHODS,
                index=PAYMENT_METHODS.index(appt.payment_method) if appt.payment_method in PAYMENT_METHODS else 0,
                key=f"row_payment_{appt.id}",
            )

        b1, b2, b3 = st.columns(3)
        with b1:
            if st.button("Save", key=f"row_save_{appt.id}"):
                fields = {"client": client.strip().upper(), "service": service.strip() or UNDEFINED_SERVICE,
                          "value": value, "payment_method": method}
                if client.strip().upper() != appt.client.upper():
                    day = utils.parse_date_or_none(appt.date) or date.today()
                    form = autofill(client, day, {"service": fields["service"],
                                                  "payment_method": method, "value": value})
                    fields.update(service=form["service"], payment_method=form["payment_method"],
                                  value=form["value"])
                store.update_appointment(appt.id, **fields)
                st.rerun()
        with b3:
            confirm = st.checkbox("Confirm delete", value=False, key=f"row_del_confirm_{appt.id}")
            if st.button("Delete", key=f"row_del_{appt.id}", disabled=not confirm):
                store.delete_appointment(appt.id)
                st.success("Appointment deleted.")
                st.rerun()


def agenda_page():
    st.header("📅 Agenda")

    with st.sidebar:
        st.subheader("Day")
        st.date_input("Date", value=date.today(), key="agenda_day")

    day = st.session_state.agenda_day
    rows = store.list_appointments(day.isoformat())
    if rows:
        for appt in rows:
            appointment_row_editor(appt)
    else:
        st.caption("No appointments on this day.")

    st.divider()
    booking_form(day)


# ---------- Clients ----------

def client_form(existing=None):
    if existing:
        st.subheader(f"✏️ Plan & details ({existing.name})")
    else:
        st.subheader("➕ Add client")

    col1, col2, col3 = st.columns(3)
    with col1:
        name = st.text_input("Name", value=(existing.name if existing else ""))
        phone = st.text_input("Phone", value=(existing.phone or "" if existing else ""))
    with col2:
        current_plan = existing.plan_type if existing and existing.plan_type in PLAN_TYPES else PLAN_NONE
        plan_type = st.selectbox("Plan", PLAN_TYPES, index=PLAN_TYPES.index(current_plan))
        cycle_limit = st.number_input("Visits per cycle (0 = unlimited)", min_value=0, step=1,
                                      value=(existing.cycle_limit if existing else 0))
    with col3:
        plan_price = st.text_input("Plan price", value=(str(existing.plan_price or "") if existing else ""))
        reset = st.text_input(
            "Cycle reset date (YYYY-MM-DD)",
            value=(existing.manual_reset_date.isoformat() if existing and existing.manual_reset_date else ""),
        )

    n1, n2 = st.columns(2)
    client_notes = n1.text_area("Client notes", value=(existing.client_notes or "" if existing else ""))
    plan_notes = n2.text_area("Plan notes", value=(existing.plan_notes or "" if existing else ""))

    errors = utils.validate_client_inputs(name, plan_type, cycle_limit, plan_price, reset.strip() or None)
    for e in errors:
        st.error(e)

    if st.button("Save client", type="primary", disabled=bool(errors)):
        try:
            store.save_client(
                name, phone, plan_type, int(cycle_limit), reset.strip() or None, utils.parse_money(plan_price),
                client_id=(existing.id if existing else None),
                client_notes=client_notes, plan_notes=plan_notes,
            )
        except ValueError as e:
            st.error(str(e))
        else:
            st.success("Client saved.")
            st.rerun()


def preset_editor(client):
    st.subheader("🪄 Preset")
    st.caption("Used to pre-fill bookings when the client has no active plan.")
    preset = client.preset or Preset()
    c1, c2, c3 = st.columns(3)
    with c1:
        service = st.text_input("Default service", value=preset.service or "", key="preset_service")
    with c2:
        value = st.text_input("Default value", value=("" if preset.value is None else str(preset.value)),
                              key="preset_value")
    with c3:
        payment = st.selectbox(
            "Default payment",
            ["—"] + PRESET_PAYMENT_METHODS,
            index=(PRESET_PAYMENT_METHODS.index(preset.payment) + 1 if preset.payment in PRESET_PAYMENT_METHODS else 0),
            key="preset_payment",
        )

    b1, b2 = st.columns(2)
    with b1:
        if st.button("Save preset"):
            store.save_preset(client.id, Preset(
                service=service.strip() or None,
                value=utils.parse_money(value),
                payment=None if payment == "—" else payment,
            ))
            st.rerun()
    with b2:
        if client.preset and st.button("Clear preset"):
            store.save_preset(client.id, None)
            st.rerun()


def client_profile(client):
    today = date.today()
    history = store.client_appointments(client.name)
    stats = utils.visit_stats(history, today=today)

    c1, c2, c3, c4 = st.columns(4)
    c1.metric("Visits", stats["visit_count"])
    c2.metric("Total spent", money(stats["total_spent"]))
    c3.metric("Average ticket", money(stats["average_ticket"]))
    c4.metric("Last visit", stats["last_visit"].isoformat() if stats["last_visit"] else "—")

    if client.has_cycle:
        try:
            usage = cycle.plan_usage(client, today, APPOINTMENTS)
        except store.LookupFailure:
            st.error("Could not read plan usage.")
        else:
            limit = usage.limit if usage.limit else "∞"
            st.write(f"Plan **{client.plan_type}** | Used **{usage.used} / {limit}** in the current cycle")
            st.progress(usage.pct / 100)
            if usage.over:
                st.warning("Cycle limit reached: the next booking will be a renewal.")
        if st.button("Reset cycle today"):
            store.reset_cycle(client.id, today)
            st.rerun()

    st.divider()
    client_form(existing=client)
    st.divider()
    preset_editor(client)
    st.divider()

    st.subheader("History")
    if history:
        st.dataframe(
            pd.DataFrame([{"date": a.date, "time": a.time, "service": a.service, "value": a.value,
                           "payment": a.payment_method} for a in history]),
            use_container_width=True,
            hide_index=True,
        )
    else:
        st.caption("No appointments yet.")

    confirm = st.checkbox("Confirm delete", value=False, key="client_del_confirm")
    if st.button("Delete client", disabled=not confirm):
        store.delete_client(client.id)
        st.session_state.profile_client_id = None
        st.success("Client deleted.")
        st.rerun()


def clients_page():
    st.header("👥 Clients")

    with st.sidebar:
        st.subheader("Search")
        search = st.text_input("Search (name/phone)")

    clients = store.list_clients(search=search)
    df = pd.DataFrame([{"id": c.id, "name": c.name, "phone": c.phone, "plan": c.plan_type,
                        "limit": c.cycle_limit, "reset": c.manual_reset_date, "price": c.plan_price}
                       for c in clients])
    st.dataframe(df, use_container_width=True, hide_index=True)

    st.divider()

    options = {c.name: c.id for c in clients}
    selected = st.selectbox("Open profile", ["(none)"] + list(options.keys()))
    if selected != "(none)":
        client = store.get_client(options[selected])
        if client:
            client_profile(client)
    else:
        client_form(existing=None)


# ---------- Plans ----------

def plans_page():
    st.header("👑 Plans")

    today = date.today()
    subscribers = store.list_subscribers()
    stats = utils.plan_stats(subscribers, today=today, grace_days=CONFIG.PENDING_GRACE_DAYS)

    c1, c2, c3 = st.columns(3)
    c1.metric("Active", stats["active"])
    c2.metric("Pending", stats["pending"])
    c3.metric("MRR", money(stats["mrr"]))

    st.divider()

    if not subscribers:
        st.info("No subscribers yet. Set a plan on a client profile.")
        return

    for c in subscribers:
        with st.container(border=True):
            col1, col2, col3 = st.columns([2, 3, 2])
            with col1:
                st.markdown(f"**{c.name}** · {c.plan_type} · {money(c.plan_price)}")
                reset = c.manual_reset_date.isoformat() if c.manual_reset_date else "never"
                pending = utils.is_payment_pending(c.manual_reset_date, c.plan_type, today=today,
                                                   grace_days=CONFIG.PENDING_GRACE_DAYS)
                st.caption(f"Last reset: {reset}" + (" · ⚠️ pending" if pending else ""))
            with col2:
                try:
                    usage = cycle.plan_usage(c, today, APPOINTMENTS)
                except store.LookupFailure:
                    st.caption("usage unavailable")
                else:
                    limit = usage.limit if usage.limit else "∞"
                    st.caption(f"{usage.used} / {limit} ({usage.pct}%)")
                    st.progress(usage.pct / 100)
            with col3:
                b1, b2 = st.columns(2)
                with b1:
                    if st.button("Reset", key=f"plan_reset_{c.id}"):
                        store.reset_cycle(c.id, today)
                        st.rerun()
                with b2:
                    toggle = "Resume" if c.plan_type == PLAN_PAUSED else "Pause"
                    if st.button(toggle, key=f"plan_toggle_{c.id}"):
                        store.toggle_pause(c)
                        st.rerun()


# ---------- Procedures ----------

def procedures_page():
    st.header("✂️ Procedures")

    procedures = store.list_procedures()
    st.dataframe(pd.DataFrame(procedures, columns=["id", "name", "price"]), use_container_width=True, hide_index=True)

    st.subheader("Add / update")
    c1, c2 = st.columns(2)
    with c1:
        name = st.text_input("Name")
    with c2:
        price = st.text_input("Price", value="")
    if st.button("Save procedure", type="primary", disabled=not name.strip()):
        store.save_procedure(name, utils.parse_money(price))
        st.success("Procedure saved.")
        st.rerun()

    if procedures:
        options = {p["name"]: p["id"] for p in procedures}
        chosen = st.selectbox("Remove", list(options.keys()))
        if st.button("Delete procedure"):
            store.delete_procedure(options[chosen])
            st.rerun()


# ---------- Reports ----------

def reports_page():
    st.header("🧾 Reports")

    st.subheader("Export clients to CSV")
    clients = db.fetch_all("SELECT * FROM clients ORDER BY name COLLATE NOCASE ASC")
    if clients:
        st.download_button(
            "Download clients.csv",
            data=utils.rows_to_csv_bytes(clients),
            file_name="clients.csv",
            mime="text/csv",
        )
    else:
        st.caption("No clients to export.")

    st.divider()

    st.subheader("Export appointments to CSV")
    appointments = db.fetch_all("SELECT * FROM appointments ORDER BY date DESC, time DESC")
    if appointments:
        st.download_button(
            "Download appointments.csv",
            data=utils.rows_to_csv_bytes(appointments),
            file_name="appointments.csv",
            mime="text/csv",
        )
    else:
        st.caption("No appointments to export.")

    st.divider()

    st.subheader("Revenue summary by month")
    df = utils.revenue_summary_by_month()
    st.dataframe(df, use_container_width=True, hide_index=True)


def settings_page():
    st.header("⚙️ Settings")

    st.write(f"Database: `{db.DB_FILE}`")
    st.write(f"Treat lookup failures as new clients: **{CONFIG.TREAT_LOOKUP_FAILURE_AS_NEW}**")

    st.divider()

    st.subheader("Sample data")
    st.caption("Insert sample clients + appointments for testing (appointments are added each run).")
    if st.button("Insert sample data"):
        utils.insert_sample_data()
        st.success("Sample data inserted.")
        st.rerun()


def main_app():
    st.sidebar.title("💈 " + CONFIG.APP_TITLE)

    pages = ["Dashboard", "Agenda", "Clients", "Plans", "Procedures", "Reports", "Settings"]
    if "page" not in st.session_state:
        st.session_state.page = "Dashboard"
    st.session_state.page = st.sidebar.radio("Navigate", pages, index=pages.index(st.session_state.page))

    if st.session_state.page == "Dashboard":
        dashboard_page()
    elif st.session_state.page == "Agenda":
        agenda_page()
    elif st.session_state.page == "Clients":
        clients_page()
    elif st.session_state.page == "Plans":
        plans_page()
    elif st.session_state.page == "Procedures":
        procedures_page()
    elif st.session_state.page == "Reports":
        reports_page()
    elif st.session_state.page == "Settings":
        settings_page()


# --------- App entry ---------

def run():
    init_once()
    main_app()


if __name__ == "__main__":
    run()
