"""
cycle.py
Subscription cycle engine: which visit of the billing cycle a booking is,
whether it is a renewal, and what the booking form should pre-fill.

All dashboard call sites (booking form, agenda row editor, client profile,
plans list) go through this module.
"""

from __future__ import annotations

import logging
from datetime import date, timedelta
from typing import Protocol

from models import (
    PAY_PIX,
    PAY_PLAN,
    RENEWAL_LABEL,
    VISIT_LABEL,
    BookingDefaults,
    ClientPlan,
    CycleWindow,
    PlanUsage,
)
from store import LookupFailure

logger = logging.getLogger(__name__)


class AppointmentQueries(Protocol):
    def find_latest_renewal(self, client_name: str) -> date | None: ...

    def count_distinct_visit_days(self, client_name: str, from_date: date | None, before_date: date) -> int: ...


class ClientLookup(Protocol):
    def find(self, name: str) -> ClientPlan | None: ...


def resolve_cycle_start(client: ClientPlan, store: AppointmentQueries) -> date | None:
    """
    Start of the current cycle: the later of the latest renewal appointment and
    the manual reset date. None means the window is unbounded.

    Raises LookupFailure if the store cannot be read.
    """
    anchor = store.find_latest_renewal(client.name)
    reset = client.manual_reset_date
    if anchor is not None and (reset is None or reset <= anchor):
        return anchor
    return reset


def count_usage(client: ClientPlan, start: date | None, evaluation_date: date, store: AppointmentQueries) -> int:
    """Distinct visit days in [start, evaluation_date)."""
    if start is not None and start >= evaluation_date:
        return 0
    return max(0, store.count_distinct_visit_days(client.name, start, evaluation_date))


def cycle_window(client: ClientPlan, evaluation_date: date, store: AppointmentQueries) -> CycleWindow:
    start = resolve_cycle_start(client, store)
    return CycleWindow(start_date=start, used_count=count_usage(client, start, evaluation_date, store))


def is_renewal(client: ClientPlan, used: int, evaluation_date: date) -> bool:
    # The three rules overlap; any one of them forces a renewal.
    flagged_day = client.manual_reset_date is not None and client.manual_reset_date == evaluation_date
    exhausted = client.cycle_limit > 0 and used >= client.cycle_limit
    first_in_window = used + 1 == 1
    return flagged_day or exhausted or first_in_window


def decide_renewal(client: ClientPlan, window: CycleWindow, evaluation_date: date) -> BookingDefaults:
    renew = is_renewal(client, window.used_count, evaluation_date)
    if renew:
        return BookingDefaults(
            is_renewal=True,
            label=RENEWAL_LABEL,
            payment_method_default=PAY_PIX,
            value_default=client.plan_price or None,
            source="cycle",
            window=window,
        )
    return BookingDefaults(
        is_renewal=False,
        label=VISIT_LABEL.format(n=window.used_count + 1),
        payment_method_default=PAY_PLAN,
        value_default=None,
        source="cycle",
        window=window,
    )


def apply_preset(client: ClientPlan | None) -> BookingDefaults:
    """Defaults for clients without an active cycle: their preset, if any."""
    preset = client.preset if client is not None else None
    if preset is None:
        return BookingDefaults(False, None, None, None, source="none")
    return BookingDefaults(
        is_renewal=False,
        label=preset.service or None,
        payment_method_default=preset.payment or None,
        value_default=preset.value or None,
        source="preset",
    )


def defaults_for_client(client: ClientPlan | None, evaluation_date: date, store: AppointmentQueries,
                        treat_failure_as_new: bool = False) -> BookingDefaults:
    if client is None or not client.has_cycle:
        return apply_preset(client)

    try:
        window = cycle_window(client, evaluation_date, store)
    except LookupFailure:
        if not treat_failure_as_new:
            raise
        logger.warning("Store unavailable, treating %s as a new subscriber", client.name)
        window = CycleWindow(start_date=None, used_count=0)

    defaults = decide_renewal(client, window, evaluation_date)
    logger.debug(
        "[AUTO-FILL] %s on %s: start=%s used=%d limit=%d -> %s",
        client.name, evaluation_date, window.start_date, window.used_count, client.cycle_limit, defaults.label,
    )
    return defaults


def booking_autofill(client_name: str, evaluation_date: date, clients: ClientLookup, store: AppointmentQueries,
                     treat_failure_as_new: bool = False) -> BookingDefaults:
    """
    What to pre-fill when `client_name` is chosen for a booking on `evaluation_date`.

    Raises LookupFailure when the store errors, unless treat_failure_as_new is set.
    Unknown clients get empty defaults.
    """
    client = clients.find(client_name)
    return defaults_for_client(client, evaluation_date, store, treat_failure_as_new)


def apply_defaults(form: dict, defaults: BookingDefaults) -> dict:
    """
    Overlay autofill results on booking form fields (service, payment_method, value).
    A value already set by the caller is kept, except when it comes from a preset.
    """
    updated = dict(form)
    if defaults.label:
        updated["service"] = defaults.label
    if defaults.payment_method_default:
        updated["payment_method"] = defaults.payment_method_default
    if defaults.value_default is not None and (defaults.source == "preset" or not updated.get("value")):
        updated["value"] = defaults.value_default
    return updated


def plan_usage(client: ClientPlan, today: date, store: AppointmentQueries) -> PlanUsage:
    """Usage gauge: visits in the current cycle up to and including today."""
    limit = client.cycle_limit
    if not client.has_cycle:
        return PlanUsage(used=0, limit=limit, pct=0, over=False)

    start = resolve_cycle_start(client, store)
    used = count_usage(client, start, today + timedelta(days=1), store)
    pct = min(round(used / limit * 100), 100) if limit > 0 else 0
    return PlanUsage(used=used, limit=limit, pct=pct, over=limit > 0 and used >= limit)
