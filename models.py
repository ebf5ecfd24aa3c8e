"""
models.py
Lightweight domain helpers (plan types, booking constants, dataclasses).
"""

from __future__ import annotations

import unicodedata
from dataclasses import dataclass
from datetime import date

# Plan types as stored on the client record
PLAN_NONE = "Nenhum"
PLAN_MONTHLY = "Mensal"
PLAN_SEMIANNUAL = "Semestral"
PLAN_ANNUAL = "Anual"
PLAN_PAUSED = "Pausado"

PLAN_TYPES = [PLAN_NONE, PLAN_MONTHLY, PLAN_SEMIANNUAL, PLAN_ANNUAL, PLAN_PAUSED]

# Billing period in months (used for the next due date on the plans page)
PLAN_MONTHS = {
    PLAN_MONTHLY: 1,
    PLAN_SEMIANNUAL: 6,
    PLAN_ANNUAL: 12,
}

# Reserved client value for break/blocked slots; never a client visit
PAUSE_CLIENT = "PAUSA"

RENEWAL_MARKER = "RENOVA"
RENEWAL_LABEL = "RENOVAÇÃO 1 DIA"
VISIT_LABEL = "{n} DIA"

UNDEFINED_SERVICE = "A DEFINIR"
BREAK_SERVICE = "RESERVADO"
BREAK_OBSERVATIONS = "Horário reservado/pausa"

PAY_PIX = "PIX"
PAY_CASH = "DINHEIRO"
PAY_CARD = "CARTÃO"
PAY_COURTESY = "CORTESIA"
PAY_PLAN = "PLANO"

PAYMENT_METHODS = [PAY_PIX, PAY_CASH, PAY_CARD, PAY_COURTESY, PAY_PLAN]
PRESET_PAYMENT_METHODS = [PAY_PIX, PAY_CASH, PAY_CARD, PAY_COURTESY]

DEFAULT_PROCEDURES = {
    "CORTE": 50.0,
    "BARBA": 35.0,
    "CORTE + BARBA": 80.0,
    "SOBRANCELHA": 15.0,
    "PIGMENTAÇÃO": 40.0,
}


def fold_text(value) -> str:
    """Lowercase and strip diacritics ('RENOVAÇÃO' -> 'renovacao'). None -> ''."""
    if value is None:
        return ""
    decomposed = unicodedata.normalize("NFKD", str(value))
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch)).casefold()


def canonical_plan_type(plan_type: str | None) -> str:
    """Map stored spellings ('mensal', 'PAUSADO') to the canonical plan name; unknown values pass through."""
    folded = fold_text(plan_type).strip()
    for known in PLAN_TYPES:
        if fold_text(known) == folded:
            return known
    return (plan_type or "").strip()


def is_cycle_plan(plan_type: str | None) -> bool:
    """True when the plan runs the billing-cycle logic (not empty, 'Nenhum' or 'Pausado')."""
    folded = fold_text(plan_type).strip()
    return bool(folded) and folded not in (fold_text(PLAN_NONE), fold_text(PLAN_PAUSED))


@dataclass(frozen=True)
class Preset:
    service: str | None = None
    value: float | None = None
    payment: str | None = None

    def is_empty(self) -> bool:
        return not (self.service or self.value or self.payment)


@dataclass(frozen=True)
class ClientPlan:
    """The billing-relevant part of a client record."""
    name: str
    plan_type: str = PLAN_NONE
    cycle_limit: int = 0  # 0 = unlimited
    manual_reset_date: date | None = None
    plan_price: float | None = None
    preset: Preset | None = None
    id: int | None = None
    phone: str | None = None
    client_notes: str | None = None
    plan_notes: str | None = None

    @property
    def has_cycle(self) -> bool:
        return is_cycle_plan(self.plan_type)


@dataclass(frozen=True)
class AppointmentRecord:
    id: int | None
    date: str
    time: str | None
    client: str
    service: str
    observations: str | None
    value: float
    payment_method: str

    @property
    def is_break(self) -> bool:
        return fold_text(self.client) == fold_text(PAUSE_CLIENT)


@dataclass(frozen=True)
class CycleWindow:
    start_date: date | None  # None = unbounded
    used_count: int


@dataclass(frozen=True)
class BookingDefaults:
    """What the booking form should pre-fill for a client on a given day."""
    is_renewal: bool
    label: str | None
    payment_method_default: str | None
    value_default: float | None
    source: str  # 'cycle', 'preset' or 'none'
    window: CycleWindow | None = None


@dataclass(frozen=True)
class PlanUsage:
    used: int
    limit: int
    pct: int
    over: bool
