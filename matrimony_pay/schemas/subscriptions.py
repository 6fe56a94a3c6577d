from __future__ import annotations

from datetime import datetime

from matrimony_pay.schemas.payments import CamelModel


class PlanOut(CamelModel):
    plan_type: str
    duration: str
    duration_months: int
    price: int
    amount_minor_units: int
    features: dict


class PlansOut(CamelModel):
    success: bool = True
    plans: list[PlanOut]


class MembershipOut(CamelModel):
    has_active: bool
    plan_type: str | None = None
    ends_at: datetime | None = None
    remaining_days: int = 0
    features: dict | None = None
