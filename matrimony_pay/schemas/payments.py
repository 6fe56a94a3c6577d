from __future__ import annotations

import uuid
from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class CreateOrderIn(CamelModel):
    plan_type: Literal["Premium", "Premium Plus"]
    duration: Literal["1 month", "3 months", "6 months", "12 months"]


class CreateOrderOut(CamelModel):
    success: bool = True
    message: str = "Payment order created successfully"
    order_id: str
    payment_url: str


class SubscriptionOut(CamelModel):
    id: uuid.UUID
    plan_type: str
    duration_months: int
    price: int
    currency: str
    order_id: str
    status: str
    start_date: datetime
    end_date: datetime | None = None
    refund_due: bool = False
    features: dict
    created_at: datetime | None = None


class VerifyOut(CamelModel):
    success: bool = True
    payment_status: str
    code: str
    subscription: SubscriptionOut


class CallbackOut(CamelModel):
    success: bool = True
    order_id: str
    payment_status: str
    code: str


class HistoryOut(CamelModel):
    success: bool = True
    subscriptions: list[SubscriptionOut]
