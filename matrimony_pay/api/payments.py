from __future__ import annotations

import logging
from typing import Mapping

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from matrimony_pay.api.deps import get_current_user, get_db, get_gateway_client
from matrimony_pay.core.exceptions import GatewayError, NotFound
from matrimony_pay.models import Subscription, SubscriptionStatus, User
from matrimony_pay.schemas.payments import (
    CallbackOut,
    CreateOrderIn,
    CreateOrderOut,
    HistoryOut,
    SubscriptionOut,
    VerifyOut,
)
from matrimony_pay.services import billing, plans
from matrimony_pay.services.gateway import PaymentGatewayClient
from matrimony_pay.services.subscriptions import apply_result, get_by_order_id, payment_status

router = APIRouter()
logger = logging.getLogger(__name__)


def _reconcile(db: Session, client: PaymentGatewayClient, sub: Subscription) -> Subscription:
    """Ask the gateway about a Pending order and feed the answer to the state machine."""
    if sub.status != SubscriptionStatus.PENDING.value:
        return sub
    result = client.query_status(sub.order_id)
    return apply_result(db, sub.order_id, result)


def _verify_out(sub: Subscription) -> VerifyOut:
    status, code = payment_status(sub)
    return VerifyOut(
        payment_status=status,
        code=code,
        subscription=SubscriptionOut.model_validate(sub),
    )


@router.post("/create-order", response_model=CreateOrderOut)
def create_payment_order(
    payload: CreateOrderIn,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    client: PaymentGatewayClient = Depends(get_gateway_client),
):
    months = plans.parse_duration(payload.duration)
    sub, created = billing.create_order(db, client, user, payload.plan_type, months)
    return CreateOrderOut(order_id=sub.order_id, payment_url=created.redirect_url)


def _settle_callback(
    db: Session,
    client: PaymentGatewayClient,
    body: bytes,
    headers: Mapping[str, str],
) -> CallbackOut:
    reported = client.decode_callback(body, headers)
    logger.info("Callback for order %s reports %s", reported.order_id, reported.raw_state)

    sub = get_by_order_id(db, reported.order_id)
    if sub is None:
        raise NotFound(f"No subscription for order {reported.order_id}")

    # the callback body is only a hint; the status query is authoritative
    sub = _reconcile(db, client, sub)
    if sub.status == SubscriptionStatus.PENDING.value:
        # non-2xx keeps the gateway retrying until the outcome is recorded
        raise GatewayError(f"Outcome of order {sub.order_id} not yet final", retryable=True)

    status, code = payment_status(sub)
    return CallbackOut(order_id=sub.order_id, payment_status=status, code=code)


@router.post("/callback", response_model=CallbackOut)
async def payment_callback(
    request: Request,
    db: Session = Depends(get_db),
    client: PaymentGatewayClient = Depends(get_gateway_client),
):
    """Server-to-server notification. Public: the outcome is re-verified with the gateway.

    Answers 200 only once the outcome is committed; the gateway retries on
    anything else.
    """
    body = await request.body()
    return await run_in_threadpool(_settle_callback, db, client, body, dict(request.headers))


@router.get("/verify/{order_id}", response_model=VerifyOut)
def verify_payment(
    order_id: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    client: PaymentGatewayClient = Depends(get_gateway_client),
):
    sub = get_by_order_id(db, order_id)
    if sub is None or sub.user_id != user.id:
        raise NotFound(f"No subscription for order {order_id}")
    return _verify_out(_reconcile(db, client, sub))


@router.get("/verify-public/{order_id}", response_model=VerifyOut)
def verify_payment_public(
    order_id: str,
    db: Session = Depends(get_db),
    client: PaymentGatewayClient = Depends(get_gateway_client),
):
    """Post-redirect polling from the payment result page (no session available there)."""
    sub = get_by_order_id(db, order_id)
    if sub is None:
        raise NotFound(f"No subscription for order {order_id}")
    return _verify_out(_reconcile(db, client, sub))


@router.get("/history", response_model=HistoryOut)
def payment_history(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    subs = billing.list_subscriptions(db, user.id)
    return HistoryOut(subscriptions=[SubscriptionOut.model_validate(s) for s in subs])
