from __future__ import annotations

import logging
from datetime import datetime, timezone
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from matrimony_pay.core.exceptions import ConflictError
from matrimony_pay.models import Subscription, SubscriptionStatus, User
from matrimony_pay.services import plans
from matrimony_pay.services.gateway import OrderCreated, PaymentGatewayClient, PurchaseRequest
from matrimony_pay.services.order_id import OrderIdGenerator
from matrimony_pay.services.subscriptions import apply_result

logger = logging.getLogger(__name__)

ORDER_ID_ATTEMPTS = 3


def get_active_subscription(db: Session, user_id: UUID) -> Subscription | None:
    return db.scalar(
        select(Subscription)
        .where(Subscription.user_id == user_id)
        .where(Subscription.status == SubscriptionStatus.ACTIVE.value)
        .order_by(Subscription.end_date.desc())
    )


def list_pending(db: Session, user_id: UUID) -> list[Subscription]:
    return list(
        db.scalars(
            select(Subscription)
            .where(Subscription.user_id == user_id)
            .where(Subscription.status == SubscriptionStatus.PENDING.value)
            .order_by(Subscription.created_at)
        ).all()
    )


def settle_open_orders(db: Session, client: PaymentGatewayClient, user_id: UUID) -> Subscription | None:
    """Ask the gateway about the account's Pending orders; return the Active one, if any.

    A user who paid in another tab must not be able to open a second order
    just because the first one was never reconciled.
    """
    for sub in list_pending(db, user_id):
        apply_result(db, sub.order_id, client.query_status(sub.order_id))
    return get_active_subscription(db, user_id)


def _persist_pending(
    db: Session,
    user: User,
    plan_type: str,
    duration_months: int,
    price: int,
    gateway: str,
    order_ids: OrderIdGenerator,
) -> Subscription:
    attempt = 1
    while True:
        sub = Subscription(
            user_id=user.id,
            plan_type=plan_type,
            duration_months=duration_months,
            price=price,
            currency="INR",
            order_id=order_ids.new_order_id(),
            gateway=gateway,
            status=SubscriptionStatus.PENDING.value,
            start_date=datetime.now(timezone.utc),
            end_date=None,
            features=plans.features_for(plan_type),
        )
        db.add(sub)
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            if attempt >= ORDER_ID_ATTEMPTS:
                raise
            logger.warning("Order id collision for %s, regenerating", sub.order_id)
            attempt += 1
            continue
        db.refresh(sub)
        return sub


def create_order(
    db: Session,
    client: PaymentGatewayClient,
    user: User,
    plan_type: str,
    duration_months: int,
    order_ids: OrderIdGenerator | None = None,
) -> tuple[Subscription, OrderCreated]:
    """Persist a Pending subscription, then open the order at the gateway.

    Older Pending orders of the account are reconciled first; if one of them
    turns out to be paid the new order is refused. The row is committed
    before any network call so a crash or gateway error leaves a Pending
    record that later status queries can still settle.
    """
    if get_active_subscription(db, user.id) or settle_open_orders(db, client, user.id):
        raise ConflictError("You already have an active subscription")

    price = plans.price_paise(plan_type, duration_months)
    sub = _persist_pending(
        db,
        user,
        plan_type,
        duration_months,
        price,
        client.variant.value,
        order_ids or OrderIdGenerator(),
    )
    logger.info("Pending subscription %s order=%s user=%s price=%s", sub.id, sub.order_id, user.id, price)

    created = client.create_order(
        PurchaseRequest(
            order_id=sub.order_id,
            amount=price,
            user_id=str(user.id),
            plan_type=plan_type,
            duration_months=duration_months,
            phone=user.phone,
            email=user.email,
            name=user.full_name,
        )
    )
    return sub, created


def list_subscriptions(db: Session, user_id: UUID) -> list[Subscription]:
    return list(
        db.scalars(
            select(Subscription)
            .where(Subscription.user_id == user_id)
            .order_by(Subscription.created_at.desc(), Subscription.start_date.desc())
        ).all()
    )
