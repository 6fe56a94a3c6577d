"""Pending -> Active | Cancelled transitions for a subscription.

Every notification path (S2S callback, authenticated verify, public verify)
ends up in ``apply_result``. The transition is a pure function of the stored
status and the gateway outcome, and it is written with a compare-and-swap on
``status = 'Pending'``, so duplicated, late or concurrent notifications settle
on exactly one outcome. Nothing ever leaves Active or Cancelled, and an
account never holds more than one Active subscription.
"""

from __future__ import annotations

import calendar
import logging
from datetime import datetime, timezone

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from matrimony_pay.core.exceptions import BillingError, NotFound
from matrimony_pay.models import Subscription, SubscriptionStatus, User
from matrimony_pay.services.gateway import GatewayResult

logger = logging.getLogger(__name__)

PENDING = SubscriptionStatus.PENDING.value
ACTIVE = SubscriptionStatus.ACTIVE.value
CANCELLED = SubscriptionStatus.CANCELLED.value

MAX_CAS_ATTEMPTS = 3


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def add_months(dt: datetime, months: int) -> datetime:
    """Calendar month arithmetic; the day is clamped to the target month's length."""
    month_index = dt.month - 1 + months
    year = dt.year + month_index // 12
    month = month_index % 12 + 1
    day = min(dt.day, calendar.monthrange(year, month)[1])
    return dt.replace(year=year, month=month, day=day)


def payment_status(sub: Subscription) -> tuple[str, str]:
    """(paymentStatus, code) reported to clients for a stored subscription."""
    if sub.status == ACTIVE:
        return "COMPLETED", "PAYMENT_SUCCESS"
    if sub.status == CANCELLED and sub.refund_due:
        return "FAILED", "DUPLICATE_SUBSCRIPTION"
    if sub.status == CANCELLED:
        return "FAILED", "PAYMENT_FAILED"
    return "PENDING", "PAYMENT_PENDING"


def get_by_order_id(db: Session, order_id: str) -> Subscription | None:
    return db.scalar(
        select(Subscription)
        .where(Subscription.order_id == order_id)
        .execution_options(populate_existing=True)
    )


def _other_active(db: Session, sub: Subscription) -> Subscription | None:
    return db.scalar(
        select(Subscription)
        .where(Subscription.user_id == sub.user_id)
        .where(Subscription.status == ACTIVE)
        .where(Subscription.order_id != sub.order_id)
    )


def _activate(db: Session, sub: Subscription, now: datetime) -> bool:
    end_date = add_months(now, sub.duration_months)

    # entitlement first: if the flip below loses the race, the rollback undoes it
    db.execute(
        update(User)
        .where(User.id == sub.user_id)
        .values(membership_type=sub.plan_type, membership_expiry=end_date)
        .execution_options(synchronize_session=False)
    )
    res = db.execute(
        update(Subscription)
        .where(Subscription.order_id == sub.order_id)
        .where(Subscription.status == PENDING)
        .values(status=ACTIVE, start_date=now, end_date=end_date)
        .execution_options(synchronize_session=False)
    )
    return res.rowcount == 1


def _cancel(db: Session, sub: Subscription, refund_due: bool = False) -> bool:
    res = db.execute(
        update(Subscription)
        .where(Subscription.order_id == sub.order_id)
        .where(Subscription.status == PENDING)
        .values(status=CANCELLED, refund_due=refund_due)
        .execution_options(synchronize_session=False)
    )
    return res.rowcount == 1


def apply_result(
    db: Session,
    order_id: str,
    result: GatewayResult,
    now: datetime | None = None,
) -> Subscription:
    """Apply a gateway outcome and return the persisted subscription.

    Raises NotFound if no subscription carries ``order_id``; the record is
    never created here.

    A successful payment for an account that already holds another Active
    subscription is cancelled with ``refund_due`` set; the existing
    entitlement is left untouched.
    """
    if result.order_id != order_id:
        raise ValueError(f"Gateway result is for {result.order_id!r}, expected {order_id!r}")

    for _ in range(MAX_CAS_ATTEMPTS):
        sub = get_by_order_id(db, order_id)
        if sub is None:
            raise NotFound(f"No subscription for order {order_id}")

        if sub.status != PENDING:
            if result.is_success is not None and (sub.status == ACTIVE) != result.is_success:
                logger.warning(
                    "Ignoring %s for order %s: already %s",
                    result.raw_state,
                    order_id,
                    sub.status,
                )
            return sub

        if result.is_success is None:
            # gateway has no definitive answer yet
            return sub

        if result.is_success and result.amount is not None and result.amount != sub.price:
            logger.warning(
                "Order %s paid amount %s differs from price %s",
                order_id,
                result.amount,
                sub.price,
            )

        duplicate = None
        try:
            if result.is_success:
                duplicate = _other_active(db, sub)
                if duplicate is not None:
                    won = _cancel(db, sub, refund_due=True)
                else:
                    won = _activate(db, sub, now or _utcnow())
            else:
                won = _cancel(db, sub)

            if won:
                db.commit()
                if duplicate is not None:
                    logger.warning(
                        "Order %s paid while order %s is Active; cancelled and flagged for refund",
                        order_id,
                        duplicate.order_id,
                    )
                else:
                    logger.info(
                        "Subscription %s order=%s -> %s",
                        sub.id,
                        order_id,
                        ACTIVE if result.is_success else CANCELLED,
                    )
                return get_by_order_id(db, order_id)

            db.rollback()
        except IntegrityError:
            # another order of this account became Active first
            db.rollback()
        except Exception:
            db.rollback()
            raise

        logger.info("Order %s changed concurrently, re-reading", order_id)

    raise BillingError(f"Could not settle order {order_id}")
