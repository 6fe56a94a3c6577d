import pytest
from sqlalchemy import func, select

from matrimony_pay.core.exceptions import ConflictError, GatewayError
from matrimony_pay.models import Subscription, User
from matrimony_pay.services import billing
from matrimony_pay.services.subscriptions import apply_result, get_by_order_id, payment_status


class ScriptedIds:
    def __init__(self, *ids):
        self.ids = list(ids)

    def new_order_id(self):
        return self.ids.pop(0)


def active_count(db, user):
    return db.scalar(
        select(func.count()).select_from(Subscription).where(
            Subscription.user_id == user.id, Subscription.status == "Active"
        )
    )


def test_create_order_persists_pending(db, user, gateway):
    sub, created = billing.create_order(db, gateway, user, "Premium", 1)

    assert sub.status == "Pending"
    assert sub.price == 159900
    assert sub.currency == "INR"
    assert sub.gateway == "mock"
    assert sub.end_date is None
    assert sub.refund_due is False
    assert sub.features["contactsPerDay"] == 10
    assert created.order_id == sub.order_id
    assert sub.order_id in created.redirect_url


def test_order_id_collision_regenerates(db, user, gateway, make_pending):
    make_pending(order_id="TXN_dup")
    gateway.adapter.set_state("TXN_dup", "PENDING")

    sub, _ = billing.create_order(db, gateway, user, "Premium", 3, order_ids=ScriptedIds("TXN_dup", "TXN_fresh"))
    assert sub.order_id == "TXN_fresh"
    assert db.query(Subscription).count() == 2


def test_active_subscription_blocks_new_order(db, user, gateway):
    sub, _ = billing.create_order(db, gateway, user, "Premium", 1)
    apply_result(db, sub.order_id, gateway.query_status(sub.order_id))

    with pytest.raises(ConflictError):
        billing.create_order(db, gateway, user, "Premium Plus", 12)


def test_unpaid_pending_orders_do_not_block(db, user, gateway):
    gateway.adapter.default_state = "PENDING"

    first, _ = billing.create_order(db, gateway, user, "Premium", 1)
    second, _ = billing.create_order(db, gateway, user, "Premium", 1)

    assert first.order_id != second.order_id
    assert list(gateway.adapter.status_calls) == [first.order_id]
    assert get_by_order_id(db, first.order_id).status == "Pending"


def test_paid_but_unreconciled_order_blocks_new_order(db, user, gateway):
    first, _ = billing.create_order(db, gateway, user, "Premium", 1)
    assert first.status == "Pending"

    with pytest.raises(ConflictError):
        billing.create_order(db, gateway, user, "Premium Plus", 3)

    assert get_by_order_id(db, first.order_id).status == "Active"
    assert db.query(Subscription).count() == 1


def test_second_paid_order_is_flagged_for_refund(db, user, gateway):
    gateway.adapter.default_state = "PENDING"
    first, _ = billing.create_order(db, gateway, user, "Premium", 1)
    second, _ = billing.create_order(db, gateway, user, "Premium Plus", 3)

    gateway.adapter.default_state = "COMPLETED"
    activated = apply_result(db, first.order_id, gateway.query_status(first.order_id))
    duplicate = apply_result(db, second.order_id, gateway.query_status(second.order_id))

    assert activated.status == "Active"
    assert duplicate.status == "Cancelled"
    assert duplicate.refund_due is True
    assert duplicate.end_date is None
    assert payment_status(duplicate) == ("FAILED", "DUPLICATE_SUBSCRIPTION")
    assert active_count(db, user) == 1

    db.expire_all()
    member = db.get(User, user.id)
    assert member.membership_type == "Premium"
    assert member.membership_expiry == activated.end_date


def test_gateway_failure_leaves_pending_row(db, user, gateway, monkeypatch):
    def boom(purchase):
        raise GatewayError("gateway down")

    monkeypatch.setattr(gateway.adapter, "create_order", boom)
    with pytest.raises(GatewayError):
        billing.create_order(db, gateway, user, "Premium", 6, order_ids=ScriptedIds("TXN_down"))

    assert get_by_order_id(db, "TXN_down").status == "Pending"


def test_history_lists_all_orders(db, user, gateway):
    gateway.adapter.default_state = "PENDING"
    billing.create_order(db, gateway, user, "Premium", 1)
    billing.create_order(db, gateway, user, "Premium Plus", 3)
    assert len(billing.list_subscriptions(db, user.id)) == 2
