import re

from matrimony_pay.services.order_id import OrderIdGenerator


def test_format_uses_clock_millis():
    gen = OrderIdGenerator(clock=lambda: 1700000000.123)
    order_id = gen.new_order_id()
    assert order_id.startswith("TXN_1700000000123_")
    assert re.fullmatch(r"TXN_\d{13}_[a-z0-9]{9}", order_id)


def test_fits_gateway_limits():
    order_id = OrderIdGenerator().new_order_id()
    assert len(order_id) <= 35
    assert re.fullmatch(r"[A-Za-z0-9_-]+", order_id)


def test_ids_are_unique_within_same_millisecond():
    gen = OrderIdGenerator(clock=lambda: 1700000000.0)
    ids = {gen.new_order_id() for _ in range(1000)}
    assert len(ids) == 1000
