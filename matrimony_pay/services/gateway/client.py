from __future__ import annotations

import json
import logging
from typing import Mapping

import httpx

from matrimony_pay.core.exceptions import GatewayError
from matrimony_pay.services.gateway.base import (
    GatewayAdapter,
    GatewayConfig,
    GatewayEnvironment,
    GatewayResult,
    GatewayVariant,
    OrderCreated,
    PurchaseRequest,
)
from matrimony_pay.services.gateway.bearer import BearerAdapter
from matrimony_pay.services.gateway.legacy import LegacyAdapter
from matrimony_pay.services.gateway.mock import MockAdapter

logger = logging.getLogger(__name__)


class PaymentGatewayClient:
    """Facade over the configured adapter. Holds no subscription state."""

    def __init__(self, adapter: GatewayAdapter) -> None:
        self.adapter = adapter

    @property
    def variant(self) -> GatewayVariant:
        return self.adapter.variant

    def create_order(self, purchase: PurchaseRequest) -> OrderCreated:
        if purchase.amount <= 0:
            raise ValueError("amount must be a positive number of minor units")
        return self.adapter.create_order(purchase)

    def query_status(self, order_id: str) -> GatewayResult:
        result = self.adapter.query_status(order_id)
        if result.order_id != order_id:
            raise GatewayError(
                f"Gateway answered for order {result.order_id!r}, queried {order_id!r}",
                body=json.dumps(dict(result.raw or {}), default=str),
                retryable=False,
            )
        logger.info(
            "Gateway status order=%s state=%s success=%s",
            order_id,
            result.raw_state,
            result.is_success,
        )
        return result

    def decode_callback(self, body: bytes, headers: Mapping[str, str]) -> GatewayResult:
        return self.adapter.decode_callback(body, headers)

    def close(self) -> None:
        self.adapter.close()


def build_gateway_client(config: GatewayConfig, http: httpx.Client | None = None) -> PaymentGatewayClient:
    if config.variant is GatewayVariant.LEGACY:
        adapter: GatewayAdapter = LegacyAdapter(config, http)
    elif config.variant is GatewayVariant.BEARER:
        adapter = BearerAdapter(config, http)
    else:
        adapter = MockAdapter(config)

    logger.info("Payment gateway: variant=%s environment=%s", config.variant.value, config.environment.value)
    return PaymentGatewayClient(adapter)


def build_mock_client(
    redirect_url: str = "http://localhost:3000/payment/callback?orderId={order_id}",
    default_state: str = "COMPLETED",
) -> PaymentGatewayClient:
    config = GatewayConfig(
        variant=GatewayVariant.MOCK,
        environment=GatewayEnvironment.SANDBOX,
        redirect_url=redirect_url,
        callback_url="http://localhost:8000/payments/callback",
    )
    return PaymentGatewayClient(MockAdapter(config, default_state=default_state))
