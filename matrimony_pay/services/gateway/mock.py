from __future__ import annotations

import json
import threading
from collections import deque
from typing import Mapping

from matrimony_pay.core.exceptions import ConfigurationError, SignatureMismatch
from matrimony_pay.services.gateway.base import (
    GatewayAdapter,
    GatewayConfig,
    GatewayEnvironment,
    GatewayResult,
    GatewayVariant,
    OrderCreated,
    PurchaseRequest,
)

_OUTCOMES = {"COMPLETED": True, "FAILED": False}

# most recent status queries kept for inspection
STATUS_LOG_SIZE = 100


class MockAdapter(GatewayAdapter):
    """In-process gateway: no network, every order completes unless scripted otherwise."""

    variant = GatewayVariant.MOCK
    uses_http = False

    def __init__(self, config: GatewayConfig, default_state: str = "COMPLETED") -> None:
        if config.environment is GatewayEnvironment.PRODUCTION:
            raise ConfigurationError("Mock gateway cannot run in the production environment")
        super().__init__(config)
        self.default_state = default_state
        self._lock = threading.Lock()
        self._amounts: dict[str, int] = {}
        self._states: dict[str, str] = {}
        self.status_calls: deque[str] = deque(maxlen=STATUS_LOG_SIZE)

    def set_state(self, order_id: str, state: str) -> None:
        with self._lock:
            self._states[order_id] = state

    def create_order(self, purchase: PurchaseRequest) -> OrderCreated:
        with self._lock:
            self._amounts[purchase.order_id] = purchase.amount
        return OrderCreated(
            order_id=purchase.order_id,
            redirect_url=self.config.redirect_for(purchase.order_id),
            gateway_reference=f"MOCK_{purchase.order_id}",
        )

    def query_status(self, order_id: str) -> GatewayResult:
        with self._lock:
            self.status_calls.append(order_id)
            state = self._states.get(order_id, self.default_state)
            amount = self._amounts.get(order_id)
        return GatewayResult(
            order_id=order_id,
            raw_state=state,
            is_success=_OUTCOMES.get(state),
            amount=amount,
            attempts=({"transactionId": f"MOCK_{order_id}", "state": state},),
            raw={"orderId": order_id, "state": state, "amount": amount},
        )

    def decode_callback(self, body: bytes, headers: Mapping[str, str]) -> GatewayResult:
        try:
            data = json.loads(body)
            order_id = data["orderId"]
            state = data.get("state", "PENDING")
        except (ValueError, KeyError, TypeError) as e:
            raise SignatureMismatch("Mock callback must be JSON with orderId") from e
        return GatewayResult(
            order_id=order_id,
            raw_state=state,
            is_success=_OUTCOMES.get(state),
            amount=data.get("amount"),
            raw=data,
        )
