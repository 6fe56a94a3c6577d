"""OAuth checkout protocol (/checkout/v2).

A client-credentials grant yields a short-lived token which is sent as
``Authorization: O-Bearer <token>`` on every API call.
"""

from __future__ import annotations

import hmac
import json
import logging
import threading
import time
from typing import Any, Callable, Mapping

import httpx

from matrimony_pay.core.exceptions import ConfigurationError, GatewayError, SignatureMismatch
from matrimony_pay.services.gateway.base import (
    GatewayAdapter,
    GatewayConfig,
    GatewayEnvironment,
    GatewayResult,
    GatewayVariant,
    OrderCreated,
    PurchaseRequest,
    read_json,
    send_request,
)
from matrimony_pay.services.signature import sha256_hex

logger = logging.getLogger(__name__)

BASE_URLS = {
    GatewayEnvironment.SANDBOX: "https://api-preprod.phonepe.com/apis/pg-sandbox",
    GatewayEnvironment.PRODUCTION: "https://api.phonepe.com/apis/pg",
}
TOKEN_URLS = {
    GatewayEnvironment.SANDBOX: "https://api-preprod.phonepe.com/apis/pg-sandbox/v1/oauth/token",
    GatewayEnvironment.PRODUCTION: "https://api.phonepe.com/apis/identity-manager/v1/oauth/token",
}

PAY_PATH = "/checkout/v2/pay"
STATUS_PATH = "/checkout/v2/order/{order_id}/status"


def _outcome(state: str | None) -> bool | None:
    if state == "COMPLETED":
        return True
    if state == "FAILED":
        return False
    return None


class TokenProvider:
    """Caches the access token until shortly before it expires.

    Refresh is serialized by a lock: concurrent callers wait for the one
    in-flight refresh and then reuse its token.
    """

    def __init__(
        self,
        http: httpx.Client,
        token_url: str,
        client_id: str,
        client_secret: str,
        client_version: str,
        refresh_skew_seconds: int = 60,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.http = http
        self.token_url = token_url
        self.client_id = client_id
        self.client_secret = client_secret
        self.client_version = client_version
        self.refresh_skew_seconds = refresh_skew_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._token: str | None = None
        self._expires_at = 0.0

    def _fresh(self) -> str | None:
        if self._token and self._clock() < self._expires_at - self.refresh_skew_seconds:
            return self._token
        return None

    def get(self) -> str:
        token = self._fresh()
        if token:
            return token
        with self._lock:
            token = self._fresh()
            if token:
                return token
            return self._refresh()

    def invalidate(self, token: str) -> None:
        """Drop ``token`` unless another caller already replaced it."""
        with self._lock:
            if self._token == token:
                self._token = None
                self._expires_at = 0.0

    def _refresh(self) -> str:
        logger.info("Requesting gateway access token")
        response = send_request(
            self.http,
            "POST",
            self.token_url,
            data={
                "client_id": self.client_id,
                "client_version": self.client_version,
                "client_secret": self.client_secret,
                "grant_type": "client_credentials",
            },
            headers={"Content-Type": "application/x-www-form-urlencoded"},
        )
        data = read_json(response)

        token = data.get("access_token")
        if not token:
            raise GatewayError("Token response missing access_token", status_code=response.status_code, body=response.text)

        now = self._clock()
        if data.get("expires_at"):
            expires_at = float(data["expires_at"])
        elif data.get("expires_in"):
            expires_at = now + float(data["expires_in"])
        else:
            expires_at = now + 3600

        self._token = token
        self._expires_at = expires_at
        return token


class BearerAdapter(GatewayAdapter):
    variant = GatewayVariant.BEARER

    def __init__(
        self,
        config: GatewayConfig,
        http: httpx.Client | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        missing = [
            name
            for name, value in (
                ("PHONEPE_CLIENT_ID", config.client_id),
                ("PHONEPE_CLIENT_SECRET", config.client_secret),
                ("PHONEPE_CLIENT_VERSION", config.client_version),
                ("PHONEPE_REDIRECT_URL", config.redirect_url),
            )
            if not value
        ]
        if missing:
            raise ConfigurationError("Bearer gateway is missing: " + ", ".join(missing))
        if bool(config.callback_username) != bool(config.callback_password):
            raise ConfigurationError("Callback username and password must be set together")
        super().__init__(config, http)
        self.base_url = (config.base_url or BASE_URLS[config.environment]).rstrip("/")
        self.tokens = TokenProvider(
            self.http,
            config.token_url or TOKEN_URLS[config.environment],
            config.client_id,
            config.client_secret,
            config.client_version,
            refresh_skew_seconds=config.token_refresh_skew_seconds,
            clock=clock,
        )

    def _authorized(self, method: str, url: str, **kwargs: Any) -> dict:
        """Call the API with the cached token; on 401 refresh once and retry."""
        token = self.tokens.get()
        response = self._send(method, url, headers=self._headers(token), **kwargs)
        if response.status_code == 401:
            logger.info("Gateway rejected access token, refreshing")
            self.tokens.invalidate(token)
            response = self._send(method, url, headers=self._headers(self.tokens.get()), **kwargs)
        return self._json(response)

    @staticmethod
    def _headers(token: str) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Authorization": f"O-Bearer {token}",
        }

    def create_order(self, purchase: PurchaseRequest) -> OrderCreated:
        body = {
            "merchantOrderId": purchase.order_id,
            "amount": purchase.amount,
            "expireAfter": self.config.order_expire_after_seconds,
            "metaInfo": {
                "udf1": purchase.plan_type,
                "udf2": f"{purchase.duration_months} months",
                "udf3": purchase.user_id,
            },
            "paymentFlow": {
                "type": "PG_CHECKOUT",
                "message": f"{purchase.plan_type} membership",
                "merchantUrls": {"redirectUrl": self.config.redirect_for(purchase.order_id)},
            },
        }

        logger.info("Creating bearer order %s amount=%s", purchase.order_id, purchase.amount)
        data = self._authorized("POST", f"{self.base_url}{PAY_PATH}", json=body)

        redirect = data.get("redirectUrl")
        if not redirect:
            raise GatewayError("Payment URL not received from gateway", body=json.dumps(data), retryable=False)
        return OrderCreated(
            order_id=purchase.order_id,
            redirect_url=redirect,
            gateway_reference=data.get("orderId"),
        )

    def query_status(self, order_id: str) -> GatewayResult:
        path = STATUS_PATH.format(order_id=order_id)
        data = self._authorized("GET", f"{self.base_url}{path}")
        return self._to_result(order_id, data)

    @staticmethod
    def _to_result(order_id: str, data: Mapping[str, Any]) -> GatewayResult:
        state = data.get("state") or "UNKNOWN"
        details = data.get("paymentDetails") or []
        return GatewayResult(
            order_id=order_id,
            raw_state=state,
            is_success=_outcome(state),
            amount=data.get("amount"),
            attempts=tuple(d for d in details if isinstance(d, dict)),
            raw=dict(data),
        )

    def decode_callback(self, body: bytes, headers: Mapping[str, str]) -> GatewayResult:
        if self.config.callback_username:
            expected = sha256_hex(f"{self.config.callback_username}:{self.config.callback_password}")
            provided = {k.lower(): v for k, v in headers.items()}.get("authorization", "")
            provided = provided.removeprefix("SHA256").strip()
            if not hmac.compare_digest(provided.lower().encode("utf-8"), expected.encode("utf-8")):
                raise SignatureMismatch("Callback authorization does not match")

        try:
            event = json.loads(body)
            payload = event["payload"]
        except (ValueError, KeyError, TypeError) as e:
            raise SignatureMismatch("Callback body is not a gateway event") from e
        if not isinstance(payload, dict):
            raise SignatureMismatch("Callback payload is not an object")

        order_id = payload.get("merchantOrderId") or payload.get("originalMerchantOrderId")
        if not order_id:
            raise SignatureMismatch("Callback carries no merchantOrderId")
        return self._to_result(order_id, payload)
