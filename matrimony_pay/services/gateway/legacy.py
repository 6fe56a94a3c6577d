"""Salt-keyed checkout protocol (/pg/v1).

Requests carry X-VERIFY = sha256(payload + path + salt) ### salt_index.
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
from typing import Mapping

import httpx

from matrimony_pay.core.exceptions import ConfigurationError, GatewayError, SignatureMismatch
from matrimony_pay.services import signature
from matrimony_pay.services.gateway.base import (
    GatewayAdapter,
    GatewayConfig,
    GatewayEnvironment,
    GatewayResult,
    GatewayVariant,
    OrderCreated,
    PurchaseRequest,
)

logger = logging.getLogger(__name__)

BASE_URLS = {
    GatewayEnvironment.SANDBOX: "https://api-preprod.phonepe.com/apis/pg-sandbox",
    GatewayEnvironment.PRODUCTION: "https://api.phonepe.com/apis/hermes",
}

PAY_PATH = "/pg/v1/pay"
STATUS_PATH = "/pg/v1/status/{merchant_id}/{order_id}"

SUCCESS_CODE = "PAYMENT_SUCCESS"
FAILURE_CODES = frozenset(
    {
        "PAYMENT_ERROR",
        "PAYMENT_DECLINED",
        "PAYMENT_CANCELLED",
        "TIMED_OUT",
        "AUTHORIZATION_FAILED",
        "TRANSACTION_NOT_FOUND",
    }
)

DEFAULT_MOBILE = "9999999999"


def _encode(payload: dict) -> str:
    return base64.b64encode(json.dumps(payload, separators=(",", ":")).encode("utf-8")).decode("ascii")


def _outcome(code: str | None, state: str | None) -> bool | None:
    if code == SUCCESS_CODE and state == "COMPLETED":
        return True
    if state == "FAILED" or code in FAILURE_CODES:
        return False
    return None


class LegacyAdapter(GatewayAdapter):
    variant = GatewayVariant.LEGACY

    def __init__(self, config: GatewayConfig, http: httpx.Client | None = None) -> None:
        missing = [
            name
            for name, value in (
                ("PHONEPE_MERCHANT_ID", config.merchant_id),
                ("PHONEPE_SALT_KEY", config.salt_key),
                ("PHONEPE_SALT_INDEX", config.salt_index),
                ("PHONEPE_REDIRECT_URL", config.redirect_url),
            )
            if not value
        ]
        if missing:
            raise ConfigurationError("Salt-keyed gateway is missing: " + ", ".join(missing))
        super().__init__(config, http)
        self.base_url = (config.base_url or BASE_URLS[config.environment]).rstrip("/")

    def _headers(self, x_verify: str) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "accept": "application/json",
            "X-VERIFY": x_verify,
        }

    def build_pay_request(self, purchase: PurchaseRequest) -> tuple[str, str]:
        """Return (base64 payload, X-VERIFY header) for /pg/v1/pay."""
        payload = {
            "merchantId": self.config.merchant_id,
            "merchantTransactionId": purchase.order_id,
            "merchantUserId": purchase.user_id,
            "amount": purchase.amount,
            "redirectUrl": self.config.redirect_for(purchase.order_id),
            "redirectMode": "POST",
            "callbackUrl": self.config.callback_url,
            "mobileNumber": purchase.phone or DEFAULT_MOBILE,
            "paymentInstrument": {"type": "PAY_PAGE"},
        }
        encoded = _encode(payload)
        header = signature.x_verify(encoded, PAY_PATH, self.config.salt_key, self.config.salt_index)
        return encoded, header

    def create_order(self, purchase: PurchaseRequest) -> OrderCreated:
        encoded, header = self.build_pay_request(purchase)

        logger.info("Creating salt-keyed order %s amount=%s", purchase.order_id, purchase.amount)
        response = self._send(
            "POST",
            f"{self.base_url}{PAY_PATH}",
            json={"request": encoded},
            headers=self._headers(header),
        )
        data = self._json(response)

        redirect = (
            (data.get("data") or {}).get("instrumentResponse", {}).get("redirectInfo", {}).get("url")
        )
        if not redirect:
            raise GatewayError(
                "Payment URL not received from gateway",
                status_code=response.status_code,
                body=response.text,
                retryable=False,
            )
        return OrderCreated(
            order_id=purchase.order_id,
            redirect_url=redirect,
            gateway_reference=(data.get("data") or {}).get("transactionId"),
        )

    def status_path(self, order_id: str) -> str:
        return STATUS_PATH.format(merchant_id=self.config.merchant_id, order_id=order_id)

    def query_status(self, order_id: str) -> GatewayResult:
        path = self.status_path(order_id)
        header = signature.x_verify("", path, self.config.salt_key, self.config.salt_index)
        headers = self._headers(header)
        headers["X-MERCHANT-ID"] = self.config.merchant_id

        response = self._send("GET", f"{self.base_url}{path}", headers=headers)
        data = self._json(response)
        return self._to_result(order_id, data)

    def _to_result(self, order_id: str, envelope: dict) -> GatewayResult:
        code = envelope.get("code")
        details = envelope.get("data") or {}
        state = details.get("state") or code or "UNKNOWN"
        attempts: tuple[dict, ...] = ()
        if details.get("transactionId"):
            attempts = (
                {
                    "transactionId": details.get("transactionId"),
                    "state": details.get("state"),
                    "responseCode": details.get("responseCode"),
                    "paymentInstrument": details.get("paymentInstrument"),
                },
            )
        return GatewayResult(
            order_id=details.get("merchantTransactionId") or order_id,
            raw_state=state,
            is_success=_outcome(code, details.get("state")),
            amount=details.get("amount"),
            attempts=attempts,
            raw=envelope,
        )

    def decode_callback(self, body: bytes, headers: Mapping[str, str]) -> GatewayResult:
        try:
            encoded = json.loads(body)["response"]
            decoded = json.loads(base64.b64decode(encoded, validate=True))
        except (ValueError, KeyError, TypeError, binascii.Error) as e:
            raise SignatureMismatch("Callback body is not a base64 response envelope") from e
        if not isinstance(decoded, dict):
            raise SignatureMismatch("Callback envelope is not an object")

        provided = {k.lower(): v for k, v in headers.items()}.get("x-verify")
        if provided and not signature.verify_header(
            provided, encoded, "", self.config.salt_key, self.config.salt_index
        ):
            raise SignatureMismatch("Callback X-VERIFY does not match")

        # older payloads carry the transaction fields at the top level
        details = decoded.get("data") if isinstance(decoded.get("data"), dict) else decoded
        order_id = details.get("merchantTransactionId")
        if not order_id:
            raise SignatureMismatch("Callback carries no merchantTransactionId")

        return self._to_result(order_id, {"code": decoded.get("code"), "data": details})
