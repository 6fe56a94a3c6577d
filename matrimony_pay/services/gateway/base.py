"""Adapter contract shared by every gateway protocol generation."""

from __future__ import annotations

import enum
import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Mapping

import httpx

from matrimony_pay.core.config import Settings
from matrimony_pay.core.exceptions import ConfigurationError, GatewayError

logger = logging.getLogger(__name__)


class GatewayVariant(str, enum.Enum):
    LEGACY = "legacy"
    BEARER = "bearer"
    MOCK = "mock"


class GatewayEnvironment(str, enum.Enum):
    SANDBOX = "sandbox"
    PRODUCTION = "production"


@dataclass(frozen=True)
class GatewayConfig:
    variant: GatewayVariant
    environment: GatewayEnvironment
    redirect_url: str
    callback_url: str
    base_url: str | None = None
    timeout_seconds: float = 15.0

    merchant_id: str = ""
    salt_key: str = field(default="", repr=False)
    salt_index: str = ""

    client_id: str = ""
    client_secret: str = field(default="", repr=False)
    client_version: str = "1"
    token_url: str | None = None
    token_refresh_skew_seconds: int = 60
    order_expire_after_seconds: int = 1200
    callback_username: str = ""
    callback_password: str = field(default="", repr=False)

    @classmethod
    def from_settings(cls, s: Settings) -> "GatewayConfig":
        try:
            variant = GatewayVariant(s.gateway_variant.strip().lower())
            environment = GatewayEnvironment(s.gateway_environment.strip().lower())
        except ValueError as e:
            raise ConfigurationError(str(e)) from e

        return cls(
            variant=variant,
            environment=environment,
            redirect_url=s.redirect_url,
            callback_url=s.callback_url,
            base_url=s.gateway_base_url or None,
            timeout_seconds=s.gateway_timeout_seconds,
            merchant_id=s.merchant_id,
            salt_key=s.salt_key,
            salt_index=s.salt_index,
            client_id=s.client_id,
            client_secret=s.client_secret,
            client_version=s.client_version,
            token_url=s.token_url or None,
            token_refresh_skew_seconds=s.token_refresh_skew_seconds,
            order_expire_after_seconds=s.order_expire_after_seconds,
            callback_username=s.callback_username,
            callback_password=s.callback_password,
        )

    def redirect_for(self, order_id: str) -> str:
        return self.redirect_url.replace("{order_id}", order_id)


@dataclass(frozen=True)
class PurchaseRequest:
    order_id: str
    amount: int  # paise
    user_id: str
    plan_type: str
    duration_months: int
    phone: str | None = None
    email: str | None = None
    name: str | None = None


@dataclass(frozen=True)
class OrderCreated:
    order_id: str
    redirect_url: str
    gateway_reference: str | None = None


@dataclass(frozen=True)
class GatewayResult:
    """Canonical view of a gateway answer.

    is_success: True / False for a definitive outcome, None while the gateway
    still reports the order as pending.
    """

    order_id: str
    raw_state: str
    is_success: bool | None
    amount: int | None = None
    attempts: tuple[dict, ...] = ()
    raw: Mapping[str, Any] | None = field(default=None, compare=False, repr=False)

    @property
    def is_final(self) -> bool:
        return self.is_success is not None


def send_request(http: httpx.Client, method: str, url: str, **kwargs: Any) -> httpx.Response:
    """Issue one request; timeouts and transport failures become GatewayError."""
    try:
        return http.request(method, url, **kwargs)
    except httpx.TimeoutException as e:
        logger.warning("Gateway %s %s timed out: %s", method, url, e)
        raise GatewayError(f"Gateway timeout on {method} {url}") from e
    except httpx.HTTPError as e:
        logger.warning("Gateway %s %s failed: %s", method, url, e)
        raise GatewayError(f"Gateway request failed: {e}") from e


def read_json(response: httpx.Response) -> dict:
    if not response.is_success:
        logger.error("Gateway returned HTTP %s: %s", response.status_code, response.text[:500])
        raise GatewayError(
            f"Gateway returned HTTP {response.status_code}",
            status_code=response.status_code,
            body=response.text,
            retryable=response.status_code >= 500 or response.status_code in (401, 408, 429),
        )
    try:
        data = response.json()
    except json.JSONDecodeError as e:
        raise GatewayError(
            "Gateway returned a non-JSON body",
            status_code=response.status_code,
            body=response.text,
        ) from e
    if not isinstance(data, dict):
        raise GatewayError("Gateway returned an unexpected body", status_code=response.status_code, body=response.text)
    return data


class GatewayAdapter(ABC):
    variant: GatewayVariant
    # adapters that never touch the network skip the HTTP client
    uses_http: bool = True

    def __init__(self, config: GatewayConfig, http: httpx.Client | None = None) -> None:
        self.config = config
        self._owns_http = http is None and self.uses_http
        if self._owns_http:
            http = httpx.Client(timeout=httpx.Timeout(config.timeout_seconds))
        self.http = http

    @abstractmethod
    def create_order(self, purchase: PurchaseRequest) -> OrderCreated: ...

    @abstractmethod
    def query_status(self, order_id: str) -> GatewayResult: ...

    @abstractmethod
    def decode_callback(self, body: bytes, headers: Mapping[str, str]) -> GatewayResult: ...

    def close(self) -> None:
        if self._owns_http:
            self.http.close()

    def _send(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        return send_request(self.http, method, url, **kwargs)

    _json = staticmethod(read_json)
