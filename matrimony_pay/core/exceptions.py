"""Error taxonomy shared by the gateway adapters, the state machine and the API."""

from __future__ import annotations


class BillingError(Exception):
    """Base billing exception."""


class ConfigurationError(BillingError):
    """Gateway secrets or merchant identifiers are missing or inconsistent."""


class GatewayError(BillingError):
    """Network failure, timeout or non-2xx answer from the payment gateway.

    Never changes subscription state; the caller may retry.
    """

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        body: str | None = None,
        retryable: bool = True,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body
        self.retryable = retryable


class SignatureMismatch(BillingError):
    """Callback body could not be decoded or its checksum does not match."""


class NotFound(BillingError):
    """No subscription exists for the given order id."""


class ConflictError(BillingError):
    """The account already holds an active subscription."""
