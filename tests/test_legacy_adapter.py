import base64
import hashlib
import json

import httpx
import pytest

from matrimony_pay.core.exceptions import ConfigurationError, GatewayError, SignatureMismatch
from matrimony_pay.services import signature
from matrimony_pay.services.gateway import (
    GatewayConfig,
    GatewayEnvironment,
    GatewayVariant,
    PurchaseRequest,
)
from matrimony_pay.services.gateway.legacy import LegacyAdapter

SANDBOX = "https://api-preprod.phonepe.com/apis/pg-sandbox"


def make_config(**overrides):
    values = dict(
        variant=GatewayVariant.LEGACY,
        environment=GatewayEnvironment.SANDBOX,
        redirect_url="http://localhost:3000/payment/callback?orderId={order_id}",
        callback_url="http://localhost:8000/payments/callback",
        merchant_id="PGTESTPAYUAT",
        salt_key="099eb0cd-02cf-4e2a-8aca-3e6c6aff0399",
        salt_index="1",
    )
    values.update(overrides)
    return GatewayConfig(**values)


def make_adapter(handler, **overrides):
    return LegacyAdapter(make_config(**overrides), http=httpx.Client(transport=httpx.MockTransport(handler)))


PURCHASE = PurchaseRequest(
    order_id="TXN_1700000000000_abc123xyz",
    amount=159900,
    user_id="user-1",
    plan_type="Premium",
    duration_months=1,
    phone="9876543210",
)


def test_pay_request_payload_and_checksum():
    adapter = make_adapter(lambda request: httpx.Response(500))
    encoded, header = adapter.build_pay_request(PURCHASE)

    payload = json.loads(base64.b64decode(encoded))
    assert payload["merchantId"] == "PGTESTPAYUAT"
    assert payload["merchantTransactionId"] == PURCHASE.order_id
    assert payload["amount"] == 159900
    assert payload["redirectUrl"].endswith("orderId=TXN_1700000000000_abc123xyz")
    assert payload["callbackUrl"] == "http://localhost:8000/payments/callback"
    assert payload["mobileNumber"] == "9876543210"
    assert payload["paymentInstrument"] == {"type": "PAY_PAGE"}

    digest = hashlib.sha256((encoded + "/pg/v1/pay" + make_config().salt_key).encode()).hexdigest()
    assert header == f"{digest}###1"


def test_create_order_returns_redirect():
    seen = {}

    def handler(request):
        seen["url"] = str(request.url)
        seen["x_verify"] = request.headers["X-VERIFY"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(
            200,
            json={
                "success": True,
                "code": "PAYMENT_INITIATED",
                "data": {
                    "merchantTransactionId": PURCHASE.order_id,
                    "instrumentResponse": {"redirectInfo": {"url": "https://pay.example/checkout/1"}},
                },
            },
        )

    created = make_adapter(handler).create_order(PURCHASE)

    assert created.redirect_url == "https://pay.example/checkout/1"
    assert seen["url"] == f"{SANDBOX}/pg/v1/pay"
    assert signature.verify_header(
        seen["x_verify"], seen["body"]["request"], "/pg/v1/pay", make_config().salt_key, "1"
    )


def test_create_order_without_redirect_is_not_retryable():
    adapter = make_adapter(lambda request: httpx.Response(200, json={"success": False, "code": "BAD_REQUEST"}))
    with pytest.raises(GatewayError) as exc:
        adapter.create_order(PURCHASE)
    assert exc.value.retryable is False


@pytest.mark.parametrize(
    "code,state,expected",
    [
        ("PAYMENT_SUCCESS", "COMPLETED", True),
        ("PAYMENT_ERROR", "FAILED", False),
        ("PAYMENT_DECLINED", None, False),
        ("PAYMENT_PENDING", "PENDING", None),
        ("INTERNAL_SERVER_ERROR", None, None),
    ],
)
def test_status_outcomes(code, state, expected):
    def handler(request):
        data = {"merchantTransactionId": PURCHASE.order_id, "amount": 159900, "transactionId": "T1"}
        if state:
            data["state"] = state
        return httpx.Response(200, json={"success": code == "PAYMENT_SUCCESS", "code": code, "data": data})

    result = make_adapter(handler).query_status(PURCHASE.order_id)
    assert result.order_id == PURCHASE.order_id
    assert result.is_success is expected
    assert result.amount == 159900


def test_status_request_is_signed_over_path():
    seen = {}

    def handler(request):
        seen["path"] = request.url.path
        seen["headers"] = request.headers
        return httpx.Response(200, json={"code": "PAYMENT_PENDING", "data": {"state": "PENDING"}})

    make_adapter(handler).query_status(PURCHASE.order_id)

    path = f"/pg/v1/status/PGTESTPAYUAT/{PURCHASE.order_id}"
    assert seen["path"] == "/apis/pg-sandbox" + path
    assert seen["headers"]["X-MERCHANT-ID"] == "PGTESTPAYUAT"
    expected = hashlib.sha256((path + make_config().salt_key).encode()).hexdigest() + "###1"
    assert seen["headers"]["X-VERIFY"] == expected


def test_production_uses_production_host():
    seen = {}

    def handler(request):
        seen["host"] = request.url.host
        return httpx.Response(200, json={"code": "PAYMENT_PENDING", "data": {}})

    make_adapter(handler, environment=GatewayEnvironment.PRODUCTION).query_status("TXN_1")
    assert seen["host"] == "api.phonepe.com"


def test_timeout_becomes_gateway_error():
    def handler(request):
        raise httpx.ReadTimeout("timed out", request=request)

    with pytest.raises(GatewayError):
        make_adapter(handler).query_status(PURCHASE.order_id)


def test_server_error_is_retryable():
    with pytest.raises(GatewayError) as exc:
        make_adapter(lambda request: httpx.Response(503, text="unavailable")).query_status("TXN_1")
    assert exc.value.status_code == 503
    assert exc.value.retryable is True


@pytest.mark.parametrize("missing", ["merchant_id", "salt_key", "salt_index"])
def test_missing_credentials(missing):
    with pytest.raises(ConfigurationError):
        LegacyAdapter(make_config(**{missing: ""}))


def _callback(details, salt_key=None):
    salt_key = salt_key or make_config().salt_key
    encoded = base64.b64encode(
        json.dumps({"success": True, "code": "PAYMENT_SUCCESS", "data": details}).encode()
    ).decode()
    body = json.dumps({"response": encoded}).encode()
    return body, {"X-VERIFY": signature.x_verify(encoded, "", salt_key, "1")}


def test_decode_callback():
    body, headers = _callback(
        {"merchantTransactionId": PURCHASE.order_id, "state": "COMPLETED", "amount": 159900}
    )
    result = make_adapter(lambda request: httpx.Response(500)).decode_callback(body, headers)
    assert result.order_id == PURCHASE.order_id
    assert result.is_success is True


def test_decode_callback_rejects_bad_checksum():
    body, headers = _callback({"merchantTransactionId": PURCHASE.order_id}, salt_key="other-salt")
    with pytest.raises(SignatureMismatch):
        make_adapter(lambda request: httpx.Response(500)).decode_callback(body, headers)


@pytest.mark.parametrize("body", [b"not json", b'{"response": "%%%"}', b'{"other": 1}'])
def test_decode_callback_rejects_malformed_body(body):
    with pytest.raises(SignatureMismatch):
        make_adapter(lambda request: httpx.Response(500)).decode_callback(body, {})
