from .base import (
    GatewayAdapter,
    GatewayConfig,
    GatewayEnvironment,
    GatewayResult,
    GatewayVariant,
    OrderCreated,
    PurchaseRequest,
)
from .client import PaymentGatewayClient, build_gateway_client, build_mock_client

__all__ = [
    "GatewayAdapter",
    "GatewayConfig",
    "GatewayEnvironment",
    "GatewayResult",
    "GatewayVariant",
    "OrderCreated",
    "PurchaseRequest",
    "PaymentGatewayClient",
    "build_gateway_client",
    "build_mock_client",
]
