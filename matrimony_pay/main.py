import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from matrimony_pay.api.auth import router as auth_router
from matrimony_pay.api.payments import router as payments_router
from matrimony_pay.api.subscriptions import router as subscriptions_router
from matrimony_pay.core.config import settings
from matrimony_pay.core.exceptions import (
    BillingError,
    ConfigurationError,
    ConflictError,
    GatewayError,
    NotFound,
    SignatureMismatch,
)
from matrimony_pay.services.gateway import GatewayConfig, build_gateway_client

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if getattr(app.state, "gateway_client", None) is None:
        try:
            app.state.gateway_client = build_gateway_client(GatewayConfig.from_settings(settings))
        except ConfigurationError as e:
            # the rest of the API keeps serving; payment routes answer 503
            logger.error("Payments disabled: %s", e)
            app.state.gateway_client = None
    yield
    if app.state.gateway_client is not None:
        app.state.gateway_client.close()


app = FastAPI(title="Matrimony Pay", version="0.1.0", lifespan=lifespan)
app.state.gateway_client = None

app.include_router(auth_router, prefix="/auth", tags=["auth"])
app.include_router(payments_router, prefix="/payments", tags=["payments"])
app.include_router(subscriptions_router, prefix="/subscriptions", tags=["subscriptions"])

_STATUS_CODES = {
    ConfigurationError: 503,
    GatewayError: 502,
    SignatureMismatch: 400,
    NotFound: 404,
    ConflictError: 400,
}


@app.exception_handler(BillingError)
async def billing_error_handler(request: Request, exc: BillingError):
    status_code = next((code for cls, code in _STATUS_CODES.items() if isinstance(exc, cls)), 500)
    if status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    else:
        logger.warning("%s %s rejected: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=status_code, content={"success": False, "detail": str(exc)})


@app.get("/health")
def health():
    client = app.state.gateway_client
    return {"status": "ok", "gateway": client.variant.value if client else None}
