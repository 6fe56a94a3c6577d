from __future__ import annotations

from typing import Generator
import uuid

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError
from sqlalchemy import select
from sqlalchemy.orm import Session

from matrimony_pay.core.db import SessionLocal
from matrimony_pay.core.exceptions import ConfigurationError
from matrimony_pay.models import User
from matrimony_pay.services.auth import decode_token
from matrimony_pay.services.gateway import PaymentGatewayClient

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login")


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_current_user(
    token: str = Depends(oauth2_scheme),
    db: Session = Depends(get_db),
) -> User:
    credentials_exc = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Invalid authentication credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    try:
        payload = decode_token(token)
        sub = payload.get("sub")
        if not sub:
            raise credentials_exc
        user_id = uuid.UUID(sub)
    except (JWTError, ValueError):
        raise credentials_exc

    user = db.scalar(select(User).where(User.id == user_id))
    if not user or not user.is_active:
        raise credentials_exc
    return user


def get_gateway_client(request: Request) -> PaymentGatewayClient:
    """The process-wide client built at startup; None means payments are disabled."""
    client = getattr(request.app.state, "gateway_client", None)
    if client is None:
        raise ConfigurationError("Payment gateway not configured")
    return client
