from __future__ import annotations

import uuid
from datetime import datetime

from pydantic import BaseModel, EmailStr, Field, field_validator

from matrimony_pay.schemas.payments import CamelModel

# Indian mobile numbers, as the gateway's pay page expects them
MOBILE_PATTERN = r"^[6-9][0-9]{9}$"


class RegisterIn(CamelModel):
    email: EmailStr
    # bcrypt only looks at the first 72 bytes
    password: str = Field(min_length=8, max_length=72)
    full_name: str = Field(min_length=1, max_length=255)
    phone: str | None = Field(default=None, pattern=MOBILE_PATTERN)

    @field_validator("email")
    @classmethod
    def lower_email(cls, v: str) -> str:
        return v.lower()


class TokenOut(BaseModel):
    # OAuth2 password flow field names, not camelCase
    access_token: str
    token_type: str = "bearer"
    expires_in: int


class MemberOut(CamelModel):
    id: uuid.UUID
    email: EmailStr
    full_name: str | None = None
    phone: str | None = None
    membership_type: str
    membership_expiry: datetime | None = None
