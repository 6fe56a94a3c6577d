import logging

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy import select
from sqlalchemy.orm import Session

from matrimony_pay.api.deps import get_current_user, get_db
from matrimony_pay.core.config import settings
from matrimony_pay.models import User
from matrimony_pay.schemas.auth import MemberOut, RegisterIn, TokenOut
from matrimony_pay.services.auth import create_access_token, hash_password, verify_password

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/register", response_model=MemberOut, status_code=201)
def register(payload: RegisterIn, db: Session = Depends(get_db)):
    if db.scalar(select(User.id).where(User.email == payload.email)):
        raise HTTPException(status_code=409, detail="An account with this email already exists")

    # new members start on the free tier; paid tiers are granted on activation only
    member = User(
        email=payload.email,
        password_hash=hash_password(payload.password),
        full_name=payload.full_name,
        phone=payload.phone,
        membership_type="Free",
    )
    db.add(member)
    db.commit()
    db.refresh(member)
    logger.info("Registered member %s", member.id)
    return member


@router.post("/login", response_model=TokenOut)
def login(form: OAuth2PasswordRequestForm = Depends(), db: Session = Depends(get_db)):
    member = db.scalar(select(User).where(User.email == form.username.strip().lower()))
    if not member or not member.is_active or not verify_password(form.password, member.password_hash):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid email or password")

    return TokenOut(
        access_token=create_access_token(subject=str(member.id)),
        expires_in=settings.access_token_expire_minutes * 60,
    )


@router.get("/me", response_model=MemberOut)
def me(member: User = Depends(get_current_user)):
    return member
