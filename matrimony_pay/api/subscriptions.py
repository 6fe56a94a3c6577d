from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from matrimony_pay.api.deps import get_db, get_current_user
from matrimony_pay.models import User
from matrimony_pay.schemas.subscriptions import MembershipOut, PlanOut, PlansOut
from matrimony_pay.services import billing, plans

router = APIRouter()


def _as_utc(dt: datetime) -> datetime:
    # SQLite hands back naive datetimes
    return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)


@router.get("/plans", response_model=PlansOut)
def list_plans():
    return PlansOut(plans=[PlanOut(**p) for p in plans.catalogue()])


@router.get("/me", response_model=MembershipOut)
def get_membership(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    now = datetime.now(timezone.utc)
    sub = billing.get_active_subscription(db, user.id)

    if not sub or sub.end_date is None:
        return MembershipOut(has_active=False)

    ends_at = _as_utc(sub.end_date)
    remaining = max(0, int((ends_at - now).total_seconds() // 86400))
    return MembershipOut(
        has_active=ends_at > now,
        plan_type=sub.plan_type,
        ends_at=ends_at,
        remaining_days=remaining,
        features=sub.features,
    )
