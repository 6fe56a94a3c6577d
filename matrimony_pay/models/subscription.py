import enum
import uuid
from datetime import datetime

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Index, Integer, String, Uuid, func, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from matrimony_pay.core.db import Base


class SubscriptionStatus(str, enum.Enum):
    PENDING = "Pending"
    ACTIVE = "Active"
    CANCELLED = "Cancelled"


class Subscription(Base):
    __tablename__ = "subscriptions"
    __table_args__ = (
        # one Active subscription per account
        Index(
            "uq_subscriptions_one_active_per_user",
            "user_id",
            unique=True,
            postgresql_where=text("status = 'Active'"),
            sqlite_where=text("status = 'Active'"),
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("users.id"), nullable=False, index=True)

    plan_type: Mapped[str] = mapped_column(String(32), nullable=False)
    duration_months: Mapped[int] = mapped_column(Integer, nullable=False)

    # paise, fixed at order creation
    price: Mapped[int] = mapped_column(Integer, nullable=False)
    currency: Mapped[str] = mapped_column(String(8), nullable=False, default="INR")

    order_id: Mapped[str] = mapped_column(String(64), unique=True, index=True, nullable=False)
    gateway: Mapped[str] = mapped_column(String(16), nullable=False)

    status: Mapped[str] = mapped_column(
        String(16), nullable=False, default=SubscriptionStatus.PENDING.value, index=True
    )  # Pending/Active/Cancelled
    start_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    end_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # paid after another order of the same account was already Active
    refund_due: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    features: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    user = relationship("User", back_populates="subscriptions")
