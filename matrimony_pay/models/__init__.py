from matrimony_pay.core.db import Base

from .user import User
from .subscription import Subscription, SubscriptionStatus

__all__ = [
    "Base",
    "User",
    "Subscription",
    "SubscriptionStatus",
]
