"""Fixed plan catalogue: prices in rupees and the feature bundle of each plan type."""

from __future__ import annotations

from copy import deepcopy

PLAN_TYPES = ("Premium", "Premium Plus")
DURATIONS = {"1 month": 1, "3 months": 3, "6 months": 6, "12 months": 12}

# (plan_type, months) -> price in rupees
PRICES: dict[tuple[str, int], int] = {
    ("Premium", 1): 1599,
    ("Premium", 3): 3999,
    ("Premium", 6): 7999,
    ("Premium", 12): 14999,
    ("Premium Plus", 1): 2999,
    ("Premium Plus", 3): 7999,
    ("Premium Plus", 6): 14999,
    ("Premium Plus", 12): 24999,
}

FEATURES: dict[str, dict] = {
    "Premium": {
        "contactsPerDay": 10,
        "messagesPerDay": 50,
        "profileViews": True,
        "advancedSearch": True,
        "prioritySupport": False,
        "profileHighlight": False,
    },
    "Premium Plus": {
        "contactsPerDay": 25,
        "messagesPerDay": 100,
        "profileViews": True,
        "advancedSearch": True,
        "prioritySupport": True,
        "profileHighlight": True,
    },
}


def parse_duration(duration: str) -> int:
    try:
        return DURATIONS[duration]
    except KeyError:
        raise ValueError(f"Unknown duration: {duration!r}") from None


def price_rupees(plan_type: str, months: int) -> int:
    try:
        return PRICES[(plan_type, months)]
    except KeyError:
        raise ValueError(f"No price for plan={plan_type!r} months={months}") from None


def price_paise(plan_type: str, months: int) -> int:
    return price_rupees(plan_type, months) * 100


def features_for(plan_type: str) -> dict:
    return deepcopy(FEATURES[plan_type])


def catalogue() -> list[dict]:
    label = {months: text for text, months in DURATIONS.items()}
    return [
        {
            "planType": plan_type,
            "duration": label[months],
            "durationMonths": months,
            "price": price,
            "amountMinorUnits": price * 100,
            "features": features_for(plan_type),
        }
        for (plan_type, months), price in PRICES.items()
    ]
