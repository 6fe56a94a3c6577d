import pytest

from matrimony_pay.services import plans


@pytest.mark.parametrize(
    "plan_type,months,paise",
    [
        ("Premium", 1, 159900),
        ("Premium", 12, 1499900),
        ("Premium Plus", 3, 799900),
        ("Premium Plus", 12, 2499900),
    ],
)
def test_price_in_paise(plan_type, months, paise):
    assert plans.price_paise(plan_type, months) == paise


def test_unknown_combination():
    with pytest.raises(ValueError):
        plans.price_paise("Gold", 1)
    with pytest.raises(ValueError):
        plans.parse_duration("2 months")


def test_features_are_copies():
    f = plans.features_for("Premium")
    f["contactsPerDay"] = 999
    assert plans.features_for("Premium")["contactsPerDay"] == 10


def test_catalogue_covers_every_price():
    rows = plans.catalogue()
    assert len(rows) == len(plans.PRICES)
    premium_month = next(r for r in rows if r["planType"] == "Premium" and r["durationMonths"] == 1)
    assert premium_month["duration"] == "1 month"
    assert premium_month["amountMinorUnits"] == 159900
