import pytest

from campusvibe import models
from campusvibe.pricing import DiscountLedger, apply_discount, normalize_code, resolve_base_price


def test_normalize_code():
    assert normalize_code("  save10 ") == "SAVE10"
    assert normalize_code("   ") is None
    assert normalize_code(None) is None


def test_tier_price_takes_precedence_over_flat_price():
    event = models.Event(price_cents=9000, price_duo_cents=15000)
    assert resolve_base_price(event, models.GroupType.duo) == 15000
    assert resolve_base_price(event, models.GroupType.single) == 9000


def test_missing_tier_price_falls_back_to_multiple_of_flat_price():
    event = models.Event(price_cents=500)
    assert resolve_base_price(event, "duo") == 1000
    assert resolve_base_price(event, "trio") == 1500


@pytest.mark.parametrize("percentage,expected", [(0, 9000), (10, 8100), (100, 0), (150, 0)])
def test_percentage_discount(percentage, expected):
    assert apply_discount(9000, models.Discount(percentage=percentage)) == expected


def test_flat_amount_never_goes_negative():
    assert apply_discount(300, models.Discount(amount_cents=500)) == 0
    assert apply_discount(1000, models.Discount(percentage=50, amount_cents=100)) == 400


def test_save10_applies_and_unknown_code_does_not(db, make_event):
    event = make_event(price_cents=9000)
    ledger = DiscountLedger(db)
    ledger.create(event, "save10", percentage=10)

    assert ledger.quote(event, models.GroupType.single, "SAVE10") == 8100
    assert ledger.quote(event, models.GroupType.single, "FAKE") == 9000
    assert ledger.quote(event, models.GroupType.single, None) == 9000


def test_inactive_code_never_changes_price(db, make_event):
    event = make_event(price_cents=9000)
    ledger = DiscountLedger(db)
    discount = ledger.create(event, "HALF", percentage=50)
    ledger.deactivate(discount)

    assert ledger.quote(event, models.GroupType.single, "HALF") == 9000
    assert ledger.claim(event, "HALF") is None


def test_claim_counts_uses_until_exhausted(db, make_event):
    event = make_event(price_cents=9000)
    ledger = DiscountLedger(db)
    ledger.create(event, "ONCE", percentage=20, max_uses=1)

    first = ledger.claim(event, "once")
    db.commit()
    assert first is not None
    assert first.used_count == 1

    assert ledger.claim(event, "ONCE") is None
    db.commit()
    discount = ledger.lookup(event, "ONCE")
    assert discount.used_count == 1


def test_codes_are_scoped_to_their_event(db, make_event):
    fest = make_event(price_cents=9000)
    hackathon = make_event(title="Hackathon", price_cents=9000)
    ledger = DiscountLedger(db)
    ledger.create(fest, "SAVE10", percentage=10)

    assert ledger.quote(hackathon, models.GroupType.single, "SAVE10") == 9000
