import logging
from typing import Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from campusvibe import models

logger = logging.getLogger("campusvibe.pricing")

GroupType = models.GroupType

TIER_PRICE_COLUMNS = {
    GroupType.single: "price_single_cents",
    GroupType.duo: "price_duo_cents",
    GroupType.trio: "price_trio_cents",
}

# Multiples of the flat price used when an event has no explicit tier price
TIER_FALLBACK_MULTIPLIERS = {
    GroupType.duo: 2,
    GroupType.trio: 3,
}


def normalize_code(code: Optional[str]) -> Optional[str]:
    if code is None:
        return None
    code = code.strip().upper()
    return code or None


def resolve_base_price(event: models.Event, group_type: GroupType) -> int:
    """Tier price if set, else the tier fallback, else the flat price."""
    group_type = GroupType(group_type)
    tier_price = getattr(event, TIER_PRICE_COLUMNS[group_type])
    if tier_price is not None:
        return max(0, tier_price)
    flat_price = max(0, event.price_cents or 0)
    multiplier = TIER_FALLBACK_MULTIPLIERS.get(group_type)
    if multiplier is not None:
        return flat_price * multiplier
    return flat_price


def apply_discount(price: int, discount: Optional[models.Discount]) -> int:
    """Percentage first (reduction floored), then the flat amount; never below zero."""
    if discount is None:
        return price
    if discount.percentage:
        percentage = min(max(discount.percentage, 0), 100)
        price -= (price * percentage) // 100
    if discount.amount_cents:
        price -= max(discount.amount_cents, 0)
    return max(price, 0)


class DiscountLedger:
    """Discount codes for an event, with usage accounting."""

    def __init__(self, db: Session):
        self.db = db

    def lookup(self, event: models.Event, code: Optional[str]) -> Optional[models.Discount]:
        code = normalize_code(code)
        if code is None:
            return None
        return self.db.query(models.Discount).filter(
            models.Discount.event_id == event.id,
            models.Discount.code == code,
            models.Discount.active == True,
        ).first()

    def claim(self, event: models.Event, code: Optional[str]) -> Optional[models.Discount]:
        """Resolve an active code and count one use of it.

        Unknown, inactive and exhausted codes fall back to no discount. The
        caller owns the transaction; the increment is rolled back with it.
        """
        discount = self.lookup(event, code)
        if discount is None:
            if normalize_code(code):
                logger.warning(f"Discount code '{normalize_code(code)}' not active for event {event.id}; no discount applied")
            return None

        claimed = self.db.query(models.Discount).filter(
            models.Discount.id == discount.id,
            models.Discount.active == True,
            or_(models.Discount.max_uses.is_(None), models.Discount.used_count < models.Discount.max_uses),
        ).update({models.Discount.used_count: models.Discount.used_count + 1}, synchronize_session=False)
        if not claimed:
            logger.warning(f"Discount code '{discount.code}' exhausted for event {event.id}; no discount applied")
            return None

        self.db.refresh(discount)
        logger.debug(f"Claimed discount '{discount.code}' ({discount.used_count}/{discount.max_uses}) for event {event.id}")
        return discount

    def quote(self, event: models.Event, group_type: GroupType, code: Optional[str] = None) -> int:
        """Price for a tier with ``code`` applied, without counting a use."""
        return apply_discount(resolve_base_price(event, group_type), self.lookup(event, code))

    def create(self, event: models.Event, code: str, percentage: Optional[int] = None,
               amount_cents: Optional[int] = None, max_uses: Optional[int] = None) -> models.Discount:
        discount = models.Discount(
            event_id=event.id,
            code=normalize_code(code),
            percentage=percentage,
            amount_cents=amount_cents,
            max_uses=max_uses,
            active=True,
        )
        self.db.add(discount)
        self.db.commit()
        self.db.refresh(discount)
        logger.info(f"Created discount '{discount.code}' for event {event.id}")
        return discount

    def deactivate(self, discount: models.Discount) -> models.Discount:
        discount.active = False
        self.db.commit()
        self.db.refresh(discount)
        logger.info(f"Deactivated discount '{discount.code}' for event {discount.event_id}")
        return discount
