import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from campusvibe import models, schemas
from campusvibe.auth_utils import get_db, require_operation
from campusvibe.permissions import ensure_event_manager
from campusvibe.pricing import DiscountLedger, normalize_code
from campusvibe.routes.events import get_event_or_404

logger = logging.getLogger("campusvibe.routes.discounts")

router = APIRouter(prefix="/events/{event_uuid}/discounts", tags=["Discounts"])


@router.get("/", response_model=List[schemas.DiscountSchema])
def list_discounts(
    event_uuid: str,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_operation("manage_discounts")),
):
    event = get_event_or_404(db, event_uuid)
    ensure_event_manager(current_user, event)
    return db.query(models.Discount).filter(
        models.Discount.event_id == event.id
    ).order_by(models.Discount.created_at.asc()).all()


@router.post("/", response_model=schemas.DiscountSchema)
def create_discount(
    event_uuid: str,
    payload: schemas.DiscountCreate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_operation("manage_discounts")),
):
    event = get_event_or_404(db, event_uuid)
    ensure_event_manager(current_user, event)

    code = normalize_code(payload.code)
    if not code:
        raise HTTPException(status_code=400, detail="Discount code is required")
    if payload.percentage is None and payload.amount_cents is None:
        raise HTTPException(status_code=400, detail="Set a percentage or a flat amount")

    existing = db.query(models.Discount).filter(
        models.Discount.event_id == event.id,
        models.Discount.code == code,
    ).first()
    if existing:
        logger.error(f"Discount code {code} already exists for event {event.id}")
        raise HTTPException(status_code=409, detail="Discount code already exists for this event")

    return DiscountLedger(db).create(
        event, code,
        percentage=payload.percentage,
        amount_cents=payload.amount_cents,
        max_uses=payload.max_uses,
    )


@router.delete("/{code}", response_model=schemas.DiscountSchema)
def deactivate_discount(
    event_uuid: str,
    code: str,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_operation("manage_discounts")),
):
    event = get_event_or_404(db, event_uuid)
    ensure_event_manager(current_user, event)

    discount = db.query(models.Discount).filter(
        models.Discount.event_id == event.id,
        models.Discount.code == normalize_code(code),
    ).first()
    if not discount:
        raise HTTPException(status_code=404, detail="Discount not found")
    return DiscountLedger(db).deactivate(discount)
