import logging
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import or_
from sqlalchemy.orm import Session

from campusvibe import models, schemas
from campusvibe.auth_utils import get_current_user, get_db, get_optional_user, require_operation
from campusvibe.permissions import ensure_event_manager, is_event_manager
from campusvibe.pricing import DiscountLedger, resolve_base_price

logger = logging.getLogger("campusvibe.routes.events")

router = APIRouter(prefix="/events", tags=["Events"])


def get_event_or_404(db: Session, event_uuid: str) -> models.Event:
    event = db.query(models.Event).filter(models.Event.uuid == event_uuid).first()
    if not event:
        logger.error(f"Event {event_uuid} not found")
        raise HTTPException(status_code=404, detail="Event not found")
    return event


def _tier_values(tiers) -> List[str]:
    return [models.GroupType(t).value for t in tiers] or [models.GroupType.single.value]


@router.get("/", response_model=List[schemas.EventSchema])
def list_events(q: Optional[str] = None, category: Optional[str] = None, db: Session = Depends(get_db)):
    query = db.query(models.Event).filter(
        models.Event.visibility == "public",
        models.Event.status == models.EventStatus.published,
    )
    if q:
        like = f"%{q.strip()}%"
        query = query.filter(or_(models.Event.title.ilike(like), models.Event.description.ilike(like)))
    if category:
        query = query.filter(models.Event.category == category)
    events = query.order_by(models.Event.start_time.asc()).limit(50).all()
    logger.info(f"Fetched {len(events)} public events")
    return events


# Endpoint: GET /events/mine
# Description: Events created by the current organizer; active_only hides events that have ended.
@router.get("/mine", response_model=List[schemas.EventSchema])
def my_events(
    active_only: bool = False,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_operation("manage_event")),
):
    query = db.query(models.Event).filter(models.Event.created_by == current_user.id)
    if active_only:
        now = datetime.now()
        query = query.filter(or_(models.Event.end_time.is_(None), models.Event.end_time >= now))
    events = query.order_by(models.Event.start_time.desc()).all()
    logger.info(f"User {current_user.id} fetched {len(events)} own events")
    return events


@router.get("/{event_uuid}", response_model=schemas.EventSchema)
def get_event(
    event_uuid: str,
    db: Session = Depends(get_db),
    current_user: Optional[models.User] = Depends(get_optional_user),
):
    event = get_event_or_404(db, event_uuid)
    # Private events exist only for the people who manage them
    if event.visibility != "public" and not is_event_manager(current_user, event):
        raise HTTPException(status_code=404, detail="Event not found")
    return event


@router.get("/{event_uuid}/payment-details", response_model=schemas.PaymentDetails)
def get_payment_details(
    event_uuid: str,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    event = get_event_or_404(db, event_uuid)
    if event.visibility != "public" and not is_event_manager(current_user, event):
        holds_ticket = db.query(models.Ticket).filter(
            models.Ticket.event_id == event.id,
            models.Ticket.user_id == current_user.id,
        ).first()
        if not holds_ticket:
            raise HTTPException(status_code=404, detail="Event not found")
    return event.payment_details


# Endpoint: GET /events/{event_uuid}/quote
# Description: Price for a tier with an optional discount code, without consuming a use.
@router.get("/{event_uuid}/quote", response_model=schemas.PriceQuote)
def quote_price(
    event_uuid: str,
    group_type: models.GroupType = models.GroupType.single,
    discount_code: Optional[str] = None,
    db: Session = Depends(get_db),
):
    event = get_event_or_404(db, event_uuid)
    ledger = DiscountLedger(db)
    base_price = resolve_base_price(event, group_type)
    return {
        "group_type": group_type,
        "base_price_cents": base_price,
        "amount_due_cents": ledger.quote(event, group_type, discount_code),
        "discount_applied": ledger.lookup(event, discount_code) is not None,
    }


@router.post("/", response_model=schemas.EventSchema)
def create_event(
    payload: schemas.EventCreate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_operation("create_event")),
):
    data = payload.model_dump()
    data["allowed_tiers"] = _tier_values(payload.allowed_tiers)
    event = models.Event(**data, created_by=current_user.id, tickets_issued=0)
    db.add(event)
    db.commit()
    db.refresh(event)
    logger.info(f"User {current_user.id} created event {event.id} ({event.title})")
    return event


@router.put("/{event_uuid}", response_model=schemas.EventSchema)
def update_event(
    event_uuid: str,
    payload: schemas.EventUpdate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_operation("manage_event")),
):
    event = get_event_or_404(db, event_uuid)
    ensure_event_manager(current_user, event)

    updates = payload.model_dump(exclude_unset=True)
    if "allowed_tiers" in updates and updates["allowed_tiers"] is not None:
        updates["allowed_tiers"] = _tier_values(payload.allowed_tiers)
    for key, value in updates.items():
        setattr(event, key, value)

    db.commit()
    db.refresh(event)
    logger.info(f"User {current_user.id} updated event {event.id} fields {sorted(updates)}")
    return event


# Endpoint: DELETE /events/{event_uuid}
# Description: Owner or admin only. Dependent rows are removed before the event.
@router.delete("/{event_uuid}", response_model=schemas.MessageResponse)
def delete_event(
    event_uuid: str,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_operation("manage_event")),
):
    event = get_event_or_404(db, event_uuid)
    ensure_event_manager(current_user, event)

    try:
        db.query(models.Attendance).filter(models.Attendance.event_id == event.id).delete(synchronize_session=False)
        db.query(models.Ticket).filter(models.Ticket.event_id == event.id).delete(synchronize_session=False)
        db.query(models.Discount).filter(models.Discount.event_id == event.id).delete(synchronize_session=False)
        db.query(models.WaitlistEntry).filter(models.WaitlistEntry.event_id == event.id).delete(synchronize_session=False)
        db.delete(event)
        db.commit()
    except Exception as e:
        db.rollback()
        logger.error(f"Failed to delete event {event.id}: {str(e)}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to delete event")

    logger.info(f"User {current_user.id} deleted event {event_uuid}")
    return {"message": "Event deleted successfully"}
