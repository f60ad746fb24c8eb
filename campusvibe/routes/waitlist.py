import logging
from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from campusvibe import models, schemas
from campusvibe.auth_utils import get_db, require_operation
from campusvibe.permissions import ensure_event_manager
from campusvibe.routes.events import get_event_or_404

logger = logging.getLogger("campusvibe.routes.waitlist")

router = APIRouter(prefix="/events/{event_uuid}/waitlist", tags=["Waitlist"])


@router.post("/", response_model=schemas.MessageResponse)
def join_waitlist(
    event_uuid: str,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_operation("join_waitlist")),
):
    event = get_event_or_404(db, event_uuid)
    existing = db.query(models.WaitlistEntry).filter(
        models.WaitlistEntry.event_id == event.id,
        models.WaitlistEntry.user_id == current_user.id,
    ).first()
    if existing:
        logger.info(f"User {current_user.id} already on waitlist for event {event.id}")
        return {"message": "Already on the waitlist"}

    db.add(models.WaitlistEntry(event_id=event.id, user_id=current_user.id))
    db.commit()
    logger.info(f"User {current_user.id} joined waitlist for event {event.id}")
    return {"message": "Added to the waitlist"}


@router.delete("/", response_model=schemas.MessageResponse)
def leave_waitlist(
    event_uuid: str,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_operation("join_waitlist")),
):
    event = get_event_or_404(db, event_uuid)
    entry = db.query(models.WaitlistEntry).filter(
        models.WaitlistEntry.event_id == event.id,
        models.WaitlistEntry.user_id == current_user.id,
    ).first()
    if not entry:
        return {"message": "You are not on the waitlist"}
    db.delete(entry)
    db.commit()
    logger.info(f"User {current_user.id} left waitlist for event {event.id}")
    return {"message": "Removed from the waitlist"}


@router.get("/", response_model=List[schemas.WaitlistEntrySchema])
def list_waitlist(
    event_uuid: str,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_operation("manage_event")),
):
    event = get_event_or_404(db, event_uuid)
    ensure_event_manager(current_user, event)
    entries = db.query(models.WaitlistEntry).filter(
        models.WaitlistEntry.event_id == event.id
    ).order_by(models.WaitlistEntry.created_at.asc(), models.WaitlistEntry.id.asc()).all()
    return [
        {"user_id": e.user_id, "name": e.user.name, "email": e.user.email, "created_at": e.created_at}
        for e in entries
    ]
