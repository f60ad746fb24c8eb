import logging
from typing import List

from fastapi import APIRouter, Depends, File, HTTPException, Response, UploadFile
from sqlalchemy.orm import Session

from campusvibe import models, schemas
from campusvibe.auth_utils import get_current_user, get_db, require_operation
from campusvibe.errors import AuthorizationError
from campusvibe.qr_signing import QRSigner, get_signer, render_qr_png
from campusvibe.storage import proof_object_key, upload_to_r2
from campusvibe.ticket_service import TicketIssuer

logger = logging.getLogger("campusvibe.routes.tickets")

router = APIRouter(tags=["Tickets"])


def get_issuer(db: Session = Depends(get_db), signer: QRSigner = Depends(get_signer)) -> TicketIssuer:
    return TicketIssuer(db, signer)


# Endpoint: POST /events/{event_uuid}/register
# Description: Issues a ticket. Free tickets come back paid with a signed QR;
# paid tickets come back unpaid with the organizer's payment details.
@router.post("/events/{event_uuid}/register", response_model=schemas.TicketIssueResponse)
def register_for_event(
    event_uuid: str,
    payload: schemas.TicketRequest,
    issuer: TicketIssuer = Depends(get_issuer),
    current_user: models.User = Depends(require_operation("issue_ticket")),
):
    result = issuer.issue_ticket(
        event_uuid,
        current_user,
        payload.group_type,
        participants=[p.model_dump() for p in payload.participants],
        discount_code=payload.discount_code,
        payment_method=payload.payment_method,
    )
    return {
        "ticket": result.ticket,
        "qr_payload": result.qr_payload,
        "qr_image": result.qr_image,
        "payment_details": result.payment_details,
    }


@router.get("/tickets/mine", response_model=List[schemas.TicketSchema])
def my_tickets(
    issuer: TicketIssuer = Depends(get_issuer),
    current_user: models.User = Depends(get_current_user),
):
    tickets = issuer.tickets_for_user(current_user)
    logger.info(f"User {current_user.id} fetched {len(tickets)} tickets")
    return tickets


@router.get("/tickets/{ticket_uuid}", response_model=schemas.TicketSchema)
def get_ticket(
    ticket_uuid: str,
    issuer: TicketIssuer = Depends(get_issuer),
    current_user: models.User = Depends(get_current_user),
):
    return issuer.get_visible_ticket(ticket_uuid, current_user)


@router.get("/tickets/{ticket_uuid}/qr", responses={200: {"content": {"image/png": {}}}})
def get_ticket_qr(
    ticket_uuid: str,
    issuer: TicketIssuer = Depends(get_issuer),
    current_user: models.User = Depends(get_current_user),
):
    ticket = issuer.get_visible_ticket(ticket_uuid, current_user)
    if ticket.user_id != current_user.id:
        raise AuthorizationError("Only the ticket owner can download its QR code")
    if ticket.payment_status != models.PaymentStatus.paid or not ticket.qr_payload:
        raise HTTPException(status_code=409, detail="QR code is available once payment is complete")
    return Response(content=render_qr_png(ticket.qr_payload), media_type="image/png")


# Endpoint: POST /tickets/{ticket_uuid}/proof/upload
# Description: Stores a payment screenshot in R2 and returns its URL for the proof submission.
@router.post("/tickets/{ticket_uuid}/proof/upload", response_model=dict)
def upload_payment_proof(
    ticket_uuid: str,
    file: UploadFile = File(...),
    issuer: TicketIssuer = Depends(get_issuer),
    current_user: models.User = Depends(get_current_user),
):
    ticket = issuer.get_visible_ticket(ticket_uuid, current_user)
    if ticket.user_id != current_user.id:
        raise AuthorizationError("Only the ticket owner can upload payment proof")
    file_url = upload_to_r2(file, proof_object_key(ticket.uuid, file.filename))
    logger.info(f"User {current_user.id} uploaded payment proof for ticket {ticket.uuid}")
    return {"file_path": file_url}


@router.post("/tickets/{ticket_uuid}/proof", response_model=schemas.TicketSchema)
def submit_payment_proof(
    ticket_uuid: str,
    payload: schemas.PaymentProofRequest,
    issuer: TicketIssuer = Depends(get_issuer),
    current_user: models.User = Depends(require_operation("submit_payment_proof")),
):
    return issuer.submit_payment_proof(
        ticket_uuid, current_user, payload.transaction_reference, payload.proof_image_url
    )


@router.put("/tickets/{ticket_uuid}/review", response_model=schemas.TicketSchema)
def review_payment(
    ticket_uuid: str,
    payload: schemas.PaymentReviewRequest,
    issuer: TicketIssuer = Depends(get_issuer),
    current_user: models.User = Depends(require_operation("review_payment")),
):
    return issuer.review_payment(ticket_uuid, current_user, payload.decision, payload.reason)


@router.get("/events/{event_uuid}/pending-payments", response_model=List[schemas.TicketSchema])
def pending_payments(
    event_uuid: str,
    issuer: TicketIssuer = Depends(get_issuer),
    current_user: models.User = Depends(require_operation("review_payment")),
):
    return issuer.pending_reviews(event_uuid, current_user)
