import logging
from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from campusvibe import models, schemas
from campusvibe.attendance_service import AttendanceVerifier
from campusvibe.auth_utils import get_db, require_operation
from campusvibe.qr_signing import QRSigner, get_signer

logger = logging.getLogger("campusvibe.routes.attendance")

router = APIRouter(prefix="/attendance", tags=["Attendance"])


def get_verifier(db: Session = Depends(get_db), signer: QRSigner = Depends(get_signer)) -> AttendanceVerifier:
    return AttendanceVerifier(db, signer)


# Endpoint: POST /attendance/scan
# Description: Verifies a scanned ticket QR and checks the holder in once; repeat scans report already=true.
@router.post("/scan", response_model=schemas.CheckInResponse)
def scan_ticket(
    payload: schemas.ScanRequest,
    verifier: AttendanceVerifier = Depends(get_verifier),
    current_user: models.User = Depends(require_operation("scan_check_in")),
):
    return verifier.scan_check_in(payload.code, current_user)


@router.post("/manual", response_model=schemas.AttendanceSchema)
def manual_check_in(
    payload: schemas.ManualCheckInRequest,
    verifier: AttendanceVerifier = Depends(get_verifier),
    current_user: models.User = Depends(require_operation("manual_check_in")),
):
    return verifier.manual_check_in(payload.event_id, payload.user_id, payload.present, current_user)


@router.get("/events/{event_uuid}", response_model=List[schemas.AttendanceOverviewRow])
def event_attendance(
    event_uuid: str,
    verifier: AttendanceVerifier = Depends(get_verifier),
    current_user: models.User = Depends(require_operation("view_attendance")),
):
    rows = verifier.attendance_overview(event_uuid, current_user)
    logger.info(f"User {current_user.id} fetched attendance for event {event_uuid} ({len(rows)} attendees)")
    return rows
