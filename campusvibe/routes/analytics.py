import logging
from io import BytesIO
from typing import Any, Dict, List

import openpyxl
from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import StreamingResponse
from openpyxl.styles import Alignment, Font, PatternFill
from sqlalchemy.orm import Session

from campusvibe import models
from campusvibe.analytics_service import AnalyticsReader
from campusvibe.auth_utils import get_db, require_operation

logger = logging.getLogger("campusvibe.routes.analytics")

router = APIRouter(prefix="/analytics", tags=["Analytics"])

HEADER_FONT = Font(bold=True, color="FFFFFF")
HEADER_FILL = PatternFill(start_color="4F46E5", end_color="4F46E5", fill_type="solid")


def get_reader(db: Session = Depends(get_db)) -> AnalyticsReader:
    return AnalyticsReader(db)


@router.get("/events/{event_uuid}", response_model=dict)
def event_summary(
    event_uuid: str,
    reader: AnalyticsReader = Depends(get_reader),
    current_user: models.User = Depends(require_operation("view_analytics")),
) -> Dict[str, Any]:
    return reader.event_summary(event_uuid, current_user)


@router.get("/overview", response_model=List[dict])
def organizer_overview(
    reader: AnalyticsReader = Depends(get_reader),
    current_user: models.User = Depends(require_operation("view_analytics")),
):
    return reader.organizer_overview(current_user)


@router.get("/dashboard", response_model=dict)
def admin_dashboard(
    reader: AnalyticsReader = Depends(get_reader),
    current_user: models.User = Depends(require_operation("admin_dashboard")),
):
    return reader.admin_dashboard(current_user)


def _write_header(ws, headers):
    ws.append(headers)
    for cell in ws[ws.max_row]:
        cell.font = HEADER_FONT
        cell.fill = HEADER_FILL
        cell.alignment = Alignment(horizontal="center")


def build_event_workbook(summary: Dict[str, Any], tickets) -> openpyxl.Workbook:
    wb = openpyxl.Workbook()
    ws = wb.active
    ws.title = "Summary"
    ws.append([summary["title"]])
    ws["A1"].font = Font(bold=True, size=14)
    ws.append([])
    _write_header(ws, ["Metric", "Value"])
    ws.append(["Capacity", summary["capacity"] if summary["capacity"] is not None else "Unlimited"])
    ws.append(["Tickets issued", summary["tickets_issued"]])
    ws.append(["Remaining", summary["remaining"] if summary["remaining"] is not None else "Unlimited"])
    for status, count in summary["tickets_by_status"].items():
        ws.append([f"Tickets {status}", count])
    ws.append(["Checked in", summary["checked_in"]])
    for source, count in summary["attendance_by_source"].items():
        ws.append([f"Attendance ({source})", count])
    ws.append([f"Revenue ({summary['currency']}, minor units)", summary["revenue_cents"]])
    ws.append(["Waitlist", summary["waitlist_size"]])
    ws.column_dimensions["A"].width = 32
    ws.column_dimensions["B"].width = 16

    if summary["discount_usage"]:
        ws.append([])
        _write_header(ws, ["Discount code", "Used", "Max uses", "Active"])
        for d in summary["discount_usage"]:
            ws.append([d["code"], d["used_count"], d["max_uses"], "yes" if d["active"] else "no"])

    ts = wb.create_sheet("Tickets")
    _write_header(ts, ["Ticket", "Holder", "Email", "Tier", "Participants", "Status",
                       "Due", "Paid", "Discount", "Checked in", "Created"])
    for t in tickets:
        names = ", ".join(p.get("name") or "-" for p in (t.participants or []))
        ts.append([
            t.uuid,
            t.user.name,
            t.user.email,
            models.GroupType(t.group_type).value,
            names,
            models.PaymentStatus(t.payment_status).value,
            t.amount_due_cents,
            t.amount_paid_cents,
            t.discount_code or "",
            "yes" if t.checked_in else "no",
            t.created_at.isoformat() if t.created_at else "",
        ])
    for column, width in zip("ABCDEFGHIJK", (38, 24, 30, 8, 40, 14, 10, 10, 12, 11, 22)):
        ts.column_dimensions[column].width = width
    return wb


# Endpoint: GET /analytics/events/{event_uuid}/report
# Description: Excel workbook with the event summary and one row per ticket.
@router.get("/events/{event_uuid}/report")
def event_report(
    event_uuid: str,
    reader: AnalyticsReader = Depends(get_reader),
    current_user: models.User = Depends(require_operation("view_analytics")),
):
    logger.debug(f"User {current_user.id} generating report for event {event_uuid}")
    summary = reader.event_summary(event_uuid, current_user)
    tickets = reader.ticket_rows(event_uuid, current_user)

    try:
        wb = build_event_workbook(summary, tickets)
        buffer = BytesIO()
        wb.save(buffer)
        buffer.seek(0)
    except Exception as e:
        logger.error(f"Error generating report for event {event_uuid}: {str(e)}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to generate report")

    filename = f"event_{event_uuid}_report.xlsx"
    logger.info(f"User {current_user.id} generated report for event {event_uuid}")
    return StreamingResponse(
        buffer,
        media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
