import base64
import hashlib
import hmac
import json
import logging
import os
import re
from dataclasses import dataclass
from functools import lru_cache
from io import BytesIO

import qrcode

from campusvibe.errors import InvalidCodeError

logger = logging.getLogger("campusvibe.qr_signing")

PAYLOAD_FIELDS = ("ticket_id", "event_id", "user_id", "signature")
ASCII_DIGITS = re.compile(r"[0-9]+")


def resolve_signing_secret() -> str:
    """QR_SIGNING_SECRET, falling back to JWT_SECRET outside production."""
    secret = os.getenv("QR_SIGNING_SECRET")
    if secret:
        return secret
    if os.getenv("ENVIRONMENT") == "production":
        raise RuntimeError("QR_SIGNING_SECRET must be set in production and must differ from JWT_SECRET")
    from campusvibe.auth_utils import SECRET_KEY
    logger.warning("QR_SIGNING_SECRET not set; falling back to the authentication secret")
    return SECRET_KEY


@dataclass(frozen=True)
class QRPayload:
    ticket_id: str
    event_id: str
    user_id: int
    signature: str


class QRSigner:
    """HMAC-SHA256 signing of (ticket, event, user) for scannable tickets."""

    def __init__(self, secret: str):
        if not secret:
            raise ValueError("QR signing secret must not be empty")
        self._key = secret.encode("utf-8")

    def sign(self, ticket_id: str, event_id: str, user_id) -> str:
        message = f"{ticket_id}|{event_id}|{user_id}".encode("utf-8")
        return hmac.new(self._key, message, hashlib.sha256).hexdigest()

    def build_payload(self, ticket_id: str, event_id: str, user_id: int) -> str:
        payload = {
            "ticket_id": ticket_id,
            "event_id": event_id,
            "user_id": user_id,
            "signature": self.sign(ticket_id, event_id, user_id),
        }
        return json.dumps(payload, separators=(",", ":"))

    def sign_ticket(self, ticket) -> str:
        return self.build_payload(ticket.uuid, ticket.event.uuid, ticket.user_id)

    def verify(self, payload: QRPayload) -> bool:
        expected = self.sign(payload.ticket_id, payload.event_id, payload.user_id)
        return hmac.compare_digest(expected.encode("utf-8"), payload.signature.encode("utf-8"))


def parse_payload(raw) -> QRPayload:
    """Decode a scanned string into its four fields or raise InvalidCodeError."""
    if isinstance(raw, (bytes, bytearray)):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError:
            raise InvalidCodeError()
    if not isinstance(raw, str) or not raw.strip():
        raise InvalidCodeError()
    try:
        data = json.loads(raw)
    except ValueError:
        raise InvalidCodeError()
    if not isinstance(data, dict) or any(field not in data for field in PAYLOAD_FIELDS):
        raise InvalidCodeError()

    ticket_id, event_id, user_id, signature = (data[field] for field in PAYLOAD_FIELDS)
    if not all(isinstance(v, str) and v for v in (ticket_id, event_id, signature)):
        raise InvalidCodeError()
    if isinstance(user_id, bool):
        raise InvalidCodeError()
    if isinstance(user_id, str) and ASCII_DIGITS.fullmatch(user_id):
        user_id = int(user_id)
    if not isinstance(user_id, int):
        raise InvalidCodeError()
    return QRPayload(ticket_id=ticket_id, event_id=event_id, user_id=user_id, signature=signature)


def render_qr_png(data: str) -> bytes:
    qr = qrcode.QRCode(version=None, error_correction=qrcode.constants.ERROR_CORRECT_M, box_size=8, border=4)
    qr.add_data(data)
    qr.make(fit=True)
    img = qr.make_image(fill_color="black", back_color="white")
    buffer = BytesIO()
    img.save(buffer, format="PNG")
    return buffer.getvalue()


def qr_data_url(data: str) -> str:
    encoded = base64.b64encode(render_qr_png(data)).decode("ascii")
    return f"data:image/png;base64,{encoded}"


@lru_cache()
def get_signer() -> QRSigner:
    return QRSigner(resolve_signing_secret())
