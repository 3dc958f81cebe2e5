import base64
import hashlib
import hmac
import json
import logging
import os
from io import BytesIO
from typing import Any, Dict, Union

import qrcode

from socio.models import utcnow

logger = logging.getLogger("socio.qr_service")

REQUIRED_KEYS = ("registration_id", "event_id", "participant_email", "issued_at", "signature")


class InvalidQRCode(ValueError):
    pass


def _signing_key() -> bytes:
    secret = os.getenv("QR_SIGNING_SECRET") or os.getenv("SUPABASE_JWT_SECRET")
    if not secret:
        raise RuntimeError("QR_SIGNING_SECRET is not configured")
    return secret.encode("utf-8")


def sign_payload(registration_id: str, event_id: str, participant_email: str, issued_at: str) -> str:
    message = f"{registration_id}:{event_id}:{participant_email or ''}:{issued_at}".encode("utf-8")
    return hmac.new(_signing_key(), message, hashlib.sha256).hexdigest()


def generate_qr_code_data(registration_id: str, event_id: str, participant_email: str) -> Dict[str, str]:
    """Build the signed payload encoded in a registration's QR code."""
    issued_at = utcnow().isoformat(timespec="seconds") + "Z"
    return {
        "registration_id": registration_id,
        "event_id": event_id,
        "participant_email": participant_email or "",
        "issued_at": issued_at,
        "signature": sign_payload(registration_id, event_id, participant_email, issued_at),
    }


def verify_qr_code_data(payload: Union[str, Dict[str, Any], None]) -> Dict[str, str]:
    if payload is None:
        raise InvalidQRCode("QR code data is required")
    if isinstance(payload, str):
        try:
            payload = json.loads(payload)
        except ValueError:
            raise InvalidQRCode("QR code data is not valid JSON")
    if not isinstance(payload, dict):
        raise InvalidQRCode("QR code data must be a JSON object")
    missing = [key for key in REQUIRED_KEYS if not isinstance(payload.get(key), str)]
    if missing:
        raise InvalidQRCode(f"QR code data is missing: {', '.join(missing)}")
    expected = sign_payload(
        payload["registration_id"],
        payload["event_id"],
        payload["participant_email"],
        payload["issued_at"],
    )
    if not hmac.compare_digest(expected.encode("utf-8"), payload["signature"].encode("utf-8")):
        raise InvalidQRCode("QR code signature does not match")
    return {key: payload[key] for key in REQUIRED_KEYS}


def generate_qr_code_image(payload: Dict[str, Any]) -> str:
    """Render a payload as a PNG data URL."""
    qr = qrcode.QRCode(
        version=None,
        error_correction=qrcode.constants.ERROR_CORRECT_M,
        box_size=10,
        border=2,
    )
    qr.add_data(json.dumps(payload, separators=(",", ":")))
    qr.make(fit=True)
    img = qr.make_image(fill_color="black", back_color="white")
    buf = BytesIO()
    img.save(buf, format="PNG")
    encoded_png = base64.b64encode(buf.getvalue()).decode("utf-8")
    logger.debug(f"Rendered QR code for registration {payload.get('registration_id')}")
    return f"data:image/png;base64,{encoded_png}"
