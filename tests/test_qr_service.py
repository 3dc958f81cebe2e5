import base64
import json

import pytest

from socio.qr_service import (
    InvalidQRCode,
    generate_qr_code_data,
    generate_qr_code_image,
    verify_qr_code_data,
)


def test_payload_is_signed_and_verifiable():
    payload = generate_qr_code_data("a" * 32, "event-1", "student@campus.edu")

    assert payload["issued_at"].endswith("Z")
    assert len(payload["signature"]) == 64
    assert verify_qr_code_data(payload) == payload
    assert verify_qr_code_data(json.dumps(payload)) == payload


@pytest.mark.parametrize("field", ["registration_id", "event_id", "participant_email", "issued_at"])
def test_any_tampered_field_breaks_the_signature(field):
    payload = generate_qr_code_data("a" * 32, "event-1", "student@campus.edu")
    payload[field] = payload[field] + "x"
    with pytest.raises(InvalidQRCode, match="signature"):
        verify_qr_code_data(payload)


def test_payload_signed_with_another_key_is_rejected(monkeypatch):
    payload = generate_qr_code_data("a" * 32, "event-1", "student@campus.edu")
    monkeypatch.setenv("QR_SIGNING_SECRET", "rotated-secret-0123456789abcdefghij")
    with pytest.raises(InvalidQRCode):
        verify_qr_code_data(payload)


@pytest.mark.parametrize("bad", [None, "not json", "[1, 2]", {"registration_id": "x"}])
def test_malformed_payloads(bad):
    with pytest.raises(InvalidQRCode):
        verify_qr_code_data(bad)


def test_qr_image_is_png_data_url():
    image = generate_qr_code_image(generate_qr_code_data("b" * 32, "event-2", "x@campus.edu"))

    prefix = "data:image/png;base64,"
    assert image.startswith(prefix)
    assert base64.b64decode(image[len(prefix):]).startswith(b"\x89PNG")


def test_non_ascii_signature_is_rejected():
    payload = generate_qr_code_data("a" * 32, "event-1", "student@campus.edu")
    payload["signature"] = "é" * 64
    with pytest.raises(InvalidQRCode, match="signature"):
        verify_qr_code_data(payload)
