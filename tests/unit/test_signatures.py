from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from eventguard.transport.signatures import (
    SignatureError,
    compute_signature,
    parse_signature_header,
    sign_payload,
    verify_signature,
)
from eventguard.transport.timestamps import TimestampError

SECRET = "whsec_test_secret"
BODY = b'{"id":"evt_123","type":"invoice.paid","data":{"object":{}}}'
NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
TS = int(NOW.timestamp())


def test_valid_signature_accepted():
    header = sign_payload(BODY, SECRET, TS)
    verify_signature(BODY, header, SECRET, now=NOW)


def test_any_matching_v1_signature_is_enough():
    good = compute_signature(BODY, SECRET, str(TS))
    header = f"t={TS},v1={'0' * 64},v0=ignored,v1={good}"
    verify_signature(BODY, header, SECRET, now=NOW)


def test_tampered_body_rejected():
    header = sign_payload(BODY, SECRET, TS)
    with pytest.raises(SignatureError, match="no signatures"):
        verify_signature(BODY + b" ", header, SECRET, now=NOW)


def test_wrong_secret_rejected():
    header = sign_payload(BODY, "whsec_other", TS)
    with pytest.raises(SignatureError):
        verify_signature(BODY, header, SECRET, now=NOW)


def test_stale_timestamp_rejected():
    header = sign_payload(BODY, SECRET, TS)
    with pytest.raises(TimestampError):
        verify_signature(
            BODY, header, SECRET, tolerance_seconds=300, now=NOW + timedelta(minutes=6)
        )


def test_zero_tolerance_disables_timestamp_check():
    header = sign_payload(BODY, SECRET, TS)
    verify_signature(BODY, header, SECRET, tolerance_seconds=0, now=NOW + timedelta(days=30))


def test_missing_secret_rejected():
    with pytest.raises(SignatureError, match="not configured"):
        verify_signature(BODY, sign_payload(BODY, SECRET, TS), "")


@pytest.mark.parametrize(
    "header",
    ["", "v1=abcd", f"t={TS}", "garbage"],
)
def test_malformed_headers_rejected(header):
    with pytest.raises(SignatureError):
        parse_signature_header(header)
