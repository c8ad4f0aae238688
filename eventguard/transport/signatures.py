"""Webhook signature utilities based on HMAC-SHA256.

The provider sends ``Stripe-Signature: t=<unix>,v1=<hex>[,v1=<hex>...]``
where each ``v1`` is an HMAC of ``"<t>.<raw body>"`` keyed with the
endpoint's signing secret.
"""

from __future__ import annotations

from datetime import datetime

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, hmac

from .timestamps import assert_within_tolerance

SIGNATURE_SCHEME = "v1"


class SignatureError(ValueError):
    """Raised when a webhook signature is invalid or malformed."""


def parse_signature_header(header: str) -> tuple[str, list[str]]:
    if not header:
        raise SignatureError("signature header missing")
    timestamp = ""
    signatures: list[str] = []
    for item in header.split(","):
        key, sep, value = item.strip().partition("=")
        if not sep:
            continue
        if key == "t":
            timestamp = value
        elif key == SIGNATURE_SCHEME:
            signatures.append(value)
    if not timestamp:
        raise SignatureError("signature header missing timestamp")
    if not signatures:
        raise SignatureError(f"signature header missing {SIGNATURE_SCHEME} signature")
    return timestamp, signatures


def _mac(secret: str, timestamp: str, payload: bytes) -> hmac.HMAC:
    mac = hmac.HMAC(secret.encode("utf-8"), hashes.SHA256())
    mac.update(timestamp.encode("utf-8") + b"." + payload)
    return mac


def compute_signature(payload: bytes, secret: str, timestamp: str) -> str:
    return _mac(secret, timestamp, payload).finalize().hex()


def verify_signature(
    payload: bytes,
    header: str,
    secret: str,
    *,
    tolerance_seconds: int = 300,
    now: datetime | None = None,
) -> None:
    """Validate the signature header over the raw request body."""
    if not secret:
        raise SignatureError("signing secret not configured")
    timestamp, signatures = parse_signature_header(header)
    for candidate in signatures:
        try:
            expected = bytes.fromhex(candidate)
        except ValueError:
            continue
        try:
            _mac(secret, timestamp, payload).verify(expected)
        except InvalidSignature:
            continue
        assert_within_tolerance(timestamp, tolerance_seconds=tolerance_seconds, now=now)
        return
    raise SignatureError("no signatures found matching the expected signature")


def sign_payload(payload: bytes, secret: str, timestamp: int) -> str:
    """Build a signature header, used by tests and local tooling."""
    ts = str(timestamp)
    return f"t={ts},{SIGNATURE_SCHEME}={compute_signature(payload, secret, ts)}"
