# stableramp/domain/settlement/signature.py
import hashlib
import hmac
import time
from typing import List, Optional, Tuple

from stableramp.core.errors import SignatureVerificationError


def parse_signature_header(header: str) -> Tuple[Optional[int], List[str]]:
    """Split ``t=<ts>,v1=<sig>[,v1=<sig>...]`` into the timestamp and v1 signatures."""
    timestamp = None
    signatures: List[str] = []
    for part in header.split(","):
        key, _, value = part.strip().partition("=")
        if key == "t":
            try:
                timestamp = int(value)
            except ValueError:
                timestamp = None
        elif key == "v1" and value:
            signatures.append(value)
    return timestamp, signatures


def compute_signature(payload: bytes, timestamp: int, secret: str) -> str:
    signed = f"{timestamp}.".encode() + payload
    return hmac.new(secret.encode(), signed, hashlib.sha256).hexdigest()


def verify_webhook_signature(
    payload: bytes,
    header: str,
    secret: str,
    tolerance: int = 300,
    now: Optional[float] = None,
) -> int:
    """Check a processor webhook against the raw request body.

    Returns the signed timestamp. Raises SignatureVerificationError when no
    v1 signature matches or the timestamp is outside ``tolerance`` seconds.
    """
    if not secret:
        raise SignatureVerificationError("Webhook secret not configured")
    timestamp, signatures = parse_signature_header(header or "")
    if timestamp is None or not signatures:
        raise SignatureVerificationError("Malformed signature header")

    expected = compute_signature(payload, timestamp, secret)
    if not any(hmac.compare_digest(expected, candidate) for candidate in signatures):
        raise SignatureVerificationError("No signatures found matching the expected signature")

    current = time.time() if now is None else now
    if tolerance > 0 and abs(current - timestamp) > tolerance:
        raise SignatureVerificationError("Timestamp outside the tolerance zone")
    return timestamp
