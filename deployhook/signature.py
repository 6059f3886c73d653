"""
GitHub webhook signature verification.

GitHub signs every delivery with the shared secret:
    X-Hub-Signature-256: sha256=<hex HMAC-SHA256(secret, body)>

The HMAC is computed over the raw request bytes, before any JSON parsing.
Only the sha256 scheme is accepted; the legacy SHA-1 X-Hub-Signature header
is never consulted.
"""

import hashlib
import hmac
from dataclasses import dataclass
from enum import Enum


SIGNATURE_HEADER = "X-Hub-Signature-256"
SIGNATURE_PREFIX = "sha256="


class Reason(str, Enum):
    MISSING_HEADER = "missing-header"
    MISSING_BODY = "missing-body"
    LENGTH_MISMATCH = "length-mismatch"
    MISMATCH = "mismatch"
    OK = "ok"


@dataclass(frozen=True)
class SignatureCheck:
    valid: bool
    reason: Reason

    def __bool__(self) -> bool:
        return self.valid


def sign_payload(raw_body: bytes, secret: str) -> str:
    """Header value GitHub would send for this body."""
    digest = hmac.new(secret.encode(), raw_body, hashlib.sha256).hexdigest()
    return SIGNATURE_PREFIX + digest


def check_signature(raw_body: bytes | None, signature_header: str | None,
                    secret: str) -> SignatureCheck:
    """Verify a signature header against the raw body, with the reason."""
    if not signature_header:
        return SignatureCheck(False, Reason.MISSING_HEADER)
    if not raw_body:
        return SignatureCheck(False, Reason.MISSING_BODY)

    provided = signature_header.encode()
    expected = sign_payload(raw_body, secret).encode()

    # compare_digest only hides timing for equal-length inputs
    if len(provided) != len(expected):
        return SignatureCheck(False, Reason.LENGTH_MISMATCH)

    if not hmac.compare_digest(provided, expected):
        return SignatureCheck(False, Reason.MISMATCH)
    return SignatureCheck(True, Reason.OK)


def verify_signature(raw_body: bytes | None, signature_header: str | None,
                     secret: str) -> bool:
    return check_signature(raw_body, signature_header, secret).valid
