"""
Outbound webhook signing - HMAC-SHA256 over the exact request body.
The receiver recomputes the digest with the shared key and compares.
"""
import hashlib
import hmac

SIGNATURE_PREFIX = "sha256="


def sign_hmac_sha256(secret: str, body: bytes, prefix: str = SIGNATURE_PREFIX) -> str:
    """Return "sha256=<hex digest>" for body."""
    digest = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()
    return f"{prefix}{digest}"
