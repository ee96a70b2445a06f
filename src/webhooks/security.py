"""
Webhook security utilities.

Provides signature generation and verification over raw request bodies,
signing-secret generation, and secret masking for logs.
"""

import binascii
import hashlib
import hmac
import logging
import secrets
from typing import Union

logger = logging.getLogger(__name__)

SIGNATURE_PREFIX = "sha256="
SECRET_BYTES = 32

Body = Union[bytes, bytearray, str]


def _as_bytes(value: Body) -> bytes:
    if isinstance(value, str):
        return value.encode('utf-8')
    return bytes(value)


class WebhookSecurity:
    """Handles webhook security operations."""

    @staticmethod
    def generate_secret() -> str:
        """
        Generate a signing secret for a newly registered job.

        Returns:
            Hex-encoded secret carrying SECRET_BYTES bytes of entropy
        """
        return secrets.token_hex(SECRET_BYTES)

    @staticmethod
    def sign(secret: str, body: Body) -> str:
        """
        Compute the signature header value for a body.

        The body must be the exact bytes that go on the wire; signing a
        re-serialization would drift on key order or whitespace.

        Args:
            secret: Shared signing secret
            body: Raw body bytes (str is UTF-8 encoded)

        Returns:
            "sha256=" followed by the hex HMAC-SHA256 digest
        """
        digest = hmac.new(_as_bytes(secret), _as_bytes(body), hashlib.sha256).hexdigest()
        return f"{SIGNATURE_PREFIX}{digest}"

    @staticmethod
    def verify(secret: str, body: Body, provided_signature: str) -> bool:
        """
        Verify a signature header value against a body.

        Fails closed: a missing prefix, non-hex digest or wrong digest
        length returns False. Never raises.

        Args:
            secret: Shared signing secret
            body: Raw body bytes as received
            provided_signature: Signature header value

        Returns:
            True if the signature is valid
        """
        if not isinstance(provided_signature, str) or not provided_signature.startswith(SIGNATURE_PREFIX):
            return False

        try:
            provided = binascii.unhexlify(provided_signature[len(SIGNATURE_PREFIX):])
            expected = hmac.new(_as_bytes(secret), _as_bytes(body), hashlib.sha256).digest()
        except (binascii.Error, ValueError, TypeError) as e:
            logger.debug(f"Rejecting malformed signature: {e}")
            return False

        if len(provided) != len(expected):
            return False

        # Constant-time comparison to prevent timing attacks
        return hmac.compare_digest(provided, expected)

    @staticmethod
    def mask_secret(secret: str) -> str:
        """
        Mask a secret for logging/display.

        Args:
            secret: Secret to mask

        Returns:
            Masked secret string
        """
        if not secret:
            return ""

        if len(secret) <= 8:
            return "*" * len(secret)

        return secret[:4] + "*" * (len(secret) - 8) + secret[-4:]


sign = WebhookSecurity.sign
verify = WebhookSecurity.verify
generate_secret = WebhookSecurity.generate_secret
