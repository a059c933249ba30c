"""
Interaction Signature Verification

The chat platform signs every interaction with Ed25519 over
``timestamp + raw body``. Requests that do not verify are rejected with 401
before the payload is parsed.
"""

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PublicKey
from fastapi import Request

from sheetqa.core.config.constants import HEADER_SIGNATURE, HEADER_SIGNATURE_TIMESTAMP, Stage
from sheetqa.core.config.settings import get_settings
from sheetqa.core.exceptions import InvalidSignatureError
from sheetqa.core.logging import get_logger, log_stage

logger = get_logger(__name__)


def verify_signature(public_key_hex: str, signature_hex: str, timestamp: str, body: bytes) -> bool:
    """Return True when ``signature_hex`` signs ``timestamp + body`` under the key."""
    try:
        public_key = Ed25519PublicKey.from_public_bytes(bytes.fromhex(public_key_hex))
        public_key.verify(bytes.fromhex(signature_hex), timestamp.encode() + body)
    except (InvalidSignature, ValueError):
        return False
    return True


async def verify_interaction_request(request: Request) -> bytes:
    """
    FastAPI dependency returning the verified raw body.

    Raises:
        InvalidSignatureError: Missing headers or bad signature
    """
    body = await request.body()
    settings = get_settings()
    if not settings.app.VERIFY_SIGNATURES:
        return body

    signature = request.headers.get(HEADER_SIGNATURE)
    timestamp = request.headers.get(HEADER_SIGNATURE_TIMESTAMP)
    if not signature or not timestamp:
        raise InvalidSignatureError("Missing signature headers")

    if not verify_signature(settings.discord.DISCORD_PUBLIC_KEY, signature, timestamp, body):
        log_stage(logger, Stage.ADMISSION, "Rejected interaction with invalid signature", level="warning")
        raise InvalidSignatureError("Bad request signature")
    return body
