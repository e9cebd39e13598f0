"""
HMAC-SHA256 signature validation for requests from the WhatsApp bridge.
"""
import hmac
import hashlib
from typing import Optional

from fastapi import Request, HTTPException

from wulang.core.logging import get_logger

logger = get_logger(__name__)

SIGNATURE_HEADER = "X-Signature"


def compute_signature(secret: str, body: bytes) -> str:
    """
    Compute HMAC-SHA256 signature for the given body.

    Args:
        secret: The webhook secret key
        body: Raw request body bytes

    Returns:
        Hex-encoded HMAC-SHA256 signature
    """
    return hmac.new(
        key=secret.encode("utf-8"),
        msg=body,
        digestmod=hashlib.sha256
    ).hexdigest()


def verify_signature(secret: str, body: bytes, signature: str) -> bool:
    """Verify a signature using constant-time comparison."""
    expected_signature = compute_signature(secret, body)
    return hmac.compare_digest(expected_signature, signature)


async def get_validated_body(request: Request) -> bytes:
    """
    FastAPI dependency returning the raw body once its X-Signature header checks out.

    The secret comes from the settings the application was built with.

    Raises:
        HTTPException: 401 if the signature is missing, invalid, or no secret is configured
    """
    settings = request.app.state.services.settings
    signature: Optional[str] = request.headers.get(SIGNATURE_HEADER)

    if not signature:
        logger.warning(f"Request to {request.url.path} missing {SIGNATURE_HEADER} header")
        raise HTTPException(status_code=401, detail="invalid signature")

    if not settings.is_webhook_secret_configured:
        logger.error("WEBHOOK_SECRET environment variable not configured")
        raise HTTPException(status_code=401, detail="invalid signature")

    body = await request.body()

    if not verify_signature(settings.webhook_secret, body, signature):
        logger.warning(
            "Signature verification failed",
            extra={
                "extra_data": {
                    "path": request.url.path,
                    "received_signature": signature[:16] + "...",
                }
            }
        )
        raise HTTPException(status_code=401, detail="invalid signature")

    logger.debug("Signature verified successfully")
    return body
