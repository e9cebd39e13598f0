"""
Outbound replies to the WhatsApp bridge.
"""
from typing import Optional

import httpx

from wulang.core.logging import get_logger
from wulang.schemas.message import CONTACT_SUFFIX

logger = get_logger(__name__)


class ReplySender:
    """POSTs ``{"to", "text"}`` to the bridge's send endpoint."""

    def __init__(self, url: Optional[str], timeout: float = 10.0, client: Optional[httpx.AsyncClient] = None):
        self.url = url
        self._client = client or httpx.AsyncClient(timeout=timeout)

    @property
    def is_configured(self) -> bool:
        return bool(self.url)

    async def send_reply(self, sender_id: str, text: str) -> bool:
        if not self.url:
            logger.debug("No reply webhook configured, reply returned in response only")
            return False

        try:
            response = await self._client.post(
                self.url,
                json={"to": f"{sender_id}{CONTACT_SUFFIX}", "text": text},
            )
        except httpx.HTTPError as e:
            logger.error(
                f"Error sending reply: {e}",
                extra={"extra_data": {"sender_id": sender_id}}
            )
            return False

        if response.is_success:
            return True

        logger.warning(
            "Failed to send reply",
            extra={"extra_data": {"sender_id": sender_id, "status": response.status_code}}
        )
        return False

    async def aclose(self) -> None:
        await self._client.aclose()
