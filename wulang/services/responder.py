"""
AI responder interface and an OpenAI-compatible chat completions adapter.
"""
import base64
from typing import Any, Dict, List, Optional, Protocol, Sequence

import httpx

from wulang.core.errors import AIServiceError
from wulang.core.logging import get_logger
from wulang.schemas.conversation import MediaKind, MessageRecord, MessageRole, NewTurn

logger = get_logger(__name__)

_ROLE_MAP = {
    MessageRole.USER: "user",
    MessageRole.BOT: "assistant",
    MessageRole.SYSTEM: "system",
}

RESET_PROMPT = (
    "Write a short, friendly message confirming that the conversation history "
    "has been cleared and that we can start fresh. Keep it under 60 words."
)


class Responder(Protocol):
    async def generate(self, history: Sequence[MessageRecord], new_turn: NewTurn) -> str:
        ...

    async def generate_reset_confirmation(self) -> str:
        ...


def _describe_media(record: MessageRecord) -> Optional[str]:
    if record.media is None:
        return None
    description = f"[Attached {record.media.kind.value}]"
    if record.media.summary:
        description = f"{description} {record.media.summary}"
    return description


def history_to_chat_messages(history: Sequence[MessageRecord]) -> List[Dict[str, Any]]:
    """Render stored turns as chat messages; media is replaced by its summary."""
    messages = []
    for record in history:
        parts = [part for part in (record.content, _describe_media(record)) if part]
        if not parts:
            logger.debug(f"Skipping message with no content: role={record.role.value}")
            continue
        messages.append({"role": _ROLE_MAP[record.role], "content": "\n".join(parts)})
    return messages


def new_turn_to_chat_message(turn: NewTurn) -> Dict[str, Any]:
    if turn.payload is None:
        return {"role": "user", "content": turn.text}

    kind = MediaKind.from_content_type(turn.content_type or "")
    if kind is MediaKind.IMAGE:
        encoded = base64.b64encode(turn.payload).decode("ascii")
        return {
            "role": "user",
            "content": [
                {"type": "text", "text": turn.text},
                {"type": "image_url", "image_url": {"url": f"data:{turn.content_type};base64,{encoded}"}},
            ],
        }

    name = turn.filename or "attachment"
    return {"role": "user", "content": f"{turn.text}\n\n[Attached {kind.value}: {name}]"}


class OpenAICompatibleResponder:
    """Calls ``POST {base_url}/chat/completions`` with the history window."""

    def __init__(
        self,
        api_key: Optional[str],
        model: str,
        base_url: str = "https://api.openai.com/v1",
        bot_name: str = "Wulang AI",
        timeout: float = 60.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.bot_name = bot_name
        self._client = client or httpx.AsyncClient(timeout=timeout)

    def system_prompt(self, sender_name: Optional[str] = None) -> str:
        prompt = (
            f"You are {self.bot_name}, a helpful academic writing assistant chatting over WhatsApp. "
            "Answer in the language the user writes in, keep replies concise, and use the "
            "conversation history and any attached media summaries for context."
        )
        if sender_name:
            prompt = f"{prompt} You are talking with {sender_name}; address them by name when it fits."
        return prompt

    async def generate(self, history: Sequence[MessageRecord], new_turn: NewTurn) -> str:
        messages = [{"role": "system", "content": self.system_prompt(new_turn.sender_name)}]
        messages.extend(history_to_chat_messages(history))
        messages.append(new_turn_to_chat_message(new_turn))
        return await self._complete(messages)

    async def generate_reset_confirmation(self) -> str:
        return await self._complete([
            {"role": "system", "content": self.system_prompt()},
            {"role": "user", "content": RESET_PROMPT},
        ])

    async def _complete(self, messages: List[Dict[str, Any]]) -> str:
        if not self.api_key:
            raise AIServiceError("AI responder is not configured")

        try:
            response = await self._client.post(
                f"{self.base_url}/chat/completions",
                headers={"Authorization": f"Bearer {self.api_key}"},
                json={"model": self.model, "messages": messages},
            )
            response.raise_for_status()
            content = response.json()["choices"][0]["message"]["content"]
        except httpx.HTTPError as e:
            raise AIServiceError("Chat completion request failed", {"error": str(e)}) from e
        except (KeyError, IndexError, TypeError, ValueError) as e:
            raise AIServiceError("Unexpected chat completion response", {"error": str(e)}) from e

        if not content or not content.strip():
            raise AIServiceError("Empty chat completion")

        logger.debug(
            "Chat completion received",
            extra={"extra_data": {"model": self.model, "messages": len(messages)}}
        )
        return content.strip()

    async def aclose(self) -> None:
        await self._client.aclose()
