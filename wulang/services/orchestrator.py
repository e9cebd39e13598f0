"""
Per-message conversation state machine.

Each inbound message takes exactly one branch, evaluated in this order:

1. rejected       duplicate id, own message or group chat; silent
2. reset          reset keyword; delete the sender's threads and confirm
3. no trigger     plain text from a sender with no thread and nothing staged
4. pending media  text following a staged attachment; the pair becomes one turn
5. staged media   attachment without text; staged until the sender asks about it
6. normal         everything else; history window + responder + turn append

Only branches 4 and 6 call the responder and write history. Every failure is
logged and answered with a fixed apology; ``handle`` never raises. A message
that fails before a branch is chosen, such as one without a sender id, is
reported as ``invalid``.
"""
import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from wulang.core.errors import ValidationError
from wulang.core.logging import get_logger
from wulang.schemas.conversation import MediaKind, NewTurn
from wulang.services.classifier import CommandClassifier, CommandKind
from wulang.services.context import ContextAssembler
from wulang.services.dedup import DedupFilter
from wulang.services.media import MediaIngestor
from wulang.services.pending_media import PendingMedia, PendingMediaStore
from wulang.services.responder import Responder

logger = get_logger(__name__)

APOLOGY_MESSAGE = "Sorry, something went wrong while processing your message. Please try again later."


class Branch(str, Enum):
    INVALID = "invalid"
    REJECTED = "rejected"
    IGNORED = "ignored"
    RESET = "reset"
    NO_TRIGGER = "no_trigger"
    PENDING_MEDIA = "pending_media"
    STAGED_MEDIA = "staged_media"
    NORMAL = "normal"


@dataclass
class Attachment:
    payload: bytes
    filename: str
    content_type: str


@dataclass
class InboundMessage:
    message_id: str
    sender_id: str
    text: Optional[str] = None
    sender_name: Optional[str] = None
    from_me: bool = False
    is_group: bool = False
    attachment: Optional[Attachment] = None

    @property
    def clean_text(self) -> str:
        return (self.text or "").strip()


@dataclass
class ResponseDecision:
    branch: Branch
    reply: Optional[str] = None
    failed: bool = False

    @property
    def should_respond(self) -> bool:
        return self.reply is not None


def trigger_instruction(trigger_keyword: str) -> str:
    return f'Hi! How can I help? Please call me by mentioning "{trigger_keyword}" in your message.'


def clarification_prompt(content_type: str) -> str:
    noun = "image" if MediaKind.from_content_type(content_type) is MediaKind.IMAGE else "document"
    return (
        f"I've received the {noun} you sent.\n\n"
        f"What would you like to know about this {noun}? Ask me anything you want analysed."
    )


class ConversationOrchestrator:
    """Sequences dedup, classification, staging and context assembly for one message at a time."""

    def __init__(
        self,
        dedup: DedupFilter,
        classifier: CommandClassifier,
        pending_media: PendingMediaStore,
        context: ContextAssembler,
        responder: Responder,
        media: MediaIngestor,
        ai_timeout: float = 60.0,
    ):
        self.dedup = dedup
        self.classifier = classifier
        self.pending_media = pending_media
        self.context = context
        self.responder = responder
        self.media = media
        self.ai_timeout = ai_timeout
        self._lock = asyncio.Lock()

    async def handle(self, message: InboundMessage) -> ResponseDecision:
        async with self._lock:
            branch = Branch.INVALID
            try:
                branch = self._select_branch(message)
                if branch in (Branch.REJECTED, Branch.IGNORED):
                    return ResponseDecision(branch)
                reply = await self._run_branch(branch, message)
                return ResponseDecision(branch, reply=reply)
            except Exception as e:
                logger.exception(
                    f"Error handling message: {e}",
                    extra={"extra_data": {
                        "message_id": message.message_id,
                        "sender_id": message.sender_id,
                        "branch": branch.value,
                        "error_code": getattr(e, "code", type(e).__name__),
                    }}
                )
                return ResponseDecision(branch, reply=APOLOGY_MESSAGE, failed=True)

    def _select_branch(self, message: InboundMessage) -> Branch:
        if not message.sender_id:
            raise ValidationError("Sender id is required", field="sender_id")
        if not self.dedup.accept(message.message_id, message.from_me, message.is_group):
            return Branch.REJECTED

        sender_id = message.sender_id
        text = message.clean_text
        kind = self.classifier.classify(text)
        logger.debug(
            f"Classified message as {kind.value}: {text!r}",
            extra={"extra_data": {"message_id": message.message_id, "sender_id": sender_id}}
        )

        if kind is CommandKind.RESET:
            return Branch.RESET
        if message.attachment is None:
            if not text:
                return Branch.IGNORED
            if self.pending_media.has(sender_id):
                return Branch.PENDING_MEDIA
            if kind is CommandKind.PLAIN and self.context.find_thread(sender_id) is None:
                return Branch.NO_TRIGGER
            return Branch.NORMAL
        if not text:
            return Branch.STAGED_MEDIA
        return Branch.NORMAL

    async def _run_branch(self, branch: Branch, message: InboundMessage) -> str:
        sender_id = message.sender_id

        if branch is Branch.RESET:
            self.context.reset(sender_id)
            return await self._call_responder(self.responder.generate_reset_confirmation())

        if branch is Branch.NO_TRIGGER:
            logger.debug(
                "Ignoring message without trigger keyword",
                extra={"extra_data": {"sender_id": sender_id}}
            )
            return trigger_instruction(self.classifier.trigger_keyword)

        if branch is Branch.STAGED_MEDIA:
            attachment = message.attachment
            self.pending_media.stage(sender_id, PendingMedia(
                payload=attachment.payload,
                filename=attachment.filename,
                content_type=attachment.content_type,
            ))
            return clarification_prompt(attachment.content_type)

        if branch is Branch.PENDING_MEDIA:
            staged = self.pending_media.peek(sender_id)
            # Removed before any await so the entry is gone whatever the outcome
            self.pending_media.consume(sender_id)
            attachment = Attachment(staged.payload, staged.filename, staged.content_type)
            logger.info(
                "Processing pending media with follow-up question",
                extra={"extra_data": {"sender_id": sender_id, "filename": staged.filename}}
            )
            return await self._process_turn(sender_id, message.clean_text, attachment, message.sender_name)

        return await self._process_turn(
            sender_id, message.clean_text, message.attachment, message.sender_name
        )

    async def _process_turn(
        self,
        sender_id: str,
        text: str,
        attachment: Optional[Attachment],
        sender_name: Optional[str] = None,
    ) -> str:
        thread_id = self.context.find_thread(sender_id)
        history = self.context.build_context(thread_id) if thread_id else []
        known_name = self.context.sender_name(sender_id) or sender_name

        media = None
        turn = NewTurn(text=text, sender_name=known_name)
        if attachment is not None:
            media = await self.media.ingest(
                sender_id, attachment.payload, attachment.filename, attachment.content_type
            )
            turn = NewTurn(
                text=text,
                media=media,
                payload=attachment.payload,
                content_type=attachment.content_type,
                filename=attachment.filename,
                sender_name=known_name,
            )

        created = False
        try:
            reply = await self._call_responder(self.responder.generate(history, turn))

            created = thread_id is None
            if created:
                thread_id = self.context.resolve_thread(sender_id)
            self.context.append_turn(
                thread_id,
                user_text=text,
                bot_text=reply,
                user_media_id=media.id if media else None,
                media_summary=reply if media else None,
                sender_name=sender_name,
            )
        except Exception:
            # A failed turn leaves no thread, message or media behind
            if created:
                self.context.reset(sender_id)
            if media is not None:
                await self.media.discard(media)
            raise

        logger.info(
            "Processed message",
            extra={"extra_data": {
                "sender_id": sender_id,
                "thread_id": thread_id,
                "history": len(history),
                "has_media": media is not None,
            }}
        )
        return reply

    async def _call_responder(self, call) -> str:
        return await asyncio.wait_for(call, timeout=self.ai_timeout)
