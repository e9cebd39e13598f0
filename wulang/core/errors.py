"""
Error taxonomy for the conversation pipeline.

Every error raised by a collaborator is recoverable at the turn level: the
orchestrator catches it and answers the sender with a fixed apology.
"""
from typing import Any, Dict, Optional


class BotError(Exception):
    """Base class for pipeline errors carrying a machine-readable code."""

    code = "BOT_ERROR"

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.context = context or {}


class ValidationError(BotError):
    """Malformed or missing required input."""

    code = "VALIDATION_ERROR"

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message, {"field": field} if field else None)


class ProcessingError(BotError):
    """Failure while orchestrating media, AI or persistence work."""

    code = "PROCESSING_ERROR"


class DatabaseError(BotError):
    """Persistence collaborator failure."""

    code = "DATABASE_ERROR"


class AIServiceError(BotError):
    """Responder collaborator failure."""

    code = "AI_SERVICE_ERROR"
