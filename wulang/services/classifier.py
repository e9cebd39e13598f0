"""
Classification of inbound text into reset command, trigger or plain text.
"""
from enum import Enum
from typing import Optional


class CommandKind(str, Enum):
    RESET = "reset"
    TRIGGER = "trigger"
    PLAIN = "plain"


class CommandClassifier:
    """
    Pure keyword classifier.

    The reset keyword must stand alone or be followed by whitespace, so
    ``"!reset please"`` resets and ``"!resetme"`` does not. The trigger is a
    plain substring search: ``"wulanguage"`` still triggers.
    """

    def __init__(self, trigger_keyword: str = "wulang", reset_keyword: str = "!reset"):
        self.trigger_keyword = trigger_keyword.strip().lower()
        self.reset_keyword = reset_keyword.strip().lower()

    def classify(self, text: Optional[str]) -> CommandKind:
        normalized = (text or "").strip().lower()

        if self.is_reset(normalized):
            return CommandKind.RESET
        if self.trigger_keyword in normalized:
            return CommandKind.TRIGGER
        return CommandKind.PLAIN

    def is_reset(self, normalized: str) -> bool:
        if normalized == self.reset_keyword:
            return True
        if not normalized.startswith(self.reset_keyword):
            return False
        return normalized[len(self.reset_keyword)].isspace()
