"""
Shared fixtures: a throwaway SQLite database per test and fake collaborators.
"""
import asyncio

import pytest

from wulang.container import build_services
from wulang.core.config import Settings
from wulang.core.database import init_db
from wulang.services.transport import ReplySender

TEST_SECRET = "test-secret-key-12345"

# 1x1 transparent PNG
PNG_BYTES = bytes.fromhex(
    "89504e470d0a1a0a0000000d4948445200000001000000010806000000"
    "1f15c4890000000d49444154789c6360000002000154a24f5d0000000049454e44ae426082"
)


class FakeResponder:
    """Records every call and answers with numbered replies."""

    def __init__(self):
        self.calls = []
        self.reset_calls = 0
        self.error = None
        self.delay = 0.0

    async def generate(self, history, new_turn):
        self.calls.append((list(history), new_turn))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return f"reply {len(self.calls)}"

    async def generate_reset_confirmation(self):
        self.reset_calls += 1
        if self.error is not None:
            raise self.error
        return "Your conversation history has been cleared."


def make_settings(tmp_path, **overrides) -> Settings:
    values = dict(
        webhook_secret=TEST_SECRET,
        database_url=f"sqlite:///{tmp_path / 'test_wulang.db'}",
        media_dir=str(tmp_path / "media"),
        log_level="DEBUG",
        log_format="text",
        reply_webhook_url=None,
    )
    values.update(overrides)
    return Settings(**values)


@pytest.fixture
def settings(tmp_path):
    return make_settings(tmp_path)


@pytest.fixture
def responder():
    return FakeResponder()


@pytest.fixture
def services(settings, responder):
    """Fully wired services on a fresh database."""
    built = build_services(settings, responder=responder, reply_sender=ReplySender(None))
    init_db(built.engine)
    yield built
    built.engine.dispose()


@pytest.fixture
def repository(services):
    return services.repository


@pytest.fixture
def orchestrator(services):
    return services.orchestrator
