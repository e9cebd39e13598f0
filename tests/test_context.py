"""
Tests for the conversation repository and the context assembler.
"""
import pytest

from wulang.core.errors import DatabaseError, ValidationError
from wulang.schemas.conversation import MediaKind, MessageRole
from wulang.services.context import ContextAssembler


@pytest.fixture
def assembler(repository):
    return ContextAssembler(repository, window_size=10)


def add_turns(assembler, thread_id, count, prefix="q"):
    for i in range(count):
        assembler.append_turn(thread_id, user_text=f"{prefix}{i}", bot_text=f"a{i}")


class TestResolveThread:
    """Tests for thread resolution."""

    def test_creates_thread_for_new_sender(self, assembler, repository):
        thread_id = assembler.resolve_thread("6281111")
        assert thread_id
        assert repository.find_active_thread("6281111") == thread_id

    def test_reuses_existing_thread(self, assembler):
        first = assembler.resolve_thread("6281111")
        assert assembler.resolve_thread("6281111") == first

    def test_most_recently_updated_thread_is_active(self, assembler, repository):
        older = repository.create_thread("6281111")
        newer = repository.create_thread("6281111")
        add_turns(assembler, older, 1)

        assert assembler.resolve_thread("6281111") == older
        assert newer != older

    def test_empty_sender_is_rejected(self, assembler):
        with pytest.raises(ValidationError):
            assembler.resolve_thread("")

    def test_find_thread_does_not_create(self, assembler, repository):
        assert assembler.find_thread("6281111") is None
        assert repository.list_threads_for_sender("6281111") == []


class TestBuildContext:
    """Tests for the sliding history window."""

    def test_new_thread_has_empty_window(self, assembler):
        thread_id = assembler.resolve_thread("6281111")
        assert assembler.build_context(thread_id) == []

    def test_window_is_bounded_and_oldest_first(self, assembler):
        thread_id = assembler.resolve_thread("6281111")
        add_turns(assembler, thread_id, 4)

        window = assembler.build_context(thread_id, window_size=3)

        assert [m.content for m in window] == ["a2", "q3", "a3"]
        assert [m.role for m in window] == [MessageRole.BOT, MessageRole.USER, MessageRole.BOT]

    def test_default_window_size_applies(self, repository):
        assembler = ContextAssembler(repository, window_size=4)
        thread_id = assembler.resolve_thread("6281111")
        add_turns(assembler, thread_id, 5)

        assert len(assembler.build_context(thread_id)) == 4
        assert repository.count_messages(thread_id) == 10

    def test_window_never_mixes_threads(self, assembler):
        mine = assembler.resolve_thread("6281111")
        theirs = assembler.resolve_thread("6282222")
        add_turns(assembler, mine, 2, prefix="mine")
        add_turns(assembler, theirs, 2, prefix="theirs")

        window = assembler.build_context(mine)

        assert len(window) == 4
        assert all(m.conversation_id == mine for m in window)

    def test_window_carries_media_records(self, assembler, repository):
        thread_id = assembler.resolve_thread("6281111")
        media = repository.create_media("6281111", "/tmp/x.png", MediaKind.IMAGE)
        assembler.append_turn(
            thread_id, user_text="what is it?", bot_text="a cat",
            user_media_id=media.id, media_summary="a cat",
        )

        user_turn = assembler.build_context(thread_id)[0]

        assert user_turn.media.id == media.id
        assert user_turn.media.kind is MediaKind.IMAGE
        assert user_turn.media.summary == "a cat"


class TestAppendTurn:
    """Tests for paired user/bot appends."""

    def test_appends_user_then_bot(self, assembler):
        thread_id = assembler.resolve_thread("6281111")
        user, bot = assembler.append_turn(thread_id, user_text="hi", bot_text="hello")

        assert (user.role, bot.role) == (MessageRole.USER, MessageRole.BOT)
        assert user.created_at < bot.created_at

    def test_touches_thread_activity(self, assembler, repository):
        thread_id = assembler.resolve_thread("6281111")
        before = repository.list_threads_for_sender("6281111")[0]["updated_at"]
        assembler.append_turn(thread_id, user_text="hi", bot_text="hello")
        after = repository.list_threads_for_sender("6281111")[0]["updated_at"]

        assert after > before

    def test_unknown_thread_writes_nothing(self, assembler, repository):
        with pytest.raises(DatabaseError):
            assembler.append_turn("missing-thread", user_text="hi", bot_text="hello")
        assert repository.stats()["total_messages"] == 0

    def test_registers_sender_name_once(self, assembler, repository):
        thread_id = assembler.resolve_thread("6281111")
        assembler.append_turn(thread_id, user_text="hi", bot_text="hello", sender_name="  Siti ")
        assembler.append_turn(thread_id, user_text="hi", bot_text="hello", sender_name="Someone else")

        assert assembler.sender_name("6281111") == "Siti"
        assert assembler.sender_name("6282222") is None

    def test_invalid_bot_turn_rolls_back_user_turn(self, assembler, repository):
        """The two turns are stored together or not at all."""
        thread_id = assembler.resolve_thread("6281111")
        with pytest.raises(ValidationError):
            assembler.append_turn(thread_id, user_text="hi", bot_text="")
        assert repository.count_messages(thread_id) == 0


class TestReset:
    """Tests for deleting a sender's threads."""

    def test_reset_deletes_all_threads_and_messages(self, assembler, repository):
        first = assembler.resolve_thread("6281111")
        add_turns(assembler, first, 2)
        repository.create_thread("6281111")

        assert assembler.reset("6281111") == 2
        assert repository.list_threads_for_sender("6281111") == []
        assert repository.count_messages(first) == 0

    def test_reset_leaves_other_senders_alone(self, assembler, repository):
        other = assembler.resolve_thread("6282222")
        add_turns(assembler, other, 1)
        assembler.resolve_thread("6281111")

        assembler.reset("6281111")

        assert repository.count_messages(other) == 2

    def test_new_thread_after_reset_has_new_id(self, assembler):
        before = assembler.resolve_thread("6281111")
        assembler.reset("6281111")
        assert assembler.resolve_thread("6281111") != before
