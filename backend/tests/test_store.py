"""Tests for the DuckDB-backed conversation store."""
import asyncio

import pytest

from parley.chat.schemas import FileDescriptor, MessageDraft, MessageKind
from parley.chat.store import ConversationStore
from parley.errors import Forbidden, InvalidEvent, InvalidMessage, NotFound, StoreUnavailable


def count_rows(db, table: str) -> int:
    return db.run_sync(lambda conn: conn.execute(f"SELECT count(*) FROM {table}").fetchone()[0])


class TestAppendAndFetch:

    @pytest.mark.asyncio
    async def test_append_assigns_id_and_timestamp(self, store):
        message = await store.append("alice", "bob", MessageDraft(sender="alice", body="hi"))
        assert message.id
        assert message.timestamp > 0
        assert message.kind == MessageKind.TEXT

    @pytest.mark.asyncio
    async def test_fetch_returns_appended_message_last(self, store):
        await store.append("alice", "bob", MessageDraft(sender="alice", body="first"))
        persisted = await store.append("bob", "alice", MessageDraft(sender="bob", body="second"))

        conversation = await store.fetch("alice", "bob")
        assert conversation.messages[-1] == persisted
        assert [m.body for m in conversation.messages] == ["first", "second"]

    @pytest.mark.asyncio
    async def test_fetch_is_order_independent(self, store):
        await store.append("alice", "bob", MessageDraft(sender="alice", body="hi"))
        forward = await store.fetch("alice", "bob")
        reverse = await store.fetch("bob", "alice")
        assert forward == reverse
        assert forward.participants == ["alice", "bob"]
        assert forward.roomKey == "alice-bob"

    @pytest.mark.asyncio
    async def test_fetch_unknown_pair_returns_placeholder(self, store):
        conversation = await store.fetch("alice", "carol")
        assert conversation.messages == []
        assert conversation.participants == ["alice", "carol"]
        assert conversation.roomKey == "alice-carol"
        assert conversation.lastActivity is None

    @pytest.mark.asyncio
    async def test_append_updates_last_activity(self, store):
        draft = MessageDraft(sender="alice", body="hi", timestamp=1700000000.0)
        await store.append("alice", "bob", draft)
        later = MessageDraft(sender="bob", body="hey", timestamp=1700000100.0)
        await store.append("alice", "bob", later)
        conversation = await store.fetch("alice", "bob")
        assert conversation.lastActivity == 1700000100.0

    @pytest.mark.asyncio
    async def test_file_message(self, store):
        file = FileDescriptor(url="/uploads/report.pdf", name="report.pdf", size=2048)
        message = await store.append("alice", "bob", MessageDraft(sender="alice", file=file))
        assert message.kind == MessageKind.FILE

        stored = (await store.fetch("alice", "bob")).messages[0]
        assert stored.file == file
        assert stored.body is None
        assert stored.kind == MessageKind.FILE

    @pytest.mark.asyncio
    async def test_file_message_with_caption(self, store):
        file = FileDescriptor(url="/uploads/cat.png", name="cat.png", size=10)
        message = await store.append(
            "alice", "bob", MessageDraft(sender="alice", body="look", file=file)
        )
        assert message.kind == MessageKind.FILE
        assert message.body == "look"


class TestAppendValidation:

    @pytest.mark.asyncio
    @pytest.mark.parametrize("body", [None, "", "   "])
    async def test_empty_message_rejected(self, store, db, body):
        with pytest.raises(InvalidMessage):
            await store.append("alice", "bob", MessageDraft(sender="alice", body=body))
        assert count_rows(db, "conversations") == 0

    @pytest.mark.asyncio
    async def test_body_too_long_rejected(self, db):
        store = ConversationStore(db, max_message_length=5)
        with pytest.raises(InvalidMessage):
            await store.append("alice", "bob", MessageDraft(sender="alice", body="too long"))

    @pytest.mark.asyncio
    async def test_sender_must_be_participant(self, store):
        with pytest.raises(InvalidMessage):
            await store.append("alice", "bob", MessageDraft(sender="mallory", body="hi"))

    @pytest.mark.asyncio
    async def test_blank_participant_rejected(self, store):
        with pytest.raises(InvalidEvent):
            await store.append("alice", "", MessageDraft(sender="alice", body="hi"))


class TestRedelivery:

    @pytest.mark.asyncio
    async def test_same_id_is_not_appended_twice(self, store):
        draft = MessageDraft(sender="alice", body="hi", id="msg-1")
        first = await store.append("alice", "bob", draft)
        second = await store.append("alice", "bob", draft)

        assert first == second
        assert len((await store.fetch("alice", "bob")).messages) == 1

    @pytest.mark.asyncio
    async def test_id_reused_in_other_conversation_rejected(self, store):
        await store.append("alice", "bob", MessageDraft(sender="alice", body="hi", id="msg-1"))
        with pytest.raises(InvalidMessage):
            await store.append("alice", "carol", MessageDraft(sender="alice", body="hi", id="msg-1"))


class TestFindOrCreate:

    @pytest.mark.asyncio
    async def test_creates_empty_conversation(self, store, db):
        conversation = await store.find_or_create("bob", "alice")
        assert conversation.messages == []
        assert conversation.lastActivity is not None
        assert count_rows(db, "conversations") == 1

    @pytest.mark.asyncio
    async def test_existing_conversation_is_returned(self, store, db):
        await store.append("alice", "bob", MessageDraft(sender="alice", body="hi"))
        conversation = await store.find_or_create("alice", "bob")
        assert len(conversation.messages) == 1
        assert count_rows(db, "conversations") == 1

    @pytest.mark.asyncio
    async def test_concurrent_first_appends_create_one_conversation(self, store, db):
        await asyncio.gather(*[
            store.append("alice", "bob", MessageDraft(sender="alice", body=f"a{i}"))
            for i in range(5)
        ], *[
            store.append("bob", "alice", MessageDraft(sender="bob", body=f"b{i}"))
            for i in range(5)
        ])
        assert count_rows(db, "conversations") == 1
        assert len((await store.fetch("alice", "bob")).messages) == 10


class TestRemove:

    @pytest.mark.asyncio
    async def test_sender_can_remove(self, store):
        message = await store.append("alice", "bob", MessageDraft(sender="alice", body="hi"))
        room = await store.remove(message.id, "alice")
        assert room == "alice-bob"
        assert (await store.fetch("alice", "bob")).messages == []

    @pytest.mark.asyncio
    async def test_other_participant_forbidden(self, store):
        message = await store.append("alice", "bob", MessageDraft(sender="alice", body="hi"))
        with pytest.raises(Forbidden):
            await store.remove(message.id, "bob")
        assert len((await store.fetch("alice", "bob")).messages) == 1

    @pytest.mark.asyncio
    async def test_unknown_message_not_found(self, store):
        with pytest.raises(NotFound):
            await store.remove("does-not-exist", "alice")

    @pytest.mark.asyncio
    async def test_removing_last_message_keeps_conversation(self, store, db):
        message = await store.append("alice", "bob", MessageDraft(sender="alice", body="hi"))
        await store.remove(message.id, "alice")
        conversation = await store.fetch("alice", "bob")
        assert conversation.messages == []
        assert conversation.lastActivity is not None
        assert count_rows(db, "conversations") == 1

    @pytest.mark.asyncio
    async def test_remove_only_targets_one_message(self, store):
        keep = await store.append("alice", "bob", MessageDraft(sender="alice", body="keep"))
        drop = await store.append("alice", "bob", MessageDraft(sender="alice", body="drop"))
        await store.remove(drop.id, "alice")
        assert (await store.fetch("alice", "bob")).messages == [keep]


class TestStoreUnavailable:

    @pytest.mark.asyncio
    async def test_closed_database(self, store, db):
        db.close()
        with pytest.raises(StoreUnavailable):
            await store.fetch("alice", "bob")
        with pytest.raises(StoreUnavailable):
            await store.append("alice", "bob", MessageDraft(sender="alice", body="hi"))
