"""Durable per-pair conversation store.

Database Schema:
    conversations table (one row per unordered participant pair):
        - participant_a, participant_b: Sorted pair, composite primary key
        - created_at: When the first message was appended (epoch seconds)
        - last_activity: Timestamp of the latest append (epoch seconds)

    conversation_messages table:
        - id: Message id (UUID4 unless the client supplied one), primary key
        - seq: Commit-order sequence number, defines message order
        - participant_a, participant_b: Owning conversation
        - sender, body, file_url, file_name, file_size, kind, sent_at

Conversation rows are written with an upsert keyed by the pair, never with a
read-then-insert, so two first messages racing for a new pair still end up in
one conversation.
"""
import logging
import time
import uuid
from typing import List, Optional, Tuple

import duckdb

from parley.errors import Forbidden, InvalidEvent, InvalidMessage, NotFound
from parley.storage import Database

from .rooms import pairwise_key
from .schemas import Conversation, FileDescriptor, Message, MessageDraft, MessageKind

logger = logging.getLogger(__name__)

SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS conversations (
        participant_a VARCHAR NOT NULL,
        participant_b VARCHAR NOT NULL,
        created_at DOUBLE NOT NULL,
        last_activity DOUBLE NOT NULL,
        PRIMARY KEY (participant_a, participant_b)
    )
    """,
    "CREATE SEQUENCE IF NOT EXISTS conversation_messages_seq START 1",
    """
    CREATE TABLE IF NOT EXISTS conversation_messages (
        id VARCHAR PRIMARY KEY,
        seq BIGINT NOT NULL DEFAULT nextval('conversation_messages_seq'),
        participant_a VARCHAR NOT NULL,
        participant_b VARCHAR NOT NULL,
        sender VARCHAR NOT NULL,
        body VARCHAR,
        file_url VARCHAR,
        file_name VARCHAR,
        file_size BIGINT,
        kind VARCHAR NOT NULL,
        sent_at DOUBLE NOT NULL
    )
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_messages_pair
        ON conversation_messages(participant_a, participant_b)
    """,
)

_MESSAGE_COLUMNS = "id, sender, body, file_url, file_name, file_size, kind, sent_at"

DEFAULT_MAX_MESSAGE_LENGTH = 5000


def _ordered_pair(a: str, b: str) -> Tuple[str, str]:
    if not a or not a.strip() or not b or not b.strip():
        raise InvalidEvent("Both participants are required")
    first, second = sorted((a, b))
    return first, second


def _row_to_message(row) -> Message:
    message_id, sender, body, file_url, file_name, file_size, kind, sent_at = row
    file = None
    if file_url is not None:
        file = FileDescriptor(url=file_url, name=file_name or "", size=file_size or 0)
    return Message(
        id=message_id,
        sender=sender,
        body=body,
        file=file,
        kind=MessageKind(kind),
        timestamp=sent_at,
    )


class ConversationStore:
    """Conversation persistence on top of a shared :class:`Database`."""

    def __init__(
        self,
        db: Database,
        max_message_length: int = DEFAULT_MAX_MESSAGE_LENGTH,
    ) -> None:
        self._db = db
        self._max_message_length = max_message_length
        self._db.initialize(SCHEMA)

    # -----------------------------------------------------------------------
    # Public API
    # -----------------------------------------------------------------------

    async def find_or_create(self, a: str, b: str) -> Conversation:
        """Return the conversation for the pair, creating an empty one if needed."""
        pair = _ordered_pair(a, b)
        return await self._db.run(self._find_or_create, pair)

    async def append(self, a: str, b: str, draft: MessageDraft) -> Message:
        """Append *draft* to the pair's conversation and return the stored message.

        Callers must fan out the returned message, not the draft: only the
        returned value carries the canonical id and timestamp.

        Raises:
            InvalidMessage: No body and no file, body too long, sender not a
                participant, or id already used in another conversation.
            StoreUnavailable: The database call failed.
        """
        pair = _ordered_pair(a, b)
        if not draft.has_content:
            raise InvalidMessage()
        if draft.body and len(draft.body) > self._max_message_length:
            raise InvalidMessage(
                f"Message body exceeds {self._max_message_length} characters"
            )
        if draft.sender not in pair:
            raise InvalidMessage("Sender must be a participant of the conversation")
        return await self._db.run(self._append, pair, draft)

    async def remove(self, message_id: str, requester: str) -> str:
        """Delete a message on behalf of *requester*.

        Returns:
            The pairwise room key of the conversation the message belonged to.

        Raises:
            NotFound: No message has that id.
            Forbidden: The requester is not the sender.
        """
        return await self._db.run(self._remove, message_id, requester)

    async def fetch(self, a: str, b: str) -> Conversation:
        """Return the pair's conversation, or an empty placeholder if none exists."""
        pair = _ordered_pair(a, b)
        return await self._db.run(self._fetch, pair)

    # -----------------------------------------------------------------------
    # Units of work (run inside a transaction by Database.run)
    # -----------------------------------------------------------------------

    def _find_or_create(self, conn: duckdb.DuckDBPyConnection, pair: Tuple[str, str]) -> Conversation:
        now = time.time()
        conn.execute(
            """
            INSERT INTO conversations (participant_a, participant_b, created_at, last_activity)
            VALUES (?, ?, ?, ?)
            ON CONFLICT (participant_a, participant_b) DO NOTHING
            """,
            [pair[0], pair[1], now, now],
        )
        return self._fetch(conn, pair)

    def _append(
        self,
        conn: duckdb.DuckDBPyConnection,
        pair: Tuple[str, str],
        draft: MessageDraft,
    ) -> Message:
        if draft.id:
            existing = conn.execute(
                f"SELECT participant_a, participant_b, {_MESSAGE_COLUMNS} "
                "FROM conversation_messages WHERE id = ?",
                [draft.id],
            ).fetchone()
            if existing is not None:
                if (existing[0], existing[1]) != pair:
                    raise InvalidMessage("Message id already in use")
                logger.debug("[Store] Re-delivery of message %s", draft.id)
                return _row_to_message(existing[2:])

        message = Message(
            id=draft.id or str(uuid.uuid4()),
            sender=draft.sender,
            body=draft.body,
            file=draft.file,
            kind=draft.kind,
            timestamp=draft.timestamp if draft.timestamp is not None else time.time(),
        )

        conn.execute(
            """
            INSERT INTO conversations (participant_a, participant_b, created_at, last_activity)
            VALUES (?, ?, ?, ?)
            ON CONFLICT (participant_a, participant_b)
            DO UPDATE SET last_activity = excluded.last_activity
            """,
            [pair[0], pair[1], message.timestamp, message.timestamp],
        )
        file = message.file
        conn.execute(
            """
            INSERT INTO conversation_messages
              (id, participant_a, participant_b, sender, body,
               file_url, file_name, file_size, kind, sent_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            [
                message.id, pair[0], pair[1], message.sender, message.body,
                file.url if file else None,
                file.name if file else None,
                file.size if file else None,
                message.kind.value, message.timestamp,
            ],
        )
        return message

    def _remove(self, conn: duckdb.DuckDBPyConnection, message_id: str, requester: str) -> str:
        row = conn.execute(
            "SELECT participant_a, participant_b, sender FROM conversation_messages WHERE id = ?",
            [message_id],
        ).fetchone()
        if row is None:
            raise NotFound()
        participant_a, participant_b, sender = row
        if sender != requester:
            raise Forbidden()

        conn.execute("DELETE FROM conversation_messages WHERE id = ?", [message_id])
        return pairwise_key(participant_a, participant_b)

    def _fetch(self, conn: duckdb.DuckDBPyConnection, pair: Tuple[str, str]) -> Conversation:
        row = conn.execute(
            "SELECT last_activity FROM conversations WHERE participant_a = ? AND participant_b = ?",
            [pair[0], pair[1]],
        ).fetchone()
        last_activity: Optional[float] = row[0] if row else None

        messages: List[Message] = []
        if row is not None:
            rows = conn.execute(
                f"SELECT {_MESSAGE_COLUMNS} FROM conversation_messages "
                "WHERE participant_a = ? AND participant_b = ? ORDER BY seq ASC",
                [pair[0], pair[1]],
            ).fetchall()
            messages = [_row_to_message(r) for r in rows]

        return Conversation(
            participants=list(pair),
            roomKey=pairwise_key(*pair),
            messages=messages,
            lastActivity=last_activity,
        )
