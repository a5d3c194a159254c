"""Message relay / delivery engine.

Orchestrates the presence registry, the room key derivation, the
conversation store and the connection hub behind one method per inbound
transport event.

Protocol (events produced):
    - presence_snapshot: {users: [{identity, displayName}, ...]}
    - message_received:  {message: <persisted Message>}
    - message_deleted:   {messageId}

Error policy:
    Event handlers never raise. Invalid events, failed ownership checks and
    store failures are logged and produce no fan-out. Only the query path
    (``fetch_conversation``) lets typed errors through, for the HTTP layer.
"""
import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, List, Optional

from parley.errors import Forbidden, InvalidEvent, InvalidMessage, NotFound, StoreUnavailable

from .hub import ConnectionHub
from .presence import PresenceRegistry
from .rooms import DEFAULT_BROADCAST_ROOM, RoomKind, room_key
from .schemas import Conversation, FileDescriptor, Message, MessageDraft
from .store import ConversationStore

logger = logging.getLogger(__name__)


def _blank(value: Optional[str]) -> bool:
    return not value or not value.strip()


class DeliveryEngine:
    """Routes presence and message events to the right rooms."""

    def __init__(
        self,
        registry: PresenceRegistry,
        store: ConversationStore,
        hub: ConnectionHub,
        broadcast_room: str = DEFAULT_BROADCAST_ROOM,
    ) -> None:
        self.registry = registry
        self.store = store
        self.hub = hub
        self.broadcast_room = room_key(RoomKind.BROADCAST, broadcast_room)

        # connection_id -> identity it announced; survives logout, cleared on disconnect
        self._announced: Dict[str, str] = {}

        # room_key -> lock held from append until fan-out completes
        self._room_locks: Dict[str, asyncio.Lock] = {}
        self._room_waiters: Dict[str, int] = {}

    @asynccontextmanager
    async def _room_turn(self, key: str) -> AsyncIterator[None]:
        """Serialize commit and fan-out for one room.

        Locks exist only while someone holds or waits for them.
        """
        lock = self._room_locks.setdefault(key, asyncio.Lock())
        self._room_waiters[key] = self._room_waiters.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._room_waiters[key] -= 1
            if not self._room_waiters[key]:
                del self._room_waiters[key]
                del self._room_locks[key]

    # =========================================================================
    # Presence
    # =========================================================================

    def presence(self) -> List[dict]:
        """Current presence snapshot in its wire shape."""
        return [entry.public() for entry in self.registry.snapshot()]

    async def _broadcast_presence(self) -> None:
        await self.hub.broadcast(
            {"type": "presence_snapshot", "users": self.presence()},
            self.broadcast_room,
        )

    async def announce_presence(self, connection_id: str, identity: str, display_name: str) -> bool:
        """Register a connection's identity and broadcast the new snapshot.

        Anonymous announcements are dropped without a broadcast. A connection
        stays bound to the first identity it announced, so announcing a
        different one later is dropped too.
        """
        bound = self._announced.get(connection_id)
        if bound is not None and identity != bound:
            logger.warning(f"[Presence] Connection {connection_id} bound to {bound} announced {identity}")
            return False
        if not self.registry.announce(connection_id, identity, display_name):
            return False
        self._announced[connection_id] = identity
        self.hub.join(connection_id, self.broadcast_room)
        await self._broadcast_presence()
        return True

    async def watch_presence(self, connection_id: str) -> None:
        """Subscribe a connection to presence updates and send it the current snapshot."""
        self.hub.join(connection_id, self.broadcast_room)
        await self.hub.send(connection_id, {"type": "presence_snapshot", "users": self.presence()})

    async def logout(self, connection_id: str) -> bool:
        """Remove a connection's presence entry.

        The connection stays open and stays bound to its announced identity.
        """
        if not self.registry.remove(connection_id):
            return False
        await self._broadcast_presence()
        return True

    async def disconnect(self, connection_id: str) -> bool:
        """Clean up after a closed connection.

        The presence entry and every room membership go in the same
        synchronous step, before any broadcast suspends. Appends still in
        flight for this connection are not cancelled.
        """
        removed = self.registry.remove(connection_id)
        self._announced.pop(connection_id, None)
        self.hub.drop(connection_id)
        if removed:
            await self._broadcast_presence()
        return removed

    def identity_of(self, connection_id: str) -> Optional[str]:
        """Identity the connection announced, even after it logged out."""
        return self._announced.get(connection_id)

    # =========================================================================
    # Conversations
    # =========================================================================

    def join_conversation(self, connection_id: str, identity_a: str, identity_b: str) -> str:
        """Add a connection to the pairwise room of two identities.

        Raises:
            InvalidEvent: If either identity is blank.
        """
        key = room_key(RoomKind.PAIRWISE, identity_a, identity_b)
        self.hub.join(connection_id, key)
        logger.info(f"[Relay] Connection {connection_id} joined room {key}")
        return key

    async def on_send(
        self,
        sender: str,
        recipient: str,
        body: Optional[str] = None,
        file: Optional[FileDescriptor] = None,
        message_id: Optional[str] = None,
    ) -> Optional[Message]:
        """Persist a message and fan it out to the pair's room.

        Returns:
            The persisted message, or None if the event was rejected or the
            store failed (nothing is fanned out in that case).
        """
        if _blank(sender) or _blank(recipient):
            logger.warning("[Relay] Dropping send without sender or recipient")
            return None

        draft = MessageDraft(sender=sender, body=body, file=file, id=message_id)
        if not draft.has_content:
            logger.warning(f"[Relay] Dropping empty message from {sender} to {recipient}")
            return None

        key = room_key(RoomKind.PAIRWISE, sender, recipient)
        async with self._room_turn(key):
            try:
                message = await self.store.append(sender, recipient, draft)
            except InvalidMessage as exc:
                logger.warning(f"[Relay] Rejected message from {sender}: {exc.message}")
                return None
            except StoreUnavailable as exc:
                logger.error(f"[Relay] Could not persist message from {sender}: {exc.message}")
                return None

            delivered = await self.hub.broadcast(
                {"type": "message_received", "message": message.model_dump(mode="json")},
                key,
            )
        logger.info(f"[Relay] Message {message.id} delivered to {delivered} connection(s) in {key}")
        return message

    async def on_delete(self, message_id: str, requester: str) -> bool:
        """Delete a message if *requester* sent it, and notify the pair's room.

        Returns:
            True if the message was deleted and the notice fanned out.
        """
        if _blank(message_id) or _blank(requester):
            logger.warning("[Relay] Dropping delete without messageId or requester")
            return False

        try:
            key = await self.store.remove(message_id, requester)
        except NotFound:
            logger.info(f"[Relay] Delete of unknown message {message_id} by {requester}")
            return False
        except Forbidden:
            logger.warning(f"[Relay] Unauthorized delete of {message_id} by {requester}")
            return False
        except StoreUnavailable as exc:
            logger.error(f"[Relay] Could not delete message {message_id}: {exc.message}")
            return False

        await self.hub.broadcast({"type": "message_deleted", "messageId": message_id}, key)
        logger.info(f"[Relay] Message {message_id} deleted by {requester} in {key}")
        return True

    async def fetch_conversation(self, identity_a: str, identity_b: str) -> Conversation:
        """Return the conversation between two identities (query path).

        Raises:
            InvalidEvent: If either identity is blank.
            StoreUnavailable: If the store cannot be read.
        """
        if _blank(identity_a) or _blank(identity_b):
            raise InvalidEvent("Both identities are required")
        return await self.store.fetch(identity_a, identity_b)
