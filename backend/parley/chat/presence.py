"""In-memory presence registry.

Maps live connection ids to the identity each connection announced. Several
connections may carry the same identity (one per device). The registry is
only touched from the event loop and never suspends, so its mutations are
serialized without a lock.

Thread Safety:
    Designed for a single asyncio event loop. It is NOT thread-safe for
    concurrent access from multiple threads.
"""
import logging
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class PresenceEntry(BaseModel):
    """A connection that has announced itself.

    Attributes:
        identity: Stable user identity (e.g. email).
        displayName: Human-readable name shown in the online list.
        connectionId: Transport connection that made the announcement.
    """
    identity: str = Field(..., description="User identity")
    displayName: str = Field(..., description="Display name shown in UI")
    connectionId: str = Field(..., description="Live connection id")

    def public(self) -> dict:
        """Return the fields that are sent to other clients."""
        return {"identity": self.identity, "displayName": self.displayName}


class PresenceRegistry:
    """Registry of announced connections, in announcement order."""

    def __init__(self) -> None:
        # connection_id -> PresenceEntry (dict keeps insertion order)
        self._entries: Dict[str, PresenceEntry] = {}

    def announce(self, connection_id: str, identity: str, display_name: str) -> bool:
        """Upsert the entry for *connection_id*.

        Re-announcing from the same connection replaces the entry in place.
        Anonymous announcements (blank identity or display name) are ignored.

        Returns:
            True if the entry was stored, False if the call was a no-op.
        """
        if not identity or not identity.strip() or not display_name or not display_name.strip():
            logger.debug(f"[Presence] Ignoring anonymous announce from {connection_id}")
            return False

        self._entries[connection_id] = PresenceEntry(
            identity=identity,
            displayName=display_name,
            connectionId=connection_id,
        )
        logger.info(f"[Presence] {identity} online via {connection_id}")
        return True

    def remove(self, connection_id: str) -> bool:
        """Remove the entry for *connection_id* if there is one.

        Returns:
            True if an entry was removed, False if there was nothing to remove.
        """
        entry = self._entries.pop(connection_id, None)
        if entry is None:
            return False
        logger.info(f"[Presence] {entry.identity} offline via {connection_id}")
        return True

    def get(self, connection_id: str) -> Optional[PresenceEntry]:
        return self._entries.get(connection_id)

    def snapshot(self) -> List[PresenceEntry]:
        """Return a copy of all entries in announcement order."""
        return list(self._entries.values())

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
