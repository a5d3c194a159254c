"""Room key derivation.

Rooms are never stored. A room key is computed from the participants (for
1:1 conversations) or from a well-known name (for the presence broadcast),
and both ends of a conversation compute the same key without negotiation.
Membership itself is tracked by the transport (see ``hub.ConnectionHub``).
"""
from enum import Enum

from parley.errors import InvalidEvent

PAIR_SEPARATOR = "-"

DEFAULT_BROADCAST_ROOM = "presence"


class RoomKind(str, Enum):
    """Kind of fan-out grouping.

    Attributes:
        PAIRWISE: 1:1 conversation room, keyed by the sorted participant pair.
        BROADCAST: Single shared room for presence snapshots.
    """
    PAIRWISE = "pairwise"
    BROADCAST = "broadcast"


def _require_identity(identity: str) -> str:
    if not identity or not identity.strip():
        raise InvalidEvent("Identity is required")
    return identity


def pairwise_key(a: str, b: str) -> str:
    """Return the canonical room key for a conversation between *a* and *b*.

    The identities are sorted lexicographically, so
    ``pairwise_key(a, b) == pairwise_key(b, a)``.

    Raises:
        InvalidEvent: If either identity is blank.
    """
    first, second = sorted((_require_identity(a), _require_identity(b)))
    return f"{first}{PAIR_SEPARATOR}{second}"


def broadcast_key(name: str = DEFAULT_BROADCAST_ROOM) -> str:
    """Return the key of the broadcast room called *name*."""
    return _require_identity(name)


def room_key(kind: RoomKind, *parts: str) -> str:
    """Derive a room key for *kind* from *parts*.

    Pairwise rooms take exactly two identities; broadcast rooms take zero
    parts (default room) or one name.
    """
    if kind == RoomKind.PAIRWISE:
        if len(parts) != 2:
            raise InvalidEvent("A pairwise room needs exactly two identities")
        return pairwise_key(*parts)
    if len(parts) > 1:
        raise InvalidEvent("A broadcast room takes at most one name")
    return broadcast_key(*parts)
