"""Tests for room key derivation."""
import pytest

from parley.chat.rooms import (
    DEFAULT_BROADCAST_ROOM,
    RoomKind,
    broadcast_key,
    pairwise_key,
    room_key,
)
from parley.errors import InvalidEvent


class TestPairwiseKey:

    @pytest.mark.parametrize("a, b", [
        ("alice", "bob"),
        ("bob@example.com", "alice@example.com"),
        ("Zed", "amy"),
        ("same", "same"),
    ])
    def test_order_independent(self, a, b):
        assert pairwise_key(a, b) == pairwise_key(b, a)

    def test_sorted_and_joined(self):
        assert pairwise_key("bob", "alice") == "alice-bob"

    def test_uppercase_sorts_before_lowercase(self):
        assert pairwise_key("amy", "Zed") == "Zed-amy"

    def test_blank_identity_rejected(self):
        with pytest.raises(InvalidEvent):
            pairwise_key("alice", "  ")


class TestRoomKey:

    def test_pairwise_dispatch(self):
        assert room_key(RoomKind.PAIRWISE, "bob", "alice") == "alice-bob"

    def test_pairwise_needs_two_identities(self):
        with pytest.raises(InvalidEvent):
            room_key(RoomKind.PAIRWISE, "alice")

    def test_broadcast_default(self):
        assert room_key(RoomKind.BROADCAST) == DEFAULT_BROADCAST_ROOM
        assert broadcast_key() == DEFAULT_BROADCAST_ROOM

    def test_broadcast_named(self):
        assert room_key(RoomKind.BROADCAST, "lobby") == "lobby"

    def test_broadcast_never_collides_with_pairwise(self):
        assert "-" not in room_key(RoomKind.BROADCAST)
        assert "-" in room_key(RoomKind.PAIRWISE, "a", "b")
