"""Tests for the in-memory presence registry."""
from parley.chat.presence import PresenceRegistry


def identities(registry):
    return [(e.connectionId, e.identity) for e in registry.snapshot()]


class TestPresenceRegistry:

    def test_announce_adds_entry(self):
        registry = PresenceRegistry()
        assert registry.announce("c1", "alice@example.com", "Alice") is True
        entry = registry.get("c1")
        assert entry.identity == "alice@example.com"
        assert entry.displayName == "Alice"
        assert entry.public() == {"identity": "alice@example.com", "displayName": "Alice"}

    def test_anonymous_announce_is_noop(self):
        registry = PresenceRegistry()
        assert registry.announce("c1", "", "Alice") is False
        assert registry.announce("c1", "alice", "   ") is False
        assert registry.snapshot() == []

    def test_announce_is_idempotent(self):
        registry = PresenceRegistry()
        registry.announce("c1", "alice", "Alice")
        registry.announce("c1", "alice", "Alice")
        assert identities(registry) == [("c1", "alice")]

    def test_reannounce_keeps_position(self):
        registry = PresenceRegistry()
        registry.announce("c1", "alice", "Alice")
        registry.announce("c2", "bob", "Bob")
        registry.announce("c1", "alice", "Alice Smith")
        assert identities(registry) == [("c1", "alice"), ("c2", "bob")]
        assert registry.get("c1").displayName == "Alice Smith"

    def test_snapshot_in_insertion_order(self):
        registry = PresenceRegistry()
        for cid, name in [("c3", "carol"), ("c1", "alice"), ("c2", "bob")]:
            registry.announce(cid, name, name.title())
        assert [e.identity for e in registry.snapshot()] == ["carol", "alice", "bob"]

    def test_multiple_connections_per_identity(self):
        registry = PresenceRegistry()
        registry.announce("phone", "alice", "Alice")
        registry.announce("laptop", "alice", "Alice")
        assert len(registry) == 2
        registry.remove("phone")
        assert identities(registry) == [("laptop", "alice")]

    def test_duplicate_remove_is_tolerated(self):
        registry = PresenceRegistry()
        registry.announce("c1", "alice", "Alice")
        assert registry.remove("c1") is True
        assert registry.remove("c1") is False
        assert registry.snapshot() == []

    def test_remove_unknown_connection(self):
        assert PresenceRegistry().remove("missing") is False

    def test_last_call_wins(self):
        """Final state reflects only the last announce/remove for a connection."""
        sequences = [
            ["announce", "remove"],
            ["remove", "announce"],
            ["announce", "announce", "remove", "remove"],
            ["remove", "remove", "announce", "announce"],
            ["announce", "remove", "announce"],
        ]
        for calls in sequences:
            registry = PresenceRegistry()
            for call in calls:
                if call == "announce":
                    registry.announce("c1", "alice", "Alice")
                else:
                    registry.remove("c1")
            present = registry.get("c1") is not None
            assert present == (calls[-1] == "announce"), calls

    def test_snapshot_is_a_copy(self):
        registry = PresenceRegistry()
        registry.announce("c1", "alice", "Alice")
        snapshot = registry.snapshot()
        registry.remove("c1")
        assert len(snapshot) == 1
