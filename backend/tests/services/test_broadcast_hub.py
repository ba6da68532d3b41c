"""
Presence tracking and event fan-out.
"""

from sharezone.services import BroadcastHub
from sharezone.services.hub import KICKED_CLOSE_CODE, ZONE_CLOSED_CODE


class FakeConnection:
    def __init__(self, conn_id, fail=False):
        self.id = conn_id
        self.fail = fail
        self.sent = []
        self.closed = None

    def send(self, message):
        if self.fail:
            raise ConnectionError("socket gone")
        self.sent.append(message)

    def close(self, code, reason):
        self.closed = (code, reason)

    def events(self):
        return [m["event"] for m in self.sent]


class TestMembership:
    """Joining and leaving a zone channel."""

    def test_joiner_gets_snapshot_and_others_are_told(self):
        hub = BroadcastHub()
        alice = FakeConnection("c1")
        bob = FakeConnection("c2")

        hub.join("z1", "alice", alice)
        hub.join("z1", "bob", bob)

        assert bob.sent[0] == {"event": "presence", "payload": {"zone_id": "z1", "usernames": ["alice", "bob"]}}
        assert alice.sent[-1] == {"event": "user_joined", "payload": {"username": "bob"}}
        assert "user_joined" not in bob.events()

    def test_presence_is_unique_and_sorted(self):
        hub = BroadcastHub()
        hub.join("z1", "carol", FakeConnection("c1"))
        hub.join("z1", "alice", FakeConnection("c2"))
        hub.join("z1", "alice", FakeConnection("c3"))

        assert hub.presence("z1") == ["alice", "carol"]
        assert hub.connection_count("z1") == 3
        assert hub.presence("other") == []

    def test_leave_is_idempotent(self):
        hub = BroadcastHub()
        alice = FakeConnection("c1")
        bob = FakeConnection("c2")
        hub.join("z1", "alice", alice)
        hub.join("z1", "bob", bob)

        assert hub.leave("z1", bob) is True
        assert hub.leave("z1", bob) is False
        assert alice.events().count("user_left") == 1
        assert hub.presence("z1") == ["alice"]


class TestBroadcast:
    """Best-effort delivery."""

    def test_broadcast_with_exclude(self):
        hub = BroadcastHub()
        alice = FakeConnection("c1")
        bob = FakeConnection("c2")
        hub.join("z1", "alice", alice)
        hub.join("z1", "bob", bob)

        delivered = hub.broadcast("z1", "chat_message", {"text": "hi"}, exclude="c1")

        assert delivered == 1
        assert bob.sent[-1] == {"event": "chat_message", "payload": {"text": "hi"}}
        assert "chat_message" not in alice.events()

    def test_zones_are_isolated(self):
        hub = BroadcastHub()
        alice = FakeConnection("c1")
        hub.join("z1", "alice", alice)
        hub.join("z2", "bob", FakeConnection("c2"))

        hub.broadcast("z2", "zone_lock_state", {"uploads_locked": True})
        assert "zone_lock_state" not in alice.events()

    def test_failing_connection_is_dropped(self):
        hub = BroadcastHub()
        alice = FakeConnection("c1")
        broken = FakeConnection("c2")
        hub.join("z1", "alice", alice)
        hub.join("z1", "mallory", broken)
        broken.fail = True

        assert hub.broadcast("z1", "zone_extended", {"expires_at": "later"}) == 1
        assert hub.connection_count("z1") == 1
        assert hub.presence("z1") == ["alice"]


class TestKick:
    """Kicks are enforced server-side."""

    def test_kick_closes_every_connection_of_user(self):
        hub = BroadcastHub()
        alice = FakeConnection("c1")
        bob_tab = FakeConnection("c2")
        bob_phone = FakeConnection("c3")
        hub.join("z1", "alice", alice)
        hub.join("z1", "bob", bob_tab)
        hub.join("z1", "bob", bob_phone)

        assert hub.kick("z1", "bob") == 2

        kicked = {"event": "user_kicked", "payload": {"zone_id": "z1", "username": "bob"}}
        assert alice.sent[-1] == kicked
        assert bob_tab.sent[-1] == kicked
        assert bob_tab.closed == (KICKED_CLOSE_CODE, "kicked")
        assert bob_phone.closed == (KICKED_CLOSE_CODE, "kicked")
        assert alice.closed is None
        assert hub.presence("z1") == ["alice"]

        # Later events no longer reach the kicked connections
        hub.broadcast("z1", "chat_message", {"text": "bye"})
        assert "chat_message" not in bob_tab.events()

    def test_kick_without_connections(self):
        hub = BroadcastHub()
        assert hub.kick("z1", "ghost") == 0


def test_close_zone_drops_everyone():
    hub = BroadcastHub()
    alice = FakeConnection("c1")
    bob = FakeConnection("c2")
    hub.join("z1", "alice", alice)
    hub.join("z1", "bob", bob)

    assert hub.close_zone("z1", "expired") == 2
    assert alice.sent[-1] == {"event": "zone_closed", "payload": {"zone_id": "z1", "reason": "expired"}}
    assert alice.closed == (ZONE_CLOSED_CODE, "expired")
    assert bob.closed == (ZONE_CLOSED_CODE, "expired")
    assert hub.connection_count("z1") == 0
