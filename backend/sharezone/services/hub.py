"""
In-memory presence registry and event fan-out, one channel per zone.

Membership is tracked per physical connection: the same username may hold
several connections at once (tabs, devices). Delivery is best-effort and
at-most-once; a connection whose ``send`` raises is dropped. Clients that
missed events reconcile by re-fetching the zone.

Every outgoing message has the shape ``{"event": <name>, "payload": {...}}``.
Payloads must already be JSON-ready.
"""

import logging
import threading
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Protocol

logger = logging.getLogger(__name__)

KICKED_CLOSE_CODE = 4403
ZONE_CLOSED_CODE = 4410


class Connection(Protocol):
    id: str

    def send(self, message: Dict[str, Any]) -> None:
        ...

    def close(self, code: int, reason: str) -> None:
        ...


@dataclass
class Member:
    username: str
    connection: Connection


class BroadcastHub:
    def __init__(self):
        self._lock = threading.Lock()
        self._channels: Dict[str, Dict[str, Member]] = {}

    # --- membership ---

    def join(self, zone_id: str, username: str, connection: Connection) -> None:
        with self._lock:
            channel = self._channels.setdefault(zone_id, {})
            channel[connection.id] = Member(username=username, connection=connection)
            usernames = self._usernames(channel)

        logger.info("Connection %s joined zone %s as %s", connection.id, zone_id, username)
        self._deliver(zone_id, connection, {
            "event": "presence",
            "payload": {"zone_id": zone_id, "usernames": usernames},
        })
        self.broadcast(zone_id, "user_joined", {"username": username}, exclude=connection.id)

    def leave(self, zone_id: str, connection: Connection) -> bool:
        member = self._remove(zone_id, connection.id)
        if member is None:
            return False

        logger.info("Connection %s left zone %s (%s)", connection.id, zone_id, member.username)
        self.broadcast(zone_id, "user_left", {"username": member.username})
        return True

    def presence(self, zone_id: str) -> List[str]:
        with self._lock:
            return self._usernames(self._channels.get(zone_id, {}))

    def connection_count(self, zone_id: str) -> int:
        with self._lock:
            return len(self._channels.get(zone_id, {}))

    # --- events ---

    def broadcast(
        self, zone_id: str, event: str, payload: Dict[str, Any], exclude: Optional[str] = None
    ) -> int:
        """
        Send one event to every connection of the zone except `exclude`.
        Returns the number of connections it was handed to.
        """
        message = {"event": event, "payload": payload}
        with self._lock:
            members = list(self._channels.get(zone_id, {}).values())

        delivered = 0
        for member in members:
            if member.connection.id == exclude:
                continue
            if self._deliver(zone_id, member.connection, message):
                delivered += 1
        return delivered

    def kick(self, zone_id: str, username: str) -> int:
        """
        Tell the channel that `username` was removed, then close every one of
        its connections server-side instead of trusting the client to leave.
        """
        self.broadcast(zone_id, "user_kicked", {"zone_id": zone_id, "username": username})

        with self._lock:
            channel = self._channels.get(zone_id, {})
            kicked = [m for m in channel.values() if m.username == username]
            for member in kicked:
                channel.pop(member.connection.id, None)
            if not channel:
                self._channels.pop(zone_id, None)

        for member in kicked:
            self._close(member.connection, KICKED_CLOSE_CODE, "kicked")
        if kicked:
            logger.info("Closed %d connection(s) of kicked user %s in zone %s", len(kicked), username, zone_id)
        return len(kicked)

    def close_zone(self, zone_id: str, reason: str) -> int:
        self.broadcast(zone_id, "zone_closed", {"zone_id": zone_id, "reason": reason})

        with self._lock:
            channel = self._channels.pop(zone_id, {})

        for member in channel.values():
            self._close(member.connection, ZONE_CLOSED_CODE, reason)
        return len(channel)

    # --- internals ---

    @staticmethod
    def _usernames(channel: Dict[str, Member]) -> List[str]:
        return sorted({m.username for m in channel.values()})

    def _remove(self, zone_id: str, connection_id: str) -> Optional[Member]:
        with self._lock:
            channel = self._channels.get(zone_id)
            if not channel:
                return None
            member = channel.pop(connection_id, None)
            if not channel:
                self._channels.pop(zone_id, None)
            return member

    def _deliver(self, zone_id: str, connection: Connection, message: Dict[str, Any]) -> bool:
        try:
            connection.send(message)
            return True
        except Exception:
            logger.warning(
                "Dropping connection %s from zone %s: delivery of %s failed",
                connection.id, zone_id, message.get("event"), exc_info=True,
            )
            self._remove(zone_id, connection.id)
            return False

    def _close(self, connection: Connection, code: int, reason: str) -> None:
        try:
            connection.close(code, reason)
        except Exception:
            logger.warning("Failed to close connection %s", connection.id, exc_info=True)
