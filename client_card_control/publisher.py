"""
Event Publisher - session, detection and gesture messages over pub/sub.

Wraps a PubSubTransport with the card game protocol:

- register / unregister a session
- announce detection start / stop
- send stabilized, admitted gestures
- decode inbound gesture and game-update notifications

Registration survives reconnects: every registered session is announced
again whenever the transport comes back.
"""

import logging
from typing import Callable, Dict, Optional, Union

from .classifier import GestureLabel
from .errors import MalformedInboundMessage, TransportUnavailable
from .message import (
    DEST_DETECT,
    DEST_REGISTER,
    DEST_START,
    DEST_STOP,
    DEST_UNREGISTER,
    TOPIC_GAME_UPDATES,
    InboundUpdate,
    detect_payload,
    session_payload,
    session_topic,
    start_payload,
)
from .transport import PubSubTransport

logger = logging.getLogger(__name__)

# callback(session_id, update)
GestureCallback = Callable[[str, InboundUpdate], None]
# callback(update)
GameCallback = Callable[[InboundUpdate], None]


class EventPublisher:
    """
    Card game protocol client on top of a pub/sub transport.

    Outbound destinations are ``destination_prefix + name`` and inbound topics
    ``topic_prefix + name``; the defaults match the backend's STOMP broker.
    """

    def __init__(
        self,
        transport: PubSubTransport,
        destination_prefix: str = "/app/tensorflow/",
        topic_prefix: str = "/topic/",
        on_gesture_update: Optional[GestureCallback] = None,
        on_game_update: Optional[GameCallback] = None,
        on_connection_change: Optional[Callable[[bool], None]] = None,
    ):
        """
        Initialize EventPublisher.

        Args:
            transport: Connected (or connecting) pub/sub transport
            destination_prefix: Prefix for outbound destinations
            topic_prefix: Prefix for inbound topics
            on_gesture_update: Callback for per-session gesture notifications
            on_game_update: Callback for broadcast game updates
            on_connection_change: Callback when the transport toggles
        """
        self.transport = transport
        self.destination_prefix = destination_prefix
        self.topic_prefix = topic_prefix
        self.on_gesture_update = on_gesture_update
        self.on_game_update = on_game_update
        self.on_connection_change = on_connection_change

        # topic -> session id
        self._sessions: Dict[str, str] = {}

        # Statistics
        self._published = 0
        self._received = 0
        self._dropped = 0

        self.transport.add_connection_listener(self._on_connection)
        self.transport.subscribe(self._topic(TOPIC_GAME_UPDATES), self._on_game_message)

    @property
    def connected(self) -> bool:
        return self.transport.connected

    def _destination(self, name: str) -> str:
        return f"{self.destination_prefix}{name}"

    def _topic(self, name: str) -> str:
        return f"{self.topic_prefix}{name}"

    def _publish(self, name: str, payload: dict) -> None:
        if not self.transport.connected:
            raise TransportUnavailable(f"Cannot publish {name}: transport not connected")
        if not self.transport.publish(self._destination(name), payload):
            raise TransportUnavailable(f"Transport refused {name}")
        self._published += 1

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    def register_session(self, session_id: str) -> None:
        """
        Subscribe to the session topic and announce the session.

        When disconnected the announcement is deferred to the next connect.
        """
        topic = self._topic(session_topic(session_id))
        self._sessions[topic] = session_id
        self.transport.subscribe(topic, self._on_session_message)

        if self.transport.connected:
            self._publish(DEST_REGISTER, session_payload(session_id))
            logger.info(f"Session registered: {session_id}")
        else:
            logger.info(f"Session {session_id} will register once connected")

    def unregister_session(self, session_id: str) -> None:
        """Announce the session is leaving. No-op when not connected."""
        topic = self._topic(session_topic(session_id))
        if self._sessions.pop(topic, None) is None:
            return
        if self.transport.connected:
            try:
                self._publish(DEST_UNREGISTER, session_payload(session_id))
                logger.info(f"Session unregistered: {session_id}")
            except TransportUnavailable as e:
                logger.warning(f"Unregister not delivered: {e}")
        self.transport.unsubscribe(topic)

    # ------------------------------------------------------------------
    # Detection lifecycle
    # ------------------------------------------------------------------

    def start_detection(self, session_id: str, camera_index: int = 0) -> None:
        """
        Announce recognition start.

        Raises:
            TransportUnavailable: if the transport is disconnected
        """
        self._publish(DEST_START, start_payload(session_id, camera_index))
        logger.info(f"Started gesture recognition for {session_id}")

    def stop_detection(self, session_id: str) -> None:
        """Announce recognition stop. No-op when not connected."""
        if not self.transport.connected:
            return
        try:
            self._publish(DEST_STOP, session_payload(session_id))
            logger.info(f"Stopped gesture recognition for {session_id}")
        except TransportUnavailable as e:
            logger.warning(f"Stop not delivered: {e}")

    def send_gesture(
        self,
        session_id: str,
        label: GestureLabel,
        game_id: Optional[str],
    ) -> None:
        """
        Send an admitted gesture to the backend, fire-and-forget.

        Raises:
            TransportUnavailable: if the transport is disconnected
        """
        self._publish(DEST_DETECT, detect_payload(session_id, label, game_id))
        logger.info(f"Sent {label.value} for session {session_id}, game {game_id}")

    # ------------------------------------------------------------------
    # Inbound
    # ------------------------------------------------------------------

    def _decode(self, topic: str, raw: Union[str, bytes]) -> Optional[InboundUpdate]:
        self._received += 1
        try:
            return InboundUpdate.from_json(raw, topic=topic)
        except MalformedInboundMessage as e:
            self._dropped += 1
            logger.warning(f"Dropping malformed message on {topic}: {e}")
            return None

    def _on_session_message(self, topic: str, raw: Union[str, bytes]) -> None:
        session_id = self._sessions.get(topic)
        if session_id is None:
            return
        update = self._decode(topic, raw)
        if update is not None and self.on_gesture_update:
            self.on_gesture_update(session_id, update)

    def _on_game_message(self, topic: str, raw: Union[str, bytes]) -> None:
        update = self._decode(topic, raw)
        if update is not None and self.on_game_update:
            self.on_game_update(update)

    def _on_connection(self, connected: bool) -> None:
        if connected:
            logger.info("Connected to broker")
            for session_id in list(self._sessions.values()):
                try:
                    self._publish(DEST_REGISTER, session_payload(session_id))
                    logger.info(f"Session registered: {session_id}")
                except TransportUnavailable as e:
                    logger.warning(f"Re-register of {session_id} failed: {e}")
        else:
            logger.warning("Disconnected from broker")

        if self.on_connection_change:
            self.on_connection_change(connected)

    def get_stats(self) -> dict:
        """Get publisher statistics."""
        return {
            "connected": self.connected,
            "sessions": len(self._sessions),
            "published": self._published,
            "received": self._received,
            "dropped": self._dropped,
        }
