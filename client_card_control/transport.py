"""
Pub/sub transport contract.

A transport holds one broker connection per client instance. It publishes
JSON payloads to destinations, delivers raw inbound messages for subscribed
topics, and notifies listeners whenever the connection toggles. Subscriptions
survive reconnects: implementations re-subscribe every active topic when the
connection comes back.
"""

import logging
from typing import Any, Callable, Dict, List, Union

logger = logging.getLogger(__name__)

# handler(topic, raw_payload)
MessageHandler = Callable[[str, Union[str, bytes]], None]
# listener(connected)
ConnectionListener = Callable[[bool], None]


class PubSubTransport:
    """Base class shared by the STOMP and MQTT transports."""

    def __init__(self):
        self._handlers: Dict[str, MessageHandler] = {}
        self._listeners: List[ConnectionListener] = []

    @property
    def connected(self) -> bool:
        raise NotImplementedError

    def publish(self, destination: str, payload: Dict[str, Any]) -> bool:
        """
        Publish a JSON payload, fire-and-forget.

        Returns:
            True if the message was handed to the connection, False otherwise
        """
        raise NotImplementedError

    def subscribe(self, topic: str, handler: MessageHandler) -> None:
        self._handlers[topic] = handler
        if self.connected:
            self._send_subscribe(topic)

    def unsubscribe(self, topic: str) -> None:
        if self._handlers.pop(topic, None) is not None and self.connected:
            self._send_unsubscribe(topic)

    @property
    def topics(self) -> List[str]:
        return list(self._handlers)

    def add_connection_listener(self, listener: ConnectionListener) -> None:
        self._listeners.append(listener)

    # ------------------------------------------------------------------
    # Implementation hooks
    # ------------------------------------------------------------------

    def _send_subscribe(self, topic: str) -> None:
        raise NotImplementedError

    def _send_unsubscribe(self, topic: str) -> None:
        raise NotImplementedError

    def _dispatch(self, topic: str, payload: Union[str, bytes]) -> None:
        """Route an inbound message to its topic handler."""
        handler = self._handlers.get(topic)
        if handler is None:
            logger.debug(f"No handler for topic {topic}")
            return
        try:
            handler(topic, payload)
        except Exception as e:
            logger.error(f"Error in handler for {topic}: {e}")

    def _notify_connection(self, connected: bool) -> None:
        for listener in list(self._listeners):
            try:
                listener(connected)
            except Exception as e:
                logger.error(f"Error in connection listener: {e}")
