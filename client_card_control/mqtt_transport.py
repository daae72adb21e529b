"""
MQTT transport for brokers that bridge the card game topics.

Handles:
- Publishing JSON payloads to outbound destinations
- Subscribing to inbound topics (re-subscribed on every reconnect)
- Handing inbound messages from paho's network thread to the asyncio loop
"""

import asyncio
import json
import logging
import time
from typing import Any, Dict, Optional

import paho.mqtt.client as mqtt

from .transport import PubSubTransport

logger = logging.getLogger(__name__)


class MqttTransport(PubSubTransport):
    """
    Pub/sub transport over an MQTT broker.

    paho runs its network loop in a background thread and reconnects on its
    own. When an event loop is given, inbound messages and connection changes
    are delivered on that loop so session state is only touched from one
    thread.
    """

    def __init__(
        self,
        host: str = "localhost",
        port: int = 1883,
        client_id: Optional[str] = None,
        qos: int = 1,
        keepalive: int = 60,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ):
        """
        Initialize MQTT transport.

        Args:
            host: MQTT broker host
            port: MQTT broker port
            client_id: MQTT client id (generated if None)
            qos: QoS level for publish and subscribe
            keepalive: Keepalive interval in seconds
            loop: Event loop to deliver callbacks on (None = paho thread)
        """
        super().__init__()
        self.host = host
        self.port = port
        self.client_id = client_id or f"card_control_client_{int(time.time())}"
        self.qos = qos
        self.keepalive = keepalive
        self.loop = loop

        # MQTT client
        self._client: Optional[mqtt.Client] = None
        self._connected = False
        self._running = False

        # Statistics
        self._messages_sent = 0
        self._messages_failed = 0
        self._messages_received = 0
        self._last_send_time: Optional[float] = None

    def start(self, timeout_seconds: float = 5.0) -> bool:
        """
        Start the MQTT transport.

        Returns:
            True if connected within the timeout, False otherwise. paho keeps
            retrying in the background either way.
        """
        if self._running:
            return True

        try:
            self._client = mqtt.Client(
                mqtt.CallbackAPIVersion.VERSION2,
                client_id=self.client_id,
            )

            self._client.on_connect = self._on_connect
            self._client.on_disconnect = self._on_disconnect
            self._client.on_message = self._on_message
            self._client.reconnect_delay_set(min_delay=1, max_delay=30)

            logger.info(f"Connecting to MQTT broker at {self.host}:{self.port}")
            self._client.connect_async(self.host, self.port, keepalive=self.keepalive)

            # Start loop in background thread
            self._running = True
            self._client.loop_start()

            deadline = time.monotonic() + timeout_seconds
            while not self._connected and time.monotonic() < deadline:
                time.sleep(0.1)

            if not self._connected:
                logger.warning("MQTT connection timeout - will keep retrying")
                return False

            return True

        except Exception as e:
            logger.error(f"Failed to start MQTT transport: {e}")
            return False

    def stop(self) -> None:
        """Stop the MQTT transport."""
        if not self._running:
            return

        self._running = False

        if self._client:
            self._client.disconnect()
            self._client.loop_stop()
            self._client = None

        self._connected = False
        logger.info("MQTT transport stopped")

    @property
    def connected(self) -> bool:
        """Check if connected to MQTT broker."""
        return self._connected

    def publish(self, destination: str, payload: Dict[str, Any]) -> bool:
        if not self._connected or not self._client:
            self._messages_failed += 1
            return False

        try:
            info = self._client.publish(destination, json.dumps(payload), qos=self.qos)
        except Exception as e:
            self._messages_failed += 1
            logger.error(f"Failed to publish to {destination}: {e}")
            return False

        if info.rc != mqtt.MQTT_ERR_SUCCESS:
            self._messages_failed += 1
            logger.warning(f"Publish to {destination} failed with rc={info.rc}")
            return False

        self._messages_sent += 1
        self._last_send_time = time.time()
        logger.debug(f"Published to {destination}: {payload}")
        return True

    def _send_subscribe(self, topic: str) -> None:
        if self._client:
            self._client.subscribe(topic, qos=self.qos)
            logger.info(f"Subscribed to {topic}")

    def _send_unsubscribe(self, topic: str) -> None:
        if self._client:
            self._client.unsubscribe(topic)

    def _call(self, fn, *args) -> None:
        """Run fn on the configured event loop, or inline without one."""
        if self.loop is not None and not self.loop.is_closed():
            self.loop.call_soon_threadsafe(fn, *args)
        else:
            fn(*args)

    def _on_connect(self, client, userdata, flags, reason_code, properties=None):
        """MQTT connection callback."""
        if reason_code.is_failure:
            logger.error(f"MQTT connection failed: {reason_code}")
            return

        self._connected = True
        logger.info("Connected to MQTT broker")

        for topic in self.topics:
            self._send_subscribe(topic)

        self._call(self._notify_connection, True)

    def _on_disconnect(self, client, userdata, flags, reason_code, properties=None):
        """MQTT disconnection callback."""
        self._connected = False
        if reason_code.is_failure:
            logger.warning(f"Unexpected MQTT disconnection: {reason_code}")
        else:
            logger.info("Disconnected from MQTT broker")
        self._call(self._notify_connection, False)

    def _on_message(self, client, userdata, msg):
        """MQTT message callback."""
        self._messages_received += 1
        self._call(self._dispatch, msg.topic, msg.payload)

    def get_stats(self) -> dict:
        """Get transport statistics."""
        return {
            "connected": self._connected,
            "messages_sent": self._messages_sent,
            "messages_failed": self._messages_failed,
            "messages_received": self._messages_received,
            "last_send_time": self._last_send_time,
            "subscriptions": len(self.topics),
        }
