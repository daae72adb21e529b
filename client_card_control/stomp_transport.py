"""
STOMP-over-WebSocket transport.

Handles:
- Async WebSocket connection to the backend's STOMP endpoint
- STOMP CONNECT handshake and re-subscription of every topic on connect
- Exponential backoff reconnection
- Message queue for decoupled, fire-and-forget sending
- Clean shutdown with a final DISCONNECT frame
"""

import asyncio
import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional
from urllib.parse import urlparse

from websockets.asyncio.client import ClientConnection, connect
from websockets.exceptions import ConnectionClosed, InvalidStatus, WebSocketException

from .stomp import (
    StompError,
    connect_frame,
    disconnect_frame,
    parse_frames,
    send_frame,
    subscribe_frame,
    unsubscribe_frame,
)
from .transport import PubSubTransport

logger = logging.getLogger(__name__)

STOMP_SUBPROTOCOLS = ["v12.stomp", "v11.stomp", "v10.stomp"]


@dataclass
class ConnectionStats:
    """Statistics about the broker connection."""
    connected: bool = False
    connect_time: Optional[float] = None
    disconnect_time: Optional[float] = None
    reconnect_attempts: int = 0
    messages_sent: int = 0
    messages_failed: int = 0
    messages_received: int = 0
    last_send_time: Optional[float] = None


class StompTransport(PubSubTransport):
    """
    STOMP client over WebSocket with automatic reconnection.

    Features:
    - Exponential backoff on connection failure (1s -> 30s max)
    - Non-blocking publishing via queue
    - Subscriptions restored on every reconnect
    """

    def __init__(
        self,
        server_url: str,
        max_backoff_seconds: float = 30.0,
        initial_backoff_seconds: float = 1.0,
        connect_timeout_seconds: float = 10.0,
        token: Optional[str] = None,
    ):
        """
        Initialize STOMP transport.

        Args:
            server_url: WebSocket URL of the STOMP endpoint
                (e.g., ws://localhost:8080/ws-gesture/websocket)
            max_backoff_seconds: Maximum backoff time between reconnect attempts
            initial_backoff_seconds: Initial backoff time
            connect_timeout_seconds: Time to wait for the CONNECTED frame
            token: Optional bearer token sent with the WebSocket handshake
        """
        super().__init__()
        self.server_url = server_url
        self.max_backoff = max_backoff_seconds
        self.initial_backoff = initial_backoff_seconds
        self.connect_timeout = connect_timeout_seconds
        self.token = token
        self.host = urlparse(server_url).hostname or "localhost"

        # Connection state
        self._ws: Optional[ClientConnection] = None
        self._connected = False
        self._running = False
        self._shutdown_requested = False

        # Subscription ids for the current connection
        self._sub_ids: Dict[str, str] = {}
        self._sub_counter = 0

        # Outgoing frames
        self._send_queue: Optional[asyncio.Queue] = None

        self.stats = ConnectionStats()
        self._current_backoff = initial_backoff_seconds

        # Tasks
        self._connect_task: Optional[asyncio.Task] = None
        self._send_task: Optional[asyncio.Task] = None

    @property
    def connected(self) -> bool:
        """Check if currently connected."""
        return self._connected and self._ws is not None

    async def start(self) -> None:
        """Start the connection manager and sender tasks."""
        if self._running:
            return

        self._running = True
        self._shutdown_requested = False
        self._send_queue = asyncio.Queue(maxsize=100)

        self._connect_task = asyncio.create_task(self._connection_loop())
        self._send_task = asyncio.create_task(self._send_loop())

        logger.info(f"STOMP transport started, connecting to {self.server_url}")

    async def stop(self) -> None:
        """Stop the transport and send a final DISCONNECT frame."""
        if not self._running:
            return

        logger.info("STOMP transport stopping...")
        self._shutdown_requested = True
        self._running = False

        if self.connected:
            try:
                await self._ws.send(disconnect_frame().encode())
            except (ConnectionClosed, WebSocketException) as e:
                logger.warning(f"Failed to send DISCONNECT: {e}")

        await self._send_queue.put(None)

        for task in (self._connect_task, self._send_task):
            if task:
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass

        if self._ws:
            await self._ws.close()
            self._ws = None

        self._connected = False
        logger.info("STOMP transport stopped")

    def publish(self, destination: str, payload: Dict[str, Any]) -> bool:
        """
        Queue a SEND frame.

        Non-blocking. Returns False when disconnected or the queue is full.
        """
        if not self.connected:
            self.stats.messages_failed += 1
            return False
        frame = send_frame(destination, json.dumps(payload))
        return self._enqueue(frame.encode())

    def _enqueue(self, text: str) -> bool:
        try:
            self._send_queue.put_nowait(text)
            return True
        except asyncio.QueueFull:
            self.stats.messages_failed += 1
            logger.warning("Send queue full, dropping frame")
            return False

    def _send_subscribe(self, topic: str) -> None:
        self._sub_counter += 1
        sub_id = f"sub-{self._sub_counter}"
        self._sub_ids[topic] = sub_id
        self._enqueue(subscribe_frame(topic, sub_id).encode())
        logger.debug(f"Subscribing to {topic} as {sub_id}")

    def _send_unsubscribe(self, topic: str) -> None:
        sub_id = self._sub_ids.pop(topic, None)
        if sub_id is not None:
            self._enqueue(unsubscribe_frame(sub_id).encode())

    async def _connection_loop(self) -> None:
        """Main connection loop with automatic reconnection."""
        while self._running and not self._shutdown_requested:
            try:
                await self._connect()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Connection error: {e}")

            if not self._running or self._shutdown_requested:
                break

            logger.info(f"Reconnecting in {self._current_backoff:.1f}s...")
            await asyncio.sleep(self._current_backoff)

            self._current_backoff = min(
                self._current_backoff * 2,
                self.max_backoff
            )
            self.stats.reconnect_attempts += 1

    async def _connect(self) -> None:
        """Open the WebSocket, perform the STOMP handshake and read frames."""
        headers = {}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"

        try:
            logger.info(f"Connecting to {self.server_url}...")

            self._ws = await connect(
                self.server_url,
                additional_headers=headers,
                subprotocols=STOMP_SUBPROTOCOLS,
                ping_interval=20,
                ping_timeout=10,
                close_timeout=5,
            )

            await self._ws.send(connect_frame(self.host).encode())
            reply = await asyncio.wait_for(self._ws.recv(), timeout=self.connect_timeout)
            self._check_handshake(reply)

            self._connected = True
            self._current_backoff = self.initial_backoff
            self.stats.connected = True
            self.stats.connect_time = time.time()
            logger.info("STOMP session established")

            self._sub_ids.clear()
            for topic in self.topics:
                self._send_subscribe(topic)

            self._notify_connection(True)

            try:
                async for message in self._ws:
                    if not self._handle_message(message):
                        break
            except ConnectionClosed:
                pass

        except InvalidStatus as e:
            logger.error(f"Handshake failed: HTTP {e.response.status_code}")
            raise
        except ConnectionRefusedError:
            logger.error("Connection refused - is the backend running?")
            raise
        finally:
            was_connected = self._connected
            self._connected = False
            self.stats.connected = False
            self.stats.disconnect_time = time.time()
            if self._ws is not None:
                await self._ws.close()
                self._ws = None
            if was_connected:
                self._notify_connection(False)

    def _check_handshake(self, reply) -> None:
        """Raise ConnectionError unless the reply is a CONNECTED frame."""
        if isinstance(reply, bytes):
            reply = reply.decode("utf-8", errors="replace")
        try:
            frames = parse_frames(reply)
        except StompError as e:
            raise ConnectionError(f"STOMP handshake unparseable: {e}") from e
        if not frames or frames[0].command != "CONNECTED":
            detail = frames[0].headers.get("message") if frames else "no frame"
            raise ConnectionError(f"STOMP handshake rejected: {detail}")

    def _handle_message(self, message) -> bool:
        """Process one WebSocket message. Returns False to drop the connection."""
        if isinstance(message, bytes):
            message = message.decode("utf-8", errors="replace")

        try:
            frames = parse_frames(message)
        except StompError as e:
            logger.warning(f"Unparseable STOMP frame: {e}")
            return True

        for frame in frames:
            if frame.command == "MESSAGE":
                self.stats.messages_received += 1
                self._dispatch(frame.destination, frame.body)
            elif frame.command == "ERROR":
                logger.error(f"STOMP error: {frame.headers.get('message', frame.body)}")
                return False
            else:
                logger.debug(f"Ignoring {frame.command} frame")
        return True

    async def _send_loop(self) -> None:
        """Process outgoing frame queue."""
        while self._running:
            try:
                try:
                    text = await asyncio.wait_for(self._send_queue.get(), timeout=1.0)
                except asyncio.TimeoutError:
                    continue

                # None is shutdown signal
                if text is None:
                    break

                if self.connected:
                    try:
                        await self._ws.send(text)
                        self.stats.messages_sent += 1
                        self.stats.last_send_time = time.time()
                    except (ConnectionClosed, WebSocketException) as e:
                        self.stats.messages_failed += 1
                        logger.warning(f"Send failed: {e}")
                else:
                    # Not connected, drop frame
                    self.stats.messages_failed += 1

            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Send loop error: {e}")

    def get_stats(self) -> dict:
        """Get connection statistics."""
        return {
            "connected": self.connected,
            "connect_time": self.stats.connect_time,
            "disconnect_time": self.stats.disconnect_time,
            "reconnect_attempts": self.stats.reconnect_attempts,
            "messages_sent": self.stats.messages_sent,
            "messages_failed": self.stats.messages_failed,
            "messages_received": self.stats.messages_received,
            "queue_size": self._send_queue.qsize() if self._send_queue else 0,
            "subscriptions": len(self._sub_ids),
        }
