#!/usr/bin/env python3
"""
Hand Gesture Card Game Client - Main Entry Point

This client runs on a user laptop, estimates hand pose from the local
camera, turns it into stable "higher" / "lower" / "reset" commands and sends
them to the card game backend over a pub/sub broker. Game state comes back
from the backend and is never computed locally.

Environment Variables:
    GAME_API_URL: Game REST API root (default: http://localhost:8080/api/game)
    BROKER_URL: STOMP WebSocket endpoint (default: ws://localhost:8080/ws-gesture/websocket)
    MQTT_HOST: MQTT broker host when --transport mqtt (default: localhost)
    MQTT_PORT: MQTT broker port (default: 1883)

Usage:
    python -m client_card_control.main
    python -m client_card_control.main --classifier handedness --cooldown-policy flat
    python -m client_card_control.main --transport mqtt --mqtt-host 10.0.0.5 --preview
"""

import argparse
import asyncio
import logging
import os
import signal
import sys

import cv2

from .camera_source import CameraObservationSource
from .classifier import CLASSIFIERS, create_classifier
from .cooldown import POLICIES, create_policy
from .coordinator import MIN_FRAME_INTERVAL, FrameReport, SessionCoordinator
from .errors import GameClientError
from .game_api import GameServiceClient
from .mqtt_transport import MqttTransport
from .publisher import EventPublisher
from .session import new_session_id
from .stomp_transport import StompTransport
from .transport import PubSubTransport

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


class CardGameClient:
    """
    Main client that integrates all components:
    - Camera capture and hand pose estimation
    - Gesture classification, stabilization and cooldowns
    - Pub/sub connection to the backend
    - Game REST API
    """

    def __init__(
        self,
        transport: PubSubTransport,
        game_api: GameServiceClient,
        source: CameraObservationSource,
        session_id: str,
        classifier: str = "finger-count",
        cooldown_policy: str = "tiered",
        destination_prefix: str = "/app/tensorflow/",
        topic_prefix: str = "/topic/",
        interval: float = MIN_FRAME_INTERVAL,
        keep_playing: bool = False,
        show_preview: bool = False,
    ):
        self.transport = transport
        self.game_api = game_api
        self.source = source
        self.session_id = session_id
        self.interval = interval
        self.keep_playing = keep_playing
        self.show_preview = show_preview

        self.publisher = EventPublisher(
            transport,
            destination_prefix=destination_prefix,
            topic_prefix=topic_prefix,
        )
        self.coordinator = SessionCoordinator(
            classifier=create_classifier(classifier),
            publisher=self.publisher,
            game_api=game_api,
            source=source,
            policy=create_policy(cooldown_policy),
            camera_index=source.camera_index,
        )

        self._running = False
        self._connected = asyncio.Event()
        self.publisher.on_connection_change = self._on_connection_change

        self.font = cv2.FONT_HERSHEY_SIMPLEX

    def _on_connection_change(self, connected: bool) -> None:
        if connected:
            self._connected.set()
        else:
            self._connected.clear()

    async def start(self) -> None:
        """Open the camera, connect to the broker and register the session."""
        logger.info("Starting Card Game Client...")

        if not self.source.open():
            raise RuntimeError("Failed to initialize camera")

        if isinstance(self.transport, StompTransport):
            await self.transport.start()
        else:
            loop = asyncio.get_running_loop()
            await loop.run_in_executor(None, self.transport.start)

        if self.transport.connected:
            self._connected.set()

        self.coordinator.connect(self.session_id)
        self._running = True
        logger.info(f"Card Game Client started, session {self.session_id}")

    async def stop(self) -> None:
        """Unregister the session and release resources."""
        if not self._running:
            return
        logger.info("Stopping Card Game Client...")
        self._running = False

        self.coordinator.disconnect(self.session_id)

        if isinstance(self.transport, StompTransport):
            await self.transport.stop()
        else:
            loop = asyncio.get_running_loop()
            await loop.run_in_executor(None, self.transport.stop)

        await self.game_api.close()
        self.source.close()

        if self.show_preview:
            cv2.destroyAllWindows()

        logger.info("Card Game Client stopped")

    async def run(self) -> None:
        """Play games until game over (or forever with keep_playing)."""
        while self._running:
            logger.info("Waiting for broker connection...")
            await self._connected.wait()

            if await self.coordinator.restart_game(self.session_id) is None:
                logger.error(self._session.status_message)
                await asyncio.sleep(5.0)
                continue

            try:
                self.coordinator.start_detection(self.session_id)
            except GameClientError as e:
                logger.warning(f"Cannot start detection: {e}")
                await asyncio.sleep(1.0)
                continue

            await self.coordinator.run_detection(
                self.session_id,
                interval=self.interval,
                on_frame=self._on_frame,
            )

            snapshot = self._session.snapshot if self._running else None
            if snapshot is not None and snapshot.game_over:
                logger.info(f"Game over! Final score: {snapshot.score}")
                if not self.keep_playing:
                    break
            elif self._running and not self.transport.connected:
                continue
            elif self._running:
                break

    @property
    def _session(self):
        return self.coordinator.registry.get(self.session_id)

    def _on_frame(self, report: FrameReport) -> None:
        if report.dispatched:
            logger.info(report.detail)
        else:
            logger.debug(f"{report.status.value}: {report.detail}")

        if self.show_preview:
            self._draw_preview()
            key = cv2.waitKey(1) & 0xFF
            if key in (27, ord('q')):
                logger.info("Quit requested")
                self._running = False
                self.coordinator.stop_detection(self.session_id)

    def _draw_preview(self) -> None:
        """Show the camera frame with game status text."""
        frame = self.source.last_frame
        if frame is None:
            return
        frame = frame.copy()
        h = frame.shape[0]
        session = self._session
        snapshot = session.snapshot

        conn = "Connected" if self.transport.connected else "Disconnected"
        conn_color = (0, 255, 0) if self.transport.connected else (0, 0, 255)
        cv2.putText(frame, f"Broker: {conn}", (20, 30), self.font, 0.5, conn_color, 1)

        if snapshot is not None:
            cv2.putText(
                frame,
                f"Card: {snapshot.current_card}  Score: {snapshot.score}",
                (20, 60), self.font, 0.7, (255, 255, 0), 2
            )
        cv2.putText(frame, session.status_message, (20, h - 50), self.font, 0.6, (0, 165, 255), 2)
        cv2.putText(frame, session.debug_status, (20, h - 20), self.font, 0.6, (0, 255, 0), 2)

        cv2.imshow("Card Game Client", frame)


def build_transport(args: argparse.Namespace, loop: asyncio.AbstractEventLoop) -> PubSubTransport:
    if args.transport == "mqtt":
        return MqttTransport(host=args.mqtt_host, port=args.mqtt_port, loop=loop)
    return StompTransport(server_url=args.broker)


async def main_async(args: argparse.Namespace) -> None:
    """Async main entry point."""
    loop = asyncio.get_running_loop()

    client = CardGameClient(
        transport=build_transport(args, loop),
        game_api=GameServiceClient(base_url=args.game_api),
        source=CameraObservationSource(camera_index=args.camera, mirror=args.mirror),
        session_id=args.session_id or new_session_id(),
        classifier=args.classifier,
        cooldown_policy=args.cooldown_policy,
        destination_prefix=args.destination_prefix,
        topic_prefix=args.topic_prefix,
        interval=args.interval,
        keep_playing=args.keep_playing,
        show_preview=args.preview,
    )

    main_task = asyncio.current_task()

    def signal_handler():
        logger.info("Shutdown signal received")
        main_task.cancel()

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, signal_handler)

    try:
        await client.start()
        await client.run()
    except asyncio.CancelledError:
        pass
    except Exception as e:
        logger.error(f"Client error: {e}")
    finally:
        await client.stop()


def main() -> None:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Hand Gesture Card Game Client",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )

    parser.add_argument(
        "--game-api",
        type=str,
        default=os.environ.get("GAME_API_URL", "http://localhost:8080/api/game"),
        help="Game REST API root URL",
    )
    parser.add_argument(
        "--transport",
        choices=("stomp", "mqtt"),
        default="stomp",
        help="Pub/sub transport",
    )
    parser.add_argument(
        "--broker",
        type=str,
        default=os.environ.get("BROKER_URL", "ws://localhost:8080/ws-gesture/websocket"),
        help="STOMP WebSocket endpoint",
    )
    parser.add_argument(
        "--mqtt-host",
        type=str,
        default=os.environ.get("MQTT_HOST", "localhost"),
        help="MQTT broker host",
    )
    parser.add_argument(
        "--mqtt-port",
        type=int,
        default=int(os.environ.get("MQTT_PORT", "1883")),
        help="MQTT broker port",
    )
    parser.add_argument(
        "--destination-prefix",
        type=str,
        default="/app/tensorflow/",
        help="Prefix for outbound destinations",
    )
    parser.add_argument(
        "--topic-prefix",
        type=str,
        default="/topic/",
        help="Prefix for inbound topics",
    )
    parser.add_argument(
        "--session-id",
        type=str,
        default=None,
        help="Session id (generated if omitted)",
    )
    parser.add_argument(
        "--classifier",
        choices=sorted(CLASSIFIERS),
        default="finger-count",
        help="Gesture classifier",
    )
    parser.add_argument(
        "--cooldown-policy",
        choices=sorted(POLICIES),
        default="tiered",
        help="Cooldown policy",
    )
    parser.add_argument(
        "--camera",
        type=int,
        default=0,
        help="Camera device index",
    )
    parser.add_argument(
        "--interval",
        type=float,
        default=MIN_FRAME_INTERVAL,
        help="Seconds between frames (minimum 0.1)",
    )
    parser.add_argument(
        "--no-mirror",
        dest="mirror",
        action="store_false",
        help="Do not flip the camera image horizontally",
    )
    parser.add_argument(
        "--preview",
        action="store_true",
        help="Show preview window",
    )
    parser.add_argument(
        "--keep-playing",
        action="store_true",
        help="Start a new game after each game over",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging",
    )

    args = parser.parse_args()

    if args.debug:
        logging.getLogger().setLevel(logging.DEBUG)

    try:
        asyncio.run(main_async(args))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        sys.exit(0)


if __name__ == "__main__":
    main()
