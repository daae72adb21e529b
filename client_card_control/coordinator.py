"""
Session Coordinator - owns per-session state and runs the frame pipeline.

For every observation frame while a session is detecting:

    classify -> stabilize -> cooldown gate -> publish gesture

Each frame yields a FrameReport describing why a gesture did or did not
fire. The coordinator also drives the game lifecycle through the game
service and applies inbound backend notifications to the session snapshot.

Frames for one session never overlap: a frame arriving while the previous
one is still in the pipeline is dropped.
"""

import asyncio
import logging
import math
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Union

from .classifier import GestureClassifier, GestureLabel
from .cooldown import CooldownGate, CooldownPolicy, CooldownStatus
from .errors import (
    ModelUnavailable,
    ObservationSourceUnavailable,
    TransportUnavailable,
    UpstreamServiceError,
)
from .game_api import GUESSES, GameServiceClient
from .hand_pose import Observation, ObservationSource
from .message import GameSnapshot, InboundUpdate
from .publisher import EventPublisher
from .session import GameLifecycle, SessionRegistry, SessionState
from .stability import StabilityFilter

logger = logging.getLogger(__name__)

# 10 observations per second at most
MIN_FRAME_INTERVAL = 0.1


class FrameStatus(str, Enum):
    """Outcome of one pass through the frame pipeline."""
    DETECTION_OFF = "detection_off"
    BUSY = "busy"
    SOURCE_UNAVAILABLE = "source_unavailable"
    NO_HAND = "no_hand"
    STABILIZING = "stabilizing"
    NO_GAME = "no_game"
    COOLDOWN = "cooldown"
    GLOBAL_COOLDOWN = "global_cooldown"
    TRANSPORT_UNAVAILABLE = "transport_unavailable"
    DISPATCHED = "dispatched"


@dataclass
class FrameReport:
    status: FrameStatus
    raw_label: GestureLabel = GestureLabel.NONE
    stable_label: GestureLabel = GestureLabel.NONE
    retry_after_ms: int = 0
    detail: str = ""

    @property
    def dispatched(self) -> bool:
        return self.status is FrameStatus.DISPATCHED


def _monotonic_ms() -> int:
    return int(time.monotonic() * 1000)


class SessionCoordinator:
    """
    Orchestrates classifier, stability filter, cooldown gate and publisher.

    The classifier is any GestureClassifier strategy; the coordinator never
    branches on which one is configured.
    """

    def __init__(
        self,
        classifier: GestureClassifier,
        publisher: EventPublisher,
        game_api: GameServiceClient,
        source: Optional[ObservationSource] = None,
        policy: Optional[CooldownPolicy] = None,
        registry: Optional[SessionRegistry] = None,
        clock: Optional[Callable[[], int]] = None,
        camera_index: int = 0,
    ):
        """
        Initialize SessionCoordinator.

        Args:
            classifier: Gesture classification strategy
            publisher: Pub/sub protocol client
            game_api: Request/response game service client
            source: Observation source (model + camera); required to detect
            policy: Cooldown policy (tiered by default)
            registry: Session registry (a fresh one if None)
            clock: Monotonic millisecond clock, used when a frame has no time
            camera_index: Camera index announced with gesture.start
        """
        self.classifier = classifier
        self.publisher = publisher
        self.game_api = game_api
        self.source = source
        self.registry = registry or SessionRegistry()
        self.stability = StabilityFilter(self.registry)
        self.cooldown = CooldownGate(self.registry, policy)
        self.clock = clock or _monotonic_ms
        self.camera_index = camera_index

        self._frames_dropped = 0
        self._dispatch_failures = 0

        self.publisher.on_gesture_update = self.on_gesture_update
        self.publisher.on_game_update = self.on_game_update

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    def connect(self, session_id: str) -> SessionState:
        """Create the session and register it with the backend."""
        session = self.registry.create(session_id)
        try:
            self.publisher.register_session(session_id)
        except TransportUnavailable as e:
            logger.warning(f"Register of {session_id} deferred: {e}")
        return session

    def disconnect(self, session_id: str) -> None:
        """Stop detection, unregister and destroy the session."""
        if session_id not in self.registry:
            return
        self.stop_detection(session_id)
        self.publisher.unregister_session(session_id)
        self.registry.remove(session_id)
        logger.info(f"Session disconnected: {session_id}")

    # ------------------------------------------------------------------
    # Game lifecycle
    # ------------------------------------------------------------------

    async def start_game(self, session_id: str) -> Optional[GameSnapshot]:
        """
        Request a new game and bind its id to the session.

        Returns:
            The new snapshot, or None if the game service failed
        """
        session = self.registry.get(session_id)
        session.status_message = "Starting new game..."

        try:
            snapshot = await self.game_api.start_game()
        except UpstreamServiceError as e:
            logger.error(f"Error starting game: {e}")
            session.status_message = f"Error starting game: {e}"
            return None

        if self.registry.find(session_id) is not session:
            return snapshot

        session.snapshot = snapshot
        session.game_id = snapshot.game_id
        session.status_message = "Game started! Start detection and show your hand."
        logger.info(f"[{session_id}] Game started: {snapshot.game_id}")
        return snapshot

    async def restart_game(self, session_id: str) -> Optional[GameSnapshot]:
        """Forget the current game and start a new one."""
        session = self.registry.get(session_id)
        session.clear_game()
        return await self.start_game(session_id)

    async def refresh_game(self, session_id: str) -> Optional[GameSnapshot]:
        """Re-fetch the bound game from the game service."""
        session = self.registry.get(session_id)
        if session.game_id is None:
            return None

        try:
            snapshot = await self.game_api.get_game(session.game_id)
        except UpstreamServiceError as e:
            logger.error(f"Error getting game state: {e}")
            session.status_message = f"Error getting game state: {e}"
            return None

        if self.registry.find(session_id) is session:
            self._replace_snapshot(session, snapshot)
        return snapshot

    async def make_guess(
        self,
        session_id: str,
        direction: Union[GestureLabel, str],
    ) -> Optional[GameSnapshot]:
        """
        Submit a higher/lower guess for the active game.

        Returns:
            The updated snapshot, or None if there is no active game or the
            game service failed
        """
        session = self.registry.get(session_id)
        if session.lifecycle is not GameLifecycle.ACTIVE or not session.game_id:
            session.status_message = "No active game. Start a new game first."
            return None

        label = direction if isinstance(direction, GestureLabel) else GestureLabel.parse(direction)
        if label not in GUESSES:
            session.status_message = f"Invalid guess {direction!r}: choose higher or lower."
            return None
        session.status_message = f"Processing {label.value} guess..."

        try:
            snapshot = await self.game_api.make_guess(session.game_id, label)
        except UpstreamServiceError as e:
            logger.error(f"Error making guess: {e}")
            session.status_message = f"Error making guess: {e}"
            return None

        if self.registry.find(session_id) is not session:
            return snapshot

        session.snapshot = snapshot
        if snapshot.game_over:
            logger.info(f"[{session_id}] Game over, final score {snapshot.score}")
            self.stop_detection(session_id)
        session.status_message = snapshot.message or f"Guess processed! Score: {snapshot.score}"
        return snapshot

    # ------------------------------------------------------------------
    # Detection lifecycle
    # ------------------------------------------------------------------

    def start_detection(self, session_id: str) -> None:
        """
        Enable gesture detection for a session.

        Raises:
            ModelUnavailable: if the hand pose model is not ready
            ObservationSourceUnavailable: if the camera is not available
            TransportUnavailable: if the pub/sub connection is down
        """
        session = self.registry.get(session_id)

        if self.source is None or not self.source.model_ready:
            session.status_message = "AI model still loading. Please wait..."
            raise ModelUnavailable("Hand pose model is not ready")
        if not self.source.camera_available:
            session.status_message = "Camera not available. Please allow camera access."
            raise ObservationSourceUnavailable("Camera is not available")
        if not self.publisher.connected:
            session.status_message = "Not connected. Please wait for connection..."
            raise TransportUnavailable("Pub/sub connection is not established")

        self.publisher.start_detection(session_id, self.camera_index)

        session.history.clear()
        session.cooldown.clear()
        session.detecting = True
        session.status_message = "Detection started! Show your hand to the camera."
        logger.info(f"[{session_id}] Detection started")

    def stop_detection(self, session_id: str) -> bool:
        """
        Disable gesture detection. Idempotent.

        Returns:
            True if detection was running
        """
        session = self.registry.find(session_id)
        if session is None or not session.detecting:
            return False

        session.detecting = False
        session.history.clear()
        session.debug_status = ""
        session.status_message = "Gesture detection stopped."
        self.publisher.stop_detection(session_id)
        logger.info(f"[{session_id}] Detection stopped")
        return True

    # ------------------------------------------------------------------
    # Frame pipeline
    # ------------------------------------------------------------------

    def process_frame(
        self,
        session_id: str,
        observation: Optional[Observation],
        now_ms: Optional[int] = None,
    ) -> FrameReport:
        """
        Run one observation through classify -> stabilize -> gate -> publish.

        Args:
            session_id: Session the frame belongs to
            observation: The frame's observation, or None if no frame arrived
            now_ms: Monotonic time in ms (defaults to the coordinator clock)
        """
        session = self.registry.get(session_id)

        if not session.detecting:
            return FrameReport(FrameStatus.DETECTION_OFF)

        if session.processing:
            self._frames_dropped += 1
            return FrameReport(FrameStatus.BUSY)

        session.processing = True
        try:
            report = self._run_pipeline(session, observation, self.clock() if now_ms is None else now_ms)
        finally:
            session.processing = False

        session.debug_status = report.detail
        return report

    def _run_pipeline(
        self,
        session: SessionState,
        observation: Optional[Observation],
        now_ms: int,
    ) -> FrameReport:
        sid = session.session_id

        if observation is None:
            session.history.clear()
            return FrameReport(
                FrameStatus.SOURCE_UNAVAILABLE,
                detail="Camera not available - waiting for frames",
            )

        session.frames_processed += 1

        if observation.empty:
            self.stability.reset(sid)
            return FrameReport(
                FrameStatus.NO_HAND,
                detail="No hand detected - show your hand to the camera",
            )

        raw = self.classifier.classify(observation)
        stable = self.stability.observe(sid, raw)

        if stable is GestureLabel.NONE:
            return FrameReport(
                FrameStatus.STABILIZING,
                raw_label=raw,
                stable_label=stable,
                detail=f"Stabilizing... Raw: {raw.value} | Stable: {stable.value}",
            )

        if session.game_id is None:
            return FrameReport(
                FrameStatus.NO_GAME,
                raw_label=raw,
                stable_label=stable,
                detail=f"{stable.value.upper()} detected - start a game first",
            )

        result = self.cooldown.try_admit(sid, stable, now_ms)
        if not result.admitted:
            status = (
                FrameStatus.GLOBAL_COOLDOWN
                if result.status is CooldownStatus.GLOBAL_COOLDOWN
                else FrameStatus.COOLDOWN
            )
            seconds = math.ceil(result.retry_after_ms / 1000)
            return FrameReport(
                status,
                raw_label=raw,
                stable_label=stable,
                retry_after_ms=result.retry_after_ms,
                detail=f"{stable.value.upper()} ready in {seconds}s",
            )

        try:
            self.publisher.send_gesture(sid, stable, session.game_id)
        except TransportUnavailable as e:
            self._dispatch_failures += 1
            logger.warning(f"[{sid}] {stable.value} not sent: {e}")
            return FrameReport(
                FrameStatus.TRANSPORT_UNAVAILABLE,
                raw_label=raw,
                stable_label=stable,
                detail=f"Not connected, cannot send {stable.value}",
            )

        self.cooldown.record(sid, stable, now_ms)
        session.gestures_sent += 1
        return FrameReport(
            FrameStatus.DISPATCHED,
            raw_label=raw,
            stable_label=stable,
            detail=f"{stable.value.upper()} gesture sent!",
        )

    async def run_detection(
        self,
        session_id: str,
        source: Optional[ObservationSource] = None,
        interval: float = MIN_FRAME_INTERVAL,
        on_frame: Optional[Callable[[FrameReport], None]] = None,
    ) -> None:
        """
        Frame loop for one session, until detection is switched off.

        Re-arms itself every ``interval`` seconds (never faster than 10 Hz).
        Flipping the detection flag stops dispatching at the next frame.
        """
        source = source or self.source
        if source is None:
            raise ObservationSourceUnavailable("No observation source configured")

        target_dt = max(interval, MIN_FRAME_INTERVAL)

        while True:
            session = self.registry.find(session_id)
            if session is None or not session.detecting:
                break

            loop_start = time.monotonic()

            try:
                observation = await source.read()
                report = self.process_frame(session_id, observation)
                if on_frame:
                    on_frame(report)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Error in detection loop: {e}")
                if session_id in self.registry:
                    self.registry.get(session_id).debug_status = f"Detection error: {e}"

            elapsed = time.monotonic() - loop_start
            if elapsed < target_dt:
                await asyncio.sleep(target_dt - elapsed)

        logger.debug(f"[{session_id}] Detection loop exited")

    # ------------------------------------------------------------------
    # Inbound notifications
    # ------------------------------------------------------------------

    def on_gesture_update(self, session_id: str, update: InboundUpdate) -> None:
        """Apply a per-session gesture notification."""
        session = self.registry.find(session_id)
        if session is None:
            logger.debug(f"Update for unknown session {session_id}")
            return
        self._apply_update(session, update)

    def on_game_update(self, update: InboundUpdate) -> None:
        """
        Apply a broadcast game update.

        Updates with a game id go to sessions bound to that game; updates
        without one only refresh the status message.
        """
        for session in self.registry:
            if update.game_id is None:
                if update.message:
                    session.status_message = update.message
            elif session.game_id == update.game_id:
                self._apply_update(session, update)

    def _apply_update(self, session: SessionState, update: InboundUpdate) -> None:
        if update.gesture == "error":
            logger.warning(f"[{session.session_id}] Backend error: {update.message}")
        elif update.is_status_word:
            logger.debug(f"[{session.session_id}] Backend status: {update.gesture}")

        label = update.label
        if (
            label is GestureLabel.RESET
            and update.game_id
            and update.game_id != session.game_id
        ):
            logger.info(f"[{session.session_id}] Rebinding to game {update.game_id}")
            session.game_id = update.game_id

        if update.snapshot is not None:
            self._replace_snapshot(session, update.snapshot)

        if update.message:
            session.status_message = update.message

    def _replace_snapshot(self, session: SessionState, snapshot: GameSnapshot) -> None:
        session.snapshot = snapshot
        if snapshot.game_over:
            logger.info(f"[{session.session_id}] Game over, final score {snapshot.score}")
            self.stop_detection(session.session_id)
        if snapshot.message:
            session.status_message = snapshot.message

    def get_stats(self) -> dict:
        """Get coordinator statistics."""
        return {
            "sessions": len(self.registry),
            "detecting": sum(1 for s in self.registry if s.detecting),
            "frames_processed": sum(s.frames_processed for s in self.registry),
            "gestures_sent": sum(s.gestures_sent for s in self.registry),
            "frames_dropped": self._frames_dropped,
            "dispatch_failures": self._dispatch_failures,
            "policy": self.cooldown.policy.name,
            "classifier": self.classifier.name,
        }
