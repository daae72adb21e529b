"""
Camera observation source - OpenCV capture + MediaPipe Hands.

Reads frames from a local camera, validates them through the FrameGate,
runs MediaPipe hand landmark estimation and converts the result into an
Observation. Blocking capture and inference run in the default executor so
the asyncio loop keeps serving the pub/sub connection.
"""

import asyncio
import logging
import time
from typing import Optional

import cv2
import mediapipe as mp
import numpy as np

from .frame_gate import FrameGate
from .hand_pose import Observation, ObservationSource, observation_from_results

logger = logging.getLogger(__name__)

mp_hands = mp.solutions.hands


class CameraObservationSource(ObservationSource):
    """Observation source backed by a webcam."""

    def __init__(
        self,
        camera_index: int = 0,
        mirror: bool = True,
        max_num_hands: int = 2,
        min_detection_confidence: float = 0.5,
        min_tracking_confidence: float = 0.5,
        unavailable_after_ms: int = 1000,
    ):
        """
        Initialize the camera source.

        Args:
            camera_index: Camera device index
            mirror: Flip frames horizontally (selfie view)
            max_num_hands: Hands reported by MediaPipe (two is the most used)
            min_detection_confidence: MediaPipe detection threshold
            min_tracking_confidence: MediaPipe tracking threshold
            unavailable_after_ms: Invalid-frame streak before the camera
                counts as unavailable
        """
        self.camera_index = camera_index
        self.mirror = mirror
        self.max_num_hands = max_num_hands
        self.min_detection_confidence = min_detection_confidence
        self.min_tracking_confidence = min_tracking_confidence

        self.frame_gate = FrameGate(unavailable_after_ms=unavailable_after_ms)
        self.cap: Optional[cv2.VideoCapture] = None
        self.hands = None
        self.last_frame: Optional[np.ndarray] = None

        self._inference_failures = 0

    def open(self) -> bool:
        """Open the camera and load the hand model."""
        logger.info(f"Opening camera index: {self.camera_index}")
        self.cap = cv2.VideoCapture(self.camera_index)

        if not self.cap.isOpened():
            logger.error("Failed to open camera")
            return False

        width = int(self.cap.get(cv2.CAP_PROP_FRAME_WIDTH))
        height = int(self.cap.get(cv2.CAP_PROP_FRAME_HEIGHT))
        fps = self.cap.get(cv2.CAP_PROP_FPS)
        logger.info(f"Camera opened: {width}x{height} @ {fps:.1f} fps")

        self.hands = mp_hands.Hands(
            static_image_mode=False,
            max_num_hands=self.max_num_hands,
            model_complexity=1,
            min_detection_confidence=self.min_detection_confidence,
            min_tracking_confidence=self.min_tracking_confidence,
        )
        logger.info("Hand pose model loaded")
        return True

    def close(self) -> None:
        if self.cap:
            self.cap.release()
            self.cap = None
        if self.hands:
            self.hands.close()
            self.hands = None

    @property
    def model_ready(self) -> bool:
        return self.hands is not None

    @property
    def camera_available(self) -> bool:
        return (
            self.cap is not None
            and self.cap.isOpened()
            and not self.frame_gate.source_unavailable
        )

    async def read(self) -> Optional[Observation]:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._read_blocking)

    def _read_blocking(self) -> Optional[Observation]:
        if self.cap is None or self.hands is None:
            return None

        ok, frame = self.cap.read()
        ts_ms = int(time.monotonic() * 1000)

        result = self.frame_gate.validate(ok, frame)
        if not result.valid:
            logger.debug(f"Frame invalid: {result.reason}")
            return None

        frame = result.frame
        if self.mirror:
            frame = cv2.flip(frame, 1)
        self.last_frame = frame

        rgb = cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)
        try:
            results = self.hands.process(rgb)
        except Exception as e:
            self._inference_failures += 1
            logger.warning(f"MediaPipe processing error: {e}")
            return None

        return observation_from_results(results, ts_ms=ts_ms)

    def get_stats(self) -> dict:
        stats = self.frame_gate.get_stats()
        stats["inference_failures"] = self._inference_failures
        return stats
