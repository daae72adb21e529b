"""
Frame Quality Gate - validates camera frames before hand pose estimation.

Broken or empty frames are never classified. A sustained streak of invalid
frames marks the observation source as unavailable, which clears the
stability window instead of letting stale labels vote.
"""

import logging
import time
from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np

logger = logging.getLogger(__name__)


@dataclass
class FrameValidationResult:
    """Result of frame validation."""
    valid: bool
    reason: str
    frame: Optional[np.ndarray] = None


class FrameGate:
    """
    Frame quality gate for camera reads.

    Validates:
    - cap.read() success
    - Frame not empty/None
    - Frame has shape (H, W, 3)
    - Shape consistency across frames
    - Not an all-black frame (camera warming up / privacy shutter)

    Tracks how long invalid frames have been arriving in a row.
    """

    def __init__(
        self,
        unavailable_after_ms: int = 1000,
        allow_shape_change: bool = False,
    ):
        """
        Initialize FrameGate.

        Args:
            unavailable_after_ms: Time in ms of consecutive invalid frames
                after which the source counts as unavailable
            allow_shape_change: If True, don't treat shape changes as invalid
        """
        self.unavailable_after_ms = unavailable_after_ms
        self.allow_shape_change = allow_shape_change

        # Tracking state
        self._invalid_since: Optional[float] = None
        self._last_valid_shape: Optional[Tuple[int, int, int]] = None
        self._total_invalid_count = 0
        self._total_valid_count = 0
        self._last_reason = "ok"

    def validate(self, ok: bool, frame: Optional[np.ndarray]) -> FrameValidationResult:
        """
        Validate a frame from cap.read().

        Args:
            ok: The boolean return value from cap.read()
            frame: The frame array from cap.read()
        """
        now = time.monotonic()

        if not ok:
            return self._invalid(now, "read_failed")
        if frame is None:
            return self._invalid(now, "frame_none")
        if frame.size == 0:
            return self._invalid(now, "empty_frame")
        if frame.ndim != 3:
            return self._invalid(now, "invalid_dims")
        if frame.shape[2] != 3:
            return self._invalid(now, "invalid_channels")

        if (
            not self.allow_shape_change
            and self._last_valid_shape is not None
            and frame.shape != self._last_valid_shape
        ):
            logger.warning(
                f"Frame shape changed from {self._last_valid_shape} to {frame.shape}"
            )
            return self._invalid(now, "shape_changed")

        if self._is_blank(frame):
            return self._invalid(now, "blank_frame")

        self._total_valid_count += 1
        self._last_valid_shape = frame.shape
        self._invalid_since = None
        self._last_reason = "ok"
        return FrameValidationResult(True, "ok", frame)

    def _is_blank(self, frame: np.ndarray) -> bool:
        """Sample a few pixels; all identical and nearly black means blank."""
        h, w = frame.shape[:2]
        try:
            samples = [
                frame[h // 4, w // 4],
                frame[h // 4, 3 * w // 4],
                frame[h // 2, w // 2],
                frame[3 * h // 4, w // 4],
                frame[3 * h // 4, 3 * w // 4],
            ]
        except IndexError:
            return True

        if all(np.array_equal(s, samples[0]) for s in samples):
            return float(np.mean(samples[0])) < 5
        return False

    def _invalid(self, now: float, reason: str) -> FrameValidationResult:
        self._total_invalid_count += 1
        self._last_reason = reason
        if self._invalid_since is None:
            self._invalid_since = now
            logger.debug(f"Invalid frame streak started: {reason}")
        return FrameValidationResult(False, reason)

    def invalid_duration_ms(self) -> float:
        """Duration of the current invalid streak in milliseconds."""
        if self._invalid_since is None:
            return 0.0
        return (time.monotonic() - self._invalid_since) * 1000

    @property
    def source_unavailable(self) -> bool:
        """True once invalid frames have persisted past the threshold."""
        return self.invalid_duration_ms() >= self.unavailable_after_ms

    def reset(self) -> None:
        """Reset tracking state."""
        self._invalid_since = None
        self._last_valid_shape = None
        self._last_reason = "ok"

    def get_stats(self) -> dict:
        """Get validation statistics."""
        total = self._total_valid_count + self._total_invalid_count
        return {
            "total_frames": total,
            "valid_frames": self._total_valid_count,
            "invalid_frames": self._total_invalid_count,
            "valid_rate": self._total_valid_count / total if total > 0 else 0.0,
            "current_invalid_duration_ms": self.invalid_duration_ms(),
            "last_reason": self._last_reason,
        }
