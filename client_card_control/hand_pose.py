"""
Hand pose observations - the boundary with the external landmark model.

An Observation is one processed frame: zero or more detected hands, each a
set of normalized landmark coordinates plus an optional handedness label.
Observations are immutable and discarded after classification.
"""

import time
from dataclasses import dataclass, field
from typing import Any, Optional, Sequence, Tuple

import numpy as np

# ============================================================================
# MediaPipe Landmark Indices
# ============================================================================

WRIST = 0
THUMB_CMC, THUMB_MCP, THUMB_IP, THUMB_TIP = 1, 2, 3, 4
INDEX_MCP, INDEX_PIP, INDEX_DIP, INDEX_TIP = 5, 6, 7, 8
MIDDLE_MCP, MIDDLE_PIP, MIDDLE_DIP, MIDDLE_TIP = 9, 10, 11, 12
RING_MCP, RING_PIP, RING_DIP, RING_TIP = 13, 14, 15, 16
PINKY_MCP, PINKY_PIP, PINKY_DIP, PINKY_TIP = 17, 18, 19, 20

NUM_LANDMARKS = 21

# (tip, lower joint) pairs used for extension checks
THUMB = (THUMB_TIP, THUMB_MCP)
FINGERS = (
    (INDEX_TIP, INDEX_MCP),
    (MIDDLE_TIP, MIDDLE_MCP),
    (RING_TIP, RING_MCP),
    (PINKY_TIP, PINKY_MCP),
)

LEFT = "Left"
RIGHT = "Right"


# ============================================================================
# Observation Records
# ============================================================================

@dataclass(frozen=True, eq=False)
class HandObservation:
    """
    One detected hand.

    Attributes:
        landmarks: (21, 2) or (21, 3) array of normalized coordinates.
            x grows to the right, y grows downward.
        handedness: "Left", "Right" or None when the model gives no label
    """
    landmarks: np.ndarray
    handedness: Optional[str] = None

    def __post_init__(self):
        if self.landmarks.ndim != 2 or self.landmarks.shape[0] != NUM_LANDMARKS:
            raise ValueError(
                f"Expected {NUM_LANDMARKS} landmarks, got shape {self.landmarks.shape}"
            )

    @classmethod
    def from_points(
        cls,
        points: Sequence[Sequence[float]],
        handedness: Optional[str] = None,
    ) -> 'HandObservation':
        """Build from any sequence of (x, y[, z]) points."""
        arr = np.array(points, dtype=np.float32)
        arr.setflags(write=False)
        return cls(landmarks=arr, handedness=handedness)

    def x(self, i: int) -> float:
        return float(self.landmarks[i, 0])

    def y(self, i: int) -> float:
        return float(self.landmarks[i, 1])


@dataclass(frozen=True)
class Observation:
    """All hands detected in a single processed frame."""
    hands: Tuple[HandObservation, ...] = ()
    ts_ms: int = field(default_factory=lambda: int(time.monotonic() * 1000))

    @property
    def hand_count(self) -> int:
        return len(self.hands)

    @property
    def empty(self) -> bool:
        return not self.hands


# ============================================================================
# MediaPipe Conversion
# ============================================================================

def _landmark_array(hand_landmarks) -> np.ndarray:
    """Convert a MediaPipe NormalizedLandmarkList to a (21, 3) array."""
    return np.array(
        [[p.x, p.y, p.z] for p in hand_landmarks.landmark],
        dtype=np.float32,
    )


def observation_from_results(results: Any, ts_ms: Optional[int] = None) -> Observation:
    """
    Build an Observation from MediaPipe Hands results.

    Args:
        results: MediaPipe hands processing results
        ts_ms: Frame timestamp in milliseconds (monotonic), defaults to now

    Returns:
        Observation with one HandObservation per detected hand, in model order
    """
    if ts_ms is None:
        ts_ms = int(time.monotonic() * 1000)

    hands = []
    if results is not None and results.multi_hand_landmarks:
        handedness = results.multi_handedness or []
        for i, lm in enumerate(results.multi_hand_landmarks):
            label = None
            if i < len(handedness) and handedness[i].classification:
                label = handedness[i].classification[0].label
            hands.append(HandObservation(landmarks=_landmark_array(lm), handedness=label))

    return Observation(hands=tuple(hands), ts_ms=ts_ms)


# ============================================================================
# Observation Source Contract
# ============================================================================

class ObservationSource:
    """
    Producer of one Observation per processed frame.

    ``read`` returns None when no frame could be obtained, which callers
    treat as ObservationSourceUnavailable for that frame.
    """

    @property
    def model_ready(self) -> bool:
        """True once the hand pose model is initialized."""
        raise NotImplementedError

    @property
    def camera_available(self) -> bool:
        raise NotImplementedError

    async def read(self) -> Optional[Observation]:
        raise NotImplementedError
