"""
Stability Filter - majority vote over a short history of raw labels.

Per-frame classifications jitter. A label is only trusted once it holds a
majority (3 of the last 5 frames). The history window is the only state
carried between frames and belongs to exactly one session.
"""

import logging
from collections import Counter, deque
from typing import Dict, Iterator, List

from .classifier import GestureLabel

logger = logging.getLogger(__name__)

WINDOW_SIZE = 5
MAJORITY = 3


class HistoryWindow:
    """Fixed-capacity FIFO of the most recent raw labels for one session."""

    def __init__(self, capacity: int = WINDOW_SIZE):
        self.capacity = capacity
        self._labels: deque = deque(maxlen=capacity)

    def append(self, label: GestureLabel) -> None:
        self._labels.append(label)

    def clear(self) -> None:
        self._labels.clear()

    def counts(self) -> Dict[GestureLabel, int]:
        """Label frequencies, keyed in order of first appearance."""
        return dict(Counter(self._labels))

    def labels(self) -> List[GestureLabel]:
        return list(self._labels)

    def __len__(self) -> int:
        return len(self._labels)

    def __iter__(self) -> Iterator[GestureLabel]:
        return iter(self._labels)


def majority_label(window: HistoryWindow, threshold: int = MAJORITY) -> GestureLabel:
    """
    Reduce a window to a single label.

    Returns the first non-NONE label, scanning in order of first appearance,
    whose count reaches ``threshold``; NONE if no label qualifies.
    """
    for label, count in window.counts().items():
        if label is not GestureLabel.NONE and count >= threshold:
            return label
    return GestureLabel.NONE


class StabilityFilter:
    """
    Majority-vote stabilizer keyed by session.

    The windows themselves live on each SessionState in the registry; the
    filter only looks them up, so there is no cross-session sharing.
    """

    def __init__(self, registry, threshold: int = MAJORITY):
        """
        Initialize StabilityFilter.

        Args:
            registry: SessionRegistry owning the per-session history windows
            threshold: Votes needed within the window for a label to win
        """
        self.registry = registry
        self.threshold = threshold

    def observe(self, session_id: str, raw_label: GestureLabel) -> GestureLabel:
        """Append a raw label to the session window and return the stabilized label."""
        window = self.registry.get(session_id).history
        window.append(raw_label)
        stable = majority_label(window, self.threshold)
        logger.debug(
            f"[{session_id}] window={[l.value for l in window]} stable={stable.value}"
        )
        return stable

    def reset(self, session_id: str) -> None:
        """Clear the session window, e.g. after a gap in observation."""
        self.registry.get(session_id).history.clear()
