"""
Gesture Classifiers - per-frame hand observations to coarse gesture labels.

Two interchangeable strategies share the same ``classify(observation)``
contract:

- FingerCountClassifier: one hand, extended-finger thresholds
- HandednessClassifier: up to two hands, handedness rules

Classification is pure: no state is carried between frames here.
"""

import logging
from enum import Enum
from typing import Optional

from .hand_pose import FINGERS, LEFT, RIGHT, THUMB, HandObservation, Observation

logger = logging.getLogger(__name__)


class GestureLabel(str, Enum):
    """Coarse gesture categories. Values are the wire names."""
    NONE = "none"
    HIGHER = "higher"
    LOWER = "lower"
    RESET = "reset"

    @classmethod
    def parse(cls, value: Optional[str]) -> Optional['GestureLabel']:
        """Map a wire string to a label, or None for non-gesture words."""
        if value is None:
            return None
        try:
            return cls(str(value).lower())
        except ValueError:
            return None


# Minimum extended fingers for an open palm
OPEN_PALM_FINGERS = 4


# ============================================================================
# Finger Counting
# ============================================================================

def thumb_extended(hand: HandObservation) -> bool:
    """
    Thumb is extended when its tip lies beyond its lower joint horizontally.

    Landmarks come from a mirrored (selfie) frame. A "Right" or unlabeled
    hand has its thumb on the image-left, so the tip must be left of the
    joint; for "Left" hands it must be to the right.
    """
    tip, joint = THUMB
    if hand.handedness == LEFT:
        return hand.x(tip) > hand.x(joint)
    return hand.x(tip) < hand.x(joint)


def finger_extended(hand: HandObservation, tip: int, joint: int) -> bool:
    """A finger is extended when its tip is above (smaller y) its lower joint."""
    return hand.y(tip) < hand.y(joint)


def count_extended_fingers(hand: HandObservation) -> int:
    """Count extended fingers (0-5) on one hand."""
    count = 1 if thumb_extended(hand) else 0
    for tip, joint in FINGERS:
        if finger_extended(hand, tip, joint):
            count += 1
    return count


# ============================================================================
# Classifier Strategies
# ============================================================================

class GestureClassifier:
    """Contract shared by all classifier strategies."""

    name = "base"

    def classify(self, observation: Observation) -> GestureLabel:
        raise NotImplementedError


class FingerCountClassifier(GestureClassifier):
    """
    Single-hand finger-count model.

    Only the first detected hand is considered:
    - 4 or 5 extended -> HIGHER
    - 0 or 1 extended -> LOWER
    - exactly 2       -> RESET
    - otherwise       -> NONE
    """

    name = "finger-count"

    def classify(self, observation: Observation) -> GestureLabel:
        if observation.empty:
            return GestureLabel.NONE

        extended = count_extended_fingers(observation.hands[0])
        logger.debug(f"Extended fingers: {extended}")

        if extended >= 4:
            return GestureLabel.HIGHER
        if extended <= 1:
            return GestureLabel.LOWER
        if extended == 2:
            return GestureLabel.RESET
        return GestureLabel.NONE


class HandednessClassifier(GestureClassifier):
    """
    Two-hand handedness model.

    One hand: "Left" -> HIGHER, "Right" -> LOWER, anything else -> NONE.
    Two hands: both open palms -> RESET; differing handedness -> RESET;
    the same handedness reported twice falls back to the one-hand rule.
    Zero or more than two hands never fire.
    """

    name = "handedness"

    def classify(self, observation: Observation) -> GestureLabel:
        hands = observation.hands

        if len(hands) == 1:
            return self._by_handedness(hands[0].handedness)

        if len(hands) == 2:
            first, second = hands
            if (
                count_extended_fingers(first) >= OPEN_PALM_FINGERS
                and count_extended_fingers(second) >= OPEN_PALM_FINGERS
            ):
                return GestureLabel.RESET
            if first.handedness != second.handedness:
                return GestureLabel.RESET
            # Same handedness twice is a sensor quirk
            return GestureLabel.HIGHER if first.handedness == LEFT else GestureLabel.LOWER

        return GestureLabel.NONE

    @staticmethod
    def _by_handedness(handedness: Optional[str]) -> GestureLabel:
        if handedness == LEFT:
            return GestureLabel.HIGHER
        if handedness == RIGHT:
            return GestureLabel.LOWER
        return GestureLabel.NONE


CLASSIFIERS = {
    FingerCountClassifier.name: FingerCountClassifier,
    HandednessClassifier.name: HandednessClassifier,
}


def create_classifier(name: str) -> GestureClassifier:
    """Create a classifier strategy by its CLI name."""
    try:
        return CLASSIFIERS[name]()
    except KeyError:
        raise ValueError(
            f"Unknown classifier '{name}', expected one of {sorted(CLASSIFIERS)}"
        ) from None
