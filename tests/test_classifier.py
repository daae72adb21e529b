"""Tests for hand pose observations and gesture classifiers."""

import numpy as np
import pytest

from client_card_control.classifier import (
    FingerCountClassifier,
    GestureLabel,
    HandednessClassifier,
    count_extended_fingers,
    create_classifier,
    thumb_extended,
)
from client_card_control.hand_pose import HandObservation, Observation, observation_from_results

from fakes import make_count, make_fist, make_hand, make_open_palm, observe


class TestHandObservation:
    def test_rejects_wrong_landmark_count(self):
        with pytest.raises(ValueError):
            HandObservation.from_points(np.zeros((20, 3)))

    def test_from_points_copies_input(self):
        points = np.zeros((21, 3), dtype=np.float32)
        hand = HandObservation.from_points(points)
        points[0, 0] = 1.0
        assert hand.x(0) == 0.0
        assert points.flags.writeable

    def test_observation_defaults(self):
        obs = Observation()
        assert obs.empty
        assert obs.hand_count == 0


class TestFingerCounting:
    def test_open_palm_counts_five(self):
        assert count_extended_fingers(make_open_palm()) == 5

    def test_fist_counts_zero(self):
        assert count_extended_fingers(make_fist()) == 0

    def test_thumb_side_depends_on_handedness(self):
        right = make_hand(("thumb",), "Right")
        left = make_hand(("thumb",), "Left")
        assert thumb_extended(right)
        assert thumb_extended(left)
        # Same landmarks read with the other handedness are curled
        assert not thumb_extended(HandObservation(left.landmarks, "Right"))

    def test_unlabeled_hand_uses_right_rule(self):
        hand = make_hand(("thumb",), None)
        assert thumb_extended(hand)


def make_selfie_hand(thumb_out, raised, handedness="Right"):
    """
    Anatomical hand as MediaPipe sees it in a mirrored frame, palm to camera.

    A right hand has its thumb on the image-left; a left hand is the mirror.
    """
    lm = np.zeros((21, 3), dtype=np.float32)
    lm[0] = [0.50, 0.90, 0]
    lm[1] = [0.43, 0.80, 0]
    lm[2] = [0.40, 0.72, 0]
    lm[3] = [0.36, 0.66, 0] if thumb_out else [0.46, 0.66, 0]
    lm[4] = [0.33, 0.62, 0] if thumb_out else [0.52, 0.62, 0]
    for i, name in enumerate(("index", "middle", "ring", "pinky")):
        x = 0.45 + i * 0.05
        mcp, tip = 5 + i * 4, 8 + i * 4
        lm[mcp] = [x, 0.60, 0]
        lm[mcp + 1] = [x, 0.50 if name in raised else 0.58, 0]
        lm[mcp + 2] = [x, 0.42 if name in raised else 0.65, 0]
        lm[tip] = [x, 0.35 if name in raised else 0.68, 0]
    if handedness == "Left":
        lm[:, 0] = 1.0 - lm[:, 0]
    return HandObservation.from_points(lm, handedness)


class TestSelfieFrameHands:
    def test_open_right_palm_counts_five(self):
        hand = make_selfie_hand(thumb_out=True, raised=("index", "middle", "ring", "pinky"))
        assert count_extended_fingers(hand) == 5

    def test_tucked_thumb_two_fingers_is_reset(self):
        hand = make_selfie_hand(thumb_out=False, raised=("index", "middle"))
        assert count_extended_fingers(hand) == 2
        assert FingerCountClassifier().classify(observe(hand)) is GestureLabel.RESET

    def test_thumb_and_index_is_reset(self):
        hand = make_selfie_hand(thumb_out=True, raised=("index",))
        assert FingerCountClassifier().classify(observe(hand)) is GestureLabel.RESET

    def test_left_hand_mirrors_right(self):
        open_left = make_selfie_hand(True, ("index", "middle", "ring", "pinky"), "Left")
        tucked_left = make_selfie_hand(False, (), "Left")
        assert count_extended_fingers(open_left) == 5
        assert count_extended_fingers(tucked_left) == 0


class TestFingerCountClassifier:
    def setup_method(self):
        self.clf = FingerCountClassifier()

    def test_five_extended_is_higher(self):
        assert self.clf.classify(observe(make_open_palm())) is GestureLabel.HIGHER

    def test_four_extended_is_higher(self):
        assert self.clf.classify(observe(make_count(4))) is GestureLabel.HIGHER

    def test_thumb_only_is_lower(self):
        assert self.clf.classify(observe(make_count(1))) is GestureLabel.LOWER

    def test_fist_is_lower(self):
        assert self.clf.classify(observe(make_fist())) is GestureLabel.LOWER

    def test_two_extended_is_reset(self):
        assert self.clf.classify(observe(make_count(2))) is GestureLabel.RESET

    def test_three_extended_is_none(self):
        assert self.clf.classify(observe(make_count(3))) is GestureLabel.NONE

    def test_no_hands_is_none(self):
        assert self.clf.classify(observe()) is GestureLabel.NONE

    def test_only_first_hand_counts(self):
        obs = observe(make_count(2), make_open_palm())
        assert self.clf.classify(obs) is GestureLabel.RESET


class TestHandednessClassifier:
    def setup_method(self):
        self.clf = HandednessClassifier()

    def test_single_left_is_higher(self):
        assert self.clf.classify(observe(make_fist("Left"))) is GestureLabel.HIGHER

    def test_single_right_is_lower(self):
        assert self.clf.classify(observe(make_fist("Right"))) is GestureLabel.LOWER

    def test_single_unlabeled_is_none(self):
        assert self.clf.classify(observe(make_open_palm(None))) is GestureLabel.NONE

    def test_two_left_falls_back_to_higher(self):
        obs = observe(make_fist("Left"), make_count(2, "Left"))
        assert self.clf.classify(obs) is GestureLabel.HIGHER

    def test_two_right_falls_back_to_lower(self):
        obs = observe(make_fist("Right"), make_fist("Right"))
        assert self.clf.classify(obs) is GestureLabel.LOWER

    def test_differing_handedness_is_reset(self):
        obs = observe(make_fist("Left"), make_fist("Right"))
        assert self.clf.classify(obs) is GestureLabel.RESET

    def test_two_open_palms_is_reset(self):
        obs = observe(make_open_palm("Left"), make_open_palm("Left"))
        assert self.clf.classify(obs) is GestureLabel.RESET

    def test_zero_or_three_hands_never_fire(self):
        assert self.clf.classify(observe()) is GestureLabel.NONE
        three = observe(make_fist("Left"), make_fist("Right"), make_fist("Left"))
        assert self.clf.classify(three) is GestureLabel.NONE


class TestClassifierFactory:
    def test_known_names(self):
        assert isinstance(create_classifier("finger-count"), FingerCountClassifier)
        assert isinstance(create_classifier("handedness"), HandednessClassifier)

    def test_unknown_name(self):
        with pytest.raises(ValueError):
            create_classifier("neural")


class TestGestureLabel:
    def test_parse_is_case_insensitive(self):
        assert GestureLabel.parse("HIGHER") is GestureLabel.HIGHER

    def test_parse_status_word_is_none(self):
        assert GestureLabel.parse("started") is None
        assert GestureLabel.parse(None) is None


class _Landmark:
    def __init__(self, x, y, z=0.0):
        self.x, self.y, self.z = x, y, z


class _LandmarkList:
    def __init__(self, hand):
        self.landmark = [_Landmark(*p) for p in hand.landmarks.tolist()]


class _Category:
    def __init__(self, label):
        self.label = label


class _Handedness:
    def __init__(self, label):
        self.classification = [_Category(label)]


class _Results:
    def __init__(self, hands):
        self.multi_hand_landmarks = [_LandmarkList(h) for h in hands] or None
        self.multi_handedness = [_Handedness(h.handedness) for h in hands] or None


class TestObservationFromResults:
    def test_converts_hands_in_model_order(self):
        results = _Results([make_fist("Left"), make_open_palm("Right")])
        obs = observation_from_results(results, ts_ms=123)
        assert obs.ts_ms == 123
        assert [h.handedness for h in obs.hands] == ["Left", "Right"]
        assert obs.hands[1].landmarks.shape == (21, 3)
        assert count_extended_fingers(obs.hands[1]) == 5

    def test_no_hands(self):
        obs = observation_from_results(_Results([]), ts_ms=0)
        assert obs.empty
