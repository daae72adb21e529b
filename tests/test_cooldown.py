"""Tests for cooldown policies and the cooldown gate."""

import pytest

from client_card_control.classifier import GestureLabel
from client_card_control.cooldown import (
    CooldownGate,
    CooldownKey,
    CooldownStatus,
    FlatCooldownPolicy,
    TieredCooldownPolicy,
    create_policy,
)
from client_card_control.session import SessionRegistry


def make_gate(policy=None):
    registry = SessionRegistry()
    registry.create("s1")
    return CooldownGate(registry, policy), registry


class TestTieredPolicy:
    def setup_method(self):
        self.gate, self.registry = make_gate(TieredCooldownPolicy())

    def admit_and_record(self, label, now):
        result = self.gate.try_admit("s1", label, now)
        if result:
            self.gate.record("s1", label, now)
        return result

    def test_first_gesture_admitted(self):
        assert self.gate.try_admit("s1", GestureLabel.HIGHER, 0).admitted

    def test_reset_category_window(self):
        assert self.admit_and_record(GestureLabel.RESET, 0)

        denied = self.gate.try_admit("s1", GestureLabel.RESET, 1999)
        assert not denied
        assert denied.status is CooldownStatus.CATEGORY_COOLDOWN
        assert denied.retry_after_ms == 1

        assert self.gate.try_admit("s1", GestureLabel.RESET, 2001).admitted

    def test_global_window_blocks_other_category(self):
        assert self.admit_and_record(GestureLabel.RESET, 0)

        result = self.gate.try_admit("s1", GestureLabel.HIGHER, 4999)
        assert result.status is CooldownStatus.GLOBAL_COOLDOWN
        assert result.retry_after_ms == 1

        assert self.gate.try_admit("s1", GestureLabel.HIGHER, 5000).admitted

    def test_generic_category_window(self):
        assert self.admit_and_record(GestureLabel.HIGHER, 0)
        assert self.gate.try_admit("s1", GestureLabel.HIGHER, 799).status is CooldownStatus.CATEGORY_COOLDOWN

    def test_held_gesture_waits_for_global_window(self):
        assert self.admit_and_record(GestureLabel.HIGHER, 0)

        result = self.gate.try_admit("s1", GestureLabel.HIGHER, 800)
        assert result.status is CooldownStatus.GLOBAL_COOLDOWN
        assert result.retry_after_ms == 4200

        assert self.gate.try_admit("s1", GestureLabel.HIGHER, 5000).admitted

    def test_reset_after_other_gesture_waits_for_global_window(self):
        assert self.admit_and_record(GestureLabel.LOWER, 0)
        assert self.gate.try_admit("s1", GestureLabel.RESET, 2500).status is CooldownStatus.GLOBAL_COOLDOWN

    def test_higher_and_lower_share_category(self):
        assert self.admit_and_record(GestureLabel.HIGHER, 0)
        result = self.gate.try_admit("s1", GestureLabel.LOWER, 500)
        assert result.status is CooldownStatus.CATEGORY_COOLDOWN

    def test_record_advances_clocks(self):
        self.admit_and_record(GestureLabel.RESET, 100)
        state = self.registry.get("s1").cooldown
        assert state.not_before[CooldownKey.RESET] == 2100
        assert state.not_before[CooldownKey.GLOBAL] == 5100
        assert state.global_label is GestureLabel.RESET

    def test_try_admit_does_not_mutate(self):
        self.gate.try_admit("s1", GestureLabel.HIGHER, 0)
        assert self.registry.get("s1").cooldown.not_before == {}

    def test_none_not_submittable(self):
        result = self.gate.try_admit("s1", GestureLabel.NONE, 0)
        assert result.status is CooldownStatus.NOT_SUBMITTABLE
        assert not result

    def test_reset_clears_state(self):
        self.admit_and_record(GestureLabel.RESET, 0)
        self.gate.reset("s1")
        assert self.gate.try_admit("s1", GestureLabel.LOWER, 1).admitted


class TestFlatPolicy:
    def setup_method(self):
        self.gate, _ = make_gate(FlatCooldownPolicy())

    def test_single_window_for_all_gestures(self):
        self.gate.record("s1", GestureLabel.RESET, 0)
        assert not self.gate.try_admit("s1", GestureLabel.HIGHER, 799)
        assert self.gate.try_admit("s1", GestureLabel.HIGHER, 800)
        assert self.gate.try_admit("s1", GestureLabel.RESET, 800)


class TestPolicyFactory:
    def test_gate_defaults_to_tiered(self):
        gate, _ = make_gate()
        assert isinstance(gate.policy, TieredCooldownPolicy)

    def test_create_by_name(self):
        assert isinstance(create_policy("flat"), FlatCooldownPolicy)
        with pytest.raises(ValueError):
            create_policy("none")
