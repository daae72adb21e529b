"""
Cooldown Gate - rate limiting for stabilized gestures.

A stabilized gesture may only trigger a backend side effect once its
cooldown clocks allow it. Clocks are "not-before" instants in milliseconds,
held per session in a CooldownState.

Two policies are available; a deployment picks one:

- FlatCooldownPolicy: one 800 ms window after any dispatch
- TieredCooldownPolicy: 800 ms for HIGHER/LOWER, 2000 ms for RESET, plus a
  5000 ms global window opened by every dispatch. The global window holds
  back every gesture except a repeated RESET, which is bounded by its own
  2000 ms category window.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Optional

from .classifier import GestureLabel

logger = logging.getLogger(__name__)


class CooldownKey(str, Enum):
    GLOBAL = "global"
    RESET = "reset"
    OTHER = "other"


class CooldownStatus(str, Enum):
    """Outcome of a cooldown check."""
    ADMITTED = "admitted"
    NOT_SUBMITTABLE = "not_submittable"
    CATEGORY_COOLDOWN = "category_cooldown"
    GLOBAL_COOLDOWN = "global_cooldown"


@dataclass
class AdmitResult:
    """Structured result of CooldownGate.try_admit."""
    status: CooldownStatus
    retry_after_ms: int = 0

    @property
    def admitted(self) -> bool:
        return self.status is CooldownStatus.ADMITTED

    def __bool__(self) -> bool:
        return self.admitted


@dataclass
class CooldownState:
    """Per-session cooldown clocks."""
    not_before: Dict[CooldownKey, int] = field(default_factory=dict)
    # Label whose dispatch opened the current global window
    global_label: Optional[GestureLabel] = None

    def clear(self) -> None:
        self.not_before.clear()
        self.global_label = None


# ============================================================================
# Policies
# ============================================================================

class CooldownPolicy:
    """Base policy: decides admission and advances clocks."""

    name = "base"

    def check(self, state: CooldownState, label: GestureLabel, now_ms: int) -> AdmitResult:
        raise NotImplementedError

    def record(self, state: CooldownState, label: GestureLabel, now_ms: int) -> None:
        raise NotImplementedError


class FlatCooldownPolicy(CooldownPolicy):
    """Single cooldown after any dispatch, regardless of gesture."""

    name = "flat"

    def __init__(self, cooldown_ms: int = 800):
        self.cooldown_ms = cooldown_ms

    def check(self, state: CooldownState, label: GestureLabel, now_ms: int) -> AdmitResult:
        not_before = state.not_before.get(CooldownKey.GLOBAL)
        if not_before is not None and now_ms < not_before:
            return AdmitResult(CooldownStatus.CATEGORY_COOLDOWN, not_before - now_ms)
        return AdmitResult(CooldownStatus.ADMITTED)

    def record(self, state: CooldownState, label: GestureLabel, now_ms: int) -> None:
        state.not_before[CooldownKey.GLOBAL] = now_ms + self.cooldown_ms
        state.global_label = label


class TieredCooldownPolicy(CooldownPolicy):
    """Category-specific cooldowns plus a global suppression window."""

    name = "tiered"

    def __init__(
        self,
        generic_ms: int = 800,
        reset_ms: int = 2000,
        global_ms: int = 5000,
    ):
        """
        Initialize TieredCooldownPolicy.

        Args:
            generic_ms: Cooldown for HIGHER / LOWER
            reset_ms: Cooldown for RESET, which can discard game progress
            global_ms: Dead time after any dispatch for other gestures
        """
        self.generic_ms = generic_ms
        self.reset_ms = reset_ms
        self.global_ms = global_ms

    def _category(self, label: GestureLabel) -> CooldownKey:
        return CooldownKey.RESET if label is GestureLabel.RESET else CooldownKey.OTHER

    def _duration(self, key: CooldownKey) -> int:
        return self.reset_ms if key is CooldownKey.RESET else self.generic_ms

    def check(self, state: CooldownState, label: GestureLabel, now_ms: int) -> AdmitResult:
        category_nb = state.not_before.get(self._category(label))
        if category_nb is not None and now_ms < category_nb:
            return AdmitResult(CooldownStatus.CATEGORY_COOLDOWN, category_nb - now_ms)

        # A repeated RESET is only bounded by its category window
        repeat_reset = label is GestureLabel.RESET and state.global_label is GestureLabel.RESET
        global_nb = state.not_before.get(CooldownKey.GLOBAL)
        if global_nb is not None and now_ms < global_nb and not repeat_reset:
            return AdmitResult(CooldownStatus.GLOBAL_COOLDOWN, global_nb - now_ms)

        return AdmitResult(CooldownStatus.ADMITTED)

    def record(self, state: CooldownState, label: GestureLabel, now_ms: int) -> None:
        key = self._category(label)
        state.not_before[key] = now_ms + self._duration(key)
        state.not_before[CooldownKey.GLOBAL] = now_ms + self.global_ms
        state.global_label = label


POLICIES = {
    FlatCooldownPolicy.name: FlatCooldownPolicy,
    TieredCooldownPolicy.name: TieredCooldownPolicy,
}


def create_policy(name: str) -> CooldownPolicy:
    """Create a cooldown policy by its CLI name."""
    try:
        return POLICIES[name]()
    except KeyError:
        raise ValueError(
            f"Unknown cooldown policy '{name}', expected one of {sorted(POLICIES)}"
        ) from None


# ============================================================================
# Gate
# ============================================================================

class CooldownGate:
    """
    Rate limiter keyed by session.

    ``try_admit`` never mutates state; callers must call ``record`` after a
    successful dispatch so a failed publish leaves the clocks untouched.
    """

    def __init__(self, registry, policy: Optional[CooldownPolicy] = None):
        self.registry = registry
        self.policy = policy or TieredCooldownPolicy()

    def try_admit(self, session_id: str, label: GestureLabel, now_ms: int) -> AdmitResult:
        if label is GestureLabel.NONE:
            return AdmitResult(CooldownStatus.NOT_SUBMITTABLE)
        state = self.registry.get(session_id).cooldown
        result = self.policy.check(state, label, now_ms)
        if not result.admitted:
            logger.debug(
                f"[{session_id}] {label.value} denied: {result.status.value}, "
                f"retry in {result.retry_after_ms}ms"
            )
        return result

    def record(self, session_id: str, label: GestureLabel, now_ms: int) -> None:
        self.policy.record(self.registry.get(session_id).cooldown, label, now_ms)

    def reset(self, session_id: str) -> None:
        self.registry.get(session_id).cooldown.clear()
