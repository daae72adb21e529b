"""Tests for session state and the session registry."""

import re

import pytest

from client_card_control.message import GameSnapshot
from client_card_control.session import (
    DetectionState,
    GameLifecycle,
    SessionRegistry,
    UnknownSession,
    new_session_id,
)

from fakes import snapshot_payload


class TestSessionId:
    def test_format(self):
        assert re.fullmatch(r"user-\d+-[0-9a-z]{9}", new_session_id())

    def test_unique(self):
        assert new_session_id() != new_session_id()


class TestSessionRegistry:
    def test_create_is_idempotent(self):
        registry = SessionRegistry()
        first = registry.create("s1")
        assert registry.create("s1") is first
        assert len(registry) == 1

    def test_get_unknown_raises(self):
        with pytest.raises(UnknownSession):
            SessionRegistry().get("missing")

    def test_unknown_session_is_key_error(self):
        with pytest.raises(KeyError):
            SessionRegistry().get("missing")

    def test_detection_state(self):
        registry = SessionRegistry()
        assert registry.detection_state("s1") is DetectionState.DISCONNECTED
        state = registry.create("s1")
        assert registry.detection_state("s1") is DetectionState.IDLE
        state.detecting = True
        assert registry.detection_state("s1") is DetectionState.DETECTING

    def test_remove_during_iteration(self):
        registry = SessionRegistry()
        registry.create("a")
        registry.create("b")
        for state in registry:
            registry.remove(state.session_id)
        assert len(registry) == 0
        assert "a" not in registry


class TestSessionState:
    def test_lifecycle(self):
        state = SessionRegistry().create("s1")
        assert state.lifecycle is GameLifecycle.NO_GAME

        state.game_id = "game-1"
        state.snapshot = GameSnapshot.from_payload(snapshot_payload())
        assert state.lifecycle is GameLifecycle.ACTIVE

        state.snapshot = GameSnapshot.from_payload(snapshot_payload(game_over=True))
        assert state.lifecycle is GameLifecycle.GAME_OVER

    def test_clear_game(self):
        state = SessionRegistry().create("s1")
        state.game_id = "game-1"
        state.snapshot = GameSnapshot.from_payload(snapshot_payload())
        state.clear_game()
        assert state.game_id is None
        assert state.lifecycle is GameLifecycle.NO_GAME
