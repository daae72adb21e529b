"""
Session state and registry.

A session is one client's logical connection scope, from connect to
disconnect. All per-session mutable state (game id, detection flag, history
window, cooldown clocks, latest snapshot) lives on one SessionState record
held in a SessionRegistry and mutated only by the SessionCoordinator.
"""

import logging
import secrets
import string
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterator, Optional

from .cooldown import CooldownState
from .errors import GameClientError
from .message import GameSnapshot
from .stability import HistoryWindow

logger = logging.getLogger(__name__)

_BASE36 = string.digits + string.ascii_lowercase


def new_session_id() -> str:
    """Generate an opaque session id: user-<epoch ms>-<9 base36 chars>."""
    suffix = "".join(secrets.choice(_BASE36) for _ in range(9))
    return f"user-{int(time.time() * 1000)}-{suffix}"


class DetectionState(str, Enum):
    DISCONNECTED = "disconnected"
    IDLE = "idle"
    DETECTING = "detecting"


class GameLifecycle(str, Enum):
    NO_GAME = "no_game"
    ACTIVE = "active"
    GAME_OVER = "game_over"


class UnknownSession(GameClientError, KeyError):
    """No session is registered under the given id."""


@dataclass
class SessionState:
    """Mutable state for one session."""
    session_id: str
    game_id: Optional[str] = None
    detecting: bool = False
    history: HistoryWindow = field(default_factory=HistoryWindow)
    cooldown: CooldownState = field(default_factory=CooldownState)
    snapshot: Optional[GameSnapshot] = None
    status_message: str = "Start a new game to begin!"
    debug_status: str = ""
    processing: bool = False
    connected_at: float = field(default_factory=time.time)
    frames_processed: int = 0
    gestures_sent: int = 0

    @property
    def lifecycle(self) -> GameLifecycle:
        if self.snapshot is None or self.game_id is None:
            return GameLifecycle.NO_GAME
        if self.snapshot.game_over:
            return GameLifecycle.GAME_OVER
        return GameLifecycle.ACTIVE

    @property
    def detection_state(self) -> DetectionState:
        return DetectionState.DETECTING if self.detecting else DetectionState.IDLE

    def clear_game(self) -> None:
        self.game_id = None
        self.snapshot = None
        self.history.clear()


class SessionRegistry:
    """Mapping of session id -> SessionState."""

    def __init__(self):
        self._sessions: Dict[str, SessionState] = {}

    def create(self, session_id: str) -> SessionState:
        if session_id in self._sessions:
            return self._sessions[session_id]
        state = SessionState(session_id=session_id)
        self._sessions[session_id] = state
        logger.debug(f"Session created: {session_id}")
        return state

    def get(self, session_id: str) -> SessionState:
        try:
            return self._sessions[session_id]
        except KeyError:
            raise UnknownSession(session_id) from None

    def find(self, session_id: str) -> Optional[SessionState]:
        return self._sessions.get(session_id)

    def remove(self, session_id: str) -> Optional[SessionState]:
        state = self._sessions.pop(session_id, None)
        if state is not None:
            logger.debug(f"Session destroyed: {session_id}")
        return state

    def detection_state(self, session_id: str) -> DetectionState:
        state = self.find(session_id)
        if state is None:
            return DetectionState.DISCONNECTED
        return state.detection_state

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._sessions

    def __iter__(self) -> Iterator[SessionState]:
        return iter(list(self._sessions.values()))

    def __len__(self) -> int:
        return len(self._sessions)
