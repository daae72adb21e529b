"""
Message Schema and Validation for pub/sub and game service payloads.

Defines the JSON shapes exchanged with the card game backend:

Outbound destinations (client -> backend):
    gesture.register   {sessionId}
    gesture.unregister {sessionId}
    gesture.start      {sessionId, cameraIndex}
    gesture.stop       {sessionId}
    gesture.detect     {sessionId, gesture, gameId, timestamp}

Inbound topics (backend -> client):
    gesture/{sessionId}
    game-updates
    payload {gesture, gameId?, currentCard?, nextCard?, score?, gameOver?, message?}

Inbound payloads are validated on arrival; anything malformed raises
MalformedInboundMessage and is dropped by the caller.
"""

import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional, Union

from .classifier import GestureLabel
from .errors import MalformedInboundMessage

logger = logging.getLogger(__name__)

# Outbound destinations
DEST_REGISTER = "gesture.register"
DEST_UNREGISTER = "gesture.unregister"
DEST_START = "gesture.start"
DEST_STOP = "gesture.stop"
DEST_DETECT = "gesture.detect"

# Inbound topics
TOPIC_GAME_UPDATES = "game-updates"


def session_topic(session_id: str) -> str:
    """Per-session inbound topic name."""
    return f"gesture/{session_id}"


SUITS = ("HEARTS", "DIAMONDS", "CLUBS", "SPADES")
RANKS = ("2", "3", "4", "5", "6", "7", "8", "9", "10", "J", "Q", "K", "A")

# Backend status words that never carry a gesture
STATUS_WORDS = ("connected", "started", "stopped", "error")


@dataclass(frozen=True)
class Card:
    """A playing card. Value runs 2..14 (ace high)."""
    suit: str
    rank: str
    value: int

    @classmethod
    def from_payload(cls, d: Any) -> 'Card':
        if not isinstance(d, dict):
            raise MalformedInboundMessage(f"card is not an object: {d!r}")
        try:
            suit = str(d['suit']).upper()
            rank = str(d['rank'])
            value = int(d['value'])
        except (KeyError, TypeError, ValueError) as e:
            raise MalformedInboundMessage(f"invalid card {d!r}: {e}") from e
        if suit not in SUITS:
            raise MalformedInboundMessage(f"unknown suit: {suit}")
        return cls(suit=suit, rank=rank, value=value)

    def to_payload(self) -> Dict[str, Any]:
        return {"suit": self.suit, "rank": self.rank, "value": self.value}

    def __str__(self) -> str:
        return f"{self.rank} of {self.suit.capitalize()}"


@dataclass(frozen=True)
class GameSnapshot:
    """
    Authoritative view of a game as reported by the backend.

    Snapshots are replaced whole on every update, never merged.
    """
    game_id: Optional[str]
    current_card: Optional[Card]
    next_card: Optional[Card]
    score: int = 0
    game_over: bool = False
    message: Optional[str] = None

    @property
    def visible_next_card(self) -> Optional[Card]:
        """The next card is only revealed once the game has ended."""
        return self.next_card if self.game_over else None

    @classmethod
    def from_payload(cls, d: Any) -> 'GameSnapshot':
        """
        Parse a game service / pub/sub payload.

        Missing score and gameOver default to 0 and False.

        Raises:
            MalformedInboundMessage: if the payload is not an object or a
                field has the wrong type
        """
        if not isinstance(d, dict):
            raise MalformedInboundMessage(f"snapshot is not an object: {d!r}")

        current = d.get('currentCard')
        nxt = d.get('nextCard')
        try:
            score = int(d.get('score') or 0)
        except (TypeError, ValueError) as e:
            raise MalformedInboundMessage(f"invalid score {d.get('score')!r}") from e

        game_over = d.get('gameOver') or False
        if not isinstance(game_over, bool):
            raise MalformedInboundMessage(f"gameOver is not boolean: {game_over!r}")

        game_id = d.get('gameId')
        message = d.get('message')
        return cls(
            game_id=str(game_id) if game_id is not None else None,
            current_card=Card.from_payload(current) if current is not None else None,
            next_card=Card.from_payload(nxt) if nxt is not None else None,
            score=score,
            game_over=game_over,
            message=str(message) if message is not None else None,
        )

    def to_payload(self) -> Dict[str, Any]:
        return {
            "gameId": self.game_id,
            "currentCard": self.current_card.to_payload() if self.current_card else None,
            "nextCard": self.next_card.to_payload() if self.next_card else None,
            "score": self.score,
            "gameOver": self.game_over,
            "message": self.message,
        }


@dataclass(frozen=True)
class InboundUpdate:
    """
    A gesture / game update received on a subscription.

    Attributes:
        gesture: Raw gesture word ("higher", "reset", "started", "error", ...)
        game_id: Game id carried by the message, if any
        snapshot: Full snapshot when both cards are present, else None
            (status-only message)
        message: Human-readable status text
        topic: Topic the update arrived on
    """
    gesture: str
    game_id: Optional[str] = None
    snapshot: Optional[GameSnapshot] = None
    message: Optional[str] = None
    topic: Optional[str] = None

    @property
    def label(self) -> Optional[GestureLabel]:
        return GestureLabel.parse(self.gesture)

    @property
    def status_only(self) -> bool:
        return self.snapshot is None

    @property
    def is_status_word(self) -> bool:
        """True for backend status words (connected, started, ...)."""
        return self.gesture.lower() in STATUS_WORDS

    @classmethod
    def from_payload(cls, d: Any, topic: Optional[str] = None) -> 'InboundUpdate':
        if not isinstance(d, dict):
            raise MalformedInboundMessage(f"payload is not an object: {d!r}")

        gesture = d.get('gesture')
        if not isinstance(gesture, str) or not gesture:
            raise MalformedInboundMessage(f"missing gesture field in {d!r}")

        snapshot = None
        if d.get('currentCard') is not None and d.get('nextCard') is not None:
            snapshot = GameSnapshot.from_payload(d)

        game_id = d.get('gameId')
        message = d.get('message')
        return cls(
            gesture=gesture,
            game_id=str(game_id) if game_id is not None else None,
            snapshot=snapshot,
            message=str(message) if message is not None else None,
            topic=topic,
        )

    @classmethod
    def from_json(cls, data: Union[str, bytes], topic: Optional[str] = None) -> 'InboundUpdate':
        """Deserialize from a JSON string or UTF-8 bytes."""
        try:
            if isinstance(data, bytes):
                data = data.decode("utf-8")
            d = json.loads(data)
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise MalformedInboundMessage(f"invalid JSON: {e}") from e
        return cls.from_payload(d, topic=topic)


# ============================================================================
# Outbound Payloads
# ============================================================================

def session_payload(session_id: str) -> Dict[str, Any]:
    return {"sessionId": session_id}


def start_payload(session_id: str, camera_index: int = 0) -> Dict[str, Any]:
    return {"sessionId": session_id, "cameraIndex": camera_index}


def detect_payload(
    session_id: str,
    label: GestureLabel,
    game_id: Optional[str],
    timestamp_ms: Optional[int] = None,
) -> Dict[str, Any]:
    """
    Create a gesture.detect payload.

    Args:
        session_id: Sending session
        label: Stabilized, admitted gesture (never NONE)
        game_id: Game the gesture applies to
        timestamp_ms: Wall-clock epoch milliseconds, defaults to now

    Raises:
        ValueError: if label is NONE
    """
    if label is GestureLabel.NONE:
        raise ValueError("NONE is never dispatched")
    if timestamp_ms is None:
        timestamp_ms = int(time.time() * 1000)
    return {
        "sessionId": session_id,
        "gesture": label.value,
        "gameId": game_id,
        "timestamp": timestamp_ms,
    }
