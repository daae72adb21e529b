"""Test doubles and landmark builders shared by the test modules."""

import json

import httpx
import numpy as np

from client_card_control.game_api import GameServiceClient
from client_card_control.hand_pose import (
    FINGERS,
    LEFT,
    THUMB_MCP,
    THUMB_TIP,
    WRIST,
    HandObservation,
    Observation,
    ObservationSource,
)
from client_card_control.transport import PubSubTransport

FINGER_NAMES = ("index", "middle", "ring", "pinky")
DIGITS = ("thumb",) + FINGER_NAMES


# ============================================================================
# Landmarks
# ============================================================================

def make_hand(extended=(), handedness=None):
    """
    Hand with the named digits extended and the rest curled.

    Args:
        extended: Any of "thumb", "index", "middle", "ring", "pinky"
        handedness: "Left", "Right" or None
    """
    lm = np.zeros((21, 3), dtype=np.float32)
    lm[WRIST] = [0.5, 0.9, 0]

    # Thumb points outward on the handedness-appropriate side
    out = 0.1 if handedness == LEFT else -0.1
    lm[THUMB_MCP] = [0.5, 0.7, 0]
    tip_dx = out if "thumb" in extended else -out
    lm[THUMB_TIP] = [0.5 + tip_dx, 0.65, 0]

    for i, (name, (tip, mcp)) in enumerate(zip(FINGER_NAMES, FINGERS)):
        x = 0.4 + i * 0.05
        lm[mcp] = [x, 0.6, 0]
        lm[tip] = [x, 0.3 if name in extended else 0.75, 0]

    return HandObservation.from_points(lm, handedness)


def make_count(n, handedness=None):
    """Hand with exactly n digits extended, thumb first."""
    return make_hand(DIGITS[:n], handedness)


def make_open_palm(handedness=None):
    return make_hand(DIGITS, handedness)


def make_fist(handedness=None):
    return make_hand((), handedness)


def observe(*hands, ts_ms=0):
    return Observation(hands=tuple(hands), ts_ms=ts_ms)


# ============================================================================
# Pub/sub
# ============================================================================

class FakeTransport(PubSubTransport):
    """In-memory transport recording everything published."""

    def __init__(self, connected=True):
        super().__init__()
        self._connected = connected
        self.published = []
        self.subscribed = []
        self.unsubscribed = []
        self.refuse = False

    @property
    def connected(self):
        return self._connected

    def publish(self, destination, payload):
        if not self._connected or self.refuse:
            return False
        self.published.append((destination, payload))
        return True

    def _send_subscribe(self, topic):
        self.subscribed.append(topic)

    def _send_unsubscribe(self, topic):
        self.unsubscribed.append(topic)

    def set_connected(self, connected):
        self._connected = connected
        if connected:
            for topic in self.topics:
                self._send_subscribe(topic)
        self._notify_connection(connected)

    def deliver(self, topic, payload):
        raw = payload if isinstance(payload, (str, bytes)) else json.dumps(payload)
        self._dispatch(topic, raw)

    def destinations(self):
        return [d for d, _ in self.published]

    def sent(self, name):
        return [p for d, p in self.published if d.endswith(name)]


# ============================================================================
# Observation source
# ============================================================================

class FakeSource(ObservationSource):
    """Replays a fixed list of observations, then None."""

    def __init__(self, observations=(), model_ready=True, camera_available=True):
        self._observations = list(observations)
        self._model_ready = model_ready
        self._camera_available = camera_available
        self.reads = 0

    @property
    def model_ready(self):
        return self._model_ready

    @property
    def camera_available(self):
        return self._camera_available

    async def read(self):
        self.reads += 1
        if self._observations:
            return self._observations.pop(0)
        return None


# ============================================================================
# Game service
# ============================================================================

def card(suit="HEARTS", rank="7", value=7):
    return {"suit": suit, "rank": rank, "value": value}


def snapshot_payload(game_id="game-1", score=0, game_over=False, message=None,
                     current=None, nxt=None):
    return {
        "gameId": game_id,
        "currentCard": current or card(),
        "nextCard": nxt or card("SPADES", "9", 9),
        "score": score,
        "gameOver": game_over,
        "message": message,
    }


class FakeGameService:
    """httpx MockTransport handler with a queue of canned responses."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests = []

    def __call__(self, request):
        self.requests.append(request)
        if not self.responses:
            return httpx.Response(500, text="no canned response")
        response = self.responses.pop(0)
        if isinstance(response, httpx.Response):
            return response
        if isinstance(response, Exception):
            raise response
        return httpx.Response(200, json=response)

    def client(self, base_url="http://game.test/api/game"):
        return GameServiceClient(
            base_url=base_url,
            client=httpx.AsyncClient(transport=httpx.MockTransport(self)),
        )
