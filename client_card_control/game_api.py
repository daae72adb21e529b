"""
Game Service Client - request/response access to the card game backend.

    POST /start             -> GameSnapshot
    POST /{gameId}/guess    {guess: "higher"|"lower"} -> GameSnapshot
    GET  /{gameId}          -> GameSnapshot

Every failure (non-2xx status, network error, empty or unparseable body)
is raised as UpstreamServiceError.
"""

import logging
from typing import Optional, Union

import httpx

from .classifier import GestureLabel
from .errors import MalformedInboundMessage, UpstreamServiceError
from .message import GameSnapshot

logger = logging.getLogger(__name__)

GUESSES = (GestureLabel.HIGHER, GestureLabel.LOWER)


class GameServiceClient:
    """Async HTTP client for the card game REST API."""

    def __init__(
        self,
        base_url: str = "http://localhost:8080/api/game",
        timeout_seconds: float = 5.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Initialize GameServiceClient.

        Args:
            base_url: Game API root (e.g., http://localhost:8080/api/game)
            timeout_seconds: Per-request timeout
            client: Pre-built httpx client (tests inject a MockTransport here)
        """
        self.base_url = base_url.rstrip("/")
        self._client = client or httpx.AsyncClient(timeout=timeout_seconds)
        self._owns_client = client is None

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def start_game(self) -> GameSnapshot:
        """Start a new game."""
        return await self._request("POST", "/start")

    async def make_guess(
        self,
        game_id: str,
        guess: Union[GestureLabel, str],
    ) -> GameSnapshot:
        """
        Guess whether the next card is higher or lower.

        Raises:
            ValueError: if guess is not higher/lower
            UpstreamServiceError: on any service failure
        """
        label = guess if isinstance(guess, GestureLabel) else GestureLabel.parse(guess)
        if label not in GUESSES:
            raise ValueError(f"Guess must be higher or lower, got {guess!r}")
        return await self._request("POST", f"/{game_id}/guess", json={"guess": label.value})

    async def get_game(self, game_id: str) -> GameSnapshot:
        """Fetch the current state of a game."""
        return await self._request("GET", f"/{game_id}")

    async def _request(self, method: str, path: str, json: Optional[dict] = None) -> GameSnapshot:
        url = f"{self.base_url}{path}"
        try:
            response = await self._client.request(method, url, json=json)
        except httpx.HTTPError as e:
            logger.error(f"{method} {url} failed: {e}")
            raise UpstreamServiceError(f"Game service unreachable: {e}") from e

        if not response.is_success:
            logger.warning(f"{method} {url} returned HTTP {response.status_code}")
            raise UpstreamServiceError(
                f"HTTP error! status: {response.status_code}",
                status_code=response.status_code,
            )

        if not response.content.strip():
            raise UpstreamServiceError(
                "Game service returned an empty response",
                status_code=response.status_code,
            )

        try:
            snapshot = GameSnapshot.from_payload(response.json())
        except (ValueError, MalformedInboundMessage) as e:
            raise UpstreamServiceError(
                f"Invalid game state from service: {e}",
                status_code=response.status_code,
            ) from e

        logger.debug(f"{method} {url} -> game {snapshot.game_id}, score {snapshot.score}")
        return snapshot
