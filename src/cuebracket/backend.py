"""Backend collaborator: the tournament API every accepted command is
mirrored to before it is applied locally.

TournamentBackend is the interface; HttpBackend talks to the organizer
REST API with httpx. The offline implementation lives in storage.py.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Optional

import httpx

from cuebracket.auth import is_auth_failure
from cuebracket.exceptions import AuthenticationFailed, RemoteFailure, RemoteTimeout
from cuebracket.models import Player, PlayerStatus

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "http://localhost:3005/api/v1"
DEFAULT_TIMEOUT = 30.0


@dataclass
class ApiResponse:
    """Result of one backend call."""

    success: bool
    message: str = ""
    data: Any = None


class TournamentBackend(ABC):
    """Logical operations of the tournament API.

    Ids passed in are backend ids where one is known, local ids otherwise.
    Implementations raise AuthenticationFailed, RemoteFailure or
    RemoteTimeout; a plain ``success=False`` response is also a failure.
    """

    @abstractmethod
    async def fetch_tournament(self, tournament_id: str) -> ApiResponse:
        """Roster and status. ``data``: {status, players: [...]}"""

    @abstractmethod
    async def create_tournament(self, name: str, players: list[dict]) -> ApiResponse:
        """``data``: {id, player_ids: {local id: backend id}}"""

    @abstractmethod
    async def start_tournament(self, tournament_id: str, first_round: dict) -> ApiResponse:
        """Start the tournament and create its first round in the same call.

        ``data``: {round_id}
        """

    @abstractmethod
    async def create_round(self, tournament_id: str, payload: dict) -> ApiResponse:
        """``data``: {id}"""

    @abstractmethod
    async def update_round(self, tournament_id: str, round_id: str, payload: dict) -> ApiResponse:
        """Batch match upsert/deletion, display name and freeze fields.

        ``data`` may map new local match ids to backend ids: {match_ids: {...}}
        """

    @abstractmethod
    async def move_players(self, tournament_id: str, moves: list[dict]) -> ApiResponse:
        """Move players between rounds as one batch.

        Each entry is {playerId, roundId, asWinner}; a ``roundId`` of None
        sends the player back to the staging pool.
        ``data``: {moved, skipped, skipped_ids}
        """

    @abstractmethod
    async def remove_players(
        self, tournament_id: str, round_id: str, player_ids: list[str]
    ) -> ApiResponse:
        pass

    @abstractmethod
    async def start_match(self, tournament_id: str, match_id: str) -> ApiResponse:
        pass

    @abstractmethod
    async def complete_match(
        self,
        tournament_id: str,
        match_id: str,
        winner_id: str,
        player1_score: Optional[int],
        player2_score: Optional[int],
    ) -> ApiResponse:
        pass

    @abstractmethod
    async def cancel_match(self, tournament_id: str, match_id: str) -> ApiResponse:
        pass

    @abstractmethod
    async def delete_round(self, tournament_id: str, round_id: str) -> ApiResponse:
        pass

    @abstractmethod
    async def close_tournament(self, tournament_id: str) -> ApiResponse:
        pass

    @abstractmethod
    async def save_winner_titles(self, tournament_id: str, winners: list[dict]) -> ApiResponse:
        pass


# ============================================================================
# HTTP implementation
# ============================================================================


class HttpBackend(TournamentBackend):
    """Organizer REST API client.

    Args:
        base_url: API root, e.g. http://localhost:3005/api/v1
        token: Bearer token of the organizer session
        timeout: Per-request timeout in seconds
        client: Pre-built httpx.AsyncClient (tests inject a MockTransport)
    """

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        token: Optional[str] = None,
        timeout: float = DEFAULT_TIMEOUT,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout = timeout
        self._client = client or httpx.AsyncClient(base_url=self.base_url, timeout=timeout)

    async def aclose(self) -> None:
        await self._client.aclose()

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    async def _request(self, method: str, path: str, json: Any = None) -> ApiResponse:
        url = f"{self.base_url}/organizers/tournaments{path}"
        logger.debug("%s %s", method, url)
        try:
            response = await self._client.request(method, url, json=json, headers=self._headers())
        except httpx.TimeoutException:
            raise RemoteTimeout(self.timeout) from None
        except httpx.HTTPError as e:
            logger.warning("Request %s %s failed: %s", method, url, e)
            raise RemoteFailure.network(str(e) or type(e).__name__) from e

        try:
            body = response.json()
        except ValueError:
            body = {"message": response.text}
        if not isinstance(body, dict):
            body = {"data": body}
        message = body.get("message") or ""

        if response.status_code == 401:
            raise AuthenticationFailed(message or "Session expired. Please login again.")
        if response.is_error:
            cause = message or f"HTTP error! status: {response.status_code}"
            if is_auth_failure(cause):
                raise AuthenticationFailed(cause)
            raise RemoteFailure.rejected(cause)

        return ApiResponse(
            success=body.get("success", True), message=message, data=body.get("data")
        )

    async def fetch_tournament(self, tournament_id: str) -> ApiResponse:
        return await self._request("POST", f"/{tournament_id}/players", {"token": self.token})

    async def create_tournament(self, name: str, players: list[dict]) -> ApiResponse:
        return await self._request("POST", "", {"name": name, "players": players})

    async def start_tournament(self, tournament_id: str, first_round: dict) -> ApiResponse:
        return await self._request("PATCH", f"/{tournament_id}/start", {"firstRound": first_round})

    async def create_round(self, tournament_id: str, payload: dict) -> ApiResponse:
        return await self._request("POST", f"/{tournament_id}/rounds", payload)

    async def update_round(self, tournament_id: str, round_id: str, payload: dict) -> ApiResponse:
        return await self._request("PATCH", f"/{tournament_id}/rounds/{round_id}", payload)

    async def move_players(self, tournament_id: str, moves: list[dict]) -> ApiResponse:
        return await self._request("POST", f"/{tournament_id}/players/move", {"moves": moves})

    async def remove_players(
        self, tournament_id: str, round_id: str, player_ids: list[str]
    ) -> ApiResponse:
        return await self._request(
            "POST", f"/{tournament_id}/rounds/{round_id}/players/remove", {"playerIds": player_ids}
        )

    async def start_match(self, tournament_id: str, match_id: str) -> ApiResponse:
        return await self._request("PATCH", f"/{tournament_id}/matches/{match_id}/start")

    async def complete_match(
        self,
        tournament_id: str,
        match_id: str,
        winner_id: str,
        player1_score: Optional[int],
        player2_score: Optional[int],
    ) -> ApiResponse:
        return await self._request(
            "PATCH",
            f"/{tournament_id}/matches/{match_id}/complete",
            {"winnerId": winner_id, "player1Score": player1_score, "player2Score": player2_score},
        )

    async def cancel_match(self, tournament_id: str, match_id: str) -> ApiResponse:
        return await self._request("DELETE", f"/{tournament_id}/matches/{match_id}")

    async def delete_round(self, tournament_id: str, round_id: str) -> ApiResponse:
        return await self._request("DELETE", f"/{tournament_id}/rounds/{round_id}")

    async def close_tournament(self, tournament_id: str) -> ApiResponse:
        return await self._request("PATCH", f"/{tournament_id}/close")

    async def save_winner_titles(self, tournament_id: str, winners: list[dict]) -> ApiResponse:
        return await self._request("PUT", f"/{tournament_id}/winners", {"winners": winners})


# ============================================================================
# Payload decoding
# ============================================================================


def _player_status(raw: Optional[str]) -> PlayerStatus:
    try:
        return PlayerStatus(raw)
    except ValueError:
        return PlayerStatus.AVAILABLE


def roster_from_payload(data: Any) -> list[Player]:
    """Decode the players of a fetched tournament.

    Accepts ``{"players": [...]}`` or a bare list. Each player needs an
    ``id``; the name may come as ``name``, ``fullName`` or ``username``.
    """
    if isinstance(data, dict):
        items = data.get("players") or []
    else:
        items = data or []

    players = []
    for item in items:
        backend_id = str(item.get("id") or item.get("_id") or item.get("playerId") or "")
        if not backend_id:
            logger.warning("Skipping roster entry without id: %r", item)
            continue
        name = item.get("name") or item.get("fullName") or item.get("username") or backend_id
        players.append(
            Player(
                id=backend_id,
                name=name,
                external_id=backend_id,
                skill=item.get("skillLevel") or item.get("skill") or "Beginner",
                avatar=item.get("avatar") or item.get("profilePicture"),
                status=_player_status(item.get("status")),
            )
        )
    return players
