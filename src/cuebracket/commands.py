"""Organizer commands and their two-phase handling.

Every command goes through:

1. ``validate(state, command)`` - pure, returns an Effect or raises a
   Rejection. Nothing is sent or changed.
2. ``mirror(backend, state, effect)`` - the backend call(s); returns the
   data the apply step needs (backend ids, skipped players).
3. ``apply(state, effect, data)`` - pure, returns the new state.
"""

import random
from dataclasses import dataclass
from typing import Any, Optional

from cuebracket.auth import is_auth_failure
from cuebracket.backend import ApiResponse, TournamentBackend
from cuebracket.exceptions import AuthenticationFailed, RemoteFailure
from cuebracket.i18n import get_string
from cuebracket.models import Effect, MembershipKind, TournamentState
from cuebracket.movement import MoveEffect, MovePlayers, apply_move, location_label, plan_move
from cuebracket.pairing import ShuffleEffect, apply_shuffle, plan_shuffle
from cuebracket.policy import DEFAULT_POLICY, ProgressionPolicy
from cuebracket.ranking import (
    RankingEditBuffer,
    SaveTitlesEffect,
    apply_save_titles,
    plan_save_titles,
)
from cuebracket.resolver import (
    CancelMatchEffect,
    SelectWinnerEffect,
    StartMatchEffect,
    apply_cancel_match,
    apply_select_winner,
    apply_start_match,
    plan_cancel_match,
    plan_select_winner,
    plan_start_match,
)
from cuebracket.rounds import (
    CloseRoundEffect,
    CloseTournamentEffect,
    CreateRoundEffect,
    FreezeRoundEffect,
    RenameRoundEffect,
    StartTournamentEffect,
    apply_close_round,
    apply_close_tournament,
    apply_create_round,
    apply_freeze_round,
    apply_rename_round,
    apply_start_tournament,
    plan_close_round,
    plan_close_tournament,
    plan_create_round,
    plan_freeze_round,
    plan_rename_round,
    plan_start_tournament,
)

__all__ = [
    "StartTournament",
    "CreateRound",
    "RenameRound",
    "FreezeRound",
    "CloseRound",
    "MovePlayers",
    "ShuffleRound",
    "StartMatch",
    "SelectWinner",
    "CancelMatch",
    "SaveWinnerTitles",
    "CloseTournament",
    "validate",
    "mirror",
    "apply",
    "describe",
    "confirmation",
]


# ============================================================================
# Commands
# ============================================================================


@dataclass
class StartTournament:
    display_name: Optional[str] = None


@dataclass
class CreateRound:
    display_name: str


@dataclass
class RenameRound:
    round_id: str
    display_name: str


@dataclass
class FreezeRound:
    round_id: str


@dataclass
class CloseRound:
    round_id: str


@dataclass
class ShuffleRound:
    round_id: str


@dataclass
class StartMatch:
    match_id: str


@dataclass
class SelectWinner:
    match_id: str
    winner_id: str
    player1_score: Optional[int] = None
    player2_score: Optional[int] = None


@dataclass
class CancelMatch:
    match_id: str


@dataclass
class SaveWinnerTitles:
    buffer: RankingEditBuffer


@dataclass
class CloseTournament:
    pass


# ============================================================================
# Phase 1: validation
# ============================================================================


def validate(
    state: TournamentState,
    command: Any,
    policy: ProgressionPolicy = DEFAULT_POLICY,
    rng: Optional[random.Random] = None,
) -> Effect:
    """Check a command against the state and return its effect.

    Raises:
        Rejection: If the command is not allowed
        TypeError: For an unknown command object
    """
    if isinstance(command, MovePlayers):
        return plan_move(state, command, policy)
    if isinstance(command, ShuffleRound):
        return plan_shuffle(state, command.round_id, rng)
    if isinstance(command, StartMatch):
        return plan_start_match(state, command.match_id)
    if isinstance(command, SelectWinner):
        scores = None
        if command.player1_score is not None or command.player2_score is not None:
            scores = (command.player1_score, command.player2_score)
        return plan_select_winner(state, command.match_id, command.winner_id, scores)
    if isinstance(command, CancelMatch):
        return plan_cancel_match(state, command.match_id)
    if isinstance(command, StartTournament):
        if command.display_name:
            return plan_start_tournament(state, command.display_name)
        return plan_start_tournament(state)
    if isinstance(command, CreateRound):
        return plan_create_round(state, command.display_name)
    if isinstance(command, RenameRound):
        return plan_rename_round(state, command.round_id, command.display_name)
    if isinstance(command, FreezeRound):
        return plan_freeze_round(state, command.round_id)
    if isinstance(command, CloseRound):
        return plan_close_round(state, command.round_id)
    if isinstance(command, SaveWinnerTitles):
        return plan_save_titles(state, command.buffer)
    if isinstance(command, CloseTournament):
        return plan_close_tournament(state)
    raise TypeError(f"Unknown command: {command!r}")


def confirmation(state: TournamentState, effect: Effect) -> tuple[str, str]:
    """Title and question shown before a destructive effect runs."""
    if isinstance(effect, CloseRoundEffect):
        round_name = state.get_round(effect.round_id).label
        return (
            get_string("confirm.close_round.title"),
            get_string("confirm.close_round.message", round_name=round_name),
        )
    return (
        get_string("confirm.close_tournament.title"),
        get_string("confirm.close_tournament.message"),
    )


# ============================================================================
# Phase 2: backend mirror
# ============================================================================


def _require(response: ApiResponse) -> ApiResponse:
    """Turn a ``success=False`` answer into the matching failure."""
    if response.success:
        return response
    if is_auth_failure(response.message):
        raise AuthenticationFailed(response.message)
    raise RemoteFailure.rejected(response.message or "unknown error")


def _data(response: ApiResponse) -> dict:
    return response.data if isinstance(response.data, dict) else {}


def _tid(state: TournamentState) -> str:
    return state.external_id or state.tournament_id


def _rid(state: TournamentState, round_id: str) -> str:
    rnd = state.find_round(round_id)
    return (rnd.external_id if rnd else None) or round_id


def _pid(state: TournamentState, player_id: str) -> str:
    player = state.players.get(player_id)
    return (player.external_id if player else None) or player_id


def _mid(state: TournamentState, match_id: str) -> str:
    _, match = state.find_match(match_id)
    return match.external_id or match_id


def _round_payload(ordinal: int, name: str, display_name: str, status: str) -> dict:
    return {
        "roundNumber": ordinal,
        "roundName": name,
        "roundDisplayName": display_name,
        "status": status,
        "isFreezed": False,
    }


async def _mirror_move(backend: TournamentBackend, state: TournamentState, effect: MoveEffect) -> dict:
    """Send a move as a single backend call; collect skipped players."""
    tid = _tid(state)
    by_backend_id = {_pid(state, p.player_id): p.player_id for p in effect.placements}

    if all(p.round_id is None for p in effect.placements):
        response = await backend.remove_players(
            tid, _rid(state, effect.source_round_id), list(by_backend_id)
        )
    else:
        moves = [
            {
                "playerId": _pid(state, p.player_id),
                "roundId": _rid(state, p.round_id) if p.round_id else None,
                "asWinner": p.kind == MembershipKind.CHAMPION,
            }
            for p in effect.placements
        ]
        response = await backend.move_players(tid, moves)

    skipped_ids = _data(_require(response)).get("skipped_ids") or []
    return {
        "skipped_ids": [
            by_backend_id[str(b)] for b in skipped_ids if str(b) in by_backend_id
        ]
    }


async def mirror(backend: TournamentBackend, state: TournamentState, effect: Effect) -> dict:
    """Send an effect to the backend; returns data for apply().

    Raises:
        RemoteFailure: If a call fails or answers ``success=False``
        AuthenticationFailed: If the session was rejected
    """
    tid = _tid(state)

    if isinstance(effect, MoveEffect):
        return await _mirror_move(backend, state, effect)

    if isinstance(effect, ShuffleEffect):
        payload = {
            "matches": [
                {
                    "matchId": match_id,
                    "player1Id": _pid(state, p1),
                    "player2Id": _pid(state, p2),
                    "status": "pending",
                }
                for match_id, (p1, p2) in zip(effect.match_ids, effect.pairs)
            ],
            "deleteMatchIds": [_mid(state, m) for m in effect.removed_match_ids],
        }
        response = _require(await backend.update_round(tid, _rid(state, effect.round_id), payload))
        return {"match_ids": _data(response).get("match_ids") or {}}

    if isinstance(effect, StartMatchEffect):
        _require(await backend.start_match(tid, _mid(state, effect.match_id)))
        return {}

    if isinstance(effect, SelectWinnerEffect):
        _require(
            await backend.complete_match(
                tid,
                _mid(state, effect.match_id),
                _pid(state, effect.winner_id),
                effect.player1_score,
                effect.player2_score,
            )
        )
        return {}

    if isinstance(effect, CancelMatchEffect):
        _require(await backend.cancel_match(tid, _mid(state, effect.match_id)))
        return {}

    if isinstance(effect, StartTournamentEffect):
        response = _require(
            await backend.start_tournament(
                tid, _round_payload(1, effect.name, effect.display_name, "active")
            )
        )
        return {"external_id": _data(response).get("round_id")}

    if isinstance(effect, CreateRoundEffect):
        response = _require(
            await backend.create_round(
                tid, _round_payload(effect.ordinal, effect.name, effect.display_name, "pending")
            )
        )
        return {"external_id": _data(response).get("id")}

    if isinstance(effect, RenameRoundEffect):
        _require(
            await backend.update_round(
                tid, _rid(state, effect.round_id), {"roundDisplayName": effect.display_name}
            )
        )
        return {}

    if isinstance(effect, FreezeRoundEffect):
        _require(
            await backend.update_round(
                tid, _rid(state, effect.round_id), {"isFreezed": True, "status": "completed"}
            )
        )
        return {}

    if isinstance(effect, CloseRoundEffect):
        _require(await backend.delete_round(tid, _rid(state, effect.round_id)))
        return {}

    if isinstance(effect, SaveTitlesEffect):
        _require(await backend.save_winner_titles(tid, effect.payload))
        return {}

    if isinstance(effect, CloseTournamentEffect):
        _require(await backend.close_tournament(tid))
        return {}

    raise TypeError(f"Unknown effect: {effect!r}")


# ============================================================================
# Phase 3: application
# ============================================================================


def apply(
    state: TournamentState, effect: Effect, data: Optional[dict] = None
) -> TournamentState:
    """Apply a confirmed effect. Returns a new state; ``state`` is untouched."""
    data = data or {}

    if isinstance(effect, MoveEffect):
        return apply_move(state, effect, tuple(data.get("skipped_ids", ())))
    if isinstance(effect, ShuffleEffect):
        return apply_shuffle(state, effect, data.get("match_ids"))
    if isinstance(effect, StartMatchEffect):
        return apply_start_match(state, effect)
    if isinstance(effect, SelectWinnerEffect):
        return apply_select_winner(state, effect)
    if isinstance(effect, CancelMatchEffect):
        return apply_cancel_match(state, effect)
    if isinstance(effect, StartTournamentEffect):
        return apply_start_tournament(state, effect, data.get("external_id"))
    if isinstance(effect, CreateRoundEffect):
        return apply_create_round(state, effect, data.get("external_id"))
    if isinstance(effect, RenameRoundEffect):
        return apply_rename_round(state, effect)
    if isinstance(effect, FreezeRoundEffect):
        return apply_freeze_round(state, effect)
    if isinstance(effect, CloseRoundEffect):
        return apply_close_round(state, effect)
    if isinstance(effect, SaveTitlesEffect):
        return apply_save_titles(state, effect)
    if isinstance(effect, CloseTournamentEffect):
        return apply_close_tournament(state, effect)
    raise TypeError(f"Unknown effect: {effect!r}")


def describe(
    before: TournamentState, effect: Effect, data: Optional[dict] = None
) -> tuple[str, list[str]]:
    """Success message for an applied effect, plus the skipped player ids."""
    data = data or {}

    if isinstance(effect, MoveEffect):
        skipped = list(effect.skipped_ids) + [
            pid for pid in data.get("skipped_ids", ()) if pid not in effect.skipped_ids
        ]
        moved = len([pid for pid in effect.moved_ids if pid not in skipped])
        destination = before.find_round(effect.destination_round_id)
        location = location_label(destination)
        if skipped:
            message = get_string(
                "success.move_partial", count=moved, location=location, skipped=len(skipped)
            )
        else:
            message = get_string("success.move", count=moved, location=location)
        return message, skipped

    if isinstance(effect, SaveTitlesEffect):
        count = len(effect.payload)
        if effect.skipped:
            message = get_string("success.save_titles_partial", count=count, skipped=effect.skipped)
        else:
            message = get_string("success.save_titles", count=count)
        return message, []

    if isinstance(effect, ShuffleEffect):
        round_name = before.get_round(effect.round_id).label
        return get_string("success.shuffle", round_name=round_name, count=len(effect.pairs)), []
    if isinstance(effect, StartMatchEffect):
        return get_string("success.start_match", match_id=effect.match_id), []
    if isinstance(effect, SelectWinnerEffect):
        key = "success.change_winner" if effect.is_change else "success.select_winner"
        return get_string(key, player=before.player_name(effect.winner_id), match_id=effect.match_id), []
    if isinstance(effect, CancelMatchEffect):
        round_name = before.get_round(effect.round_id).label
        return get_string("success.cancel_match", match_id=effect.match_id, round_name=round_name), []
    if isinstance(effect, StartTournamentEffect):
        return get_string("success.start_tournament", round_name=effect.display_name), []
    if isinstance(effect, CreateRoundEffect):
        return get_string("success.create_round", name=effect.display_name), []
    if isinstance(effect, RenameRoundEffect):
        return get_string("success.rename_round", name=effect.display_name), []
    if isinstance(effect, FreezeRoundEffect):
        return get_string("success.freeze_round", round_name=before.get_round(effect.round_id).label), []
    if isinstance(effect, CloseRoundEffect):
        return get_string("success.close_round", round_name=before.get_round(effect.round_id).label), []
    return get_string("success.close_tournament"), []
