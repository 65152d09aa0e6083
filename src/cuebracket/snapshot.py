"""Convert tournament snapshots to plain dicts and back.

The dict form is JSON-compatible: enums become their values and datetimes
ISO-8601 strings. The local backend stores it as a single JSON column.
"""

from datetime import datetime
from typing import Any, Optional

from cuebracket.models import (
    Match,
    MatchStatus,
    Membership,
    MembershipKind,
    Player,
    PlayerStatus,
    Round,
    RoundStatus,
    TournamentState,
    TournamentStatus,
    WinnerDisplayEntry,
    WinnerRecord,
)


def _dt_out(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _dt_in(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


# ============================================================================
# Encoding
# ============================================================================


def player_to_dict(player: Player) -> dict[str, Any]:
    return {
        "id": player.id,
        "name": player.name,
        "external_id": player.external_id,
        "skill": player.skill,
        "avatar": player.avatar,
        "status": player.status.value,
        "current_round_id": player.current_round_id,
        "last_round_index_played": player.last_round_index_played,
        "is_previous_round_winner": player.is_previous_round_winner,
        "original_winning_round_id": player.original_winning_round_id,
        "previous_winning_round_id": player.previous_winning_round_id,
        "last_winning_round_id": player.last_winning_round_id,
        "rounds_won": list(player.rounds_won),
        "matches_played": player.matches_played,
    }


def match_to_dict(match: Match) -> dict[str, Any]:
    return {
        "id": match.id,
        "player1_id": match.player1_id,
        "player2_id": match.player2_id,
        "status": match.status.value,
        "winner_id": match.winner_id,
        "player1_score": match.player1_score,
        "player2_score": match.player2_score,
        "started_at": _dt_out(match.started_at),
        "completed_at": _dt_out(match.completed_at),
        "external_id": match.external_id,
    }


def round_to_dict(rnd: Round) -> dict[str, Any]:
    return {
        "id": rnd.id,
        "name": rnd.name,
        "display_name": rnd.display_name,
        "members": [
            {"player_id": pid, "kind": m.kind.value, "match_id": m.match_id}
            for pid, m in rnd.members.items()
        ],
        "matches": [match_to_dict(m) for m in rnd.matches],
        "status": rnd.status.value,
        "is_frozen": rnd.is_frozen,
        "shuffled": rnd.shuffled,
        "external_id": rnd.external_id,
    }


def state_to_dict(state: TournamentState) -> dict[str, Any]:
    """Encode a whole tournament snapshot.

    Args:
        state: Tournament snapshot

    Returns:
        JSON-compatible dictionary
    """
    return {
        "tournament_id": state.tournament_id,
        "name": state.name,
        "status": state.status.value,
        "external_id": state.external_id,
        "active_round_id": state.active_round_id,
        "match_seq": state.match_seq,
        "players": [player_to_dict(p) for p in state.players.values()],
        "rounds": [round_to_dict(r) for r in state.rounds],
        "winner_history": [
            {
                "player_id": rec.player_id,
                "player_name": rec.player_name,
                "round_won": rec.round_won,
                "round_won_id": rec.round_won_id,
                "won_at": _dt_out(rec.won_at),
                "match_id": rec.match_id,
            }
            for rec in state.winner_history
        ],
        "winners_to_display": [
            {
                "player_id": e.player_id,
                "player_name": e.player_name,
                "external_id": e.external_id,
                "rank": e.rank,
                "title": e.title,
                "round_won": e.round_won,
                "round_won_id": e.round_won_id,
                "won_at": _dt_out(e.won_at),
                "match_id": e.match_id,
                "selected": e.selected,
            }
            for e in state.winners_to_display
        ],
    }


# ============================================================================
# Decoding
# ============================================================================


def player_from_dict(data: dict[str, Any]) -> Player:
    return Player(
        id=data["id"],
        name=data["name"],
        external_id=data.get("external_id"),
        skill=data.get("skill", "Beginner"),
        avatar=data.get("avatar"),
        status=PlayerStatus(data.get("status", PlayerStatus.AVAILABLE.value)),
        current_round_id=data.get("current_round_id"),
        last_round_index_played=data.get("last_round_index_played"),
        is_previous_round_winner=data.get("is_previous_round_winner", False),
        original_winning_round_id=data.get("original_winning_round_id"),
        previous_winning_round_id=data.get("previous_winning_round_id"),
        last_winning_round_id=data.get("last_winning_round_id"),
        rounds_won=list(data.get("rounds_won", [])),
        matches_played=data.get("matches_played", 0),
    )


def match_from_dict(data: dict[str, Any]) -> Match:
    return Match(
        id=data["id"],
        player1_id=data["player1_id"],
        player2_id=data["player2_id"],
        status=MatchStatus(data.get("status", MatchStatus.PENDING.value)),
        winner_id=data.get("winner_id"),
        player1_score=data.get("player1_score"),
        player2_score=data.get("player2_score"),
        started_at=_dt_in(data.get("started_at")),
        completed_at=_dt_in(data.get("completed_at")),
        external_id=data.get("external_id"),
    )


def round_from_dict(data: dict[str, Any]) -> Round:
    members = {
        m["player_id"]: Membership(kind=MembershipKind(m["kind"]), match_id=m.get("match_id"))
        for m in data.get("members", [])
    }
    return Round(
        id=data["id"],
        name=data["name"],
        display_name=data.get("display_name", data["name"]),
        members=members,
        matches=[match_from_dict(m) for m in data.get("matches", [])],
        status=RoundStatus(data.get("status", RoundStatus.PENDING.value)),
        is_frozen=data.get("is_frozen", False),
        shuffled=data.get("shuffled", False),
        external_id=data.get("external_id"),
    )


def state_from_dict(data: dict[str, Any]) -> TournamentState:
    """Decode a snapshot produced by state_to_dict."""
    players = [player_from_dict(p) for p in data.get("players", [])]
    return TournamentState(
        tournament_id=data["tournament_id"],
        name=data.get("name", ""),
        status=TournamentStatus(data.get("status", TournamentStatus.DRAFT.value)),
        external_id=data.get("external_id"),
        active_round_id=data.get("active_round_id"),
        match_seq=data.get("match_seq", 0),
        players={p.id: p for p in players},
        rounds=[round_from_dict(r) for r in data.get("rounds", [])],
        winner_history=[
            WinnerRecord(
                player_id=rec["player_id"],
                player_name=rec["player_name"],
                round_won=rec["round_won"],
                round_won_id=rec["round_won_id"],
                won_at=_dt_in(rec["won_at"]),
                match_id=rec["match_id"],
            )
            for rec in data.get("winner_history", [])
        ],
        winners_to_display=[
            WinnerDisplayEntry(
                player_id=e["player_id"],
                player_name=e["player_name"],
                external_id=e.get("external_id"),
                rank=e["rank"],
                title=e.get("title", ""),
                round_won=e["round_won"],
                round_won_id=e["round_won_id"],
                won_at=_dt_in(e["won_at"]),
                match_id=e["match_id"],
                selected=e.get("selected", True),
            )
            for e in data.get("winners_to_display", [])
        ],
    )
