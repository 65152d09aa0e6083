"""Match resolver: start, complete (or re-decide) and cancel matches."""

import copy
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from cuebracket.exceptions import FrozenRound, MatchStateError, WinnerAlreadyMoved
from cuebracket.models import (
    Effect,
    Match,
    MatchStatus,
    MembershipKind,
    Player,
    Round,
    TournamentState,
    WinnerRecord,
    ensure_ongoing,
    place,
)
from cuebracket.ranking import project_winners, promote_winner

logger = logging.getLogger(__name__)


@dataclass
class StartMatchEffect(Effect):
    round_id: str
    match_id: str
    started_at: datetime


@dataclass
class SelectWinnerEffect(Effect):
    round_id: str
    match_id: str
    winner_id: str
    loser_id: str
    won_at: datetime
    previous_winner_id: Optional[str] = None
    player1_score: Optional[int] = None
    player2_score: Optional[int] = None

    @property
    def is_change(self) -> bool:
        return self.previous_winner_id is not None


@dataclass
class CancelMatchEffect(Effect):
    round_id: str
    match_id: str


def _open_match(state: TournamentState, match_id: str) -> tuple[Round, Match]:
    ensure_ongoing(state)
    rnd, match = state.find_match(match_id)
    if rnd.is_frozen:
        raise FrozenRound(round_name=rnd.label)
    return rnd, match


def _require_paired(state: TournamentState, rnd: Round, match: Match) -> None:
    for player_id in match.player_ids:
        membership = rnd.members.get(player_id)
        if membership is None or membership.match_id != match.id:
            raise MatchStateError(
                "player_not_paired", player=state.player_name(player_id), match_id=match.id
            )


# ============================================================================
# Planning
# ============================================================================


def plan_start_match(
    state: TournamentState, match_id: str, now: Optional[datetime] = None
) -> StartMatchEffect:
    """Validate starting a pending match."""
    rnd, match = _open_match(state, match_id)
    if match.status != MatchStatus.PENDING:
        raise MatchStateError(match_id=match.id, status=match.status.value, action="start")
    _require_paired(state, rnd, match)
    return StartMatchEffect(round_id=rnd.id, match_id=match.id, started_at=now or datetime.now())


def plan_select_winner(
    state: TournamentState,
    match_id: str,
    winner_id: str,
    scores: Optional[tuple[int, int]] = None,
    now: Optional[datetime] = None,
) -> SelectWinnerEffect:
    """Validate recording (or changing) the winner of a match.

    Args:
        state: Current tournament snapshot
        match_id: Match being decided
        winner_id: One of the match's two players
        scores: Optional (player1, player2) scores, stored as given
        now: Timestamp of the win (defaults to now)

    Returns:
        SelectWinnerEffect

    Raises:
        FrozenRound: If the match's round is frozen
        MatchStateError: If the winner is not in the match or already won it
        WinnerAlreadyMoved: If changing a winner that has left the round
    """
    rnd, match = _open_match(state, match_id)
    if winner_id not in match.player_ids:
        raise MatchStateError(
            "invalid_winner", player=state.player_name(winner_id), match_id=match.id
        )
    if match.winner_id == winner_id:
        raise MatchStateError("winner_unchanged", player=state.player_name(winner_id))

    previous_winner = match.winner_id
    loser_id = match.opponent_of(winner_id)

    if previous_winner is None:
        _require_paired(state, rnd, match)
    else:
        # Only reversible while both players are still where the first
        # result put them.
        expected = {
            previous_winner: MembershipKind.CHAMPION,
            winner_id: MembershipKind.ELIMINATED,
        }
        for player_id, kind in expected.items():
            membership = rnd.members.get(player_id)
            if membership is None or membership.kind != kind:
                raise WinnerAlreadyMoved(
                    match_id=match.id,
                    player=state.player_name(player_id),
                    round_name=rnd.label,
                )

    player1_score, player2_score = scores if scores is not None else (None, None)
    return SelectWinnerEffect(
        round_id=rnd.id,
        match_id=match.id,
        winner_id=winner_id,
        loser_id=loser_id,
        won_at=now or datetime.now(),
        previous_winner_id=previous_winner,
        player1_score=player1_score,
        player2_score=player2_score,
    )


def plan_cancel_match(state: TournamentState, match_id: str) -> CancelMatchEffect:
    """Validate cancelling a pending or active match."""
    rnd, match = _open_match(state, match_id)
    if match.is_completed:
        raise MatchStateError(match_id=match.id, status=match.status.value, action="cancel")
    return CancelMatchEffect(round_id=rnd.id, match_id=match.id)


# ============================================================================
# Application
# ============================================================================


def apply_start_match(state: TournamentState, effect: StartMatchEffect) -> TournamentState:
    new_state = copy.deepcopy(state)
    _, match = new_state.find_match(effect.match_id)
    match.status = MatchStatus.ACTIVE
    match.started_at = effect.started_at
    return new_state


def _crown(player: Player, rnd: Round, round_index: int) -> None:
    player.is_previous_round_winner = True
    player.original_winning_round_id = rnd.id
    player.previous_winning_round_id = rnd.id
    player.last_winning_round_id = rnd.id
    player.last_round_index_played = round_index
    if rnd.id not in player.rounds_won:
        player.rounds_won.append(rnd.id)


def _uncrown(player: Player, rnd: Round) -> None:
    if rnd.id in player.rounds_won:
        player.rounds_won.remove(rnd.id)
    last = player.rounds_won[-1] if player.rounds_won else None
    player.is_previous_round_winner = last is not None
    player.original_winning_round_id = last
    player.previous_winning_round_id = last
    player.last_winning_round_id = last


def apply_select_winner(state: TournamentState, effect: SelectWinnerEffect) -> TournamentState:
    """Return a new state with the match decided.

    The winner history only grows. A first result moves the winner to the
    front of the display projection; a changed result rebuilds it so the
    overturned win drops out.
    """
    new_state = copy.deepcopy(state)
    rnd, match = new_state.find_match(effect.match_id)
    round_index = new_state.round_index(rnd.id)

    match.status = MatchStatus.COMPLETED
    match.winner_id = effect.winner_id
    match.completed_at = effect.won_at
    if effect.player1_score is not None:
        match.player1_score = effect.player1_score
        match.player2_score = effect.player2_score

    loser = place(new_state, effect.loser_id, rnd, MembershipKind.ELIMINATED)
    winner = place(new_state, effect.winner_id, rnd, MembershipKind.CHAMPION)
    if effect.is_change:
        _uncrown(loser, rnd)
    else:
        loser.matches_played += 1
        winner.matches_played += 1
        loser.last_round_index_played = round_index
    _crown(winner, rnd, round_index)

    record = WinnerRecord(
        player_id=winner.id,
        player_name=winner.name,
        round_won=rnd.label,
        round_won_id=rnd.id,
        won_at=effect.won_at,
        match_id=match.id,
    )
    new_state.winner_history.append(record)
    if effect.is_change:
        # The demoted player may still hold an earlier valid win
        new_state.winners_to_display = project_winners(new_state)
    else:
        new_state.winners_to_display = promote_winner(
            new_state.winners_to_display, record, external_id=winner.external_id
        )
    logger.debug("Match %s won by %s", match.id, winner.id)
    return new_state


def apply_cancel_match(state: TournamentState, effect: CancelMatchEffect) -> TournamentState:
    new_state = copy.deepcopy(state)
    rnd = new_state.get_round(effect.round_id)
    match = rnd.get_match(effect.match_id)
    rnd.matches.remove(match)
    for player_id in match.player_ids:
        place(new_state, player_id, rnd, MembershipKind.STAGED)
    return new_state
