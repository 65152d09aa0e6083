"""Round lifecycle: start the tournament, create, rename, freeze and close
rounds, and close the tournament."""

import copy
import logging
from dataclasses import dataclass

from cuebracket.exceptions import (
    DuplicateRoundName,
    FreezeBlocked,
    FrozenRound,
    InvalidRoundName,
    RoundNotEmpty,
    RoundNotLast,
    TournamentClosed,
    TournamentStateError,
)
from cuebracket.models import (
    Effect,
    Round,
    RoundStatus,
    TournamentState,
    TournamentStatus,
    ensure_ongoing,
)

logger = logging.getLogger(__name__)

DEFAULT_FIRST_ROUND_NAME = "First Round"

# Offered by the CLI when creating a round
ROUND_NAME_SUGGESTIONS = (
    "First Round",
    "Second Round",
    "Third Round",
    "Quarter Final",
    "Semi Final",
    "Final",
)


def round_id_for(ordinal: int) -> str:
    return f"round_{ordinal}"


def round_name_for(ordinal: int) -> str:
    return f"Round {ordinal}"


@dataclass
class StartTournamentEffect(Effect):
    round_id: str
    name: str
    display_name: str


@dataclass
class CreateRoundEffect(Effect):
    round_id: str
    name: str
    display_name: str
    ordinal: int


@dataclass
class RenameRoundEffect(Effect):
    round_id: str
    display_name: str


@dataclass
class FreezeRoundEffect(Effect):
    round_id: str


@dataclass
class CloseRoundEffect(Effect):
    round_id: str
    destructive = True


@dataclass
class CloseTournamentEffect(Effect):
    destructive = True


def _check_name(state: TournamentState, display_name: str, ignore_round_id: str = None) -> str:
    name = (display_name or "").strip()
    if not name:
        raise InvalidRoundName()
    for rnd in state.rounds:
        if rnd.id != ignore_round_id and rnd.label.casefold() == name.casefold():
            raise DuplicateRoundName(name=name)
    return name


# ============================================================================
# Planning
# ============================================================================


def plan_start_tournament(
    state: TournamentState, display_name: str = DEFAULT_FIRST_ROUND_NAME
) -> StartTournamentEffect:
    """Validate starting the tournament with its first round.

    Raises:
        TournamentClosed: If the tournament is already closed
        TournamentStateError: If it already started or has no players
    """
    if state.is_closed:
        raise TournamentClosed()
    if state.status != TournamentStatus.DRAFT or state.rounds:
        raise TournamentStateError("already_started")
    if not state.players:
        raise TournamentStateError("empty_roster")
    name = _check_name(state, display_name or DEFAULT_FIRST_ROUND_NAME)
    return StartTournamentEffect(round_id=round_id_for(1), name=round_name_for(1), display_name=name)


def plan_create_round(state: TournamentState, display_name: str) -> CreateRoundEffect:
    """Validate appending a round.

    The display name must not be used by any existing round
    (case-insensitive); a closed round frees its name.
    """
    ensure_ongoing(state)
    name = _check_name(state, display_name)
    ordinal = len(state.rounds) + 1
    return CreateRoundEffect(
        round_id=round_id_for(ordinal),
        name=round_name_for(ordinal),
        display_name=name,
        ordinal=ordinal,
    )


def plan_rename_round(state: TournamentState, round_id: str, display_name: str) -> RenameRoundEffect:
    ensure_ongoing(state)
    rnd = state.get_round(round_id)
    name = _check_name(state, display_name, ignore_round_id=rnd.id)
    return RenameRoundEffect(round_id=rnd.id, display_name=name)


def plan_freeze_round(state: TournamentState, round_id: str) -> FreezeRoundEffect:
    """Validate freezing a finished round.

    Raises:
        FrozenRound: If the round is already frozen
        FreezeBlocked: If it has no matches, open matches or unpaired players
    """
    ensure_ongoing(state)
    rnd = state.get_round(round_id)
    if rnd.is_frozen:
        raise FrozenRound(round_name=rnd.label)
    if not rnd.matches:
        raise FreezeBlocked("freeze_no_matches", round_name=rnd.label)
    if rnd.open_matches:
        raise FreezeBlocked(round_name=rnd.label, count=len(rnd.open_matches))
    if rnd.unpaired:
        raise FreezeBlocked("freeze_unpaired", round_name=rnd.label, count=len(rnd.unpaired))
    return FreezeRoundEffect(round_id=rnd.id)


def plan_close_round(state: TournamentState, round_id: str) -> CloseRoundEffect:
    """Validate deleting a round: it must be empty and the last one.

    Raises:
        RoundNotEmpty: If the round has members or matches
        RoundNotLast: If a later round exists, or it is the only round
    """
    ensure_ongoing(state)
    rnd = state.get_round(round_id)
    if not rnd.is_empty:
        raise RoundNotEmpty(round_name=rnd.label)
    if state.rounds[-1] is not rnd:
        raise RoundNotLast()
    if len(state.rounds) == 1:
        raise RoundNotLast("last_remaining_round")
    return CloseRoundEffect(round_id=rnd.id)


def plan_close_tournament(state: TournamentState) -> CloseTournamentEffect:
    ensure_ongoing(state)
    open_matches = [m for _, m in state.iter_matches() if m.is_open]
    if open_matches:
        raise TournamentStateError("open_matches_remaining", count=len(open_matches))
    return CloseTournamentEffect()


# ============================================================================
# Application
# ============================================================================


def apply_start_tournament(
    state: TournamentState, effect: StartTournamentEffect, external_id: str = None
) -> TournamentState:
    new_state = copy.deepcopy(state)
    new_state.rounds.append(
        Round(
            id=effect.round_id,
            name=effect.name,
            display_name=effect.display_name,
            status=RoundStatus.ACTIVE,
            external_id=external_id,
        )
    )
    new_state.status = TournamentStatus.ONGOING
    new_state.active_round_id = effect.round_id
    logger.info("Tournament %s started", new_state.tournament_id)
    return new_state


def apply_create_round(
    state: TournamentState, effect: CreateRoundEffect, external_id: str = None
) -> TournamentState:
    new_state = copy.deepcopy(state)
    new_state.rounds.append(
        Round(
            id=effect.round_id,
            name=effect.name,
            display_name=effect.display_name,
            external_id=external_id,
        )
    )
    new_state.active_round_id = effect.round_id
    return new_state


def apply_rename_round(state: TournamentState, effect: RenameRoundEffect) -> TournamentState:
    new_state = copy.deepcopy(state)
    new_state.get_round(effect.round_id).display_name = effect.display_name
    return new_state


def apply_freeze_round(state: TournamentState, effect: FreezeRoundEffect) -> TournamentState:
    new_state = copy.deepcopy(state)
    rnd = new_state.get_round(effect.round_id)
    rnd.is_frozen = True
    rnd.status = RoundStatus.COMPLETED
    return new_state


def apply_close_round(state: TournamentState, effect: CloseRoundEffect) -> TournamentState:
    new_state = copy.deepcopy(state)
    new_state.rounds = [r for r in new_state.rounds if r.id != effect.round_id]
    if new_state.active_round_id == effect.round_id or new_state.find_round(
        new_state.active_round_id
    ) is None:
        new_state.active_round_id = new_state.rounds[-1].id if new_state.rounds else None
    return new_state


def apply_close_tournament(state: TournamentState, effect: CloseTournamentEffect) -> TournamentState:
    new_state = copy.deepcopy(state)
    new_state.status = TournamentStatus.COMPLETED
    for rnd in new_state.rounds:
        if rnd.status != RoundStatus.COMPLETED and not rnd.open_matches and rnd.matches:
            rnd.status = RoundStatus.COMPLETED
    logger.info("Tournament %s closed", new_state.tournament_id)
    return new_state
