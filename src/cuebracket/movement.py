"""Movement validator.

Decides whether a set of players may move from one location (the staging
pool or a list of a round) to another, and where each of them lands.

Rules, checked in order after the basic sanity checks:

1. The destination round must not be frozen.
2. Forward moves need a completed match in the source round, and may only
   jump over rounds that are already active.
3. Winners moving back cannot go past their last winning round.
4. The destination must keep an even number of unpaired players, except
   for winners landing in a winners list or advancing to the next round.
5. Moves to the staging pool never check parity; previous winners are
   routed back to the winners list of the round they originally won.
"""

import copy
import logging
from dataclasses import dataclass, field
from typing import Optional

from cuebracket.exceptions import (
    BacktrackLimit,
    ForwardMoveBlocked,
    FrozenRound,
    IllegalMove,
    NothingSelected,
    ParityViolation,
)
from cuebracket.i18n import get_string
from cuebracket.models import (
    Collection,
    Effect,
    MembershipKind,
    Player,
    Round,
    TournamentState,
    ensure_ongoing,
    place,
)
from cuebracket.policy import DEFAULT_POLICY, ProgressionPolicy

logger = logging.getLogger(__name__)

_KIND_BY_COLLECTION = {
    Collection.PLAYERS: (MembershipKind.STAGED, MembershipKind.PAIRED),
    Collection.WINNERS: (MembershipKind.CHAMPION,),
    Collection.LOSERS: (MembershipKind.ELIMINATED,),
}


@dataclass
class MovePlayers:
    """Move the selected players to a round (or to the pool with None).

    ``source_round_id=None`` means the players come from the staging pool,
    whatever ``source`` says.
    """

    player_ids: list[str]
    destination_round_id: Optional[str] = None
    source_round_id: Optional[str] = None
    source: Collection = Collection.PLAYERS


@dataclass
class Placement:
    """Where one player lands. ``round_id=None`` is the staging pool."""

    player_id: str
    round_id: Optional[str] = None
    kind: Optional[MembershipKind] = None
    previous_winning_round_id: Optional[str] = None  # Set for advancing winners


@dataclass
class MoveEffect(Effect):
    source_round_id: Optional[str]
    destination_round_id: Optional[str]
    source: Collection
    placements: list[Placement]
    skipped_ids: list[str] = field(default_factory=list)

    @property
    def moved_ids(self) -> list[str]:
        return [p.player_id for p in self.placements]


def location_label(rnd: Optional[Round]) -> str:
    """Human name of a round, or of the staging pool."""
    return rnd.label if rnd is not None else get_string("labels.staging_pool")


def _collection_label(collection: Collection) -> str:
    return get_string(f"labels.{collection.value}").lower()


# ============================================================================
# Validation
# ============================================================================


def _split_selection(
    state: TournamentState,
    command: MovePlayers,
    source: Optional[Round],
    destination: Optional[Round],
    collection: Collection,
) -> tuple[list[Player], list[str]]:
    """Check every selected player is in the source list.

    Players already sitting at the destination are returned as skipped
    instead of being rejected.
    """
    movers: list[Player] = []
    skipped: list[str] = []
    seen: set[str] = set()
    pool = set(state.staging_pool)

    for player_id in command.player_ids:
        if player_id in seen:
            continue
        seen.add(player_id)
        player = state.get_player(player_id)
        current = state.membership_of(player_id)
        current_round = current[0] if current else None
        current_kind = current[1].kind if current else None

        if source is None:
            in_source = player_id in pool
        else:
            in_source = current_round is source and current_kind in _KIND_BY_COLLECTION[collection]

        if not in_source:
            if current_round is destination:
                skipped.append(player_id)
                continue
            raise IllegalMove(
                "not_in_source",
                player=player.name,
                collection=_collection_label(collection),
                location=location_label(source),
            )
        if current_kind == MembershipKind.PAIRED:
            raise IllegalMove("player_in_match", player=player.name)
        movers.append(player)

    return movers, skipped


def _check_forward(
    state: TournamentState,
    source: Round,
    destination: Round,
    policy: ProgressionPolicy,
) -> None:
    src_index = state.round_index(source.id)
    dst_index = state.round_index(destination.id)

    if policy.require_completed_match_to_advance and not source.completed_matches:
        raise ForwardMoveBlocked(source=source.label)

    if dst_index == src_index + 1:
        return
    between = state.rounds[src_index + 1 : dst_index]
    dormant = next((r for r in between if not r.is_active), None)
    if not policy.allow_skipping_active_rounds:
        dormant = between[0]
    if dormant is not None:
        raise ForwardMoveBlocked(
            "forward_skips_dormant",
            source=source.label,
            target=destination.label,
            dormant=dormant.label,
        )


def _check_backtrack(
    state: TournamentState, movers: list[Player], source: Round, destination: Round
) -> None:
    dst_index = state.round_index(destination.id)
    too_far = []
    for player in movers:
        limit = state.find_round(player.last_winning_round_id)
        if limit is not None and dst_index < state.round_index(limit.id):
            too_far.append(player.name)
    if too_far:
        raise BacktrackLimit(
            names=", ".join(too_far), target=destination.label, source=source.label
        )


def _place_in_round(
    state: TournamentState,
    player: Player,
    source: Optional[Round],
    destination: Round,
    collection: Collection,
) -> Placement:
    if collection == Collection.WINNERS:
        if state.round_index(destination.id) < state.round_index(source.id):
            return Placement(player.id, destination.id, MembershipKind.CHAMPION)
        return Placement(
            player.id, destination.id, MembershipKind.STAGED, previous_winning_round_id=source.id
        )
    if player.is_previous_round_winner and player.previous_winning_round_id == destination.id:
        return Placement(player.id, destination.id, MembershipKind.CHAMPION)
    return Placement(player.id, destination.id, MembershipKind.STAGED)


def _place_in_pool(state: TournamentState, player: Player, source: Round) -> Placement:
    if player.is_previous_round_winner:
        home = state.find_round(player.original_winning_round_id)
        if home is not None and not home.is_frozen and home is not source:
            return Placement(player.id, home.id, MembershipKind.CHAMPION)
    return Placement(player.id)


def _check_parity(
    state: TournamentState,
    command_source: Optional[Round],
    destination: Round,
    collection: Collection,
    placements: list[Placement],
    policy: ProgressionPolicy,
) -> None:
    if not policy.enforce_parity:
        return
    if command_source is None and not policy.parity_on_pool_moves:
        return
    if (
        collection == Collection.WINNERS
        and command_source is not None
        and state.round_index(destination.id) == state.round_index(command_source.id) + 1
    ):
        return

    staged = [
        p for p in placements if p.round_id == destination.id and p.kind == MembershipKind.STAGED
    ]
    if not staged:
        return
    total = len(destination.unpaired) + len(staged)
    if total % 2:
        raise ParityViolation(count=len(staged), target=destination.label, total=total)


def plan_move(
    state: TournamentState,
    command: MovePlayers,
    policy: ProgressionPolicy = DEFAULT_POLICY,
) -> MoveEffect:
    """Validate a move and work out where each player lands.

    Args:
        state: Current tournament snapshot
        command: The requested move
        policy: Progression rule switches

    Returns:
        MoveEffect listing one placement per moved player

    Raises:
        Rejection: The first rule the move breaks (nothing is changed)
    """
    ensure_ongoing(state)
    if not command.player_ids:
        raise NothingSelected()

    source = state.get_round(command.source_round_id) if command.source_round_id else None
    destination = (
        state.get_round(command.destination_round_id) if command.destination_round_id else None
    )
    collection = command.source if source is not None else Collection.POOL
    if collection == Collection.POOL and source is not None:
        collection = Collection.PLAYERS

    if source is destination:
        raise IllegalMove("same_location", location=location_label(destination))

    # Rule 1
    if destination is not None and destination.is_frozen:
        raise FrozenRound(round_name=destination.label)
    if source is not None and source.is_frozen:
        raise FrozenRound(round_name=source.label)

    movers, skipped = _split_selection(state, command, source, destination, collection)

    if destination is None and collection == Collection.WINNERS:
        raise IllegalMove("winners_stay_in_rounds")
    if not movers:
        raise IllegalMove("all_already_there", location=location_label(destination))

    if destination is None:
        # Rule 5
        placements = [_place_in_pool(state, p, source) for p in movers]
    else:
        if source is not None:
            forward = state.round_index(destination.id) > state.round_index(source.id)
            # Rule 2
            if forward:
                _check_forward(state, source, destination, policy)
            # Rule 3
            elif collection == Collection.WINNERS and policy.limit_winner_backtrack:
                _check_backtrack(state, movers, source, destination)
        placements = [
            _place_in_round(state, p, source, destination, collection) for p in movers
        ]
        # Rule 4
        _check_parity(state, source, destination, collection, placements, policy)

    logger.debug(
        "Move %d player(s) %s -> %s (%d skipped)",
        len(placements),
        source.id if source else "pool",
        destination.id if destination else "pool",
        len(skipped),
    )
    return MoveEffect(
        source_round_id=source.id if source else None,
        destination_round_id=destination.id if destination else None,
        source=collection,
        placements=placements,
        skipped_ids=skipped,
    )


# ============================================================================
# Application
# ============================================================================


def apply_move(
    state: TournamentState, effect: MoveEffect, skipped_ids: tuple[str, ...] = ()
) -> TournamentState:
    """Return a new state with the moved players placed.

    Args:
        state: Snapshot the effect was planned on
        effect: Validated move
        skipped_ids: Extra players the backend reported as not moved
    """
    new_state = copy.deepcopy(state)
    skip = set(skipped_ids)

    for placement in effect.placements:
        if placement.player_id in skip:
            continue
        destination = new_state.find_round(placement.round_id)
        player = place(new_state, placement.player_id, destination, placement.kind)
        if destination is None:
            continue
        if placement.kind == MembershipKind.STAGED:
            player.last_round_index_played = new_state.round_index(destination.id)
        if placement.previous_winning_round_id is not None:
            player.previous_winning_round_id = placement.previous_winning_round_id

    return new_state
