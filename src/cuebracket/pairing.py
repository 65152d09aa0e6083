"""Pairing engine ("shuffle").

Turns the players of a round into pending matches:

- Partial pairing: when the round has unpaired players, only those are
  shuffled and existing matches are kept.
- Full re-pair: when every player is already in a match, all pending
  matches are discarded and the whole player list is shuffled again.
  A match in progress blocks this; completed matches are never touched.
"""

import copy
import logging
import random
from dataclasses import dataclass, field
from typing import Optional, Sequence, TypeVar

from cuebracket.exceptions import FrozenRound, MatchStateError, OddPlayerCount, Rejection
from cuebracket.models import (
    Effect,
    Match,
    MatchStatus,
    MembershipKind,
    RoundStatus,
    TournamentState,
    ensure_ongoing,
    place,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


def fisher_yates(items: list[T], rng: random.Random) -> list[T]:
    """Shuffle a list in place with an unbiased Fisher-Yates permutation.

    Args:
        items: List to shuffle (modified in place)
        rng: Random number generator

    Returns:
        The same list, for chaining
    """
    for i in range(len(items) - 1, 0, -1):
        j = rng.randint(0, i)
        items[i], items[j] = items[j], items[i]
    return items


def pair_consecutive(items: Sequence[T]) -> list[tuple[T, T]]:
    """Pair elements 0-1, 2-3, ... of an even-length sequence."""
    if len(items) % 2:
        raise ValueError(f"Cannot pair an odd number of items ({len(items)})")
    return [(items[i], items[i + 1]) for i in range(0, len(items), 2)]


@dataclass
class ShuffleEffect(Effect):
    """New pairings for one round."""

    round_id: str
    full: bool
    pairs: list[tuple[str, str]]
    match_ids: list[str]
    removed_match_ids: list[str] = field(default_factory=list)


def plan_shuffle(
    state: TournamentState, round_id: str, rng: Optional[random.Random] = None
) -> ShuffleEffect:
    """Validate a shuffle and draw the new pairings.

    Args:
        state: Current tournament snapshot
        round_id: Round to shuffle
        rng: Random number generator (a fresh one if omitted)

    Returns:
        ShuffleEffect with the drawn pairs

    Raises:
        FrozenRound: If the round is frozen
        OddPlayerCount: If the shuffle pool has an odd size
        MatchStateError: If a full re-pair is blocked by a match in progress
        Rejection: If the round has no players
    """
    ensure_ongoing(state)
    rnd = state.get_round(round_id)
    if rnd.is_frozen:
        raise FrozenRound(round_name=rnd.label)
    if not rnd.players:
        raise Rejection("no_players_to_shuffle", round_name=rnd.label)

    unpaired = rnd.unpaired
    full = not unpaired
    removed: list[str] = []
    if full:
        if any(m.status == MatchStatus.ACTIVE for m in rnd.matches):
            raise MatchStateError("match_in_progress", round_name=rnd.label)
        removed = [m.id for m in rnd.matches if m.status == MatchStatus.PENDING]
        pool = rnd.players
    else:
        pool = unpaired

    if len(pool) % 2:
        raise OddPlayerCount(round_name=rnd.label, count=len(pool), deficit=1)

    order = fisher_yates(list(pool), rng or random.Random())
    pairs = pair_consecutive(order)
    match_ids = [state.next_match_id(rnd.id, offset) for offset in range(len(pairs))]

    logger.debug(
        "Shuffle %s (%s): %d players -> %d matches",
        rnd.id,
        "full" if full else "partial",
        len(pool),
        len(pairs),
    )
    return ShuffleEffect(
        round_id=rnd.id, full=full, pairs=pairs, match_ids=match_ids, removed_match_ids=removed
    )


def apply_shuffle(
    state: TournamentState, effect: ShuffleEffect, external_ids: Optional[dict[str, str]] = None
) -> TournamentState:
    """Return a new state with the drawn matches in place."""
    external_ids = external_ids or {}
    new_state = copy.deepcopy(state)
    rnd = new_state.get_round(effect.round_id)

    removed = set(effect.removed_match_ids)
    rnd.matches = [m for m in rnd.matches if m.id not in removed]

    for match_id, (p1, p2) in zip(effect.match_ids, effect.pairs):
        rnd.matches.append(
            Match(id=match_id, player1_id=p1, player2_id=p2, external_id=external_ids.get(match_id))
        )
        place(new_state, p1, rnd, MembershipKind.PAIRED, match_id)
        place(new_state, p2, rnd, MembershipKind.PAIRED, match_id)

    new_state.match_seq += len(effect.pairs)
    rnd.shuffled = True
    if rnd.status == RoundStatus.PENDING:
        rnd.status = RoundStatus.ACTIVE
    return new_state
