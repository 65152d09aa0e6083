"""Shared fixtures for cuebracket tests.

States are built through the real command handlers (validate + apply)
wherever possible; ``stage`` places players directly for setups the
movement rules would not allow.
"""

import random

import pytest

from cuebracket.commands import (
    CreateRound,
    SelectWinner,
    ShuffleRound,
    StartTournament,
    apply,
    validate,
)
from cuebracket.i18n import clear_cache, set_language
from cuebracket.models import MembershipKind, Player, TournamentState, place
from cuebracket.movement import MovePlayers
from cuebracket.policy import DEFAULT_POLICY


@pytest.fixture(autouse=True)
def english_messages():
    """Run every test with the English catalog."""
    clear_cache()
    set_language("en")
    yield
    set_language(None)
    clear_cache()


def run(state, command, policy=DEFAULT_POLICY, rng=None, data=None):
    """Validate and apply a command without a backend."""
    effect = validate(state, command, policy, rng or random.Random(0))
    return apply(state, effect, data)


def make_state(player_count=4, with_external_ids=True):
    """Tournament in draft with players p1..pN."""
    players = {
        f"p{i}": Player(
            id=f"p{i}",
            name=f"Player {i}",
            external_id=f"ext-p{i}" if with_external_ids else None,
        )
        for i in range(1, player_count + 1)
    }
    return TournamentState(tournament_id="t1", name="Friday 8-Ball", players=players)


def started(player_count=4, **kwargs):
    """Started tournament with an empty "First Round"."""
    return run(make_state(player_count, **kwargs), StartTournament())


def stage(state, round_id, *player_ids, kind=MembershipKind.STAGED):
    """Place players directly (mutates ``state``)."""
    rnd = state.get_round(round_id)
    for player_id in player_ids:
        place(state, player_id, rnd, kind)
    return state


def fill_and_pair(state, round_id, player_ids, seed=0):
    """Move players from the pool into a round and shuffle it."""
    state = run(state, MovePlayers(list(player_ids), destination_round_id=round_id))
    return run(state, ShuffleRound(round_id), rng=random.Random(seed))


def decide_all(state, round_id):
    """Player 1 wins every open match of the round."""
    for match in list(state.get_round(round_id).open_matches):
        state = run(state, SelectWinner(match.id, match.player1_id))
    return state


@pytest.fixture
def first_round_played():
    """8 players, First Round fully decided, plus empty Second Round and Final."""
    state = started(8)
    state = fill_and_pair(state, "round_1", [f"p{i}" for i in range(1, 9)])
    state = decide_all(state, "round_1")
    state = run(state, CreateRound("Second Round"))
    state = run(state, CreateRound("Final"))
    return state
