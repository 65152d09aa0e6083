"""Tests for the pairing engine (shuffle)."""

import itertools
import random
from collections import Counter

import pytest

from cuebracket.exceptions import FrozenRound, MatchStateError, OddPlayerCount, Rejection
from cuebracket.models import MatchStatus, MembershipKind, RoundStatus
from cuebracket.pairing import apply_shuffle, fisher_yates, pair_consecutive, plan_shuffle
from cuebracket.commands import CreateRound, SelectWinner, StartMatch
from conftest import fill_and_pair, run, stage, started


class TestFisherYates:
    """Test cases for the shuffle primitive."""

    def test_is_a_permutation(self):
        """Test shuffling keeps every element exactly once."""
        items = list(range(10))
        result = fisher_yates(list(items), random.Random(3))
        assert sorted(result) == items

    def test_seeded_is_deterministic(self):
        """Test the same seed gives the same order."""
        a = fisher_yates(list("abcdef"), random.Random(42))
        b = fisher_yates(list("abcdef"), random.Random(42))
        assert a == b

    def test_all_orders_equally_likely(self):
        """Each permutation of three items shows up about 1/6 of the time."""
        rng = random.Random(2024)
        counts = Counter(tuple(fisher_yates(["a", "b", "c"], rng)) for _ in range(6000))

        assert set(counts) == set(itertools.permutations("abc"))
        for count in counts.values():
            assert 850 < count < 1150


class TestPairConsecutive:
    """Test cases for pair_consecutive."""

    def test_pairs_neighbours(self):
        """Test elements are paired 0-1, 2-3."""
        assert pair_consecutive(["a", "b", "c", "d"]) == [("a", "b"), ("c", "d")]

    def test_odd_length_fails(self):
        """Test odd input is refused."""
        with pytest.raises(ValueError):
            pair_consecutive(["a", "b", "c"])


class TestShuffleRound:
    """Test cases for plan_shuffle / apply_shuffle."""

    def test_four_players_make_two_matches(self):
        """Test 4 staged players become 2 pending matches."""
        state = started(4)
        stage(state, "round_1", "p1", "p2", "p3", "p4")

        effect = plan_shuffle(state, "round_1", random.Random(1))
        new_state = apply_shuffle(state, effect)

        rnd = new_state.get_round("round_1")
        assert not effect.full
        assert [m.id for m in rnd.matches] == ["match_round_1_1", "match_round_1_2"]
        assert all(m.status == MatchStatus.PENDING for m in rnd.matches)
        assert sorted(pid for m in rnd.matches for pid in m.player_ids) == ["p1", "p2", "p3", "p4"]
        assert rnd.unpaired == []
        assert rnd.shuffled
        assert new_state.match_seq == 2
        # The planning state is untouched
        assert state.get_round("round_1").matches == []

    def test_membership_points_at_the_match(self):
        """Test paired members record the match they play in."""
        state = started(2)
        stage(state, "round_1", "p1", "p2")
        new_state = apply_shuffle(state, plan_shuffle(state, "round_1", random.Random(0)))

        rnd = new_state.get_round("round_1")
        for pid in ("p1", "p2"):
            assert rnd.members[pid].kind == MembershipKind.PAIRED
            assert rnd.members[pid].match_id == "match_round_1_1"

    def test_odd_pool_is_rejected(self):
        """Test an odd number of unpaired players cannot be shuffled."""
        state = started(3)
        stage(state, "round_1", "p1", "p2", "p3")

        with pytest.raises(OddPlayerCount) as exc_info:
            plan_shuffle(state, "round_1", random.Random(0))

        assert exc_info.value.params["count"] == 3
        assert "There are 3 unmatched players" in exc_info.value.message

    def test_partial_pairing_keeps_existing_matches(self):
        """Only unpaired players are shuffled when some are left."""
        state = fill_and_pair(started(4), "round_1", ["p1", "p2"])
        stage(state, "round_1", "p3", "p4")

        effect = plan_shuffle(state, "round_1", random.Random(5))
        assert not effect.full
        assert sorted(itertools.chain(*effect.pairs)) == ["p3", "p4"]

        new_state = apply_shuffle(state, effect)
        ids = [m.id for m in new_state.get_round("round_1").matches]
        assert ids == ["match_round_1_1", "match_round_1_2"]

    def test_full_repair_replaces_pending_matches(self):
        """With nobody unpaired, pending matches are drawn again."""
        state = fill_and_pair(started(4), "round_1", ["p1", "p2", "p3", "p4"])

        effect = plan_shuffle(state, "round_1", random.Random(9))
        assert effect.full
        assert effect.removed_match_ids == ["match_round_1_1", "match_round_1_2"]

        new_state = apply_shuffle(state, effect)
        ids = [m.id for m in new_state.get_round("round_1").matches]
        assert ids == ["match_round_1_3", "match_round_1_4"]
        assert new_state.get_round("round_1").paired == state.get_round("round_1").paired

    def test_full_repair_keeps_completed_matches(self):
        """Completed matches and their results are never discarded."""
        state = fill_and_pair(started(4), "round_1", ["p1", "p2", "p3", "p4"])
        first = state.get_round("round_1").matches[0]
        state = run(state, SelectWinner(first.id, first.player1_id))

        effect = plan_shuffle(state, "round_1", random.Random(0))
        assert effect.full
        assert effect.removed_match_ids == ["match_round_1_2"]

        rnd = apply_shuffle(state, effect).get_round("round_1")
        assert rnd.get_match(first.id).winner_id == first.player1_id
        assert len(rnd.matches) == 2

    def test_match_in_progress_blocks_full_repair(self):
        """Test an active match blocks re-pairing everyone."""
        state = fill_and_pair(started(4), "round_1", ["p1", "p2", "p3", "p4"])
        state = run(state, StartMatch("match_round_1_1"))

        with pytest.raises(MatchStateError) as exc_info:
            plan_shuffle(state, "round_1", random.Random(0))
        assert exc_info.value.code == "match_in_progress"

    def test_empty_round_is_rejected(self):
        """Test shuffling a round without players."""
        with pytest.raises(Rejection) as exc_info:
            plan_shuffle(started(2), "round_1", random.Random(0))
        assert exc_info.value.code == "no_players_to_shuffle"

    def test_frozen_round_is_rejected(self, first_round_played):
        """Test a frozen round cannot be shuffled."""
        first_round_played.get_round("round_1").is_frozen = True
        with pytest.raises(FrozenRound):
            plan_shuffle(first_round_played, "round_1", random.Random(0))

    def test_pending_round_becomes_active(self):
        """Test the first shuffle activates a pending round."""
        state = run(started(2), CreateRound("Final"))
        assert state.get_round("round_2").status == RoundStatus.PENDING
        stage(state, "round_2", "p1", "p2")

        new_state = apply_shuffle(state, plan_shuffle(state, "round_2", random.Random(0)))
        assert new_state.get_round("round_2").status == RoundStatus.ACTIVE

    def test_backend_match_ids_are_kept(self):
        """Test backend ids returned by the mirror are stored on the matches."""
        state = started(2)
        stage(state, "round_1", "p1", "p2")
        effect = plan_shuffle(state, "round_1", random.Random(0))

        new_state = apply_shuffle(state, effect, {"match_round_1_1": "remote-77"})
        assert new_state.get_round("round_1").matches[0].external_id == "remote-77"
