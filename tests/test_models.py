"""Tests for the domain models and membership helpers."""

import pytest

from cuebracket.exceptions import MatchNotFound, PlayerNotFound, RoundNotFound
from cuebracket.models import (
    Match,
    MatchStatus,
    MembershipKind,
    PlayerStatus,
    Round,
    place,
    status_for_membership,
)
from conftest import make_state, stage, started


class TestRoundViews:
    """Derived lists of a round."""

    def test_views_follow_membership(self):
        """players/unpaired/paired/winners/losers are read off one dict."""
        state = started(6)
        stage(state, "round_1", "p1", "p2")
        stage(state, "round_1", "p3", "p4", kind=MembershipKind.PAIRED)
        stage(state, "round_1", "p5", kind=MembershipKind.CHAMPION)
        stage(state, "round_1", "p6", kind=MembershipKind.ELIMINATED)

        rnd = state.get_round("round_1")
        assert rnd.players == ["p1", "p2", "p3", "p4"]
        assert rnd.unpaired == ["p1", "p2"]
        assert rnd.paired == ["p3", "p4"]
        assert rnd.winners == ["p5"]
        assert rnd.losers == ["p6"]

    def test_empty_and_active(self):
        """A round with only losers is not empty but not active either."""
        rnd = Round(id="round_2", name="Round 2", display_name="Semi Final")
        assert rnd.is_empty
        assert not rnd.is_active

        state = started(2)
        stage(state, "round_1", "p1", kind=MembershipKind.ELIMINATED)
        first = state.get_round("round_1")
        assert not first.is_empty
        assert not first.is_active

    def test_label_falls_back_to_name(self):
        """Test label uses the display name when set."""
        assert Round(id="r", name="Round 4", display_name="").label == "Round 4"
        assert Round(id="r", name="Round 4", display_name="Final").label == "Final"

    def test_match_lists(self):
        """Completed and open matches are split by status."""
        rnd = Round(id="r", name="Round 1", display_name="First Round")
        rnd.matches = [
            Match(id="m1", player1_id="a", player2_id="b", status=MatchStatus.COMPLETED, winner_id="a"),
            Match(id="m2", player1_id="c", player2_id="d", status=MatchStatus.ACTIVE),
        ]
        assert [m.id for m in rnd.completed_matches] == ["m1"]
        assert [m.id for m in rnd.open_matches] == ["m2"]
        assert rnd.get_match("m2").player_ids == ("c", "d")
        assert rnd.get_match("nope") is None


class TestMatch:
    """Match helpers."""

    def test_loser_and_opponent(self):
        """Test loser is derived from the winner."""
        match = Match(id="m1", player1_id="a", player2_id="b")
        assert match.loser_id is None
        match.winner_id = "b"
        assert match.loser_id == "a"
        assert match.opponent_of("a") == "b"


class TestPlace:
    """The place() helper keeps membership and status in sync."""

    def test_status_for_membership(self):
        """Test the status implied by each membership."""
        assert status_for_membership(None) == PlayerStatus.AVAILABLE
        assert status_for_membership(MembershipKind.STAGED) == PlayerStatus.IN_ROUND
        assert status_for_membership(MembershipKind.PAIRED) == PlayerStatus.IN_MATCH
        assert status_for_membership(MembershipKind.ELIMINATED) == PlayerStatus.ELIMINATED
        assert status_for_membership(MembershipKind.CHAMPION) == PlayerStatus.WINNER

    def test_player_is_never_in_two_rounds(self):
        """Placing a player in another round removes the old membership."""
        state = started(2)
        state.rounds.append(Round(id="round_2", name="Round 2", display_name="Final"))
        stage(state, "round_1", "p1")
        stage(state, "round_2", "p1")

        assert "p1" not in state.get_round("round_1").members
        assert state.get_round("round_2").unpaired == ["p1"]
        assert state.players["p1"].current_round_id == "round_2"
        assert state.players["p1"].status == PlayerStatus.IN_ROUND

    def test_back_to_pool(self):
        """round_=None returns the player to the staging pool."""
        state = started(2)
        stage(state, "round_1", "p1", "p2")

        place(state, "p1", None)
        assert state.staging_pool == ["p1"]
        assert state.players["p1"].status == PlayerStatus.AVAILABLE
        assert state.players["p1"].current_round_id is None

    def test_same_round_keeps_order(self):
        """Changing kind inside a round keeps the player's position."""
        state = started(3)
        stage(state, "round_1", "p1", "p2", "p3")
        stage(state, "round_1", "p1", kind=MembershipKind.CHAMPION)
        assert list(state.get_round("round_1").members) == ["p1", "p2", "p3"]


class TestTournamentLookups:
    """Lookups on the tournament state."""

    def test_unknown_ids_raise_rejections(self):
        """Test lookups of unknown ids."""
        state = started(2)
        with pytest.raises(RoundNotFound):
            state.get_round("round_9")
        with pytest.raises(MatchNotFound):
            state.find_match("match_x")
        with pytest.raises(PlayerNotFound):
            state.get_player("p99")
        assert state.find_round("round_9") is None

    def test_staging_pool_keeps_roster_order(self):
        """Test staging pool lists unassigned players in roster order."""
        state = started(5)
        stage(state, "round_1", "p2", "p4")
        assert state.staging_pool == ["p1", "p3", "p5"]

    def test_used_round_names_are_case_folded(self):
        """Test used names ignore case."""
        state = started(2)
        assert state.used_round_names == {"first round"}

    def test_next_match_id_does_not_advance(self):
        """Test match ids are derived from the counter."""
        state = make_state(2)
        assert state.next_match_id("round_1") == "match_round_1_1"
        assert state.next_match_id("round_1", offset=2) == "match_round_1_3"
        assert state.match_seq == 0
