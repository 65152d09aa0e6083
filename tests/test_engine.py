"""Tests for the async command engine."""

import asyncio

import pytest

from cuebracket.auth import Session
from cuebracket.backend import ApiResponse, TournamentBackend
from cuebracket.commands import (
    CloseRound,
    CreateRound,
    FreezeRound,
    SelectWinner,
    ShuffleRound,
    StartTournament,
)
from cuebracket.engine import (
    APPLIED,
    AUTH_FAILURE,
    CANCELLED,
    PARTIAL,
    REJECTED,
    REMOTE_FAILURE,
    TournamentEngine,
)
from cuebracket.exceptions import AuthenticationFailed, RemoteFailure
from cuebracket.models import Collection
from cuebracket.movement import MovePlayers
from cuebracket.notifications import RecordingNotifier
from cuebracket.snapshot import state_to_dict
from conftest import fill_and_pair, make_state, run, started


class FakeBackend(TournamentBackend):
    """Records calls; answers from ``responses`` or raises ``error``."""

    def __init__(self, responses=None, error=None, delay=0.0):
        self.calls = []
        self.responses = responses or {}
        self.error = error
        self.delay = delay

    async def _call(self, name, *args):
        self.calls.append((name,) + args)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.responses.get(name, ApiResponse(True))

    @property
    def names(self):
        return [call[0] for call in self.calls]

    async def fetch_tournament(self, tournament_id):
        return await self._call("fetch_tournament", tournament_id)

    async def create_tournament(self, name, players):
        return await self._call("create_tournament", name, players)

    async def start_tournament(self, tournament_id, first_round):
        return await self._call("start_tournament", tournament_id, first_round)

    async def create_round(self, tournament_id, payload):
        return await self._call("create_round", tournament_id, payload)

    async def update_round(self, tournament_id, round_id, payload):
        return await self._call("update_round", tournament_id, round_id, payload)

    async def move_players(self, tournament_id, moves):
        return await self._call("move_players", tournament_id, moves)

    async def remove_players(self, tournament_id, round_id, player_ids):
        return await self._call("remove_players", tournament_id, round_id, player_ids)

    async def start_match(self, tournament_id, match_id):
        return await self._call("start_match", tournament_id, match_id)

    async def complete_match(self, tournament_id, match_id, winner_id, player1_score, player2_score):
        return await self._call(
            "complete_match", tournament_id, match_id, winner_id, player1_score, player2_score
        )

    async def cancel_match(self, tournament_id, match_id):
        return await self._call("cancel_match", tournament_id, match_id)

    async def delete_round(self, tournament_id, round_id):
        return await self._call("delete_round", tournament_id, round_id)

    async def close_tournament(self, tournament_id):
        return await self._call("close_tournament", tournament_id)

    async def save_winner_titles(self, tournament_id, winners):
        return await self._call("save_winner_titles", tournament_id, winners)


def make_engine(state, backend=None, notifier=None, **kwargs):
    return TournamentEngine(
        state,
        backend or FakeBackend(),
        notifier=notifier or RecordingNotifier(),
        **kwargs,
    )


@pytest.mark.asyncio
async def test_applied_after_backend_confirms():
    """Test a valid command is mirrored, applied and reported."""
    backend = FakeBackend(responses={"create_round": ApiResponse(True, data={"id": "srv-r2"})})
    notifier = RecordingNotifier()
    changes = []
    engine = make_engine(started(2), backend, notifier, on_change=changes.append)

    outcome = await engine.execute(CreateRound("Semi Final"))

    assert outcome.status == APPLIED
    assert outcome.ok
    assert outcome.message == 'Round "Semi Final" created.'
    assert engine.state.get_round("round_2").external_id == "srv-r2"
    assert backend.names == ["create_round"]
    assert backend.calls[0][2]["roundDisplayName"] == "Semi Final"
    assert notifier.successes == [outcome.message]
    assert changes == [engine.state]


@pytest.mark.asyncio
async def test_start_tournament_is_one_call():
    """Test starting sends the first round along with the start."""
    backend = FakeBackend(responses={"start_tournament": ApiResponse(True, data={"round_id": "srv-r1"})})
    engine = make_engine(make_state(2), backend)

    outcome = await engine.execute(StartTournament())

    assert outcome.status == APPLIED
    assert backend.names == ["start_tournament"]
    assert backend.calls[0][2]["roundDisplayName"] == "First Round"
    assert engine.state.rounds[0].external_id == "srv-r1"


@pytest.mark.asyncio
async def test_rejection_never_reaches_backend():
    """Test a rejected command makes no call and keeps the state."""
    backend = FakeBackend()
    notifier = RecordingNotifier()
    state = started(2)
    engine = make_engine(state, backend, notifier)

    outcome = await engine.execute(MovePlayers(["p1", "p2"], destination_round_id="round_9"))

    assert outcome.status == REJECTED
    assert outcome.code == "round_not_found"
    assert outcome.state is state
    assert engine.state is state
    assert backend.calls == []
    assert notifier.errors == [("Action not allowed", outcome.message)]


@pytest.mark.asyncio
async def test_move_into_frozen_round_is_rejected():
    """Test the frozen-round scenario end to end through the engine."""
    state = fill_and_pair(started(6), "round_1", ["p1", "p2", "p3", "p4"])
    for match in list(state.get_round("round_1").matches):
        state = run(state, SelectWinner(match.id, match.player1_id))
    state = run(state, FreezeRound("round_1"))
    before = state_to_dict(state)
    backend = FakeBackend()
    engine = make_engine(state, backend)

    outcome = await engine.execute(MovePlayers(["p5", "p6"], destination_round_id="round_1"))

    assert outcome.status == REJECTED
    assert "frozen" in outcome.message
    assert backend.calls == []
    assert state_to_dict(engine.state) == before


@pytest.mark.asyncio
async def test_remote_failure_leaves_state_untouched():
    """Test nothing is applied when the backend call fails."""
    backend = FakeBackend(error=RemoteFailure.network("connection refused"))
    notifier = RecordingNotifier()
    state = started(2)
    engine = make_engine(state, backend, notifier)

    outcome = await engine.execute(MovePlayers(["p1", "p2"], destination_round_id="round_1"))

    assert outcome.status == REMOTE_FAILURE
    assert "Check your connection" in outcome.message
    assert engine.state is state
    assert engine.state.staging_pool == ["p1", "p2"]
    assert notifier.errors == [("Server error", outcome.message)]


@pytest.mark.asyncio
async def test_non_success_response_is_a_failure():
    """Test success=False from the backend is treated like an error."""
    backend = FakeBackend(responses={"create_round": ApiResponse(False, "Round limit reached")})
    engine = make_engine(started(2), backend)

    outcome = await engine.execute(CreateRound("Final"))

    assert outcome.status == REMOTE_FAILURE
    assert "Round limit reached" in outcome.message
    assert len(engine.state.rounds) == 1


@pytest.mark.asyncio
async def test_timeout():
    """Test a slow backend ends in a remote failure without applying."""
    backend = FakeBackend(delay=1.0)
    engine = make_engine(started(2), backend, timeout=0.05)

    outcome = await engine.execute(CreateRound("Final"))

    assert outcome.status == REMOTE_FAILURE
    assert "did not answer" in outcome.message
    assert len(engine.state.rounds) == 1


@pytest.mark.asyncio
async def test_authentication_failure_signs_out():
    """Test a rejected session signs out silently."""
    signed_out = []
    session = Session(token="abc", on_sign_out=lambda: signed_out.append(True))
    notifier = RecordingNotifier()
    backend = FakeBackend(error=AuthenticationFailed("Session expired"))
    engine = make_engine(started(2), backend, notifier, session=session)

    outcome = await engine.execute(CreateRound("Final"))

    assert outcome.status == AUTH_FAILURE
    assert outcome.message == ""
    assert not session.is_authenticated
    assert signed_out == [True]
    assert notifier.errors == []


@pytest.mark.asyncio
async def test_auth_message_in_response_signs_out():
    """Test an auth phrase in a success=False response is an auth failure."""
    session = Session(token="abc")
    backend = FakeBackend(responses={"create_round": ApiResponse(False, "Session expired. Please login again.")})
    engine = make_engine(started(2), backend, session=session)

    outcome = await engine.execute(CreateRound("Final"))

    assert outcome.status == AUTH_FAILURE
    assert session.signed_out


@pytest.mark.asyncio
async def test_partial_move():
    """Test players the backend skipped are reported and left in place."""
    backend = FakeBackend(
        responses={"move_players": ApiResponse(True, data={"moved": 1, "skipped": 1, "skipped_ids": ["ext-p2"]})}
    )
    engine = make_engine(started(4), backend)

    outcome = await engine.execute(MovePlayers(["p1", "p2"], destination_round_id="round_1"))

    assert outcome.status == PARTIAL
    assert outcome.ok
    assert outcome.skipped == ["p2"]
    assert engine.state.get_round("round_1").unpaired == ["p1"]
    assert "p2" in engine.state.staging_pool
    assert backend.calls[0] == (
        "move_players",
        "t1",
        [
            {"playerId": "ext-p1", "roundId": "round_1", "asWinner": False},
            {"playerId": "ext-p2", "roundId": "round_1", "asWinner": False},
        ],
    )


@pytest.mark.asyncio
async def test_destructive_command_can_be_cancelled():
    """Test declining the confirmation cancels without any call."""
    backend = FakeBackend()
    notifier = RecordingNotifier(answer=False)
    state = run(started(2), CreateRound("Final"))
    engine = make_engine(state, backend, notifier)

    outcome = await engine.execute(CloseRound("round_2"))

    assert outcome.status == CANCELLED
    assert backend.calls == []
    assert notifier.confirmations == [("Close round", "Close Final? This cannot be undone.")]
    assert len(engine.state.rounds) == 2


@pytest.mark.asyncio
async def test_shuffle_stores_backend_match_ids():
    """Test backend match ids from the mirror end up on the new matches."""
    backend = FakeBackend(
        responses={"update_round": ApiResponse(True, data={"match_ids": {"match_round_1_1": "srv-m1"}})}
    )
    state = run(started(2), MovePlayers(["p1", "p2"], destination_round_id="round_1"))
    engine = make_engine(state, backend)

    outcome = await engine.execute(ShuffleRound("round_1"))

    assert outcome.status == APPLIED
    payload = backend.calls[0][3]
    assert payload["deleteMatchIds"] == []
    assert sorted((payload["matches"][0]["player1Id"], payload["matches"][0]["player2Id"])) == [
        "ext-p1",
        "ext-p2",
    ]
    assert engine.state.get_round("round_1").matches[0].external_id == "srv-m1"


@pytest.mark.asyncio
async def test_select_winner_sends_backend_ids():
    """Test the winner is sent with its backend identity."""
    backend = FakeBackend()
    state = fill_and_pair(started(2), "round_1", ["p1", "p2"])
    engine = make_engine(state, backend)

    outcome = await engine.execute(SelectWinner("match_round_1_1", "p2", 5, 3))

    assert outcome.status == APPLIED
    assert backend.calls == [("complete_match", "t1", "match_round_1_1", "ext-p2", 5, 3)]
    assert engine.state.get_round("round_1").winners == ["p2"]


@pytest.mark.asyncio
async def test_commands_run_one_at_a_time():
    """Two concurrent commands are serialized: the second sees the first's result."""
    backend = FakeBackend(delay=0.01)
    engine = make_engine(started(2), backend)

    first, second = await asyncio.gather(
        engine.execute(CreateRound("Semi Final")),
        engine.execute(CreateRound("Semi Final")),
    )

    assert first.status == APPLIED
    assert second.status == REJECTED
    assert second.code == "duplicate_round_name"
    assert [r.label for r in engine.state.rounds] == ["First Round", "Semi Final"]


def back_in_second_round(state):
    """Round 1 winners and two round 1 losers staged in the Second Round."""
    first = state.get_round("round_1")
    winners, losers = list(first.winners), list(first.losers[:2])
    state = run(state, MovePlayers(winners, "round_2", "round_1", Collection.WINNERS))
    state = run(state, MovePlayers(losers, "round_2", "round_1", Collection.LOSERS))
    return state, winners[0], losers[0]


@pytest.mark.asyncio
async def test_move_to_two_places_is_one_call(first_round_played):
    """Test a pool move that also routes a winner home is mirrored as one batch."""
    state, winner, loser = back_in_second_round(first_round_played)
    backend = FakeBackend()
    engine = make_engine(state, backend)

    outcome = await engine.execute(MovePlayers([winner, loser], source_round_id="round_2"))

    assert outcome.status == APPLIED
    assert backend.names == ["move_players"]
    moves = {m["playerId"]: m for m in backend.calls[0][2]}
    assert moves[f"ext-{winner}"] == {"playerId": f"ext-{winner}", "roundId": "round_1", "asWinner": True}
    assert moves[f"ext-{loser}"] == {"playerId": f"ext-{loser}", "roundId": None, "asWinner": False}
    assert winner in engine.state.get_round("round_1").winners
    assert loser in engine.state.staging_pool


@pytest.mark.asyncio
async def test_failed_batch_move_changes_nothing(first_round_played):
    """Test a failing batch leaves no earlier call behind and no local change."""
    state, winner, loser = back_in_second_round(first_round_played)
    backend = FakeBackend(error=RemoteFailure.network("peer reset"))
    engine = make_engine(state, backend)

    outcome = await engine.execute(MovePlayers([winner, loser], source_round_id="round_2"))

    assert outcome.status == REMOTE_FAILURE
    assert backend.names == ["move_players"]
    assert engine.state is state


@pytest.mark.asyncio
async def test_pool_only_move_removes_players(first_round_played):
    """Test a move that only lands in the pool uses remove_players."""
    state, _, loser = back_in_second_round(first_round_played)
    backend = FakeBackend()
    engine = make_engine(state, backend)

    outcome = await engine.execute(MovePlayers([loser], source_round_id="round_2"))

    assert outcome.status == APPLIED
    assert backend.calls == [("remove_players", "t1", "round_2", [f"ext-{loser}"])]


@pytest.mark.asyncio
async def test_unexpected_backend_error_is_a_remote_failure():
    """Test an error outside the backend's own types still ends in an outcome."""
    backend = FakeBackend(error=ConnectionResetError("peer reset"))
    notifier = RecordingNotifier()
    state = started(2)
    engine = make_engine(state, backend, notifier)

    outcome = await engine.execute(MovePlayers(["p1", "p2"], destination_round_id="round_1"))

    assert outcome.status == REMOTE_FAILURE
    assert "peer reset" in outcome.message
    assert engine.state is state
    assert notifier.errors == [("Server error", outcome.message)]


@pytest.mark.asyncio
async def test_failing_persistence_hook_is_reported():
    """Test the new snapshot is kept when saving it fails, and the error is shown."""

    def broken_save(state):
        raise OSError("disk full")

    notifier = RecordingNotifier()
    engine = make_engine(started(2), FakeBackend(), notifier, on_change=broken_save)

    outcome = await engine.execute(CreateRound("Final"))

    assert outcome.status == APPLIED
    assert len(engine.state.rounds) == 2
    assert notifier.errors == [
        ("Save error", "The change was accepted but could not be saved: disk full")
    ]
