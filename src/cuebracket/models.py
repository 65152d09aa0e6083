"""Data models for cuebracket.

Domain model hierarchy:
- TournamentState holds the player registry, the ordered Rounds and the
  winner history / display projection
- Round owns the membership of every player assigned to it and its Matches
- Match pairs two players and records the winner

Round membership is a single tagged value per player (staged, paired,
eliminated, champion). The players / winners / losers lists are read-only
views over it, so they cannot drift apart.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Iterator, Optional

from cuebracket.exceptions import (
    MatchNotFound,
    PlayerNotFound,
    RoundNotFound,
    TournamentClosed,
    TournamentStateError,
)


class PlayerStatus(str, Enum):
    """Player status as shown to the organizer."""

    AVAILABLE = "available"  # In the staging pool
    IN_ROUND = "in_round"  # Staged in a round, not paired yet
    IN_MATCH = "in_match"  # Paired into a pending/active match
    IN_LOBBY = "in_lobby"
    ELIMINATED = "eliminated"
    WAITING = "waiting"
    WINNER = "winner"


class MatchStatus(str, Enum):
    """Match status."""

    PENDING = "pending"  # Paired, not started
    ACTIVE = "active"  # Being played
    COMPLETED = "completed"  # Winner recorded


class RoundStatus(str, Enum):
    """Round status."""

    PENDING = "pending"
    ACTIVE = "active"
    COMPLETED = "completed"  # Set when the round is frozen


class TournamentStatus(str, Enum):
    """Tournament status."""

    DRAFT = "draft"
    ONGOING = "ongoing"
    COMPLETED = "completed"


class MembershipKind(str, Enum):
    """What a player is doing inside the round that holds it."""

    STAGED = "staged"
    PAIRED = "paired"
    ELIMINATED = "eliminated"
    CHAMPION = "champion"


class Collection(str, Enum):
    """Where a move takes its players from."""

    POOL = "pool"
    PLAYERS = "players"
    WINNERS = "winners"
    LOSERS = "losers"


_STATUS_BY_KIND = {
    MembershipKind.STAGED: PlayerStatus.IN_ROUND,
    MembershipKind.PAIRED: PlayerStatus.IN_MATCH,
    MembershipKind.ELIMINATED: PlayerStatus.ELIMINATED,
    MembershipKind.CHAMPION: PlayerStatus.WINNER,
}


def status_for_membership(kind: Optional[MembershipKind]) -> PlayerStatus:
    """Player status implied by a membership (None = staging pool)."""
    if kind is None:
        return PlayerStatus.AVAILABLE
    return _STATUS_BY_KIND[kind]


# ============================================================================
# Core Domain Models
# ============================================================================


@dataclass
class Player:
    """Tournament participant plus the lineage the progression rules need."""

    id: str
    name: str
    external_id: Optional[str] = None  # Stable backend identity
    skill: str = "Beginner"
    avatar: Optional[str] = None
    status: PlayerStatus = PlayerStatus.AVAILABLE
    current_round_id: Optional[str] = None
    last_round_index_played: Optional[int] = None
    is_previous_round_winner: bool = False
    original_winning_round_id: Optional[str] = None
    previous_winning_round_id: Optional[str] = None
    last_winning_round_id: Optional[str] = None
    rounds_won: list[str] = field(default_factory=list)
    matches_played: int = 0

    def __str__(self) -> str:
        """String representation."""
        return f"{self.name} ({self.id})"


@dataclass
class Match:
    """A head-to-head match inside a round."""

    id: str
    player1_id: str
    player2_id: str
    status: MatchStatus = MatchStatus.PENDING
    winner_id: Optional[str] = None
    player1_score: Optional[int] = None
    player2_score: Optional[int] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    external_id: Optional[str] = None

    @property
    def player_ids(self) -> tuple[str, str]:
        return (self.player1_id, self.player2_id)

    @property
    def is_completed(self) -> bool:
        """Check if match is finished."""
        return self.status == MatchStatus.COMPLETED

    @property
    def is_open(self) -> bool:
        """Pending or active."""
        return self.status != MatchStatus.COMPLETED

    @property
    def loser_id(self) -> Optional[str]:
        if self.winner_id is None:
            return None
        return self.opponent_of(self.winner_id)

    def opponent_of(self, player_id: str) -> str:
        """Return the other participant."""
        return self.player2_id if player_id == self.player1_id else self.player1_id

    def __str__(self) -> str:
        """String representation."""
        return f"Match {self.id}: {self.player1_id} vs {self.player2_id} [{self.status.value}]"


@dataclass
class Membership:
    """A player's place in the round that holds it."""

    kind: MembershipKind
    match_id: Optional[str] = None  # Set only while PAIRED


@dataclass
class Round:
    """An ordered stage of the tournament.

    ``members`` is the only record of who is in the round; the list
    properties below are derived from it in insertion order.
    """

    id: str
    name: str  # Internal ordinal name, "Round 3"
    display_name: str  # Organizer-editable, "Semi Final"
    members: dict[str, Membership] = field(default_factory=dict)
    matches: list[Match] = field(default_factory=list)
    status: RoundStatus = RoundStatus.PENDING
    is_frozen: bool = False
    shuffled: bool = False
    external_id: Optional[str] = None

    def _ids(self, *kinds: MembershipKind) -> list[str]:
        return [pid for pid, m in self.members.items() if m.kind in kinds]

    @property
    def players(self) -> list[str]:
        """Players still playing here: staged and paired."""
        return self._ids(MembershipKind.STAGED, MembershipKind.PAIRED)

    @property
    def unpaired(self) -> list[str]:
        return self._ids(MembershipKind.STAGED)

    @property
    def paired(self) -> list[str]:
        return self._ids(MembershipKind.PAIRED)

    @property
    def winners(self) -> list[str]:
        return self._ids(MembershipKind.CHAMPION)

    @property
    def losers(self) -> list[str]:
        return self._ids(MembershipKind.ELIMINATED)

    @property
    def completed_matches(self) -> list[Match]:
        return [m for m in self.matches if m.is_completed]

    @property
    def open_matches(self) -> list[Match]:
        return [m for m in self.matches if m.is_open]

    @property
    def is_empty(self) -> bool:
        """No players, matches, winners or losers."""
        return not self.members and not self.matches

    @property
    def is_active(self) -> bool:
        """Has players, matches or winners (used by the forward-move rule)."""
        return bool(self.players or self.matches or self.winners)

    @property
    def label(self) -> str:
        return self.display_name or self.name

    def get_match(self, match_id: str) -> Optional[Match]:
        for match in self.matches:
            if match.id == match_id:
                return match
        return None

    def __str__(self) -> str:
        """String representation."""
        return (
            f"{self.label}: {len(self.players)} players, {len(self.matches)} matches, "
            f"{len(self.winners)} winners, {len(self.losers)} losers"
        )


# ============================================================================
# Winner history and display projection
# ============================================================================


@dataclass
class WinnerRecord:
    """One entry of the append-only winner history."""

    player_id: str
    player_name: str
    round_won: str  # Display name at the time of the win
    round_won_id: str
    won_at: datetime
    match_id: str


@dataclass
class WinnerDisplayEntry:
    """A row of the Winner Display Projection."""

    player_id: str
    player_name: str
    rank: int
    round_won: str
    round_won_id: str
    won_at: datetime
    match_id: str
    external_id: Optional[str] = None
    title: str = ""
    selected: bool = True


# ============================================================================
# Tournament
# ============================================================================


@dataclass
class TournamentState:
    """Snapshot of a whole tournament.

    Command handlers never mutate a state they receive; they return a new one.
    """

    tournament_id: str
    name: str = ""
    status: TournamentStatus = TournamentStatus.DRAFT
    players: dict[str, Player] = field(default_factory=dict)
    rounds: list[Round] = field(default_factory=list)
    winner_history: list[WinnerRecord] = field(default_factory=list)
    winners_to_display: list[WinnerDisplayEntry] = field(default_factory=list)
    active_round_id: Optional[str] = None
    match_seq: int = 0
    external_id: Optional[str] = None

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def round_index(self, round_id: str) -> int:
        """Position of a round in the sequence (authoritative ordering).

        Raises:
            RoundNotFound: If no round has this id
        """
        for index, rnd in enumerate(self.rounds):
            if rnd.id == round_id:
                return index
        raise RoundNotFound(round_id=round_id)

    def get_round(self, round_id: str) -> Round:
        return self.rounds[self.round_index(round_id)]

    def find_round(self, round_id: Optional[str]) -> Optional[Round]:
        """Like get_round, but returns None instead of raising."""
        for rnd in self.rounds:
            if rnd.id == round_id:
                return rnd
        return None

    def find_match(self, match_id: str) -> tuple[Round, Match]:
        """Locate a match and the round holding it.

        Raises:
            MatchNotFound: If no round has this match
        """
        for rnd in self.rounds:
            match = rnd.get_match(match_id)
            if match is not None:
                return rnd, match
        raise MatchNotFound(match_id=match_id)

    def get_player(self, player_id: str) -> Player:
        try:
            return self.players[player_id]
        except KeyError:
            raise PlayerNotFound(player_id=player_id) from None

    def membership_of(self, player_id: str) -> Optional[tuple[Round, Membership]]:
        """Round and membership of a player, or None when it is in the pool."""
        for rnd in self.rounds:
            membership = rnd.members.get(player_id)
            if membership is not None:
                return rnd, membership
        return None

    @property
    def staging_pool(self) -> list[str]:
        """Players not assigned to any round, in roster order."""
        assigned = {pid for rnd in self.rounds for pid in rnd.members}
        return [pid for pid in self.players if pid not in assigned]

    @property
    def used_round_names(self) -> set[str]:
        """Display names currently taken (case-folded)."""
        return {rnd.label.casefold() for rnd in self.rounds}

    @property
    def is_closed(self) -> bool:
        return self.status == TournamentStatus.COMPLETED

    def iter_matches(self) -> Iterator[tuple[Round, Match]]:
        for rnd in self.rounds:
            for match in rnd.matches:
                yield rnd, match

    def next_match_id(self, round_id: str, offset: int = 0) -> str:
        """Id the n-th next match would get (does not advance the counter)."""
        return f"match_{round_id}_{self.match_seq + offset + 1}"

    def player_name(self, player_id: str) -> str:
        player = self.players.get(player_id)
        return player.name if player else player_id

    def __str__(self) -> str:
        """String representation."""
        return f"Tournament {self.name or self.tournament_id} ({len(self.rounds)} rounds)"


# ============================================================================
# Effects
# ============================================================================


class Effect:
    """A validated change, ready to be mirrored to the backend and applied.

    Effects only hold ids and values, never references into a state, so
    the same effect can be applied to a copy of the state it was planned on.
    """

    destructive = False  # Needs organizer confirmation before it runs


def ensure_ongoing(state: TournamentState) -> None:
    """Reject commands on a tournament that is closed or not started."""
    if state.is_closed:
        raise TournamentClosed()
    if state.status != TournamentStatus.ONGOING:
        raise TournamentStateError("not_started")


# ============================================================================
# Membership helpers (used by the appliers)
# ============================================================================


def place(
    state: TournamentState,
    player_id: str,
    round_: Optional[Round],
    kind: Optional[MembershipKind] = None,
    match_id: Optional[str] = None,
) -> Player:
    """Put a player in exactly one place and sync its status.

    Removes any existing membership first, so a player can never be listed
    twice. ``round_=None`` sends it back to the staging pool. A player that
    stays in the same round keeps its position in the round's lists.
    """
    current = state.membership_of(player_id)
    if current is not None and current[0] is not round_:
        del current[0].members[player_id]

    player = state.get_player(player_id)
    if round_ is None:
        player.status = status_for_membership(None)
        player.current_round_id = None
        return player

    round_.members[player_id] = Membership(kind=kind, match_id=match_id)
    player.status = status_for_membership(kind)
    player.current_round_id = round_.id
    return player
