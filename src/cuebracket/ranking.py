"""Winner ranking and title assignment.

The Winner Display Projection lists each winning player once, most recent
win first. The organizer edits the top entries through a
RankingEditBuffer (titles, ranks, publication toggle) and saves it back.
"""

import copy
import logging
from dataclasses import dataclass, field, replace
from typing import Any, Optional

from cuebracket.exceptions import InvalidTitle, MatchNotFound, MissingIdentity, Rejection
from cuebracket.models import (
    Effect,
    TournamentState,
    WinnerDisplayEntry,
    WinnerRecord,
    ensure_ongoing,
)

logger = logging.getLogger(__name__)

PREDEFINED_TITLES = ("Winner", "Runner-up", "Third Place", "Fourth Place", "Fifth Place")
MAX_TITLE_LENGTH = 50
MAX_RANKING_SIZE = 5


def renumber(entries: list[WinnerDisplayEntry]) -> list[WinnerDisplayEntry]:
    """Assign ranks 1..n in list order."""
    for rank, entry in enumerate(entries, start=1):
        entry.rank = rank
    return entries


def _is_valid_win(state: TournamentState, player_id: str, match_id: str) -> bool:
    try:
        _, match = state.find_match(match_id)
    except MatchNotFound:
        return False
    return match.winner_id == player_id


def project_winners(state: TournamentState) -> list[WinnerDisplayEntry]:
    """Rebuild the display projection from the winner history.

    Keeps the latest still-valid win of each player, most recent first.
    A player keeps the title and selection flag of their current entry
    unless that entry points at an overturned win.
    """
    previous = {
        e.player_id: e
        for e in state.winners_to_display
        if _is_valid_win(state, e.player_id, e.match_id)
    }
    entries: list[WinnerDisplayEntry] = []
    seen: set[str] = set()

    for record in reversed(state.winner_history):
        if record.player_id in seen or not _is_valid_win(state, record.player_id, record.match_id):
            continue
        seen.add(record.player_id)
        player = state.players.get(record.player_id)
        old = previous.get(record.player_id)
        entries.append(
            WinnerDisplayEntry(
                player_id=record.player_id,
                player_name=record.player_name,
                external_id=player.external_id if player else None,
                rank=0,
                title=old.title if old else "",
                selected=old.selected if old else True,
                round_won=record.round_won,
                round_won_id=record.round_won_id,
                won_at=record.won_at,
                match_id=record.match_id,
            )
        )
    return renumber(entries)


def promote_winner(
    projection: list[WinnerDisplayEntry],
    record: WinnerRecord,
    external_id: Optional[str] = None,
) -> list[WinnerDisplayEntry]:
    """Put a fresh win at the front of the projection.

    Any earlier entry of the same player is replaced, keeping its title.

    Args:
        projection: Current projection (not modified)
        record: The new winner history record
        external_id: Backend identity of the winner

    Returns:
        New projection list
    """
    previous = next((e for e in projection if e.player_id == record.player_id), None)
    rest = [copy.copy(e) for e in projection if e.player_id != record.player_id]
    entry = WinnerDisplayEntry(
        player_id=record.player_id,
        player_name=record.player_name,
        external_id=external_id,
        rank=1,
        title=previous.title if previous else "",
        selected=previous.selected if previous else True,
        round_won=record.round_won,
        round_won_id=record.round_won_id,
        won_at=record.won_at,
        match_id=record.match_id,
    )
    return renumber([entry] + rest)


def final_ranking(projection: list[WinnerDisplayEntry]) -> list[WinnerDisplayEntry]:
    """Entries selected for publication, ordered by rank."""
    return sorted((e for e in projection if e.selected), key=lambda e: e.rank)


# ============================================================================
# Edit buffer
# ============================================================================


@dataclass
class RankingEditBuffer:
    """Working copy of the top entries of the projection."""

    entries: list[WinnerDisplayEntry] = field(default_factory=list)

    @classmethod
    def from_projection(
        cls, projection: list[WinnerDisplayEntry], size: int = MAX_RANKING_SIZE
    ) -> "RankingEditBuffer":
        size = max(1, min(size, MAX_RANKING_SIZE))
        top = sorted(projection, key=lambda e: e.rank)[:size]
        return cls(entries=[replace(e) for e in top])

    def _entry(self, index: int) -> WinnerDisplayEntry:
        if not 0 <= index < len(self.entries):
            raise Rejection("invalid_entry", index=index + 1)
        return self.entries[index]

    def set_title(self, index: int, title: str) -> None:
        """Set a free-text (<= 50 chars) or predefined title."""
        title = title.strip()
        if title not in PREDEFINED_TITLES and len(title) > MAX_TITLE_LENGTH:
            raise InvalidTitle(max_length=MAX_TITLE_LENGTH)
        self._entry(index).title = title

    def move_rank(self, index: int, new_rank: int) -> None:
        """Move an entry to a new rank, shifting the others."""
        entry = self._entry(index)
        if not 1 <= new_rank <= len(self.entries):
            raise Rejection("invalid_rank", size=len(self.entries))
        self.entries.pop(index)
        self.entries.insert(new_rank - 1, entry)
        renumber(self.entries)

    def toggle_selected(self, index: int) -> bool:
        entry = self._entry(index)
        entry.selected = not entry.selected
        return entry.selected


def commit_buffer(
    projection: list[WinnerDisplayEntry], buffer: RankingEditBuffer
) -> list[WinnerDisplayEntry]:
    """Write buffer edits back: buffer entries first, then the rest."""
    edited = {e.player_id for e in buffer.entries}
    merged = [replace(e) for e in buffer.entries]
    merged += [replace(e) for e in projection if e.player_id not in edited]
    return renumber(merged)


# ============================================================================
# Save winner titles
# ============================================================================


@dataclass
class SaveTitlesEffect(Effect):
    entries: list[WinnerDisplayEntry]
    payload: list[dict[str, Any]]
    skipped: int = 0


def plan_save_titles(state: TournamentState, buffer: RankingEditBuffer) -> SaveTitlesEffect:
    """Validate a title save and build the backend payload.

    Entries without a backend identity are left out of the payload and
    counted as skipped.

    Raises:
        Rejection: If the buffer is empty
        MissingIdentity: If no entry has a backend identity
    """
    ensure_ongoing(state)
    if not buffer.entries:
        raise Rejection("no_winners")

    payload = [
        {
            "playerId": e.external_id,
            "rank": e.rank,
            "title": e.title,
            "selected": e.selected,
            "roundWon": e.round_won,
        }
        for e in buffer.entries
        if e.external_id
    ]
    if not payload:
        raise MissingIdentity()

    skipped = len(buffer.entries) - len(payload)
    if skipped:
        logger.warning("%d winner(s) without backend identity left out of the title save", skipped)
    return SaveTitlesEffect(
        entries=[replace(e) for e in buffer.entries], payload=payload, skipped=skipped
    )


def apply_save_titles(state: TournamentState, effect: SaveTitlesEffect) -> TournamentState:
    new_state = copy.deepcopy(state)
    new_state.winners_to_display = commit_buffer(
        new_state.winners_to_display, RankingEditBuffer(entries=effect.entries)
    )
    return new_state
