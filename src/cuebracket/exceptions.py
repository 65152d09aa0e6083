"""Error taxonomy for cuebracket.

Three families reach the command engine:

- ``Rejection``: a command failed validation. Raised before any network call
  or state change; carries a stable ``code`` and a human message from the
  i18n catalog.
- ``RemoteFailure``: the backend could not be reached, timed out, or answered
  with a non-success response. Nothing was applied locally.
- ``AuthenticationFailed``: the backend rejected the session. The engine
  signs out instead of showing an error.
"""

from typing import Optional

from cuebracket.i18n import get_string


class CuebracketError(Exception):
    """Base exception for all cuebracket errors."""

    pass


# ============================================================================
# Validation rejections
# ============================================================================


class Rejection(CuebracketError):
    """A command was refused by validation.

    Subclasses set ``code``; a few families share a class and pick one of
    several codes at raise time. Message parameters are kept in ``params``
    so callers can inspect them without parsing text.
    """

    code = "rejected"

    def __init__(self, code: Optional[str] = None, **params):
        self.code = code or self.code
        self.params = params
        self.message = get_string(f"rejections.{self.code}", **params)
        super().__init__(self.message)


class TournamentClosed(Rejection):
    code = "tournament_closed"


class TournamentStateError(Rejection):
    """Tournament-level precondition failed (not started, already started...)."""

    code = "tournament_state"


class NothingSelected(Rejection):
    code = "nothing_selected"


class RoundNotFound(Rejection):
    code = "round_not_found"


class MatchNotFound(Rejection):
    code = "match_not_found"


class PlayerNotFound(Rejection):
    code = "player_not_found"


class FrozenRound(Rejection):
    code = "frozen_round"


class IllegalMove(Rejection):
    """Move rejected before the ordering rules were consulted."""

    code = "illegal_move"


class ForwardMoveBlocked(Rejection):
    code = "forward_needs_completed_match"


class BacktrackLimit(Rejection):
    code = "backtrack_limit"


class ParityViolation(Rejection):
    code = "parity_violation"


class OddPlayerCount(Rejection):
    code = "odd_player_count"


class MatchStateError(Rejection):
    code = "match_state"


class WinnerAlreadyMoved(Rejection):
    code = "winner_already_moved"


class InvalidRoundName(Rejection):
    code = "empty_round_name"


class DuplicateRoundName(Rejection):
    code = "duplicate_round_name"


class RoundNotEmpty(Rejection):
    code = "round_not_empty"


class RoundNotLast(Rejection):
    code = "round_not_last"


class FreezeBlocked(Rejection):
    code = "freeze_open_matches"


class MissingIdentity(Rejection):
    code = "missing_identity"


class InvalidTitle(Rejection):
    code = "invalid_title"


# ============================================================================
# Remote failures
# ============================================================================


class RemoteFailure(CuebracketError):
    """The backend call failed; the local state was left untouched."""

    def __init__(self, message: str, cause: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.cause = cause

    @classmethod
    def rejected(cls, cause: str) -> "RemoteFailure":
        """Non-success response from the server."""
        return cls(get_string("remote.rejected", cause=cause), cause=cause)

    @classmethod
    def network(cls, cause: str) -> "RemoteFailure":
        """Transport-level error, with a connectivity hint."""
        return cls(get_string("remote.network", cause=cause), cause=cause)


class RemoteTimeout(RemoteFailure):
    """The backend did not answer within the client-side timeout."""

    def __init__(self, seconds: float):
        super().__init__(get_string("remote.timeout", seconds=f"{seconds:g}"), cause="timeout")
        self.seconds = seconds


class AuthenticationFailed(CuebracketError):
    """The backend rejected the organizer's session."""

    pass


# ============================================================================
# Ambient errors
# ============================================================================


class ConfigError(CuebracketError):
    """Configuration validation error."""

    pass


class CSVImportError(CuebracketError):
    """Error during CSV import."""

    pass
