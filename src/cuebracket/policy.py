"""Tournament progression policy.

The ordering rules applied to player moves are product decisions rather
than properties of a bracket format, so each one can be switched off.
"""

from dataclasses import dataclass, fields
from typing import Any, Optional


@dataclass(frozen=True)
class ProgressionPolicy:
    """Switches for the movement rules.

    Attributes:
        require_completed_match_to_advance: Forward moves need a completed
            match in the source round.
        allow_skipping_active_rounds: A forward move may jump over rounds
            that already have players, matches or winners. When False,
            forward moves must target the immediately next round.
        limit_winner_backtrack: Winners cannot move back past their last
            winning round.
        enforce_parity: Moves into a round's players list must leave an
            even number of unpaired players.
        parity_on_pool_moves: Apply the parity check to moves coming from
            the staging pool too.
    """

    require_completed_match_to_advance: bool = True
    allow_skipping_active_rounds: bool = True
    limit_winner_backtrack: bool = True
    enforce_parity: bool = True
    parity_on_pool_moves: bool = True

    @classmethod
    def from_dict(cls, data: Optional[dict[str, Any]]) -> "ProgressionPolicy":
        """Build a policy from the ``policy:`` config section (validated)."""
        if not data:
            return cls()
        known = {f.name for f in fields(cls)}
        return cls(**{key: value for key, value in data.items() if key in known})


DEFAULT_POLICY = ProgressionPolicy()
