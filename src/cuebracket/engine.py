"""Async command engine.

Runs one command at a time: validate against the current snapshot, ask for
confirmation when destructive, mirror to the backend under a timeout, and
only after the backend confirms swap in the new snapshot. Every command
ends in a CommandOutcome; failures never leave a half-applied state.
"""

import asyncio
import logging
import random
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from cuebracket.auth import Session, is_auth_failure
from cuebracket.backend import DEFAULT_TIMEOUT, TournamentBackend
from cuebracket.commands import apply, confirmation, describe, mirror, validate
from cuebracket.exceptions import AuthenticationFailed, Rejection, RemoteFailure, RemoteTimeout
from cuebracket.i18n import get_string
from cuebracket.models import TournamentState
from cuebracket.notifications import Notifier
from cuebracket.policy import DEFAULT_POLICY, ProgressionPolicy

logger = logging.getLogger(__name__)

APPLIED = "applied"
PARTIAL = "partial"
REJECTED = "rejected"
REMOTE_FAILURE = "remote_failure"
AUTH_FAILURE = "auth_failure"
CANCELLED = "cancelled"


@dataclass
class CommandOutcome:
    """What happened to a command.

    Attributes:
        status: applied, partial, rejected, remote_failure, auth_failure or cancelled
        message: Human-readable result (empty for auth failures)
        state: Snapshot after the command (the old one unless applied)
        skipped: Player ids left out of a partially applied move
        code: Rejection code, when rejected
    """

    status: str
    message: str
    state: TournamentState
    skipped: list[str] = field(default_factory=list)
    code: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status in (APPLIED, PARTIAL)


class TournamentEngine:
    """Serializes organizer commands against one tournament.

    Args:
        state: Initial snapshot
        backend: Collaborator every accepted command is mirrored to
        notifier: Where success/error messages and confirmations go
        session: Signed out when the backend rejects the session
        policy: Progression rule switches
        rng: Random source for shuffles
        timeout: Seconds to wait for the backend
        on_change: Called with each new snapshot (persistence hook)
    """

    def __init__(
        self,
        state: TournamentState,
        backend: TournamentBackend,
        notifier: Optional[Notifier] = None,
        session: Optional[Session] = None,
        policy: ProgressionPolicy = DEFAULT_POLICY,
        rng: Optional[random.Random] = None,
        timeout: float = DEFAULT_TIMEOUT,
        on_change: Optional[Callable[[TournamentState], None]] = None,
    ):
        self._state = state
        self.backend = backend
        self.notifier = notifier or Notifier()
        self.session = session
        self.policy = policy
        self.rng = rng or random.Random()
        self.timeout = timeout
        self.on_change = on_change
        self._lock = asyncio.Lock()

    @property
    def state(self) -> TournamentState:
        return self._state

    async def execute(self, command: Any) -> CommandOutcome:
        """Run a command to completion; concurrent calls wait their turn."""
        async with self._lock:
            return await self._execute(command)

    async def _execute(self, command: Any) -> CommandOutcome:
        name = type(command).__name__
        state = self._state

        try:
            effect = validate(state, command, self.policy, self.rng)
        except Rejection as e:
            logger.warning("%s rejected (%s): %s", name, e.code, e.message)
            self.notifier.error(get_string("errors.rejected_title"), e.message)
            return CommandOutcome(REJECTED, e.message, state, code=e.code)

        if effect.destructive:
            title, question = confirmation(state, effect)
            if not self.notifier.confirm(title, question):
                logger.info("%s cancelled by the organizer", name)
                return CommandOutcome(CANCELLED, get_string("cli.cancelled"), state)

        try:
            data = await asyncio.wait_for(mirror(self.backend, state, effect), self.timeout)
        except asyncio.TimeoutError:
            return self._remote_failure(name, RemoteTimeout(self.timeout), state)
        except AuthenticationFailed as e:
            return self._auth_failure(name, str(e), state)
        except RemoteFailure as e:
            if is_auth_failure(e.cause):
                return self._auth_failure(name, e.message, state)
            return self._remote_failure(name, e, state)
        except Exception as e:
            logger.exception("%s: unexpected backend error", name)
            return self._remote_failure(name, RemoteFailure.network(str(e) or type(e).__name__), state)

        new_state = apply(state, effect, data)
        message, skipped = describe(state, effect, data)
        self._state = new_state
        logger.info("%s applied: %s", name, message)
        self.notifier.success(message)
        if self.on_change is not None:
            # The backend already holds the change, so the new snapshot stays
            try:
                self.on_change(new_state)
            except Exception as e:
                logger.exception("%s: saving the new snapshot failed", name)
                self.notifier.error(
                    get_string("errors.save_title"), get_string("errors.save_failed", cause=e)
                )
        return CommandOutcome(PARTIAL if skipped else APPLIED, message, new_state, skipped)

    def _remote_failure(self, name: str, error: RemoteFailure, state: TournamentState) -> CommandOutcome:
        logger.warning("%s not applied, backend failed: %s", name, error.message)
        self.notifier.error(get_string("errors.remote_title"), error.message)
        return CommandOutcome(REMOTE_FAILURE, error.message, state)

    def _auth_failure(self, name: str, reason: str, state: TournamentState) -> CommandOutcome:
        logger.warning("%s not applied, session rejected: %s", name, reason)
        if self.session is not None:
            self.session.sign_out()
        return CommandOutcome(AUTH_FAILURE, "", state)
