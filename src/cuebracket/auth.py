"""Session handling for backend authentication failures.

An expired or rejected session is not an error the organizer can act on:
the session is cleared and the UI is sent back to sign-in.
"""

import logging
from typing import Callable, Optional

logger = logging.getLogger(__name__)

AUTH_ERROR_PHRASES = ("session expired", "unauthorized", "401", "invalid or expired token")


def is_auth_failure(message: Optional[str]) -> bool:
    """Check whether a backend error message means the session is gone."""
    if not message:
        return False
    lowered = message.lower()
    return any(phrase in lowered for phrase in AUTH_ERROR_PHRASES)


class Session:
    """Organizer session holding the backend token.

    Args:
        token: Bearer token (None when signed out)
        on_sign_out: Called after the token is cleared (redirect to sign-in)
    """

    def __init__(self, token: Optional[str] = None, on_sign_out: Optional[Callable[[], None]] = None):
        self.token = token
        self.on_sign_out = on_sign_out
        self.signed_out = False

    @property
    def is_authenticated(self) -> bool:
        return bool(self.token) and not self.signed_out

    def sign_out(self) -> None:
        logger.info("Session ended by the backend; signing out")
        self.token = None
        self.signed_out = True
        if self.on_sign_out is not None:
            self.on_sign_out()
