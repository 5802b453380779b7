"""
Authentication Boundary

The reconciliation engine only needs one capability from authentication:
"who is signed in right now, if anyone". Sync is a no-op without an identity.
"""

from typing import Optional

import structlog


logger = structlog.get_logger(__name__)


class IdentityProvider:
    """Holds the currently authenticated user id, or None."""

    def __init__(self, user_id: Optional[str] = None):
        self._user_id = user_id or None

    def current_identity(self) -> Optional[str]:
        return self._user_id

    @property
    def is_authenticated(self) -> bool:
        return self._user_id is not None

    def sign_in(self, user_id: str) -> None:
        user_id = user_id.strip()
        if not user_id:
            raise ValueError("User id cannot be blank")
        self._user_id = user_id
        logger.info("signed_in", user_id=user_id)

    def sign_out(self) -> None:
        if self._user_id is not None:
            logger.info("signed_out", user_id=self._user_id)
        self._user_id = None
