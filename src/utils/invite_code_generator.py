"""Invite code generation.

Codes are 16 random bytes from ``secrets`` rendered as 32 lowercase hex
characters. Each candidate is checked against the store before it is handed
out; collisions are retried a bounded number of times.
"""

import logging
import secrets
from typing import Callable, Optional

from core.exceptions import CodeGenerationError

CODE_BYTES = 16
DEFAULT_MAX_ATTEMPTS = 5


class InviteCodeGenerator:
    """Produces invite code strings that are not yet present in the store."""

    def __init__(
        self,
        exists: Callable[[str], bool],
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        token_factory: Optional[Callable[[], str]] = None,
        logger: Optional[logging.Logger] = None,
    ):
        """Initialize the generator.

        Args:
            exists: Returns True when a code string is already taken,
                soft-deleted codes included.
            max_attempts: Candidates tried before giving up.
            token_factory: Source of candidate strings. Defaults to
                ``secrets.token_hex(16)``.
            logger: Logger for collision warnings.
        """
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.exists = exists
        self.max_attempts = max_attempts
        self.token_factory = token_factory or (lambda: secrets.token_hex(CODE_BYTES))
        self.logger = logger or logging.getLogger(__name__)

    def generate(self) -> str:
        """Return a fresh, unused invite code.

        Raises:
            CodeGenerationError: If every attempt collided with an existing code.
        """
        for attempt in range(1, self.max_attempts + 1):
            candidate = self.token_factory()
            if not self.exists(candidate):
                return candidate
            self.logger.warning(
                "Invite code collision: attempt=%d/%d", attempt, self.max_attempts
            )
        raise CodeGenerationError(
            f"could not generate a unique invite code after {self.max_attempts} attempts"
        )
