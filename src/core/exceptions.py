"""Custom exception classes for the Invite Gate service.

This module defines application-specific exceptions following Google Python
Style Guide. Domain errors are raised by the managers in ``utils`` and
translated into HTTP responses by the handlers registered in ``app``.
"""


class InviteGateError(Exception):
    """Base exception for all Invite Gate errors."""

    pass


class ValidationError(InviteGateError):
    """Raised when input fails validation before anything is persisted."""

    pass


class NotFoundError(InviteGateError):
    """Raised when a requested entity cannot be found."""

    def __init__(self, resource: str, identifier=None):
        """Initialize the exception.

        Args:
            resource: Human readable name of the missing entity.
            identifier: Identifier that was looked up, if any.
        """
        self.resource = resource
        self.identifier = identifier
        super().__init__(f"{resource} not found")


class RedemptionError(InviteGateError):
    """Raised when an invite code cannot be redeemed for a business reason."""

    reason = "unavailable"
    message = "invite code cannot be used"

    def __init__(self, code: str = None):
        """Initialize the exception.

        Args:
            code: The invite code string that was rejected.
        """
        self.code = code
        super().__init__(self.message)


class InviteCodeExhaustedError(RedemptionError):
    """Raised when an invite code has reached its maximum number of uses."""

    reason = "exhausted"
    message = "invite code has reached maximum uses"


class InviteCodeDisabledError(RedemptionError):
    """Raised when an invite code was disabled by its creator or an admin."""

    reason = "disabled"
    message = "invite code is disabled"


class InviteCodeInactiveError(RedemptionError):
    """Raised when an invite code is not active for any other reason."""

    reason = "inactive"
    message = "invite code is not active"


class ConflictError(InviteGateError):
    """Raised when a concurrent modification could not be resolved."""

    pass


class PersistenceError(InviteGateError):
    """Raised when the underlying store fails."""

    pass


class CodeGenerationError(PersistenceError):
    """Raised when no unique invite code could be generated."""

    pass


class AuthenticationError(InviteGateError):
    """Raised when credentials or tokens are invalid."""

    pass


class PermissionDeniedError(InviteGateError):
    """Raised when the caller is not allowed to act on a resource."""

    pass
