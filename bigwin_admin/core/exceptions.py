"""
Custom exception classes for the application.
Provides structured error handling across all modules.
"""

from typing import Any, Optional, Dict


class BigWinAdminException(Exception):
    """Base exception class for the admin backend."""

    status_code: int = 500

    def __init__(
        self,
        message: str,
        code: str = "UNKNOWN_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(self.message)


class ValidationError(BigWinAdminException):
    """Raised when data validation fails."""

    status_code = 400

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "VALIDATION_ERROR", details)


class NotFoundError(BigWinAdminException):
    """Raised when a requested resource is not found."""

    status_code = 404

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "NOT_FOUND", details)


class AuthenticationError(BigWinAdminException):
    """Raised when authentication fails."""

    status_code = 401

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "AUTHENTICATION_ERROR", details)


class AuthorizationError(BigWinAdminException):
    """Raised when the caller is outside the target's scope."""

    status_code = 403

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "FORBIDDEN", details)


class ConflictError(BigWinAdminException):
    """Raised when a resource is already in the requested state."""

    status_code = 409

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "CONFLICT", details)


class TransactionAbortedError(BigWinAdminException):
    """Raised when an atomic write could not be committed. Safe to retry."""

    status_code = 503

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "TRANSACTION_ABORTED", details)


class DependencyError(BigWinAdminException):
    """Raised when an external collaborator (mail, change feed) fails."""

    status_code = 502

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "DEPENDENCY_ERROR", details)


# Domain-specific exceptions
class UserNotFoundError(NotFoundError):
    """Raised when a user is not found."""

    def __init__(self, user_id: str):
        super().__init__(
            "User not found",
            {"user_id": user_id}
        )


class WalletNotFoundError(NotFoundError):
    """Raised when a user has no wallet."""

    def __init__(self, user_id: str):
        super().__init__(
            "User wallet not found",
            {"user_id": user_id}
        )


class GameProfileNotFoundError(NotFoundError):
    """Raised when a user has no entry for the given game."""

    def __init__(self, user_id: str, game_name: str):
        super().__init__(
            "Game profile not found",
            {"user_id": user_id, "game_name": game_name}
        )


class PendingRequestNotFoundError(NotFoundError):
    """Raised when there is no pending request in the state an operation needs."""

    def __init__(self, kind: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(f"No pending {kind} request found", details)


class ProfileAlreadyActiveError(ConflictError):
    """Raised when assigning a game ID to an already active profile."""

    def __init__(self, user_id: str, game_name: str, existing_game_id: Optional[str]):
        super().__init__(
            "Game profile is already active with an assigned gameId",
            {
                "user_id": user_id,
                "game_name": game_name,
                "existing_game_id": existing_game_id,
            }
        )
        self.existing_game_id = existing_game_id


class ScopeViolationError(AuthorizationError):
    """Raised when an admin acts on a user assigned to someone else."""

    def __init__(self, admin_username: str, user_id: str):
        super().__init__(
            "You do not have permission to manage this user",
            {"admin": admin_username, "user_id": user_id}
        )
