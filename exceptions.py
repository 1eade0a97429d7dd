"""
Exceptions for the club stats service, each carrying a user-facing message
and the HTTP status it is reported with.
"""

class ClubStatsError(Exception):
    """Base exception for club stats errors."""
    status_code = 500

    def __init__(self, message: str, user_message: str = None, status_code: int = None):
        super().__init__(message)
        self.user_message = user_message or message
        if status_code is not None:
            self.status_code = status_code

class StorageError(ClubStatsError):
    """Raised when a query against the storage backend fails."""
    def __init__(self, operation: str, details: str = None):
        super().__init__(
            f"Storage error during {operation}: {details}",
            f"Failed to fetch {operation}"
        )
        self.operation = operation

class NotFoundError(ClubStatsError):
    """Raised when a requested record does not exist."""
    status_code = 404

    def __init__(self, kind: str, identifier: str = None):
        super().__init__(
            f"{kind} '{identifier}' not found" if identifier else f"{kind} not found",
            f"{kind} not found"
        )

class ValidationError(ClubStatsError):
    """Raised when request input is missing or malformed."""
    status_code = 400

class AuthenticationError(ClubStatsError):
    """Raised when the caller cannot be identified."""
    status_code = 401

class PermissionDeniedError(ClubStatsError):
    """Raised when the caller lacks the required role."""
    status_code = 403

class FixtureConflictError(ClubStatsError):
    """Raised when fixtures already exist for a tournament."""
    status_code = 409

    def __init__(self, tournament_id: str):
        super().__init__(
            f"Fixtures already generated for tournament {tournament_id}",
            "Fixtures already generated for this tournament"
        )
