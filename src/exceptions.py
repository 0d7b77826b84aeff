"""Custom exceptions for CatchTrack."""


class CatchTrackError(Exception):
    """Base exception for all CatchTrack errors."""


class ConfigError(CatchTrackError):
    """Configuration-related errors."""


class DatabaseError(CatchTrackError):
    """Database operation errors."""


class ValidationFailure(CatchTrackError):
    """Caller supplied malformed filters or violated a precondition."""


class NotFoundError(CatchTrackError):
    """An explicitly requested record does not exist."""
