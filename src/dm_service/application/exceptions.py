from __future__ import annotations


class AppError(Exception):
    """Base application error."""

    def __init__(self, detail: str = "") -> None:
        self.detail = detail
        super().__init__(detail)


class NotFoundError(AppError):
    pass


class AuthorizationError(AppError):
    """Caller is not signed in or does not follow the other participant."""


class DependencyError(AppError):
    """Store, object storage or realtime bus is unreachable or failed."""


class RecordingError(DependencyError):
    """Microphone capture session could not be acquired."""


class ValidationError(AppError):
    pass


class DataIntegrityError(AppError):
    """A reference points outside the conversation it is used in."""
