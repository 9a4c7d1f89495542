"""Error taxonomy for attendance roll-up runs."""


class AttendanceError(Exception):
    """Base class for errors that abort a roll-up run."""


class ConfigurationError(AttendanceError):
    """Required run configuration is missing or invalid."""


class UpstreamError(AttendanceError):
    """The activity-log service could not serve a request."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class UpstreamAuthError(UpstreamError):
    """Credential exchange with the activity-log service failed."""


class UpstreamQueryError(UpstreamError):
    """A query was rejected or returned an error payload."""
