"""
Narrative Engine Error Types — Structured exception hierarchy.

Lets callers distinguish an oracle that cannot be reached at all
(missing key, auth rejected) from one that answered with output that
failed validation, and both of those from caller bugs such as
triggering a second event while one is still running.
"""


class NarrativeError(Exception):
    """Base class for all narrative engine errors."""
    pass


class OracleCallFailed(NarrativeError):
    """An oracle call did not produce a usable result after all attempts."""

    def __init__(self, call_site: str, message: str):
        super().__init__(message)
        self.call_site = call_site
        self.message = message


class OracleUnavailableError(OracleCallFailed):
    """No client configured, auth rejected (401/403) or the service never answered."""
    pass


class SchemaValidationFailed(OracleCallFailed):
    """The oracle answered, but its output did not match the expected structure. Retried once."""
    pass


class EventInvariantError(NarrativeError):
    """The event lifecycle was driven from an illegal state. Indicates a caller bug, NOT recoverable."""
    pass
