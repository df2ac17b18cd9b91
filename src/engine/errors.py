"""
Exceptions raised by the scheduling engine.

Each carries the HTTP status the web layer answers with.
"""


class SchedulingError(Exception):
    status_code = 400


class ConfigurationError(SchedulingError):
    """The event, roster or venues cannot support the request. Nothing was written."""
    status_code = 400


class EventNotFoundError(ConfigurationError):
    status_code = 404


class MatchNotFoundError(ConfigurationError):
    status_code = 404


class OracleError(SchedulingError):
    status_code = 502


class OracleInfeasibleError(OracleError):
    """The oracle returned no assignments. ``reasoning`` is its explanation."""
    status_code = 422

    def __init__(self, reasoning: str):
        self.reasoning = reasoning or ''
        super().__init__(f"Schedule generation failed: {self.reasoning or 'no reasoning given'}")


class InvalidOracleResultError(OracleError):
    status_code = 502


class ConflictError(SchedulingError):
    status_code = 409


class IllegalTransitionError(SchedulingError):
    status_code = 409
