class ConfigError(ValueError):
    """Configuration is missing or invalid."""


class DbApiError(RuntimeError):
    """Base class for failures reported to HTTP callers."""

    kind = "EngineError"
    status_code = 500


class InvalidIdentifier(DbApiError):
    """Table or column name failed validation."""

    kind = "InvalidIdentifier"
    status_code = 400


class MissingParameter(DbApiError):
    """A required query or path parameter is absent."""

    kind = "MissingParameter"
    status_code = 400


class UnknownTable(DbApiError):
    """The engine reports no such table."""

    kind = "UnknownTable"
    status_code = 404


class UnknownColumn(DbApiError):
    """The engine reports no such column."""

    kind = "UnknownColumn"
    status_code = 404


class PoolExhausted(DbApiError):
    """No connection became available within the acquire timeout."""

    kind = "PoolExhausted"
    status_code = 503


class EngineError(DbApiError):
    """Any other database driver failure."""

    kind = "EngineError"
    status_code = 500


class UnknownQueryShape(DbApiError):
    """Query builder received a query shape it cannot render."""

    kind = "UnknownQueryShape"
    status_code = 500
