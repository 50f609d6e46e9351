"""Error taxonomy for the optimization pipeline.

Only SecurityError, ParseError (no tables), NotFoundError and ExecutionError are
meant to reach the HTTP boundary. ProviderError and ParseError raised by the
language-model components are absorbed by the component that issued the call.
"""


class OptimizerError(Exception):
    """Base class for all pipeline errors."""

    error_type = "INTERNAL_ERROR"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class SecurityError(OptimizerError):
    """Raised when the safety gate rejects a statement."""

    error_type = "SECURITY_ERROR"


class NotFoundError(OptimizerError):
    """Raised when a referenced table does not exist."""

    error_type = "NOT_FOUND"


class ExecutionError(OptimizerError):
    """Raised when the database rejects an introspection or EXPLAIN statement."""

    error_type = "DATABASE_ERROR"


class ProviderError(OptimizerError):
    """Raised when the language-model provider call fails."""

    error_type = "LLM_ERROR"


class ParseError(OptimizerError):
    """Raised when structured data cannot be decoded (model output, no tables)."""

    error_type = "PARSE_ERROR"
