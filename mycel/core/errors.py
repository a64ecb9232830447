"""Exception hierarchy for Mycel."""


class MycelError(Exception):
    """Base error carrying a stable machine-readable code."""

    code = "MYCEL_ERROR"

    def __init__(self, message: str, cause: Exception | None = None):
        super().__init__(message)
        self.message = message
        self.cause = cause


class AgentError(MycelError):
    """Raised when a pipeline stage cannot produce valid output."""

    code = "AGENT_ERROR"


class LlmError(MycelError):
    """Raised when the language model backend fails.

    `retryable` is True when the failure was transient (rate limit, 5xx, network)
    and the client already exhausted its own retries.
    """

    code = "LLM_ERROR"

    def __init__(self, message: str, retryable: bool = False, cause: Exception | None = None):
        super().__init__(message, cause)
        self.retryable = retryable


class WebSearchError(MycelError):
    """Raised when the web search backend fails."""

    code = "WEB_SEARCH_ERROR"

    def __init__(self, message: str, retryable: bool = False, cause: Exception | None = None):
        super().__init__(message, cause)
        self.retryable = retryable


class ConfigurationError(MycelError):
    """Raised when domain or persona configuration is missing or invalid."""

    code = "CONFIGURATION_ERROR"


class PersistenceError(MycelError):
    """Raised by repositories on failed writes."""

    code = "PERSISTENCE_ERROR"


class NotFoundError(MycelError):
    """Raised when a referenced record does not exist."""

    code = "NOT_FOUND"


class SessionError(MycelError):
    """Raised on invalid session operations."""

    code = "SESSION_ERROR"


class SessionNotFoundError(SessionError, NotFoundError):
    code = "SESSION_NOT_FOUND"


class SchemaEvolutionError(MycelError):
    """Raised when a schema evolution proposal cannot be reviewed or applied."""

    code = "SCHEMA_EVOLUTION_ERROR"


class SchemaNotFoundError(SchemaEvolutionError, NotFoundError):
    code = "SCHEMA_NOT_FOUND"


class ProposalNotFoundError(SchemaEvolutionError, NotFoundError):
    code = "PROPOSAL_NOT_FOUND"


class SchemaGenerationError(MycelError):
    """Raised when a domain schema cannot be generated or its proposal reviewed."""

    code = "SCHEMA_GENERATION_ERROR"


class SchemaProposalNotFoundError(SchemaGenerationError, NotFoundError):
    code = "SCHEMA_PROPOSAL_NOT_FOUND"
