"""
Custom exception types for the control node integration.

Transport errors (5001-5099) are raised by the remote execution channel.
Integration errors (6001-6099) are raised by the core and classified by the
integration service.
"""


class AgentProtocolError(Exception):
    """Base exception for remote execution channel errors."""

    def __init__(self, error_code: int, message: str, context: dict | None = None):
        """
        Initialize agent protocol error.

        Args:
            error_code: Error code in range 5001-5099
            message: Human-readable error message
            context: Additional context dict with details
        """
        self.error_code = error_code
        self.message = message
        self.context = context or {}
        super().__init__(self.message)

    def __str__(self) -> str:
        """Return formatted error string for logging."""
        context_str = f" | Context: {self.context}" if self.context else ""
        return f"[{self.error_code}] {self.message}{context_str}"


class AgentTimeoutError(AgentProtocolError):
    """5001: Response not received within deadline."""

    def __init__(self, message: str = "Message timeout", context: dict | None = None):
        super().__init__(5001, message, context)


class AgentUnavailableError(AgentProtocolError):
    """5002: No connection to agent."""

    def __init__(self, message: str = "Agent unavailable", context: dict | None = None):
        super().__init__(5002, message, context)


class InvalidMessageFormatError(AgentProtocolError):
    """5003: Malformed JSON or missing required fields."""

    def __init__(self, message: str = "Invalid message format", context: dict | None = None):
        super().__init__(5003, message, context)


class RemoteExecutionError(AgentProtocolError):
    """5007: Agent answered, but the remote operation failed."""

    def __init__(self, message: str = "Remote execution failed", context: dict | None = None):
        super().__init__(5007, message, context)


class AnsibleIntegrationError(Exception):
    """Base exception for control node integration errors."""

    def __init__(self, error_code: int, message: str, context: dict | None = None):
        self.error_code = error_code
        self.message = message
        self.context = context or {}
        super().__init__(self.message)

    def __str__(self) -> str:
        context_str = f" | Context: {self.context}" if self.context else ""
        return f"[{self.error_code}] {self.message}{context_str}"


class ValidationFailureError(AnsibleIntegrationError):
    """6001: Input violates an invariant (bad or duplicate path)."""

    def __init__(
        self,
        message: str = "Validation failed",
        field_errors: dict[str, list[str]] | None = None,
        context: dict | None = None,
    ):
        """
        Args:
            message: Summary message
            field_errors: Mapping of field name to the messages for that field
            context: Additional context dict with details
        """
        self.field_errors = field_errors or {}
        super().__init__(6001, message, context)

    @classmethod
    def for_field(cls, field: str, message: str) -> "ValidationFailureError":
        """Build an error carrying a single field message."""
        return cls(message, field_errors={field: [message]})


class NotFoundError(AnsibleIntegrationError):
    """6002: Entity does not exist or is not visible to the actor."""

    def __init__(self, message: str = "Not found", context: dict | None = None):
        super().__init__(6002, message, context)


class PathKindMismatchError(NotFoundError):
    """6003: Path record exists but has the wrong kind for the operation."""

    def __init__(self, message: str = "Path kind mismatch", context: dict | None = None):
        super().__init__(message, context)
        self.error_code = 6003


class ExecutionFailureError(AnsibleIntegrationError):
    """6004: Remote operation ran but reported a problem."""

    def __init__(self, message: str = "Remote execution failed", context: dict | None = None):
        super().__init__(6004, message, context)


class SchedulerUnavailableError(AnsibleIntegrationError):
    """6005: External task scheduler cannot accept work."""

    def __init__(self, message: str = "Task scheduler unavailable", context: dict | None = None):
        super().__init__(6005, message, context)
