"""
Protocol models for remote execution against control nodes.
Defines JSON envelope format and message types for integration <-> control node
agent communication.
"""

from datetime import datetime
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class MessageEnvelope(BaseModel):
    """Base message envelope for all remote execution messages."""

    model_config = ConfigDict(
        validate_by_name=True,
        use_enum_values=True,
        arbitrary_types_allowed=False,
    )

    protocol_version: str = Field(default="1.0", description="Protocol version")
    message_id: UUID = Field(default_factory=uuid4, description="Unique message identifier")
    from_agent: str = Field(
        description="Sender agent type",
        pattern="^(integration|control_node)$",
    )
    to_agent: str = Field(
        description="Recipient agent type",
        pattern="^(integration|control_node)$",
    )
    timestamp: datetime = Field(default_factory=datetime.utcnow, description="ISO 8601 timestamp")
    trace_id: UUID = Field(default_factory=uuid4, description="Trace ID for debugging")
    request_id: UUID = Field(default_factory=uuid4, description="Request ID for correlation")
    type: str = Field(
        description="Message type",
        pattern="^(work_request|work_result|error)$",
    )
    payload: dict[str, Any] = Field(description="Message payload (type-specific)")

    @field_validator("timestamp", mode="before")
    @classmethod
    def validate_timestamp(cls, v: Any) -> datetime:
        """Ensure timestamp is ISO 8601 format."""
        if isinstance(v, datetime):
            return v
        if isinstance(v, str):
            return datetime.fromisoformat(v.replace("Z", "+00:00"))
        raise ValueError("Timestamp must be datetime or ISO 8601 string")

    def to_json(self) -> str:
        """Serialize to JSON string with ISO 8601 timestamps."""
        return self.model_dump_json(
            by_alias=False,
            exclude_none=False,
            indent=None,
        )

    @classmethod
    def from_json(cls, json_str: str | bytes) -> "MessageEnvelope":
        """Deserialize from JSON string with validation."""
        return cls.model_validate_json(json_str)


class WorkRequest(BaseModel):
    """Remote operation requested from a control node agent."""

    model_config = ConfigDict(
        validate_by_name=True,
        use_enum_values=True,
    )

    task_id: UUID = Field(default_factory=uuid4, description="Unique call identifier")
    work_type: str = Field(
        description="Remote operation",
        pattern="^(read_file|list_tree|run_module)$",
    )
    parameters: dict[str, Any] = Field(
        default_factory=dict, description="Operation-specific parameters"
    )


class WorkResult(BaseModel):
    """Outcome of a remote operation, as reported by the control node agent."""

    model_config = ConfigDict(
        validate_by_name=True,
        use_enum_values=True,
        arbitrary_types_allowed=False,
    )

    task_id: UUID = Field(description="Call being reported on")
    status: str = Field(
        description="Completion status",
        pattern="^(completed|failed)$",
    )
    payload: Any = Field(default=None, description="Operation result")
    error_message: Optional[str] = Field(default=None, description="Error if status=failed")

    @model_validator(mode="after")
    def validate_status_and_error(self) -> "WorkResult":
        """Ensure failed status has error_message."""
        if self.status == "failed" and not self.error_message:
            raise ValueError("error_message is required when status='failed'")
        return self


class ErrorMessage(BaseModel):
    """Error notification message."""

    model_config = ConfigDict(
        validate_by_name=True,
        use_enum_values=True,
        arbitrary_types_allowed=False,
    )

    error_code: int = Field(ge=1000, le=9999, description="Numeric error code")
    error_message: str = Field(description="Human-readable error description")
    context: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional debugging context (original_message_id, host_id, etc)",
    )
