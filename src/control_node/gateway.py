"""Remote agent gateway for control node operations.

Provides:
- RemoteOutcome: success | unavailable | failed
- RemoteResult: Tagged result of one remote round trip
- RemoteAgentGateway: Classifies channel outcomes into RemoteResult

The gateway never raises for the three outcomes; callers must branch on
RemoteResult.outcome. "Unavailable" means the answer is unknown, not that the
operation failed.
"""

import asyncio
import enum
import logging
from typing import Any, Awaitable, Optional

import aio_pika
from pydantic import BaseModel, Field

from src.common.exceptions import (
    AgentTimeoutError,
    AgentUnavailableError,
    InvalidMessageFormatError,
    RemoteExecutionError,
)
from src.control_node.channel import RemoteExecutionChannel

logger = logging.getLogger(__name__)


class RemoteOutcome(str, enum.Enum):
    SUCCESS = "success"
    UNAVAILABLE = "unavailable"
    FAILED = "failed"


class RemoteResult(BaseModel):
    """Result of a remote operation.

    Attributes:
        outcome: Which of the three outcomes occurred
        payload: Raw result when outcome is success
        message: Diagnostic text when outcome is failed or unavailable
    """

    outcome: RemoteOutcome
    payload: Any = None
    message: Optional[str] = Field(default=None)

    @classmethod
    def success(cls, payload: Any) -> "RemoteResult":
        return cls(outcome=RemoteOutcome.SUCCESS, payload=payload)

    @classmethod
    def unavailable(cls, message: Optional[str] = None) -> "RemoteResult":
        return cls(outcome=RemoteOutcome.UNAVAILABLE, message=message)

    @classmethod
    def failure(cls, message: str) -> "RemoteResult":
        return cls(outcome=RemoteOutcome.FAILED, message=message)

    @property
    def is_success(self) -> bool:
        return self.outcome == RemoteOutcome.SUCCESS

    @property
    def is_unavailable(self) -> bool:
        return self.outcome == RemoteOutcome.UNAVAILABLE

    @property
    def is_failure(self) -> bool:
        return self.outcome == RemoteOutcome.FAILED


class RemoteAgentGateway:
    """Capability-style operations against a control node."""

    def __init__(self, channel: RemoteExecutionChannel):
        self.channel = channel

    async def read_file(self, host_id: int, path: str) -> RemoteResult:
        """Read a file on the control node; payload is bytes."""
        return await self._classify(host_id, "read_file", self.channel.read_file(host_id, path))

    async def list_tree(self, host_id: int, path: str) -> RemoteResult:
        """Describe the directory tree under path; payload is the root node mapping."""
        return await self._classify(host_id, "list_tree", self.channel.list_tree(host_id, path))

    async def run_module(
        self, host_id: int, module_name: str, args: Optional[dict[str, Any]] = None
    ) -> RemoteResult:
        """Run a module on the control node; payload is the module return value."""
        return await self._classify(
            host_id,
            f"run_module:{module_name}",
            self.channel.run_module(host_id, module_name, args or {}),
        )

    async def _classify(self, host_id: int, operation: str, call: Awaitable[Any]) -> RemoteResult:
        try:
            payload = await call
        except (AgentTimeoutError, AgentUnavailableError) as e:
            logger.warning(f"Control node {host_id} not responding to {operation}: {e}")
            return RemoteResult.unavailable(e.message)
        except asyncio.TimeoutError as e:
            logger.warning(f"Control node {host_id} timed out on {operation}")
            return RemoteResult.unavailable(str(e) or "timeout")
        except aio_pika.exceptions.AMQPError as e:
            logger.warning(f"Transport error calling {operation} on host {host_id}: {e}")
            return RemoteResult.unavailable(str(e))
        except (RemoteExecutionError, InvalidMessageFormatError) as e:
            logger.info(f"Remote {operation} failed on host {host_id}: {e.message}")
            return RemoteResult.failure(e.message)

        logger.debug(f"Remote {operation} succeeded on host {host_id}")
        return RemoteResult.success(payload)
