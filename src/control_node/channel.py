"""Remote execution channel to control node agents.

Provides:
- RemoteExecutionChannel: Transport contract used by the gateway
- AmqpExecutionChannel: RPC over RabbitMQ with MessageEnvelope messages

Channel methods either return the raw result or raise one of:
- AgentTimeoutError: no reply within the timeout
- AgentUnavailableError: transport down or no consumer for the host
- RemoteExecutionError: agent replied that the operation failed
- InvalidMessageFormatError: agent replied with a malformed message
"""

import asyncio
import base64
import binascii
import logging
from abc import ABC, abstractmethod
from typing import Any, Optional

import aio_pika
from pydantic import ValidationError

from src.common.config import Config
from src.common.exceptions import (
    AgentTimeoutError,
    AgentUnavailableError,
    InvalidMessageFormatError,
    RemoteExecutionError,
)
from src.common.protocol import ErrorMessage, MessageEnvelope, WorkRequest, WorkResult
from src.common.rabbitmq import control_node_queue_name, declare_reply_queue, get_connection_string

logger = logging.getLogger(__name__)


class RemoteExecutionChannel(ABC):
    """Transport contract for remote operations on a managed host."""

    @abstractmethod
    async def read_file(self, host_id: int, path: str) -> bytes:
        """Read a file on the host."""

    @abstractmethod
    async def list_tree(self, host_id: int, path: str) -> dict[str, Any]:
        """Describe the directory tree rooted at path on the host.

        Each node is a mapping with name, type (directory|file|symlink),
        realpath and, for directories, children.
        """

    @abstractmethod
    async def run_module(self, host_id: int, module_name: str, args: dict[str, Any]) -> Any:
        """Run a named module on the host and return its result."""


class AmqpExecutionChannel(RemoteExecutionChannel):
    """RPC over RabbitMQ.

    Requests are published to the host's request queue with reply_to and
    correlation_id set; replies arrive on an exclusive queue and resolve the
    pending future for their correlation id.
    """

    def __init__(self, config: Optional[Config] = None):
        """Initialize the channel.

        Args:
            config: Configuration with RABBITMQ_URL and timeout settings
        """
        self.config = config or Config()
        self.timeout_seconds = self.config.remote_call_timeout_seconds

        self.connection: Optional[Any] = None
        self.channel: Optional[Any] = None
        self.reply_queue: Optional[Any] = None
        self._pending: dict[str, asyncio.Future] = {}
        self._connect_lock = asyncio.Lock()

    async def connect(self) -> None:
        """Connect to RabbitMQ and start consuming replies.

        Raises:
            AgentUnavailableError: If the broker cannot be reached
        """
        async with self._connect_lock:
            if self.channel is not None and not self.channel.is_closed:
                return
            try:
                connection_string = get_connection_string(self.config)
                logger.info(f"Connecting to RabbitMQ at {connection_string}")

                self.connection = await aio_pika.connect_robust(connection_string)
                self.channel = await self.connection.channel(
                    publisher_confirms=True, on_return_raises=True
                )
                self.reply_queue = await declare_reply_queue(self.channel)
                await self.reply_queue.consume(self._on_reply, no_ack=True)

                logger.info("Connected to RabbitMQ, reply consumer started")
            except (aio_pika.exceptions.AMQPError, OSError) as e:
                logger.error(f"AMQP connection error: {e}", exc_info=True)
                raise AgentUnavailableError(f"Message broker unreachable: {e}") from e

    async def disconnect(self) -> None:
        """Close RabbitMQ connection gracefully."""
        for future in self._pending.values():
            if not future.done():
                future.cancel()
        self._pending.clear()
        try:
            if self.channel and not self.channel.is_closed:
                await self.channel.close()
            if self.connection and not self.connection.is_closed:
                await self.connection.close()
            logger.info("Disconnected from RabbitMQ")
        except aio_pika.exceptions.AMQPError as e:
            logger.error(f"Error during disconnect: {e}", exc_info=True)

    async def read_file(self, host_id: int, path: str) -> bytes:
        payload = await self._call(host_id, "read_file", {"path": path})
        try:
            return base64.b64decode(payload["content"], validate=True)
        except (KeyError, TypeError, binascii.Error) as e:
            raise InvalidMessageFormatError(
                f"read_file reply carries no valid content: {e}", context={"host_id": host_id}
            ) from e

    async def list_tree(self, host_id: int, path: str) -> dict[str, Any]:
        payload = await self._call(host_id, "list_tree", {"path": path})
        if not isinstance(payload, dict):
            raise InvalidMessageFormatError(
                "list_tree reply is not a tree node", context={"host_id": host_id}
            )
        return payload

    async def run_module(self, host_id: int, module_name: str, args: dict[str, Any]) -> Any:
        return await self._call(host_id, "run_module", {"module": module_name, "args": args})

    async def _call(self, host_id: int, work_type: str, parameters: dict[str, Any]) -> Any:
        """Publish a request and wait for the correlated reply."""
        await self.connect()

        request = WorkRequest(work_type=work_type, parameters=parameters)
        envelope = MessageEnvelope(
            from_agent="integration",
            to_agent="control_node",
            type="work_request",
            payload=request.model_dump(mode="json"),
        )
        correlation_id = str(envelope.request_id)
        routing_key = control_node_queue_name(host_id, self.config.control_node_queue_prefix)

        future = asyncio.get_running_loop().create_future()
        self._pending[correlation_id] = future

        message = aio_pika.Message(
            body=envelope.to_json().encode(),
            content_type="application/json",
            correlation_id=correlation_id,
            reply_to=self.reply_queue.name,
            expiration=self.timeout_seconds,
        )

        logger.debug(
            f"Calling {work_type} on host {host_id}",
            extra={"trace_id": str(envelope.trace_id), "routing_key": routing_key},
        )

        try:
            await self.channel.default_exchange.publish(
                message, routing_key=routing_key, mandatory=True
            )
            body = await asyncio.wait_for(future, timeout=self.timeout_seconds)
        except asyncio.TimeoutError as e:
            raise AgentTimeoutError(
                f"No reply from host {host_id} within {self.timeout_seconds}s",
                context={"host_id": host_id, "work_type": work_type},
            ) from e
        except aio_pika.exceptions.AMQPError as e:
            # Includes messages returned as unroutable: no agent queue for the host
            raise AgentUnavailableError(
                f"Cannot deliver request to host {host_id}: {e}",
                context={"host_id": host_id, "work_type": work_type},
            ) from e
        finally:
            self._pending.pop(correlation_id, None)

        return self._parse_reply(body, host_id)

    async def _on_reply(self, message: Any) -> None:
        future = self._pending.get(message.correlation_id)
        if future is None or future.done():
            logger.debug(f"Dropping late or unknown reply {message.correlation_id}")
            return
        future.set_result(message.body)

    @staticmethod
    def _parse_reply(body: bytes, host_id: int) -> Any:
        """Turn a reply envelope into a payload or a remote error."""
        try:
            envelope = MessageEnvelope.from_json(body)
            if envelope.type == "error":
                error = ErrorMessage.model_validate(envelope.payload)
                raise RemoteExecutionError(error.error_message, context=error.context)
            result = WorkResult.model_validate(envelope.payload)
        except ValidationError as e:
            logger.warning(f"Malformed reply from host {host_id}: {e}")
            raise InvalidMessageFormatError(
                f"Malformed reply from host {host_id}", context={"host_id": host_id}
            ) from e

        if result.status == "failed":
            raise RemoteExecutionError(result.error_message, context={"host_id": host_id})
        return result.payload
