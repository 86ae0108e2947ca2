"""RabbitMQ queue topology and connection management.

This module provides:
- Request queue naming for the control node remote execution channel
- Reply queue declaration
- Connection string management

Queue Architecture:
- <prefix>.<host_id>: Request queue declared and consumed by the agent on one control node
- reply queue: Exclusive, auto-delete queue per integration process for RPC replies

Requests are published as mandatory messages with a TTL. When no agent has
declared the host's queue the broker returns the message, so the caller learns
at once that the control node is unavailable.
"""

import logging
from typing import Optional

import aio_pika

from src.common.config import Config

logger = logging.getLogger(__name__)


def control_node_queue_name(host_id: int, prefix: str | None = None) -> str:
    """Return the request queue name for a control node.

    Example:
        >>> control_node_queue_name(42, "control_node")
        'control_node.42'
    """
    if prefix is None:
        prefix = Config().control_node_queue_prefix
    return f"{prefix}.{host_id}"


async def declare_reply_queue(channel: aio_pika.abc.AbstractChannel) -> aio_pika.abc.AbstractQueue:
    """Declare the exclusive reply queue used for RPC responses.

    Args:
        channel: An aio_pika channel with an established AMQP connection.

    Returns:
        Server-named exclusive queue, deleted when the connection closes.

    Raises:
        aio_pika.exceptions.AMQPException: If queue declaration fails on broker.
    """
    try:
        logger.info("Declaring reply queue")
        queue = await channel.declare_queue("", exclusive=True, auto_delete=True)
        logger.info(f"Reply queue {queue.name} declared successfully")
        return queue
    except aio_pika.exceptions.AMQPException as e:
        logger.error(f"Failed to declare reply queue: {e}", exc_info=True)
        raise


def get_connection_string(config: Optional[Config] = None) -> str:
    """Get the RabbitMQ connection string from configuration.

    Returns:
        AMQP connection string suitable for aio_pika.connect_robust()
    """
    config = config or Config()
    return config.RABBITMQ_URL
