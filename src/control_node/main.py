"""FastAPI application for the Ansible control node integration.

Wires the shared remote execution channel into the API and configures logging.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from src.common.config import Config
from src.control_node.api import get_channel, get_config, router
from src.control_node.channel import AmqpExecutionChannel

# Load configuration
config = Config()

# Configure logging
logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for application startup and shutdown.

    The channel connects lazily on the first remote call, so the API starts
    even while the message broker is down; calls then report the control node
    as not responding.
    """
    logger.info(f"Starting {config.APP_NAME}")
    logger.info(f"RabbitMQ: {config.RABBITMQ_URL}")
    logger.info(f"Task scheduler: {config.SCHEDULER_URL}")

    channel = AmqpExecutionChannel(config)
    app.state.channel = channel
    app.dependency_overrides[get_channel] = lambda: channel
    app.dependency_overrides[get_config] = lambda: config

    yield

    logger.info(f"Shutting down {config.APP_NAME}")
    await channel.disconnect()
    logger.info("Cleanup complete")


app = FastAPI(
    title=config.APP_NAME,
    description="Ansible control node paths, introspection and playbook scheduling",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(router)


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "service": config.APP_NAME,
        "version": "0.1.0",
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
