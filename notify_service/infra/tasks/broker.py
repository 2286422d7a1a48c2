"""Taskiq broker configuration for the periodic notification sweeps.

APScheduler decides WHEN a sweep runs; taskiq decides HOW and WHERE:

- RabbitMQ enabled (``RABBIT_ENABLED=true``): ``AioPikaBroker`` publishes
  each sweep to a queue consumed by a separate worker process::

      taskiq worker notify_service.infra.tasks.broker:broker

- RabbitMQ disabled: taskiq's ``InMemoryBroker`` executes the sweep inside
  the API process, so a single deployment still runs every job.

Task modules are imported at the bottom of this file so that the worker,
which only imports ``broker``, registers every task.
"""

from __future__ import annotations

import logging

from taskiq import AsyncBroker, InMemoryBroker
from taskiq_aio_pika import AioPikaBroker

from notify_service.core.settings import get_rabbit_settings
from notify_service.infra.logging.config import setup_logging

logger = logging.getLogger(__name__)

rabbit_settings = get_rabbit_settings()
setup_logging()


def create_broker() -> AsyncBroker:
    """Build the broker selected by the RabbitMQ settings."""
    if rabbit_settings.is_configured:
        queue_name = rabbit_settings.get_prefixed_queue("sweeps")
        logger.info("Taskiq RabbitMQ broker configured", extra={"queue": queue_name})
        return AioPikaBroker(
            url=rabbit_settings.get_url(),
            queue_name=queue_name,
            declare_exchange=True,
            declare_queues=True,
        )

    logger.info("RabbitMQ not configured - sweeps run on the in-memory broker")
    return InMemoryBroker()


broker: AsyncBroker = create_broker()


async def start_taskiq() -> None:
    """Start the broker for enqueuing from the API process.

    Raises:
        ConnectionError: If unable to connect to RabbitMQ.
    """
    logger.info("Starting Taskiq broker")
    try:
        await broker.startup()
    except Exception as e:
        logger.exception("Failed to start Taskiq broker", extra={"error": str(e)})
        raise
    logger.info("Taskiq broker started successfully")


async def stop_taskiq() -> None:
    """Stop the broker, closing its RabbitMQ connection if any."""
    logger.info("Stopping Taskiq broker")
    try:
        await broker.shutdown()
        logger.info("Taskiq broker stopped successfully")
    except Exception as e:
        logger.exception("Error stopping Taskiq broker", extra={"error": str(e)})


# Register task modules with the broker.
import notify_service.workers.notifications.tasks  # noqa: E402,F401
