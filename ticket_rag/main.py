"""
Ticket RAG - Application Bootstrap
==================================

Startup and shutdown of the processing pipeline.

STARTUP:
1. Setup structured logging
2. Validate configuration and build the service container
3. Initialize the vector store
4. Report provider health

SHUTDOWN:
1. Close provider clients
"""

import asyncio
import json
import sys
from typing import Optional

from pydantic import ValidationError

from ticket_rag.config import Settings, get_settings
from ticket_rag.core import ApplicationException, ConfigurationException
from ticket_rag.infrastructure.container import ServiceContainer
from ticket_rag.infrastructure.factory import ServiceFactory
from ticket_rag.shared.infrastructure.logging import get_logger, setup_logging

logger = get_logger(__name__)


async def startup(settings: Optional[Settings] = None) -> ServiceContainer:
    """
    Build a ready-to-use container.

    Raises:
        ConfigurationException: If the configuration is unusable
        VectorStoreException: If the vector store cannot be initialized
    """
    settings = settings or get_settings()

    setup_logging(
        level=settings.logging.level,
        environment=settings.environment,
        json_format=settings.logging.json_format,
    )
    logger.info("Starting ticket pipeline", extra={
        "version": settings.app_version,
        "environment": settings.environment,
    })

    container = ServiceFactory.create_service_container(settings)
    try:
        await container.vector_db.initialize()
        health = await container.health_check()
    except Exception:
        await container.close()
        raise

    logger.info("Provider health", extra=health.to_dict())
    return container


async def shutdown(container: ServiceContainer) -> None:
    logger.info("Shutting down ticket pipeline")
    await container.close()


async def check_health(settings: Optional[Settings] = None) -> bool:
    """Start the pipeline, report health and shut it down again."""
    container = await startup(settings)
    try:
        health = await container.health_check()
        print(json.dumps(health.to_dict(), indent=2))
        return health.overall
    finally:
        await shutdown(container)


def run() -> None:
    """Console entry point: exit status 0 when every provider is healthy."""
    try:
        healthy = asyncio.run(check_health())
    except ApplicationException as e:
        logger.error("Startup failed", extra={"error_kind": e.kind, "error": e.message})
        sys.exit(2)
    except ValidationError as e:
        logger.error("Invalid settings", extra={
            "error_kind": ConfigurationException.kind,
            "error": str(e),
        })
        sys.exit(2)
    sys.exit(0 if healthy else 1)


if __name__ == "__main__":
    run()
