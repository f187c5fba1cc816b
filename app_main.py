"""Application entry point for the ELC Assessment server."""

from __future__ import annotations

import asyncio
import socket

from assessment_app.constants.about import APP_NAME
from assessment_app.core.assessment_manager import AssessmentManager
from assessment_app.persistence.gateway import InMemoryGateway, PersistenceGateway
from assessment_app.persistence.sql_gateway import SqlGateway
from assessment_app.server.api_server import run_api_server
from assessment_app.settings import load_settings
from assessment_app.utils.logging_config import configure_logging


def _determine_public_url(port: int) -> str:
    """Best-effort determination of the local IP for the participant-facing URL."""
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
            sock.connect(("8.8.8.8", 80))
            ip_address = sock.getsockname()[0]
    except OSError:
        ip_address = "127.0.0.1"
    return f"http://{ip_address}:{port}/"


async def _prepare_sql_gateway(gateway: SqlGateway) -> None:
    await gateway.init_schema()
    # Pooled connections belong to this loop; uvicorn starts its own.
    await gateway.dispose()


def build_gateway(database_url: str | None) -> PersistenceGateway:
    if not database_url:
        return InMemoryGateway()
    gateway = SqlGateway(database_url)
    asyncio.run(_prepare_sql_gateway(gateway))
    return gateway


def main() -> None:
    """Initialize logging, choose the store and serve the API."""
    settings = load_settings()
    logger = configure_logging(settings.log_level)
    logger.info("Starting %s…", APP_NAME)

    gateway = build_gateway(settings.database_url)
    if isinstance(gateway, InMemoryGateway):
        logger.warning("DATABASE_URL is not set; records are kept in memory only")

    manager = AssessmentManager(gateway)
    logger.info("API available at %s", _determine_public_url(settings.port))
    run_api_server(manager, host=settings.host, port=settings.port, log_level=settings.log_level)


if __name__ == "__main__":
    main()
