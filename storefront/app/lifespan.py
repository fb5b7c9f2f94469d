"""
Application lifespan handler.
Builds the storefront services on startup and releases them on shutdown.
"""

from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable

import httpx
from fastapi import FastAPI

from shared.config.logging import setup_logging, storefront_logger as logger
from shared.config.settings import Settings
from shared.utils.exceptions import ConfigError
from storefront.app.services import StorefrontServices
from storefront.backend.storage import LocalStorage


def build_lifespan(
    settings: Settings,
    transport: httpx.AsyncBaseTransport | None = None,
    storage: LocalStorage | None = None,
) -> Callable[[FastAPI], AsyncIterator[None]]:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        Application lifespan handler.

        A configuration problem does not abort startup: the app keeps
        running and answers every request with 503 and the problem list.
        """
        setup_logging(settings)
        app.state.services = None
        app.state.config_error = None

        try:
            services = StorefrontServices.create(settings, transport=transport, storage=storage)
        except ConfigError as e:
            app.state.config_error = e
            services = None

        if services is None:
            logger.error("Storefront is not configured", problems=app.state.config_error.problems)
            yield
            return

        logger.info("Starting storefront", port=settings.app_port, env=settings.environment)
        await services.start()
        app.state.services = services

        yield

        logger.info("Shutting down storefront")
        app.state.services = None
        await services.close()

    return lifespan
