"""FastAPI application entrypoint and configuration.

This module provides the main FastAPI application factory that sets up
logging, CORS middleware, the export router, the not-found handler for
missing projects, and a health check endpoint for monitoring.

Example:
    The application can be run with uvicorn:
        $ uvicorn fieldexport.main:app --reload

    Or imported and used programmatically:
        >>> from fieldexport.main import app
        >>> # Use app in ASGI server
"""

import fastapi
from fastapi import responses
from fastapi.middleware import cors

from fieldexport.api import exports
from fieldexport.core import config, errors, log_config


async def _project_not_found(
    _request: fastapi.Request,
    _exc: Exception,
) -> responses.PlainTextResponse:
    return responses.PlainTextResponse("Project not found", status_code=404)


def create_app() -> fastapi.FastAPI:
    """Create and configure the FastAPI application.

    Configures logging from settings, includes the export router, maps
    ProjectNotFoundError to a plain-text 404, adds CORS middleware and a
    health check endpoint.

    Returns:
        Configured FastAPI application instance ready for ASGI server.
    """
    settings = config.get_settings()
    log_config.configure_logging(settings.log_level)

    app = fastapi.FastAPI(title="Field Data Export", version="0.1.0")

    app.include_router(exports.router)
    app.add_exception_handler(errors.ProjectNotFoundError, _project_not_found)

    app.add_middleware(
        cors.CORSMiddleware,  # type: ignore[arg-type]
        allow_origins=settings.allow_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health")
    async def health() -> dict[str, str]:  # type: ignore[misc]
        """Health check endpoint for monitoring and load balancers.

        Returns:
            Dictionary with status "ok" if the service is running.
        """
        return {"status": "ok"}

    return app


app = create_app()
