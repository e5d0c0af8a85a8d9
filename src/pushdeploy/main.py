"""Main entry point for the pushdeploy agent."""

import argparse
import sys
from contextlib import asynccontextmanager
from typing import List, Optional

import structlog
import uvicorn
from fastapi import FastAPI
from prometheus_client import make_asgi_app
from pydantic import ValidationError

from pushdeploy import __version__
from pushdeploy.api.deploy import create_deploy_router
from pushdeploy.api.health import router as health_router
from pushdeploy.api.middleware import (
    setup_error_handling,
    setup_logging_middleware,
    setup_metrics_middleware,
)
from pushdeploy.core.config import Settings
from pushdeploy.core.exceptions import ConfigurationError
from pushdeploy.deploy.service import DeploymentService
from pushdeploy.utils.logging import setup_logging

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    settings: Settings = app.state.settings
    service: DeploymentService = app.state.deployment_service

    logger.info("Starting pushdeploy agent", version=__version__, port=settings.port)
    try:
        service.ensure_upload_dir()
    except OSError as exc:
        logger.error("Failed to create upload directory", upload_dir=settings.upload_dir, error=str(exc))
        raise
    logger.info("Upload directory ready", upload_dir=str(service.upload_dir.resolve()))

    yield

    logger.info("Shutting down pushdeploy agent", in_flight=service.in_flight)
    if not await service.drain(timeout=settings.shutdown_timeout_seconds):
        logger.warning("Deployments still running at shutdown", in_flight=service.in_flight)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """Create FastAPI application."""
    if settings is None:
        settings = Settings()
    if settings.api_key is None:
        raise ConfigurationError("API key is required")

    setup_logging(settings.log_level, settings.log_format)

    app = FastAPI(
        title="pushdeploy agent",
        version=__version__,
        description="Receives deployment archives and runs their deploy script",
        lifespan=lifespan,
    )

    service = DeploymentService(settings)
    app.state.settings = settings
    app.state.deployment_service = service

    setup_error_handling(app)
    setup_logging_middleware(app)
    setup_metrics_middleware(app)

    app.include_router(create_deploy_router(service, settings), tags=["deploy"])
    app.include_router(health_router, tags=["health"])

    if settings.metrics_enabled:
        app.mount("/metrics", make_asgi_app())

    return app


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="pushdeploy-agent", description="pushdeploy receiving agent")
    parser.add_argument("--api-key", dest="api_key", help="API key for authentication (or PUSHDEPLOY_API_KEY)")
    parser.add_argument("--host", help="Bind address")
    parser.add_argument("--port", type=int, help="Listen port (default 9999)")
    parser.add_argument("--upload-dir", dest="upload_dir", help="Directory for deployment workspaces")
    return parser


def load_settings(argv: Optional[List[str]] = None) -> Settings:
    """Build settings from the environment, with command-line flags taking precedence."""
    args = build_parser().parse_args(argv)
    overrides = {k: v for k, v in vars(args).items() if v is not None}
    settings = Settings(**overrides)
    if settings.api_key is None:
        raise ConfigurationError("API key is required. Use --api-key flag")
    return settings


def run(argv: Optional[List[str]] = None):
    """Run the agent."""
    try:
        settings = load_settings(argv)
    except (ConfigurationError, ValidationError) as exc:
        setup_logging()
        logger.error("Invalid configuration", error=str(exc))
        sys.exit(1)

    config = uvicorn.Config(
        create_app(settings),
        host=settings.host,
        port=settings.port,
        log_config=None,  # We handle logging ourselves
        access_log=False,  # Handled by middleware
    )

    server = uvicorn.Server(config)
    server.run()


if __name__ == "__main__":
    run()
