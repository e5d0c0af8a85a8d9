"""API module for the pushdeploy agent."""

from .deploy import create_deploy_router
from .health import router as health_router

__all__ = [
    "create_deploy_router",
    "health_router",
]
