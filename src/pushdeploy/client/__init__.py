"""Sending side: credential store, archive upload and the pushdeploy CLI."""

from .config import ClientConfig, load_config, save_config
from .transport import send_deployment

__all__ = ["ClientConfig", "load_config", "save_config", "send_deployment"]
