"""Web application package for chunkwise."""

from typing import Any, Dict, Optional

from flask import Flask

from chunkwise.config import load_config


def create_app(config: Optional[Dict[str, Any]] = None) -> Flask:
    """Application factory for the web interface."""
    if config is None:
        config = load_config()

    from .app import build_app  # Import here to avoid circular imports

    return build_app(config)


__all__ = ["create_app"]
