"""HTTP server for greenroom."""

from greenroom.server.app import create_app
from greenroom.server.lifecycle import ServerLifecycle

__all__ = ["ServerLifecycle", "create_app"]
