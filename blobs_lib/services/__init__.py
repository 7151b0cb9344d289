"""Request-time service lookup for the local blob server."""
from .container import ServiceContainer
from .resolver import resolve_service

__all__ = ["ServiceContainer", "resolve_service"]
