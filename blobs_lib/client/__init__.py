"""HTTP side of the blob store: request building, retries and pagination."""
from .client import Client
from .config import ClientConfig
from .retry import RetryTransport

__all__ = ["Client", "ClientConfig", "RetryTransport"]
