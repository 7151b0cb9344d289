"""Exceptions raised by the blobs client and store façade.

Validation, configuration and size errors are raised locally before any
network call is made. Transport and status errors surface only after the
retry transport has given up.
"""
from __future__ import annotations
from typing import Iterable, Optional


class BlobsError(RuntimeError):
    """Base class for all blob store errors."""
    pass


class ConfigurationError(BlobsError):
    """Required client configuration (site ID, token, deploy ID) is missing."""

    def __init__(self, required: Iterable[str]):
        self.required = list(required)
        super().__init__(
            "The environment has not been configured to use the blob store. "
            "To use it manually, supply the following properties when creating "
            f"a store: {', '.join(self.required)}"
        )


class ValidationError(BlobsError, ValueError):
    """A key, store name, deploy ID or option value is malformed."""
    pass


class MetadataSizeError(BlobsError):
    """Encoded metadata does not fit in the metadata header."""

    def __init__(self, size: int, limit: int):
        self.size = size
        self.limit = limit
        super().__init__(
            f"Metadata object exceeds the maximum size ({size} > {limit} bytes)"
        )


class MetadataDecodeError(BlobsError):
    """A tagged metadata header could not be decoded."""

    def __init__(self) -> None:
        super().__init__(
            "An internal error occurred while trying to retrieve the metadata "
            "for an entry. Please try updating to the latest version of the "
            "blobs client."
        )


class TransportError(BlobsError):
    """The network call kept failing after every retry attempt."""

    def __init__(self, operation: str, cause: Exception):
        self.operation = operation
        self.cause = cause
        super().__init__(f"{operation} operation has failed: {cause}")


class UpstreamStatusError(BlobsError):
    """The API or the storage endpoint answered with an unexpected status."""

    def __init__(self, status: int, operation: str = "request", detail: Optional[str] = None):
        self.status = status
        self.operation = operation
        message = f"{operation} operation has failed: API returned a {status} response"
        if detail:
            message += f" ({detail})"
        super().__init__(message)


class ConsistencyConfigurationError(BlobsError):
    """A strong read was requested without an uncached edge URL."""

    def __init__(self) -> None:
        super().__init__(
            "The blob store has failed to perform a read using strong consistency "
            "because the environment has not been configured with an "
            "'uncached_edge_url' property"
        )
