"""Namespaced blob store client and a filesystem-backed local server."""
from blobs_lib.client import Client, ClientConfig, RetryTransport
from blobs_lib.environment import EnvironmentContext, connect_lambda, get_environment_context
from blobs_lib.errors import (
    BlobsError,
    ConfigurationError,
    ConsistencyConfigurationError,
    MetadataDecodeError,
    MetadataSizeError,
    TransportError,
    UpstreamStatusError,
    ValidationError,
)
from blobs_lib.models import ListResult, ListResultBlob, ListStoresResult
from blobs_lib.store import (
    BlobMetadata,
    BlobWithMetadata,
    Store,
    get_deploy_store,
    get_store,
    list_stores,
)
from blobs_lib.types import ConsistencyMode, ResponseType

__all__ = [
    "BlobMetadata",
    "BlobWithMetadata",
    "BlobsError",
    "Client",
    "ClientConfig",
    "ConfigurationError",
    "ConsistencyConfigurationError",
    "ConsistencyMode",
    "EnvironmentContext",
    "ListResult",
    "ListResultBlob",
    "ListStoresResult",
    "MetadataDecodeError",
    "MetadataSizeError",
    "ResponseType",
    "RetryTransport",
    "Store",
    "TransportError",
    "UpstreamStatusError",
    "ValidationError",
    "connect_lambda",
    "get_deploy_store",
    "get_environment_context",
    "get_store",
    "list_stores",
]
