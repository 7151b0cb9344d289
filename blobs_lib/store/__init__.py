from .factory import get_deploy_store, get_store, list_stores
from .refs import DeployStore, NamedStore, StoreRef, validate_key
from .store import BlobData, BlobMetadata, BlobWithMetadata, Store

__all__ = [
    "BlobData",
    "BlobMetadata",
    "BlobWithMetadata",
    "DeployStore",
    "NamedStore",
    "Store",
    "StoreRef",
    "get_deploy_store",
    "get_store",
    "list_stores",
    "validate_key",
]
