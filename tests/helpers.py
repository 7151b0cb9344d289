from typing import Any, Callable, List, Optional

import httpx

from blobs_lib.client.client import Client
from blobs_lib.client.config import ClientConfig
from blobs_lib.store.refs import NamedStore, StoreRef
from blobs_lib.store.store import Store

SITE_ID = "site1"
TOKEN = "secret"
EDGE_URL = "http://edge.local"
UNCACHED_EDGE_URL = "http://uncached.local"
API_URL = "http://api.local"

AUTH = {"authorization": f"Bearer {TOKEN}"}


class RecordingTransport(httpx.MockTransport):
    """MockTransport that keeps every request it was handed.

    Usage in tests:
        transport = RecordingTransport(lambda request: httpx.Response(200))
        store = make_store(transport=transport)
        ...
        assert len(transport.requests) == 1
    """

    def __init__(self, handler: Callable[[httpx.Request], Any]) -> None:
        self.requests: List[httpx.Request] = []

        def recording(request: httpx.Request):
            self.requests.append(request)
            return handler(request)

        super().__init__(recording)


def make_config(transport: httpx.AsyncBaseTransport, *, edge: bool = True, **overrides: Any) -> ClientConfig:
    values: dict[str, Any] = dict(site_id=SITE_ID, token=TOKEN, transport=transport, retry_delay=0)
    if edge:
        values.update(edge_url=EDGE_URL, uncached_edge_url=UNCACHED_EDGE_URL)
    else:
        values.update(api_url=API_URL)
    values.update(overrides)
    return ClientConfig(**values)


def make_store(transport: httpx.AsyncBaseTransport, name: str = "test", *, ref: Optional[StoreRef] = None,
               edge: bool = True, **overrides: Any) -> Store:
    config = make_config(transport, edge=edge, **overrides)
    return Store(Client(config), ref or NamedStore(name))


def make_app_store(app, name: str = "test", *, ref: Optional[StoreRef] = None, edge: bool = True,
                   **overrides: Any) -> Store:
    """Store whose requests are served in-process by the local server `app`."""
    return make_store(httpx.ASGITransport(app=app), name, ref=ref, edge=edge, **overrides)


def list_page(blobs: List[str], next_cursor: Optional[str] = None, directories: Optional[List[str]] = None) -> dict:
    body: dict[str, Any] = {
        "blobs": [
            {"etag": f'"{key}-etag"', "key": key, "size": 1, "last_modified": "2024-01-01T00:00:00+00:00"}
            for key in blobs
        ],
    }
    if directories is not None:
        body["directories"] = directories
    if next_cursor:
        body["next_cursor"] = next_cursor
    return body
