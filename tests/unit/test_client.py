import asyncio

import httpx
import pytest

from blobs_lib.client.client import CACHE_CONTROL, SIGNED_URL_ACCEPT_HEADER, Client
from blobs_lib.errors import (
    ConsistencyConfigurationError,
    MetadataSizeError,
    TransportError,
    UpstreamStatusError,
)
from blobs_lib.metadata import METADATA_HEADER_EXTERNAL, METADATA_HEADER_INTERNAL, decode_metadata
from blobs_lib.store.refs import DeployStore
from blobs_lib.types import HTTPMethod
from tests.helpers import RecordingTransport, make_config, make_store


def run(coro_fn):
    return asyncio.run(coro_fn())


def test_edge_request_uses_bearer_token_and_path():
    transport = RecordingTransport(lambda request: httpx.Response(200, text="hi"))

    async def go():
        async with make_store(transport, ref=DeployStore("6527dfab35be400008332a1d")) as store:
            return await store.get("images/cat.png")

    assert run(go) == "hi"
    request = transport.requests[0]
    assert request.method == "GET"
    assert request.url.host == "edge.local"
    assert request.url.path == "/site1/deploy:6527dfab35be400008332a1d/images/cat.png"
    assert request.headers["authorization"] == "Bearer secret"


def test_edge_write_sends_internal_metadata_and_cache_control():
    transport = RecordingTransport(lambda request: httpx.Response(200))

    async def go():
        async with make_store(transport) as store:
            await store.set("key", "value", metadata={"name": "Netlify"})

    run(go)
    request = transport.requests[0]
    assert request.method == "PUT"
    assert request.content == b"value"
    assert request.headers["cache-control"] == CACHE_CONTROL
    assert decode_metadata(request.headers[METADATA_HEADER_INTERNAL]) == {"name": "Netlify"}
    assert METADATA_HEADER_EXTERNAL not in request.headers


def test_oversized_metadata_fails_before_any_request():
    transport = RecordingTransport(lambda request: httpx.Response(200))

    async def go():
        async with make_store(transport) as store:
            await store.set("key", "value", metadata={"data": "x" * 3000})

    with pytest.raises(MetadataSizeError):
        run(go)
    assert transport.requests == []


def test_strong_read_uses_uncached_edge():
    transport = RecordingTransport(lambda request: httpx.Response(200, text="fresh"))

    async def go():
        async with make_store(transport) as store:
            return await store.get("key", consistency="strong")

    assert run(go) == "fresh"
    assert transport.requests[0].url.host == "uncached.local"


def test_strong_read_without_uncached_edge_fails_locally():
    transport = RecordingTransport(lambda request: httpx.Response(200))

    async def go():
        async with make_store(transport, uncached_edge_url=None) as store:
            await store.get("key", consistency="strong")

    with pytest.raises(ConsistencyConfigurationError):
        run(go)
    assert transport.requests == []


def test_control_plane_read_goes_through_signed_url():
    def handler(request):
        if request.url.host == "api.local":
            return httpx.Response(200, json={"url": "https://signed.local/some/path?sig=abc"})
        return httpx.Response(200, text="payload")

    transport = RecordingTransport(handler)

    async def go():
        async with make_store(transport, "music", edge=False) as store:
            return await store.get("a/b")

    assert run(go) == "payload"
    api_call, storage_call = transport.requests
    assert api_call.url.path == "/api/v1/sites/site1/blobs/a/b"
    assert api_call.url.params["context"] == "music"
    assert api_call.headers["accept"] == SIGNED_URL_ACCEPT_HEADER
    assert api_call.headers["authorization"] == "Bearer secret"
    assert str(storage_call.url) == "https://signed.local/some/path?sig=abc"
    assert "authorization" not in storage_call.headers


def test_control_plane_write_moves_metadata_to_internal_header():
    def handler(request):
        if request.url.host == "api.local":
            return httpx.Response(200, json={"url": "https://signed.local/upload"})
        return httpx.Response(200)

    transport = RecordingTransport(handler)

    async def go():
        async with make_store(transport, edge=False) as store:
            await store.set("key", b"\x00\x01", metadata={"v": 1})

    run(go)
    api_call, storage_call = transport.requests
    assert decode_metadata(api_call.headers[METADATA_HEADER_EXTERNAL]) == {"v": 1}
    assert decode_metadata(storage_call.headers[METADATA_HEADER_INTERNAL]) == {"v": 1}
    assert METADATA_HEADER_EXTERNAL not in storage_call.headers
    assert storage_call.content == b"\x00\x01"


def test_control_plane_head_and_delete_are_direct():
    transport = RecordingTransport(lambda request: httpx.Response(200, headers={"etag": '"e"'}))

    async def go():
        async with make_store(transport, edge=False) as store:
            meta = await store.get_metadata("key")
            await store.delete("key")
        return meta

    meta = run(go)
    assert meta.etag == '"e"'
    assert [r.method for r in transport.requests] == ["HEAD", "DELETE"]
    assert all(r.url.host == "api.local" for r in transport.requests)


def test_control_plane_signing_failure_raises_status_error():
    transport = RecordingTransport(lambda request: httpx.Response(401))

    async def go():
        async with make_store(transport, edge=False) as store:
            await store.get("key")

    with pytest.raises(UpstreamStatusError) as exc:
        run(go)
    assert exc.value.status == 401
    assert len(transport.requests) == 1


def test_control_plane_store_listing_has_no_context():
    transport = RecordingTransport(lambda request: httpx.Response(200, json={"stores": []}))

    async def go():
        async with Client(make_config(transport, edge=False)) as client:
            return await client.make_request(method=HTTPMethod.GET)

    assert run(go).status_code == 200
    assert transport.requests[0].url.path == "/api/v1/sites/site1/blobs"
    assert "context" not in transport.requests[0].url.params


def test_network_failure_is_wrapped_after_retries():
    def handler(request):
        raise httpx.ConnectError("unreachable")

    transport = RecordingTransport(handler)

    async def go():
        async with make_store(transport) as store:
            await store.get("key")

    with pytest.raises(TransportError) as exc:
        run(go)
    assert isinstance(exc.value.cause, httpx.ConnectError)
    assert len(transport.requests) == 5
