"""Store façade: validates arguments and dispatches to the client.

Every method validates its key before any I/O. Reads of a missing key
return None; any other unexpected status raises UpstreamStatusError.
"""
from __future__ import annotations
import asyncio
import json
import logging
import time
from dataclasses import dataclass
from datetime import datetime
from typing import (
    Any,
    AsyncIterator,
    Awaitable,
    Callable,
    Dict,
    Iterable,
    Mapping,
    Optional,
    Tuple,
    Union,
)

import httpx

from blobs_lib.client import listing
from blobs_lib.client.client import EXPIRES_HEADER, Client
from blobs_lib.errors import UpstreamStatusError
from blobs_lib.metadata import Metadata, get_metadata_from_headers
from blobs_lib.models import ListResult
from blobs_lib.store.refs import StoreRef, validate_key
from blobs_lib.types import ConsistencyMode, HTTPMethod, ResponseType

logger = logging.getLogger(__name__)

DEFAULT_SET_MANY_CONCURRENCY = 5


@dataclass
class BlobData:
    """Body of a blob read with `ResponseType.BLOB`."""
    data: bytes
    content_type: Optional[str] = None

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass
class BlobWithMetadata:
    data: Any
    etag: Optional[str]
    metadata: Metadata
    # True when the caller's etag still matches and no body was sent.
    fresh: bool = False


@dataclass
class BlobMetadata:
    etag: Optional[str]
    metadata: Metadata


async def _read_text(res: httpx.Response) -> str:
    await res.aread()
    return res.text


async def _read_bytes(res: httpx.Response) -> bytes:
    return await res.aread()


async def _read_blob(res: httpx.Response) -> BlobData:
    return BlobData(await res.aread(), res.headers.get("content-type"))


async def _read_json(res: httpx.Response) -> Any:
    await res.aread()
    return res.json()


async def _read_stream(res: httpx.Response) -> AsyncIterator[bytes]:

    async def body() -> AsyncIterator[bytes]:
        try:
            async for chunk in res.aiter_bytes():
                yield chunk
        finally:
            await res.aclose()

    return body()


_CONVERTERS: Dict[ResponseType, Callable[[httpx.Response], Awaitable[Any]]] = {
    ResponseType.TEXT: _read_text,
    ResponseType.ARRAY_BUFFER: _read_bytes,
    ResponseType.BLOB: _read_blob,
    ResponseType.JSON: _read_json,
    ResponseType.STREAM: _read_stream,
}


def expiration_to_ms(expiration: Union[datetime, int, float]) -> int:
    """Normalise an expiration (datetime or epoch milliseconds) to epoch ms."""
    if isinstance(expiration, datetime):
        return int(expiration.timestamp() * 1000)
    return int(expiration)


def is_expired(headers: Mapping[str, str], now_ms: Optional[int] = None) -> bool:
    value = headers.get(EXPIRES_HEADER)
    if not value:
        return False
    try:
        expires_at = int(value)
    except ValueError:
        logger.warning("Ignoring malformed %s header: %s", EXPIRES_HEADER, value)
        return False
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    return expires_at <= now_ms


class Store:
    def __init__(self, client: Client, ref: StoreRef, *, owns_client: bool = True) -> None:
        self.client = client
        self.ref = ref
        self.name = ref.store_name
        self._owns_client = owns_client

    def __repr__(self) -> str:
        return f"Store({self.name!r})"

    async def aclose(self) -> None:
        if self._owns_client:
            await self.client.aclose()

    async def __aenter__(self) -> "Store":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def _fetch(
        self,
        key: str,
        type: Union[ResponseType, str],
        consistency: Optional[Union[ConsistencyMode, str]],
        headers: Optional[Mapping[str, str]] = None,
    ) -> Tuple[ResponseType, Optional[httpx.Response]]:
        validate_key(key)
        response_type = ResponseType.parse(type)
        res = await self.client.make_request(
            method=HTTPMethod.GET,
            store_name=self.name,
            key=key,
            headers=headers,
            consistency=ConsistencyMode.parse(consistency) if consistency else None,
            stream=True,
        )
        if res.status_code == 404 or (res.is_success and is_expired(res.headers)):
            await res.aclose()
            return response_type, None
        if not res.is_success and res.status_code != 304:
            await res.aclose()
            raise UpstreamStatusError(res.status_code, "get")
        return response_type, res

    async def get(
        self,
        key: str,
        type: Union[ResponseType, str] = ResponseType.TEXT,
        consistency: Optional[Union[ConsistencyMode, str]] = None,
    ) -> Any:
        """Return the blob body converted per `type`, or None when absent or expired.

        With `ResponseType.STREAM` the caller receives an async iterator of
        byte chunks and must exhaust or close it.
        """
        response_type, res = await self._fetch(key, type, consistency)
        if res is None:
            return None
        return await self._convert(response_type, res)

    async def get_with_metadata(
        self,
        key: str,
        type: Union[ResponseType, str] = ResponseType.TEXT,
        etag: Optional[str] = None,
        consistency: Optional[Union[ConsistencyMode, str]] = None,
    ) -> Optional[BlobWithMetadata]:
        headers = {"if-none-match": etag} if etag else None
        response_type, res = await self._fetch(key, type, consistency, headers)
        if res is None:
            return None

        try:
            metadata = get_metadata_from_headers(res.headers)
        except Exception:
            await res.aclose()
            raise
        response_etag = res.headers.get("etag")

        if res.status_code == 304:
            await res.aclose()
            return BlobWithMetadata(data=None, etag=response_etag or etag, metadata=metadata, fresh=True)

        data = await self._convert(response_type, res)
        return BlobWithMetadata(data=data, etag=response_etag, metadata=metadata, fresh=False)

    async def _convert(self, response_type: ResponseType, res: httpx.Response) -> Any:
        if response_type is ResponseType.STREAM:
            return await _read_stream(res)
        try:
            return await _CONVERTERS[response_type](res)
        finally:
            await res.aclose()

    async def get_metadata(
        self,
        key: str,
        consistency: Optional[Union[ConsistencyMode, str]] = None,
    ) -> Optional[BlobMetadata]:
        validate_key(key)
        res = await self.client.make_request(
            method=HTTPMethod.HEAD,
            store_name=self.name,
            key=key,
            consistency=ConsistencyMode.parse(consistency) if consistency else None,
        )
        if res.status_code == 404 or (res.is_success and is_expired(res.headers)):
            return None
        if not res.is_success:
            raise UpstreamStatusError(res.status_code, "get metadata")
        return BlobMetadata(etag=res.headers.get("etag"), metadata=get_metadata_from_headers(res.headers))

    async def set(
        self,
        key: str,
        data: Any,
        metadata: Optional[Mapping[str, Any]] = None,
        expiration: Optional[Union[datetime, int, float]] = None,
        headers: Optional[Mapping[str, str]] = None,
    ) -> None:
        validate_key(key)
        request_headers = dict(headers or {})
        if expiration is not None:
            request_headers[EXPIRES_HEADER] = str(expiration_to_ms(expiration))
        res = await self.client.make_request(
            method=HTTPMethod.PUT,
            store_name=self.name,
            key=key,
            body=data,
            headers=request_headers,
            metadata=metadata,
            operation="set",
        )
        if not res.is_success:
            raise UpstreamStatusError(res.status_code, "set")

    async def set_json(
        self,
        key: str,
        value: Any,
        metadata: Optional[Mapping[str, Any]] = None,
        expiration: Optional[Union[datetime, int, float]] = None,
    ) -> None:
        await self.set(
            key,
            json.dumps(value),
            metadata=metadata,
            expiration=expiration,
            headers={"content-type": "application/json"},
        )

    async def set_many(
        self,
        entries: Union[Mapping[str, Any], Iterable[Tuple[str, Any]]],
        metadata: Optional[Mapping[str, Any]] = None,
        concurrency: int = DEFAULT_SET_MANY_CONCURRENCY,
    ) -> None:
        """Write several blobs with at most `concurrency` requests in flight.

        All keys are validated before the first write. There is no
        atomicity across keys: the first failure is raised once every
        pending write has settled.
        """
        items = list(entries.items()) if isinstance(entries, Mapping) else list(entries)
        for key, _ in items:
            validate_key(key)
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")

        semaphore = asyncio.Semaphore(concurrency)

        async def write(key: str, data: Any) -> None:
            async with semaphore:
                await self.set(key, data, metadata=metadata)

        results = await asyncio.gather(*(write(key, data) for key, data in items), return_exceptions=True)
        for result in results:
            if isinstance(result, BaseException):
                raise result

    async def delete(self, key: str) -> None:
        validate_key(key)
        res = await self.client.make_request(method=HTTPMethod.DELETE, store_name=self.name, key=key)
        if res.status_code != 404 and not res.is_success:
            raise UpstreamStatusError(res.status_code, "delete")

    def list(
        self,
        prefix: Optional[str] = None,
        cursor: Optional[str] = None,
        directories: bool = False,
        paginate: bool = False,
    ) -> Union[Awaitable[ListResult], AsyncIterator[ListResult]]:
        """List blobs in this store.

        - default: awaitable of every page accumulated into one result;
        - `cursor` given: awaitable of exactly that page, `next_cursor` set;
        - `paginate=True`: async iterator yielding one result per page.
        """
        if paginate:
            return listing.iterate_pages(self.client, self.name, prefix=prefix, directories=directories, cursor=cursor)
        if cursor:
            return listing.list_page(self.client, self.name, prefix=prefix, directories=directories, cursor=cursor)
        return listing.collect_pages(self.client, self.name, prefix=prefix, directories=directories)
