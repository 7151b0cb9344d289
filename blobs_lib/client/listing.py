"""Cursor pagination over the list primitive.

The server returns one page per call. Pages are fetched strictly one after
the other, and accumulated pages are concatenated in fetch order with no
sorting or de-duplication: a key mutated during a scan may show up twice.
"""
from __future__ import annotations
from typing import AsyncIterator, Awaitable, Callable, Optional, TypeVar

import httpx

from blobs_lib.client.client import Client
from blobs_lib.errors import UpstreamStatusError
from blobs_lib.models import (
    ListResponse,
    ListResult,
    ListResultBlob,
    ListStoresResponse,
    ListStoresResult,
)
from blobs_lib.types import DEPLOY_STORE_PREFIX, HTTPMethod

P = TypeVar("P")
FetchPage = Callable[[Optional[str], bool], Awaitable[Optional[P]]]


async def paginate(fetch: "FetchPage[P]", cursor: Optional[str] = None) -> AsyncIterator[P]:
    """Yield pages until one arrives without a `next_cursor`.

    `fetch(cursor, first)` performs exactly one request. It returns None
    when the store does not exist, which ends the iteration on the first
    request without yielding anything.
    """
    first = True
    while True:
        page = await fetch(cursor, first)
        if page is None:
            return
        yield page
        cursor = getattr(page, "next_cursor", None)
        if not cursor:
            return
        first = False


def _check_status(res: httpx.Response, first: bool) -> bool:
    """Return False for a not-found store on the first page, raise on errors."""
    if res.status_code == 404 and first:
        return False
    if not res.is_success:
        raise UpstreamStatusError(res.status_code, "list")
    return True


def to_list_result(page: ListResponse) -> ListResult:
    return ListResult(
        blobs=[ListResultBlob(etag=blob.etag, key=blob.key) for blob in page.blobs],
        directories=list(page.directories or []),
        next_cursor=page.next_cursor,
    )


def iterate_pages(
    client: Client,
    store_name: str,
    *,
    prefix: Optional[str] = None,
    directories: bool = False,
    cursor: Optional[str] = None,
) -> AsyncIterator[ListResult]:
    """Lazy mode: one network request per pulled page."""

    async def fetch(current: Optional[str], first: bool) -> Optional[ListResult]:
        parameters = {}
        if prefix:
            parameters["prefix"] = prefix
        if directories:
            parameters["directories"] = "true"
        if current:
            parameters["cursor"] = current
        res = await client.make_request(
            method=HTTPMethod.GET,
            store_name=store_name,
            parameters=parameters,
            operation="list",
        )
        if not _check_status(res, first):
            return None
        return to_list_result(ListResponse.model_validate(res.json()))

    return paginate(fetch, cursor)


async def list_page(
    client: Client,
    store_name: str,
    *,
    prefix: Optional[str] = None,
    directories: bool = False,
    cursor: Optional[str] = None,
) -> ListResult:
    """Manual mode: fetch exactly one page; the caller threads `next_cursor`."""
    pages = iterate_pages(client, store_name, prefix=prefix, directories=directories, cursor=cursor)
    try:
        async for page in pages:
            return page
    finally:
        await pages.aclose()
    return ListResult()


async def collect_pages(
    client: Client,
    store_name: str,
    *,
    prefix: Optional[str] = None,
    directories: bool = False,
) -> ListResult:
    """Accumulate mode: follow cursors until the last page."""
    result = ListResult()
    async for page in iterate_pages(client, store_name, prefix=prefix, directories=directories):
        result.blobs.extend(page.blobs)
        result.directories.extend(page.directories)
    return result


def format_store_names(names: list[str]) -> list[str]:
    return [name for name in names if not name.startswith(DEPLOY_STORE_PREFIX)]


def iterate_store_pages(client: Client, *, prefix: Optional[str] = None) -> AsyncIterator[ListStoresResult]:

    async def fetch(current: Optional[str], first: bool) -> Optional[ListStoresResult]:
        parameters = {}
        if prefix:
            parameters["prefix"] = prefix
        if current:
            parameters["cursor"] = current
        res = await client.make_request(method=HTTPMethod.GET, parameters=parameters, operation="list stores")
        if not _check_status(res, first):
            return None
        page = ListStoresResponse.model_validate(res.json())
        return ListStoresResult(stores=format_store_names(page.stores), next_cursor=page.next_cursor)

    return paginate(fetch)


async def collect_store_pages(client: Client, *, prefix: Optional[str] = None) -> ListStoresResult:
    result = ListStoresResult()
    async for page in iterate_store_pages(client, prefix=prefix):
        result.stores.extend(page.stores)
    return result
