"""HTTP routes of the local blob server.

Edge routes address storage directly as `/{site}/{store}/{key...}`. The
control-plane routes under `/api/v1/sites/{site}/blobs` answer reads and
writes with a signed edge URL, and serve metadata reads, deletes and
listings themselves.

Responses other than listings and signed URLs carry no body; the status
code is the whole answer.
"""
from __future__ import annotations
import logging
from typing import Awaitable, Callable, Optional

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import JSONResponse, Response, StreamingResponse

from blobs_lib.client.client import EXPIRES_HEADER
from blobs_lib.errors import MetadataDecodeError, MetadataSizeError
from blobs_lib.metadata import (
    METADATA_HEADER_EXTERNAL,
    METADATA_HEADER_INTERNAL,
    decode_metadata,
    encode_metadata,
)
from blobs_lib.models import SignedURLResponse
from blobs_lib.server.auth import check_bearer
from blobs_lib.server.storage import (
    BlobInfo,
    BlobNotFoundError,
    InvalidCursorError,
    InvalidPathError,
    LocalStorage,
    iter_file,
    key_segments,
)
from blobs_lib.services.resolver import resolve_service
from blobs_lib.sources import BlobSource

logger = logging.getLogger(__name__)

BLOB_METHODS = ("GET", "HEAD", "PUT", "DELETE")
# Every other method reaches the catch-all too so it can answer 405 after
# the access check, like the rest of the edge.
OTHER_METHODS = ("POST", "PATCH", "OPTIONS")

control_router = APIRouter()
edge_router = APIRouter()


def respond(request: Request, response: Response) -> Response:
    logger.debug("%s %s: %s", request.method, request.url.path, response.status_code)
    return response


async def handle(request: Request, handler: Callable[[], Awaitable[Response]]) -> Response:
    """Run a route body and map every failure onto a bare status code."""
    try:
        response = await handler()
    except HTTPException as exc:
        response = Response(status_code=exc.status_code)
    except BlobNotFoundError:
        response = Response(status_code=404)
    except (InvalidPathError, InvalidCursorError, MetadataDecodeError, MetadataSizeError):
        response = Response(status_code=400)
    except Exception:
        logger.exception("Unhandled error for %s %s", request.method, request.url.path)
        response = Response(status_code=500)
    return respond(request, response)


def _blob_headers(info: BlobInfo, metadata_header: str) -> dict[str, str]:
    headers = {"etag": info.etag, "content-length": str(info.size)}
    encoded = encode_metadata(info.metadata) if info.metadata else None
    if encoded:
        headers[metadata_header] = encoded
    if info.expires_at is not None:
        headers[EXPIRES_HEADER] = str(info.expires_at)
    return headers


def _parse_expires(request: Request) -> Optional[int]:
    value = request.headers.get(EXPIRES_HEADER)
    if value is None:
        return None
    try:
        return int(value)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid {EXPIRES_HEADER} header")


def _list_params(request: Request) -> tuple[str, bool, Optional[str]]:
    params = request.query_params
    return params.get("prefix", ""), params.get("directories") == "true", params.get("cursor")


async def list_blobs(request: Request, storage: LocalStorage, site: str, store: str) -> Response:
    prefix, directories, cursor = _list_params(request)
    page = await storage.list_blobs(site, store, prefix=prefix, directories=directories, cursor=cursor)
    return JSONResponse(page.model_dump(exclude_none=True))


async def list_stores(request: Request, storage: LocalStorage, site: str) -> Response:
    prefix, _, cursor = _list_params(request)
    page = await storage.list_stores(site, prefix=prefix, cursor=cursor)
    return JSONResponse(page.model_dump(exclude_none=True))


async def get_blob(request: Request, storage: LocalStorage, site: str, store: str, key: str) -> Response:
    info, handle = await storage.open(site, store, key)
    headers = _blob_headers(info, METADATA_HEADER_INTERNAL)
    if request.headers.get("if-none-match") == info.etag:
        handle.close()
        headers.pop("content-length")
        return Response(status_code=304, headers=headers)
    return StreamingResponse(iter_file(handle), headers=headers, media_type="application/octet-stream")


async def head_blob(storage: LocalStorage, site: str, store: str, key: str, metadata_header: str) -> Response:
    info = await storage.head(site, store, key)
    return Response(status_code=200, headers=_blob_headers(info, metadata_header))


async def put_blob(request: Request, storage: LocalStorage, site: str, store: str, key: str) -> Response:
    metadata = decode_metadata(request.headers.get(METADATA_HEADER_INTERNAL))
    expires_at = _parse_expires(request)
    await storage.put(site, store, key, BlobSource.of(request.stream()), metadata=metadata, expires_at=expires_at)
    return Response(status_code=200)


async def delete_blob(storage: LocalStorage, site: str, store: str, key: str) -> Response:
    await storage.delete(site, store, key)
    return Response(status_code=204)


# -- control plane ---------------------------------------------------------

def _require_api_token(request: Request) -> None:
    config = resolve_service(request, 'server_config')
    if not check_bearer(request.headers.get("authorization"), config.token):
        raise HTTPException(status_code=401, detail="Invalid or missing API token")


@control_router.get('/api/v1/sites/{site}/blobs')
async def api_list(request: Request, site: str):
    async def run() -> Response:
        _require_api_token(request)
        storage = resolve_service(request, 'storage')
        store = request.query_params.get("context")
        if not store:
            return await list_stores(request, storage, site)
        return await list_blobs(request, storage, site, store)

    return await handle(request, run)


@control_router.api_route('/api/v1/sites/{site}/blobs/{key:path}', methods=list(BLOB_METHODS))
async def api_blob(request: Request, site: str, key: str):
    async def run() -> Response:
        _require_api_token(request)
        store = request.query_params.get("context")
        if not store:
            raise HTTPException(status_code=400, detail="Missing context parameter")
        key_segments(key)
        storage = resolve_service(request, 'storage')

        if request.method == "HEAD":
            return await head_blob(storage, site, store, key, METADATA_HEADER_EXTERNAL)
        if request.method == "DELETE":
            return await delete_blob(storage, site, store, key)

        signer = resolve_service(request, 'url_signer')
        url = signer.sign(str(request.base_url), request.method, f"/{site}/{store}/{key}")
        return JSONResponse(SignedURLResponse(url=url).model_dump())

    return await handle(request, run)


# -- edge ------------------------------------------------------------------

def _edge_authorized(request: Request, path: str) -> bool:
    config = resolve_service(request, 'server_config')
    if check_bearer(request.headers.get("authorization"), config.token):
        return True
    signer = resolve_service(request, 'url_signer')
    return signer.verify(request.method, path, request.query_params)


@edge_router.api_route('/{full_path:path}', methods=list(BLOB_METHODS + OTHER_METHODS))
async def edge(request: Request, full_path: str):
    async def run() -> Response:
        if not _edge_authorized(request, "/" + full_path):
            raise HTTPException(status_code=403)
        if request.method not in BLOB_METHODS:
            raise HTTPException(status_code=405)

        storage = resolve_service(request, 'storage')
        parts = full_path.split("/", 2)
        site = parts[0]
        if not site:
            raise HTTPException(status_code=400, detail="Missing site ID")

        store = parts[1] if len(parts) > 1 else ""
        key = parts[2] if len(parts) > 2 else ""
        if not store:
            if request.method != "GET":
                raise HTTPException(status_code=400, detail="Missing store name")
            return await list_stores(request, storage, site)
        if not key:
            if request.method != "GET":
                raise HTTPException(status_code=400, detail="Missing key")
            return await list_blobs(request, storage, site, store)

        if request.method == "GET":
            return await get_blob(request, storage, site, store, key)
        if request.method == "HEAD":
            return await head_blob(storage, site, store, key, METADATA_HEADER_INTERNAL)
        if request.method == "PUT":
            return await put_blob(request, storage, site, store, key)
        return await delete_blob(storage, site, store, key)

    return await handle(request, run)
