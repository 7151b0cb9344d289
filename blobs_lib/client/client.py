"""Request builder for the blob store protocol.

Two addressing modes are supported:

- edge mode (an `edge_url` is configured): one hop straight to storage,
  `/{site_id}/{store_name}/{key}` with a bearer token;
- control-plane mode: a request to
  `/api/v1/sites/{site_id}/blobs/{key}?context={store_name}` answers with a
  signed storage URL that the payload transfer then goes to. Listings,
  `HEAD` and `DELETE` are answered by the control plane directly.

Every network call goes through the retry transport.
"""
from __future__ import annotations
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional
from urllib.parse import quote, urlencode

import httpx

from blobs_lib.client.config import ClientConfig
from blobs_lib.client.retry import RetryTransport
from blobs_lib.errors import (
    ConsistencyConfigurationError,
    TransportError,
    UpstreamStatusError,
)
from blobs_lib.metadata import (
    METADATA_HEADER_EXTERNAL,
    METADATA_HEADER_INTERNAL,
    encode_metadata,
)
from blobs_lib.models import SignedURLResponse
from blobs_lib.sources import BlobSource
from blobs_lib.types import ConsistencyMode, HTTPMethod

logger = logging.getLogger(__name__)

SIGNED_URL_ACCEPT_HEADER = "application/json;type=signed-url"
CACHE_CONTROL = "max-age=0, stale-while-revalidate=60"
EXPIRES_HEADER = "x-nf-expires-at"


@dataclass
class FinalRequest:
    url: str
    headers: Dict[str, str] = field(default_factory=dict)


def _join_url(base: str, path: str, parameters: Optional[Mapping[str, str]] = None) -> str:
    url = base.rstrip("/") + path
    if parameters:
        url += "?" + urlencode(parameters)
    return url


class Client:
    def __init__(self, config: ClientConfig) -> None:
        self.config = config
        self._http = httpx.AsyncClient(
            transport=RetryTransport(config.transport, retry_delay=config.retry_delay),
            timeout=config.timeout,
        )

    async def aclose(self) -> None:
        await self._http.aclose()

    async def __aenter__(self) -> "Client":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    def _storage_path(self, store_name: Optional[str], key: Optional[str]) -> str:
        path = "/" + quote(self.config.site_id, safe="")
        if store_name:
            path += "/" + quote(store_name, safe=":")
        if key:
            path += "/" + quote(key, safe="/")
        return path

    async def _get_final_request(
        self,
        *,
        method: HTTPMethod,
        store_name: Optional[str],
        key: Optional[str],
        metadata: Optional[Mapping[str, Any]],
        parameters: Optional[Mapping[str, str]],
        consistency: Optional[ConsistencyMode],
        operation: str,
    ) -> FinalRequest:
        # Size guard runs before any I/O.
        encoded_metadata = encode_metadata(metadata)
        mode = ConsistencyMode.parse(consistency or self.config.consistency)

        if self.config.uses_edge:
            if mode is ConsistencyMode.STRONG and not self.config.uncached_edge_url:
                raise ConsistencyConfigurationError()
            headers = {"authorization": f"Bearer {self.config.token}"}
            if encoded_metadata:
                headers[METADATA_HEADER_INTERNAL] = encoded_metadata
            base = self.config.uncached_edge_url if mode is ConsistencyMode.STRONG else self.config.edge_url
            return FinalRequest(_join_url(base, self._storage_path(store_name, key), parameters), headers)

        api_headers = {"authorization": f"Bearer {self.config.token}"}
        path = f"/api/v1/sites/{quote(self.config.site_id, safe='')}/blobs"
        if key:
            path += "/" + quote(key, safe="/")
        query = dict(parameters or {})
        if store_name:
            query["context"] = store_name
        url = _join_url(self.config.api_url, path, query)

        # No store means listing stores, no key means listing blobs. Both
        # are served by the control plane itself.
        if store_name is None or key is None:
            return FinalRequest(url, api_headers)

        if encoded_metadata:
            api_headers[METADATA_HEADER_EXTERNAL] = encoded_metadata

        if method in (HTTPMethod.HEAD, HTTPMethod.DELETE):
            return FinalRequest(url, api_headers)

        res = await self._http.request(
            method.value,
            url,
            headers={**api_headers, "accept": SIGNED_URL_ACCEPT_HEADER},
        )
        if res.status_code != 200:
            raise UpstreamStatusError(res.status_code, operation)

        signed = SignedURLResponse.model_validate(res.json())
        headers = {METADATA_HEADER_INTERNAL: encoded_metadata} if encoded_metadata else {}
        return FinalRequest(signed.url, headers)

    async def make_request(
        self,
        *,
        method: HTTPMethod,
        store_name: Optional[str] = None,
        key: Optional[str] = None,
        body: Any = None,
        headers: Optional[Mapping[str, str]] = None,
        metadata: Optional[Mapping[str, Any]] = None,
        parameters: Optional[Mapping[str, str]] = None,
        consistency: Optional[ConsistencyMode] = None,
        stream: bool = False,
        operation: Optional[str] = None,
    ) -> httpx.Response:
        """Send one logical request and return the final response.

        Non-2xx responses of the final hop are returned as-is so callers can
        decide how to treat them (a 404 on `get` is not an error). When
        `stream` is true the caller owns the response and must close it.
        """
        op = operation or method.value.lower()
        try:
            final = await self._get_final_request(
                method=method,
                store_name=store_name,
                key=key,
                metadata=metadata,
                parameters=parameters,
                consistency=consistency,
                operation=op,
            )
            request_headers = {**final.headers, **(headers or {})}
            if method is HTTPMethod.PUT:
                request_headers["cache-control"] = CACHE_CONTROL

            content = BlobSource.of(body).content() if body is not None else None
            request = self._http.build_request(method.value, final.url, headers=request_headers, content=content)
            logger.debug("%s %s", method.value, final.url)
            return await self._http.send(request, stream=stream)
        except httpx.TransportError as exc:
            raise TransportError(op, exc) from exc
