"""Byte sources accepted as blob payloads.

A payload is text, a byte buffer or a stream (async iterable, sync iterable
or binary file object). `BlobSource.of` tags the input once; everything
downstream goes through `chunks()` / `write_source()` so neither the client
nor the local server needs to special-case the input shape.
"""
from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
from typing import Any, AsyncIterator, BinaryIO, Union

from starlette.concurrency import iterate_in_threadpool, run_in_threadpool

from blobs_lib.errors import ValidationError

CHUNK_SIZE = 64 * 1024


class SourceKind(str, Enum):
    TEXT = "text"
    BYTES = "bytes"
    STREAM = "stream"


@dataclass(frozen=True)
class BlobSource:
    kind: SourceKind
    value: Any

    @classmethod
    def of(cls, data: Any) -> "BlobSource":
        if isinstance(data, BlobSource):
            return data
        if isinstance(data, str):
            return cls(SourceKind.TEXT, data)
        if isinstance(data, (bytes, bytearray, memoryview)):
            return cls(SourceKind.BYTES, bytes(data))
        if hasattr(data, "__aiter__") or hasattr(data, "read") or hasattr(data, "__iter__"):
            return cls(SourceKind.STREAM, data)
        raise ValidationError(
            f"Unsupported payload type: {type(data).__name__}. "
            "Expected str, bytes or a stream of bytes."
        )

    def content(self) -> Union[bytes, AsyncIterator[bytes]]:
        """Return a value suitable for `httpx` request content."""
        if self.kind is SourceKind.TEXT:
            return self.value.encode("utf-8")
        if self.kind is SourceKind.BYTES:
            return self.value
        return self.chunks()

    async def chunks(self) -> AsyncIterator[bytes]:
        if self.kind is SourceKind.TEXT:
            yield self.value.encode("utf-8")
            return
        if self.kind is SourceKind.BYTES:
            yield self.value
            return

        stream = self.value
        if hasattr(stream, "__aiter__"):
            async for chunk in stream:
                yield _as_bytes(chunk)
        elif hasattr(stream, "read"):
            while True:
                chunk = await run_in_threadpool(stream.read, CHUNK_SIZE)
                if not chunk:
                    break
                yield _as_bytes(chunk)
        else:
            async for chunk in iterate_in_threadpool(iter(stream)):
                yield _as_bytes(chunk)


def _as_bytes(chunk: Any) -> bytes:
    if isinstance(chunk, str):
        return chunk.encode("utf-8")
    return bytes(chunk)


async def write_source(source: BlobSource, sink: BinaryIO) -> int:
    """Copy every chunk of `source` into the binary file `sink`.

    Returns the number of bytes written. Errors raised by the source
    propagate to the caller unchanged.
    """
    written = 0
    async for chunk in source.chunks():
        if not chunk:
            continue
        await run_in_threadpool(sink.write, chunk)
        written += len(chunk)
    return written
