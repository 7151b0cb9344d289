"""Filesystem layout behind the local blob server.

    {directory}/entries/{site}/{store}/{key segments...}   blob bytes
    {directory}/metadata/{site}/{store}/{key segments...}  JSON record
    {directory}/.tmp/                                      in-flight writes

Writes stream into a temporary file inside `.tmp/` and are committed with
`os.replace`, so a reader sees either the previous or the new content and
never a partial file. The metadata record is committed only after the
data. Concurrent writers to one key are not serialised: the last commit
wins. Missing blobs raise BlobNotFoundError.
"""
from __future__ import annotations
import base64
import binascii
import json
import logging
import os
import tempfile
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, AsyncIterator, BinaryIO, Dict, List, Optional, Tuple
from uuid import uuid4

from starlette.concurrency import run_in_threadpool

from blobs_lib.metadata import Metadata
from blobs_lib.models import ListResponse, ListResponseBlob, ListStoresResponse
from blobs_lib.server.walk import walk_store
from blobs_lib.sources import CHUNK_SIZE, BlobSource, write_source

logger = logging.getLogger(__name__)

ENTRIES_DIR = "entries"
METADATA_DIR = "metadata"
TEMP_DIR = ".tmp"


class InvalidPathError(ValueError):
    """A site, store or key cannot be mapped onto the filesystem."""
    pass


class InvalidCursorError(ValueError):
    pass


class BlobNotFoundError(KeyError):
    """No blob is stored under the key (a missing file or a parent prefix)."""
    pass


@dataclass
class BlobInfo:
    etag: str
    size: int
    metadata: Metadata
    expires_at: Optional[int] = None


def new_etag() -> str:
    return f'"{uuid4().hex}"'


def encode_cursor(offset: int) -> str:
    return base64.urlsafe_b64encode(str(offset).encode("ascii")).decode("ascii")


def decode_cursor(cursor: Optional[str]) -> int:
    if not cursor:
        return 0
    try:
        offset = int(base64.urlsafe_b64decode(cursor.encode("ascii")).decode("ascii"))
    except (binascii.Error, UnicodeError, ValueError) as exc:
        raise InvalidCursorError(f"Invalid cursor: {cursor}") from exc
    if offset < 0:
        raise InvalidCursorError(f"Invalid cursor: {cursor}")
    return offset


def _check_segment(segment: str, what: str) -> str:
    if segment in ("", ".", "..") or "/" in segment or "\\" in segment or "\x00" in segment:
        raise InvalidPathError(f"Invalid {what}: {segment!r}")
    return segment


def key_segments(key: str) -> List[str]:
    if not key or key.startswith("/"):
        raise InvalidPathError(f"Invalid key: {key!r}")
    return [_check_segment(part, "key segment") for part in key.split("/")]


def _iso_utc(timestamp: float) -> str:
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).isoformat()


def _paginate(items: List[Any], cursor: Optional[str], page_size: Optional[int]) -> Tuple[List[Any], Optional[str]]:
    offset = decode_cursor(cursor)
    if not page_size:
        return items[offset:], None
    end = offset + page_size
    next_cursor = encode_cursor(end) if end < len(items) else None
    return items[offset:end], next_cursor


class LocalStorage:
    def __init__(self, directory: str | Path, page_size: Optional[int] = None) -> None:
        self.directory = Path(directory)
        self.page_size = page_size
        self.entries_dir = self.directory / ENTRIES_DIR
        self.metadata_dir = self.directory / METADATA_DIR
        self.temp_dir = self.directory / TEMP_DIR
        for d in (self.entries_dir, self.metadata_dir, self.temp_dir):
            d.mkdir(parents=True, exist_ok=True)

    def _store_root(self, base: Path, site: str, store: str) -> Path:
        return base / _check_segment(site, "site ID") / _check_segment(store, "store name")

    def _paths(self, site: str, store: str, key: str) -> Tuple[Path, Path]:
        segments = key_segments(key)
        data_path = self._store_root(self.entries_dir, site, store).joinpath(*segments)
        meta_path = self._store_root(self.metadata_dir, site, store).joinpath(*segments)
        return data_path, meta_path

    # -- writes -----------------------------------------------------------

    def _commit(self, tmp_path: str, target: Path) -> None:
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            os.replace(tmp_path, target)
        except FileNotFoundError:
            # A concurrent delete pruned the parent between mkdir and replace.
            target.parent.mkdir(parents=True, exist_ok=True)
            os.replace(tmp_path, target)

    def _discard(self, tmp_path: str) -> None:
        try:
            os.unlink(tmp_path)
        except FileNotFoundError:
            pass

    def _write_record(self, meta_path: Path, record: Dict[str, Any]) -> None:
        fd, tmp_path = tempfile.mkstemp(dir=self.temp_dir)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(record, f)
            self._commit(tmp_path, meta_path)
        except BaseException:
            self._discard(tmp_path)
            raise

    def _remove_record(self, meta_path: Path, site: str, store: str) -> None:
        try:
            meta_path.unlink()
        except (FileNotFoundError, IsADirectoryError, NotADirectoryError):
            return
        self._prune(meta_path.parent, self._store_root(self.metadata_dir, site, store))

    async def put(
        self,
        site: str,
        store: str,
        key: str,
        source: BlobSource,
        metadata: Optional[Metadata] = None,
        expires_at: Optional[int] = None,
    ) -> int:
        """Write a blob atomically and return the number of bytes stored."""
        data_path, meta_path = self._paths(site, store, key)

        fd, tmp_path = await run_in_threadpool(tempfile.mkstemp, dir=self.temp_dir)
        try:
            with os.fdopen(fd, "wb") as sink:
                written = await write_source(source, sink)
            await run_in_threadpool(self._commit, tmp_path, data_path)
        except BaseException:
            await run_in_threadpool(self._discard, tmp_path)
            raise

        if metadata or expires_at is not None:
            record = {"metadata": metadata or {}, "expires_at": expires_at}
            await run_in_threadpool(self._write_record, meta_path, record)
        else:
            await run_in_threadpool(self._remove_record, meta_path, site, store)

        logger.debug("Stored %d bytes at %s/%s/%s", written, site, store, key)
        return written

    # -- reads ------------------------------------------------------------

    def _read_record(self, meta_path: Path) -> Dict[str, Any]:
        try:
            with meta_path.open("r", encoding="utf-8") as f:
                record = json.load(f)
        except (FileNotFoundError, IsADirectoryError, NotADirectoryError):
            return {}
        except ValueError:
            logger.warning("Ignoring unreadable metadata record %s", meta_path)
            return {}
        return record if isinstance(record, dict) else {}

    def _info(self, meta_path: Path, size: int) -> BlobInfo:
        record = self._read_record(meta_path)
        return BlobInfo(
            etag=new_etag(),
            size=size,
            metadata=record.get("metadata") or {},
            expires_at=record.get("expires_at"),
        )

    def _stat_blob(self, site: str, store: str, key: str) -> BlobInfo:
        data_path, meta_path = self._paths(site, store, key)
        if not data_path.is_file():
            raise BlobNotFoundError(key)
        return self._info(meta_path, data_path.stat().st_size)

    async def head(self, site: str, store: str, key: str) -> BlobInfo:
        return await run_in_threadpool(self._stat_blob, site, store, key)

    def _open_blob(self, site: str, store: str, key: str) -> Tuple[BlobInfo, BinaryIO]:
        data_path, meta_path = self._paths(site, store, key)
        try:
            handle = data_path.open("rb")
        except (FileNotFoundError, IsADirectoryError, NotADirectoryError):
            raise BlobNotFoundError(key)
        try:
            if not os.path.isfile(data_path):
                raise BlobNotFoundError(key)
            info = self._info(meta_path, os.fstat(handle.fileno()).st_size)
        except BaseException:
            handle.close()
            raise
        return info, handle

    async def open(self, site: str, store: str, key: str) -> Tuple[BlobInfo, BinaryIO]:
        """Open a blob for reading. The caller owns (and must close) the handle."""
        return await run_in_threadpool(self._open_blob, site, store, key)

    # -- delete -----------------------------------------------------------

    def _prune(self, start: Path, stop: Path) -> None:
        """Remove empty directories from `start` up to and including `stop`."""
        current = start
        while True:
            try:
                current.relative_to(stop)
            except ValueError:
                return
            try:
                current.rmdir()
            except OSError:
                return
            if current == stop:
                return
            current = current.parent

    def _delete_blob(self, site: str, store: str, key: str) -> None:
        data_path, meta_path = self._paths(site, store, key)
        if data_path.is_dir():
            raise BlobNotFoundError(key)
        try:
            data_path.unlink()
        except (FileNotFoundError, NotADirectoryError):
            raise BlobNotFoundError(key)
        self._prune(data_path.parent, self._store_root(self.entries_dir, site, store))
        self._remove_record(meta_path, site, store)

    async def delete(self, site: str, store: str, key: str) -> None:
        await run_in_threadpool(self._delete_blob, site, store, key)
        logger.debug("Deleted %s/%s/%s", site, store, key)

    # -- listings ---------------------------------------------------------

    def _list_blobs(self, site: str, store: str, prefix: str, directories: bool,
                    cursor: Optional[str]) -> ListResponse:
        root = self._store_root(self.entries_dir, site, store)
        walked = walk_store(root, prefix, directories)
        items: List[Any] = [
            ListResponseBlob(etag=new_etag(), key=entry.key, size=entry.size, last_modified=_iso_utc(entry.mtime))
            for entry in walked.blobs
        ]
        items.extend(walked.directories)
        page, next_cursor = _paginate(items, cursor, self.page_size)
        return ListResponse(
            blobs=[item for item in page if isinstance(item, ListResponseBlob)],
            directories=[item for item in page if isinstance(item, str)] if directories else None,
            next_cursor=next_cursor,
        )

    async def list_blobs(self, site: str, store: str, prefix: str = "", directories: bool = False,
                         cursor: Optional[str] = None) -> ListResponse:
        return await run_in_threadpool(self._list_blobs, site, store, prefix or "", directories, cursor)

    def _list_stores(self, site: str, prefix: str, cursor: Optional[str]) -> ListStoresResponse:
        site_dir = self.entries_dir / _check_segment(site, "site ID")
        try:
            names = sorted(entry.name for entry in os.scandir(site_dir) if entry.is_dir())
        except FileNotFoundError:
            names = []
        names = [name for name in names if name.startswith(prefix)]
        page, next_cursor = _paginate(names, cursor, self.page_size)
        return ListStoresResponse(stores=page, next_cursor=next_cursor)

    async def list_stores(self, site: str, prefix: str = "", cursor: Optional[str] = None) -> ListStoresResponse:
        return await run_in_threadpool(self._list_stores, site, prefix or "", cursor)


async def iter_file(handle: BinaryIO) -> AsyncIterator[bytes]:
    """Stream an open file in chunks and close it when done."""
    try:
        while True:
            chunk = await run_in_threadpool(handle.read, CHUNK_SIZE)
            if not chunk:
                break
            yield chunk
    finally:
        await run_in_threadpool(handle.close)
