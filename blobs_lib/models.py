"""Wire payloads shared by the client and the local server, plus the
client-facing list result types."""
from __future__ import annotations
from dataclasses import dataclass, field
from typing import List, Optional

from pydantic import BaseModel


class ListResponseBlob(BaseModel):
    etag: str
    key: str
    size: int = 0
    last_modified: Optional[str] = None


class ListResponse(BaseModel):
    blobs: List[ListResponseBlob] = []
    directories: Optional[List[str]] = None
    next_cursor: Optional[str] = None


class ListStoresResponse(BaseModel):
    stores: List[str] = []
    next_cursor: Optional[str] = None


class SignedURLResponse(BaseModel):
    url: str


@dataclass(frozen=True)
class ListResultBlob:
    etag: str
    key: str


@dataclass
class ListResult:
    blobs: List[ListResultBlob] = field(default_factory=list)
    directories: List[str] = field(default_factory=list)
    # Only set for single-page (manual) listings.
    next_cursor: Optional[str] = None


@dataclass
class ListStoresResult:
    stores: List[str] = field(default_factory=list)
    next_cursor: Optional[str] = None
