"""Metadata side-channel codec.

Metadata is an arbitrary JSON object carried in a single header value as
``b64;<base64 of the JSON text>``. Two header names are in play: the
external one travels between client and control plane, the internal one
between the control plane (or the edge) and storage.
"""
from __future__ import annotations
import base64
import binascii
import json
from typing import Any, Mapping, Optional

from blobs_lib.errors import MetadataDecodeError, MetadataSizeError

BASE64_PREFIX = "b64;"
METADATA_HEADER_INTERNAL = "x-amz-meta-user"
METADATA_HEADER_EXTERNAL = "netlify-blobs-metadata"
METADATA_MAX_SIZE = 2 * 1024

Metadata = dict[str, Any]


def encode_metadata(metadata: Optional[Mapping[str, Any]]) -> Optional[str]:
    """Return the header value for `metadata`, or None when there is none.

    Raises MetadataSizeError before any I/O when the header name plus the
    encoded payload exceed METADATA_MAX_SIZE bytes.
    """
    if metadata is None:
        return None

    text = json.dumps(dict(metadata), separators=(",", ":"), ensure_ascii=False)
    encoded = base64.b64encode(text.encode("utf-8")).decode("ascii")
    payload = f"{BASE64_PREFIX}{encoded}"
    size = len(METADATA_HEADER_EXTERNAL) + len(payload)
    if size > METADATA_MAX_SIZE:
        raise MetadataSizeError(size, METADATA_MAX_SIZE)
    return payload


def decode_metadata(header: Optional[str]) -> Metadata:
    """Decode a header value into a metadata dict.

    Absent or untagged values decode to an empty dict. A tagged value whose
    payload is not valid base64 JSON object raises MetadataDecodeError.
    """
    if not header or not header.startswith(BASE64_PREFIX):
        return {}

    encoded = header[len(BASE64_PREFIX):]
    try:
        decoded = base64.b64decode(encoded, validate=True).decode("utf-8")
        metadata = json.loads(decoded)
    except (binascii.Error, UnicodeDecodeError, ValueError) as exc:
        raise MetadataDecodeError() from exc
    if not isinstance(metadata, dict):
        raise MetadataDecodeError()
    return metadata


def get_metadata_from_headers(headers: Optional[Mapping[str, str]]) -> Metadata:
    """Read metadata from whichever header is present, preferring the external one."""
    if not headers:
        return {}
    value = headers.get(METADATA_HEADER_EXTERNAL) or headers.get(METADATA_HEADER_INTERNAL)
    return decode_metadata(value)
