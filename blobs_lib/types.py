from __future__ import annotations
from enum import Enum

from blobs_lib.errors import ValidationError

DEPLOY_STORE_PREFIX = "deploy:"


class HTTPMethod(str, Enum):
    DELETE = "DELETE"
    GET = "GET"
    HEAD = "HEAD"
    PUT = "PUT"


class ConsistencyMode(str, Enum):
    EVENTUAL = "eventual"
    STRONG = "strong"

    @classmethod
    def parse(cls, value: "ConsistencyMode | str") -> "ConsistencyMode":
        try:
            return cls(value)
        except ValueError:
            raise ValidationError(
                f"Invalid consistency mode: {value}. Expected: eventual or strong."
            ) from None


class ResponseType(str, Enum):
    """How a `get` hands back the blob body."""

    ARRAY_BUFFER = "arrayBuffer"
    BLOB = "blob"
    JSON = "json"
    STREAM = "stream"
    TEXT = "text"

    @classmethod
    def parse(cls, value: "ResponseType | str") -> "ResponseType":
        try:
            return cls(value)
        except ValueError:
            raise ValidationError(
                f"Invalid 'type' property: {value}. "
                "Expected: arrayBuffer, blob, json, stream, or text."
            ) from None
