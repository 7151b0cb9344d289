"""Store references and key validation.

A store is addressed either by a user-chosen name or by a deploy ID. Both
are validated once, at construction, and carry the wire name the protocol
uses from then on.
"""
from __future__ import annotations
import re
from dataclasses import dataclass, field
from typing import Union

from blobs_lib.errors import ValidationError
from blobs_lib.types import DEPLOY_STORE_PREFIX

MAX_KEY_BYTES = 600
MAX_STORE_NAME_BYTES = 64
DEPLOY_ID_PATTERN = re.compile(r"^\w{1,24}$")


def validate_key(key: str) -> str:
    if not isinstance(key, str) or key == "":
        raise ValidationError("Blob key must not be empty.")
    if key.startswith("/"):
        raise ValidationError("Blob key must not start with forward slash (/).")
    if len(key.encode("utf-8")) > MAX_KEY_BYTES:
        raise ValidationError(
            f"Blob key must be a sequence of Unicode characters whose UTF-8 "
            f"encoding is at most {MAX_KEY_BYTES} bytes long."
        )
    return key


def validate_store_name(name: str) -> str:
    if not isinstance(name, str) or name == "":
        raise ValidationError("Store name must be a sequence of Unicode characters.")
    if "/" in name:
        raise ValidationError("Store name must not contain forward slashes (/).")
    if name.startswith(DEPLOY_STORE_PREFIX):
        raise ValidationError(f"Store name must not start with the `{DEPLOY_STORE_PREFIX}` reserved keyword.")
    if len(name.encode("utf-8")) > MAX_STORE_NAME_BYTES:
        raise ValidationError(
            f"Store name must be a sequence of Unicode characters whose UTF-8 "
            f"encoding is at most {MAX_STORE_NAME_BYTES} bytes long."
        )
    return name


def validate_deploy_id(deploy_id: str) -> str:
    if not isinstance(deploy_id, str) or not DEPLOY_ID_PATTERN.match(deploy_id):
        raise ValidationError(f"'{deploy_id}' is not a valid Netlify deploy ID.")
    return deploy_id


@dataclass(frozen=True)
class NamedStore:
    name: str
    store_name: str = field(init=False)

    def __post_init__(self) -> None:
        validate_store_name(self.name)
        object.__setattr__(self, "store_name", self.name)


@dataclass(frozen=True)
class DeployStore:
    deploy_id: str
    store_name: str = field(init=False)

    def __post_init__(self) -> None:
        validate_deploy_id(self.deploy_id)
        object.__setattr__(self, "store_name", f"{DEPLOY_STORE_PREFIX}{self.deploy_id}")


StoreRef = Union[NamedStore, DeployStore]
