from __future__ import annotations
import logging
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Optional

import yaml

logger = logging.getLogger(__name__)


@dataclass
class ServerConfig:
    # Root directory holding the entries/, metadata/ and .tmp/ trees
    directory: str = "blobs-data"
    host: str = "127.0.0.1"
    port: int = 8000
    # Static token; when None every authentication check is disabled
    token: Optional[str] = None
    debug: bool = False
    # Number of list entries per page; None returns everything in one page
    page_size: Optional[int] = None
    log_level: Optional[str] = None
    # Lifetime in seconds of URLs handed out by the control-plane routes
    signed_url_ttl: int = 3600


def load_server_config(path: Optional[str | Path] = None, **overrides: Any) -> ServerConfig:
    """Build a ServerConfig from an optional YAML file plus explicit overrides.

    Unknown keys in the file are ignored with a warning. Overrides whose
    value is None do not replace a value read from the file.
    """
    values: dict[str, Any] = {}
    if path is not None:
        cfg_path = Path(path)
        with cfg_path.open('r', encoding='utf-8') as f:
            loaded = yaml.safe_load(f) or {}
        if not isinstance(loaded, dict):
            raise ValueError(f"Server configuration in {cfg_path} must be a mapping")
        values.update(loaded)

    values.update({k: v for k, v in overrides.items() if v is not None})

    known = {f.name for f in fields(ServerConfig)}
    unknown = sorted(set(values) - known)
    if unknown:
        logger.warning("Ignoring unknown server config keys: %s", ", ".join(unknown))
    return ServerConfig(**{k: v for k, v in values.items() if k in known})
