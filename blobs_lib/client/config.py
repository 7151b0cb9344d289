"""Client configuration value.

A `ClientConfig` is built once (usually by `blobs_lib.environment`) and
passed by value into the client. Nothing in the client reads ambient
process state.
"""
from __future__ import annotations
from dataclasses import dataclass, field
from typing import Optional

import httpx

from blobs_lib.errors import ConfigurationError
from blobs_lib.types import ConsistencyMode

DEFAULT_API_URL = "https://api.netlify.com"
DEFAULT_RETRY_DELAY = 5.0
DEFAULT_TIMEOUT = 60.0


@dataclass(frozen=True)
class ClientConfig:
    site_id: str
    token: str
    api_url: str = DEFAULT_API_URL
    edge_url: Optional[str] = None
    uncached_edge_url: Optional[str] = None
    consistency: ConsistencyMode = ConsistencyMode.EVENTUAL
    # Seconds to wait between attempts when the server gives no reset hint.
    retry_delay: float = DEFAULT_RETRY_DELAY
    timeout: Optional[float] = DEFAULT_TIMEOUT
    # Underlying transport wrapped by the retry layer; tests inject
    # `httpx.MockTransport` or `httpx.ASGITransport` here.
    transport: Optional[httpx.AsyncBaseTransport] = field(default=None, compare=False, repr=False)

    def __post_init__(self) -> None:
        missing = [name for name in ("site_id", "token") if not getattr(self, name)]
        if missing:
            raise ConfigurationError(missing)
        object.__setattr__(self, "consistency", ConsistencyMode.parse(self.consistency))

    @property
    def uses_edge(self) -> bool:
        return bool(self.edge_url)
