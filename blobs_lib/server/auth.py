"""Access checks for the local blob server.

Edge requests carry either the static bearer token or a signature issued
by the control-plane routes. Signatures are HMAC-SHA256 over the method,
the decoded path and the expiry time, keyed by the server token.
"""
from __future__ import annotations
import hashlib
import hmac
import secrets
import time
from typing import Callable, Mapping, Optional
from urllib.parse import quote, urlencode

SIGNATURE_PARAM = "signature"
EXPIRES_PARAM = "expires"


def check_bearer(authorization: Optional[str], token: Optional[str]) -> bool:
    """True when no token is configured or `authorization` is `Bearer <token>`."""
    if not token:
        return True
    parts = (authorization or "").split(" ")
    if len(parts) != 2 or parts[0].lower() != "bearer":
        return False
    return hmac.compare_digest(parts[1], token)


class UrlSigner:
    def __init__(self, token: Optional[str], ttl: int = 3600, clock: Callable[[], float] = time.time) -> None:
        # Without a token nothing is checked; a throwaway key keeps signing usable.
        self._key = (token or secrets.token_hex(16)).encode("utf-8")
        self.ttl = ttl
        self._clock = clock

    def _sign(self, method: str, path: str, expires: int) -> str:
        msg = f"{method.upper()}\n{path}\n{expires}"
        return hmac.new(self._key, msg.encode("utf-8"), hashlib.sha256).hexdigest()

    def sign(self, base_url: str, method: str, path: str) -> str:
        """Return an absolute URL for `path` that is valid for `ttl` seconds."""
        expires = int(self._clock()) + self.ttl
        query = urlencode({EXPIRES_PARAM: expires, SIGNATURE_PARAM: self._sign(method, path, expires)})
        return f"{base_url.rstrip('/')}{quote(path, safe='/:')}?{query}"

    def verify(self, method: str, path: str, params: Mapping[str, str]) -> bool:
        signature = params.get(SIGNATURE_PARAM)
        expires = params.get(EXPIRES_PARAM)
        if not signature or not expires:
            return False
        try:
            expires_at = int(expires)
        except ValueError:
            return False
        if expires_at < self._clock():
            return False
        return hmac.compare_digest(signature, self._sign(method, path, expires_at))
