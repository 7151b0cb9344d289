"""Environment context loading.

The runtime publishes the blob store context as a base64-encoded JSON
object in `NETLIFY_BLOBS_CONTEXT`. This module is the only place that reads
it; everything else receives an explicit `ClientConfig`.
"""
from __future__ import annotations
import base64
import binascii
import json
import logging
import os
from dataclasses import dataclass, asdict
from typing import Any, Mapping, MutableMapping, Optional

from blobs_lib.client.config import ClientConfig
from blobs_lib.errors import ConfigurationError

logger = logging.getLogger(__name__)

CONTEXT_VARIABLE = "NETLIFY_BLOBS_CONTEXT"

# JSON field name -> EnvironmentContext attribute
_CONTEXT_FIELDS = {
    "apiURL": "api_url",
    "deployID": "deploy_id",
    "edgeURL": "edge_url",
    "siteID": "site_id",
    "token": "token",
    "uncachedEdgeURL": "uncached_edge_url",
}

_CLIENT_OPTIONS = (
    "api_url",
    "edge_url",
    "uncached_edge_url",
    "consistency",
    "retry_delay",
    "timeout",
    "transport",
)


@dataclass
class EnvironmentContext:
    api_url: Optional[str] = None
    deploy_id: Optional[str] = None
    edge_url: Optional[str] = None
    site_id: Optional[str] = None
    token: Optional[str] = None
    uncached_edge_url: Optional[str] = None

    def to_json(self) -> dict:
        reverse = {attr: name for name, attr in _CONTEXT_FIELDS.items()}
        return {reverse[k]: v for k, v in asdict(self).items() if v is not None}


def get_environment_context(environ: Optional[Mapping[str, str]] = None) -> EnvironmentContext:
    """Parse the context variable; a missing or unreadable value yields an empty context."""
    env = os.environ if environ is None else environ
    raw = env.get(CONTEXT_VARIABLE)
    if not raw:
        return EnvironmentContext()
    try:
        data = json.loads(base64.b64decode(raw).decode("utf-8"))
    except (binascii.Error, UnicodeDecodeError, ValueError):
        logger.warning("Ignoring unreadable %s value", CONTEXT_VARIABLE)
        return EnvironmentContext()
    if not isinstance(data, dict):
        return EnvironmentContext()
    return EnvironmentContext(**{attr: data.get(name) for name, attr in _CONTEXT_FIELDS.items()})


def set_environment_context(context: EnvironmentContext, environ: Optional[MutableMapping[str, str]] = None) -> None:
    env = os.environ if environ is None else environ
    payload = json.dumps(context.to_json()).encode("utf-8")
    env[CONTEXT_VARIABLE] = base64.b64encode(payload).decode("ascii")


def connect_lambda(event: Mapping[str, Any], environ: Optional[MutableMapping[str, str]] = None) -> EnvironmentContext:
    """Publish the context carried by a Lambda-style invocation event.

    The event holds a base64 JSON `blobs` field with the edge `url` and
    `token`; site and deploy IDs travel as request headers.
    """
    data = json.loads(base64.b64decode(event["blobs"]).decode("utf-8"))
    headers = event.get("headers") or {}
    context = EnvironmentContext(
        deploy_id=headers.get("x-nf-deploy-id"),
        edge_url=data.get("url"),
        site_id=headers.get("x-nf-site-id"),
        token=data.get("token"),
    )
    set_environment_context(context, environ)
    return context


def get_client_config(options: Optional[Mapping[str, Any]] = None,
                      context: Optional[EnvironmentContext] = None) -> ClientConfig:
    """Merge explicit options with the environment context into a ClientConfig.

    Values published in the environment context win over explicit
    options; an option fills in whatever the context leaves unset. Raises
    ConfigurationError when no site ID or token is available.
    """
    opts = dict(options or {})
    ctx = context if context is not None else get_environment_context()

    explicit_site_id = opts.pop("site_id", None)
    explicit_token = opts.pop("token", None)
    site_id = ctx.site_id or explicit_site_id
    token = ctx.token or explicit_token
    if not site_id or not token:
        raise ConfigurationError(["site_id", "token"])

    unknown = set(opts) - set(_CLIENT_OPTIONS)
    if unknown:
        raise TypeError(f"Unknown client options: {', '.join(sorted(unknown))}")

    values = {key: value for key, value in opts.items() if value is not None}
    for attr in ("api_url", "edge_url", "uncached_edge_url"):
        if getattr(ctx, attr):
            values[attr] = getattr(ctx, attr)
    return ClientConfig(site_id=site_id, token=token, **values)
