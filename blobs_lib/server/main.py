"""Application factory for the local blob server.

`create_app(config)` composes the storage, the URL signer and the config
into a service container and registers the routes. Nothing happens at
import time, so tests can build as many isolated apps as they need:

    from blobs_lib.server import create_app, ServerConfig
    app = create_app(ServerConfig(directory=tmp_path, token="secret"))
"""
from pathlib import Path
from typing import Optional

from fastapi import FastAPI

from blobs_lib.logging_config import configure_logging
from blobs_lib.server.auth import UrlSigner
from blobs_lib.server.config import ServerConfig
from blobs_lib.server.storage import LocalStorage
from blobs_lib.services import ServiceContainer


def create_app(config: ServerConfig, config_path: Optional[Path] = None) -> FastAPI:
    """Create and return a configured FastAPI application."""
    logger = configure_logging(config_path, log_level=config.log_level, debug=config.debug)

    storage = LocalStorage(config.directory, page_size=config.page_size)
    signer = UrlSigner(config.token, ttl=config.signed_url_ttl)

    container = ServiceContainer()
    container.register_singleton("server_config", config)
    container.register_singleton("storage", storage)
    container.register_singleton("url_signer", signer)

    # The edge route catches every path, so the generated docs are disabled.
    app = FastAPI(title="Local Blob Server", docs_url=None, redoc_url=None, openapi_url=None)
    app.state.container = container

    from blobs_lib.server.api import control_router, edge_router

    # Control-plane routes first: the edge route matches everything.
    app.include_router(control_router)
    app.include_router(edge_router)

    if not config.token:
        logger.warning("No token configured: authentication checks are disabled")
    logger.info("Serving blobs from %s", storage.directory.resolve())
    return app
