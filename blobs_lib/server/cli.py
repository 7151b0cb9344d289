"""Command line entry point for the local blob server."""
from __future__ import annotations
import argparse
from pathlib import Path
from typing import Iterable, Optional

from blobs_lib.server.config import load_server_config


def get_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(description="Serve a filesystem directory as a blob store")
    p.add_argument("--config", type=Path, help="YAML file with server settings")
    p.add_argument("--directory", help="Directory to read and write blobs from")
    p.add_argument("--host", help="Interface to bind (default 127.0.0.1)")
    p.add_argument("--port", type=int, help="Port to listen on (default 8000)")
    p.add_argument("--token", help="Require this bearer token on every request")
    p.add_argument("--page-size", type=int, dest="page_size", help="Entries per list page")
    p.add_argument("--log-level", dest="log_level", help="Root log level, e.g. INFO")
    p.add_argument("--debug", action="store_true", default=None, help="Log every request")
    return p


def parse_args(argv: Optional[Iterable[str]] = None) -> argparse.Namespace:
    return get_parser().parse_args(list(argv) if argv is not None else None)


def main(argv: Optional[Iterable[str]] = None) -> int:
    args = parse_args(argv)
    overrides = {k: v for k, v in vars(args).items() if k != "config"}
    config = load_server_config(args.config, **overrides)

    import uvicorn
    from blobs_lib.server.main import create_app

    app = create_app(config, config_path=args.config)
    uvicorn.run(app, host=config.host, port=config.port)
    return 0
