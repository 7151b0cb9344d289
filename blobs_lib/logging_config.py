from __future__ import annotations
import logging
from pathlib import Path
from typing import Optional

import yaml

LOG_FORMAT = '%(asctime)s %(levelname)s [%(name)s]: %(message)s'
DEFAULT_LOG_LEVEL = logging.WARNING


def _level_from_file(config_path: Path) -> Optional[int]:
    try:
        with config_path.open('r', encoding='utf-8') as f:
            cfg = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError):
        logging.getLogger(__name__).warning("Could not read log level from %s", config_path)
        return None
    level = cfg.get('log_level') if isinstance(cfg, dict) else None
    if isinstance(level, str):
        numeric = getattr(logging, level.upper(), None)
        if isinstance(numeric, int):
            return numeric
    return None


def configure_logging(config_path: Optional[Path] = None, log_level: Optional[str] = None,
                      debug: bool = False) -> logging.Logger:
    """Configure root logging for the blob server.

    The level comes from `log_level`, else from a `log_level` entry in the
    YAML file at `config_path`, else WARNING. `debug` additionally lowers
    the `blobs_lib` loggers to DEBUG so every request is logged.
    Returns a module logger for the caller.
    """
    level = DEFAULT_LOG_LEVEL
    if log_level:
        numeric = getattr(logging, log_level.upper(), None)
        if isinstance(numeric, int):
            level = numeric
    elif config_path is not None and Path(config_path).exists():
        level = _level_from_file(Path(config_path)) or DEFAULT_LOG_LEVEL

    # Reconfigure root handlers to use the selected level and format
    for handler in logging.root.handlers[:]:
        logging.root.removeHandler(handler)
    logging.basicConfig(level=level, format=LOG_FORMAT)

    logging.getLogger('blobs_lib').setLevel(logging.DEBUG if debug else logging.NOTSET)
    # Keep known noisy libraries quiet by default
    logging.getLogger('httpx').setLevel(logging.WARNING)
    logging.getLogger('httpcore').setLevel(logging.WARNING)
    logging.getLogger('uvicorn.access').setLevel(logging.WARNING)

    logger = logging.getLogger(__name__)
    logger.info("Log level set to %s", logging.getLevelName(level))
    return logger
