from .config import ServerConfig, load_server_config
from .main import create_app

__all__ = ["ServerConfig", "create_app", "load_server_config"]
