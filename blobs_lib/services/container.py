from typing import Any, Dict


class ServiceContainer:
    """Registry of the objects the blob server routes need at request time.

    `create_app` registers the storage, the URL signer and the server
    config here; route handlers look them up by name through
    `resolve_service`.
    """

    def __init__(self) -> None:
        self._instances: Dict[str, Any] = {}

    def register_singleton(self, name: str, instance: Any) -> None:
        self._instances[name] = instance

    def get(self, name: str) -> Any:
        try:
            return self._instances[name]
        except KeyError:
            raise KeyError(f"No service registered for '{name}'") from None
