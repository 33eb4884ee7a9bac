"""Observer port for the config domain — defines events in domain language."""

from typing import Protocol


class ConfigObserver(Protocol):
    def config_loaded(self, name: str, version: str, evaluators: int) -> None: ...

    def config_handshake_timeout_warning(self, timeout_seconds: float) -> None: ...
