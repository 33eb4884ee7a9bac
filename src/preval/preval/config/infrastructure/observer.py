"""Structlog implementation of the ConfigObserver port."""

import structlog


class StructlogConfigObserver:
    """Delegates config domain events to structlog.

    Satisfies the ConfigObserver protocol structurally.
    """

    def __init__(self) -> None:
        self._log = structlog.get_logger()

    def config_loaded(self, name: str, version: str, evaluators: int) -> None:
        self._log.info(
            "config.loaded", name=name, version=version, evaluators=evaluators
        )

    def config_handshake_timeout_warning(self, timeout_seconds: float) -> None:
        self._log.warning(
            "config.handshake_timeout_warning",
            timeout_seconds=timeout_seconds,
            message="Long handshake timeouts delay detection of a silent evaluator",
        )
