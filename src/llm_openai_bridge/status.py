"""Outward reflection of server state (running/stopped, start failures)."""

from collections.abc import Callable

from llm_openai_bridge.utils import get_logger

logger = get_logger(__name__)

StateListener = Callable[[bool, str | None], None]


class StatusReflector:
    """Keeps the last known server state and fans it out to listeners.

    Listeners receive ``(running, url)``. A failing listener is logged and
    skipped so one broken consumer cannot block the rest.
    """

    def __init__(self) -> None:
        self.running = False
        self.url: str | None = None
        self.last_error: str | None = None
        self._listeners: list[StateListener] = []

    def subscribe(self, listener: StateListener) -> None:
        self._listeners.append(listener)

    def update(self, running: bool, url: str | None = None) -> None:
        self.running = running
        self.url = url if running else None
        if running:
            self.last_error = None
        logger.info("status.update", running=running, url=self.url)
        for listener in list(self._listeners):
            try:
                listener(running, self.url)
            except Exception as e:
                logger.warning("status.listener_failed", error=str(e))

    def report_error(self, message: str) -> None:
        self.last_error = message
        logger.error("status.error", message=message)

    def report_info(self, message: str) -> None:
        logger.info("status.info", message=message)

    def describe(self) -> str:
        if self.running:
            return f"Server is running on {self.url}"
        return "Server is not running"
