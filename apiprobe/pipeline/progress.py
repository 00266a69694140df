import logging
from typing import Awaitable, Callable

from apiprobe.models.report import LogEvent

log = logging.getLogger(__name__)

Sink = Callable[[LogEvent], Awaitable[None]]

_LEVELS = {
    "info": logging.INFO,
    "success": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


class ProgressEmitter:
    """Fans pipeline milestones out to the log and to any registered sinks.

    Delivery is best-effort: a sink that raises is logged and dropped.
    """

    def __init__(self, sinks: list[Sink] | None = None) -> None:
        self.sinks: list[Sink] = list(sinks or [])
        self.events: list[LogEvent] = []

    def add_sink(self, sink: Sink) -> None:
        self.sinks.append(sink)

    async def emit(self, message: str, severity: str = "info") -> LogEvent:
        event = LogEvent(message=message, severity=severity)
        self.events.append(event)
        log.log(_LEVELS.get(severity, logging.INFO), "%s", message)

        failed: list[Sink] = []
        for sink in self.sinks:
            try:
                await sink(event)
            except Exception:
                log.warning("progress sink %r failed, dropping it", sink, exc_info=True)
                failed.append(sink)
        for sink in failed:
            self.sinks.remove(sink)
        return event
