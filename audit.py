import logging
from dataclasses import dataclass, field
from typing import Any, Protocol


class AuditSink(Protocol):
    def record(self, event: str, **fields: Any) -> None: ...


class LoggingAuditSink:
    def __init__(self, logger_name: str = "budget.audit") -> None:
        self.logger = logging.getLogger(logger_name)

    def record(self, event: str, **fields: Any) -> None:
        details = " ".join(f"{key}={value}" for key, value in fields.items())
        self.logger.info(f"[AUDIT] {event} {details}".rstrip())


@dataclass
class RecordingAuditSink:
    """Keeps events in memory; handy for tests and scripts."""

    events: list[tuple[str, dict[str, Any]]] = field(default_factory=list)

    def record(self, event: str, **fields: Any) -> None:
        self.events.append((event, fields))

    def names(self) -> list[str]:
        return [name for name, _ in self.events]


default_audit_sink = LoggingAuditSink()
