"""JSONL event log for pipeline observability."""

import json
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any


@dataclass
class LogEntry:
    """A single event in the log."""

    timestamp: str
    event: str
    chat_id: str | None = None
    user_id: int | None = None
    stage: str | None = None
    intent: str | None = None
    duration_ms: float | None = None
    error: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dict, excluding None values."""
        data = asdict(self)
        return {k: v for k, v in data.items() if v is not None and v != {}}


class JSONLLogger:
    """Logger that writes pipeline events in JSONL format."""

    def __init__(
        self,
        log_dir: str | Path | None = None,
        filename: str = "events.jsonl",
        max_size_mb: float = 10.0,
    ) -> None:
        if log_dir is None:
            log_dir = Path.home() / ".dumka" / "logs"
        self.log_dir = Path(log_dir)
        self.log_dir.mkdir(parents=True, exist_ok=True)
        self.filename = filename
        self.max_size_bytes = int(max_size_mb * 1024 * 1024)

    @property
    def log_path(self) -> Path:
        """Current log file path."""
        return self.log_dir / self.filename

    def _rotate_if_needed(self) -> None:
        if not self.log_path.exists():
            return

        if self.log_path.stat().st_size >= self.max_size_bytes:
            timestamp = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S_%f")
            rotated_name = f"{self.log_path.stem}_{timestamp}.jsonl"
            self.log_path.rename(self.log_dir / rotated_name)

    def _write(self, entry: LogEntry) -> None:
        self._rotate_if_needed()

        with open(self.log_path, "a", encoding="utf-8") as f:
            f.write(json.dumps(entry.to_dict(), ensure_ascii=False) + "\n")

    def log(
        self,
        event: str,
        *,
        chat_id: str | None = None,
        user_id: int | None = None,
        stage: str | None = None,
        intent: str | None = None,
        duration_ms: float | None = None,
        error: str | None = None,
        **extra: Any,
    ) -> None:
        """Log an event."""
        entry = LogEntry(
            timestamp=datetime.now(timezone.utc).isoformat(),
            event=event,
            chat_id=chat_id,
            user_id=user_id,
            stage=stage,
            intent=intent,
            duration_ms=duration_ms,
            error=error,
            extra=extra if extra else {},
        )
        self._write(entry)

    def log_query(
        self,
        question: str,
        sql: str,
        *,
        chat_id: str | None = None,
        duration_ms: float | None = None,
    ) -> None:
        """Log a translated query."""
        self.log(
            "query_translated",
            chat_id=chat_id,
            duration_ms=duration_ms,
            question=question,
            sql=sql,
        )

    def log_stage_failed(
        self,
        stage: str,
        error: str,
        *,
        chat_id: str | None = None,
        user_id: int | None = None,
        intent: str | None = None,
    ) -> None:
        """Log a pipeline stage that ended the message early."""
        self.log(
            "stage_failed",
            chat_id=chat_id,
            user_id=user_id,
            stage=stage,
            intent=intent,
            error=error,
        )

    def log_delivery(
        self,
        success: bool,
        *,
        chat_id: str | None = None,
        user_id: int | None = None,
        output_kind: str | None = None,
        error: str | None = None,
    ) -> None:
        """Log the outcome of sending an answer."""
        self.log(
            "delivered" if success else "delivery_failed",
            chat_id=chat_id,
            user_id=user_id,
            error=error if not success else None,
            output_kind=output_kind,
        )


# Global logger instance
_logger: JSONLLogger | None = None


def get_logger() -> JSONLLogger:
    """Get the global logger instance."""
    global _logger
    if _logger is None:
        _logger = JSONLLogger()
    return _logger


def configure_logger(log_dir: str | Path | None = None, max_size_mb: float = 10.0) -> JSONLLogger:
    """Configure and return the global logger."""
    global _logger
    _logger = JSONLLogger(log_dir=log_dir, max_size_mb=max_size_mb)
    return _logger
