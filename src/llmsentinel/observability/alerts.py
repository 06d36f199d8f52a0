# src/llmsentinel/observability/alerts.py
"""
Alert events and the JSONL alert log.

An AlertEvent is what a metrics/events backend calls an "event": a titled,
tagged message with a severity. The AlertLog appends them to a JSONL file,
rotating it by size.
"""

from __future__ import annotations

import logging
import shutil
import threading
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import List

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

# Default maximum file size before rotation (bytes)
DEFAULT_MAX_FILE_SIZE = 50 * 1024 * 1024

# Default maximum rotated files to keep
DEFAULT_MAX_FILES = 5


class AlertType(str, Enum):
    """Alert severities understood by the events backend."""

    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class AlertEvent(BaseModel):
    """A high-severity notification."""

    title: str
    text: str
    alert_type: AlertType = AlertType.WARNING
    tags: List[str] = Field(default_factory=list)
    source_type_name: str = "sentinel"
    date_happened: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def to_jsonl(self) -> str:
        return self.model_dump_json()

    @classmethod
    def from_jsonl(cls, line: str) -> AlertEvent:
        return cls.model_validate_json(line)


class AlertLog:
    """
    Appends alerts to a JSONL file with size-based rotation.

    Args:
        log_path: Path to the active log file.
        max_bytes: Rotate once the file reaches this size. 0 disables rotation.
        max_files: Rotated files to keep. 0 keeps all.
    """

    def __init__(
        self,
        log_path: str | Path,
        max_bytes: int = DEFAULT_MAX_FILE_SIZE,
        max_files: int = DEFAULT_MAX_FILES,
    ):
        self._log_path = Path(log_path).expanduser().resolve()
        self._max_bytes = max_bytes
        self._max_files = max_files
        self._lock = threading.Lock()
        self._bytes_written = 0

        self._log_path.parent.mkdir(parents=True, exist_ok=True)
        if self._log_path.exists():
            self._bytes_written = self._log_path.stat().st_size

    @property
    def log_path(self) -> Path:
        return self._log_path

    def write(self, alert: AlertEvent) -> None:
        """
        Append one alert.

        Raises:
            OSError: If the file cannot be written.
        """
        line = alert.to_jsonl() + "\n"
        with self._lock:
            if self._max_bytes and self._bytes_written >= self._max_bytes:
                self._rotate()
            with open(self._log_path, "a", encoding="utf-8") as f:
                f.write(line)
            self._bytes_written += len(line.encode("utf-8"))

    def _rotate(self) -> None:
        if not self._log_path.exists():
            return
        try:
            timestamp = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S_%f")
            rotated_path = self._log_path.parent / f"{self._log_path.stem}_{timestamp}{self._log_path.suffix}"
            shutil.move(str(self._log_path), str(rotated_path))
            self._bytes_written = 0
            logger.debug(f"Rotated alert log to {rotated_path.name}")
            self._cleanup_old_files()
        except OSError as e:
            logger.error(f"Failed to rotate alert log: {e}")

    def _cleanup_old_files(self) -> None:
        if self._max_files == 0:
            return
        rotated = sorted(
            self._log_path.parent.glob(f"{self._log_path.stem}_*{self._log_path.suffix}"),
            key=lambda p: p.stat().st_mtime,
            reverse=True,
        )
        for old_file in rotated[self._max_files:]:
            old_file.unlink()
            logger.debug(f"Removed old alert log: {old_file.name}")


def load_alerts(log_path: str | Path) -> List[AlertEvent]:
    """Read every alert from a JSONL alert log, skipping malformed lines."""
    path = Path(log_path).expanduser()
    alerts: List[AlertEvent] = []
    if not path.exists():
        return alerts
    with open(path, encoding="utf-8") as f:
        for line_no, line in enumerate(f, 1):
            line = line.strip()
            if not line:
                continue
            try:
                alerts.append(AlertEvent.from_jsonl(line))
            except ValueError as e:
                logger.warning(f"Skipping malformed alert on line {line_no} of {path}: {e}")
    return alerts
