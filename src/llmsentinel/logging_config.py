# src/llmsentinel/logging_config.py
"""
Logging configuration for the LLM Sentinel analyzer.

Every module logs through ``logging.getLogger(__name__)``; this module wires
the handlers once at process start-up. Configuration comes from the
``[logging]`` section of the analyzer config (see ``llmsentinel.config``) and
supports:

- Console logging with display-level gating (see DisplayFilter)
- File logging, either one timestamped file per run or a single rotating file
- Per-component log level overrides

Key concepts:

    **Display filter**: When ``console_enabled=False``, the console handler
    still exists but only passes through records that carry
    ``extra={"display": True}``. Operator-facing messages (consumer started,
    summary printed) reach the terminal while per-event chatter stays in the
    log file.

    **File rotation**: ``file_mode="single"`` uses a ``RotatingFileHandler``
    with configurable max size and backup count. ``file_mode="per_run"``
    creates a new timestamped file each invocation.

Usage:
    from llmsentinel.logging_config import configure_logging, log_display

    configure_logging(app_name="llmsentinel", config=cfg.logging.model_dump())

    logger = logging.getLogger("llmsentinel.cli")
    log_display(logger, logging.INFO, "Replaying %d events", count)
"""

import logging
import os
import sys
from datetime import datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Optional

DEFAULT_LOGGING_CONFIG: dict[str, Any] = {
    "console_enabled": False,
    "console_level": "WARNING",
    "console_format": "%(levelname)s - %(message)s",
    "file_enabled": True,
    "file_level": "DEBUG",
    "file_directory": "~/.local/share/llmsentinel/logs",
    "file_mode": "per_run",
    "file_name_pattern": "{app}_{timestamp:%Y%m%d_%H%M%S}.log",
    "file_single_name": "{app}.log",
    "file_format": "%(asctime)s [%(levelname)-8s] %(name)-30s - %(message)s (%(filename)s:%(lineno)d)",
    "rotation_max_bytes": 10 * 1024 * 1024,  # 10 MB
    "rotation_backup_count": 5,
    "display_min_level": "INFO",
    "components": {
        "llmsentinel": "INFO",
        "aiosqlite": "WARNING",
        "asyncio": "WARNING",
        "google_genai": "WARNING",
        "httpx": "WARNING",
        "httpcore": "WARNING",
        "urllib3": "WARNING",
    },
}


class DisplayFilter(logging.Filter):
    """Controls which log records pass through to the console handler.

    Behavior matrix::

        +------------------------+--------------+-----------------+
        | console_global         | display=True | display=False/  |
        |                        |              | absent          |
        +------------------------+--------------+-----------------+
        | True  (-v mode)        | PASS         | PASS            |
        | False (default/quiet)  | PASS*        | BLOCK           |
        +------------------------+--------------+-----------------+

        * subject to display_min_level
    """

    def __init__(
        self,
        console_globally_enabled: bool = False,
        display_min_level: int = logging.INFO,
    ) -> None:
        super().__init__()
        self.console_globally_enabled = console_globally_enabled
        self.display_min_level = display_min_level

    def filter(self, record: logging.LogRecord) -> bool:
        """Determine if the record should pass to console."""
        if self.console_globally_enabled:
            return True

        if getattr(record, "display", False):
            return record.levelno >= self.display_min_level

        return False


def _resolve_level(value: str | int, default: int) -> int:
    if isinstance(value, int):
        return value
    level = logging.getLevelName(str(value).upper())
    return level if isinstance(level, int) else default


class LoggingManager:
    """
    Singleton manager for the process-wide logging setup.

    Ensures logging is only configured once and allows the console level to
    be adjusted at runtime (the CLI's ``--verbose`` flag).
    """

    _instance: Optional["LoggingManager"] = None
    _configured: bool = False
    _log_file_path: Path | None = None
    _console_handler: logging.Handler | None = None
    _file_handler: logging.Handler | None = None

    def __new__(cls) -> "LoggingManager":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    @classmethod
    def is_configured(cls) -> bool:
        """Check if logging has been configured."""
        return cls._configured

    @classmethod
    def get_log_file_path(cls) -> Path | None:
        """Get the current log file path."""
        return cls._log_file_path

    def configure(
        self,
        app_name: str = "llmsentinel",
        config: dict[str, Any] | None = None,
        force_reconfigure: bool = False,
    ) -> Path | None:
        """
        Configure logging for the application.

        Args:
            app_name: Name of the application (used in the log filename).
            config: The ``[logging]`` configuration section. Missing keys fall
                back to ``DEFAULT_LOGGING_CONFIG``.
            force_reconfigure: If True, reconfigure even if already configured.

        Returns:
            Path to the log file, or None when file logging is disabled.
        """
        if self._configured and not force_reconfigure:
            return self._log_file_path

        log_config = {**DEFAULT_LOGGING_CONFIG, **(config or {})}

        root_logger = logging.getLogger()
        for handler in root_logger.handlers[:]:
            root_logger.removeHandler(handler)
            handler.close()
        root_logger.setLevel(logging.DEBUG)

        console_globally_enabled = bool(log_config.get("console_enabled", False))
        display_filter = DisplayFilter(
            console_globally_enabled=console_globally_enabled,
            display_min_level=_resolve_level(log_config.get("display_min_level", "INFO"), logging.INFO),
        )

        console_handler = logging.StreamHandler(sys.stderr)
        if console_globally_enabled:
            console_handler.setLevel(_resolve_level(log_config.get("console_level", "WARNING"), logging.WARNING))
        else:
            # The filter is the only gate while the console is "off".
            console_handler.setLevel(logging.DEBUG)
        console_handler.setFormatter(logging.Formatter(log_config["console_format"]))
        console_handler.addFilter(display_filter)
        root_logger.addHandler(console_handler)
        LoggingManager._console_handler = console_handler

        log_file_path: Path | None = None
        if log_config.get("file_enabled", True):
            file_handler, log_file_path = self._create_file_handler(log_config, app_name)
            if file_handler:
                root_logger.addHandler(file_handler)
                LoggingManager._file_handler = file_handler

        for component_name, level_str in log_config.get("components", {}).items():
            logging.getLogger(component_name).setLevel(_resolve_level(level_str, logging.INFO))

        LoggingManager._configured = True
        LoggingManager._log_file_path = log_file_path

        if log_file_path:
            logging.getLogger("llmsentinel.logging_config").debug(
                f"Logging configured. Log file: {log_file_path}"
            )
        return log_file_path

    def _create_file_handler(
        self, config: dict[str, Any], app_name: str
    ) -> tuple[logging.Handler | None, Path | None]:
        """Create the per-run or rotating file handler."""
        log_dir = Path(os.path.expanduser(config["file_directory"]))
        try:
            log_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            sys.stderr.write(f"Warning: Cannot create log directory {log_dir}: {e}\n")
            return None, None

        handler: logging.Handler
        if config.get("file_mode", "per_run") == "single":
            try:
                filename = config["file_single_name"].format(app=app_name)
            except (KeyError, ValueError):
                filename = f"{app_name}.log"
            log_file_path = log_dir / filename
            try:
                handler = RotatingFileHandler(
                    log_file_path,
                    maxBytes=config["rotation_max_bytes"],
                    backupCount=config["rotation_backup_count"],
                    encoding="utf-8",
                )
            except OSError as e:
                sys.stderr.write(f"Warning: Cannot create log file {log_file_path}: {e}\n")
                return None, None
        else:
            timestamp = datetime.now()
            try:
                filename = config["file_name_pattern"].format(app=app_name, timestamp=timestamp)
            except (KeyError, ValueError):
                filename = f"{app_name}_{timestamp.strftime('%Y%m%d_%H%M%S')}.log"
            log_file_path = log_dir / filename
            try:
                handler = logging.FileHandler(log_file_path, encoding="utf-8")
            except OSError as e:
                sys.stderr.write(f"Warning: Cannot create log file {log_file_path}: {e}\n")
                return None, None

        handler.setLevel(_resolve_level(config.get("file_level", "DEBUG"), logging.DEBUG))
        handler.setFormatter(logging.Formatter(config["file_format"]))
        return handler, log_file_path

    def set_console_level(self, level: str | int) -> None:
        """Open the console to every record at or above ``level``."""
        if self._console_handler is None:
            return
        self._console_handler.setLevel(_resolve_level(level, logging.WARNING))
        for flt in self._console_handler.filters:
            if isinstance(flt, DisplayFilter):
                flt.console_globally_enabled = True


def configure_logging(
    app_name: str = "llmsentinel",
    config: dict[str, Any] | None = None,
    force_reconfigure: bool = False,
) -> Path | None:
    """
    Configure logging for the analyzer process.

    Call this once at start-up, before the pipeline is built.

    Example:
        configure_logging(
            app_name="llmsentinel",
            config={"console_enabled": True, "file_enabled": False},
        )
    """
    return LoggingManager().configure(
        app_name=app_name,
        config=config,
        force_reconfigure=force_reconfigure,
    )


def log_display(
    logger: logging.Logger,
    level: int,
    msg: str,
    *args: Any,
    **kwargs: Any,
) -> None:
    """Log a message that also appears on the console in quiet mode.

    Wrapper around ``logger.log()`` that merges ``{"display": True}`` into
    ``extra`` so the record passes the :class:`DisplayFilter`.
    """
    extra = kwargs.pop("extra", None) or {}
    extra["display"] = True
    kwargs["extra"] = extra
    logger.log(level, msg, *args, **kwargs)


def set_console_level(level: str | int) -> None:
    """Change console log level at runtime."""
    LoggingManager().set_console_level(level)
