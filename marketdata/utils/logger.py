"""Structured logging module with JSON output support."""

import json
import sys
import traceback
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from marketdata.utils.config import config
from marketdata.utils.trace_context import get_current_trace


class StructuredLogger:
    """Logger that outputs JSON-formatted log entries."""

    LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

    def __init__(self, component: str, file_path: str | None = None):
        """
        Initialize the structured logger.

        Args:
            component: Name of the component using this logger
            file_path: Optional path to also append logs to; defaults to LOG_FILE
        """
        self.component = component
        self.file_path = file_path or config.server.log_file
        if self.file_path:
            Path(self.file_path).parent.mkdir(parents=True, exist_ok=True)

    def _format_log_entry(
        self,
        level: str,
        message: str,
        context: dict[str, Any] | None = None,
        exception: dict[str, Any] | None = None,
    ) -> str:
        """
        Format a log entry as JSON.

        The current trace ID, when one is set, is attached to every entry.
        """
        entry: dict[str, Any] = {
            "timestamp": datetime.now(UTC).isoformat().replace("+00:00", "Z"),
            "level": level,
            "component": self.component,
            "message": message,
        }

        trace_id = get_current_trace()
        if trace_id:
            entry["trace_id"] = trace_id

        if context:
            entry["context"] = context

        if exception:
            entry["exception"] = exception

        return json.dumps(entry, default=str)

    def _write_log(self, log_entry: str) -> None:
        try:
            print(log_entry, file=sys.stdout)
            if self.file_path:
                with open(self.file_path, "a") as f:
                    f.write(log_entry + "\n")
        except OSError as e:
            print(f"Failed to write log: {e}", file=sys.stderr)

    @staticmethod
    def _describe_exception(exception: BaseException | None) -> dict[str, Any] | None:
        if exception is None:
            return None
        return {
            "type": type(exception).__name__,
            "message": str(exception),
            "stack_trace": "".join(
                traceback.format_exception(type(exception), exception, exception.__traceback__)
            ),
        }

    def debug(self, message: str, context: dict[str, Any] | None = None) -> None:
        """Log a debug message."""
        self._write_log(self._format_log_entry("DEBUG", message, context))

    def info(self, message: str, context: dict[str, Any] | None = None) -> None:
        """Log an info message."""
        self._write_log(self._format_log_entry("INFO", message, context))

    def warning(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        exception: BaseException | None = None,
    ) -> None:
        """Log a warning message, optionally with the exception that caused it."""
        exc_dict = self._describe_exception(exception)
        self._write_log(self._format_log_entry("WARNING", message, context, exc_dict))

    def error(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        exception: BaseException | None = None,
    ) -> None:
        """Log an error message with optional exception details."""
        exc_dict = self._describe_exception(exception)
        self._write_log(self._format_log_entry("ERROR", message, context, exc_dict))

    def critical(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        exception: BaseException | None = None,
    ) -> None:
        """Log a critical message with optional exception details."""
        exc_dict = self._describe_exception(exception)
        self._write_log(self._format_log_entry("CRITICAL", message, context, exc_dict))

    def log(
        self,
        level: str,
        message: str,
        context: dict[str, Any] | None = None,
        exception: BaseException | None = None,
    ) -> None:
        """
        Log a message with specified level.

        Unknown levels fall back to INFO.
        """
        level = level.upper()
        if level == "DEBUG":
            self.debug(message, context)
        elif level == "INFO":
            self.info(message, context)
        elif level == "WARNING":
            self.warning(message, context, exception)
        elif level == "ERROR":
            self.error(message, context, exception)
        elif level == "CRITICAL":
            self.critical(message, context, exception)
        else:
            self.info(message, context)
