"""Console output handler with configurable log level and optional color."""
from __future__ import annotations

from typing import TextIO
import os
import sys

from .diagnostics import Diagnostic, Severity


class Console:
    """Simple leveled console.

    Levels: none < error < warning < info < debug
    Default: 'info'
    """

    LEVELS = {
        "none": 0,
        "error": 1,
        "warning": 2,
        "info": 3,
        "debug": 4,
    }

    COLORS = {
        "reset": "\x1b[0m",
        "green": "\x1b[32m",
        "yellow": "\x1b[33m",
        "blue": "\x1b[34m",
        "cyan": "\x1b[36m",
        "red": "\x1b[31m",
        "gray": "\x1b[90m",
    }

    def __init__(
        self,
        level: str = "info",
        *,
        color: bool = True,
        dry_run: bool = False,
        stream: TextIO | None = None,
        error_stream: TextIO | None = None,
    ) -> None:
        self.level_name = level if level in self.LEVELS else "info"
        self.level = self.LEVELS[self.level_name]
        self.color = color and "NO_COLOR" not in os.environ
        self.dry_run = dry_run
        self._stream = stream
        self._error_stream = error_stream

    def _paint(self, message: str, color: str) -> str:
        if not self.color:
            return message
        return f"{self.COLORS[color]}{message}{self.COLORS['reset']}"

    def _write(self, message: str, *, error: bool = False) -> None:
        if error:
            print(message, file=self._error_stream or sys.stderr)
        else:
            print(message, file=self._stream or sys.stdout)

    def info(self, message: str) -> None:
        if self.level >= self.LEVELS["info"]:
            self._write(self._paint(message, "cyan"))

    def success(self, message: str) -> None:
        if self.level >= self.LEVELS["info"]:
            self._write(self._paint(f"[OK] {message}", "green"))

    def warning(self, message: str) -> None:
        if self.level >= self.LEVELS["warning"]:
            self._write(self._paint(f"[WARN] {message}", "yellow"))

    def error(self, message: str) -> None:
        if self.level >= self.LEVELS["error"]:
            self._write(self._paint(f"[ERROR] {message}", "red"), error=True)

    def debug(self, message: str) -> None:
        if self.level >= self.LEVELS["debug"]:
            self._write(self._paint(f"[DEBUG] {message}", "gray"))

    def dry(self, message: str) -> None:
        if self.dry_run:
            self._write(message)

    def report(self, diagnostic: Diagnostic) -> None:
        """Render a diagnostic event at its severity."""
        message = diagnostic.format()
        if diagnostic.severity is Severity.ERROR:
            self.error(message)
        elif diagnostic.severity is Severity.WARNING:
            self.warning(message)
        elif diagnostic.severity is Severity.INFO:
            self.info(message)
        else:
            self.debug(message)
