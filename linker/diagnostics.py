"""Structured diagnostic events emitted by the linking core."""
from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Deque, Iterator, List


class DiagnosticKind(str, Enum):
    CONFIG = "config"
    MANIFEST = "manifest"
    CYCLE = "cycle"
    UNORDERED = "unordered"
    BUILD_FAILED = "build-failed"
    LINK_FAILED = "link-failed"
    RECURSION_GUARD = "recursion-guard"
    WATCH = "watch"


class Severity(str, Enum):
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


@dataclass(frozen=True, slots=True)
class Diagnostic:
    """A single event: what happened, to which package, and details."""

    kind: DiagnosticKind
    package: str | None
    detail: str
    severity: Severity = Severity.WARNING
    depth: int = 0

    def format(self) -> str:
        indent = "  " * self.depth
        if self.package:
            return f"{indent}[{self.kind.value}] {self.package}: {self.detail}"
        return f"{indent}[{self.kind.value}] {self.detail}"


Listener = Callable[[Diagnostic], None]

DEFAULT_MAX_EVENTS = 1000


class DiagnosticLog:
    """Collects diagnostics and forwards them to subscribed listeners.

    Only the most recent ``max_events`` diagnostics are retained; listeners
    still see every event. ``None`` keeps everything.
    """

    def __init__(self, max_events: int | None = DEFAULT_MAX_EVENTS) -> None:
        self.events: Deque[Diagnostic] = deque(maxlen=max_events)
        self._listeners: List[Listener] = []

    def subscribe(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def emit(self, diagnostic: Diagnostic) -> Diagnostic:
        self.events.append(diagnostic)
        for listener in self._listeners:
            listener(diagnostic)
        return diagnostic

    def debug(self, kind: DiagnosticKind, package: str | None, detail: str, *, depth: int = 0) -> Diagnostic:
        return self.emit(Diagnostic(kind, package, detail, Severity.DEBUG, depth))

    def info(self, kind: DiagnosticKind, package: str | None, detail: str, *, depth: int = 0) -> Diagnostic:
        return self.emit(Diagnostic(kind, package, detail, Severity.INFO, depth))

    def warning(self, kind: DiagnosticKind, package: str | None, detail: str, *, depth: int = 0) -> Diagnostic:
        return self.emit(Diagnostic(kind, package, detail, Severity.WARNING, depth))

    def error(self, kind: DiagnosticKind, package: str | None, detail: str, *, depth: int = 0) -> Diagnostic:
        return self.emit(Diagnostic(kind, package, detail, Severity.ERROR, depth))

    def of_kind(self, kind: DiagnosticKind) -> List[Diagnostic]:
        return [event for event in self.events if event.kind is kind]

    def __iter__(self) -> Iterator[Diagnostic]:
        return iter(self.events)

    def __len__(self) -> int:
        return len(self.events)
