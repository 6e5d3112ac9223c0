"""Watch mode: rebuild and relink a package when its files change.

Watchdog delivers events on its observer threads. Events are debounced per
package with a ``threading.Timer``; a later event for the same package
restarts that package's timer. Rebuilds run one at a time under a lock, so
one rebuild always finishes before the next begins.
"""
from __future__ import annotations

from fnmatch import fnmatch
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Mapping, Sequence
import threading

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer
from watchdog.observers.api import BaseObserver

from .config_loader import PackageDeclaration
from .console import Console
from .diagnostics import DiagnosticKind, DiagnosticLog


DEFAULT_DEBOUNCE_SECONDS = 0.5

DEFAULT_IGNORED = (
    "*/node_modules/*",
    "*/dist/*",
    "*/build/*",
    "*/.git/*",
)


def watch_patterns_for(package_path: Path, patterns: Sequence[str] | None = None) -> List[str]:
    """Absolute glob patterns watched for a package."""
    package_path = Path(package_path)
    if patterns:
        return [
            pattern if Path(pattern).is_absolute() else str(package_path / pattern)
            for pattern in patterns
        ]
    src = package_path / "src"
    if src.is_dir():
        return [str(src / "**" / "*")]
    return [str(package_path / "**" / "*")]


def is_ignored(path: str, extra_patterns: Iterable[str] = ()) -> bool:
    """True when any path component starts with a dot or an ignore pattern matches."""
    if any(part.startswith(".") and part not in {".", ".."} for part in Path(path).parts):
        return True
    return any(fnmatch(path, pattern) for pattern in (*DEFAULT_IGNORED, *extra_patterns))


def matches_patterns(path: str, patterns: Iterable[str]) -> bool:
    # fnmatch's '*' crosses directory separators; "**/" may also match zero directories.
    return any(fnmatch(path, pattern) or fnmatch(path, pattern.replace("**/", "")) for pattern in patterns)


class Debouncer:
    """Coalesces bursts of events per key into one callback invocation."""

    def __init__(self, delay: float, callback: Callable[[str], None]) -> None:
        self.delay = delay
        self.callback = callback
        self._timers: Dict[str, threading.Timer] = {}
        self._timers_lock = threading.Lock()
        self._run_lock = threading.Lock()

    def trigger(self, key: str) -> None:
        with self._timers_lock:
            pending = self._timers.get(key)
            if pending is not None:
                pending.cancel()
            timer = threading.Timer(self.delay, self._fire, args=(key,))
            timer.daemon = True
            self._timers[key] = timer
            timer.start()

    def _fire(self, key: str) -> None:
        with self._timers_lock:
            if self._timers.get(key) is not threading.current_thread():
                return
            del self._timers[key]
        with self._run_lock:
            self.callback(key)

    def pending(self) -> List[str]:
        with self._timers_lock:
            return list(self._timers)

    def cancel_all(self) -> None:
        with self._timers_lock:
            for timer in self._timers.values():
                timer.cancel()
            self._timers.clear()


class PackageEventHandler(FileSystemEventHandler):
    """Maps file events to the package whose watch patterns match."""

    def __init__(
        self,
        watch_paths: Mapping[str, Sequence[str]],
        on_change: Callable[[str, str], None],
        *,
        ignore_patterns: Sequence[str] = (),
    ) -> None:
        super().__init__()
        self.watch_paths = dict(watch_paths)
        self.on_change = on_change
        self.ignore_patterns = list(ignore_patterns)

    def package_for(self, path: str) -> str | None:
        for name, patterns in self.watch_paths.items():
            if matches_patterns(path, patterns):
                return name
        return None

    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.is_directory or event.event_type not in {"modified", "created", "moved"}:
            return
        raw_path = getattr(event, "dest_path", "") or event.src_path
        path = raw_path.decode() if isinstance(raw_path, bytes) else str(raw_path)
        if is_ignored(path, self.ignore_patterns):
            return
        name = self.package_for(path)
        if name is not None:
            self.on_change(name, path)


class PackageWatcher:
    """Watches every declared package and rebuilds the one that changed."""

    def __init__(
        self,
        declarations: Mapping[str, PackageDeclaration],
        project_root: Path,
        rebuild: Callable[[str], object],
        console: Console,
        diagnostics: DiagnosticLog | None = None,
        *,
        debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
        ignore_patterns: Sequence[str] = (),
    ) -> None:
        self.declarations = dict(declarations)
        self.project_root = Path(project_root)
        self.console = console
        self.diagnostics = diagnostics if diagnostics is not None else DiagnosticLog()
        self._rebuild = rebuild
        self.package_paths: Dict[str, Path] = {
            name: declaration.resolved_path(self.project_root)
            for name, declaration in self.declarations.items()
        }
        self.watch_paths: Dict[str, List[str]] = {
            name: watch_patterns_for(self.package_paths[name], declaration.watch_patterns)
            for name, declaration in self.declarations.items()
        }
        self.debouncer = Debouncer(debounce_seconds, self._run_rebuild)
        self.handler = PackageEventHandler(self.watch_paths, self._on_change, ignore_patterns=ignore_patterns)
        self._observer: BaseObserver | None = None

    def _on_change(self, name: str, path: str) -> None:
        self.console.info(f"Change detected: {path}")
        self.debouncer.trigger(name)

    def _run_rebuild(self, name: str) -> None:
        self.console.info(f"Rebuilding and relinking {name}...")
        try:
            self._rebuild(name)
        except Exception as exc:
            self.diagnostics.error(DiagnosticKind.WATCH, name, f"Rebuild failed: {exc}")

    def start(self) -> None:
        observer = Observer()
        self.console.info("Watching for changes in:")
        for name, package_path in self.package_paths.items():
            self.console.info(f"  - {name}: {', '.join(self.watch_paths[name])}")
            if not package_path.is_dir():
                self.diagnostics.warning(DiagnosticKind.WATCH, name, f"Package path does not exist: {package_path}")
                continue
            observer.schedule(self.handler, str(package_path), recursive=True)
        observer.start()
        self._observer = observer
        self.console.success("Watch mode started. Press Ctrl+C to stop.")

    def stop(self) -> None:
        self.debouncer.cancel_all()
        if self._observer is not None:
            self._observer.stop()
            self._observer.join()
            self._observer = None

    def wait(self) -> None:
        """Block until interrupted, then stop the observer."""
        try:
            while self._observer is not None and self._observer.is_alive():
                self._observer.join(timeout=1.0)
        except KeyboardInterrupt:
            self.console.info("Stopping watch mode...")
        finally:
            self.stop()
