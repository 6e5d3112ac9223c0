from __future__ import annotations

from pathlib import Path
from typing import List
import io
import tempfile
import threading
import time
import unittest

from watchdog.events import DirModifiedEvent, FileDeletedEvent, FileModifiedEvent, FileMovedEvent

from linker.config_loader import PackageDeclaration
from linker.console import Console
from linker.diagnostics import DiagnosticKind, DiagnosticLog
from linker.watcher import (
    Debouncer,
    PackageEventHandler,
    PackageWatcher,
    is_ignored,
    matches_patterns,
    watch_patterns_for,
)


def _wait_for(predicate, timeout: float = 5.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


class WatchPatternTests(unittest.TestCase):
    def setUp(self) -> None:
        self.temp_dir = tempfile.TemporaryDirectory()
        self.root = Path(self.temp_dir.name)

    def tearDown(self) -> None:
        self.temp_dir.cleanup()

    def test_defaults_to_src_when_present(self) -> None:
        self.assertEqual(watch_patterns_for(self.root), [str(self.root / "**" / "*")])
        (self.root / "src").mkdir()
        self.assertEqual(watch_patterns_for(self.root), [str(self.root / "src" / "**" / "*")])

    def test_custom_patterns_are_relative_to_package(self) -> None:
        patterns = watch_patterns_for(self.root, ["lib/**/*.ts", "/abs/**"])
        self.assertEqual(patterns, [str(self.root / "lib/**/*.ts"), "/abs/**"])

    def test_matching_and_ignoring(self) -> None:
        patterns = [str(self.root / "src" / "**" / "*")]
        self.assertTrue(matches_patterns(str(self.root / "src" / "deep" / "index.ts"), patterns))
        self.assertFalse(matches_patterns(str(self.root / "README.md"), patterns))
        self.assertTrue(is_ignored(str(self.root / "node_modules" / "x" / "index.js")))
        self.assertTrue(is_ignored(str(self.root / "src" / ".index.ts.swp")))
        self.assertTrue(is_ignored(str(self.root / "src" / ".cache" / "bundle.js")))
        self.assertTrue(is_ignored(str(self.root / ".turbo" / "cache" / "log.txt")))
        self.assertTrue(is_ignored(str(self.root / "coverage" / "lcov.info"), ["*/coverage/*"]))
        self.assertFalse(is_ignored(str(self.root / "src" / "index.ts")))


class DebouncerTests(unittest.TestCase):
    def test_burst_collapses_into_one_call_per_key(self) -> None:
        calls: List[str] = []
        debouncer = Debouncer(0.05, calls.append)

        for _ in range(5):
            debouncer.trigger("ui")
        debouncer.trigger("utils")

        self.assertTrue(_wait_for(lambda: len(calls) >= 2))
        time.sleep(0.15)
        self.assertEqual(sorted(calls), ["ui", "utils"])
        self.assertEqual(debouncer.pending(), [])

    def test_later_event_restarts_timer(self) -> None:
        calls: List[float] = []
        debouncer = Debouncer(0.2, lambda key: calls.append(time.monotonic()))

        start = time.monotonic()
        debouncer.trigger("ui")
        time.sleep(0.1)
        debouncer.trigger("ui")

        self.assertTrue(_wait_for(lambda: calls))
        self.assertGreaterEqual(calls[0] - start, 0.28)
        time.sleep(0.3)
        self.assertEqual(len(calls), 1)

    def test_callbacks_do_not_overlap(self) -> None:
        active = []
        overlaps = []
        finished = []
        lock = threading.Lock()

        def callback(key: str) -> None:
            with lock:
                active.append(key)
                if len(active) > 1:
                    overlaps.append(key)
            time.sleep(0.05)
            with lock:
                active.remove(key)
                finished.append(key)

        debouncer = Debouncer(0.01, callback)
        debouncer.trigger("a")
        debouncer.trigger("b")

        self.assertTrue(_wait_for(lambda: len(finished) == 2))
        self.assertEqual(overlaps, [])

    def test_cancel_all(self) -> None:
        calls: List[str] = []
        debouncer = Debouncer(0.1, calls.append)
        debouncer.trigger("ui")
        debouncer.cancel_all()
        time.sleep(0.2)
        self.assertEqual(calls, [])


class PackageEventHandlerTests(unittest.TestCase):
    def setUp(self) -> None:
        self.changes: List[tuple] = []
        self.handler = PackageEventHandler(
            {"ui": ["/work/ui/src/**/*"], "utils": ["/work/utils/**/*"]},
            lambda name, path: self.changes.append((name, path)),
        )

    def test_routes_file_events_to_matching_package(self) -> None:
        self.handler.on_any_event(FileModifiedEvent("/work/ui/src/button.tsx"))
        self.handler.on_any_event(FileMovedEvent("/work/utils/tmp.txt", "/work/utils/lib/index.js"))
        self.assertEqual(
            self.changes,
            [("ui", "/work/ui/src/button.tsx"), ("utils", "/work/utils/lib/index.js")],
        )

    def test_ignores_irrelevant_events(self) -> None:
        self.handler.on_any_event(DirModifiedEvent("/work/ui/src"))
        self.handler.on_any_event(FileDeletedEvent("/work/ui/src/old.ts"))
        self.handler.on_any_event(FileModifiedEvent("/work/ui/package.json"))
        self.handler.on_any_event(FileModifiedEvent("/work/utils/node_modules/x/index.js"))
        self.handler.on_any_event(FileModifiedEvent("/work/ui/src/.cache/bundle.js"))
        self.assertEqual(self.changes, [])


class PackageWatcherTests(unittest.TestCase):
    def setUp(self) -> None:
        self.temp_dir = tempfile.TemporaryDirectory()
        self.root = Path(self.temp_dir.name).resolve()
        (self.root / "ui" / "src").mkdir(parents=True)
        self.console = Console("none", color=False, stream=io.StringIO())
        self.declarations = {"ui": PackageDeclaration("ui", "ui")}

    def tearDown(self) -> None:
        self.temp_dir.cleanup()

    def test_change_rebuilds_only_that_package(self) -> None:
        rebuilt: List[str] = []
        watcher = PackageWatcher(self.declarations, self.root, rebuilt.append, self.console, debounce_seconds=0.01)

        self.assertEqual(watcher.watch_paths["ui"], [str(self.root / "ui" / "src" / "**" / "*")])
        watcher.handler.on_any_event(FileModifiedEvent(str(self.root / "ui" / "src" / "index.ts")))
        self.assertTrue(_wait_for(lambda: rebuilt == ["ui"]))

    def test_rebuild_errors_become_diagnostics(self) -> None:
        diagnostics = DiagnosticLog()

        def explode(name: str) -> None:
            raise RuntimeError("disk full")

        watcher = PackageWatcher(self.declarations, self.root, explode, self.console, diagnostics, debounce_seconds=0.01)
        watcher.handler.on_any_event(FileModifiedEvent(str(self.root / "ui" / "src" / "index.ts")))

        self.assertTrue(_wait_for(lambda: diagnostics.of_kind(DiagnosticKind.WATCH)))
        self.assertIn("disk full", diagnostics.of_kind(DiagnosticKind.WATCH)[0].detail)

    def test_start_and_stop(self) -> None:
        declarations = {**self.declarations, "gone": PackageDeclaration("gone", "missing")}
        diagnostics = DiagnosticLog()
        watcher = PackageWatcher(declarations, self.root, lambda name: None, self.console, diagnostics)
        watcher.start()
        try:
            self.assertEqual([event.package for event in diagnostics.of_kind(DiagnosticKind.WATCH)], ["gone"])
        finally:
            watcher.stop()


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
