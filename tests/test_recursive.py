from __future__ import annotations

from pathlib import Path
from typing import List, Tuple
import io
import tempfile
import unittest

from linker.config_loader import CONFIG_FILE, PackageDeclaration, read_config
from linker.console import Console
from linker.diagnostics import DiagnosticKind, DiagnosticLog
from linker.recursive import RecursiveExpander


class FakeLinker:
    def __init__(self, *, failing_builds: Tuple[str, ...] = (), failing_links: Tuple[str, ...] = ()) -> None:
        self.calls: List[Tuple[str, ...]] = []
        self.failing_builds = failing_builds
        self.failing_links = failing_links

    def build(self, declaration: PackageDeclaration, base: Path | None = None) -> bool:
        self.calls.append(("build", declaration.name, declaration.path))
        return declaration.name not in self.failing_builds

    def create_global_link(self, declaration: PackageDeclaration, base: Path | None = None) -> bool:
        self.calls.append(("global-link", declaration.name, declaration.path))
        return declaration.name not in self.failing_links

    def link_into_project(self, name: str, project_dir: Path | None = None) -> bool:
        self.calls.append(("link", name, str(project_dir)))
        return True


class RecursiveExpanderTests(unittest.TestCase):
    def setUp(self) -> None:
        self.temp_dir = tempfile.TemporaryDirectory()
        self.root = Path(self.temp_dir.name).resolve()
        self.console = Console("none", color=False, stream=io.StringIO())
        self.reads: List[Path] = []

    def tearDown(self) -> None:
        self.temp_dir.cleanup()

    def make_dir(self, relative: str, config: str | None = None) -> Path:
        directory = self.root / relative
        directory.mkdir(parents=True, exist_ok=True)
        if config is not None:
            (directory / CONFIG_FILE).write_text(config)
        return directory

    def counting_reader(self, path: Path, diagnostics: DiagnosticLog):
        self.reads.append(path)
        return read_config(path, diagnostics)

    def expander(self, linker: FakeLinker, diagnostics: DiagnosticLog | None = None) -> RecursiveExpander:
        return RecursiveExpander(linker, self.console, diagnostics, read_nested=self.counting_reader)

    def test_nested_paths_resolve_against_declaring_package(self) -> None:
        a_dir = self.make_dir("work/a", "d = ../d [npm run compile]\n")
        d_dir = self.make_dir("work/d")
        linker = FakeLinker()

        report = self.expander(linker).expand({"a": PackageDeclaration("a", "work/a")}, self.root)

        self.assertTrue(report.success)
        self.assertEqual(
            linker.calls,
            [
                ("build", "d", str(d_dir)),
                ("global-link", "d", str(d_dir)),
                ("link", "d", str(a_dir)),
            ],
        )
        self.assertEqual(report.linked, [("d", "a")])
        self.assertEqual(report.processed, {("a", str(a_dir))})

    def test_back_reference_to_ancestor_is_absorbed(self) -> None:
        a_dir = self.make_dir("a", "d = ../d\n")
        d_dir = self.make_dir("d", "a = ../a\n")
        linker = FakeLinker()
        diagnostics = DiagnosticLog()

        report = self.expander(linker, diagnostics).expand({"a": PackageDeclaration("a", "a")}, self.root)

        self.assertEqual(self.reads, [a_dir, d_dir])
        self.assertEqual(report.processed, {("a", str(a_dir)), ("d", str(d_dir))})
        self.assertEqual(report.linked, [("d", "a"), ("a", "d")])
        self.assertEqual(len(diagnostics.of_kind(DiagnosticKind.RECURSION_GUARD)), 1)

    def test_diamond_expands_shared_package_once(self) -> None:
        self.make_dir("app-a", "shared = ../shared\n")
        self.make_dir("app-b", "shared = ../shared\n")
        shared_dir = self.make_dir("shared", "leaf = ../leaf\n")
        self.make_dir("leaf")
        linker = FakeLinker()
        roots = {
            "app-a": PackageDeclaration("app-a", "app-a"),
            "app-b": PackageDeclaration("app-b", "app-b"),
        }

        report = self.expander(linker).expand(roots, self.root)

        self.assertEqual(self.reads.count(shared_dir), 1)
        self.assertEqual(report.linked, [("shared", "app-a"), ("leaf", "shared"), ("shared", "app-b")])

    def test_depth_first_sibling_order(self) -> None:
        self.make_dir("root", "x = ../x\ny = ../y\n")
        self.make_dir("x", "x1 = ../x1\n")
        self.make_dir("x1")
        self.make_dir("y")
        linker = FakeLinker()

        report = self.expander(linker).expand({"root": PackageDeclaration("root", "root")}, self.root)

        self.assertEqual(report.linked, [("x", "root"), ("x1", "x"), ("y", "root")])

    def test_failures_do_not_abort_siblings(self) -> None:
        self.make_dir("root", "bad = ../bad\nunlinkable = ../unlinkable\ngood = ../good\n")
        self.make_dir("bad", "child = ../child\n")
        for name in ("unlinkable", "good", "child"):
            self.make_dir(name)
        linker = FakeLinker(failing_builds=("bad",), failing_links=("unlinkable",))

        report = self.expander(linker).expand({"root": PackageDeclaration("root", "root")}, self.root)

        self.assertFalse(report.success)
        self.assertEqual(report.failures, ["bad", "unlinkable"])
        self.assertEqual(report.linked, [("child", "bad"), ("good", "root")])
        self.assertNotIn(("global-link", "bad", str(self.root / "bad")), linker.calls)

    def test_packages_without_nested_config_are_leaves(self) -> None:
        self.make_dir("plain")
        linker = FakeLinker()
        report = self.expander(linker).expand({"plain": PackageDeclaration("plain", "plain")}, self.root)
        self.assertEqual(linker.calls, [])
        self.assertEqual(report.processed, set())
        self.assertEqual(self.reads, [])

    def test_shared_processed_set_across_runs(self) -> None:
        self.make_dir("a", "b = ../b\n")
        self.make_dir("b")
        processed = set()
        linker = FakeLinker()
        roots = {"a": PackageDeclaration("a", "a")}

        RecursiveExpander(linker, self.console, processed=processed).expand(roots, self.root)
        RecursiveExpander(linker, self.console, processed=processed).expand(roots, self.root)

        self.assertEqual([call for call in linker.calls if call[0] == "build"], [("build", "b", str(self.root / "b"))])


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
