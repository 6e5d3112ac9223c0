"""Transitive linking of packages that declare their own local packages."""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Mapping, Protocol, Set, Tuple

from .config_loader import PackageDeclaration, has_config, read_config
from .console import Console
from .diagnostics import DiagnosticKind, DiagnosticLog


ProcessedKey = Tuple[str, str]
NestedConfigReader = Callable[[Path, DiagnosticLog], Dict[str, PackageDeclaration]]


class NestedLinker(Protocol):
    def build(self, declaration: PackageDeclaration, base: Path | None = None) -> bool:
        ...

    def create_global_link(self, declaration: PackageDeclaration, base: Path | None = None) -> bool:
        ...

    def link_into_project(self, name: str, project_dir: Path | None = None) -> bool:
        ...


@dataclass(frozen=True, slots=True)
class _Pending:
    declaration: PackageDeclaration
    depth: int
    parent: PackageDeclaration | None = None


@dataclass(slots=True)
class ExpansionReport:
    processed: Set[ProcessedKey] = field(default_factory=set)
    linked: List[Tuple[str, str]] = field(default_factory=list)
    failures: List[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.failures


class RecursiveExpander:
    """Builds and links nested local packages into the package declaring them.

    Traversal is depth-first over an explicit stack. Every package directory
    holding a ``.localpackages`` file is expanded at most once per
    ``(name, resolved path)`` key, which also absorbs diamonds and packages
    that point back at an ancestor.
    """

    def __init__(
        self,
        linker: NestedLinker,
        console: Console,
        diagnostics: DiagnosticLog | None = None,
        *,
        processed: Set[ProcessedKey] | None = None,
        has_nested: Callable[[Path], bool] = has_config,
        read_nested: NestedConfigReader = read_config,
    ) -> None:
        self.linker = linker
        self.console = console
        self.diagnostics = diagnostics if diagnostics is not None else DiagnosticLog()
        self.processed: Set[ProcessedKey] = processed if processed is not None else set()
        self._has_nested = has_nested
        self._read_nested = read_nested

    def expand(self, roots: Mapping[str, PackageDeclaration], base: Path) -> ExpansionReport:
        self.console.info("Checking for recursive dependencies...")
        report = ExpansionReport(processed=self.processed)
        stack: List[_Pending] = [
            _Pending(declaration=declaration.relocated(base), depth=0)
            for declaration in reversed(list(roots.values()))
        ]

        while stack:
            entry = stack.pop()
            if entry.parent is not None:
                self._link_into_parent(entry.declaration, entry.parent, entry.depth, report)
            nested = self._nested_declarations(entry)
            for declaration in reversed(nested):
                stack.append(_Pending(declaration=declaration, depth=entry.depth + 1, parent=entry.declaration))

        if report.success:
            self.console.success("Recursive dependency linking complete")
        else:
            self.console.warning(f"Recursive linking finished with failures: {', '.join(report.failures)}")
        return report

    def _nested_declarations(self, entry: _Pending) -> List[PackageDeclaration]:
        declaration = entry.declaration
        package_dir = Path(declaration.path)
        if not self._has_nested(package_dir):
            return []

        key: ProcessedKey = (declaration.name, str(package_dir))
        if key in self.processed:
            self.diagnostics.debug(
                DiagnosticKind.RECURSION_GUARD,
                declaration.name,
                f"Already expanded {package_dir}",
                depth=entry.depth,
            )
            return []
        self.processed.add(key)

        indent = "  " * entry.depth
        self.console.info(f"{indent}Checking dependencies in {declaration.name}...")
        nested = self._read_nested(package_dir, self.diagnostics)
        if not nested:
            return []
        self.console.info(f"{indent}Found {len(nested)} local dependencies in {declaration.name}")
        # Nested paths are relative to the directory holding the nested config.
        return [child.relocated(package_dir) for child in nested.values()]

    def _link_into_parent(
        self,
        declaration: PackageDeclaration,
        parent: PackageDeclaration,
        depth: int,
        report: ExpansionReport,
    ) -> None:
        indent = "  " * depth

        self.console.info(f"{indent}Building {declaration.name} for {parent.name}...")
        if not self.linker.build(declaration):
            report.failures.append(declaration.name)
            return

        self.console.info(f"{indent}Linking {declaration.name} to {parent.name}...")
        if not self.linker.create_global_link(declaration):
            report.failures.append(declaration.name)
            return
        if not self.linker.link_into_project(declaration.name, Path(parent.path)):
            report.failures.append(declaration.name)
            return
        report.linked.append((declaration.name, parent.name))
