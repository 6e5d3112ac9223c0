"""Sequential build-then-link over a resolved package order."""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Mapping, Protocol, Sequence

from .config_loader import PackageDeclaration
from .console import Console
from .diagnostics import DiagnosticLog
from .graph import ManifestLookup, build_dependency_graph, resolve_build_order
from .manifest import read_manifest_dependencies


class BuildLinker(Protocol):
    def build(self, declaration: PackageDeclaration, base: Path | None = None) -> bool:
        ...

    def link(self, declaration: PackageDeclaration) -> bool:
        ...


@dataclass(slots=True)
class PackageOutcome:
    name: str
    built: bool = False
    linked: bool = False

    @property
    def ok(self) -> bool:
        return self.built and self.linked


@dataclass(slots=True)
class PipelineReport:
    outcomes: List[PackageOutcome] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return all(outcome.ok for outcome in self.outcomes)

    def failed(self) -> List[str]:
        return [outcome.name for outcome in self.outcomes if not outcome.ok]


def plan_order(
    declarations: Mapping[str, PackageDeclaration],
    project_root: Path,
    diagnostics: DiagnosticLog | None = None,
    *,
    resolve_dependencies: bool = False,
    lookup: ManifestLookup = read_manifest_dependencies,
) -> List[str]:
    if not resolve_dependencies:
        return list(declarations)
    graph = build_dependency_graph(declarations, project_root, diagnostics, lookup=lookup)
    return resolve_build_order(graph, declarations, diagnostics)


def process_package(declaration: PackageDeclaration, linker: BuildLinker, console: Console) -> PackageOutcome:
    console.info(f"Processing {declaration.name}...")
    outcome = PackageOutcome(name=declaration.name)
    outcome.built = linker.build(declaration)
    if outcome.built:
        outcome.linked = linker.link(declaration)
    return outcome


def run_pipeline(
    order: Sequence[str],
    declarations: Mapping[str, PackageDeclaration],
    linker: BuildLinker,
    console: Console,
) -> PipelineReport:
    """Build then link every package in ``order``.

    A failed build skips that package's link; the remaining packages are
    always processed.
    """
    report = PipelineReport()
    for name in order:
        report.outcomes.append(process_package(declarations[name], linker, console))

    if report.success:
        console.success("All local packages linked successfully!")
    else:
        console.warning(f"Some packages were not linked successfully: {', '.join(report.failed())}")
    return report
