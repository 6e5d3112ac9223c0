"""Dependency graph of declared local packages and build-order resolution."""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, Iterable, Iterator, List, Mapping, Tuple

from .config_loader import PackageDeclaration
from .diagnostics import DiagnosticKind, DiagnosticLog
from .manifest import ManifestDependencies, ManifestError, read_manifest_dependencies


ManifestLookup = Callable[[Path], ManifestDependencies]


@dataclass(frozen=True, slots=True)
class PackageNode:
    name: str
    resolved_path: Path
    dependency_names: frozenset[str] = frozenset()
    # Manifest order of the local dependencies, used for deterministic traversal.
    ordered_dependencies: tuple[str, ...] = ()


@dataclass(slots=True)
class DependencyGraph:
    nodes: Dict[str, PackageNode] = field(default_factory=dict)

    def __contains__(self, name: object) -> bool:
        return name in self.nodes

    def __iter__(self) -> Iterator[str]:
        return iter(self.nodes)

    def __len__(self) -> int:
        return len(self.nodes)

    def get(self, name: str) -> PackageNode | None:
        return self.nodes.get(name)

    def names(self) -> List[str]:
        return list(self.nodes)


def build_dependency_graph(
    declarations: Mapping[str, PackageDeclaration],
    project_root: Path,
    diagnostics: DiagnosticLog | None = None,
    *,
    lookup: ManifestLookup = read_manifest_dependencies,
) -> DependencyGraph:
    """Inspect each declared package's manifest and keep only local edges.

    Relative package paths are resolved against ``project_root``. A package
    whose manifest cannot be read is reported and left out of the graph.
    """
    diagnostics = diagnostics if diagnostics is not None else DiagnosticLog()
    declared = set(declarations)
    graph = DependencyGraph()

    for name, declaration in declarations.items():
        resolved_path = declaration.resolved_path(project_root)
        try:
            manifest = lookup(resolved_path)
        except ManifestError as exc:
            diagnostics.warning(DiagnosticKind.MANIFEST, name, str(exc))
            continue

        local: List[str] = []
        for dependency in manifest.all_names():
            if dependency == name:
                diagnostics.warning(DiagnosticKind.CYCLE, name, "Package depends on itself")
                continue
            if dependency in declared:
                local.append(dependency)
        graph.nodes[name] = PackageNode(
            name=name,
            resolved_path=resolved_path,
            dependency_names=frozenset(local),
            ordered_dependencies=tuple(local),
        )
    return graph


def topological_order(graph: DependencyGraph, diagnostics: DiagnosticLog | None = None) -> List[str]:
    """Depth-first post-order over the graph; dependencies come first.

    A node reached again while it is still in progress closes a cycle: the
    cycle is reported and that edge is not followed any further.
    """
    diagnostics = diagnostics if diagnostics is not None else DiagnosticLog()
    in_progress: set[str] = set()
    done: set[str] = set()
    order: List[str] = []

    def dependencies_of(name: str) -> Iterator[str]:
        node = graph.get(name)
        if node is None:
            return iter(())
        return (dependency for dependency in node.ordered_dependencies if dependency in graph)

    # Frames are (name, remaining dependencies); chain length is not bounded by the recursion limit.
    for root in graph:
        if root in done:
            continue
        in_progress.add(root)
        stack: List[Tuple[str, Iterator[str]]] = [(root, dependencies_of(root))]
        while stack:
            name, pending = stack[-1]
            dependency = next(pending, None)
            if dependency is None:
                stack.pop()
                in_progress.discard(name)
                done.add(name)
                order.append(name)
            elif dependency in in_progress:
                diagnostics.warning(DiagnosticKind.CYCLE, dependency, "Circular dependency detected")
            elif dependency not in done:
                in_progress.add(dependency)
                stack.append((dependency, dependencies_of(dependency)))
    return order


def resolve_build_order(
    graph: DependencyGraph,
    declared_names: Iterable[str],
    diagnostics: DiagnosticLog | None = None,
) -> List[str]:
    """Build order for every declared package.

    Packages missing from the graph (unreadable manifest) are appended in
    declaration order after the resolved ones.
    """
    diagnostics = diagnostics if diagnostics is not None else DiagnosticLog()
    order = topological_order(graph, diagnostics)
    placed = set(order)
    missing: List[str] = []
    for name in declared_names:
        if name not in placed:
            placed.add(name)
            missing.append(name)
    if missing:
        diagnostics.warning(
            DiagnosticKind.UNORDERED,
            None,
            f"Some packages were not included in dependency resolution: {', '.join(missing)}",
        )
        order.extend(missing)
    return order
