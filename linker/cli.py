"""Command line interface for the local package linker."""
from __future__ import annotations

from argparse import ArgumentParser, Namespace
from pathlib import Path
from typing import Iterable
import sys

from .command_runner import RecordingCommandRunner, SubprocessCommandRunner
from .config_loader import CONFIG_FILE, CONFIG_FORMAT_HINT, ToolSettings, load_tool_settings, read_config
from .console import Console
from .diagnostics import DiagnosticLog
from .linking import PackageLinker
from .package_manager import parse_package_manager
from .pipeline import plan_order, process_package, run_pipeline
from .recursive import RecursiveExpander
from .watcher import PackageWatcher


def _make_runner(dry_run: bool) -> SubprocessCommandRunner | RecordingCommandRunner:
    return RecordingCommandRunner() if dry_run else SubprocessCommandRunner()


def _emit_dry_run_output(runner: RecordingCommandRunner, console: Console, *, workspace: Path) -> None:
    for line in runner.iter_formatted(workspace=workspace):
        console.dry(line)


def _parse_arguments(argv: Iterable[str]) -> Namespace:
    parser = ArgumentParser(
        prog="local-linker",
        description=f"Build and link local packages declared in {CONFIG_FILE}",
        epilog=f"Config line format: {CONFIG_FORMAT_HINT}",
    )
    parser.add_argument("--watch", "-w", action="store_true", default=None, help="Link packages and watch for changes")
    parser.add_argument(
        "--deps",
        "-d",
        dest="resolve_dependencies",
        action="store_true",
        default=None,
        help="Resolve dependencies and build in the correct order",
    )
    parser.add_argument(
        "--recursive",
        "-r",
        dest="recursive_links",
        action="store_true",
        default=None,
        help="Recursively link dependencies declared by linked packages",
    )
    parser.add_argument("--dry-run", action="store_true", help="Print commands without executing them")
    parser.add_argument("--show-order", action="store_true", help="Print the resolved build order and exit")
    parser.add_argument("--project", type=Path, help="Project directory (defaults to the current directory)")
    parser.add_argument("--package-manager", choices=["npm", "yarn", "pnpm"], help="Override the detected package manager")
    parser.add_argument("--no-color", dest="use_color", action="store_false", default=None, help="Disable colored output")
    verbosity = parser.add_mutually_exclusive_group()
    verbosity.add_argument("--verbose", "-v", action="store_true", help="Show debug output")
    verbosity.add_argument("--quiet", "-q", action="store_true", help="Only show errors")
    return parser.parse_args(list(argv))


def _apply_overrides(settings: ToolSettings, args: Namespace) -> ToolSettings:
    for key in ("watch", "resolve_dependencies", "recursive_links", "use_color"):
        value = getattr(args, key)
        if value is not None:
            setattr(settings, key, value)
    if args.package_manager:
        settings.package_manager = args.package_manager
    if args.verbose:
        settings.log_level = "debug"
    elif args.quiet:
        settings.log_level = "error"
    return settings


def main(argv: Iterable[str] | None = None) -> int:
    args = _parse_arguments(sys.argv[1:] if argv is None else argv)
    workspace = (args.project or Path.cwd()).resolve()

    diagnostics = DiagnosticLog()
    settings = _apply_overrides(load_tool_settings(workspace, diagnostics), args)
    console = Console(settings.log_level, color=settings.use_color, dry_run=args.dry_run)
    for event in diagnostics:
        console.report(event)
    diagnostics.subscribe(console.report)

    packages = read_config(workspace, diagnostics)
    if not packages:
        return 0

    if args.show_order:
        order = plan_order(packages, workspace, diagnostics, resolve_dependencies=True)
        for index, name in enumerate(order, start=1):
            print(f"{index}. {name}")
        return 0

    try:
        manager = parse_package_manager(settings.package_manager)
    except ValueError as exc:
        console.error(str(exc))
        return 1

    runner = _make_runner(args.dry_run)
    linker = PackageLinker(workspace, runner, console, diagnostics, package_manager=manager)
    console.info(f"Using package manager: {linker.package_manager.value}")

    if settings.resolve_dependencies:
        console.info("Resolving dependency order...")
    order = plan_order(packages, workspace, diagnostics, resolve_dependencies=settings.resolve_dependencies)
    if settings.resolve_dependencies:
        console.info(f"Processing packages in order: {' -> '.join(order)}")

    report = run_pipeline(order, packages, linker, console)
    success = report.success

    if success and settings.recursive_links:
        expansion = RecursiveExpander(linker, console, diagnostics).expand(packages, workspace)
        success = expansion.success

    if isinstance(runner, RecordingCommandRunner):
        _emit_dry_run_output(runner, console, workspace=workspace)

    if success and settings.watch and not args.dry_run:
        watcher = PackageWatcher(
            packages,
            workspace,
            lambda name: process_package(packages[name], linker, console),
            console,
            diagnostics,
            debounce_seconds=settings.debounce_ms / 1000,
            ignore_patterns=settings.ignore_patterns,
        )
        watcher.start()
        watcher.wait()

    return 0 if success else 1


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
