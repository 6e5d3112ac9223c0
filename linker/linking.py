"""Build and link operations for a single declared package."""
from __future__ import annotations

from pathlib import Path
from typing import Dict

from .command_runner import CommandRunner
from .config_loader import PackageDeclaration
from .console import Console
from .diagnostics import DiagnosticKind, DiagnosticLog
from .manifest import ManifestError, has_build_script, read_manifest
from .package_manager import PackageManager, PackageManagerCommands, detect_package_manager


class PackageLinker:
    """Builds packages and links them into a consuming project.

    Each package is built and globally linked with its own package manager
    (detected from its lockfile). Linking into the root project uses the
    main project's package manager; linking into a nested package uses that
    package's manager.
    """

    def __init__(
        self,
        project_root: Path,
        runner: CommandRunner,
        console: Console,
        diagnostics: DiagnosticLog | None = None,
        *,
        package_manager: PackageManager | None = None,
    ) -> None:
        self.project_root = Path(project_root).resolve()
        self.runner = runner
        self.console = console
        self.diagnostics = diagnostics if diagnostics is not None else DiagnosticLog()
        self.package_manager = package_manager or detect_package_manager(self.project_root)
        self.commands = PackageManagerCommands(self.package_manager, runner, console)
        self._commands_by_manager: Dict[PackageManager, PackageManagerCommands] = {
            self.package_manager: self.commands,
        }

    def commands_for(self, package_path: Path) -> PackageManagerCommands:
        manager = detect_package_manager(package_path)
        commands = self._commands_by_manager.get(manager)
        if commands is None:
            commands = PackageManagerCommands(manager, self.runner, self.console)
            self._commands_by_manager[manager] = commands
        return commands

    def build(self, declaration: PackageDeclaration, base: Path | None = None) -> bool:
        package_path = declaration.resolved_path(base or self.project_root)
        try:
            manifest = read_manifest(package_path)
        except ManifestError as exc:
            self.diagnostics.error(DiagnosticKind.BUILD_FAILED, declaration.name, str(exc))
            return False

        if not declaration.build_command and not has_build_script(manifest):
            self.console.info(f"No build script found for {declaration.name}, skipping build")
            return True

        ok = self.commands_for(package_path).run_build(package_path, declaration.name, declaration.build_command)
        if not ok:
            self.diagnostics.error(DiagnosticKind.BUILD_FAILED, declaration.name, f"Build failed in {package_path}")
        return ok

    def create_global_link(self, declaration: PackageDeclaration, base: Path | None = None) -> bool:
        package_path = declaration.resolved_path(base or self.project_root)
        ok = self.commands_for(package_path).create_global_link(package_path, declaration.name)
        if not ok:
            self.diagnostics.error(DiagnosticKind.LINK_FAILED, declaration.name, f"Global link failed in {package_path}")
        return ok

    def link_into_project(self, name: str, project_dir: Path | None = None) -> bool:
        target = Path(project_dir).resolve() if project_dir is not None else self.project_root
        commands = self.commands if target == self.project_root else self.commands_for(target)
        ok = commands.link_into_project(name, target)
        if not ok:
            self.diagnostics.error(DiagnosticKind.LINK_FAILED, name, f"Linking into {target} failed")
        return ok

    def link(self, declaration: PackageDeclaration) -> bool:
        """Global link followed by a link into the root project."""
        if not self.create_global_link(declaration):
            return False
        return self.link_into_project(declaration.name)
