"""npm / yarn / pnpm command wrappers for linking and building packages."""
from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import List

from .command_runner import CommandError, CommandRunner, split_command
from .console import Console


class PackageManager(str, Enum):
    NPM = "npm"
    YARN = "yarn"
    PNPM = "pnpm"


def detect_package_manager(path: Path) -> PackageManager:
    """Pick the package manager from the lockfile found in ``path``."""
    directory = Path(path)
    if (directory / "pnpm-lock.yaml").exists():
        return PackageManager.PNPM
    if (directory / "yarn.lock").exists():
        return PackageManager.YARN
    return PackageManager.NPM


def parse_package_manager(value: str | None) -> PackageManager | None:
    if not value:
        return None
    try:
        return PackageManager(value.lower())
    except ValueError as exc:
        choices = ", ".join(item.value for item in PackageManager)
        raise ValueError(f"Unsupported package manager '{value}'. Expected one of: {choices}") from exc


class PackageManagerCommands:
    """Runs link and build commands with one package manager."""

    def __init__(self, manager: PackageManager, runner: CommandRunner, console: Console) -> None:
        self.manager = manager
        self.runner = runner
        self.console = console

    def global_link_command(self) -> List[str]:
        if self.manager is PackageManager.YARN:
            return ["yarn", "link"]
        if self.manager is PackageManager.PNPM:
            return ["pnpm", "link", "--global"]
        return ["npm", "link"]

    def project_link_command(self, package_name: str) -> List[str]:
        if self.manager is PackageManager.YARN:
            return ["yarn", "link", package_name]
        if self.manager is PackageManager.PNPM:
            return ["pnpm", "link", "--global", package_name]
        return ["npm", "link", package_name]

    def build_command(self, custom_command: str | None = None) -> List[str]:
        if custom_command:
            return split_command(custom_command)
        return [self.manager.value, "run", "build"]

    def _execute(self, command: List[str], *, cwd: Path, note: str, failure: str) -> bool:
        try:
            self.runner.run(command, cwd=cwd, note=note)
        except (CommandError, OSError) as exc:
            self.console.error(f"{failure}: {exc}")
            return False
        return True

    def create_global_link(self, package_path: Path, package_name: str) -> bool:
        self.console.info(f"Creating global link for {package_name}...")
        ok = self._execute(
            self.global_link_command(),
            cwd=Path(package_path),
            note=f"global-link {package_name}",
            failure=f"Failed to create global link for {package_name}",
        )
        if ok:
            self.console.success(f"Created global link for {package_name}")
        return ok

    def link_into_project(self, package_name: str, project_dir: Path) -> bool:
        self.console.info(f"Linking {package_name} into {project_dir}...")
        ok = self._execute(
            self.project_link_command(package_name),
            cwd=Path(project_dir),
            note=f"link {package_name}",
            failure=f"Failed to link {package_name} into {project_dir}",
        )
        if ok:
            self.console.success(f"Linked {package_name} into {project_dir}")
        return ok

    def run_build(self, package_path: Path, package_name: str, custom_command: str | None = None) -> bool:
        try:
            command = self.build_command(custom_command)
        except ValueError as exc:
            self.console.error(f"Invalid build command for {package_name}: {exc}")
            return False
        self.console.info(f"Building {package_name} using '{self.runner.format_command(command)}'...")
        ok = self._execute(
            command,
            cwd=Path(package_path),
            note=f"build {package_name}",
            failure=f"Build failed for {package_name}",
        )
        if ok:
            self.console.success(f"Built {package_name}")
        return ok
