"""Reading dependency names from a package's ``package.json`` manifest."""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, List, Mapping
import json


MANIFEST_FILE = "package.json"


class ManifestError(Exception):
    """Base class for manifest lookup failures."""

    def __init__(self, path: Path, message: str):
        super().__init__(message)
        self.path = path


class ManifestNotFoundError(ManifestError):
    pass


class ManifestParseError(ManifestError):
    pass


@dataclass(frozen=True, slots=True)
class ManifestDependencies:
    dependencies: tuple[str, ...] = ()
    dev_dependencies: tuple[str, ...] = ()
    peer_dependencies: tuple[str, ...] = ()

    def all_names(self) -> List[str]:
        """Runtime, dev and peer dependency names, first occurrence wins."""
        names: List[str] = []
        for name in (*self.dependencies, *self.dev_dependencies, *self.peer_dependencies):
            if name not in names:
                names.append(name)
        return names


def read_manifest(path: Path) -> Mapping[str, Any]:
    package_dir = Path(path)
    if not package_dir.is_dir():
        raise ManifestNotFoundError(package_dir, f"Package path does not exist: {package_dir}")
    manifest_path = package_dir / MANIFEST_FILE
    if not manifest_path.is_file():
        raise ManifestNotFoundError(package_dir, f"No {MANIFEST_FILE} found in {package_dir}")
    try:
        data = json.loads(manifest_path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise ManifestParseError(package_dir, f"Error parsing {manifest_path}: {exc}") from exc
    if not isinstance(data, Mapping):
        raise ManifestParseError(package_dir, f"{manifest_path} must contain a JSON object")
    return data


def _dependency_names(manifest: Mapping[str, Any], key: str) -> tuple[str, ...]:
    section = manifest.get(key)
    if isinstance(section, Mapping):
        return tuple(str(name) for name in section)
    return ()


def read_manifest_dependencies(path: Path) -> ManifestDependencies:
    manifest = read_manifest(path)
    return ManifestDependencies(
        dependencies=_dependency_names(manifest, "dependencies"),
        dev_dependencies=_dependency_names(manifest, "devDependencies"),
        peer_dependencies=_dependency_names(manifest, "peerDependencies"),
    )


def has_build_script(manifest: Mapping[str, Any]) -> bool:
    scripts = manifest.get("scripts")
    return isinstance(scripts, Mapping) and bool(scripts.get("build"))
