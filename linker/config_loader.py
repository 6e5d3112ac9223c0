"""Loading of ``.localpackages`` declarations and tool settings."""
from __future__ import annotations

from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Sequence
import json
import re
import tomllib

import yaml

from .diagnostics import DiagnosticKind, DiagnosticLog


CONFIG_FILE = ".localpackages"
SETTINGS_STEM = ".local-linker"
PROJECT_MANIFEST = "package.json"
SETTINGS_MANIFEST_KEY = "localLinker"

CONFIG_FORMAT_HINT = "package-name = /path/to/package [build-command] [watch:pattern1,pattern2]"


class ConfigError(ValueError):
    """Raised for missing, unreadable or malformed configuration."""


# A trailing ``[...]`` or legacy ``watch:[...]`` annotation, peeled off right to left.
_ANNOTATION_RE = re.compile(r"\s+(?P<token>\[watch:\[[^\]]*\]\]|watch:\[[^\]]*\]|\[[^\]]*\])\s*$")


@dataclass(frozen=True, slots=True)
class PackageDeclaration:
    name: str
    path: str
    build_command: str | None = None
    watch_patterns: tuple[str, ...] | None = None

    def resolved_path(self, base: Path) -> Path:
        """Absolute package directory; relative paths are taken from ``base``."""
        candidate = Path(self.path).expanduser()
        if not candidate.is_absolute():
            candidate = Path(base) / candidate
        return candidate.resolve()

    def relocated(self, base: Path) -> "PackageDeclaration":
        return replace(self, path=str(self.resolved_path(base)))


def _split_patterns(text: str) -> tuple[str, ...]:
    return tuple(part.strip() for part in text.split(",") if part.strip())


def parse_package_line(line: str) -> PackageDeclaration:
    """Parse ``name = path [build-command] [watch:p1,p2]``.

    The bracketed annotations are optional and may appear in either order,
    but only after the path.
    """
    name, sep, remainder = line.partition("=")
    name = name.strip()
    remainder = remainder.strip()
    if not sep or not name or not remainder:
        raise ConfigError(f"Expected '{CONFIG_FORMAT_HINT}', got: {line.strip()!r}")

    build_command: str | None = None
    watch_patterns: tuple[str, ...] | None = None
    seen_build = False
    # Leading space lets the regex anchor the first annotation to the path.
    body = f" {remainder}"
    while True:
        match = _ANNOTATION_RE.search(body)
        if match is None:
            break
        token = match.group("token")
        body = body[: match.start()]
        if token.startswith("[watch:["):
            inner = token[len("[watch:[") : -2]
            is_watch = True
        elif token.startswith("watch:["):
            inner = token[len("watch:[") : -1]
            is_watch = True
        else:
            inner = token[1:-1].strip()
            is_watch = inner.startswith("watch:")
            if is_watch:
                inner = inner[len("watch:") :]
        if is_watch:
            if watch_patterns is not None:
                raise ConfigError(f"Package '{name}' declares watch patterns more than once")
            watch_patterns = _split_patterns(inner)
        else:
            if seen_build:
                raise ConfigError(f"Package '{name}' declares more than one build command")
            seen_build = True
            build_command = inner or None

    path = body.strip()
    if not path:
        raise ConfigError(f"Package '{name}' has no path")
    return PackageDeclaration(
        name=name,
        path=path,
        build_command=build_command,
        watch_patterns=watch_patterns,
    )


def parse_config_text(
    text: str,
    *,
    source: str = CONFIG_FILE,
    diagnostics: DiagnosticLog | None = None,
) -> Dict[str, PackageDeclaration]:
    packages: Dict[str, PackageDeclaration] = {}
    for number, raw in enumerate(text.splitlines(), start=1):
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        try:
            declaration = parse_package_line(line)
        except ConfigError as exc:
            if diagnostics is not None:
                diagnostics.warning(DiagnosticKind.CONFIG, None, f"{source}:{number}: {exc}")
            continue
        packages[declaration.name] = declaration
    return packages


def has_config(path: Path) -> bool:
    return (Path(path) / CONFIG_FILE).is_file()


def read_config(base_dir: Path, diagnostics: DiagnosticLog | None = None) -> Dict[str, PackageDeclaration]:
    """Read ``base_dir/.localpackages``; degrades to no packages on any error."""
    diagnostics = diagnostics if diagnostics is not None else DiagnosticLog()
    config_path = Path(base_dir) / CONFIG_FILE
    if not config_path.is_file():
        diagnostics.info(
            DiagnosticKind.CONFIG,
            None,
            f"No {CONFIG_FILE} file found in {base_dir}. Format: {CONFIG_FORMAT_HINT}",
        )
        return {}
    try:
        text = config_path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        diagnostics.error(DiagnosticKind.CONFIG, None, f"Error reading {config_path}: {exc}")
        return {}

    packages = parse_config_text(text, source=str(config_path), diagnostics=diagnostics)
    if not packages:
        diagnostics.info(DiagnosticKind.CONFIG, None, f"No packages defined in {config_path}")
    else:
        diagnostics.info(DiagnosticKind.CONFIG, None, f"Found {len(packages)} local packages in {config_path}")
    return packages


_FILE_LOADERS: Dict[str, Callable[[Any], Any]] = {
    ".toml": lambda stream: tomllib.load(stream),
    ".json": lambda stream: json.load(stream),
    ".yaml": lambda stream: yaml.safe_load(stream),
    ".yml": lambda stream: yaml.safe_load(stream),
}


def _load_settings_file(path: Path) -> Mapping[str, Any]:
    suffix = path.suffix.lower()
    loader = _FILE_LOADERS.get(suffix)
    if loader is None:
        raise ConfigError(f"Unsupported settings file extension: {suffix}")
    if suffix == ".toml":
        with path.open("rb") as handle:
            data = loader(handle)
    else:
        with path.open("r", encoding="utf-8") as handle:
            data = loader(handle)
    if data is None:
        return {}
    if not isinstance(data, Mapping):
        raise ConfigError(f"Settings file '{path}' must contain a mapping at the root")
    return data


def find_settings_file(base_dir: Path) -> Path | None:
    candidates = [
        Path(base_dir) / f"{SETTINGS_STEM}{suffix}"
        for suffix in _FILE_LOADERS
        if (Path(base_dir) / f"{SETTINGS_STEM}{suffix}").is_file()
    ]
    if len(candidates) > 1:
        names = ", ".join(path.name for path in candidates)
        raise ConfigError(f"Multiple settings files found: {names}. Only one format is allowed.")
    return candidates[0] if candidates else None


def _normalize_string_list(value: Any, *, field_name: str) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [part.strip() for part in value.split(",") if part.strip()]
    if isinstance(value, Sequence):
        result: List[str] = []
        for item in value:
            if not isinstance(item, str):
                raise ConfigError(f"{field_name} entries must be strings")
            if item.strip():
                result.append(item.strip())
        return result
    raise ConfigError(f"{field_name} must be a string or a list of strings")


_CAMEL_KEYS = {
    "useColor": "use_color",
    "resolveDependencies": "resolve_dependencies",
    "recursiveLinks": "recursive_links",
    "watch": "watch",
    "debounceMs": "debounce_ms",
    "logLevel": "log_level",
    "packageManager": "package_manager",
    "ignorePatterns": "ignore_patterns",
}


@dataclass(slots=True)
class ToolSettings:
    use_color: bool = True
    resolve_dependencies: bool = False
    recursive_links: bool = False
    watch: bool = False
    debounce_ms: int = 500
    log_level: str = "info"
    package_manager: str | None = None
    ignore_patterns: List[str] = field(default_factory=list)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any], *, base: "ToolSettings | None" = None) -> "ToolSettings":
        settings = replace(base) if base is not None else cls()
        known = {item.name for item in fields(cls)}
        for raw_key, value in data.items():
            key = _CAMEL_KEYS.get(str(raw_key), str(raw_key))
            if key not in known or value is None:
                continue
            if key in {"use_color", "resolve_dependencies", "recursive_links", "watch"}:
                setattr(settings, key, bool(value))
            elif key == "debounce_ms":
                try:
                    delay = int(value)
                except (TypeError, ValueError) as exc:
                    raise ConfigError(f"debounce_ms must be an integer, got {value!r}") from exc
                if delay < 0:
                    raise ConfigError("debounce_ms cannot be negative")
                settings.debounce_ms = delay
            elif key == "ignore_patterns":
                settings.ignore_patterns = _normalize_string_list(value, field_name="ignore_patterns")
            elif key == "package_manager":
                settings.package_manager = str(value).lower()
            else:
                settings.log_level = str(value).lower()
        return settings


def load_tool_settings(base_dir: Path, diagnostics: DiagnosticLog | None = None) -> ToolSettings:
    """Settings from ``package.json`` (``localLinker`` key), then the settings file."""
    diagnostics = diagnostics if diagnostics is not None else DiagnosticLog()
    settings = ToolSettings()

    manifest_path = Path(base_dir) / PROJECT_MANIFEST
    if manifest_path.is_file():
        try:
            manifest = json.loads(manifest_path.read_text(encoding="utf-8"))
            section = manifest.get(SETTINGS_MANIFEST_KEY) if isinstance(manifest, Mapping) else None
            if isinstance(section, Mapping):
                settings = ToolSettings.from_mapping(section, base=settings)
        except (OSError, ValueError) as exc:
            diagnostics.warning(DiagnosticKind.CONFIG, None, f"Error loading tool settings from {manifest_path}: {exc}")

    try:
        settings_path = find_settings_file(base_dir)
        if settings_path is not None:
            settings = ToolSettings.from_mapping(_load_settings_file(settings_path), base=settings)
    except (OSError, ValueError, yaml.YAMLError) as exc:
        diagnostics.warning(DiagnosticKind.CONFIG, None, f"Error loading tool settings: {exc}")
    return settings
