"""Mapping tables: C++ vocabulary to Rust and Go vocabulary.

The tables live in mappings.yaml next to this module. A user file can be
layered on top with load_mappings(path); nested tables merge key by key so a
user file only needs the entries it changes.

Every mapper, analyzer and generator receives a MappingConfig at
construction time. The config is read-only once built.
"""

from __future__ import annotations

import copy
import logging
from pathlib import Path

import yaml

logger = logging.getLogger(__name__)

DEFAULT_MAPPINGS_PATH = Path(__file__).parent / "mappings.yaml"

_REQUIRED_SECTIONS = (
    "builtins",
    "containers",
    "smart_pointers",
    "sync_types",
    "lock_guards",
    "exceptions",
    "rust",
    "go",
)


class MappingError(Exception):
    """Mapping file could not be read or has the wrong shape."""

    def __init__(self, msg: str, path: str | None = None):
        self.msg: str = msg
        self.path: str | None = path
        super().__init__(msg if path is None else path + ": " + msg)


def fill(template: str, args: list[str]) -> str:
    """Substitute {0}, {1}, ... in a mapping template.

    Only positional markers are replaced; other braces (Go's interface{},
    anonymous struct bodies) pass through untouched.
    """
    result = template
    for i, arg in enumerate(args):
        result = result.replace("{" + str(i) + "}", arg)
    return result


def _deep_merge(base: dict, overlay: dict) -> dict:
    merged = copy.deepcopy(base)
    for key, value in overlay.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def _read_yaml(path: Path) -> dict:
    try:
        with open(path) as f:
            data = yaml.safe_load(f)
    except OSError as e:
        raise MappingError("cannot read mapping file: " + str(e), str(path)) from e
    except yaml.YAMLError as e:
        raise MappingError("invalid YAML: " + str(e), str(path)) from e
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise MappingError("top level must be a mapping", str(path))
    return data


class MappingConfig:
    """Typed access to the merged mapping tables."""

    def __init__(self, data: dict) -> None:
        for section in _REQUIRED_SECTIONS:
            if not isinstance(data.get(section), dict):
                raise MappingError("missing or malformed section '" + section + "'")
        self.data = data
        self.pointer_width: int = int(data.get("pointer_width", 8))
        self.builtins: dict[str, dict] = data["builtins"]
        self.builtin_aliases: dict[str, str] = data.get("builtin_aliases") or {}
        self.containers: dict[str, str] = data["containers"]
        self.smart_pointers: dict[str, str] = data["smart_pointers"]
        self.sync_types: dict[str, str] = data["sync_types"]
        self.lock_guards: dict[str, str] = data["lock_guards"]
        self.atomic_aliases: dict[str, str] = data.get("atomic_aliases") or {}
        self.atomic_operations: list[str] = list(data.get("atomic_operations") or [])
        self.condition_variable_operations: list[str] = list(
            data.get("condition_variable_operations") or []
        )
        self.exceptions: dict[str, dict] = data["exceptions"]
        self.error_strategies: dict[str, dict] = data.get("error_strategies") or {}
        self.rust: dict = data["rust"]
        self.go: dict = data["go"]

    def target(self, name: str) -> dict:
        """Per-target table ("rust" or "go")."""
        if name == "rust":
            return self.rust
        if name == "go":
            return self.go
        raise MappingError("unknown target '" + name + "'")

    def builtin_name(self, name: str) -> str:
        """Canonical spelling of a builtin (long int -> long)."""
        return self.builtin_aliases.get(name, name)

    def merged(self, overlay: dict) -> MappingConfig:
        return MappingConfig(_deep_merge(self.data, overlay))


def default_mappings() -> MappingConfig:
    """Mappings shipped with the package."""
    return MappingConfig(_read_yaml(DEFAULT_MAPPINGS_PATH))


def load_mappings(path: str | Path | None = None) -> MappingConfig:
    """Shipped mappings, with the YAML file at path merged on top."""
    base = default_mappings()
    if path is None:
        return base
    overlay = _read_yaml(Path(path))
    logger.debug("merging %d mapping sections from %s", len(overlay), path)
    return base.merged(overlay)
