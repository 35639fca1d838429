"""
Reading Cargo-style manifests and lock files.

This is a thin reader: it extracts what the comparison needs (packages,
declared dependencies, features, workspace members and locked versions) and
keeps the raw TOML document so variants can be written back faithfully.
"""

from __future__ import annotations

import logging
import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Tuple

from .errors import MalformedManifest
from .models import DependencyKind
from .versioning import InvalidVersion, Version, VersionReq


logger = logging.getLogger(__name__)

MANIFEST_NAME = "Cargo.toml"
LOCK_NAME = "Cargo.lock"

DEPENDENCY_TABLES = {
    "dependencies": DependencyKind.NORMAL,
    "dev-dependencies": DependencyKind.DEVELOPMENT,
    "build-dependencies": DependencyKind.BUILD,
}


@dataclass(frozen=True)
class DeclaredDependency:
    """A dependency as written in a manifest."""

    key: str
    package: str
    req: Optional[VersionReq]
    kind: DependencyKind = DependencyKind.NORMAL
    platform: Optional[str] = None
    optional: bool = False
    path: Optional[str] = None
    git: Optional[str] = None
    inherited: bool = False

    @property
    def from_registry(self) -> bool:
        return self.path is None and self.git is None and not self.inherited


@dataclass
class Manifest:
    """One parsed manifest file."""

    path: Path
    document: Dict[str, Any]
    name: Optional[str] = None
    version: Optional[str] = None
    dependencies: List[DeclaredDependency] = field(default_factory=list)
    features: Dict[str, List[str]] = field(default_factory=dict)

    @property
    def directory(self) -> Path:
        return self.path.parent

    @property
    def is_virtual(self) -> bool:
        return self.name is None

    @property
    def workspace(self) -> Optional[Dict[str, Any]]:
        return self.document.get("workspace")

    def optional_dependencies(self) -> List[DeclaredDependency]:
        return [dep for dep in self.dependencies if dep.optional]


@dataclass(frozen=True)
class LockedPackage:
    name: str
    version: Version
    source: Optional[str] = None
    dependencies: Tuple[str, ...] = ()


@dataclass
class Lockfile:
    """Previously resolved versions."""

    path: Path
    packages: List[LockedPackage] = field(default_factory=list)

    def versions(self, name: str) -> List[Version]:
        return sorted(pkg.version for pkg in self.packages if pkg.name == name)


@dataclass
class Project:
    """A root manifest, its workspace members and its lock, if any."""

    root: Manifest
    members: List[Manifest]
    lockfile: Optional[Lockfile] = None

    @property
    def directory(self) -> Path:
        return self.root.directory

    def member(self, name: str) -> Optional[Manifest]:
        for manifest in self.members:
            if manifest.name == name:
                return manifest
        return None

    def member_names(self) -> List[str]:
        return [manifest.name for manifest in self.members if manifest.name]


def _read_toml(path: Path) -> Dict[str, Any]:
    try:
        with open(path, "rb") as f:
            return tomllib.load(f)
    except FileNotFoundError as e:
        raise MalformedManifest(f"{path} does not exist") from e
    except (tomllib.TOMLDecodeError, UnicodeDecodeError) as e:
        raise MalformedManifest(f"Cannot parse {path}: {e}") from e
    except OSError as e:
        raise MalformedManifest(f"Cannot read {path}: {e}") from e


def iter_dependency_tables(
    document: Dict[str, Any],
) -> Iterator[Tuple[Dict[str, Any], DependencyKind, Optional[str]]]:
    """Yield every direct dependency table with its kind and platform."""
    for table_name, kind in DEPENDENCY_TABLES.items():
        table = document.get(table_name)
        if isinstance(table, dict):
            yield table, kind, None
    targets = document.get("target")
    if isinstance(targets, dict):
        for platform, target in targets.items():
            if not isinstance(target, dict):
                continue
            for table_name, kind in DEPENDENCY_TABLES.items():
                table = target.get(table_name)
                if isinstance(table, dict):
                    yield table, kind, platform


def _parse_dependency(
    key: str, spec: Any, kind: DependencyKind, platform: Optional[str], path: Path
) -> DeclaredDependency:
    try:
        if isinstance(spec, str):
            return DeclaredDependency(key, key, VersionReq.parse(spec), kind, platform)
        if not isinstance(spec, dict):
            raise MalformedManifest(
                f"{path}: dependency {key} is neither a string nor a table"
            )
        version = spec.get("version")
        return DeclaredDependency(
            key=key,
            package=spec.get("package", key),
            req=VersionReq.parse(version) if version is not None else None,
            kind=kind,
            platform=platform,
            optional=bool(spec.get("optional", False)),
            path=spec.get("path"),
            git=spec.get("git"),
            inherited=bool(spec.get("workspace", False)),
        )
    except InvalidVersion as e:
        raise MalformedManifest(f"{path}: dependency {key}: {e}") from e


def load_manifest(path: Path) -> Manifest:
    """Parse one manifest file."""
    path = Path(path).resolve()
    document = _read_toml(path)
    package = document.get("package")
    if package is None and "workspace" not in document:
        raise MalformedManifest(f"{path} has neither a [package] nor a [workspace] table")
    if package is not None and not isinstance(package, dict):
        raise MalformedManifest(f"{path}: [package] must be a table")

    name = version = None
    if package is not None:
        name = package.get("name")
        if not isinstance(name, str) or not name:
            raise MalformedManifest(f"{path}: package name is missing")
        version = package.get("version")
        if isinstance(version, dict):
            # version.workspace = true
            version = None

    dependencies = []
    for table, kind, platform in iter_dependency_tables(document):
        for key, spec in table.items():
            dependencies.append(_parse_dependency(key, spec, kind, platform, path))

    features = document.get("features", {})
    if not isinstance(features, dict) or not all(
        isinstance(values, list) for values in features.values()
    ):
        raise MalformedManifest(f"{path}: [features] must map names to lists")

    return Manifest(
        path=path,
        document=document,
        name=name,
        version=version,
        dependencies=dependencies,
        features={feature: list(values) for feature, values in features.items()},
    )


def load_lockfile(path: Path) -> Lockfile:
    """Parse a lock file's ``[[package]]`` entries."""
    path = Path(path).resolve()
    document = _read_toml(path)
    packages = []
    for entry in document.get("package", []):
        try:
            packages.append(LockedPackage(
                name=entry["name"],
                version=Version.parse(entry["version"]),
                source=entry.get("source"),
                dependencies=tuple(entry.get("dependencies", [])),
            ))
        except (KeyError, TypeError, InvalidVersion) as e:
            raise MalformedManifest(f"{path}: invalid package entry {entry!r}: {e}") from e
    return Lockfile(path=path, packages=packages)


def find_manifest(start: Optional[Path] = None) -> Path:
    """Find the manifest in ``start`` or the closest parent directory."""
    current = Path(start or os.getcwd()).resolve()
    for directory in (current, *current.parents):
        candidate = directory / MANIFEST_NAME
        if candidate.is_file():
            return candidate
    raise MalformedManifest(f"Could not find {MANIFEST_NAME} in {current} or any parent directory")


def _member_paths(root: Manifest) -> List[Path]:
    workspace = root.workspace or {}
    excluded = {
        (root.directory / pattern).resolve() for pattern in workspace.get("exclude", [])
    }
    paths = []
    for pattern in workspace.get("members", []):
        for directory in sorted(root.directory.glob(pattern)):
            manifest_path = directory / MANIFEST_NAME
            if directory.resolve() in excluded or not manifest_path.is_file():
                continue
            paths.append(manifest_path.resolve())
    return paths


def load_project(manifest_path: Optional[Path] = None, lock_path: Optional[Path] = None) -> Project:
    """Load the root manifest, its workspace members and its lock file."""
    path = Path(manifest_path) if manifest_path else find_manifest()
    root = load_manifest(path)

    members: List[Manifest] = []
    if not root.is_virtual:
        members.append(root)
    seen = {root.path}
    for member_path in _member_paths(root):
        if member_path in seen:
            continue
        seen.add(member_path)
        members.append(load_manifest(member_path))
    if not members:
        raise MalformedManifest(f"{root.path} is a workspace without members")

    lock = Path(lock_path) if lock_path else root.directory / LOCK_NAME
    lockfile = None
    if lock.is_file():
        lockfile = load_lockfile(lock)
    elif lock_path:
        raise MalformedManifest(f"{lock} does not exist")
    else:
        logger.debug("No lock file at %s; pinned resolution equals compatible resolution", lock)

    return Project(root=root, members=members, lockfile=lockfile)
