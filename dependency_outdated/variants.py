"""
Manifest variants that steer the resolver towards different outcomes.

Each variant is a copy of the project's manifests in a private scratch
directory:

* pinned: manifests and lock file unchanged;
* compatible: manifests unchanged, lock file dropped so the resolver picks
  the newest versions the existing requirements allow;
* latest: direct requirements widened to ``*``, lock file dropped.
"""

from __future__ import annotations

import atexit
import copy
import logging
import shutil
import tempfile
import threading
from concurrent.futures import Future
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import requests
import tomli_w

from .errors import MalformedManifest, ManifestWriteError
from .interfaces import VersionIndex
from .manifest import (
    LOCK_NAME,
    MANIFEST_NAME,
    Lockfile,
    Manifest,
    Project,
    iter_dependency_tables,
    load_manifest,
)
from .models import VariantMode
from .versioning import InvalidVersion, Version


logger = logging.getLogger(__name__)

STUB_SOURCE = "outdated_stub.rs"
STUB_TARGET = "outdated-stub"


class ScratchAllocator:
    """Hand out private scratch directories and remove them afterwards.

    ``tempfile.mkdtemp`` creates each directory atomically, so concurrent
    callers never share a path. Directories still allocated at interpreter
    exit are removed by an ``atexit`` hook.
    """

    def __init__(self, prefix: str = "dependency-outdated-", base: Optional[Path] = None) -> None:
        self.prefix = prefix
        self.base = base
        self._paths: List[Path] = []
        self._lock = threading.Lock()
        atexit.register(self.cleanup)

    def allocate(self, label: str) -> Path:
        try:
            path = Path(tempfile.mkdtemp(prefix=f"{self.prefix}{label}-", dir=self.base))
        except OSError as e:
            raise ManifestWriteError(f"Cannot create scratch directory: {e}") from e
        with self._lock:
            self._paths.append(path)
        logger.debug("Allocated scratch directory %s", path)
        return path

    def release(self, path: Path) -> None:
        with self._lock:
            if path in self._paths:
                self._paths.remove(path)
        shutil.rmtree(path, ignore_errors=True)

    def release_after(self, path: Path, future: Future) -> None:
        """Hand ``path`` over to ``future``; it is removed once the future is done."""
        with self._lock:
            if path in self._paths:
                self._paths.remove(path)
        future.add_done_callback(lambda _: shutil.rmtree(path, ignore_errors=True))

    def cleanup(self) -> None:
        with self._lock:
            paths, self._paths = self._paths, []
        for path in paths:
            shutil.rmtree(path, ignore_errors=True)

    def __enter__(self) -> "ScratchAllocator":
        return self

    def __exit__(self, *exc_info) -> None:
        self.cleanup()
        atexit.unregister(self.cleanup)


@dataclass(frozen=True)
class FeatureSelection:
    """Which features the resolver activates for workspace members."""

    features: Tuple[str, ...] = ()
    all_features: bool = False
    no_default_features: bool = False


@dataclass(frozen=True)
class ManifestVariant:
    """A manifest tree written to scratch, ready for the resolver."""

    mode: VariantMode
    directory: Path
    manifest_path: Path
    lock_path: Optional[Path] = None
    allow_prerelease: bool = False
    feature_selection: FeatureSelection = FeatureSelection()


def generate_variant(
    project: Project,
    mode: VariantMode,
    scratch: Path,
    aggressive: bool = False,
    index: Optional[VersionIndex] = None,
    feature_selection: FeatureSelection = FeatureSelection(),
) -> ManifestVariant:
    """Write the ``mode`` variant of ``project`` under ``scratch``."""
    if mode is VariantMode.PINNED and project.lockfile is None:
        raise ValueError("A pinned variant needs a lock file")

    widener = None
    if mode is VariantMode.LATEST:
        widener = _RequirementWidener(project.lockfile, index if aggressive else None)

    for manifest in _collect_manifests(project):
        relative = manifest.directory.relative_to(project.directory)
        destination = scratch / relative
        document = copy.deepcopy(manifest.document)
        if widener is not None:
            for table, _, _ in iter_dependency_tables(document):
                widener.widen(table, manifest.path)
            workspace_deps = document.get("workspace", {}).get("dependencies")
            if isinstance(workspace_deps, dict):
                widener.widen(workspace_deps, manifest.path)
        _rebase_paths(document, manifest.directory, project.directory)
        _write_manifest(document, destination)

    lock_path = None
    if mode is VariantMode.PINNED:
        lock_path = scratch / LOCK_NAME
        try:
            shutil.copyfile(project.lockfile.path, lock_path)
        except OSError as e:
            raise ManifestWriteError(f"Cannot copy {project.lockfile.path}: {e}") from e

    return ManifestVariant(
        mode=mode,
        directory=scratch,
        manifest_path=scratch / project.root.path.relative_to(project.directory),
        lock_path=lock_path,
        allow_prerelease=aggressive and mode is VariantMode.LATEST,
        feature_selection=feature_selection,
    )


class _RequirementWidener:
    """Rewrite direct requirements for the latest variant."""

    def __init__(self, lockfile: Optional[Lockfile], index: Optional[VersionIndex]) -> None:
        self.lockfile = lockfile
        self.index = index
        self._floors: Dict[str, Optional[Version]] = {}

    def widen(self, table: Dict[str, Any], origin: Path) -> None:
        for key, spec in table.items():
            if isinstance(spec, str):
                table[key] = self._requirement(key, registry=True)
            elif isinstance(spec, dict):
                if "path" in spec or spec.get("workspace") or "version" not in spec:
                    continue
                package = spec.get("package", key)
                spec["version"] = self._requirement(package, registry="git" not in spec)
            else:
                raise MalformedManifest(
                    f"{origin}: dependency {key} is neither a string nor a table"
                )

    def _requirement(self, package: str, registry: bool) -> str:
        floor = self._floor(package, registry)
        return f">={floor}" if floor is not None else "*"

    def _floor(self, package: str, registry: bool) -> Optional[Version]:
        # Wildcards never select pre-releases, so packages already on one,
        # or whose newest release is one in aggressive mode, get an explicit floor.
        if package in self._floors:
            return self._floors[package]
        candidates = []
        if self.lockfile is not None:
            candidates += [v for v in self.lockfile.versions(package) if v.is_prerelease]
        if self.index is not None and registry:
            newest = self._newest_published(package)
            if newest is not None and newest.is_prerelease:
                candidates.append(newest)
        floor = max(candidates) if candidates else None
        self._floors[package] = floor
        return floor

    def _newest_published(self, package: str) -> Optional[Version]:
        try:
            versions = self.index.versions(package)
        except (requests.RequestException, InvalidVersion, ValueError) as e:
            logger.warning("Cannot list versions of %s, keeping a wildcard: %s", package, e)
            return None
        return max(versions) if versions else None


def _collect_manifests(project: Project) -> List[Manifest]:
    """The root, the members and every path dependency inside the project."""
    collected: Dict[Path, Manifest] = {}
    queue = [project.root, *project.members]
    while queue:
        manifest = queue.pop(0)
        if manifest.path in collected:
            continue
        collected[manifest.path] = manifest
        for dependency_path in _path_dependencies(manifest):
            target = (manifest.directory / dependency_path / MANIFEST_NAME).resolve()
            if target in collected or not target.is_file():
                continue
            if not target.is_relative_to(project.directory):
                continue
            queue.append(load_manifest(target))
    return sorted(collected.values(), key=lambda m: m.path)


def _path_dependencies(manifest: Manifest) -> List[str]:
    paths = [dep.path for dep in manifest.dependencies if dep.path]
    workspace_deps = (manifest.workspace or {}).get("dependencies", {})
    for spec in workspace_deps.values():
        if isinstance(spec, dict) and "path" in spec:
            paths.append(spec["path"])
    return paths


def _rebase_paths(document: Dict[str, Any], origin: Path, project_dir: Path) -> None:
    """Point path dependencies outside the project at their original location."""
    tables = [table for table, _, _ in iter_dependency_tables(document)]
    workspace_deps = document.get("workspace", {}).get("dependencies")
    if isinstance(workspace_deps, dict):
        tables.append(workspace_deps)
    for table in tables:
        for spec in table.values():
            if not isinstance(spec, dict) or "path" not in spec:
                continue
            target = (origin / spec["path"]).resolve()
            if not target.is_relative_to(project_dir):
                spec["path"] = target.as_posix()


def _stub_targets(document: Dict[str, Any], directory: Path) -> None:
    """Replace build targets with an empty source file; no sources are copied."""
    package = document.get("package")
    if not isinstance(package, dict):
        return
    (directory / STUB_SOURCE).touch()
    document["bin"] = [{"name": STUB_TARGET, "path": STUB_SOURCE}]
    if isinstance(document.get("lib"), dict):
        document["lib"]["path"] = STUB_SOURCE
    for section in ("test", "bench", "example"):
        document.pop(section, None)
    if isinstance(package.get("build"), str) or "links" in package:
        package["build"] = STUB_SOURCE


def _write_manifest(document: Dict[str, Any], directory: Path) -> None:
    try:
        directory.mkdir(parents=True, exist_ok=True)
        _stub_targets(document, directory)
        with open(directory / MANIFEST_NAME, "wb") as f:
            tomli_w.dump(document, f)
    except OSError as e:
        raise ManifestWriteError(f"Cannot write manifest to {directory}: {e}") from e
