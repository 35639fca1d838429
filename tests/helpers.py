"""Shared builders for the test suite."""

from pathlib import Path
from typing import Dict, Iterable, Optional, Union

from dependency_outdated.graph import DependencyGraph
from dependency_outdated.models import DependencyKind, Edge, PackageId, VariantMode
from dependency_outdated.versioning import Version


def package(spec: str) -> PackageId:
    """``"name 1.2.3"`` -> PackageId."""
    name, version = spec.split()
    return PackageId(name, Version.parse(version), "registry")


def make_graph(roots: Iterable[str], edges: Iterable[tuple], warnings=()) -> DependencyGraph:
    """Edges are ``(parent, child[, kind[, platform]])`` tuples of package specs."""
    built = []
    for parent, child, *rest in edges:
        kind = rest[0] if rest else DependencyKind.NORMAL
        platform = rest[1] if len(rest) > 1 else None
        built.append(Edge(package(parent), package(child), kind, platform))
    return DependencyGraph([package(root) for root in roots], built, warnings)


class FakeResolver:
    """Return canned graphs (or raise canned errors) per variant mode."""

    def __init__(self, graphs: Dict[VariantMode, Union[DependencyGraph, Exception]], on_resolve=None):
        self.graphs = graphs
        self.on_resolve = on_resolve
        self.calls = []

    def resolve(self, variant):
        self.calls.append(variant)
        if self.on_resolve is not None:
            self.on_resolve(variant)
        result = self.graphs[variant.mode]
        if isinstance(result, Exception):
            raise result
        return result


class FakeIndex:
    def __init__(self, versions: Dict[str, Iterable[str]], error: Optional[Exception] = None):
        self._versions = {name: [Version.parse(v) for v in values] for name, values in versions.items()}
        self.error = error
        self.requested = []

    def versions(self, name):
        self.requested.append(name)
        if self.error is not None:
            raise self.error
        return self._versions.get(name, [])


def write_project(directory: Path, manifest: str, lock: Optional[str] = None) -> Path:
    directory.mkdir(parents=True, exist_ok=True)
    manifest_path = directory / "Cargo.toml"
    manifest_path.write_text(manifest, encoding="utf-8")
    if lock is not None:
        (directory / "Cargo.lock").write_text(lock, encoding="utf-8")
    return manifest_path


def lock_text(*specs: str) -> str:
    """A minimal lock file pinning ``"name version"`` specs."""
    entries = []
    for spec in specs:
        name, version = spec.split()
        entries.append(f'[[package]]\nname = "{name}"\nversion = "{version}"\n')
    return "version = 3\n\n" + "\n".join(entries)
