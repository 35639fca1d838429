"""
Scope limiting: member selection, depth, package names and feature gating.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import FrozenSet, Iterable, List, Optional, Set

from packaging.utils import canonicalize_name

from .config import Options
from .errors import ConfigurationError
from .graph import DependencyGraph
from .manifest import Manifest, Project
from .models import ComparisonRow, EdgeKey
from .variants import FeatureSelection


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScopeUnit:
    """One independent comparison: a root package and what to leave out."""

    name: str
    skip: FrozenSet[str] = frozenset()
    gated: FrozenSet[EdgeKey] = frozenset()
    workspace_mode: bool = False

    def cut(self, graph: Optional[DependencyGraph]) -> Optional[DependencyGraph]:
        """Restrict ``graph`` to this unit; ``None`` (a failed variant) stays ``None``."""
        if graph is None:
            return None
        return graph.reachable(self.name, skip=self.skip, gated=self.gated)


def select_units(project: Project, options: Options) -> List[ScopeUnit]:
    """One unit per workspace member in workspace mode, else a single unit."""
    selection = options.feature_selection
    if options.root is not None and project.root.is_virtual:
        raise ConfigurationError(
            f"Root {options.root} cannot be used with the virtual manifest {project.root.path}"
        )
    if options.workspace or project.root.is_virtual:
        names = project.member_names()
        excluded = _canonical(options.exclude)
        units = []
        for manifest in sorted(project.members, key=lambda m: m.name):
            if canonicalize_name(manifest.name) in excluded:
                logger.debug("Skipping excluded member %s", manifest.name)
                continue
            units.append(ScopeUnit(
                name=manifest.name,
                skip=frozenset(name for name in names if name != manifest.name),
                gated=gated_edges(manifest, selection),
                workspace_mode=True,
            ))
        return units

    root = project.root
    if options.root is None or options.root == root.name:
        return [ScopeUnit(name=root.name, gated=gated_edges(root, selection))]
    if options.root not in {dep.package for dep in root.dependencies}:
        raise ConfigurationError(
            f"Root {options.root} is neither the package itself nor one of its direct dependencies"
        )
    return [ScopeUnit(name=options.root)]


def limit_depth(rows: Iterable[ComparisonRow], depth: Optional[int]) -> List[ComparisonRow]:
    if depth is None:
        return list(rows)
    return [row for row in rows if row.depth is not None and row.depth <= depth]


def select_packages(rows: Iterable[ComparisonRow], names: Iterable[str]) -> List[ComparisonRow]:
    """Keep rows whose child or parent is one of ``names``; no names keeps all."""
    wanted = _canonical(names)
    if not wanted:
        return list(rows)
    return [
        row for row in rows
        if canonicalize_name(row.name) in wanted or canonicalize_name(row.parent) in wanted
    ]


def drop_ignored(rows: Iterable[ComparisonRow], names: Iterable[str]) -> List[ComparisonRow]:
    ignored = _canonical(names)
    return [row for row in rows if canonicalize_name(row.name) not in ignored]


def apply_scope(rows: Iterable[ComparisonRow], options: Options) -> List[ComparisonRow]:
    """Row-level filters, in order: depth, package selection, ignore list."""
    rows = limit_depth(rows, options.depth)
    rows = select_packages(rows, options.packages)
    return drop_ignored(rows, options.ignore)


def _implicit_features(manifest: Manifest) -> Set[str]:
    """Optional dependencies never referenced as ``dep:name`` get a feature of their own."""
    explicit = {
        value[len("dep:"):]
        for values in manifest.features.values()
        for value in values
        if value.startswith("dep:")
    }
    return {dep.key for dep in manifest.optional_dependencies()} - explicit


def active_features(manifest: Manifest, selection: FeatureSelection) -> Set[str]:
    """Features switched on by the selection, expanded through ``[features]``."""
    implicit = _implicit_features(manifest)
    known = set(manifest.features) | implicit
    if selection.all_features:
        return known

    pending = list(selection.features)
    if not selection.no_default_features and "default" in known:
        pending.append("default")
    for feature in selection.features:
        if feature not in known:
            logger.warning("Feature %s is not declared by %s", feature, manifest.name)

    active: Set[str] = set()
    while pending:
        feature = pending.pop()
        if feature in active:
            continue
        active.add(feature)
        for value in manifest.features.get(feature, []):
            if value.startswith("dep:"):
                continue
            name, slash, _ = value.partition("/")
            if not slash:
                pending.append(value)
            elif not name.endswith("?") and name in implicit:
                pending.append(name)
    return active


def enabled_optional_dependencies(manifest: Manifest, selection: FeatureSelection) -> Set[str]:
    """Keys of the optional dependencies the selection activates."""
    optional = {dep.key for dep in manifest.optional_dependencies()}
    if selection.all_features:
        return optional

    active = active_features(manifest, selection)
    enabled = active & _implicit_features(manifest)
    for feature in active:
        for value in manifest.features.get(feature, []):
            if value.startswith("dep:"):
                enabled.add(value[len("dep:"):])
                continue
            name, slash, _ = value.partition("/")
            if slash and not name.endswith("?"):
                enabled.add(name)
    return enabled & optional


def gated_edges(manifest: Manifest, selection: FeatureSelection) -> FrozenSet[EdgeKey]:
    """Edge keys of optional dependencies no active feature enables."""
    enabled = enabled_optional_dependencies(manifest, selection)
    return frozenset(
        EdgeKey(manifest.name, dep.package, dep.kind, dep.platform)
        for dep in manifest.optional_dependencies()
        if dep.key not in enabled
    )


def _canonical(names: Iterable[str]) -> FrozenSet[str]:
    return frozenset(canonicalize_name(name) for name in names)
