"""
Resolvers that turn manifest variants into dependency graphs.
"""

from __future__ import annotations

import json
import logging
import subprocess
from typing import Dict, List, Optional, Sequence

from .errors import ResolutionError, ResolutionTimeout
from .graph import DependencyGraph
from .interfaces import GraphResolver
from .models import DependencyKind, Edge, PackageId
from .variants import ManifestVariant
from .versioning import InvalidVersion, Version


logger = logging.getLogger(__name__)


class CargoResolver(GraphResolver):
    """Resolve variants by running ``cargo metadata`` in their scratch directory.

    ``cargo metadata`` reuses the variant's lock file when there is one and
    writes a fresh one otherwise, which is exactly the difference between
    the pinned and compatible variants.
    """

    def __init__(
        self,
        cargo: str = "cargo",
        offline: bool = False,
        color: str = "auto",
        timeout: Optional[float] = 600,
    ) -> None:
        self.cargo = cargo
        self.offline = offline
        self.color = color
        self.timeout = timeout

    def command(self, variant: ManifestVariant) -> List[str]:
        cmd = [
            self.cargo, "metadata",
            "--format-version", "1",
            "--manifest-path", str(variant.manifest_path),
            "--color", self.color,
        ]
        selection = variant.feature_selection
        if selection.all_features:
            cmd.append("--all-features")
        elif selection.features:
            cmd += ["--features", ",".join(selection.features)]
        if selection.no_default_features:
            cmd.append("--no-default-features")
        if self.offline:
            cmd.append("--offline")
        return cmd

    def resolve(self, variant: ManifestVariant) -> DependencyGraph:
        cmd = self.command(variant)
        logger.debug("Running %s", " ".join(cmd))
        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=self.timeout,
                cwd=variant.directory,
            )
        except subprocess.TimeoutExpired as e:
            raise ResolutionTimeout(
                f"cargo metadata timed out after {self.timeout}s", variant.mode.value
            ) from e
        except FileNotFoundError as e:
            raise ResolutionError(f"{self.cargo} executable not found", variant.mode.value) from e

        if result.returncode != 0:
            raise ResolutionError(
                f"cargo metadata failed for the {variant.mode.value} variant: "
                f"{_last_error(result.stderr)}",
                variant.mode.value,
            )
        try:
            metadata = json.loads(result.stdout)
        except json.JSONDecodeError as e:
            raise ResolutionError(f"cargo metadata produced invalid JSON: {e}", variant.mode.value) from e

        warnings = _warnings(result.stderr)
        for message in warnings:
            logger.debug("cargo (%s): %s", variant.mode.value, message)
        return graph_from_metadata(metadata, warnings)


def graph_from_metadata(metadata: Dict, warnings: Sequence[str] = ()) -> DependencyGraph:
    """Build a graph from ``cargo metadata --format-version 1`` output."""
    resolve = metadata.get("resolve")
    if not resolve:
        raise ResolutionError("cargo metadata output has no resolve graph")

    packages: Dict[str, PackageId] = {}
    for package in metadata.get("packages", []):
        try:
            version = Version.parse(package["version"])
        except (KeyError, InvalidVersion) as e:
            raise ResolutionError(f"Unexpected package entry in cargo metadata: {e}") from e
        packages[package["id"]] = PackageId(
            name=package["name"],
            version=version,
            source=package.get("source") or "local",
        )

    edges = []
    for node in resolve.get("nodes", []):
        parent = packages.get(node["id"])
        if parent is None:
            continue
        for dep in node.get("deps", []):
            child = packages.get(dep["pkg"])
            if child is None:
                warnings = [*warnings, f"{parent.name} depends on unknown package {dep['pkg']}"]
                continue
            for dep_kind in dep.get("dep_kinds") or [{"kind": None, "target": None}]:
                edges.append(Edge(
                    parent=parent,
                    child=child,
                    kind=DependencyKind.from_cargo(dep_kind.get("kind")),
                    platform=dep_kind.get("target"),
                ))

    roots = [packages[pkg_id] for pkg_id in metadata.get("workspace_members", []) if pkg_id in packages]
    return DependencyGraph(roots, edges, warnings)


def _warnings(stderr: str) -> List[str]:
    return [
        line[len("warning:"):].strip()
        for line in stderr.splitlines()
        if line.startswith("warning:")
    ]


def _last_error(stderr: str) -> str:
    lines = [line.strip() for line in stderr.splitlines() if line.strip()]
    for line in lines:
        if line.startswith("error:"):
            return line[len("error:"):].strip()
    return lines[-1] if lines else "no error output"
