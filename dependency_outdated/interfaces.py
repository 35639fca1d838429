"""
Interfaces for resolvers and version indexes.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, Sequence

from .graph import DependencyGraph
from .versioning import Version

if TYPE_CHECKING:
    from .variants import ManifestVariant


class GraphResolver(Protocol):
    """Resolve a manifest variant into a dependency graph.

    Implementations must behave as a pure function of the variant and raise
    ``ResolutionError`` when the variant cannot be resolved.
    """

    def resolve(self, variant: "ManifestVariant") -> DependencyGraph:
        ...


class VersionIndex(Protocol):
    """List the published versions of a package."""

    def versions(self, name: str) -> Sequence[Version]:
        ...
