"""
Core data models for the dependency comparison.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple, Union

from .versioning import Version


class DependencyKind(Enum):
    """How a dependency is used by its parent."""

    NORMAL = "Normal"
    BUILD = "Build"
    DEVELOPMENT = "Development"

    @classmethod
    def from_cargo(cls, kind: Optional[str]) -> "DependencyKind":
        if kind is None or kind == "normal":
            return cls.NORMAL
        if kind == "build":
            return cls.BUILD
        if kind == "dev":
            return cls.DEVELOPMENT
        raise ValueError(f"Unknown dependency kind: {kind}")


class VariantMode(Enum):
    """The three manifest variants fed to the resolver."""

    PINNED = "pinned"
    COMPATIBLE = "compatible"
    LATEST = "latest"


class Missing(Enum):
    """Why a comparison field carries no version."""

    ABSENT = "absent"
    UNKNOWN = "unknown"


Resolved = Union[Version, Missing]


class Status(Enum):
    """Update status of one dependency edge."""

    UP_TO_DATE = "up-to-date"
    COMPATIBLE_UPDATE = "compatible-update"
    LATEST_ONLY = "latest-only"
    REMOVED = "removed"
    ADDED = "added"
    UNKNOWN = "unknown"


@dataclass(frozen=True, order=True)
class PackageId:
    """A resolved package instance."""

    name: str
    version: Version
    source: str = ""

    def __str__(self) -> str:
        return f"{self.name} {self.version}"


@dataclass(frozen=True)
class EdgeKey:
    """Identity of a dependency relationship, independent of the child version."""

    parent: str
    child: str
    kind: DependencyKind = DependencyKind.NORMAL
    platform: Optional[str] = None

    def sort_key(self) -> Tuple[str, str, str, str]:
        return (self.child, self.parent, self.kind.value, self.platform or "")


@dataclass(frozen=True)
class Edge:
    """A resolved dependency edge."""

    parent: PackageId
    child: PackageId
    kind: DependencyKind = DependencyKind.NORMAL
    platform: Optional[str] = None

    @property
    def key(self) -> EdgeKey:
        return EdgeKey(self.parent.name, self.child.name, self.kind, self.platform)


@dataclass(frozen=True)
class ComparisonRow:
    """One aligned edge across the pinned, compatible and latest graphs."""

    key: EdgeKey
    pinned: Resolved
    compatible: Resolved
    latest: Resolved
    status: Status
    depth: Optional[int] = None
    diagnostics: Tuple[str, ...] = ()

    @property
    def name(self) -> str:
        return self.key.child

    @property
    def parent(self) -> str:
        return self.key.parent

    @property
    def kind(self) -> DependencyKind:
        return self.key.kind

    @property
    def platform(self) -> Optional[str]:
        return self.key.platform
