"""
Immutable resolved dependency graph.
"""

from __future__ import annotations

import logging
from collections import deque
from types import MappingProxyType
from typing import Dict, FrozenSet, Iterable, Iterator, List, Mapping, Optional, Tuple

from .models import Edge, EdgeKey, PackageId


logger = logging.getLogger(__name__)


class DependencyGraph:
    """A flat snapshot of one resolution: roots plus edges indexed by key.

    Lookups go through the edge key mapping; there are no back-pointers.
    Depths are measured as the length of the shortest parent chain from any
    root, so an edge whose parent is a root has depth 1.
    """

    def __init__(
        self,
        roots: Iterable[PackageId],
        edges: Iterable[Edge],
        warnings: Iterable[str] = (),
    ) -> None:
        self._roots: Tuple[PackageId, ...] = tuple(sorted(set(roots)))
        warning_list: List[str] = list(warnings)

        by_key: Dict[EdgeKey, Edge] = {}
        for edge in sorted(set(edges), key=_edge_order):
            existing = by_key.get(edge.key)
            if existing is None:
                by_key[edge.key] = edge
                continue
            if existing.child == edge.child:
                continue
            kept = existing if existing.child.version >= edge.child.version else edge
            message = (
                f"{edge.key.parent} depends on {edge.key.child} at both "
                f"{existing.child.version} and {edge.child.version}; keeping {kept.child.version}"
            )
            logger.warning(message)
            warning_list.append(message)
            by_key[edge.key] = kept

        self._edges: Mapping[EdgeKey, Edge] = MappingProxyType(by_key)
        self._warnings: Tuple[str, ...] = tuple(warning_list)
        self._depths: Mapping[EdgeKey, int] = MappingProxyType(self._compute_depths())

    @property
    def roots(self) -> Tuple[PackageId, ...]:
        return self._roots

    @property
    def warnings(self) -> Tuple[str, ...]:
        return self._warnings

    def edges(self) -> FrozenSet[Edge]:
        return frozenset(self._edges.values())

    def keys(self) -> FrozenSet[EdgeKey]:
        return frozenset(self._edges)

    def get(self, key: EdgeKey) -> Optional[Edge]:
        return self._edges.get(key)

    def depth(self, key: EdgeKey) -> Optional[int]:
        """Shortest distance from a root, or None when unreachable."""
        return self._depths.get(key)

    def outgoing(self, package: PackageId) -> List[Edge]:
        return [edge for edge in self._edges.values() if edge.parent == package]

    def find_root(self, name: str) -> Optional[PackageId]:
        for root in self._roots:
            if root.name == name:
                return root
        return None

    def reachable(
        self,
        root_name: str,
        skip: FrozenSet[str] = frozenset(),
        gated: FrozenSet[EdgeKey] = frozenset(),
    ) -> "DependencyGraph":
        """Return the subgraph reachable from the package named ``root_name``.

        The start is a root of this graph with that name, falling back to a
        direct dependency of any root. Edges into packages named in ``skip``
        and edges whose key is in ``gated`` are neither kept nor traversed.
        """
        start = self.find_root(root_name)
        if start is None:
            start = self._find_direct_dependency(root_name)
        if start is None:
            logger.debug("Package %s not found among roots or their direct dependencies", root_name)
            return DependencyGraph((), (), self._warnings)

        children = self._children_index()
        kept: List[Edge] = []
        seen = {start}
        queue = deque([start])
        while queue:
            package = queue.popleft()
            for edge in children.get(package, ()):
                if edge.key in gated or edge.child.name in skip:
                    continue
                kept.append(edge)
                if edge.child not in seen:
                    seen.add(edge.child)
                    queue.append(edge.child)
        return DependencyGraph((start,), kept, self._warnings)

    def __iter__(self) -> Iterator[Edge]:
        return iter(self._edges.values())

    def __len__(self) -> int:
        return len(self._edges)

    def _find_direct_dependency(self, name: str) -> Optional[PackageId]:
        roots = set(self._roots)
        for edge in sorted(self._edges.values(), key=_edge_order):
            if edge.parent in roots and edge.child.name == name:
                return edge.child
        return None

    def _children_index(self) -> Dict[PackageId, List[Edge]]:
        children: Dict[PackageId, List[Edge]] = {}
        for edge in sorted(self._edges.values(), key=_edge_order):
            children.setdefault(edge.parent, []).append(edge)
        return children

    def _compute_depths(self) -> Dict[EdgeKey, int]:
        children = self._children_index()
        distance = {root: 0 for root in self._roots}
        depths: Dict[EdgeKey, int] = {}
        queue = deque(self._roots)
        while queue:
            package = queue.popleft()
            for edge in children.get(package, ()):
                depth = distance[package] + 1
                if edge.key not in depths or depth < depths[edge.key]:
                    depths[edge.key] = depth
                if edge.child not in distance:
                    distance[edge.child] = depth
                    queue.append(edge.child)
        return depths


def _edge_order(edge: Edge) -> tuple:
    return (edge.parent, edge.key.sort_key(), edge.child)
