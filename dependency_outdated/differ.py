"""
Align edges across the pinned, compatible and latest graphs.
"""

from __future__ import annotations

import logging
from typing import List, Optional

from .errors import ResolverInconsistency
from .graph import DependencyGraph
from .models import ComparisonRow, EdgeKey, Missing, Resolved, Status
from .versioning import Version


logger = logging.getLogger(__name__)


def lookup(graph: Optional[DependencyGraph], key: EdgeKey) -> Resolved:
    """Resolved child version for ``key``; ``None`` graphs failed to resolve."""
    if graph is None:
        return Missing.UNKNOWN
    edge = graph.get(key)
    if edge is None:
        return Missing.ABSENT
    return edge.child.version


def classify(pinned: Resolved, compatible: Resolved, latest: Resolved) -> Status:
    """Derive the status of one row; the first matching rule wins."""
    if pinned is Missing.ABSENT:
        return Status.ADDED
    if pinned is Missing.UNKNOWN:
        return Status.UNKNOWN
    if compatible is Missing.ABSENT:
        return Status.REMOVED
    if isinstance(compatible, Version) and compatible != pinned:
        return Status.COMPATIBLE_UPDATE
    if latest is Missing.ABSENT:
        return Status.REMOVED
    if compatible is Missing.UNKNOWN or latest is Missing.UNKNOWN:
        return Status.UNKNOWN
    if latest != pinned:
        return Status.LATEST_ONLY
    return Status.UP_TO_DATE


def compare_graphs(
    pinned: Optional[DependencyGraph],
    compatible: Optional[DependencyGraph],
    latest: Optional[DependencyGraph],
) -> List[ComparisonRow]:
    """Build one classified row per edge key seen in any of the graphs.

    A ``None`` graph stands for a variant whose resolution failed; its
    column is UNKNOWN on every row.
    """
    graphs = [graph for graph in (pinned, compatible, latest) if graph is not None]
    keys = set()
    for graph in graphs:
        keys.update(graph.keys())

    rows = []
    for key in sorted(keys, key=EdgeKey.sort_key):
        pinned_version = lookup(pinned, key)
        compatible_version = lookup(compatible, key)
        latest_version = lookup(latest, key)

        diagnostics = []
        if (
            isinstance(compatible_version, Version)
            and isinstance(latest_version, Version)
            and compatible_version > latest_version
        ):
            inconsistency = ResolverInconsistency(key, compatible_version, latest_version)
            logger.warning("%s", inconsistency)
            diagnostics.append(str(inconsistency))

        depths = [graph.depth(key) for graph in graphs if graph.depth(key) is not None]
        rows.append(ComparisonRow(
            key=key,
            pinned=pinned_version,
            compatible=compatible_version,
            latest=latest_version,
            status=classify(pinned_version, compatible_version, latest_version),
            depth=min(depths) if depths else None,
            diagnostics=tuple(diagnostics),
        ))
    return rows
