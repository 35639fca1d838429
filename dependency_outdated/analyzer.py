"""
Comparison pass: variants, resolution, alignment and scoping for a project.
"""

from __future__ import annotations

import logging
import os
from concurrent.futures import ThreadPoolExecutor, as_completed, wait
from typing import Dict, List, Optional, Tuple

from tqdm import tqdm

from .config import Options
from .differ import compare_graphs
from .errors import ResolutionError, ResolutionTimeout
from .graph import DependencyGraph
from .interfaces import GraphResolver, VersionIndex
from .manifest import Project, load_project
from .models import VariantMode
from .registry import SparseIndex
from .reporting import MemberReport, Report, assemble_member, assemble_report
from .resolvers import CargoResolver
from .scope import ScopeUnit, apply_scope, select_units
from .variants import ScratchAllocator, generate_variant


logger = logging.getLogger(__name__)

Graphs = Dict[VariantMode, Optional[DependencyGraph]]
Failures = Dict[VariantMode, str]


class OutdatedAnalyzer:
    """Compare pinned, compatible and latest resolutions of a project."""

    def __init__(
        self,
        options: Options,
        resolver: Optional[GraphResolver] = None,
        index: Optional[VersionIndex] = None,
        scratch: Optional[ScratchAllocator] = None,
    ):
        """Initialize the analyzer.

        Args:
            options: Run options
            resolver: Graph resolver; defaults to running ``cargo metadata``
            index: Published-version index consulted in aggressive mode;
                defaults to the crates.io sparse index unless offline
            scratch: Scratch directory allocator for manifest variants
        """
        self.options = options
        self.resolver = resolver or CargoResolver(
            offline=options.offline,
            color=options.color,
            timeout=options.timeout,
        )
        if index is None and options.aggressive and not options.offline:
            index = SparseIndex()
        self.index = index
        self.scratch = scratch

    def analyze(self) -> Report:
        project = load_project(self.options.manifest_path, self.options.lock_path)
        units = select_units(project, self.options)
        graphs, failures = self.resolve_variants(project)
        members = self.compare_units(units, graphs, failures)
        return assemble_report(members, self.options)

    def variant_modes(self, project: Project) -> List[VariantMode]:
        """Without a lock file the pinned resolution is the compatible one."""
        modes = [VariantMode.COMPATIBLE, VariantMode.LATEST]
        if project.lockfile is not None:
            modes.insert(0, VariantMode.PINNED)
        return modes

    def resolve_variants(self, project: Project) -> Tuple[Graphs, Failures]:
        """Write every variant and resolve them concurrently.

        Resolution failures are contained: the variant's graph is ``None``
        and its message is returned in the failures mapping.
        """
        modes = self.variant_modes(project)
        graphs: Graphs = {}
        failures: Failures = {}

        scratch = self.scratch or ScratchAllocator()
        with scratch:
            variants = {
                mode: generate_variant(
                    project,
                    mode,
                    scratch.allocate(mode.value),
                    aggressive=self.options.aggressive,
                    index=self.index,
                    feature_selection=self.options.feature_selection,
                )
                for mode in modes
            }

            executor = ThreadPoolExecutor(max_workers=self._workers(len(variants)))
            try:
                futures = {
                    executor.submit(self.resolver.resolve, variant): mode
                    for mode, variant in variants.items()
                }
                _, pending = wait(futures, timeout=self.options.timeout)
                for future, mode in futures.items():
                    if future in pending:
                        future.cancel()
                        # A running worker keeps its directory until it finishes.
                        scratch.release_after(variants[mode].directory, future)
                        error: ResolutionError = ResolutionTimeout(
                            f"{mode.value} resolution did not finish within {self.options.timeout}s",
                            mode.value,
                        )
                    else:
                        try:
                            graphs[mode] = future.result()
                            continue
                        except ResolutionError as e:
                            error = e
                    logger.warning("%s resolution failed: %s", mode.value.capitalize(), error)
                    graphs[mode] = None
                    failures[mode] = str(error)
            finally:
                executor.shutdown(wait=False, cancel_futures=True)

        if VariantMode.PINNED not in modes:
            graphs[VariantMode.PINNED] = graphs[VariantMode.COMPATIBLE]
            if VariantMode.COMPATIBLE in failures:
                failures[VariantMode.PINNED] = failures[VariantMode.COMPATIBLE]

        for graph in {id(g): g for g in graphs.values() if g is not None}.values():
            for message in graph.warnings:
                logger.warning("resolver: %s", message)
        return graphs, failures

    def compare_unit(self, unit: ScopeUnit, graphs: Graphs, failures: Failures) -> MemberReport:
        if graphs[VariantMode.PINNED] is None:
            return MemberReport(
                name=unit.name,
                workspace_mode=unit.workspace_mode,
                error=failures[VariantMode.PINNED],
            )
        cut = {mode: unit.cut(graphs[mode]) for mode in VariantMode}
        rows = compare_graphs(
            cut[VariantMode.PINNED], cut[VariantMode.COMPATIBLE], cut[VariantMode.LATEST]
        )
        rows = apply_scope(rows, self.options)
        warnings = [
            f"{mode.value} resolution failed: {message}"
            for mode, message in sorted(failures.items(), key=lambda item: item[0].value)
        ]
        for mode in VariantMode:
            # Without a lock file pinned aliases compatible; report it once.
            if cut[mode] is None or (
                mode is VariantMode.PINNED
                and graphs[VariantMode.PINNED] is graphs[VariantMode.COMPATIBLE]
            ):
                continue
            warnings.extend(f"{mode.value} resolution: {message}" for message in cut[mode].warnings)
        return assemble_member(unit.name, rows, self.options, unit.workspace_mode, warnings)

    def compare_units(
        self, units: List[ScopeUnit], graphs: Graphs, failures: Failures
    ) -> List[MemberReport]:
        """Fan the units out on a worker pool and collect them in order."""
        if not units:
            return []
        with ThreadPoolExecutor(max_workers=self._workers(len(units))) as executor:
            futures = [
                executor.submit(self.compare_unit, unit, graphs, failures) for unit in units
            ]
            for _ in tqdm(
                as_completed(futures),
                total=len(futures),
                desc="Comparing members",
                unit="member",
                disable=self.options.quiet or len(futures) < 2,
            ):
                pass
            return [future.result() for future in futures]

    def _workers(self, tasks: int) -> int:
        limit = self.options.jobs or os.cpu_count() or 1
        return max(1, min(tasks, limit))
