"""
Run options.
"""

from __future__ import annotations

import argparse
from dataclasses import dataclass
from pathlib import Path
from typing import FrozenSet, Iterable, Optional, Tuple

from .variants import FeatureSelection


FORMATS = ("list", "json", "csv")
COLORS = ("auto", "never", "always")


def split_list(values: Optional[Iterable[str]]) -> Tuple[str, ...]:
    """Flatten repeated, comma or space separated option values."""
    items = []
    for value in values or ():
        for part in value.replace(",", " ").split():
            if part not in items:
                items.append(part)
    return tuple(items)


@dataclass(frozen=True)
class Options:
    """Everything a comparison run can be configured with."""

    manifest_path: Optional[Path] = None
    lock_path: Optional[Path] = None
    aggressive: bool = False
    quiet: bool = False
    verbose: int = 0
    workspace: bool = False
    offline: bool = False
    depth: Optional[int] = None
    root: Optional[str] = None
    packages: FrozenSet[str] = frozenset()
    ignore: FrozenSet[str] = frozenset()
    exclude: FrozenSet[str] = frozenset()
    features: Tuple[str, ...] = ()
    all_features: bool = False
    no_default_features: bool = False
    exit_code: int = 0
    added_affects_exit_code: bool = False
    format: str = "list"
    color: str = "auto"
    timeout: Optional[float] = None
    jobs: Optional[int] = None

    def __post_init__(self) -> None:
        if self.depth is not None and self.depth < 1:
            raise ValueError("depth must be at least 1")
        if self.exit_code < 0:
            raise ValueError("exit code must not be negative")
        if self.format not in FORMATS:
            raise ValueError(f"Unsupported format: {self.format}")
        if self.color not in COLORS:
            raise ValueError(f"Unsupported color mode: {self.color}")
        if self.all_features and self.features:
            raise ValueError("--features and --all-features are mutually exclusive")
        if self.timeout is not None and self.timeout <= 0:
            raise ValueError("timeout must be positive")
        if self.jobs is not None and self.jobs < 1:
            raise ValueError("jobs must be at least 1")
        if self.workspace and self.root:
            raise ValueError("--root cannot be combined with --workspace")

    @property
    def feature_selection(self) -> FeatureSelection:
        return FeatureSelection(
            features=self.features,
            all_features=self.all_features,
            no_default_features=self.no_default_features,
        )

    @classmethod
    def from_args(cls, args: argparse.Namespace) -> "Options":
        depth = 1 if args.root_deps_only else args.depth
        return cls(
            manifest_path=Path(args.manifest_path) if args.manifest_path else None,
            lock_path=Path(args.lock_path) if args.lock_path else None,
            aggressive=args.aggressive,
            quiet=args.quiet,
            verbose=args.verbose,
            workspace=args.workspace,
            offline=args.offline,
            depth=depth,
            root=args.root,
            packages=frozenset(split_list(args.packages)),
            ignore=frozenset(split_list(args.ignore)),
            exclude=frozenset(split_list(args.exclude)),
            features=split_list(args.features),
            all_features=args.all_features,
            no_default_features=args.no_default_features,
            exit_code=args.exit_code,
            added_affects_exit_code=args.added_exit_code,
            format=args.format,
            color=args.color,
            timeout=args.timeout,
            jobs=args.jobs,
        )
