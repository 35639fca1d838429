"""
Semantic versions and Cargo-style version requirements.

Parsing, precedence and range matching come from ``semantic_version``.
Requirements are translated from Cargo's dialect into ``SimpleSpec`` syntax,
and Cargo's rule for admitting pre-releases is applied on top.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from functools import total_ordering
from typing import FrozenSet, Optional, Tuple

import semantic_version
from semantic_version import SimpleSpec


_OPERATOR_RE = re.compile(r"^\s*(?P<op>>=|<=|>|<|=|~|\^)?\s*(?P<rest>.*?)\s*$")
_WILDCARDS = ("*", "x", "X")


class InvalidVersion(ValueError):
    """Raised when a version or requirement string cannot be parsed."""


@total_ordering
class Version:
    """A semantic version; build metadata is kept but ignored for precedence."""

    __slots__ = ("info", "_precedence")

    def __init__(self, info: semantic_version.Version) -> None:
        self.info = info
        self._precedence = info.truncate("prerelease")

    @classmethod
    def parse(cls, text: str) -> "Version":
        if not isinstance(text, str):
            raise InvalidVersion(f"invalid version: {text!r}")
        try:
            return cls(semantic_version.Version(text.strip()))
        except ValueError as e:
            raise InvalidVersion(f"invalid version: {text!r}: {e}") from e

    @property
    def major(self) -> int:
        return self.info.major

    @property
    def minor(self) -> int:
        return self.info.minor

    @property
    def patch(self) -> int:
        return self.info.patch

    @property
    def pre(self) -> Tuple[str, ...]:
        return tuple(self.info.prerelease)

    @property
    def build(self) -> Tuple[str, ...]:
        return tuple(self.info.build)

    @property
    def is_prerelease(self) -> bool:
        return bool(self.info.prerelease)

    @property
    def release(self) -> Tuple[int, int, int]:
        return (self.major, self.minor, self.patch)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Version):
            return NotImplemented
        return self._precedence == other._precedence

    def __lt__(self, other: "Version") -> bool:
        if not isinstance(other, Version):
            return NotImplemented
        return self.info < other.info

    def __hash__(self) -> int:
        return hash(self._precedence)

    def __str__(self) -> str:
        return str(self.info)

    def __repr__(self) -> str:
        return f"Version({str(self)!r})"


def compare(a: Version, b: Version) -> int:
    """Return -1, 0 or 1 as ``a`` is older than, equal to or newer than ``b``."""
    return (a > b) - (a < b)


def _simple_comparator(text: str) -> str:
    """Rewrite one Cargo comparator in ``SimpleSpec`` syntax."""
    match = _OPERATOR_RE.match(text)
    op, rest = match.group("op"), match.group("rest")
    if not rest:
        raise InvalidVersion(f"invalid version comparator: {text!r}")

    core, dash, pre = rest.partition("-")
    parts = ["*" if part in _WILDCARDS else part for part in core.split(".")]
    rest = ".".join(parts) + dash + pre
    if op is None:
        # Bare versions are caret requirements; bare wildcards match a prefix.
        op = "" if "*" in parts else "^"
    if op == "^" and len(parts) < 3 and all(part == "0" for part in parts):
        # ^0 is 0.*, ^0.0 is 0.0.*
        return f"=={rest}.*"
    return op + rest


def _prerelease_release(comparator: str) -> Optional[Tuple[int, int, int]]:
    try:
        version = semantic_version.Version(comparator.lstrip("<>=~^"))
    except ValueError:
        return None
    if not version.prerelease:
        return None
    return (version.major, version.minor, version.patch)


@dataclass(frozen=True)
class VersionReq:
    """A version requirement: every comparator must match.

    An empty comparator list is the bare wildcard ``*``, which matches every
    version. Any other requirement admits a pre-release only when one of its
    comparators names a pre-release of the same ``major.minor.patch``.
    """

    comparators: Tuple[str, ...] = ()
    spec: Optional[SimpleSpec] = field(default=None, compare=False, repr=False)
    prerelease_releases: FrozenSet[Tuple[int, int, int]] = field(
        default=frozenset(), compare=False, repr=False
    )

    @classmethod
    def parse(cls, text: str) -> "VersionReq":
        if not isinstance(text, str):
            raise InvalidVersion(f"invalid version requirement: {text!r}")
        text = text.strip()
        if text in _WILDCARDS:
            return cls()
        if not text:
            raise InvalidVersion("empty version requirement")

        comparators = tuple(_simple_comparator(part) for part in text.split(","))
        try:
            spec = SimpleSpec(",".join(comparators))
        except ValueError as e:
            raise InvalidVersion(f"invalid version requirement: {text!r}: {e}") from e
        releases = frozenset(
            release for release in map(_prerelease_release, comparators) if release
        )
        return cls(comparators, spec, releases)

    @property
    def is_wildcard(self) -> bool:
        return not self.comparators

    def matches(self, version: Version) -> bool:
        if self.is_wildcard:
            return True
        if not self.spec.match(version.info):
            return False
        return not version.is_prerelease or version.release in self.prerelease_releases

    def __str__(self) -> str:
        if self.is_wildcard:
            return "*"
        return ", ".join(self.comparators)


STAR = VersionReq()


def satisfies(version: Version, req: VersionReq) -> bool:
    """Return True when ``version`` meets ``req``."""
    return req.matches(version)
