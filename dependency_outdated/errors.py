"""
Error taxonomy for the outdated-dependency audit.
"""

from __future__ import annotations


class OutdatedError(Exception):
    """Base class for every error raised by this package."""


class MalformedManifest(OutdatedError):
    """The input manifest or lock file cannot be parsed."""


class ManifestWriteError(OutdatedError):
    """A manifest variant could not be written to its scratch directory."""


class ConfigurationError(OutdatedError):
    """The requested options do not fit the project."""


class ResolutionError(OutdatedError):
    """The resolver failed for one manifest variant."""

    def __init__(self, message: str, variant: str | None = None) -> None:
        super().__init__(message)
        self.variant = variant


class ResolutionTimeout(ResolutionError):
    """The resolver did not finish within the configured time."""


class ResolverInconsistency(OutdatedError):
    """Compatible resolution picked a newer version than latest resolution.

    Never raised past the differ; instances are attached to comparison rows
    as diagnostics.
    """

    def __init__(self, key, compatible, latest) -> None:
        super().__init__(
            f"resolver inconsistency for {key.parent}->{key.child}: "
            f"compatible {compatible} is newer than latest {latest}"
        )
        self.key = key
        self.compatible = compatible
        self.latest = latest
