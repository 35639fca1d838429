"""
Published-version lookups against the crates.io sparse index.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Dict, List

import requests

from .versioning import InvalidVersion, Version


logger = logging.getLogger(__name__)


@dataclass
class IndexCache:
    """In-memory cache shared by index lookups."""

    versions: Dict[str, List[Version]] = field(default_factory=dict)
    session: requests.Session = field(default_factory=requests.Session)


def index_path(name: str) -> str:
    """Relative location of a package's index file."""
    name = name.lower()
    if len(name) <= 2:
        return f"{len(name)}/{name}"
    if len(name) == 3:
        return f"3/{name[0]}/{name}"
    return f"{name[:2]}/{name[2:4]}/{name}"


class SparseIndex:
    """List non-yanked versions published to a sparse registry index."""

    def __init__(
        self,
        base_url: str = "https://index.crates.io",
        cache: IndexCache | None = None,
        timeout: float = 30,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.cache = cache or IndexCache()
        self.timeout = timeout

    def versions(self, name: str) -> List[Version]:
        if name in self.cache.versions:
            logger.debug("Cache hit: index %s", name)
            return self.cache.versions[name]

        url = f"{self.base_url}/{index_path(name)}"
        logger.info("Fetching index entry for %s", name)
        with self.cache.session.get(url, timeout=self.timeout) as response:
            response.raise_for_status()
            body = response.text

        versions = []
        for line in body.splitlines():
            if not line.strip():
                continue
            record = json.loads(line)
            if record.get("yanked"):
                continue
            try:
                versions.append(Version.parse(record["vers"]))
            except (KeyError, InvalidVersion):
                logger.debug("Skipping unparseable index record for %s: %s", name, line)
        versions.sort()
        self.cache.versions[name] = versions
        return versions
