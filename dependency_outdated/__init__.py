"""
Dependency Outdated Tool

Reports which dependencies of a Cargo-style project have newer versions
available, separating updates the existing requirements already allow from
updates that need the requirements relaxed.
"""

__version__ = "0.1.0"

from .cli import main

__all__ = ["main"]
