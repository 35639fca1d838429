"""
Command-line interface for the outdated-dependency audit.
"""

import argparse
import logging
import sys

from .analyzer import OutdatedAnalyzer
from .config import COLORS, FORMATS, Options
from .errors import OutdatedError
from .reporting import render


logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="dependency-outdated",
        description="Display which dependencies have newer versions available",
    )

    parser.add_argument(
        "-a", "--aggressive",
        action="store_true",
        help="Ignore release channels (allow pre-releases) for latest updates"
    )
    parser.add_argument(
        "-q", "--quiet",
        action="store_true",
        help="Suppress warnings"
    )
    parser.add_argument(
        "-v", "--verbose",
        action="count",
        default=0,
        help="Show up-to-date and added dependencies; repeat for debug logging"
    )
    parser.add_argument(
        "-w", "--workspace",
        action="store_true",
        help="Check every workspace member rather than only the root package"
    )
    parser.add_argument(
        "-o", "--offline",
        action="store_true",
        help="Run without accessing the network"
    )

    depth = parser.add_mutually_exclusive_group()
    depth.add_argument(
        "-d", "--depth",
        type=int,
        default=None,
        metavar="NUM",
        help="How deep in the dependency chain to search. Default: all dependencies"
    )
    depth.add_argument(
        "-R", "--root-deps-only",
        action="store_true",
        help="Only check root dependencies (equivalent to --depth=1)"
    )

    parser.add_argument(
        "-p", "--packages",
        action="append",
        metavar="PKGS",
        help="Packages to inspect for updates (comma separated or repeated)"
    )
    parser.add_argument(
        "-i", "--ignore",
        action="append",
        metavar="DEPENDENCIES",
        help="Dependencies to leave out of the output (comma separated or repeated)"
    )
    parser.add_argument(
        "-x", "--exclude",
        action="append",
        metavar="MEMBERS",
        help="Workspace members to skip (comma separated or repeated)"
    )
    parser.add_argument(
        "-r", "--root",
        default=None,
        help="Package to treat as the root package"
    )

    features = parser.add_mutually_exclusive_group()
    features.add_argument(
        "--features",
        action="append",
        metavar="FEATURES",
        help="Features to activate (comma or space separated)"
    )
    features.add_argument(
        "--all-features",
        action="store_true",
        help="Activate all features"
    )
    parser.add_argument(
        "--no-default-features",
        action="store_true",
        help="Do not activate the default feature"
    )

    parser.add_argument(
        "-m", "--manifest-path",
        default=None,
        metavar="PATH",
        help="Path to the manifest. Default: Cargo.toml in this or a parent directory"
    )
    parser.add_argument(
        "--lock-path",
        default=None,
        metavar="PATH",
        help="Path to the lock file. Default: Cargo.lock next to the manifest"
    )

    parser.add_argument(
        "--exit-code",
        type=int,
        default=0,
        metavar="NUM",
        help="Exit code to return when newer versions are found. Default: 0"
    )
    parser.add_argument(
        "--added-exit-code",
        action="store_true",
        help="Count newly added dependencies as findings for --exit-code"
    )
    parser.add_argument(
        "--format",
        choices=FORMATS,
        default="list",
        help="Output format. Default: list"
    )
    parser.add_argument(
        "--color",
        choices=COLORS,
        default="auto",
        help="Coloring passed on to the resolver. Default: auto"
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=None,
        metavar="SECONDS",
        help="Give up on resolutions still running after this many seconds"
    )
    parser.add_argument(
        "-j", "--jobs",
        type=int,
        default=None,
        metavar="NUM",
        help="Maximum number of concurrent resolutions. Default: number of CPUs"
    )
    return parser


def configure_logging(quiet: bool, verbose: int) -> None:
    if quiet:
        level = logging.ERROR
    elif verbose > 1:
        level = logging.DEBUG
    else:
        level = logging.WARNING
    logging.basicConfig(level=level, format="%(levelname)s: %(message)s")


def main(argv=None) -> int:
    """Main entry point for the CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        options = Options.from_args(args)
    except ValueError as e:
        parser.error(str(e))

    configure_logging(options.quiet, options.verbose)

    try:
        report = OutdatedAnalyzer(options).analyze()
    except OutdatedError as e:
        print(f"error: {e}", file=sys.stderr)
        return 1

    sys.stdout.write(render(report, options.format))
    sys.stdout.flush()
    return report.exit_code


if __name__ == "__main__":
    sys.exit(main())
