import json
from pathlib import Path

import pytest

from dependency_outdated import analyzer, cli
from dependency_outdated.config import Options
from dependency_outdated.models import VariantMode

from helpers import FakeResolver, lock_text, make_graph, write_project


MANIFEST = """
[package]
name = "app"
version = "0.1.0"

[dependencies]
pkgA = "^1.2.0"
"""


@pytest.fixture
def project(tmp_path: Path, monkeypatch):
    path = write_project(tmp_path, MANIFEST, lock_text("pkgA 1.2.0"))
    resolver = FakeResolver({
        VariantMode.PINNED: make_graph(["app 0.1.0"], [("app 0.1.0", "pkgA 1.2.0")]),
        VariantMode.COMPATIBLE: make_graph(["app 0.1.0"], [("app 0.1.0", "pkgA 1.2.5")]),
        VariantMode.LATEST: make_graph(["app 0.1.0"], [("app 0.1.0", "pkgA 2.0.0")]),
    })
    monkeypatch.setattr(analyzer, "CargoResolver", lambda **kwargs: resolver)
    return path


def test_list_output_and_exit_code(project, capsys):
    code = cli.main(["--manifest-path", str(project), "--exit-code", "2"])

    out = capsys.readouterr().out
    assert code == 2
    assert "pkgA" in out
    assert "1.2.5" in out


def test_json_output(project, capsys):
    code = cli.main(["-m", str(project), "--format", "json"])

    document = json.loads(capsys.readouterr().out)
    assert code == 0
    assert document["dependencies"][0]["latest"] == "2.0.0"


def test_ignored_dependency_is_up_to_date(project, capsys):
    code = cli.main(["-m", str(project), "--ignore", "pkgA", "--exit-code", "2"])

    assert code == 0
    assert capsys.readouterr().out == "All dependencies are up to date, yay!\n"


def test_fatal_errors_exit_with_one(tmp_path: Path, capsys):
    code = cli.main(["-m", str(tmp_path / "missing" / "Cargo.toml")])

    assert code == 1
    assert capsys.readouterr().err.startswith("error: ")


@pytest.mark.parametrize(
    "argv",
    [
        ["--depth", "0"],
        ["--depth", "1", "--root-deps-only"],
        ["--features", "serde", "--all-features"],
        ["--workspace", "--root", "pkgA"],
        ["--format", "xml"],
    ],
)
def test_invalid_arguments(argv):
    with pytest.raises(SystemExit) as excinfo:
        cli.main(argv)

    assert excinfo.value.code == 2


def test_options_from_args():
    args = cli.build_parser().parse_args([
        "-R", "-p", "pkgA,pkgB", "-p", "pkgC", "--features", "serde std", "-vv",
    ])

    options = Options.from_args(args)

    assert options.depth == 1
    assert options.packages == frozenset({"pkgA", "pkgB", "pkgC"})
    assert options.features == ("serde", "std")
    assert options.verbose == 2
