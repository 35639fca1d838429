from pathlib import Path

import pytest

from dependency_outdated.config import Options
from dependency_outdated.differ import compare_graphs
from dependency_outdated.errors import ConfigurationError
from dependency_outdated.manifest import load_manifest, load_project
from dependency_outdated.models import EdgeKey
from dependency_outdated.scope import (
    active_features,
    apply_scope,
    drop_ignored,
    gated_edges,
    limit_depth,
    select_packages,
    select_units,
)
from dependency_outdated.variants import FeatureSelection

from helpers import make_graph, write_project


FEATURE_MANIFEST = """
[package]
name = "app"
version = "0.1.0"

[dependencies]
serde = { version = "1", optional = true }
serde_json = { version = "1", optional = true }
tokio = { version = "1", optional = true }
pkgA = "1"

[features]
default = ["std"]
std = []
serde = ["dep:serde"]
json = ["serde_json?/std"]
full = ["serde", "tokio/rt"]
"""


@pytest.fixture
def rows():
    graph = make_graph(
        ["app 0.1.0"],
        [
            ("app 0.1.0", "pkgA 1.0.0"),
            ("pkgA 1.0.0", "pkgB 1.0.0"),
            ("pkgB 1.0.0", "Zip_Lib 1.0.0"),
        ],
    )
    return compare_graphs(graph, graph, graph)


def test_depth_one_keeps_only_root_edges(rows):
    assert [row.key for row in limit_depth(rows, 1)] == [EdgeKey("app", "pkgA")]
    assert len(limit_depth(rows, None)) == 3


def test_package_selection_matches_child_or_parent(rows):
    selected = select_packages(rows, ["pkgb"])

    assert {row.key for row in selected} == {EdgeKey("pkgA", "pkgB"), EdgeKey("pkgB", "Zip_Lib")}


def test_ignore_uses_canonical_names(rows):
    kept = drop_ignored(rows, ["zip-lib"])

    assert "Zip_Lib" not in {row.name for row in kept}


def test_apply_scope_combines_filters(rows):
    options = Options(depth=2, packages=frozenset({"pkgB"}), ignore=frozenset({"pkgB"}))

    assert apply_scope(rows, options) == []


@pytest.mark.parametrize(
    "selection, gated",
    [
        (FeatureSelection(), {"serde", "serde_json", "tokio"}),
        (FeatureSelection(features=("serde",)), {"serde_json", "tokio"}),
        (FeatureSelection(features=("json",)), {"serde", "serde_json", "tokio"}),
        (FeatureSelection(features=("tokio",)), {"serde", "serde_json"}),
        (FeatureSelection(features=("full",)), {"serde_json"}),
        (FeatureSelection(all_features=True), set()),
    ],
)
def test_gated_edges(tmp_path: Path, selection, gated):
    manifest = load_manifest(write_project(tmp_path, FEATURE_MANIFEST))

    assert {key.child for key in gated_edges(manifest, selection)} == gated


def test_no_default_features(tmp_path: Path):
    manifest = load_manifest(write_project(tmp_path, FEATURE_MANIFEST))

    assert "std" in active_features(manifest, FeatureSelection())
    assert active_features(manifest, FeatureSelection(no_default_features=True)) == set()


def test_single_package_unit(tmp_path: Path):
    project = load_project(write_project(tmp_path, FEATURE_MANIFEST))

    units = select_units(project, Options())

    assert len(units) == 1
    assert units[0].name == "app"
    assert not units[0].workspace_mode
    assert EdgeKey("app", "tokio") in units[0].gated


def test_root_must_be_package_or_direct_dependency(tmp_path: Path):
    project = load_project(write_project(tmp_path, FEATURE_MANIFEST))

    assert select_units(project, Options(root="pkgA"))[0].name == "pkgA"
    with pytest.raises(ConfigurationError):
        select_units(project, Options(root="unrelated"))


def test_workspace_units_skip_other_members(tmp_path: Path):
    root = write_project(tmp_path, """
[package]
name = "app"
version = "0.1.0"

[workspace]
members = ["crates/*"]
""")
    write_project(tmp_path / "crates" / "tool", '[package]\nname = "tool"\nversion = "0.1.0"\n')
    write_project(tmp_path / "crates" / "extra", '[package]\nname = "extra"\nversion = "0.1.0"\n')
    project = load_project(root)

    units = select_units(project, Options(workspace=True, exclude=frozenset({"extra"})))

    assert [unit.name for unit in units] == ["app", "tool"]
    assert all(unit.workspace_mode for unit in units)
    assert units[0].skip == frozenset({"tool", "extra"})

    # Without --workspace only the root package is checked.
    assert [unit.name for unit in select_units(project, Options())] == ["app"]


def test_root_is_rejected_for_a_virtual_workspace(tmp_path: Path):
    root = write_project(tmp_path, '[workspace]\nmembers = ["alpha"]\n')
    write_project(tmp_path / "alpha", '[package]\nname = "alpha"\nversion = "0.1.0"\n')
    project = load_project(root)

    with pytest.raises(ConfigurationError):
        select_units(project, Options(root="alpha"))
    assert [unit.name for unit in select_units(project, Options())] == ["alpha"]
