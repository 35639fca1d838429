import json
import subprocess
from pathlib import Path

import pytest

from dependency_outdated import resolvers
from dependency_outdated.errors import ResolutionError, ResolutionTimeout
from dependency_outdated.models import DependencyKind, EdgeKey, VariantMode
from dependency_outdated.resolvers import CargoResolver, graph_from_metadata
from dependency_outdated.variants import FeatureSelection, ManifestVariant
from dependency_outdated.versioning import Version


REGISTRY = "registry+https://github.com/rust-lang/crates.io-index"

METADATA = {
    "packages": [
        {"id": "app 0.1.0 (path+file:///work/app)", "name": "app", "version": "0.1.0", "source": None},
        {"id": f"pkgA 1.2.5 ({REGISTRY})", "name": "pkgA", "version": "1.2.5", "source": REGISTRY},
        {"id": f"pkgT 0.3.1 ({REGISTRY})", "name": "pkgT", "version": "0.3.1", "source": REGISTRY},
        {"id": f"winapi 0.3.9 ({REGISTRY})", "name": "winapi", "version": "0.3.9", "source": REGISTRY},
    ],
    "workspace_members": ["app 0.1.0 (path+file:///work/app)"],
    "resolve": {
        "nodes": [
            {
                "id": "app 0.1.0 (path+file:///work/app)",
                "deps": [
                    {
                        "name": "pkgA",
                        "pkg": f"pkgA 1.2.5 ({REGISTRY})",
                        "dep_kinds": [{"kind": None, "target": None}, {"kind": "build", "target": None}],
                    },
                    {
                        "name": "pkgT",
                        "pkg": f"pkgT 0.3.1 ({REGISTRY})",
                        "dep_kinds": [{"kind": "dev", "target": None}],
                    },
                    {
                        "name": "winapi",
                        "pkg": f"winapi 0.3.9 ({REGISTRY})",
                        "dep_kinds": [{"kind": None, "target": "cfg(windows)"}],
                    },
                ],
            },
            {"id": f"pkgA 1.2.5 ({REGISTRY})", "deps": []},
        ]
    },
}


def make_variant(tmp_path: Path, **selection) -> ManifestVariant:
    return ManifestVariant(
        mode=VariantMode.COMPATIBLE,
        directory=tmp_path,
        manifest_path=tmp_path / "Cargo.toml",
        feature_selection=FeatureSelection(**selection),
    )


def test_graph_from_metadata():
    graph = graph_from_metadata(METADATA)

    assert [root.name for root in graph.roots] == ["app"]
    assert graph.roots[0].source == "local"
    assert graph.keys() == {
        EdgeKey("app", "pkgA", DependencyKind.NORMAL),
        EdgeKey("app", "pkgA", DependencyKind.BUILD),
        EdgeKey("app", "pkgT", DependencyKind.DEVELOPMENT),
        EdgeKey("app", "winapi", DependencyKind.NORMAL, "cfg(windows)"),
    }
    assert graph.get(EdgeKey("app", "pkgA")).child.version == Version.parse("1.2.5")


def test_graph_from_metadata_without_resolve():
    with pytest.raises(ResolutionError):
        graph_from_metadata({"packages": [], "resolve": None})


def test_command_flags(tmp_path: Path):
    resolver = CargoResolver(offline=True, color="never")

    cmd = resolver.command(make_variant(tmp_path, features=("serde", "std"), no_default_features=True))

    assert cmd[:4] == ["cargo", "metadata", "--format-version", "1"]
    assert "--offline" in cmd
    assert cmd[cmd.index("--features") + 1] == "serde,std"
    assert "--no-default-features" in cmd
    assert cmd[cmd.index("--color") + 1] == "never"
    assert "--all-features" in CargoResolver().command(make_variant(tmp_path, all_features=True))


def test_resolve_runs_cargo_in_the_variant_directory(monkeypatch, tmp_path: Path):
    calls = []

    def fake_run(cmd, **kwargs):
        calls.append((cmd, kwargs))
        return subprocess.CompletedProcess(
            cmd, 0, stdout=json.dumps(METADATA), stderr="warning: unused manifest key: foo\n"
        )

    monkeypatch.setattr(resolvers.subprocess, "run", fake_run)

    graph = CargoResolver(timeout=12).resolve(make_variant(tmp_path))

    assert len(graph) == 4
    assert graph.warnings == ("unused manifest key: foo",)
    assert calls[0][1]["cwd"] == tmp_path
    assert calls[0][1]["timeout"] == 12


def test_resolve_failure(monkeypatch, tmp_path: Path):
    def fake_run(cmd, **kwargs):
        return subprocess.CompletedProcess(
            cmd, 101, stdout="", stderr="    Updating index\nerror: no matching package named `nope` found\n"
        )

    monkeypatch.setattr(resolvers.subprocess, "run", fake_run)

    with pytest.raises(ResolutionError) as excinfo:
        CargoResolver().resolve(make_variant(tmp_path))

    assert "no matching package named `nope` found" in str(excinfo.value)
    assert excinfo.value.variant == "compatible"


def test_resolve_timeout(monkeypatch, tmp_path: Path):
    def fake_run(cmd, **kwargs):
        raise subprocess.TimeoutExpired(cmd, kwargs["timeout"])

    monkeypatch.setattr(resolvers.subprocess, "run", fake_run)

    with pytest.raises(ResolutionTimeout):
        CargoResolver(timeout=1).resolve(make_variant(tmp_path))


def test_missing_cargo(monkeypatch, tmp_path: Path):
    def fake_run(cmd, **kwargs):
        raise FileNotFoundError(cmd[0])

    monkeypatch.setattr(resolvers.subprocess, "run", fake_run)

    with pytest.raises(ResolutionError, match="not found"):
        CargoResolver(cargo="missing-cargo").resolve(make_variant(tmp_path))


def test_invalid_json(monkeypatch, tmp_path: Path):
    monkeypatch.setattr(
        resolvers.subprocess,
        "run",
        lambda cmd, **kwargs: subprocess.CompletedProcess(cmd, 0, stdout="{not json", stderr=""),
    )

    with pytest.raises(ResolutionError):
        CargoResolver().resolve(make_variant(tmp_path))
