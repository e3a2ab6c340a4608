"""Tests for pipeline module - linear stop-on-first-failure release runs.

Tests cover:
- End-to-end run with a single server target (exact release contents)
- Wheel relocation with multiple matching files
- Determinism of repeated runs
- Re-running with a new version keeps older artifacts
- Missing VERSION file stops before any toolchain call
- cargo failure stages nothing
- Missing target output is attributed to that target and halts the run
- Wheels left over from an earlier build do not satisfy the expected count
"""

import os
import subprocess
import time
from pathlib import Path
from unittest.mock import patch

import pytest

from relstage.config import PackagerConfig, ReleaseConfig
from relstage.errors import BuildError, ConfigurationError, MissingArtifactError
from relstage.pipeline import ReleasePipeline, RunState
from relstage.targets import DEFAULT_TARGETS, ArtifactKind, BuildTarget

TRIPLE = "x86_64-linux-gnu"

SERVER = BuildTarget("server", "server", "server", ArtifactKind.EXECUTABLE, "server")


# ─── Helpers ──────────────────────────────────────────────────────────────────


def _project(tmp_path: Path, version: str = "1.2.3") -> Path:
    (tmp_path / "VERSION").write_text(version)
    (tmp_path / "cozo-lib-python").mkdir()
    return tmp_path


def _config(project: Path, targets=(SERVER,), packager_enabled: bool = False, **packager) -> ReleaseConfig:
    return ReleaseConfig(
        project_dir=project,
        platform_triple=TRIPLE,
        targets=tuple(targets),
        packager=PackagerConfig(enabled=packager_enabled, **packager),
    )


def _fake_cargo(skip: tuple[str, ...] = ()):
    """Simulate cargo writing every target's default output."""

    def _run(env, targets, project_dir):
        for target in targets:
            if target.name in skip:
                continue
            path = target.toolchain_output_path(project_dir / "target", env.platform_triple)
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(f"{target.name}:{target.kind.value}".encode())
        return subprocess.CompletedProcess([], returncode=0, stdout="")

    return _run


def _fake_maturin(wheels: tuple[str, ...]):
    def _run(env, subproject_dir, isolated=True):
        out = subproject_dir.parent / "target" / "wheels"
        out.mkdir(parents=True, exist_ok=True)
        for name in wheels:
            (out / name).write_bytes(name.encode())
        return subprocess.CompletedProcess([], returncode=0, stdout="")

    return _run


def _release_files(project: Path) -> dict[str, bytes]:
    release = project / "release"
    return {p.name: p.read_bytes() for p in sorted(release.iterdir())}


# ─── Successful runs ──────────────────────────────────────────────────────────


@patch("relstage.pipeline.run_maturin_build")
@patch("relstage.pipeline.run_cargo_build", side_effect=_fake_cargo())
def test_single_server_target_end_to_end(mock_cargo, mock_maturin, tmp_path):
    project = _project(tmp_path)

    result = ReleasePipeline(_config(project)).run()

    assert result.state is RunState.SUCCEEDED
    assert result.success
    assert result.failed_step is None
    assert result.version == "1.2.3"
    assert list(_release_files(project)) == ["server-1.2.3-x86_64-linux-gnu"]
    assert [a.name for a in result.artifacts] == ["server-1.2.3-x86_64-linux-gnu"]
    assert [o.step for o in result.outcomes] == ["version", "configure", "prepare", "compile", "relocate:server"]
    mock_cargo.assert_called_once()
    mock_maturin.assert_not_called()


@patch("relstage.pipeline.run_maturin_build", side_effect=_fake_maturin(("pkg-cp310.whl", "pkg-cp311.whl")))
@patch("relstage.pipeline.run_cargo_build", side_effect=_fake_cargo())
def test_wheels_are_staged_with_original_names(mock_cargo, mock_maturin, tmp_path):
    project = _project(tmp_path)

    result = ReleasePipeline(_config(project, packager_enabled=True)).run()

    assert result.success
    assert sorted(_release_files(project)) == [
        "pkg-cp310.whl",
        "pkg-cp311.whl",
        "server-1.2.3-x86_64-linux-gnu",
    ]
    assert result.outcomes[-2].step == "package"
    assert result.outcomes[-1].step == "collect-packages"
    env, subproject_dir = mock_maturin.call_args[0][:2]
    assert subproject_dir == project / "cozo-lib-python"
    assert env.platform_triple == TRIPLE


@patch("relstage.pipeline.run_maturin_build", side_effect=_fake_maturin(("cozo_embedded-0.7.6-cp37-abi3.whl",)))
@patch("relstage.pipeline.run_cargo_build", side_effect=_fake_cargo())
def test_all_default_targets(mock_cargo, mock_maturin, tmp_path):
    project = _project(tmp_path, "0.7.6")
    config = _config(project, targets=DEFAULT_TARGETS, packager_enabled=True)

    result = ReleasePipeline(config).run()

    assert result.success
    assert sorted(_release_files(project)) == [
        "cozo_embedded-0.7.6-cp37-abi3.whl",
        "cozoserver-0.7.6-x86_64-linux-gnu",
        "libcozo_c-0.7.6-x86_64-linux-gnu.a",
        "libcozo_c-0.7.6-x86_64-linux-gnu.so",
        "libcozo_java-0.7.6-x86_64-linux-gnu.so",
        "libcozo_node-0.7.6-x86_64-linux-gnu.so",
    ]


@patch("relstage.pipeline.run_cargo_build", side_effect=_fake_cargo())
def test_repeated_runs_are_deterministic(mock_cargo, tmp_path):
    project = _project(tmp_path)
    config = _config(project, targets=DEFAULT_TARGETS)

    assert ReleasePipeline(config).run().success
    first = _release_files(project)
    assert ReleasePipeline(config).run().success

    assert _release_files(project) == first


@patch("relstage.pipeline.run_cargo_build", side_effect=_fake_cargo())
def test_new_version_adds_artifacts_without_removing_old(mock_cargo, tmp_path):
    project = _project(tmp_path, "1.2.3")
    assert ReleasePipeline(_config(project)).run().success

    (project / "VERSION").write_text("1.3.0")
    assert ReleasePipeline(_config(project)).run().success

    assert list(_release_files(project)) == [
        "server-1.2.3-x86_64-linux-gnu",
        "server-1.3.0-x86_64-linux-gnu",
    ]


# ─── Failures ─────────────────────────────────────────────────────────────────


@patch("relstage.pipeline.run_maturin_build")
@patch("relstage.pipeline.run_cargo_build")
def test_missing_version_file_stops_before_toolchain(mock_cargo, mock_maturin, tmp_path):
    result = ReleasePipeline(_config(tmp_path, packager_enabled=True)).run()

    assert result.state is RunState.FAILED
    assert result.failed_step == "version"
    assert isinstance(result.error, ConfigurationError)
    assert result.error.step == "version"
    assert len(result.outcomes) == 1
    assert not (tmp_path / "release").exists()
    mock_cargo.assert_not_called()
    mock_maturin.assert_not_called()


@patch("relstage.pipeline.run_cargo_build")
def test_missing_triple_fails_in_configure(mock_cargo, tmp_path):
    project = _project(tmp_path)
    config = ReleaseConfig(project_dir=project, targets=(SERVER,), packager=PackagerConfig(enabled=False))

    result = ReleasePipeline(config).run()

    assert result.failed_step == "configure"
    assert isinstance(result.error, ConfigurationError)
    mock_cargo.assert_not_called()


@patch("relstage.pipeline.run_maturin_build")
@patch("relstage.pipeline.run_cargo_build")
def test_cargo_failure_stages_nothing(mock_cargo, mock_maturin, tmp_path):
    project = _project(tmp_path)
    mock_cargo.side_effect = BuildError(
        "cargo build failed with exit code 101",
        command=["cargo", "build"],
        returncode=101,
        output="error[E0308]: mismatched types\n",
    )

    result = ReleasePipeline(_config(project, targets=DEFAULT_TARGETS, packager_enabled=True)).run()

    assert result.failed_step == "compile"
    assert isinstance(result.error, BuildError)
    assert result.error.output == "error[E0308]: mismatched types\n"
    assert result.artifacts == []
    assert list((project / "release").iterdir()) == []
    mock_maturin.assert_not_called()


@patch("relstage.pipeline.run_maturin_build")
@patch("relstage.pipeline.run_cargo_build", side_effect=_fake_cargo(skip=("java",)))
def test_missing_target_output_halts_at_that_target(mock_cargo, mock_maturin, tmp_path):
    project = _project(tmp_path, "0.7.6")

    result = ReleasePipeline(_config(project, targets=DEFAULT_TARGETS, packager_enabled=True)).run()

    assert result.failed_step == "relocate:java"
    assert isinstance(result.error, MissingArtifactError)
    assert result.error.target == "java"
    # targets before java stay staged, later ones are never attempted
    assert [a.target_name for a in result.artifacts] == ["server", "c-static", "c-dynamic"]
    assert "libcozo_node-0.7.6-x86_64-linux-gnu.so" not in _release_files(project)
    assert "relocate:node" not in [o.step for o in result.outcomes]
    mock_maturin.assert_not_called()


@patch("relstage.pipeline.run_maturin_build", side_effect=_fake_maturin(()))
@patch("relstage.pipeline.run_cargo_build", side_effect=_fake_cargo())
def test_no_wheels_is_missing_artifact(mock_cargo, mock_maturin, tmp_path):
    project = _project(tmp_path)

    result = ReleasePipeline(_config(project, packager_enabled=True)).run()

    assert result.failed_step == "collect-packages"
    assert isinstance(result.error, MissingArtifactError)
    # native artifacts already staged are left in place
    assert list(_release_files(project)) == ["server-1.2.3-x86_64-linux-gnu"]


@patch("relstage.pipeline.run_maturin_build", side_effect=_fake_maturin(("pkg-cp310.whl",)))
@patch("relstage.pipeline.run_cargo_build", side_effect=_fake_cargo())
def test_partial_wheel_set_fails_when_count_expected(mock_cargo, mock_maturin, tmp_path):
    project = _project(tmp_path)

    result = ReleasePipeline(_config(project, packager_enabled=True, expected_packages=2)).run()

    assert result.failed_step == "collect-packages"
    assert "pkg-cp310.whl" not in _release_files(project)



@patch("relstage.pipeline.run_maturin_build", side_effect=_fake_maturin(("pkg-1.2.3-cp310.whl",)))
@patch("relstage.pipeline.run_cargo_build", side_effect=_fake_cargo())
def test_stale_wheel_is_not_counted_as_new_output(mock_cargo, mock_maturin, tmp_path):
    project = _project(tmp_path)
    wheels = project / "target" / "wheels"
    wheels.mkdir(parents=True)
    old = wheels / "pkg-1.2.2-cp310.whl"
    old.write_bytes(b"previous release")
    stamp = time.time() - 3600
    os.utime(old, (stamp, stamp))

    result = ReleasePipeline(_config(project, packager_enabled=True, expected_packages=2)).run()

    assert result.failed_step == "collect-packages"
    assert isinstance(result.error, MissingArtifactError)
    assert "pkg-1.2.3-cp310.whl" not in _release_files(project)


@patch("relstage.pipeline.run_maturin_build")
@patch("relstage.cargo.run_cargo", side_effect=PermissionError(13, "Permission denied"))
def test_unexecutable_cargo_fails_compile_step(mock_run, mock_maturin, tmp_path):
    project = _project(tmp_path)

    result = ReleasePipeline(_config(project, packager_enabled=True)).run()

    assert result.state is RunState.FAILED
    assert result.failed_step == "compile"
    assert isinstance(result.error, BuildError)
    assert result.error.returncode == 126
    mock_maturin.assert_not_called()


@patch("relstage.pipeline.run_cargo_build", side_effect=_fake_cargo())
def test_release_path_occupied_by_file(mock_cargo, tmp_path):
    project = _project(tmp_path)
    (project / "release").write_text("oops")

    result = ReleasePipeline(_config(project)).run()

    assert result.failed_step == "prepare"
    mock_cargo.assert_not_called()


# ─── Plan ─────────────────────────────────────────────────────────────────────


def test_plan_has_no_side_effects(tmp_path):
    project = _project(tmp_path, "0.7.6")
    config = _config(project, targets=DEFAULT_TARGETS, packager_enabled=True)

    plan = ReleasePipeline(config).plan()

    assert plan.version == "0.7.6"
    assert plan.cargo_command[:5] == ["cargo", "build", "--release", "--target", TRIPLE]
    assert plan.maturin_command is not None and "--strip" in plan.maturin_command
    assert plan.native_artifacts[0].destination == project / "release" / "cozoserver-0.7.6-x86_64-linux-gnu"
    assert plan.package_glob == project / "target" / "wheels" / "*.whl"
    assert not (project / "release").exists()


def test_plan_missing_version(tmp_path):
    with pytest.raises(ConfigurationError):
        ReleasePipeline(_config(tmp_path)).plan()
