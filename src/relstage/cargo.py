"""Cargo invocation for the native build targets.

All targets are requested from a single `cargo build` so that shared
dependencies are compiled once and every artifact comes from the same
source snapshot and feature set. The batch is atomic: if cargo exits
non-zero, no target of the batch is considered built.
"""

import logging
import subprocess
from pathlib import Path
from typing import Sequence

from relstage.build_env import BuildEnvironment
from relstage.errors import BuildError
from relstage.output import log, log_tool_output
from relstage.subprocess_utils import run_streaming
from relstage.targets import BuildTarget, unique_projects

logger = logging.getLogger(__name__)

CARGO = "cargo"


def build_cargo_command(env: BuildEnvironment, targets: Sequence[BuildTarget], cargo: str = CARGO) -> list[str]:
    """Construct the single cargo command that builds every target.

    Args:
        env: Build environment (triple and feature selection)
        targets: Targets to build, in declared order
        cargo: cargo executable

    Returns:
        Command list, e.g. ["cargo", "build", "--release", "--target",
        "x86_64-unknown-linux-gnu", "-F", "compact", "-p", "cozoserver"]
    """
    cmd = [cargo, "build", "--release", "--target", env.platform_triple]
    for feature in env.features:
        cmd.extend(["-F", feature])
    for project in unique_projects(list(targets)):
        cmd.extend(["-p", project])
    return cmd


def run_cargo(cmd: list[str], env: BuildEnvironment, project_dir: Path) -> subprocess.CompletedProcess:
    """Run a cargo command in the project root, capturing its output."""
    return run_streaming(
        cmd,
        env=env.child_env(),
        cwd=project_dir,
        on_line=log_tool_output,
    )


def run_cargo_build(
    env: BuildEnvironment,
    targets: Sequence[BuildTarget],
    project_dir: Path,
    cargo: str = CARGO,
) -> subprocess.CompletedProcess:
    """Build all targets with one cargo invocation.

    Args:
        env: Build environment
        targets: Targets to build
        project_dir: Cargo workspace root
        cargo: cargo executable

    Returns:
        CompletedProcess of the successful invocation

    Raises:
        BuildError: If cargo cannot be started (exit code 127 when missing,
            126 otherwise) or exits non-zero (output attached verbatim)
    """
    cmd = build_cargo_command(env, targets, cargo=cargo)
    log(f"Running: {' '.join(cmd)}", verbose_only=True)

    try:
        result = run_cargo(cmd, env, project_dir)
    except OSError as e:
        # FileNotFoundError (not installed) or PermissionError (not executable)
        returncode = 127 if isinstance(e, FileNotFoundError) else 126
        raise BuildError(f"Failed to start cargo: {e}", command=cmd, returncode=returncode, output="") from e

    if result.returncode != 0:
        raise BuildError(
            f"cargo build failed with exit code {result.returncode}",
            command=cmd,
            returncode=result.returncode,
            output=result.stdout or "",
        )

    logger.debug("cargo build succeeded for %s", ", ".join(t.name for t in targets))
    return result
