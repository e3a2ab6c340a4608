"""Maturin invocation for the Python wheel.

The wheel is built from its own sub-project, so maturin runs with the
working directory switched into that sub-project. The switch is scoped by
working_directory(), which restores the previous directory on every exit
path.

maturin is auto-installed into an isolated venv (via iso-env) on first use,
so release machines don't need it installed globally. Set
use_isolated_packager to false in relstage.json to use the maturin on PATH.
"""

import logging
import os
import subprocess
import sys
from pathlib import Path
from types import TracebackType
from typing import Optional

from iso_env import IsoEnv, IsoEnvArgs, Requirements

from relstage.build_env import BuildEnvironment
from relstage.errors import BuildError, FilesystemError
from relstage.output import log, log_tool_output
from relstage.subprocess_utils import run_streaming, safe_popen

logger = logging.getLogger(__name__)

MATURIN = "maturin"


class working_directory:  # noqa: N801
    """Scoped change of the process working directory.

    Usage:
        with working_directory(project_dir / "cozo-lib-python"):
            ...  # cwd is the sub-project here
        # previous cwd restored, even if the block raised
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        self._previous: Optional[str] = None

    def __enter__(self) -> Path:
        self._previous = os.getcwd()
        try:
            os.chdir(self.path)
        except OSError as e:
            raise FilesystemError(f"Cannot enter sub-project directory {self.path}: {e}") from e
        return self.path

    def __exit__(
        self,
        exc_type: Optional[type[BaseException]],
        exc_val: Optional[BaseException],
        exc_tb: Optional[TracebackType],
    ) -> None:
        del exc_type, exc_val, exc_tb  # Unused
        if self._previous is not None:
            os.chdir(self._previous)
        return None


def _get_cache_root() -> Path:
    """Determine the relstage cache root directory.

    Priority: RELSTAGE_CACHE_DIR > default (~/.relstage/cache).
    """
    cache_env = os.environ.get("RELSTAGE_CACHE_DIR")
    if cache_env:
        return Path(cache_env).resolve()
    return Path.home() / ".relstage" / "cache"


def _get_maturin_env() -> IsoEnv:
    """Create an IsoEnv for maturin under the relstage cache directory."""
    venv_path = _get_cache_root() / "maturin_iso_env"
    if not venv_path.exists():
        log("Installing maturin into isolated environment...")
    args = IsoEnvArgs(
        venv_path=venv_path,
        build_info=Requirements("maturin"),
    )
    return IsoEnv(args)


def _platform_subprocess_kwargs() -> dict:
    """On Windows, adds CREATE_NO_WINDOW to prevent console flashing."""
    if sys.platform == "win32":
        return {"creationflags": subprocess.CREATE_NO_WINDOW}
    return {}


def build_maturin_command(env: BuildEnvironment, maturin: str = MATURIN) -> list[str]:
    """Construct the maturin command for a stripped release wheel.

    Returns:
        Command list, e.g. ["maturin", "build", "-F", "compact", "--release",
        "--strip", "--target", "x86_64-unknown-linux-gnu"]
    """
    cmd = [maturin, "build"]
    for feature in env.features:
        cmd.extend(["-F", feature])
    cmd.extend(["--release", "--strip", "--target", env.platform_triple])
    return cmd


def run_maturin(cmd: list[str], env: BuildEnvironment, isolated: bool) -> subprocess.CompletedProcess:
    """Run maturin in the current working directory, capturing its output."""
    if isolated:
        iso = _get_maturin_env()
        return run_streaming(
            cmd,
            env=env.child_env(),
            on_line=log_tool_output,
            popen=iso.open_proc,
            stdin=subprocess.DEVNULL,
            **_platform_subprocess_kwargs(),
        )
    return run_streaming(cmd, env=env.child_env(), on_line=log_tool_output, popen=safe_popen)


def run_maturin_build(
    env: BuildEnvironment,
    subproject_dir: Path,
    isolated: bool = True,
    maturin: str = MATURIN,
) -> subprocess.CompletedProcess:
    """Build the wheel(s) of a sub-project.

    Args:
        env: Build environment
        subproject_dir: Directory containing the Python package's pyproject
        isolated: Run maturin from the isolated venv instead of PATH
        maturin: maturin executable

    Returns:
        CompletedProcess of the successful invocation

    Raises:
        FilesystemError: If the sub-project directory cannot be entered
        BuildError: If maturin cannot be started or installed, or exits
            non-zero (output attached verbatim)
    """
    cmd = build_maturin_command(env, maturin=maturin)
    log(f"Running in {subproject_dir}: {' '.join(cmd)}", verbose_only=True)

    with working_directory(subproject_dir):
        try:
            result = run_maturin(cmd, env, isolated)
        except OSError as e:
            returncode = 127 if isinstance(e, FileNotFoundError) else 126
            raise BuildError(f"Failed to start maturin: {e}", command=cmd, returncode=returncode, output="") from e
        except subprocess.SubprocessError as e:
            # installing maturin into the isolated venv failed
            raise BuildError(f"Failed to prepare maturin environment: {e}", command=cmd, returncode=1, output="") from e

    if result.returncode != 0:
        raise BuildError(
            f"maturin build failed with exit code {result.returncode}",
            command=cmd,
            returncode=result.returncode,
            output=result.stdout or "",
        )

    logger.debug("maturin build succeeded in %s", subproject_dir)
    return result
