"""Subprocess utilities for toolchain invocation.

Wrappers around the subprocess module that apply platform-specific flags
(no console window flashing on Windows, no stdin inheritance) and capture
the merged stdout/stderr of a tool so it can be surfaced verbatim when the
tool fails.
"""

import subprocess
import sys
from pathlib import Path
from typing import Any, Callable, Optional, Union


def get_subprocess_creation_flags() -> int:
    """Get platform-specific subprocess creation flags.

    Returns:
        - Windows: subprocess.CREATE_NO_WINDOW (prevents console window)
        - Other platforms: 0 (no special flags)
    """
    if sys.platform == "win32":
        return subprocess.CREATE_NO_WINDOW
    return 0


def _apply_defaults(kwargs: dict[str, Any]) -> dict[str, Any]:
    default_flags = get_subprocess_creation_flags()

    if "creationflags" in kwargs:
        kwargs["creationflags"] = kwargs["creationflags"] | default_flags
    elif default_flags:
        kwargs["creationflags"] = default_flags

    # Child processes must not read from the operator's terminal
    if "stdin" not in kwargs:
        kwargs["stdin"] = subprocess.DEVNULL

    return kwargs


def safe_popen(cmd: list[str], **kwargs: Any) -> subprocess.Popen:
    """Execute subprocess.Popen with platform-specific flags.

    If 'creationflags' is given it is OR'd with the platform defaults.
    If 'stdin' is given it is used as-is, otherwise it is redirected to
    subprocess.DEVNULL.
    """
    return subprocess.Popen(cmd, **_apply_defaults(kwargs))


def run_streaming(
    cmd: list[str],
    env: dict[str, str],
    cwd: Optional[Union[str, Path]] = None,
    on_line: Optional[Callable[[str], None]] = None,
    popen: Callable[..., subprocess.Popen] = safe_popen,
    **kwargs: Any,
) -> subprocess.CompletedProcess:
    """Run a tool to completion, capturing merged stdout/stderr.

    Blocks until the process exits. There is no timeout: a hung tool hangs
    the caller.

    Args:
        cmd: Command and arguments
        env: Complete environment for the child process
        cwd: Working directory for the child (None = inherit)
        on_line: Called with each output line (without line terminator)
        popen: Process factory, e.g. an isolated environment's open_proc
        **kwargs: Extra arguments forwarded to the process factory

    Returns:
        CompletedProcess whose stdout holds the full captured output
    """
    proc = popen(
        cmd,
        env=env,
        cwd=str(cwd) if cwd is not None else None,
        stdout=subprocess.PIPE,
        stderr=subprocess.STDOUT,
        **kwargs,
    )

    chunks: list[str] = []
    try:
        assert proc.stdout is not None
        for raw_line in proc.stdout:
            text = raw_line.decode("utf-8", errors="replace") if isinstance(raw_line, bytes) else raw_line
            chunks.append(text)
            if on_line is not None:
                on_line(text.rstrip("\r\n"))
        proc.wait()
    except KeyboardInterrupt:
        proc.terminate()
        try:
            proc.wait(timeout=5)
        except subprocess.TimeoutExpired:
            proc.kill()
        raise

    return subprocess.CompletedProcess(cmd, proc.returncode, stdout="".join(chunks))
