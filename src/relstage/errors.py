"""Error taxonomy for relstage.

Every error is fatal for the run: nothing is retried and nothing already
staged is rolled back. The pipeline records which step raised it.
"""

from pathlib import Path
from typing import Optional, Sequence


class ReleaseError(Exception):
    """Base class for all release pipeline failures."""

    def __init__(self, message: str, step: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.step = step


class ConfigurationError(ReleaseError):
    """Version file or configuration is missing, unreadable or invalid."""

    def __init__(self, message: str, path: Optional[Path] = None, step: Optional[str] = None):
        super().__init__(message, step=step)
        self.path = path


class FilesystemError(ReleaseError):
    """Release directory creation or artifact copy failed."""


class BuildError(ReleaseError):
    """A toolchain or packager invocation exited non-zero.

    Attributes:
        command: The command line that was run
        returncode: Exit status of the process
        output: Captured stdout/stderr, verbatim
    """

    def __init__(
        self,
        message: str,
        command: Sequence[str],
        returncode: int,
        output: str,
        step: Optional[str] = None,
    ):
        super().__init__(message, step=step)
        self.command = list(command)
        self.returncode = returncode
        self.output = output


class MissingArtifactError(ReleaseError):
    """The invocation reported success but an expected output is absent."""

    def __init__(self, message: str, target: str, path: Path, step: Optional[str] = None):
        super().__init__(message, step=step)
        self.target = target
        self.path = path
