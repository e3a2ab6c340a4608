"""Release directory preparation and artifact copying."""

import logging
import shutil
from pathlib import Path

from relstage.errors import FilesystemError

logger = logging.getLogger(__name__)


def prepare_release_dir(path: Path) -> Path:
    """Ensure the release directory exists.

    Idempotent: an existing directory (and anything already in it) is left
    untouched.

    Raises:
        FilesystemError: If the path is occupied by a non-directory or the
            directory cannot be created
    """
    path = Path(path)
    if path.exists() and not path.is_dir():
        raise FilesystemError(f"Release path exists and is not a directory: {path}")

    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise FilesystemError(f"Failed to create release directory {path}: {e}") from e

    logger.debug("Release directory ready: %s", path)
    return path


def copy_artifact(source: Path, destination: Path) -> Path:
    """Copy file content and permission bits, overwriting the destination.

    Timestamps are not preserved, so repeated runs differ only in mtime.

    Raises:
        FilesystemError: On any I/O failure
    """
    try:
        shutil.copy(str(source), str(destination))
    except OSError as e:
        raise FilesystemError(f"Failed to copy {source} -> {destination}: {e}") from e

    logger.debug("Copied %s -> %s", source, destination)
    return destination
