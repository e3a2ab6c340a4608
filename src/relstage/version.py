"""Version resolution from the project's VERSION file."""

from pathlib import Path

from relstage.errors import ConfigurationError

DEFAULT_VERSION_FILE = "VERSION"


def read_version(project_dir: Path, version_file: str = DEFAULT_VERSION_FILE) -> str:
    """Read the release version token.

    The token is opaque: it is only used as a naming component. Trailing
    LF and CRLF line terminators are dropped, as shell command substitution
    does. A carriage return not followed by LF is kept, and nothing else is
    trimmed or validated.

    Args:
        project_dir: Project root directory
        version_file: File name (or relative path) of the version file

    Returns:
        The version token

    Raises:
        ConfigurationError: If the file is absent, unreadable or empty
    """
    path = Path(project_dir) / version_file
    if not path.is_file():
        raise ConfigurationError(f"Version file not found: {path}", path=path)

    try:
        raw = path.read_bytes().decode("utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise ConfigurationError(f"Failed to read version file {path}: {e}", path=path) from e

    token = raw
    # whole "\n" or "\r\n" terminators only; a stray "\r" stays in the token
    while token.endswith("\n"):
        token = token[:-2] if token.endswith("\r\n") else token[:-1]
    if not token:
        raise ConfigurationError(f"Version file is empty: {path}", path=path)
    return token
