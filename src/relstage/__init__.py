"""relstage - build and stage versioned release artifacts.

Drives cargo and maturin for a platform triple and copies the resulting
executables, libraries and wheels into a single release directory under
deterministic version- and platform-qualified names.
"""

__version__ = "0.3.0"

from relstage.config import ReleaseConfig, load_config  # noqa: E402
from relstage.errors import (  # noqa: E402
    BuildError,
    ConfigurationError,
    FilesystemError,
    MissingArtifactError,
    ReleaseError,
)
from relstage.pipeline import ReleasePipeline, ReleaseResult, RunState  # noqa: E402

__all__ = [
    "__version__",
    "BuildError",
    "ConfigurationError",
    "FilesystemError",
    "MissingArtifactError",
    "ReleaseConfig",
    "ReleaseError",
    "ReleasePipeline",
    "ReleaseResult",
    "RunState",
    "load_config",
]
