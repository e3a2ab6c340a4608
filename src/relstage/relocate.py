"""Staging of build outputs into the release directory.

Native targets are renamed to <role>-<version>-<triple><ext>; packager
outputs (wheels) keep the names the packager gave them.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from relstage.errors import MissingArtifactError
from relstage.output import log_warning
from relstage.release_dir import copy_artifact
from relstage.targets import BuildTarget


@dataclass(frozen=True)
class StagedArtifact:
    """A file copied into the release directory.

    Attributes:
        target_name: Build target name, or "package" for packager outputs
        source: Toolchain output the file was copied from
        destination: Path of the release artifact
    """

    target_name: str
    source: Path
    destination: Path

    @property
    def name(self) -> str:
        return self.destination.name


def relocate_target(
    target: BuildTarget,
    version: str,
    triple: str,
    target_dir: Path,
    release_dir: Path,
) -> StagedArtifact:
    """Copy one native target's output into the release directory.

    Raises:
        MissingArtifactError: If cargo did not produce the expected file
        FilesystemError: If the copy fails
    """
    source = target.toolchain_output_path(target_dir, triple)
    if not source.is_file():
        raise MissingArtifactError(
            f"Expected output for target '{target.name}' not found: {source}",
            target=target.name,
            path=source,
        )

    destination = Path(release_dir) / target.release_name(version, triple)
    copy_artifact(source, destination)
    return StagedArtifact(target_name=target.name, source=source, destination=destination)


def find_packages(source_dir: Path, pattern: str) -> list[Path]:
    """Files in source_dir matching pattern, sorted by name."""
    source_dir = Path(source_dir)
    if not source_dir.is_dir():
        return []
    return sorted((p for p in source_dir.glob(pattern) if p.is_file()), key=lambda p: p.name)


def relocate_packages(
    source_dir: Path,
    pattern: str,
    release_dir: Path,
    expected: Optional[int] = None,
    built_since: Optional[float] = None,
) -> list[StagedArtifact]:
    """Copy every packager output matching pattern, names unchanged.

    The output directory is not cleaned between runs, so it may still hold
    wheels from earlier builds. All matches are staged, but when built_since
    is given only files modified at or after it count toward expected, and
    the older ones are reported as stale.

    Args:
        source_dir: Packager output directory (e.g. target/wheels)
        pattern: Glob pattern (e.g. "*.whl")
        release_dir: Release directory
        expected: Minimum number of matches; None accepts any non-zero count
        built_since: Timestamp (seconds since the epoch) the packager started

    Raises:
        MissingArtifactError: If nothing matches, or fewer than expected
            (nothing is copied in that case)
        FilesystemError: If a copy fails
    """
    matches = find_packages(source_dir, pattern)
    missing_path = Path(source_dir) / pattern

    if not matches:
        raise MissingArtifactError(
            f"Packager produced no files matching {missing_path}",
            target="package",
            path=missing_path,
        )

    fresh = matches
    if built_since is not None:
        fresh = [p for p in matches if p.stat().st_mtime >= built_since]
        stale = [p.name for p in matches if p not in fresh]
        if stale:
            log_warning(f"Staging {len(stale)} file(s) left over from an earlier build: {', '.join(stale)}")

    if expected is not None and len(fresh) < expected:
        found = ", ".join(p.name for p in fresh) or "none"
        raise MissingArtifactError(
            f"Expected {expected} new files matching {missing_path}, found {len(fresh)}: {found}",
            target="package",
            path=missing_path,
        )

    staged = []
    for source in matches:
        destination = Path(release_dir) / source.name
        copy_artifact(source, destination)
        staged.append(StagedArtifact(target_name="package", source=source, destination=destination))
    return staged
