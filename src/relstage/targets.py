"""Build target declarations and artifact naming.

Build targets are declared statically in a table. Adding a target to a
release is a data change (a new BuildTarget entry or a "targets" entry in
relstage.json), never a control-flow change.

Naming:
    toolchain output:  <target_dir>/<triple>/release/<cargo default filename>
    release artifact:  <role>-<version>-<triple><extension>
"""

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List

from relstage.errors import ConfigurationError


class ArtifactKind(Enum):
    """Kind of file cargo produces for a build target."""

    EXECUTABLE = "executable"
    STATIC_LIB = "staticlib"
    DYNAMIC_LIB = "cdylib"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class PlatformTriple:
    """Naming conventions derived from a target triple string.

    The triple itself stays opaque; only the OS/ABI components decide file
    prefixes and extensions.
    """

    value: str

    @property
    def is_windows(self) -> bool:
        return "windows" in self.value

    @property
    def is_msvc(self) -> bool:
        return self.is_windows and self.value.endswith("msvc")

    @property
    def is_apple(self) -> bool:
        return "apple" in self.value or "darwin" in self.value

    def default_filename(self, stem: str, kind: ArtifactKind) -> str:
        """Return the file name cargo gives an artifact on this platform."""
        if kind is ArtifactKind.EXECUTABLE:
            return f"{stem}.exe" if self.is_windows else stem
        if kind is ArtifactKind.STATIC_LIB:
            return f"{stem}.lib" if self.is_msvc else f"lib{stem}.a"
        if self.is_windows:
            return f"{stem}.dll"
        if self.is_apple:
            return f"lib{stem}.dylib"
        return f"lib{stem}.so"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class BuildTarget:
    """A single artifact the native toolchain is asked to produce.

    Attributes:
        name: Identifier used in logs and error messages
        project: Cargo package id passed with -p
        stem: Crate artifact name (binary or library name, without prefix)
        kind: Executable, static library or dynamic library
        role: Release-facing label, first component of the release file name
    """

    name: str
    project: str
    stem: str
    kind: ArtifactKind
    role: str

    def toolchain_filename(self, triple: str) -> str:
        return PlatformTriple(triple).default_filename(self.stem, self.kind)

    def extension(self, triple: str) -> str:
        """Extension of the toolchain output ("" for Unix executables)."""
        return Path(self.toolchain_filename(triple)).suffix

    def toolchain_output_path(self, target_dir: Path, triple: str) -> Path:
        """Where cargo writes this target for a release build."""
        return Path(target_dir) / triple / "release" / self.toolchain_filename(triple)

    def release_name(self, version: str, triple: str) -> str:
        """Release file name; a pure function of (role, version, triple)."""
        return f"{self.role}-{version}-{triple}{self.extension(triple)}"

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BuildTarget":
        """
        Parse a target declaration.

        Required keys: name, project, kind. "stem" defaults to the project id
        with dashes replaced by underscores (cargo's crate name rule) and
        "role" defaults to the default file name stem.

        Raises:
            ConfigurationError: If the declaration is not an object, required
                keys are missing, a field is not a string or kind is invalid
        """
        if not isinstance(data, dict):
            raise ConfigurationError(f"Target declaration must be a JSON object, got {data!r}")

        try:
            name = data["name"]
            project = data["project"]
            kind_value = data["kind"]
        except KeyError as e:
            raise ConfigurationError(f"Missing required field in target declaration: {e}")

        for key in ("name", "project", "kind", "stem", "role"):
            if key in data and not isinstance(data[key], str):
                raise ConfigurationError(f"Target field '{key}' must be a string, got {data[key]!r}")

        try:
            kind = ArtifactKind(kind_value)
        except ValueError:
            choices = ", ".join(k.value for k in ArtifactKind)
            raise ConfigurationError(f"Target '{name}' has unknown kind '{kind_value}' (expected one of: {choices})")

        stem = data.get("stem", project.replace("-", "_"))
        role = data.get("role") or (stem if kind is ArtifactKind.EXECUTABLE else f"lib{stem}")
        return cls(name=name, project=project, stem=stem, kind=kind, role=role)


DEFAULT_TARGETS: tuple[BuildTarget, ...] = (
    BuildTarget(
        name="server",
        project="cozoserver",
        stem="cozoserver",
        kind=ArtifactKind.EXECUTABLE,
        role="cozoserver",
    ),
    BuildTarget(
        name="c-static",
        project="cozo_c",
        stem="cozo_c",
        kind=ArtifactKind.STATIC_LIB,
        role="libcozo_c",
    ),
    BuildTarget(
        name="c-dynamic",
        project="cozo_c",
        stem="cozo_c",
        kind=ArtifactKind.DYNAMIC_LIB,
        role="libcozo_c",
    ),
    BuildTarget(
        name="java",
        project="cozo_java",
        stem="cozo_java",
        kind=ArtifactKind.DYNAMIC_LIB,
        role="libcozo_java",
    ),
    BuildTarget(
        name="node",
        project="cozo-node",
        stem="cozo_node",
        kind=ArtifactKind.DYNAMIC_LIB,
        role="libcozo_node",
    ),
)


def unique_projects(targets: List[BuildTarget]) -> List[str]:
    """Cargo package ids for the targets, de-duplicated in declared order."""
    seen: list[str] = []
    for target in targets:
        if target.project not in seen:
            seen.append(target.project)
    return seen
