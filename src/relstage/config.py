"""
Release configuration.

Settings come from three layers, later layers winning:
    1. Built-in defaults (the DEFAULT_TARGETS table, wheel sub-project, ...)
    2. relstage.json in the project root, or the file given with --config
    3. Command-line overrides

The platform triple has one extra fallback: the RELSTAGE_TARGET environment
variable, used when neither the config file nor the command line sets it.
"""

import json
import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, Optional

from relstage.build_env import BuildEnvironment, OptimizationProfile
from relstage.errors import ConfigurationError
from relstage.targets import DEFAULT_TARGETS, BuildTarget
from relstage.version import DEFAULT_VERSION_FILE

CONFIG_FILENAME = "relstage.json"
TARGET_ENV_VAR = "RELSTAGE_TARGET"
DEFAULT_FEATURES: tuple[str, ...] = ("compact", "storage-rocksdb")


def _str_field(data: Dict[str, Any], key: str, default: str, section: str = "") -> str:
    """Read an optional string field, rejecting any other JSON type."""
    value = data.get(key, default)
    if not isinstance(value, str):
        name = f"{section}.{key}" if section else key
        raise ConfigurationError(f"'{name}' must be a string, got {value!r}")
    return value


@dataclass(frozen=True)
class PackagerConfig:
    """Secondary packager (wheel) settings.

    Attributes:
        enabled: Whether the wheel steps run at all
        subproject: Sub-project directory maturin runs in (relative to root)
        output_dir: Directory maturin writes wheels to (relative to root)
        pattern: Glob selecting the packager outputs
        expected_packages: Minimum number of outputs, None = at least one
        use_isolated_packager: Run maturin from relstage's isolated venv
    """

    enabled: bool = True
    subproject: str = "cozo-lib-python"
    output_dir: str = "target/wheels"
    pattern: str = "*.whl"
    expected_packages: Optional[int] = None
    use_isolated_packager: bool = True

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PackagerConfig":
        if not isinstance(data, dict):
            raise ConfigurationError(f"'packager' must be a JSON object, got {data!r}")
        default = cls()
        expected = data.get("expected_packages", default.expected_packages)
        if expected is not None and (not isinstance(expected, int) or expected < 1):
            raise ConfigurationError(f"packager.expected_packages must be a positive integer, got {expected!r}")
        return cls(
            enabled=bool(data.get("enabled", default.enabled)),
            subproject=_str_field(data, "subproject", default.subproject, "packager"),
            output_dir=_str_field(data, "output_dir", default.output_dir, "packager"),
            pattern=_str_field(data, "pattern", default.pattern, "packager"),
            expected_packages=expected,
            use_isolated_packager=bool(data.get("use_isolated_packager", default.use_isolated_packager)),
        )


@dataclass(frozen=True)
class ReleaseConfig:
    """
    Complete, resolved configuration for one release run.

    Attributes:
        project_dir: Source tree root (cargo workspace root)
        version_file: Version file, relative to project_dir
        release_dir: Release staging directory, relative to project_dir
        target_dir: Cargo target directory, relative to project_dir
        platform_triple: Target triple ("" if not configured yet)
        features: Feature selection for both toolchains
        optimization: Release-profile LTO setting
        disable_optional_runtime: Build without an embedded Python
        targets: Native build targets in release order
        packager: Wheel packager settings
    """

    project_dir: Path
    version_file: str = DEFAULT_VERSION_FILE
    release_dir: str = "release"
    target_dir: str = "target"
    platform_triple: str = ""
    features: tuple[str, ...] = DEFAULT_FEATURES
    optimization: OptimizationProfile = OptimizationProfile.FAT
    disable_optional_runtime: bool = True
    targets: tuple[BuildTarget, ...] = DEFAULT_TARGETS
    packager: PackagerConfig = field(default_factory=PackagerConfig)

    @property
    def release_path(self) -> Path:
        return self.project_dir / self.release_dir

    @property
    def target_path(self) -> Path:
        return self.project_dir / self.target_dir

    @property
    def subproject_path(self) -> Path:
        return self.project_dir / self.packager.subproject

    @property
    def package_output_path(self) -> Path:
        return self.project_dir / self.packager.output_dir

    def build_environment(self) -> BuildEnvironment:
        """Immutable toolchain environment for this run.

        Raises:
            ConfigurationError: If no platform triple is configured
        """
        return BuildEnvironment.create(
            platform_triple=self.platform_triple,
            features=self.features,
            optimization=self.optimization,
            disable_optional_runtime=self.disable_optional_runtime,
        )

    @classmethod
    def from_dict(cls, project_dir: Path, data: Dict[str, Any]) -> "ReleaseConfig":
        """
        Parse configuration from a dictionary (the relstage.json content).

        Raises:
            ConfigurationError: If a field has the wrong type or value
        """
        if not isinstance(data, dict):
            raise ConfigurationError("Release configuration must be a JSON object")

        default = cls(project_dir=project_dir)

        features = data.get("features", list(default.features))
        if not isinstance(features, list) or not all(isinstance(f, str) for f in features):
            raise ConfigurationError("'features' must be a list of strings")

        optimization = default.optimization
        if "optimization" in data:
            optimization = OptimizationProfile.parse(str(data["optimization"]))

        targets = default.targets
        if "targets" in data:
            raw_targets = data["targets"]
            if not isinstance(raw_targets, list) or not raw_targets:
                raise ConfigurationError("'targets' must be a non-empty list")
            targets = tuple(BuildTarget.from_dict(t) for t in raw_targets)
            names = [t.name for t in targets]
            if len(set(names)) != len(names):
                raise ConfigurationError(f"Duplicate target names in 'targets': {names}")
            outputs = [(t.role, t.kind) for t in targets]
            if len(set(outputs)) != len(outputs):
                # same role and kind would give two targets one release file name
                clashing = sorted({f"{role} ({kind})" for role, kind in outputs if outputs.count((role, kind)) > 1})
                raise ConfigurationError(f"Targets share a release name: {', '.join(clashing)}")

        packager = PackagerConfig.from_dict(data.get("packager", {}))

        return cls(
            project_dir=project_dir,
            version_file=_str_field(data, "version_file", default.version_file),
            release_dir=_str_field(data, "release_dir", default.release_dir),
            target_dir=_str_field(data, "target_dir", default.target_dir),
            platform_triple=_str_field(data, "platform_triple", default.platform_triple),
            features=tuple(features),
            optimization=optimization,
            disable_optional_runtime=bool(data.get("disable_optional_runtime", default.disable_optional_runtime)),
            targets=targets,
            packager=packager,
        )

    def with_overrides(
        self,
        platform_triple: Optional[str] = None,
        features: Optional[list[str]] = None,
        release_dir: Optional[str] = None,
        optimization: Optional[str] = None,
        skip_package: bool = False,
    ) -> "ReleaseConfig":
        """Return a copy with command-line overrides applied."""
        config = self
        if platform_triple:
            config = replace(config, platform_triple=platform_triple)
        if features:
            config = replace(config, features=tuple(features))
        if release_dir:
            config = replace(config, release_dir=release_dir)
        if optimization:
            config = replace(config, optimization=OptimizationProfile.parse(optimization))
        if skip_package:
            config = replace(config, packager=replace(config.packager, enabled=False))
        return config


def load_config(project_dir: Path, config_path: Optional[Path] = None) -> ReleaseConfig:
    """
    Load the release configuration for a project.

    Args:
        project_dir: Project root
        config_path: Explicit config file; must exist if given. Otherwise
            relstage.json in project_dir is used when present.

    Returns:
        ReleaseConfig with the RELSTAGE_TARGET fallback applied

    Raises:
        ConfigurationError: If the file is unreadable or invalid
    """
    project_dir = Path(project_dir).resolve()

    if config_path is None:
        candidate = project_dir / CONFIG_FILENAME
        config_path = candidate if candidate.is_file() else None
    elif not Path(config_path).is_file():
        raise ConfigurationError(f"Config file not found: {config_path}", path=Path(config_path))

    if config_path is not None:
        try:
            with open(config_path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigurationError(f"Failed to load config {config_path}: {e}", path=Path(config_path)) from e
        config = ReleaseConfig.from_dict(project_dir, data)
    else:
        config = ReleaseConfig(project_dir=project_dir)

    if not config.platform_triple:
        env_triple = os.environ.get(TARGET_ENV_VAR, "")
        if env_triple:
            config = replace(config, platform_triple=env_triple)

    return config
