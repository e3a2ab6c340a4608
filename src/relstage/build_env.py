"""Build environment for toolchain invocations.

Design:
    The settings the toolchains read from the environment (link-time
    optimization level, suppression of the embedded Python dependency) are
    held in an immutable BuildEnvironment value. Every invocation asks it for
    a child environment via child_env(); os.environ itself is never modified,
    so no step depends on state left behind by an earlier step.
"""

import os
from dataclasses import dataclass
from enum import Enum
from typing import Mapping, Optional

from relstage.errors import ConfigurationError

LTO_ENV_VAR = "CARGO_PROFILE_RELEASE_LTO"
NO_PYTHON_ENV_VAR = "PYO3_NO_PYTHON"


class OptimizationProfile(Enum):
    """Cross-crate optimization level of the release profile."""

    FAT = "fat"
    THIN = "thin"
    OFF = "off"

    def __str__(self) -> str:
        return self.value

    @property
    def description(self) -> str:
        return _PROFILE_DESCRIPTIONS[self]

    @classmethod
    def parse(cls, value: str) -> "OptimizationProfile":
        """Parse a profile name, raising ConfigurationError if unknown."""
        try:
            return cls(value.lower())
        except ValueError:
            choices = ", ".join(p.value for p in cls)
            raise ConfigurationError(f"Unknown optimization profile '{value}' (expected one of: {choices})")


_PROFILE_DESCRIPTIONS: dict[OptimizationProfile, str] = {
    OptimizationProfile.FAT: "Whole-program LTO across all crates (default, slowest)",
    OptimizationProfile.THIN: "Parallel thin LTO",
    OptimizationProfile.OFF: "No cross-crate LTO",
}


@dataclass(frozen=True)
class BuildEnvironment:
    """Immutable toolchain settings shared by every invocation of a run.

    Attributes:
        platform_triple: Target triple passed to both toolchains
        optimization: Release-profile LTO setting
        features: Feature selection applied uniformly to all targets
        disable_optional_runtime: Build without linking an embedded Python
    """

    platform_triple: str
    optimization: OptimizationProfile
    features: tuple[str, ...]
    disable_optional_runtime: bool

    @classmethod
    def create(
        cls,
        platform_triple: str,
        features: tuple[str, ...] = (),
        optimization: OptimizationProfile = OptimizationProfile.FAT,
        disable_optional_runtime: bool = True,
    ) -> "BuildEnvironment":
        """Create a BuildEnvironment, rejecting an empty triple."""
        if not isinstance(platform_triple, str) or not platform_triple.strip():
            raise ConfigurationError("Platform triple is not configured")
        return cls(
            platform_triple=platform_triple,
            optimization=optimization,
            features=tuple(features),
            disable_optional_runtime=disable_optional_runtime,
        )

    def env_overrides(self) -> dict[str, str]:
        """Variables this environment sets for child processes."""
        overrides = {LTO_ENV_VAR: self.optimization.value}
        if self.disable_optional_runtime:
            overrides[NO_PYTHON_ENV_VAR] = "1"
        return overrides

    def child_env(self, base: Optional[Mapping[str, str]] = None) -> dict[str, str]:
        """Return a copy of the base environment with overrides applied.

        Args:
            base: Environment to start from (defaults to os.environ)

        Returns:
            New dictionary for use as a child process environment
        """
        env = dict(os.environ if base is None else base)
        if not self.disable_optional_runtime:
            env.pop(NO_PYTHON_ENV_VAR, None)
        env.update(self.env_overrides())
        return env
