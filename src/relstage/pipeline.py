"""Release pipeline orchestration.

The run is a fixed, linear sequence of steps:

    version -> configure -> prepare -> compile -> relocate:<target> (xN)
    -> package -> collect-packages

Each step is attempted in isolation and produces a StepOutcome. The first
failed outcome stops the run; its step id and cause are reported in the
ReleaseResult. Nothing is retried and nothing already staged is removed.

Example:
    config = load_config(Path("."))
    result = ReleasePipeline(config).run()
    if not result.success:
        print(result.failed_step, result.error)
"""

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, Optional

from relstage.build_env import BuildEnvironment
from relstage.cargo import build_cargo_command, run_cargo_build
from relstage.config import ReleaseConfig
from relstage.errors import ReleaseError
from relstage.maturin import build_maturin_command, run_maturin_build
from relstage.output import TimedLogger, log_detail
from relstage.relocate import StagedArtifact, relocate_packages, relocate_target
from relstage.release_dir import prepare_release_dir
from relstage.version import read_version

logger = logging.getLogger(__name__)

# coarsest common file timestamp resolution (FAT), in seconds
MTIME_SLACK = 2.0


class RunState(Enum):
    """State of a release run."""

    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass(frozen=True)
class StepOutcome:
    """Result of attempting one pipeline step.

    Attributes:
        step: Step identifier (e.g. "compile", "relocate:server")
        success: Whether the step completed
        error: The failure cause when success is False
        elapsed: Wall-clock seconds spent in the step
    """

    step: str
    success: bool
    error: Optional[ReleaseError] = None
    elapsed: float = 0.0


@dataclass
class ReleaseResult:
    """Outcome of a complete release run.

    Attributes:
        state: SUCCEEDED or FAILED once the run has finished
        outcomes: Outcomes of every attempted step, in order
        artifacts: Files staged into the release directory, in order
        version: Resolved version ("" if resolution failed)
        total_elapsed: Wall-clock seconds for the whole run
    """

    state: RunState = RunState.RUNNING
    outcomes: list[StepOutcome] = field(default_factory=list)
    artifacts: list[StagedArtifact] = field(default_factory=list)
    version: str = ""
    total_elapsed: float = 0.0

    @property
    def success(self) -> bool:
        return self.state is RunState.SUCCEEDED

    @property
    def failed_step(self) -> Optional[str]:
        for outcome in self.outcomes:
            if not outcome.success:
                return outcome.step
        return None

    @property
    def error(self) -> Optional[ReleaseError]:
        for outcome in self.outcomes:
            if not outcome.success:
                return outcome.error
        return None


@dataclass(frozen=True)
class PlannedArtifact:
    """Source and destination of one artifact copy."""

    target_name: str
    source: Path
    destination: Path


@dataclass(frozen=True)
class ReleasePlan:
    """What a run would do, computed without side effects."""

    version: str
    environment: BuildEnvironment
    cargo_command: list[str]
    native_artifacts: list[PlannedArtifact]
    maturin_command: Optional[list[str]]
    package_glob: Optional[Path]


@dataclass(frozen=True)
class _Step:
    step_id: str
    description: str
    action: Callable[[], None]


class ReleasePipeline:
    """Drives one release run for a resolved ReleaseConfig.

    Not safe to run concurrently against the same working tree: the wheel
    step changes the process working directory.
    """

    def __init__(self, config: ReleaseConfig):
        self.config = config
        self._version: Optional[str] = None
        self._env: Optional[BuildEnvironment] = None
        self._artifacts: list[StagedArtifact] = []
        self._package_started: Optional[float] = None

    # Step actions

    def _resolve_version(self) -> None:
        self._version = read_version(self.config.project_dir, self.config.version_file)
        log_detail(f"Version: {self._version}")

    def _configure(self) -> None:
        self._env = self.config.build_environment()
        log_detail(f"Target: {self._env.platform_triple}")
        log_detail(f"LTO: {self._env.optimization}")
        log_detail(f"Features: {', '.join(self._env.features) or '(none)'}")

    def _prepare(self) -> None:
        prepare_release_dir(self.config.release_path)
        log_detail(f"Release directory: {self.config.release_path}")

    def _compile(self) -> None:
        assert self._env is not None
        run_cargo_build(self._env, self.config.targets, self.config.project_dir)

    def _relocate(self, index: int) -> None:
        assert self._env is not None and self._version is not None
        target = self.config.targets[index]
        artifact = relocate_target(
            target,
            self._version,
            self._env.platform_triple,
            self.config.target_path,
            self.config.release_path,
        )
        self._artifacts.append(artifact)
        log_detail(f"{artifact.source.name} -> {artifact.name}")

    def _package(self) -> None:
        assert self._env is not None
        self._package_started = time.time()
        run_maturin_build(
            self._env,
            self.config.subproject_path,
            isolated=self.config.packager.use_isolated_packager,
        )

    def _collect_packages(self) -> None:
        packager = self.config.packager
        staged = relocate_packages(
            self.config.package_output_path,
            packager.pattern,
            self.config.release_path,
            expected=packager.expected_packages,
            built_since=None if self._package_started is None else self._package_started - MTIME_SLACK,
        )
        self._artifacts.extend(staged)
        for artifact in staged:
            log_detail(artifact.name)

    def steps(self) -> list[_Step]:
        """The fixed step sequence for this configuration."""
        targets = self.config.targets
        steps = [
            _Step("version", "Resolving version", self._resolve_version),
            _Step("configure", "Configuring build environment", self._configure),
            _Step("prepare", "Preparing release directory", self._prepare),
            _Step("compile", f"Compiling {len(targets)} targets with cargo", self._compile),
        ]
        for index, target in enumerate(targets):
            steps.append(
                _Step(
                    f"relocate:{target.name}",
                    f"Staging {target.name}",
                    lambda index=index: self._relocate(index),
                )
            )
        if self.config.packager.enabled:
            steps.append(_Step("package", f"Building wheels in {self.config.packager.subproject}", self._package))
            steps.append(_Step("collect-packages", "Staging wheels", self._collect_packages))
        return steps

    def _attempt(self, step: _Step, phase: int, total: int) -> StepOutcome:
        start = time.time()
        try:
            with TimedLogger(step.description, phase=(phase, total)):
                step.action()
        except ReleaseError as e:
            if e.step is None:
                e.step = step.step_id
            logger.debug("Step %s failed: %s", step.step_id, e)
            return StepOutcome(step.step_id, False, e, time.time() - start)
        return StepOutcome(step.step_id, True, None, time.time() - start)

    def run(self) -> ReleaseResult:
        """Execute every step in order, stopping at the first failure."""
        self._version = None
        self._env = None
        self._artifacts = []

        result = ReleaseResult()
        start = time.time()
        steps = self.steps()

        for phase, step in enumerate(steps, start=1):
            outcome = self._attempt(step, phase, len(steps))
            result.outcomes.append(outcome)
            if not outcome.success:
                result.state = RunState.FAILED
                break
        else:
            result.state = RunState.SUCCEEDED

        result.version = self._version or ""
        result.artifacts = list(self._artifacts)
        result.total_elapsed = time.time() - start
        return result

    def plan(self) -> ReleasePlan:
        """Compute commands and artifact names without running anything.

        Raises:
            ConfigurationError: If the version or triple cannot be resolved
        """
        version = read_version(self.config.project_dir, self.config.version_file)
        env = self.config.build_environment()
        triple = env.platform_triple

        native = [
            PlannedArtifact(
                target_name=target.name,
                source=target.toolchain_output_path(self.config.target_path, triple),
                destination=self.config.release_path / target.release_name(version, triple),
            )
            for target in self.config.targets
        ]

        maturin_command = None
        package_glob = None
        if self.config.packager.enabled:
            maturin_command = build_maturin_command(env)
            package_glob = self.config.package_output_path / self.config.packager.pattern

        return ReleasePlan(
            version=version,
            environment=env,
            cargo_command=build_cargo_command(env, self.config.targets),
            native_artifacts=native,
            maturin_command=maturin_command,
            package_glob=package_glob,
        )
