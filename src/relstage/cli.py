"""
Command-line interface for relstage.

This module provides the `relstage` CLI tool for staging release artifacts.
"""

import argparse
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.table import Table

from relstage import __version__
from relstage.config import ReleaseConfig, load_config
from relstage.errors import BuildError, ConfigurationError, ReleaseError
from relstage.output import init_timer, log_error, log_header, set_output_file, set_verbose
from relstage.pipeline import ReleasePipeline, ReleasePlan, ReleaseResult


@dataclass
class BuildArgs:
    """Arguments for the build command."""

    project_dir: Path
    target: Optional[str] = None
    features: list[str] = field(default_factory=list)
    config: Optional[Path] = None
    release_dir: Optional[str] = None
    lto: Optional[str] = None
    no_python_package: bool = False
    log_file: Optional[Path] = None
    verbose: bool = False


@dataclass
class PlanArgs:
    """Arguments for the plan command."""

    project_dir: Path
    target: Optional[str] = None
    features: list[str] = field(default_factory=list)
    config: Optional[Path] = None
    release_dir: Optional[str] = None
    lto: Optional[str] = None
    no_python_package: bool = False


def _resolve_config(args: "BuildArgs | PlanArgs") -> ReleaseConfig:
    config = load_config(args.project_dir, args.config)
    return config.with_overrides(
        platform_triple=args.target,
        features=args.features,
        release_dir=args.release_dir,
        optimization=args.lto,
        skip_package=args.no_python_package,
    )


def _print_artifacts(console: Console, result: ReleaseResult) -> None:
    table = Table(title=f"Release artifacts ({result.version})", show_lines=False)
    table.add_column("Target", style="bold", no_wrap=True)
    table.add_column("Artifact", no_wrap=True)
    table.add_column("Size", justify="right")
    for artifact in result.artifacts:
        size = artifact.destination.stat().st_size if artifact.destination.exists() else 0
        table.add_row(artifact.target_name, str(artifact.destination), f"{size:,}")
    console.print(table)


def _print_failure(console: Console, result: ReleaseResult, verbose: bool) -> None:
    error = result.error
    console.print()
    console.print(f"[bold red]✗ Release failed at step '{result.failed_step}'[/bold red]")
    console.print()
    if error is None:
        return
    console.print(f"{type(error).__name__}: {error}", markup=False, highlight=False)
    if isinstance(error, BuildError):
        console.print(f"Command: {' '.join(error.command)}", markup=False, highlight=False)
        if error.output and not verbose:
            console.print()
            # Tool diagnostics are shown verbatim
            console.out(error.output.rstrip("\n"), highlight=False)


def _print_plan(console: Console, plan: ReleasePlan) -> None:
    env = plan.environment
    console.print(f"Version:  {plan.version}", markup=False)
    console.print(f"Target:   {env.platform_triple}", markup=False)
    console.print(f"LTO:      {env.optimization} ({env.optimization.description})", markup=False)
    console.print(f"Features: {', '.join(env.features) or '(none)'}", markup=False)
    console.print()
    console.print(f"cargo:    {' '.join(plan.cargo_command)}", markup=False)
    if plan.maturin_command is not None:
        console.print(f"maturin:  {' '.join(plan.maturin_command)}", markup=False)
    console.print()

    table = Table(title="Native artifacts")
    table.add_column("Target", style="bold", no_wrap=True)
    table.add_column("Toolchain output")
    table.add_column("Release artifact")
    for artifact in plan.native_artifacts:
        table.add_row(artifact.target_name, str(artifact.source), artifact.destination.name)
    console.print(table)

    if plan.package_glob is not None:
        console.print(f"Wheels:   {plan.package_glob} (names unchanged)", markup=False)


def build_command(args: BuildArgs, console: Optional[Console] = None) -> None:
    """Build every target and stage the release artifacts.

    Examples:
        relstage build --target x86_64-unknown-linux-gnu
        relstage build ../cozo --target aarch64-apple-darwin
        relstage build -F compact -F storage-sqlite --no-python-package
        relstage build --lto thin --verbose
    """
    console = console if console is not None else Console(highlight=False)
    init_timer()
    set_verbose(args.verbose)
    log_file = None

    try:
        if args.log_file is not None:
            log_file = open(args.log_file, "a", encoding="utf-8")
            set_output_file(log_file)

        log_header("relstage", __version__)
        config = _resolve_config(args)
        result = ReleasePipeline(config).run()

        if result.success:
            console.print()
            console.print("[bold green]✓ Release staged successfully![/bold green]")
            console.print()
            _print_artifacts(console, result)
            console.print(f"Total time: {result.total_elapsed:.2f}s")
            sys.exit(0)
        else:
            _print_failure(console, result, args.verbose)
            sys.exit(1)

    except ReleaseError as e:
        # Raised while resolving configuration, before the pipeline starts
        log_error(str(e))
        sys.exit(1)

    except KeyboardInterrupt:
        console.print()
        console.print("[bold yellow]✗ Release interrupted[/bold yellow]")
        sys.exit(130)  # Standard exit code for SIGINT

    except Exception as e:
        console.print()
        console.print("[bold red]✗ Unexpected error[/bold red]")
        console.print()
        console.print(f"{type(e).__name__}: {e}", markup=False)

        if args.verbose:
            import traceback

            console.print()
            console.print("Traceback:")
            console.print(traceback.format_exc(), markup=False)

        sys.exit(1)

    finally:
        if log_file is not None:
            set_output_file(None)
            log_file.close()


def plan_command(args: PlanArgs, console: Optional[Console] = None) -> None:
    """Show what a build would run and stage, without running anything."""
    console = console if console is not None else Console(highlight=False)
    try:
        config = _resolve_config(args)
        plan = ReleasePipeline(config).plan()
    except ConfigurationError as e:
        console.print("[bold red]✗ Configuration error[/bold red]")
        console.print(str(e), markup=False)
        sys.exit(1)

    _print_plan(console, plan)
    sys.exit(0)


def _add_common_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "project_dir",
        nargs="?",
        type=Path,
        default=Path.cwd(),
        help="Project root containing the VERSION file (default: current directory)",
    )
    parser.add_argument(
        "-t",
        "--target",
        default=None,
        help="Platform triple (default: relstage.json or $RELSTAGE_TARGET)",
    )
    parser.add_argument(
        "-F",
        "--feature",
        dest="features",
        action="append",
        default=[],
        help="Feature to enable for all targets (repeatable; replaces configured features)",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Config file (default: relstage.json in the project root, if present)",
    )
    parser.add_argument(
        "--release-dir",
        default=None,
        help="Release directory relative to the project root (default: release)",
    )
    parser.add_argument(
        "--lto",
        choices=["fat", "thin", "off"],
        default=None,
        help="Release-profile LTO setting (default: fat)",
    )
    parser.add_argument(
        "--no-python-package",
        action="store_true",
        help="Skip building and staging the Python wheels",
    )


def main(argv: Optional[list[str]] = None) -> None:
    """Main entry point for the relstage CLI."""
    parser = argparse.ArgumentParser(
        prog="relstage",
        description="relstage - build and stage versioned release artifacts",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"relstage {__version__}",
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    build_parser = subparsers.add_parser(
        "build",
        help="Build all targets and stage the release directory",
    )
    _add_common_arguments(build_parser)
    build_parser.add_argument(
        "--log-file",
        type=Path,
        default=None,
        help="Append all log output to this file",
    )
    build_parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Stream toolchain output",
    )

    plan_parser = subparsers.add_parser(
        "plan",
        help="Show commands and artifact names without building",
    )
    _add_common_arguments(plan_parser)

    parsed_args = parser.parse_args(argv)

    if not parsed_args.command:
        parser.print_help()
        sys.exit(0)

    if not parsed_args.project_dir.is_dir():
        print(f"\033[1;31m✗ Error: Not a directory: {parsed_args.project_dir}\033[0m")
        sys.exit(2)

    if parsed_args.command == "build":
        build_command(
            BuildArgs(
                project_dir=parsed_args.project_dir,
                target=parsed_args.target,
                features=parsed_args.features,
                config=parsed_args.config,
                release_dir=parsed_args.release_dir,
                lto=parsed_args.lto,
                no_python_package=parsed_args.no_python_package,
                log_file=parsed_args.log_file,
                verbose=parsed_args.verbose,
            )
        )
    elif parsed_args.command == "plan":
        plan_command(
            PlanArgs(
                project_dir=parsed_args.project_dir,
                target=parsed_args.target,
                features=parsed_args.features,
                config=parsed_args.config,
                release_dir=parsed_args.release_dir,
                lto=parsed_args.lto,
                no_python_package=parsed_args.no_python_package,
            )
        )


if __name__ == "__main__":
    main()
