"""Typer-powered command line for ``expoeject``.

``expoeject run`` reads the step inputs from the environment (see
:mod:`expoeject.config`), prints the effective configuration with the password
masked, and drives :class:`~expoeject.orchestrator.EjectWorkflow`. Failures are
reported on stderr and mapped onto :class:`~expoeject.exit_codes.ExitCode`.
"""
from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import NoReturn

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from . import __version__
from .config import ConfigurationError, StepConfig, load_config
from .exit_codes import ExitCode
from .logging import OperationScope, StructuredLogger
from .orchestrator import EjectStepError, EjectWorkflow
from .runner import CommandRunner

console = Console()
err_console = Console(stderr=True)

VERBOSE_HINT = (
    "For more details you can enable the debug logs by turning on the verbose input "
    "(verbose=yes or --verbose)."
)

CONFIG_FILE_OPTION = typer.Option(
    None,
    "--config-file",
    dir_okay=False,
    help="Read step inputs from this YAML file before applying the environment.",
)

app = typer.Typer(
    help="Eject a managed Expo project into standalone native projects.",
    add_completion=False,
)
config_app = typer.Typer(help="Inspect the effective step configuration.")
app.add_typer(config_app, name="config")


@dataclass(slots=True)
class CliState:
    """Options captured by the root callback for subcommands."""

    config_file: Path | None = None


@app.callback(invoke_without_command=True)
def _root(  # noqa: D401 - Typer displays help for us, docstring optional.
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        help="Show the expoeject version and exit.",
    ),
    config_file: Path | None = CONFIG_FILE_OPTION,
) -> None:
    """Entry point callback invoked for every CLI execution."""
    if version:
        console.print(f"expoeject {__version__}")
        raise typer.Exit(code=0)

    ctx.obj = CliState(config_file=config_file)

    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())
        raise typer.Exit(code=0)


@app.command("run")
def run_command(
    ctx: typer.Context,
    workdir: Path | None = typer.Option(
        None,
        "--workdir",
        file_okay=False,
        help="Project directory containing package.json (overrides the workdir input).",
    ),
    expo_cli_version: str | None = typer.Option(
        None,
        "--expo-cli-version",
        help="expo-cli version to install globally, or 'latest'.",
    ),
    publish: bool | None = typer.Option(
        None,
        "--publish/--no-publish",
        help="Run 'expo publish' after ejecting (overrides the run_publish input).",
    ),
    force_react_native_version: str | None = typer.Option(
        None,
        "--force-react-native-version",
        help="Pin dependencies.react-native in package.json to this version.",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable debug logging.",
    ),
    logs_dir: Path | None = typer.Option(
        None,
        "--logs-dir",
        file_okay=False,
        help="Append a JSON operation record to <logs-dir>/operations.jsonl.",
    ),
) -> None:
    """Install expo-cli, eject the project, and optionally publish it."""
    overrides: dict[str, object] = {
        "workdir": workdir,
        "expo_cli_version": expo_cli_version,
        "force_react_native_version": force_react_native_version,
        "logs_dir": logs_dir,
    }
    if publish is not None:
        overrides["run_publish"] = "yes" if publish else "no"
    if verbose:
        overrides["verbose"] = True

    config = _load_or_exit(ctx, overrides)
    _configure_logging(config.verbose)
    _render_config(config)

    logger = StructuredLogger(config.logs_dir)
    logger.register_secret(config.password)
    runner = CommandRunner(console)

    with logger.operation(
        "run",
        args=config.to_dict(),
        target={"kind": "project", "workdir": str(config.workdir or Path.cwd())},
    ) as op:
        workflow = EjectWorkflow(config, runner=runner, console=console, op=op)
        try:
            result = workflow.run()
        except ConfigurationError as exc:
            _command_error(op, f"Input validation error: {exc}", rc=ExitCode.VALIDATION)
        except EjectStepError as exc:
            cause = exc.__cause__
            _command_error(
                op,
                str(exc),
                rc=exc.exit_code,
                errors=[str(cause) if cause is not None else str(exc)],
                context={"step": exc.step},
            )

        context = {
            "method": result.method.value,
            "published": result.published,
            "manifest": str(result.manifest.path) if result.manifest else None,
        }
        changed = 1 + int(result.published) + int(result.manifest is not None)
        if result.logged_out is False:
            op.warning(
                "Project ejected; Expo logout failed.",
                warnings=["logout failed"],
                changed=changed,
                context=context,
            )
        else:
            op.success("Project ejected.", changed=changed, context=context)

    console.print()
    console.print("[green]Successfully ejected your project[/green]")


@config_app.command("show")
def config_show(
    ctx: typer.Context,
    json_output: bool = typer.Option(
        False,
        "--json",
        help="Emit configuration as JSON instead of a table.",
    ),
) -> None:
    """Display the effective configuration after merges."""
    config = _load_or_exit(ctx, {})
    if json_output:
        console.print_json(data=config.to_dict())
        return
    _render_config(config)


def _load_or_exit(ctx: typer.Context, overrides: Mapping[str, object]) -> StepConfig:
    state = ctx.obj if isinstance(ctx.obj, CliState) else CliState()
    try:
        return load_config(state.config_file, overrides=overrides)
    except ConfigurationError as exc:
        err_console.print(f"[red]Issue with input: {escape(str(exc))}[/red]")
        raise typer.Exit(code=ExitCode.VALIDATION) from exc


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=err_console, show_path=False)],
        force=True,
    )


def _render_config(config: StepConfig) -> None:
    table = Table(title="Config", show_header=True, header_style="bold magenta")
    table.add_column("Key", style="bold")
    table.add_column("Value")
    for key, value in config.to_dict().items():
        table.add_row(key, escape("" if value is None else str(value)))
    console.print(table)


def _command_error(
    op: OperationScope,
    message: str,
    *,
    rc: int = ExitCode.VALIDATION,
    errors: Sequence[str] | None = None,
    context: Mapping[str, object] | None = None,
) -> NoReturn:
    """Emit a structured error and terminate the command."""
    err_console.print(f"[red]{escape(message)}[/red]")
    err_console.print(f"[yellow]{VERBOSE_HINT}[/yellow]")
    op.error(message, errors=list(errors or [message]), rc=int(rc), context=context)
    raise typer.Exit(code=int(rc))


__all__ = ["app"]
