"""CLI entry point for shellprobe."""

from __future__ import annotations

import logging
import os
import shlex

import typer

from shellprobe import __version__
from shellprobe.config import ProbeConfig
from shellprobe.pty.errors import HarnessError
from shellprobe.pty.harness import ProcessHarness
from shellprobe.pty.reader import ExpectMatch, ExpectTimeout
from shellprobe.scenario import BUILTIN_SCENARIOS, Scenario, ScenarioReport, ScenarioRunner

app = typer.Typer(
    name="shellprobe",
    help="Drive an interactive program through a pseudo-terminal and check its output.",
    no_args_is_help=True,
)


def setup_logging(verbose: bool = False) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def _load_config(config_file: str | None, timeout: float | None) -> ProbeConfig:
    """Load config, with ``--timeout`` validated like any other setting."""
    try:
        config = ProbeConfig.load(config_file)
        if timeout is not None:
            harness = {**config.harness.model_dump(), "default_timeout": timeout}
            config = ProbeConfig.model_validate(
                {**config.model_dump(), "harness": harness}
            )
    except ValueError as e:
        typer.echo(f"Error: Invalid configuration: {e}", err=True)
        raise typer.Exit(2)
    return config


def _resolve_scenario(name_or_path: str) -> Scenario:
    """A builtin scenario by name, or a JSON scenario file."""
    if name_or_path in BUILTIN_SCENARIOS:
        return BUILTIN_SCENARIOS[name_or_path]
    if os.path.isfile(name_or_path):
        try:
            return Scenario.load(name_or_path)
        except ValueError as e:
            typer.echo(f"Error: Invalid scenario {name_or_path!r}: {e}", err=True)
            raise typer.Exit(2)
    typer.echo(
        f"Error: Unknown scenario {name_or_path!r} "
        f"(builtins: {', '.join(sorted(BUILTIN_SCENARIOS))})",
        err=True,
    )
    raise typer.Exit(2)


def _print_report(report: ScenarioReport) -> None:
    if report.error:
        typer.echo(f"ERROR: {report.error}", err=True)
    for outcome in report.outcomes:
        status = "ok" if outcome.passed else "FAIL"
        line = f"[{status}] {outcome.index}: {outcome.step.describe()}"
        if outcome.detail:
            line += f" - {outcome.detail}"
        typer.echo(line)
    typer.echo("---")
    typer.echo(f"{report.scenario.name}: {'passed' if report.passed else 'failed'}")


@app.command()
def run(
    scenario: str = typer.Argument(help="Builtin scenario name or path to a JSON scenario."),
    shell: str | None = typer.Option(
        None,
        "--shell",
        "-s",
        help="Command line of the program under test (default: from env/config).",
    ),
    timeout: float | None = typer.Option(
        None, "--timeout", "-t", help="Default expect timeout in seconds."
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Enable debug logging."
    ),
    config_file: str | None = typer.Option(
        None, "--config", "-c", help="Config file path."
    ),
) -> None:
    """Run a scenario against a program and report each step."""
    setup_logging(verbose)

    config = _load_config(config_file, timeout)

    resolved = _resolve_scenario(scenario)
    override = shlex.split(shell) if shell else None
    command = override or resolved.command or config.harness.shell
    typer.echo(f"shellprobe v{__version__}")
    typer.echo(f"Scenario: {resolved.name}")
    typer.echo(f"Command: {' '.join(command)}")
    typer.echo("---")

    report = ScenarioRunner(config).run(resolved, command=override)
    _print_report(report)
    if not report.passed:
        raise typer.Exit(1)


@app.command()
def expect(
    command: str = typer.Argument(help="Command line to spawn."),
    pattern: str = typer.Option(..., "--pattern", "-p", help="Regex to wait for."),
    send: list[str] | None = typer.Option(
        None, "--send", help="Line to send before expecting (repeatable)."
    ),
    timeout: float | None = typer.Option(
        None, "--timeout", "-t", help="Seconds to wait for the pattern."
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Enable debug logging."
    ),
    config_file: str | None = typer.Option(
        None, "--config", "-c", help="Config file path."
    ),
) -> None:
    """Spawn a command, send lines, and wait for a pattern in its output."""
    setup_logging(verbose)
    config = _load_config(config_file, timeout)
    harness = ProcessHarness(config.harness, config.report)

    try:
        with harness.open(command) as session:
            try:
                for line in send or []:
                    session.send_line(line)
                result = session.expect(pattern)
            finally:
                if config.harness.kill_on_finish:
                    session.kill()
    except HarnessError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(2)

    if isinstance(result, ExpectMatch):
        typer.echo(f"matched {result.text!r} at byte {result.offset}")
        return
    assert isinstance(result, ExpectTimeout)
    typer.echo(result.message, err=True)
    raise typer.Exit(1)


@app.command("list")
def list_scenarios() -> None:
    """List the builtin scenarios."""
    for name in sorted(BUILTIN_SCENARIOS):
        typer.echo(f"{name}: {BUILTIN_SCENARIOS[name].description}")
