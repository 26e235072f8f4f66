"""
BlueOS installer — CLI entrypoint.

Usage:
    blueos-installer --help
    blueos-installer install [--skip-board-config] [--ci-run]
    blueos-installer preflight
    blueos-installer history
"""

from __future__ import annotations

import json
import logging
import os
import signal
import sys
import threading
from pathlib import Path

import click

from blueos_installer import __version__
from blueos_installer.core.observability.logging_config import setup_logging

logger = logging.getLogger(__name__)


@click.group()
@click.version_option(version=__version__, prog_name="blueos-installer")
@click.option("--quiet", "-q", is_flag=True, help="Only report warnings and errors.")
@click.option("--debug", is_flag=True, help="Enable debug logging (every command is traced).")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=False),
    default=None,
    help="Path to installer settings YAML (default: $BLUEOS_INSTALLER_CONFIG or /etc/blueos/installer.yml).",
)
@click.pass_context
def cli(ctx: click.Context, quiet: bool, debug: bool, config_path: str | None) -> None:
    """Provision this device with BlueOS."""
    ctx.ensure_object(dict)
    ctx.obj["quiet"] = quiet
    ctx.obj["debug"] = debug
    ctx.obj["config_path"] = Path(config_path) if config_path else None

    _configure_logging(debug=debug, quiet=quiet)


def _configure_logging(debug: bool = False, quiet: bool = False) -> None:
    if debug:
        level = "DEBUG"
    elif quiet:
        level = "WARNING"
    else:
        level = os.environ.get("BLUEOS_LOG_LEVEL", "INFO")

    setup_logging(
        level=level,
        log_file=os.environ.get("BLUEOS_LOG_FILE"),
        log_file_level=os.environ.get("BLUEOS_LOG_FILE_LEVEL"),
    )


def _install_signal_handlers(cancel_event: threading.Event) -> dict[int, object]:
    """First SIGINT/SIGTERM cancels the run; a second one interrupts.

    Returns the previous handlers, for restoring.
    """

    def _handle(signum: int, frame: object) -> None:
        if cancel_event.is_set():
            raise KeyboardInterrupt
        logger.warning("Received %s, cancelling installation", signal.Signals(signum).name)
        cancel_event.set()

    previous = {}
    for signum in (signal.SIGINT, signal.SIGTERM):
        previous[signum] = signal.signal(signum, _handle)
    return previous


@cli.command()
@click.option(
    "--skip-board-config", is_flag=True, help="Do not run the board configuration script."
)
@click.option(
    "--ci-run",
    is_flag=True,
    help="CI mode: fall back to a nested docker daemon and trace every command.",
)
@click.pass_context
def install(ctx: click.Context, skip_board_config: bool, ci_run: bool) -> None:
    """Install BlueOS on this device and reboot."""
    from blueos_installer.core.use_cases.install import run_install

    if ci_run and not ctx.obj.get("debug"):
        _configure_logging(debug=True)

    cancel_event = threading.Event()
    previous = _install_signal_handlers(cancel_event)
    try:
        result = run_install(
            skip_board_config=skip_board_config,
            ci_run=ci_run,
            config_path=ctx.obj.get("config_path"),
            cancel_event=cancel_event,
        )
    finally:
        for signum, handler in previous.items():
            signal.signal(signum, handler)

    if result.error:
        click.secho(f"❌ {result.error}", fg="red", err=True)
        sys.exit(1)

    report = result.report
    assert report is not None  # guaranteed when there is no error

    failed = report.failed_outcome
    if failed is not None:
        click.secho(
            f"❌ Installation halted at {failed.stage}: {failed.reason}", fg="red", err=True
        )
        sys.exit(1)

    warnings = [w for o in report.outcomes for w in o.warnings]
    if warnings and not ctx.obj.get("quiet"):
        click.secho("⚠️  Warnings:", fg="yellow", err=True)
        for warning in warnings:
            click.echo(f"   • {warning}", err=True)


@cli.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def preflight(ctx: click.Context, as_json: bool) -> None:
    """Check this host without changing anything."""
    from blueos_installer.core.use_cases.preflight import run_preflight

    result = run_preflight(config_path=ctx.obj.get("config_path"))

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        sys.exit(0 if result.passed else 1)

    if result.error:
        click.secho(f"❌ {result.error}", fg="red")
        sys.exit(1)

    if result.state is not None:
        click.echo(
            f"   arch={result.state.architecture} euid={result.state.euid} "
            f"free={result.state.free_space_mb}MB"
        )
    if result.tools:
        click.echo(
            "   tools: " + " ".join(f"{name} {'✓' if ok else '✗'}" for name, ok in result.tools.items())
        )
    for check in result.checks:
        if check.passed:
            click.secho(f"   ✓ {check.name}", fg="green")
        elif check.detail == "not run":
            click.echo(f"   ⊘ {check.name} (not run)")
        else:
            click.secho(f"   ✗ {check.name}: {check.detail}", fg="red")

    if result.passed:
        click.secho("✅ Preflight passed", fg="green", bold=True)
    else:
        click.secho("❌ Preflight failed", fg="red", bold=True)
        sys.exit(1)


@cli.command()
@click.option("-n", "count", default=10, show_default=True, help="Number of runs to show.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def history(ctx: click.Context, count: int, as_json: bool) -> None:
    """Show recent installation runs."""
    from blueos_installer.core.use_cases.history import read_history

    result = read_history(n=count, config_path=ctx.obj.get("config_path"))

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        return

    if result.error:
        click.secho(f"❌ {result.error}", fg="red")
        sys.exit(1)

    if not result.records:
        click.echo("No installation runs recorded.")
        return

    status_color = {"ok": "green", "degraded": "yellow", "failed": "red"}
    for record in result.records:
        click.echo(f"{record.timestamp}  {record.run_id}  version={record.version}  ", nl=False)
        click.secho(record.status, fg=status_color.get(record.status, "white"))
        if record.failed_stage:
            click.echo(f"   halted at {record.failed_stage}: {'; '.join(record.errors)}")


if __name__ == "__main__":
    cli()
