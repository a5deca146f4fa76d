"""
devx — CLI entrypoint.

Usage:
    python -m devx.main --help
    devx build [STACK]
    devx start [STACK]
    devx status [STACK] --json
    devx destroy [STACK] --force --volumes
    devx global start

STACK is a path to a stack file or the name of a stack loaded before.
Without it, devx searches the current directory and its parents for
.stack.yml / .stack.yaml / .stack.json.
"""

from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Any

import click

from devx import __version__
from devx.core.context import set_devx_home
from devx.core.models.state import StackStatus
from devx.core.observability.logging_config import resolve_level, setup_logging

_STATUS_COLORS = {
    StackStatus.RUNNING: "green",
    StackStatus.STOPPED: "white",
    StackStatus.ERROR: "red",
    StackStatus.NOT_CREATED: "white",
    StackStatus.STARTING: "yellow",
    StackStatus.STOPPING: "yellow",
    StackStatus.BUILDING: "yellow",
    StackStatus.DESTROYING: "yellow",
    StackStatus.UNKNOWN: "yellow",
}


@click.group()
@click.version_option(version=__version__, prog_name="devx")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output.")
@click.option("--debug", is_flag=True, help="Enable debug logging (very verbose).")
@click.option(
    "--home",
    "home",
    type=click.Path(file_okay=False),
    default=None,
    envvar="DEVX_HOME",
    help="devx home directory (default: ~/.devx).",
)
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    quiet: bool,
    debug: bool,
    home: str | None,
) -> None:
    """devx — build and run local container stacks."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet

    set_devx_home(Path(home).expanduser() if home else None)

    setup_logging(
        level=resolve_level(debug=debug, verbose=verbose, quiet=quiet),
        quiet_third_party=not debug,
    )


def _orchestrator(ctx: click.Context):
    """The orchestrator for this invocation (tests inject one via ``obj``)."""
    from devx.core.use_cases.lifecycle import make_orchestrator

    if ctx.obj.get("orchestrator") is None:
        ctx.obj["orchestrator"] = make_orchestrator()
    return ctx.obj["orchestrator"]


def _finish(result: Any, as_json: bool, success_message: str) -> None:
    """Print a lifecycle OperationResult and exit 1 on error."""
    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        if result.error:
            sys.exit(1)
        return

    if result.error:
        click.secho(f"❌ {result.error}", fg="red")
        sys.exit(1)

    click.secho(f"✅ {success_message}", fg="green")
    if result.state is not None and result.state.manifest_path:
        click.echo(f"   Manifest: {result.state.manifest_path}")


# ── Lifecycle commands ───────────────────────────────────────────


@cli.command()
@click.argument("stack", required=False)
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def build(ctx: click.Context, stack: str | None, as_json: bool) -> None:
    """Build the stack's images."""
    from devx.core.use_cases.lifecycle import run_operation

    result = run_operation("build", stack, orchestrator=_orchestrator(ctx))
    _finish(result, as_json, f"Stack '{result.stack}' built")


@cli.command()
@click.argument("stack", required=False)
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def start(ctx: click.Context, stack: str | None, as_json: bool) -> None:
    """Start the stack (building it first if needed)."""
    from devx.core.use_cases.lifecycle import run_operation

    result = run_operation("start", stack, orchestrator=_orchestrator(ctx))
    _finish(result, as_json, f"Stack '{result.stack}' is running")


@cli.command()
@click.argument("stack", required=False)
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def stop(ctx: click.Context, stack: str | None, as_json: bool) -> None:
    """Stop the stack's services."""
    from devx.core.use_cases.lifecycle import run_operation

    result = run_operation("stop", stack, orchestrator=_orchestrator(ctx))
    _finish(result, as_json, f"Stack '{result.stack}' stopped")


@cli.command()
@click.argument("stack", required=False)
@click.option("--force", "-f", is_flag=True, help="Skip the confirmation prompt.")
@click.option("--volumes", is_flag=True, help="Also remove named volumes.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def destroy(
    ctx: click.Context,
    stack: str | None,
    force: bool,
    volumes: bool,
    as_json: bool,
) -> None:
    """Destroy the stack's containers and forget its state."""
    from devx.core.use_cases.lifecycle import run_operation

    if not force:
        target = f"stack '{stack}'" if stack else "the stack in this directory"
        confirmed = click.confirm(
            f"Destroy {target} and all its containers"
            f"{' and volumes' if volumes else ''}? This cannot be undone.",
            default=False,
        )
        if not confirmed:
            click.echo("Destroy cancelled.")
            return

    result = run_operation(
        "destroy", stack, orchestrator=_orchestrator(ctx), remove_volumes=volumes
    )
    _finish(result, as_json, f"Stack '{result.stack}' destroyed")


@cli.command()
@click.argument("stack", required=False)
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def status(ctx: click.Context, stack: str | None, as_json: bool) -> None:
    """Show the stack's runtime status."""
    from devx.core.use_cases.lifecycle import run_operation

    result = run_operation("status", stack, orchestrator=_orchestrator(ctx))

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        if result.error:
            sys.exit(1)
        return

    if result.error:
        click.secho(f"❌ {result.error}", fg="red")
        sys.exit(1)

    report = result.report
    assert report is not None
    click.secho(f"\n📦 {report.name}: ", bold=True, nl=False)
    click.secho(report.status.value, fg=_STATUS_COLORS.get(report.status, "white"), bold=True)
    if report.message:
        click.echo(f"   {report.message}")
    if report.error:
        click.secho(f"   {report.error}", fg="red")

    for name, svc in report.services.items():
        ports = ", ".join(
            f"{p.host_port}→{p.container_port}/{p.protocol}" for p in svc.ports
        )
        click.echo(f"   • {name} ", nl=False)
        click.secho(svc.status.value, fg=_STATUS_COLORS.get(svc.status, "white"), nl=False)
        click.echo(f"  {ports}" if ports else "")

    state = result.state
    if state is not None and not ctx.obj.get("quiet"):
        click.echo(f"   Build: {state.build_status.value}")
        if state.last_built_at:
            click.echo(f"   Last built: {state.last_built_at.isoformat()}")
        if state.last_error and not report.error:
            click.secho(f"   Last error: {state.last_error}", fg="yellow")
    click.echo()


@cli.command("list")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def list_stacks(ctx: click.Context, as_json: bool) -> None:
    """List every stack devx has state for."""
    states = _orchestrator(ctx).list_states()

    if as_json:
        click.echo(json.dumps([s.to_json_dict() for s in states], indent=2))
        return

    if not states:
        click.echo("No stacks known yet.")
        return

    for state in states:
        click.echo(f"   • {state.name} ", nl=False)
        click.secho(
            state.runtime_status.value,
            fg=_STATUS_COLORS.get(state.runtime_status, "white"),
            nl=False,
        )
        click.echo(f"  [{state.build_status.value}]  → {state.config_path}")


@cli.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
def plugins(as_json: bool) -> None:
    """List the built-in plugins and whether their tools are installed."""
    from devx.adapters.registry import bootstrap_plugins, default_plugins

    report = bootstrap_plugins(default_plugins()).plugin_status()

    if as_json:
        click.echo(json.dumps(report, indent=2))
        return

    for name, info in report.items():
        click.secho(f"   {name} ", bold=True, nl=False)
        click.echo(f"v{info['version']}  ({', '.join(info['capabilities'])})")
        for cap, available in info["available"].items():
            marker = "✓" if available else "✗"
            click.secho(f"     {marker} {cap}", fg="green" if available else "red")


# ── Global stacks ────────────────────────────────────────────────


@cli.group("global")
def global_group() -> None:
    """Manage always-on global stacks."""


def _global(ctx: click.Context, operation: str, as_json: bool) -> None:
    from devx.core.use_cases.lifecycle import run_global

    result = run_global(operation, orchestrator=_orchestrator(ctx))

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        return

    if not result.loaded:
        click.echo("No global stacks configured.")
        return

    if operation == "status":
        for name, value in result.statuses.items():
            color = "red" if value.startswith("error") else "white"
            click.echo(f"   • {name} ", nl=False)
            click.secho(value, fg=color)
        return

    for name in result.loaded:
        if name in result.succeeded:
            click.secho(f"   ✓ {name}", fg="green")
        else:
            click.secho(f"   ✗ {name}", fg="red")


@global_group.command("start")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def global_start(ctx: click.Context, as_json: bool) -> None:
    """Build and start enabled global stacks (highest priority first)."""
    _global(ctx, "start", as_json)


@global_group.command("stop")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def global_stop(ctx: click.Context, as_json: bool) -> None:
    """Stop global stacks (lowest priority first)."""
    _global(ctx, "stop", as_json)


@global_group.command("status")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def global_status(ctx: click.Context, as_json: bool) -> None:
    """Show the status of every global stack."""
    _global(ctx, "status", as_json)


if __name__ == "__main__":
    cli()
