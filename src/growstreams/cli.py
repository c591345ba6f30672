"""
GrowStreams CLI

Command-line interface for deploying and operating the GrowStreams
programs on Vara.

The deployer is an sr25519 keypair derived from VARA_SEED. Deployment
results are recorded in a local JSON state file (DEPLOY_STATE) so every
command can be re-run safely.

Commands:
  deploy  - Upload, wire and seed the programs
  send    - Sign and send one message
  query   - Read-only program query
  state   - Show recorded deployments
  whoami  - Show the deployer account
  info    - Show system information
"""

from __future__ import annotations

import logging
import sys

import click

from .anamnesis.state import DeploymentStore, StateStoreError
from .config import ConfigError, Settings, load_env_file
from .sigil.keys import CredentialError, actor_id_of, get_keypair
from .utils import short_hex


# ============ Constants ============

VERSION = "2.0.0"


# ============ Banner ============


def _print_banner(compact: bool = False) -> None:
    """Print the GrowStreams CLI banner.

    Args:
        compact: If True, print a single-line banner (for subcommands).
    """
    if compact:
        click.echo(
            click.style("  ◆ ", fg="cyan")
            + click.style("G R O W S T R E A M S", fg="bright_white", bold=True)
            + click.style(f"  v{VERSION}", dim=True)
        )
        click.echo()
        return

    border = click.style("  ◆ ═══════════════════════════════════════ ◆", fg="cyan")
    click.echo()
    click.echo(border)
    click.echo()
    click.echo(
        click.style("     G R O W S T R E A M S", fg="bright_white", bold=True)
        + click.style(f"     v{VERSION}", dim=True)
    )
    click.secho("        ─── Vara deploy toolkit ───", fg="cyan")
    click.echo()
    click.echo(border)
    click.echo()


# ============ Main CLI Group ============


@click.group(invoke_without_command=True)
@click.version_option(version=VERSION, prog_name="growstreams")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx: click.Context, verbose: bool) -> None:
    """GrowStreams: Vara deploy toolkit."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    load_env_file()
    if ctx.invoked_subcommand is None:
        _print_banner()
        click.echo(ctx.get_help())


# ============ Top-level Commands ============

from .theurgy.deploy import deploy
from .theurgy.send import send
from .theurgy.query import query

cli.add_command(deploy)
cli.add_command(send)
cli.add_command(query)


# ============ Identity ============


@cli.command()
def whoami() -> None:
    """Show the deployer account."""
    try:
        keypair = get_keypair()
    except CredentialError as exc:
        click.echo(str(exc))
        sys.exit(exc.exit_code)
    click.echo(f"Address:  {keypair.ss58_address}")
    click.echo(f"ActorId:  {actor_id_of(keypair)}")


# ============ Deployment State ============


@cli.command()
@click.option("--network", default=None, help="Only show records for this network")
def state(network: str | None) -> None:
    """Show recorded deployments."""
    try:
        settings = Settings.from_env()
        records = DeploymentStore(settings.state_path).load()
    except (ConfigError, StateStoreError) as exc:
        click.secho(f"ERROR: {exc}", fg="red")
        sys.exit(exc.exit_code)

    if network:
        records = {name: r for name, r in records.items() if r.network == network}
    if not records:
        click.echo(f"No deployments recorded in {settings.state_path}.")
        return

    click.echo(f"Deployments ({settings.state_path}):")
    for name, record in sorted(records.items()):
        click.echo(f"  {name:<20} {record.program_id}  {record.network}  {record.deployed_at}")


# ============ Info ============


@cli.command()
def info() -> None:
    """Show system information."""
    _print_banner()

    # ── Status ──
    click.secho("  Status ─────────────────────────────────", fg="cyan")
    click.echo()

    try:
        keypair = get_keypair()
        click.echo(
            click.style("  Deployer:    ", dim=True)
            + click.style(keypair.ss58_address, fg="bright_white")
        )
    except CredentialError:
        click.echo(
            click.style("  Deployer:    ", dim=True)
            + click.style("not configured", fg="yellow")
            + click.style("  (set VARA_SEED in .env)", dim=True)
        )

    try:
        settings = Settings.from_env()
    except ConfigError as exc:
        click.secho(f"  Config:      {exc}", fg="red")
        sys.exit(exc.exit_code)

    click.echo(click.style("  Network:     ", dim=True) + settings.network)
    click.echo(click.style("  Node:        ", dim=True) + settings.node_url)
    click.echo(click.style("  Artifacts:   ", dim=True) + str(settings.artifacts_dir))

    try:
        records = DeploymentStore(settings.state_path).load()
        state_text = click.style(f"{len(records)} contracts recorded", fg="bright_white")
        for name, record in sorted(records.items()):
            state_text += click.style(f"\n               {name}: {short_hex(record.program_id)}", dim=True)
    except StateStoreError:
        state_text = click.style("unreadable", fg="red")
    click.echo(click.style("  State:       ", dim=True) + state_text)

    click.echo()

    # ── Commands ──
    click.secho("  Commands ───────────────────────────────", fg="cyan")
    click.echo()

    commands = [
        ("deploy", "Upload, wire and seed the programs"),
        ("send  ", "Sign and send one message"),
        ("query ", "Read-only program query"),
        ("state ", "Show recorded deployments"),
        ("whoami", "Show the deployer account"),
    ]
    for cmd, desc in commands:
        click.echo(
            click.style("  ", dim=True)
            + click.style(cmd, fg="bright_white", bold=True)
            + click.style("  ◇  ", fg="cyan")
            + click.style(desc, dim=True)
        )

    click.echo()


# ============ Entry Points ============


def main() -> None:
    """GrowStreams CLI entry point."""
    # Ensure UTF-8 output on Windows (for Unicode box-drawing / symbols)
    if sys.platform == "win32":
        try:
            sys.stdout.reconfigure(encoding="utf-8")  # type: ignore[union-attr]
            sys.stderr.reconfigure(encoding="utf-8")  # type: ignore[union-attr]
        except (AttributeError, OSError):
            pass
    cli()


if __name__ == "__main__":
    main()
