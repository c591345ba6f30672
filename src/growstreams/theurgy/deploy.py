"""
Deploy - Upload, wire and seed the GrowStreams programs.

Modes:
  all        - every contract, then wiring, then the GROW mint
  contracts  - every contract, nothing else
  <contract> - a single contract (e.g. stream-core)
  wire       - cross-contract setters only
  mint       - mint GROW to the deployer only
  verify     - query stream-core and check its configuration

Everything that can be checked offline (seed, state file, artifacts) is
checked before connecting to the node.
"""

from __future__ import annotations

import dataclasses
import sys
from pathlib import Path
from typing import Optional

import click

from ..anamnesis.state import DeploymentStore, StateStoreError
from ..config import ConfigError, Settings
from ..pneuma.lifecycle import SubmissionError
from ..pneuma.runtime import GearRuntime, VARA_DECIMALS, format_balance
from ..sigil.keys import CredentialError, get_keypair
from .catalog import CONTRACTS
from .orchestrator import (
    MODES,
    Orchestrator,
    RunReport,
    StepStatus,
    contracts_for_mode,
    missing_artifacts,
)

# Warn below 0.01 VARA.
LOW_BALANCE = 10 ** (VARA_DECIMALS - 2)


@click.command()
@click.argument("mode", type=click.Choice(MODES), default="all")
@click.option("--redeploy", is_flag=True, help="Upload again even if already recorded for this network")
@click.option("--node", "node_url", default=None, help="Vara node websocket URL (default: VARA_NODE)")
@click.option(
    "--state",
    "state_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Deployment state file (default: DEPLOY_STATE)",
)
def deploy(mode: str, redeploy: bool, node_url: Optional[str], state_path: Optional[Path]) -> None:
    """Deploy GrowStreams programs to Vara.

    Re-running is safe: contracts already recorded for the current network
    are skipped unless --redeploy is given.
    """
    click.echo()
    click.echo(
        click.style("  ◆ ", fg="cyan")
        + click.style("Deploy", fg="bright_white", bold=True)
        + click.style(f" ─── mode: {mode}", fg="cyan")
    )
    click.echo()

    # --- Preflight (offline) ---
    try:
        settings = Settings.from_env(node_url)
        if state_path is not None:
            settings = dataclasses.replace(settings, state_path=state_path)
        keypair = get_keypair()
        store = DeploymentStore(settings.state_path)
        state = store.load()
    except (ConfigError, CredentialError, StateStoreError) as exc:
        click.secho(f"ERROR: {exc}", fg="red")
        sys.exit(exc.exit_code)

    missing = missing_artifacts(contracts_for_mode(mode), state, settings, redeploy)
    if missing:
        click.secho("ERROR: Missing WASM artifacts:", fg="red")
        for path in missing:
            click.echo(f"    {path}")
        click.echo("  Build the contracts first, or set ARTIFACTS_DIR.")
        sys.exit(1)

    click.echo(click.style("  Deployer: ", dim=True) + click.style(keypair.ss58_address, fg="bright_white"))
    click.echo(click.style("  Network:  ", dim=True) + settings.network)
    click.echo(click.style("  Node:     ", dim=True) + settings.node_url)
    click.echo(click.style("  State:    ", dim=True) + str(settings.state_path))

    # --- Connect ---
    try:
        runtime = GearRuntime(settings.node_url)
    except SubmissionError as exc:
        click.secho(f"ERROR: {exc}", fg="red")
        sys.exit(exc.exit_code)

    with runtime:
        click.echo(click.style("  Chain:    ", dim=True) + runtime.chain)
        _check_balance(runtime, keypair.ss58_address)

        orchestrator = Orchestrator.from_settings(settings, runtime, keypair, store)
        try:
            report = orchestrator.run(mode, redeploy=redeploy)
        except StateStoreError as exc:
            click.secho(f"ERROR: {exc}", fg="red")
            sys.exit(exc.exit_code)

    _print_summary(report, store)
    if not report.ok:
        sys.exit(1)


def _check_balance(runtime: GearRuntime, address: str) -> None:
    try:
        free = runtime.free_balance(address)
    except SubmissionError as exc:
        click.secho(f"  Could not read balance: {exc}", fg="yellow")
        return
    click.echo(click.style("  Balance:  ", dim=True) + format_balance(free))
    if free < LOW_BALANCE:
        click.secho("  Low balance. Fund the deployer from the Vara testnet faucet.", fg="yellow")


def _print_summary(report: RunReport, store: DeploymentStore) -> None:
    click.echo()
    if report.ok:
        click.echo(
            click.style("  ◆ ", fg="green")
            + click.style("Deploy Complete", fg="green", bold=True)
        )
    else:
        click.echo(
            click.style("  ◆ ", fg="red")
            + click.style(f"Deploy finished with {len(report.failures)} failure(s)", fg="red", bold=True)
        )
        for result in report.failures:
            click.echo(f"    {result.step}: {result.detail}")
    click.echo(
        click.style(
            f"    {report.count(StepStatus.DEPLOYED)} deployed, "
            f"{report.count(StepStatus.SKIPPED)} skipped, "
            f"{report.count(StepStatus.DONE)} calls",
            dim=True,
        )
    )
    click.echo()

    state = store.load()
    if state:
        click.secho("  Summary:", fg="cyan")
        for name in CONTRACTS:
            record = state.get(name)
            if record is not None:
                click.echo(f"    {name:<20} {record.program_id}")
        click.echo()
