"""
Query - Read-only calls against deployed programs (no signature, no fee).
"""

from __future__ import annotations

import json
import sys
from typing import Optional

import click
import httpx

from ..anamnesis.state import DeploymentStore, StateStoreError
from ..config import ConfigError, Settings
from ..pneuma.payload import build_service_call_payload
from ..pneuma.rpc import GearRpc, RpcError
from ..pneuma.scale import EncodingError, skip_strings
from ..utils import from_hex, to_hex
from .catalog import CONTRACTS
from .orchestrator import resolve_program_id

# Queries need an origin; the zero account is fine for read-only calls.
_ZERO_ORIGIN = bytes(32)


@click.command()
@click.argument("contract", type=click.Choice(sorted(CONTRACTS)))
@click.argument("method")
@click.option("--arg", "args_hex", multiple=True, help="SCALE-encoded argument as hex (repeatable, in order)")
@click.option("--raw", is_flag=True, help="Print the reply including the service/method prefix")
@click.option("--json", "as_json", is_flag=True, help="Print the full reply info as JSON")
def query(contract: str, method: str, args_hex: tuple[str, ...], raw: bool, as_json: bool) -> None:
    """Query a program method and print the SCALE-encoded reply."""
    try:
        settings = Settings.from_env()
        destination = resolve_program_id(contract, DeploymentStore(settings.state_path))
    except (ConfigError, StateStoreError) as exc:
        click.secho(f"ERROR: {exc}", fg="red")
        sys.exit(exc.exit_code)
    if destination is None:
        click.secho(f"ERROR: {contract} is not deployed.", fg="red")
        sys.exit(1)

    try:
        args = [from_hex(a) for a in args_hex]
        payload = build_service_call_payload(CONTRACTS[contract].service, method, args)
        reply = GearRpc(settings.rpc_http_url).calculate_reply(_ZERO_ORIGIN, destination, bytes(payload))
    except (ValueError, RpcError, httpx.HTTPError) as exc:
        click.secho(f"Query failed: {exc}", fg="red")
        sys.exit(1)

    if as_json:
        click.echo(json.dumps(reply, indent=2))
        return

    try:
        body = from_hex(reply["payload"]) if raw else skip_strings(reply["payload"], 2)
    except (KeyError, TypeError, EncodingError) as exc:
        click.secho(f"Unexpected reply: {exc}", fg="red")
        sys.exit(1)
    click.echo(to_hex(body))
