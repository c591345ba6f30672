"""
Send - Sign and submit one message to a GrowStreams program.

The payload is either built locally from a service method and hex-encoded
arguments, or fetched pre-encoded from the GrowStreams API (``--from-api``).
Either way the deployer confirms once before anything is signed.
"""

from __future__ import annotations

import json
import sys
from typing import Optional

import click
import httpx

from ..anamnesis.state import DeploymentStore, StateStoreError
from ..config import ConfigError, Settings
from ..pneuma.gas import EstimationError, GasCeilings, GasEstimator
from ..pneuma.lifecycle import LifecycleManager, SignatureRejected, SubmissionError, describe_outcome
from ..pneuma.payload import Payload, build_service_call_payload
from ..pneuma.rpc import GearRpc
from ..pneuma.runtime import GearRuntime
from ..pneuma.scale import EncodingError
from ..pneuma.signing import KeypairSigner, PayloadClient, PayloadClientError, PromptingSigner, SigningAdapter
from ..sigil.keys import CredentialError, get_keypair
from ..utils import from_hex
from .catalog import CONTRACTS
from .orchestrator import resolve_program_id


@click.command()
@click.argument("contract", type=click.Choice(sorted(CONTRACTS)))
@click.argument("method", required=False)
@click.option("--arg", "args_hex", multiple=True, help="SCALE-encoded argument as hex (repeatable, in order)")
@click.option("--from-api", "api_path", default=None, help="API path returning a pre-encoded payload")
@click.option("--body", "body_json", default="{}", help="JSON request body for --from-api")
@click.option("--value", default=0, type=int, help="Value attached to the message (planck)")
@click.option("--yes", "-y", is_flag=True, help="Sign without asking for confirmation")
def send(
    contract: str,
    method: Optional[str],
    args_hex: tuple[str, ...],
    api_path: Optional[str],
    body_json: str,
    value: int,
    yes: bool,
) -> None:
    """
    Send a message to a deployed program.

    Example: growstreams send token-vault SetStreamCore --arg 0x<64 hex>
    """
    if bool(method) == bool(api_path):
        raise click.UsageError("Give either METHOD or --from-api, not both.")

    try:
        settings = Settings.from_env()
        keypair = get_keypair()
        destination = resolve_program_id(contract, DeploymentStore(settings.state_path))
    except (ConfigError, CredentialError, StateStoreError) as exc:
        click.secho(f"ERROR: {exc}", fg="red")
        sys.exit(exc.exit_code)
    if destination is None:
        click.secho(f"ERROR: {contract} is not deployed. Run 'growstreams deploy {contract}' first.", fg="red")
        sys.exit(1)

    try:
        payload = _build_payload(contract, method, args_hex, api_path, body_json, settings.api_url)
    except (EncodingError, PayloadClientError, httpx.HTTPError) as exc:
        click.secho(f"ERROR: {exc}", fg="red")
        sys.exit(1)

    click.echo(click.style("  Target:  ", dim=True) + f"{contract} {destination}")
    click.echo(click.style("  Payload: ", dim=True) + f"{payload.label} ({len(payload)} bytes)")

    if yes:
        signer = KeypairSigner(keypair)
    else:
        signer = PromptingSigner(keypair, confirm=lambda text: click.confirm(f"  {text}", default=False))

    try:
        with GearRuntime(settings.node_url) as runtime:
            adapter = SigningAdapter(
                GasEstimator(
                    GearRpc(settings.rpc_http_url),
                    GasCeilings(upload=settings.upload_gas_ceiling, message=settings.message_gas_ceiling),
                ),
                LifecycleManager(runtime, settings.upload_timeout, settings.message_timeout),
                signer,
            )
            outcome = adapter.sign_and_send(destination, payload, value)
    except SignatureRejected as exc:
        click.secho(str(exc), fg="yellow")
        sys.exit(exc.exit_code)
    except (EstimationError, SubmissionError) as exc:
        click.secho(f"Transaction failed: {exc}", fg="red")
        sys.exit(exc.exit_code)

    if outcome.ok:
        click.secho(f"SUCCESS: {describe_outcome(outcome)}", fg="green")
    else:
        click.secho(f"FAILED: {describe_outcome(outcome)}", fg="red")
        sys.exit(1)


def _build_payload(
    contract: str,
    method: Optional[str],
    args_hex: tuple[str, ...],
    api_path: Optional[str],
    body_json: str,
    api_url: str,
) -> Payload:
    if api_path:
        try:
            body = json.loads(body_json)
        except json.JSONDecodeError as exc:
            raise EncodingError(f"--body is not valid JSON: {exc}") from exc
        if not isinstance(body, dict):
            raise EncodingError("--body must be a JSON object")
        return PayloadClient(api_url).fetch(api_path, body)

    try:
        args = [from_hex(a) for a in args_hex]
    except ValueError as exc:
        raise EncodingError(f"Invalid --arg: {exc}", reason="NotHex") from exc
    return build_service_call_payload(CONTRACTS[contract].service, method, args)
