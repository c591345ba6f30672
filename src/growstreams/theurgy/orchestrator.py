"""
Deploy / wire / mint pipeline.

Each step reads the deployment store, does its on-chain work through the
gas estimator and lifecycle manager, and records what it did. Steps are safe
to re-run: a contract already recorded for the current network is skipped
unless a redeploy is requested, and the wiring setters are idempotent on
chain. One contract failing does not stop the batch.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Iterable, Optional, Sequence

import click
import httpx

from ..anamnesis.state import DeploymentRecord, DeploymentState, DeploymentStore
from ..config import Settings, program_id_override
from ..pneuma.gas import ExistingProgram, GasCeilings, GasEstimator, GasQuote, NewProgram
from ..pneuma.lifecycle import (
    Finalized,
    LifecycleManager,
    Runtime,
    SubmissionError,
    TxOutcome,
    describe_outcome,
)
from ..pneuma.payload import Payload, build_constructor_payload, build_service_call_payload
from ..pneuma.rpc import GearRpc, RpcError
from ..pneuma.scale import (
    EncodingError,
    decode_actor_id,
    decode_u64,
    encode_actor_id,
    encode_u128_le,
    skip_strings,
)
from ..utils import short_hex
from .catalog import CONTRACTS, GROW_TOKEN, STREAM_CORE, WIRING, ContractDef, WiringCall

logger = logging.getLogger(__name__)

STEP_MODES = ("all", "contracts", "wire", "mint", "verify")
MODES = STEP_MODES + tuple(CONTRACTS)


class StepStatus(str, Enum):
    DEPLOYED = "deployed"
    SKIPPED = "skipped"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True)
class StepResult:
    step: str
    status: StepStatus
    detail: str = ""

    @property
    def failed(self) -> bool:
        return self.status is StepStatus.FAILED


@dataclass
class RunReport:
    results: list[StepResult] = field(default_factory=list)

    @property
    def failures(self) -> list[StepResult]:
        return [r for r in self.results if r.failed]

    @property
    def ok(self) -> bool:
        return not self.failures

    def count(self, status: StepStatus) -> int:
        return sum(1 for r in self.results if r.status is status)


# ============ Planning (no network) ============


def contracts_for_mode(mode: str) -> list[ContractDef]:
    if mode in ("all", "contracts"):
        return list(CONTRACTS.values())
    if mode in CONTRACTS:
        return [CONTRACTS[mode]]
    return []


def needs_upload(contract: ContractDef, state: DeploymentState, network: str, redeploy: bool) -> bool:
    record = state.get(contract.name)
    return redeploy or record is None or record.network != network


def missing_artifacts(
    contracts: Iterable[ContractDef],
    state: DeploymentState,
    settings: Settings,
    redeploy: bool = False,
) -> list[Path]:
    """Artifacts required by this run that are not on disk."""
    missing = []
    for contract in contracts:
        if not needs_upload(contract, state, settings.network, redeploy):
            continue
        path = contract.artifact_path(settings.artifacts_dir)
        if not path.is_file():
            missing.append(path)
    return missing


def resolve_program_id(name: str, store: DeploymentStore) -> Optional[str]:
    """``<CONTRACT>_ID`` from the environment, else the deployment store."""
    override = program_id_override(name)
    if override:
        return override
    record = store.get(name)
    return record.program_id if record else None


# ============ Orchestrator ============


class Orchestrator:
    def __init__(
        self,
        settings: Settings,
        runtime: Runtime,
        estimator: GasEstimator,
        lifecycle: LifecycleManager,
        store: DeploymentStore,
        keypair: Any,
        rpc: Optional[GearRpc] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.settings = settings
        self.runtime = runtime
        self.estimator = estimator
        self.lifecycle = lifecycle
        self.store = store
        self.keypair = keypair
        self.rpc = rpc
        self.sleep = sleep

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        runtime: Runtime,
        keypair: Any,
        store: Optional[DeploymentStore] = None,
    ) -> "Orchestrator":
        rpc = GearRpc(settings.rpc_http_url)
        estimator = GasEstimator(
            rpc, GasCeilings(upload=settings.upload_gas_ceiling, message=settings.message_gas_ceiling)
        )
        lifecycle = LifecycleManager(
            runtime,
            upload_timeout=settings.upload_timeout,
            message_timeout=settings.message_timeout,
        )
        return cls(
            settings=settings,
            runtime=runtime,
            estimator=estimator,
            lifecycle=lifecycle,
            store=store or DeploymentStore(settings.state_path),
            keypair=keypair,
            rpc=rpc,
        )

    @property
    def source(self) -> bytes:
        return bytes(self.keypair.public_key)

    # ---- Top level ----

    def run(self, mode: str, redeploy: bool = False) -> RunReport:
        if mode not in MODES:
            raise ValueError(f"Unknown mode: {mode}")

        report = RunReport()
        contracts = contracts_for_mode(mode)
        if contracts:
            _section("Deploy contracts")
            report.results.extend(self.deploy(contracts, redeploy=redeploy))
        if mode in ("all", "wire"):
            _section("Wire contracts")
            report.results.extend(self.wire())
        if mode in ("all", "mint"):
            _section("Mint GROW to deployer")
            report.results.append(self.mint())
        if mode == "verify":
            _section("Verify configuration")
            report.results.append(self.verify())
        return report

    # ---- Step 1: deploy ----

    def deploy(self, contracts: Sequence[ContractDef], redeploy: bool = False) -> list[StepResult]:
        state = self.store.load()
        results = []
        for contract in contracts:
            if not needs_upload(contract, state, self.settings.network, redeploy):
                record = state[contract.name]
                click.echo(
                    click.style(f"  {contract.name}: ", fg="bright_white")
                    + click.style(f"already deployed at {short_hex(record.program_id)} (skipped)", dim=True)
                )
                results.append(StepResult(contract.name, StepStatus.SKIPPED, record.program_id))
                continue
            result = self._deploy_one(contract, state)
            results.append(result)
        return results

    def _deploy_one(self, contract: ContractDef, state: DeploymentState) -> StepResult:
        click.secho(f"\n  Deploying {contract.name}...", fg="bright_white")
        path = contract.artifact_path(self.settings.artifacts_dir)
        try:
            code = path.read_bytes()
        except OSError as exc:
            return self._failed(contract.name, f"cannot read {path}: {exc}")

        click.echo(click.style("        WASM: ", dim=True) + f"{path} ({len(code) / 1024:.1f} KB)")
        try:
            payload = build_constructor_payload(contract.constructor, contract.constructor_args)
        except EncodingError as exc:
            return self._failed(contract.name, f"constructor payload: {exc}")

        quote = self.estimator.estimate_or_fallback(self.source, NewProgram(code), payload)
        _echo_gas(quote)

        try:
            ticket = self.runtime.upload_program(code, payload, quote.limit)
        except Exception as exc:
            return self._failed(contract.name, f"could not build upload: {exc}")

        click.echo(click.style("        Program ID: ", dim=True) + ticket.program_id)
        click.echo(click.style("        Code ID:    ", dim=True) + ticket.code_id)
        try:
            outcome = self.lifecycle.track_upload(ticket, self.keypair, label=contract.name)
        except SubmissionError as exc:
            return self._failed(contract.name, str(exc))

        if not isinstance(outcome, Finalized):
            return self._failed(contract.name, describe_outcome(outcome))

        record = DeploymentRecord.create(
            name=contract.name,
            program_id=ticket.program_id,
            code_id=ticket.code_id,
            network=self.settings.network,
            node=self.settings.node_url,
        )
        state[contract.name] = record
        self.store.save(state)
        click.secho(f"        Deployed! Finalized in {outcome.block_hash}", fg="green")
        click.echo(click.style("        Saved to ", dim=True) + str(self.store.path))
        return StepResult(contract.name, StepStatus.DEPLOYED, ticket.program_id)

    # ---- Step 2: wire ----

    def wire(self, calls: Sequence[WiringCall] = WIRING) -> list[StepResult]:
        state = self.store.load()
        results = []
        sent_any = False
        for call in calls:
            target = state.get(call.target)
            argument = state.get(call.argument)
            if target is None or argument is None:
                missing = ", ".join(n for n, r in ((call.target, target), (call.argument, argument)) if r is None)
                if call.required:
                    results.append(self._failed(call.label, f"missing {missing} in deploy state", loud=True))
                else:
                    click.echo(click.style(f"  {call.label}: ", fg="bright_white")
                               + click.style(f"skipped, {missing} not deployed", dim=True))
                    results.append(StepResult(call.label, StepStatus.SKIPPED, f"missing {missing}"))
                continue

            # Same signer for every call: space them out to keep nonces ordered.
            if sent_any:
                self.sleep(self.settings.wire_delay)
            sent_any = True

            click.secho(f"\n  {call.label}", fg="bright_white")
            try:
                payload = build_service_call_payload(
                    call.service, call.method, [encode_actor_id(argument.program_id)]
                )
            except EncodingError as exc:
                results.append(self._failed(call.label, str(exc), loud=True))
                continue
            results.append(self._send(call.label, target.program_id, payload, loud=True))
        return results

    # ---- Step 3: mint ----

    def mint(self, amount: Optional[int] = None, recipient: Optional[str] = None) -> StepResult:
        label = "grow-token.Mint"
        record = self.store.get(GROW_TOKEN)
        if record is None:
            return self._failed(label, f"missing {GROW_TOKEN} in deploy state")

        amount = self.settings.mint_amount if amount is None else amount
        recipient = recipient or "0x" + self.source.hex()
        click.echo(click.style("        Minting ", dim=True) + f"{amount} units to {short_hex(recipient)}")
        try:
            payload = build_service_call_payload(
                CONTRACTS[GROW_TOKEN].service,
                "Mint",
                [encode_actor_id(recipient), encode_u128_le(amount)],
            )
        except EncodingError as exc:
            return self._failed(label, str(exc))
        return self._send(label, record.program_id, payload)

    # ---- Step 4: verify ----

    def verify(self) -> StepResult:
        label = "stream-core.GetConfig"
        record = self.store.get(STREAM_CORE)
        if record is None:
            return self._failed(label, f"missing {STREAM_CORE} in deploy state")
        if self.rpc is None:
            return self._failed(label, "no RPC endpoint configured for queries")

        payload = build_service_call_payload(CONTRACTS[STREAM_CORE].service, "GetConfig")
        try:
            reply = self.rpc.calculate_reply(self.source, record.program_id, bytes(payload))
            body = skip_strings(reply["payload"], 2)
            admin = decode_actor_id(body, 0)
            min_buffer = decode_u64(body, 32)
        except (RpcError, httpx.HTTPError, EncodingError, KeyError, TypeError) as exc:
            return self._failed(label, f"query failed: {exc}")

        click.echo(click.style("        Admin:      ", dim=True) + admin)
        click.echo(click.style("        Min buffer: ", dim=True) + f"{min_buffer}s")
        expected = self.settings.min_buffer_seconds
        if min_buffer != expected:
            return self._failed(label, f"on-chain min buffer {min_buffer}s != MIN_BUFFER_SECONDS {expected}s")
        click.secho("        Configuration matches.", fg="green")
        return StepResult(label, StepStatus.DONE, f"min buffer {min_buffer}s")

    # ---- Helpers ----

    def _send(self, label: str, destination: str, payload: Payload, loud: bool = False) -> StepResult:
        quote = self.estimator.estimate_or_fallback(self.source, ExistingProgram(destination), payload)
        _echo_gas(quote)
        try:
            outcome: TxOutcome = self.lifecycle.send_message(
                self.keypair, destination, payload, quote.limit, label=label
            )
        except SubmissionError as exc:
            return self._failed(label, str(exc), loud=loud)

        if isinstance(outcome, Finalized):
            click.secho(f"        Done. Block: {outcome.block_hash}", fg="green")
            return StepResult(label, StepStatus.DONE, outcome.block_hash)
        return self._failed(label, describe_outcome(outcome), loud=loud)

    def _failed(self, step: str, detail: str, loud: bool = False) -> StepResult:
        logger.error("%s failed: %s", step, detail)
        click.secho(f"        {step} failed: {detail}", fg="red", bold=loud)
        if loud:
            click.secho("        Contracts may be partially configured; re-run 'growstreams deploy wire'.", fg="yellow")
        return StepResult(step, StepStatus.FAILED, detail)


def _section(title: str) -> None:
    click.echo()
    click.secho(f"  --- {title} ---", fg="cyan")


def _echo_gas(quote: GasQuote) -> None:
    if quote.estimated:
        click.echo(click.style("        Gas limit: ", dim=True) + str(quote.limit))
    else:
        click.echo(
            click.style("        Gas limit: ", dim=True)
            + str(quote.limit)
            + click.style(" (fallback, estimation failed)", fg="yellow")
        )
