"""Transaction lifecycle state machine."""

from __future__ import annotations

import threading
import time
from typing import Any

import pytest

from growstreams.pneuma.lifecycle import (
    ChainFailure,
    Failed,
    Finalized,
    Invalid,
    LifecycleManager,
    ModuleError,
    PendingSubmission,
    RuntimeEvent,
    StatusKind,
    StatusUpdate,
    SubmissionError,
    TimedOut,
    TransactionTracker,
    TxState,
    TxTimeout,
    decode_dispatch_error,
    describe_outcome,
)
from growstreams.pneuma.payload import build_service_call_payload

from conftest import BLOCK, FAILED_EVENT, FakeKeypair, FakeRuntime

PROGRAM = "0x" + "cd" * 32


def _submission(timeout: float = 5.0) -> PendingSubmission:
    return PendingSubmission(
        label="VaultService.SetStreamCore",
        destination=PROGRAM,
        payload=build_service_call_payload("VaultService", "SetStreamCore"),
        gas_limit=1_000,
        timeout=timeout,
    )


def _lookup(module_index: int, error_index: int) -> ModuleError:
    assert (module_index, error_index) == (104, 5)
    return ModuleError(section="Gear", name="InactiveProgram", docs="Program is terminated.")


class TestTracker:
    def test_in_block_then_finalized_resolves_once(self) -> None:
        tracker = TransactionTracker(_submission())

        assert tracker.on_status(StatusUpdate(StatusKind.READY)) is False
        assert tracker.on_status(StatusUpdate(StatusKind.IN_BLOCK, BLOCK)) is False
        assert tracker.state is TxState.IN_BLOCK
        assert not tracker.resolved

        assert tracker.on_status(StatusUpdate(StatusKind.FINALIZED, BLOCK)) is True
        assert tracker.state is TxState.FINALIZED
        assert tracker.wait() == Finalized(BLOCK)

    def test_updates_after_resolution_are_ignored(self) -> None:
        tracker = TransactionTracker(_submission())
        tracker.on_status(StatusUpdate(StatusKind.FINALIZED, BLOCK))

        assert tracker.on_status(StatusUpdate(StatusKind.INVALID)) is True
        assert tracker.on_status(StatusUpdate(StatusKind.FINALIZED, "0xother")) is True
        assert tracker.ignored_updates == 2
        assert tracker.outcome == Finalized(BLOCK)

    def test_extrinsic_failed_is_failure_with_module_error(self) -> None:
        tracker = TransactionTracker(_submission(), error_lookup=_lookup)
        tracker.on_status(StatusUpdate(StatusKind.FINALIZED, BLOCK, (FAILED_EVENT,)))

        outcome = tracker.wait()
        assert isinstance(outcome, Failed)
        assert outcome.module_error.qualified_name == "Gear.InactiveProgram"
        assert outcome.error == "Gear.InactiveProgram: Program is terminated."
        assert outcome.block_hash == BLOCK
        assert tracker.state is TxState.FAILED

    def test_failed_lookup_still_resolves_failed(self) -> None:
        def lookup(module_index: int, error_index: int) -> ModuleError:
            raise KeyError(f"no pallet {module_index}")

        tracker = TransactionTracker(_submission(), error_lookup=lookup)

        assert tracker.on_status(StatusUpdate(StatusKind.FINALIZED, BLOCK, (FAILED_EVENT,))) is True
        outcome = tracker.wait()
        assert isinstance(outcome, Failed)
        assert outcome.error == "Module(index=104, error=5)"
        assert outcome.module_error is None

    def test_unreadable_events_resolve_failed(self) -> None:
        tracker = TransactionTracker(_submission())
        tracker.on_status(StatusUpdate(StatusKind.FINALIZED, BLOCK, events_error="block pruned"))

        outcome = tracker.wait()
        assert isinstance(outcome, Failed)
        assert "block pruned" in outcome.error
        assert outcome.block_hash == BLOCK

    def test_wait_without_outcome_raises(self) -> None:
        tracker = TransactionTracker(_submission())
        tracker._done.set()
        with pytest.raises(SubmissionError, match="without an outcome"):
            tracker.wait()

    def test_success_events_are_not_failures(self) -> None:
        tracker = TransactionTracker(_submission())
        events = (RuntimeEvent("Gear", "MessageQueued"), RuntimeEvent("System", "ExtrinsicSuccess"))
        tracker.on_status(StatusUpdate(StatusKind.FINALIZED, BLOCK, events))
        assert tracker.outcome == Finalized(BLOCK)

    @pytest.mark.parametrize("kind", [StatusKind.INVALID, StatusKind.DROPPED, StatusKind.USURPED])
    def test_invalid_family(self, kind: StatusKind) -> None:
        tracker = TransactionTracker(_submission())
        assert tracker.on_status(StatusUpdate(kind)) is True
        assert tracker.wait() == Invalid(kind.value)

    def test_finality_timeout(self) -> None:
        tracker = TransactionTracker(_submission(timeout=7))
        tracker.on_status(StatusUpdate(StatusKind.FINALITY_TIMEOUT, BLOCK))
        outcome = tracker.wait()
        assert isinstance(outcome, TimedOut)
        assert outcome.timeout == 7

    def test_retracted_is_not_terminal(self) -> None:
        tracker = TransactionTracker(_submission())
        assert tracker.on_status(StatusUpdate(StatusKind.RETRACTED, BLOCK)) is False
        assert not tracker.resolved

    def test_deadline_then_late_finalized(self) -> None:
        tracker = TransactionTracker(_submission(timeout=0.01))

        outcome = tracker.wait()
        assert isinstance(outcome, TimedOut)
        assert tracker.state is TxState.TIMED_OUT

        # The chain result arrives after the caller gave up.
        assert tracker.on_status(StatusUpdate(StatusKind.FINALIZED, BLOCK)) is True
        assert tracker.outcome == outcome
        assert tracker.ignored_updates == 1

    def test_expire_after_resolution_does_nothing(self) -> None:
        tracker = TransactionTracker(_submission())
        tracker.on_status(StatusUpdate(StatusKind.FINALIZED, BLOCK))
        assert tracker.expire() is False
        assert tracker.outcome == Finalized(BLOCK)

    def test_dispatch_failure_raises_from_wait(self) -> None:
        tracker = TransactionTracker(_submission())
        tracker.fail(ConnectionError("socket closed"))

        with pytest.raises(SubmissionError) as exc_info:
            tracker.wait()
        assert "socket closed" in str(exc_info.value)
        assert tracker.state is TxState.DISPATCH_FAILED

    def test_racing_resolutions_produce_one_outcome(self) -> None:
        tracker = TransactionTracker(_submission(timeout=1))
        start = threading.Barrier(3)

        def finalize() -> None:
            start.wait()
            tracker.on_status(StatusUpdate(StatusKind.FINALIZED, BLOCK))

        def expire() -> None:
            start.wait()
            tracker.expire()

        threads = [threading.Thread(target=finalize), threading.Thread(target=expire)]
        for t in threads:
            t.start()
        start.wait()
        for t in threads:
            t.join()

        outcome = tracker.wait()
        assert outcome in (Finalized(BLOCK), TimedOut(1))
        assert tracker.outcome is outcome


class TestOutcomes:
    def test_raise_for_failure(self) -> None:
        Finalized(BLOCK).raise_for_failure()
        with pytest.raises(ChainFailure) as exc_info:
            Failed("Gear.InactiveProgram", BLOCK).raise_for_failure()
        assert exc_info.value.block_hash == BLOCK
        with pytest.raises(TxTimeout):
            TimedOut(90).raise_for_failure()
        with pytest.raises(SubmissionError):
            Invalid("dropped").raise_for_failure()

    def test_describe(self) -> None:
        assert describe_outcome(Finalized("0x01")) == "finalized in 0x01"
        assert describe_outcome(TimedOut(90)) == "timed out after 90s"
        assert describe_outcome(Invalid("usurped")) == "invalid (usurped)"


class TestDecodeDispatchError:
    def test_module_dict_with_lookup(self) -> None:
        message, module_error = decode_dispatch_error({"Module": {"index": 104, "error": "0x05000000"}}, _lookup)
        assert message.startswith("Gear.InactiveProgram")
        assert module_error is not None

    def test_module_tuple_without_lookup(self) -> None:
        message, module_error = decode_dispatch_error({"Module": (104, 5)})
        assert message == "Module(index=104, error=5)"
        assert module_error is None

    def test_unit_variant(self) -> None:
        assert decode_dispatch_error({"BadOrigin": None}) == ("BadOrigin", None)

    def test_variant_with_value(self) -> None:
        assert decode_dispatch_error({"Token": "FundsUnavailable"}) == ("Token: FundsUnavailable", None)

    def test_anything_else(self) -> None:
        assert decode_dispatch_error("Other") == ("Other", None)


class _SlowRuntime(FakeRuntime):
    """Delivers finalization only after the caller's deadline."""

    def __init__(self, delay: float) -> None:
        super().__init__()
        self.delay = delay
        self.late_result: list[bool] = []

    def submit(self, call: Any, keypair: Any, on_status) -> None:
        on_status(StatusUpdate(StatusKind.IN_BLOCK, BLOCK))
        time.sleep(self.delay)
        self.late_result.append(on_status(StatusUpdate(StatusKind.FINALIZED, BLOCK)))


class _BrokenRuntime(FakeRuntime):
    def submit(self, call: Any, keypair: Any, on_status) -> None:
        raise SubmissionError("Signing failed: bad nonce")


class _SilentRuntime(FakeRuntime):
    def submit(self, call: Any, keypair: Any, on_status) -> None:
        on_status(StatusUpdate(StatusKind.READY))


class TestLifecycleManager:
    def test_send_message_finalized(self, runtime: FakeRuntime, keypair: FakeKeypair) -> None:
        manager = LifecycleManager(runtime, message_timeout=5)
        payload = build_service_call_payload("StreamService", "SetTokenVault")

        outcome = manager.send_message(keypair, PROGRAM, payload, 1_000)

        assert outcome == Finalized(BLOCK)
        assert runtime.messages[0]["destination"] == PROGRAM
        assert runtime.messages[0]["gas_limit"] == 1_000

    def test_send_message_chain_failure(self, runtime: FakeRuntime, keypair: FakeKeypair) -> None:
        runtime.fail_if = lambda call: True
        manager = LifecycleManager(runtime, message_timeout=5)

        outcome = manager.send_message(keypair, PROGRAM, build_service_call_payload("S", "M"), 1_000)

        assert isinstance(outcome, Failed)
        assert outcome.module_error.qualified_name == "Gear.InactiveProgram"

    def test_dispatch_error_propagates(self, keypair: FakeKeypair) -> None:
        manager = LifecycleManager(_BrokenRuntime(), message_timeout=5)
        with pytest.raises(SubmissionError, match="bad nonce"):
            manager.send_message(keypair, PROGRAM, build_service_call_payload("S", "M"), 1_000)

    def test_stream_ending_without_terminal_status(self, keypair: FakeKeypair) -> None:
        manager = LifecycleManager(_SilentRuntime(), message_timeout=5)
        with pytest.raises(SubmissionError, match="without a terminal status"):
            manager.send_message(keypair, PROGRAM, build_service_call_payload("S", "M"), 1_000)

    def test_timeout_then_late_finalized_is_ignored(self, keypair: FakeKeypair) -> None:
        runtime = _SlowRuntime(delay=0.3)
        manager = LifecycleManager(runtime, message_timeout=0.05)

        outcome = manager.send_message(keypair, PROGRAM, build_service_call_payload("S", "M"), 1_000)
        assert isinstance(outcome, TimedOut)

        deadline = time.monotonic() + 2
        while not runtime.late_result and time.monotonic() < deadline:
            time.sleep(0.01)
        # The tracker told the late stream to stop, and the outcome stayed TimedOut.
        assert runtime.late_result == [True]

    def test_track_upload_uses_upload_timeout(self, runtime: FakeRuntime, keypair: FakeKeypair) -> None:
        manager = LifecycleManager(runtime, upload_timeout=5, message_timeout=1)
        ticket = runtime.upload_program(b"\x00asm", build_service_call_payload("S", "M"), 5_000)

        assert manager.track_upload(ticket, keypair, label="stream-core") == Finalized(BLOCK)
        assert runtime.submitted == [ticket.call]
