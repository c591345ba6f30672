"""
Transaction lifecycle tracking.

A submitted extrinsic produces a stream of status updates. ``TransactionTracker``
turns that stream into exactly one ``TxOutcome``:

    SUBMITTED -> IN_BLOCK -> FINALIZED | FAILED
    SUBMITTED / IN_BLOCK  -> INVALID
    any non-terminal      -> TIMED_OUT   (deadline)

Finalization and success are decided together: a finalized block whose
events contain ``System.ExtrinsicFailed`` resolves ``Failed``. The first
terminal cause wins; later updates are ignored.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Optional, Protocol, Union

from ..utils import from_hex
from .payload import Payload

logger = logging.getLogger(__name__)

DEFAULT_UPLOAD_TIMEOUT = 120.0
DEFAULT_MESSAGE_TIMEOUT = 90.0


# ============ Errors ============


class SubmissionError(RuntimeError):
    """Signing or initial dispatch failed; nothing reached a block."""

    exit_code: int = 1


class SignatureRejected(SubmissionError):
    pass


class ChainFailure(RuntimeError):
    """Extrinsic was finalized but the runtime reported a dispatch error."""

    exit_code: int = 1

    def __init__(self, message: str, block_hash: str = "", module_error: Optional["ModuleError"] = None) -> None:
        super().__init__(message)
        self.block_hash = block_hash
        self.module_error = module_error


class TxTimeout(RuntimeError):
    """No terminal status before the deadline; the on-chain result is unknown."""

    exit_code: int = 1


class TransactionInvalid(SubmissionError):
    pass


# ============ Runtime-facing types ============


class StatusKind(str, Enum):
    FUTURE = "future"
    READY = "ready"
    BROADCAST = "broadcast"
    IN_BLOCK = "inBlock"
    RETRACTED = "retracted"
    FINALITY_TIMEOUT = "finalityTimeout"
    FINALIZED = "finalized"
    USURPED = "usurped"
    DROPPED = "dropped"
    INVALID = "invalid"


@dataclass(frozen=True)
class RuntimeEvent:
    section: str
    method: str
    data: Any = None

    @property
    def is_extrinsic_failed(self) -> bool:
        return self.section == "System" and self.method == "ExtrinsicFailed"


@dataclass(frozen=True)
class StatusUpdate:
    kind: StatusKind
    block_hash: Optional[str] = None
    events: tuple[RuntimeEvent, ...] = ()
    # Set when the block was finalized but its events could not be read.
    events_error: Optional[str] = None


@dataclass(frozen=True)
class ModuleError:
    section: str
    name: str
    docs: str = ""

    @property
    def qualified_name(self) -> str:
        return f"{self.section}.{self.name}"

    def __str__(self) -> str:
        if self.docs:
            return f"{self.qualified_name}: {self.docs}"
        return self.qualified_name


ErrorLookup = Callable[[int, int], ModuleError]
StatusCallback = Callable[[StatusUpdate], bool]


@dataclass(frozen=True)
class UploadTicket:
    """A prepared (unsigned) program upload with its deterministic ids."""

    program_id: str
    code_id: str
    salt: bytes
    call: Any
    payload: Payload
    gas_limit: int
    value: int = 0


class Runtime(Protocol):
    def upload_program(
        self, code: bytes, payload: Payload, gas_limit: int, value: int = 0, salt: Optional[bytes] = None
    ) -> UploadTicket:
        ...

    def send_message(self, destination: str, payload: Payload, gas_limit: int, value: int = 0) -> Any:
        ...

    def submit(self, call: Any, keypair: Any, on_status: StatusCallback) -> None:
        """Sign, submit and feed every status update to ``on_status`` until it returns True."""
        ...

    def decode_module_error(self, module_index: int, error_index: int) -> ModuleError:
        ...


# ============ Outcomes ============


@dataclass(frozen=True)
class Finalized:
    block_hash: str

    ok = True

    def raise_for_failure(self) -> None:
        return None


@dataclass(frozen=True)
class Failed:
    error: str
    block_hash: str = ""
    module_error: Optional[ModuleError] = None

    ok = False

    def raise_for_failure(self) -> None:
        raise ChainFailure(f"Extrinsic failed: {self.error}", self.block_hash, self.module_error)


@dataclass(frozen=True)
class TimedOut:
    timeout: float
    reason: str = ""

    ok = False

    def raise_for_failure(self) -> None:
        detail = self.reason or f"no terminal status within {self.timeout:g}s"
        raise TxTimeout(f"Transaction timed out: {detail}")


@dataclass(frozen=True)
class Invalid:
    reason: str

    ok = False

    def raise_for_failure(self) -> None:
        raise TransactionInvalid(f"Transaction {self.reason}; it may have been dropped by the network")


TxOutcome = Union[Finalized, Failed, TimedOut, Invalid]


def describe_outcome(outcome: TxOutcome) -> str:
    if isinstance(outcome, Finalized):
        return f"finalized in {outcome.block_hash}"
    if isinstance(outcome, Failed):
        return f"failed: {outcome.error}"
    if isinstance(outcome, TimedOut):
        return f"timed out after {outcome.timeout:g}s"
    return f"invalid ({outcome.reason})"


# ============ Dispatch error decoding ============


def decode_dispatch_error(
    dispatch_error: Any, lookup: Optional[ErrorLookup] = None
) -> tuple[str, Optional[ModuleError]]:
    """
    Turn a runtime ``DispatchError`` value into a readable message.

    Module errors are resolved through ``lookup`` (metadata) into
    ``section.name: docs``; anything else is stringified.

    Returns:
        Tuple of (message, module_error or None)
    """
    if isinstance(dispatch_error, dict) and "Module" in dispatch_error:
        module = dispatch_error["Module"]
        if isinstance(module, (list, tuple)):
            module_index, error_index = module
        else:
            module_index, error_index = module["index"], module["error"]

        # Newer runtimes encode the error as 4 bytes; the variant is the first.
        if isinstance(error_index, str):
            error_index = from_hex(error_index)[0]
        elif isinstance(error_index, (bytes, bytearray)):
            error_index = error_index[0]

        raw = f"Module(index={module_index}, error={error_index})"
        if lookup is None:
            return raw, None
        try:
            module_error = lookup(int(module_index), int(error_index))
        except Exception as exc:
            logger.warning("metadata lookup failed for %s: %s", raw, exc)
            return raw, None
        return str(module_error), module_error

    if isinstance(dispatch_error, dict) and len(dispatch_error) == 1:
        (key, value), = dispatch_error.items()
        return (key if value is None else f"{key}: {value}"), None

    return str(dispatch_error), None


def _dispatch_error_of(event: RuntimeEvent) -> Any:
    data = event.data
    if isinstance(data, dict):
        return data.get("dispatch_error", data)
    if isinstance(data, (list, tuple)) and data:
        return data[0]
    return data


# ============ State machine ============


class TxState(str, Enum):
    SUBMITTED = "submitted"
    IN_BLOCK = "in_block"
    FINALIZED = "finalized"
    FAILED = "failed"
    INVALID = "invalid"
    TIMED_OUT = "timed_out"
    DISPATCH_FAILED = "dispatch_failed"


@dataclass
class PendingSubmission:
    label: str
    destination: str
    payload: Payload
    gas_limit: int
    value: int = 0
    timeout: float = DEFAULT_MESSAGE_TIMEOUT


class TransactionTracker:
    def __init__(self, submission: PendingSubmission, error_lookup: Optional[ErrorLookup] = None) -> None:
        self.submission = submission
        self.error_lookup = error_lookup
        self.state = TxState.SUBMITTED
        self.ignored_updates = 0
        self._lock = threading.Lock()
        self._done = threading.Event()
        self._outcome: Optional[TxOutcome] = None
        self._error: Optional[BaseException] = None

    @property
    def resolved(self) -> bool:
        return self._done.is_set()

    @property
    def outcome(self) -> Optional[TxOutcome]:
        return self._outcome

    def on_status(self, update: StatusUpdate) -> bool:
        """Feed one status update. Returns True once no more updates are wanted."""
        label = self.submission.label
        with self._lock:
            if self._done.is_set():
                self.ignored_updates += 1
                logger.debug("%s: ignoring %s after resolution", label, update.kind.value)
                return True

            kind = update.kind
            if kind is StatusKind.IN_BLOCK:
                self.state = TxState.IN_BLOCK
                logger.info("%s: in block %s", label, update.block_hash)
                return False

            if kind is StatusKind.FINALIZED:
                logger.info("%s: finalized %s", label, update.block_hash)
                block_hash = update.block_hash or ""
                if update.events_error is not None:
                    message = f"finalized but events unavailable, result unknown: {update.events_error}"
                    logger.error("%s: %s", label, message)
                    self._resolve(Failed(message, block_hash), TxState.FAILED)
                    return True
                for event in update.events:
                    if event.is_extrinsic_failed:
                        message, module_error = decode_dispatch_error(
                            _dispatch_error_of(event), self.error_lookup
                        )
                        logger.error("%s: extrinsic failed: %s", label, message)
                        self._resolve(Failed(message, block_hash, module_error), TxState.FAILED)
                        return True
                self._resolve(Finalized(block_hash), TxState.FINALIZED)
                return True

            if kind in (StatusKind.INVALID, StatusKind.DROPPED, StatusKind.USURPED):
                logger.error("%s: transaction %s", label, kind.value)
                self._resolve(Invalid(kind.value), TxState.INVALID)
                return True

            if kind is StatusKind.FINALITY_TIMEOUT:
                self._resolve(
                    TimedOut(self.submission.timeout, reason=f"finality timeout in {update.block_hash}"),
                    TxState.TIMED_OUT,
                )
                return True

            if kind is StatusKind.RETRACTED:
                logger.warning("%s: block %s retracted", label, update.block_hash)
            else:
                logger.debug("%s: %s", label, kind.value)
            return False

    def fail(self, exc: BaseException) -> None:
        """Record a dispatch failure (signing, connection, rejected submission)."""
        with self._lock:
            if self._done.is_set():
                logger.debug("%s: ignoring late dispatch error %s", self.submission.label, exc)
                return
            if isinstance(exc, SubmissionError):
                self._error = exc
            else:
                error = SubmissionError(f"{self.submission.label}: submission failed: {exc}")
                error.__cause__ = exc
                self._error = error
            self.state = TxState.DISPATCH_FAILED
            self._done.set()

    def expire(self) -> bool:
        """Resolve TimedOut unless something already resolved. Returns True if it fired."""
        with self._lock:
            if self._done.is_set():
                return False
            logger.error("%s: no terminal status within %gs", self.submission.label, self.submission.timeout)
            self._resolve(TimedOut(self.submission.timeout), TxState.TIMED_OUT)
            return True

    def wait(self, timeout: Optional[float] = None) -> TxOutcome:
        """
        Block until a terminal outcome or the deadline.

        Raises:
            SubmissionError: If dispatch failed before any terminal status
        """
        limit = self.submission.timeout if timeout is None else timeout
        if not self._done.wait(limit):
            self.expire()
        if self._error is not None:
            raise self._error
        if self._outcome is None:
            raise SubmissionError(f"{self.submission.label}: resolved without an outcome")
        return self._outcome

    def _resolve(self, outcome: TxOutcome, state: TxState) -> None:
        # Caller holds the lock and has checked _done.
        self._outcome = outcome
        self.state = state
        self._done.set()


# ============ Manager ============


class LifecycleManager:
    def __init__(
        self,
        runtime: Runtime,
        upload_timeout: float = DEFAULT_UPLOAD_TIMEOUT,
        message_timeout: float = DEFAULT_MESSAGE_TIMEOUT,
    ) -> None:
        self.runtime = runtime
        self.upload_timeout = upload_timeout
        self.message_timeout = message_timeout

    def track_upload(self, ticket: UploadTicket, keypair: Any, label: str = "") -> TxOutcome:
        submission = PendingSubmission(
            label=label or f"upload {ticket.program_id}",
            destination=ticket.program_id,
            payload=ticket.payload,
            gas_limit=ticket.gas_limit,
            value=ticket.value,
            timeout=self.upload_timeout,
        )
        return self.track(submission, ticket.call, keypair)

    def send_message(
        self,
        keypair: Any,
        destination: str,
        payload: Payload,
        gas_limit: int,
        value: int = 0,
        label: str = "",
    ) -> TxOutcome:
        try:
            call = self.runtime.send_message(destination, payload, gas_limit, value)
        except Exception as exc:
            raise SubmissionError(f"Could not build message to {destination}: {exc}") from exc
        submission = PendingSubmission(
            label=label or payload.label or f"message {destination}",
            destination=destination,
            payload=payload,
            gas_limit=gas_limit,
            value=value,
            timeout=self.message_timeout,
        )
        return self.track(submission, call, keypair)

    def track(self, submission: PendingSubmission, call: Any, keypair: Any) -> TxOutcome:
        tracker = TransactionTracker(submission, error_lookup=self.runtime.decode_module_error)
        worker = threading.Thread(
            target=self._watch,
            args=(tracker, call, keypair),
            name=f"watch-{submission.label}",
            daemon=True,
        )
        worker.start()
        return tracker.wait()

    def _watch(self, tracker: TransactionTracker, call: Any, keypair: Any) -> None:
        try:
            self.runtime.submit(call, keypair, tracker.on_status)
        except Exception as exc:
            # Forwarded to the caller blocked in tracker.wait().
            tracker.fail(exc)
            return
        if not tracker.resolved:
            tracker.fail(SubmissionError(f"{tracker.submission.label}: status stream ended without a terminal status"))
