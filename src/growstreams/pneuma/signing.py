"""
Signing adapter for pre-encoded payloads.

The GrowStreams API can return a ready-made payload (``mode: "payload"``)
instead of sending the transaction itself. The adapter estimates gas for it,
asks the wallet to authorize exactly once, then tracks the transaction with
the same lifecycle state machine the deploy scripts use. There is no retry:
a declined or failed signature is returned to the caller.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional, Protocol

import httpx

from ..utils import short_hex
from .gas import ExistingProgram, GasEstimator, with_headroom
from .lifecycle import LifecycleManager, SignatureRejected, TxOutcome
from .payload import Payload

logger = logging.getLogger(__name__)

# Headroom added on top of the estimated minimum (x1.2).
SIGNING_GAS_HEADROOM_PERCENT = 20


class WalletSigner(Protocol):
    @property
    def public_key(self) -> bytes:
        ...

    def authorize(self, request: "SignatureRequest") -> Any:
        """Prompt once. Return the signing keypair or raise SignatureRejected."""
        ...


@dataclass(frozen=True)
class SignatureRequest:
    destination: str
    payload: Payload
    gas_limit: int
    value: int = 0

    def summary(self) -> str:
        parts = [
            f"destination {short_hex(self.destination)}",
            f"payload {len(self.payload)} bytes",
            f"gas {self.gas_limit}",
        ]
        if self.value:
            parts.append(f"value {self.value}")
        return ", ".join(parts)


class KeypairSigner:
    """Local keypair that authorizes without asking (scripts, tests)."""

    def __init__(self, keypair: Any) -> None:
        self.keypair = keypair

    @property
    def public_key(self) -> bytes:
        return bytes(self.keypair.public_key)

    def authorize(self, request: SignatureRequest) -> Any:
        return self.keypair


class PromptingSigner(KeypairSigner):
    """Keypair guarded by one interactive confirmation per transaction."""

    def __init__(self, keypair: Any, confirm: Callable[[str], bool]) -> None:
        super().__init__(keypair)
        self.confirm = confirm

    def authorize(self, request: SignatureRequest) -> Any:
        if not self.confirm(f"Sign transaction ({request.summary()})?"):
            raise SignatureRejected("Transaction was cancelled by the user.")
        return self.keypair


class SigningAdapter:
    def __init__(
        self,
        estimator: GasEstimator,
        lifecycle: LifecycleManager,
        signer: WalletSigner,
        headroom_percent: int = SIGNING_GAS_HEADROOM_PERCENT,
    ) -> None:
        self.estimator = estimator
        self.lifecycle = lifecycle
        self.signer = signer
        self.headroom_percent = headroom_percent

    def sign_and_send(self, destination: str, payload: Payload, value: int = 0) -> TxOutcome:
        """
        Estimate gas, obtain one signature, submit and track.

        Raises:
            EstimationError: If gas cannot be estimated (nothing is signed)
            SignatureRejected: If the wallet declines
            SubmissionError: If dispatch fails
        """
        minimum = self.estimator.estimate(self.signer.public_key, ExistingProgram(destination), payload, value)
        gas_limit = with_headroom(minimum, self.headroom_percent)
        request = SignatureRequest(destination=destination, payload=payload, gas_limit=gas_limit, value=value)

        keypair = self.signer.authorize(request)
        logger.info("signed %s", request.summary())
        return self.lifecycle.send_message(
            keypair, destination, payload, gas_limit, value, label=payload.label or "signed message"
        )


class PayloadClientError(RuntimeError):
    exit_code: int = 1


@dataclass(frozen=True)
class PayloadClient:
    """Fetch pre-encoded payloads from the GrowStreams API."""

    base_url: str
    timeout: float = 30.0
    transport: Optional[httpx.BaseTransport] = None

    def fetch(self, path: str, body: Optional[dict[str, Any]] = None, method: str = "POST") -> Payload:
        request_body = dict(body or {})
        request_body["mode"] = "payload"
        url = f"{self.base_url.rstrip('/')}/{path.lstrip('/')}"

        with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
            response = client.request(method, url, json=request_body)
            try:
                data = response.json()
            except ValueError:
                data = {}
            if not isinstance(data, dict):
                data = {}
            if response.is_error:
                raise PayloadClientError(data.get("error") or f"HTTP {response.status_code} from {url}")

        payload_hex = data.get("payload")
        if not isinstance(payload_hex, str):
            raise PayloadClientError(f"Expected payload from API, got keys {sorted(data)}")
        return Payload.from_hex(payload_hex, label=path)
