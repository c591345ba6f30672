"""
Gas estimation with a configured fallback ceiling.

Estimation is a read-only simulation. When it fails the caller gets the
configured ceiling instead of an error: under-estimating guarantees a failed
transaction, over-estimating only reserves more gas.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Protocol, Union

import httpx

from .payload import Payload
from .rpc import RpcError

logger = logging.getLogger(__name__)


class EstimationError(RuntimeError):
    exit_code: int = 1


class GasRpc(Protocol):
    def calculate_init_upload_gas(
        self, source: bytes, code: bytes, payload: bytes, value: int = 0, allow_other_panics: bool = True
    ) -> int:
        ...

    def calculate_handle_gas(
        self, source: bytes, destination: str, payload: bytes, value: int = 0, allow_other_panics: bool = True
    ) -> int:
        ...


@dataclass(frozen=True)
class NewProgram:
    code: bytes


@dataclass(frozen=True)
class ExistingProgram:
    program_id: str


Destination = Union[NewProgram, ExistingProgram]


@dataclass(frozen=True)
class GasQuote:
    limit: int
    estimated: bool
    reason: str = ""


@dataclass(frozen=True)
class GasCeilings:
    upload: int
    message: int

    def for_destination(self, destination: Destination) -> int:
        return self.upload if isinstance(destination, NewProgram) else self.message


class GasEstimator:
    def __init__(self, rpc: GasRpc, ceilings: GasCeilings) -> None:
        self.rpc = rpc
        self.ceilings = ceilings

    def estimate(
        self,
        source: bytes,
        destination: Destination,
        payload: Payload,
        value: int = 0,
        allow_other_panics: bool = True,
    ) -> int:
        """
        Ask the node for the minimum gas limit.

        Args:
            source: Raw 32-byte sender public key
            destination: NewProgram(code) or ExistingProgram(program_id)
            payload: Encoded payload
            value: Value transferred with the message
            allow_other_panics: Keep the simulation result even if other
                messages panic

        Raises:
            EstimationError: On network failure or runtime rejection
        """
        try:
            if isinstance(destination, NewProgram):
                limit = self.rpc.calculate_init_upload_gas(
                    source, destination.code, bytes(payload), value, allow_other_panics
                )
            else:
                limit = self.rpc.calculate_handle_gas(
                    source, destination.program_id, bytes(payload), value, allow_other_panics
                )
        except (RpcError, httpx.HTTPError, KeyError, TypeError, ValueError) as exc:
            raise EstimationError(f"Gas calculation failed: {exc}") from exc

        if limit <= 0:
            raise EstimationError(f"Gas calculation returned non-positive limit {limit}")
        return limit

    def estimate_or_fallback(
        self,
        source: bytes,
        destination: Destination,
        payload: Payload,
        value: int = 0,
        headroom_percent: int = 0,
        ceiling: Optional[int] = None,
    ) -> GasQuote:
        """Estimate, falling back to the destination's configured ceiling."""
        try:
            limit = self.estimate(source, destination, payload, value)
        except EstimationError as exc:
            fallback = ceiling if ceiling is not None else self.ceilings.for_destination(destination)
            logger.warning("%s; using fallback gas limit %d", exc, fallback)
            return GasQuote(limit=fallback, estimated=False, reason=str(exc))
        return GasQuote(limit=with_headroom(limit, headroom_percent), estimated=True)


def with_headroom(limit: int, percent: int) -> int:
    return limit * (100 + percent) // 100
