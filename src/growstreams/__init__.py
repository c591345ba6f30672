__all__ = [
    # Wire format
    "EncodingError",
    "Payload",
    "PayloadKind",
    "build_constructor_payload",
    "build_service_call_payload",
    "encode_actor_id",
    "encode_compact_length",
    "encode_string",
    "encode_u128_le",
    # Gas
    "EstimationError",
    "ExistingProgram",
    "GasCeilings",
    "GasEstimator",
    "GasQuote",
    "NewProgram",
    # Lifecycle
    "Failed",
    "Finalized",
    "Invalid",
    "LifecycleManager",
    "SubmissionError",
    "TimedOut",
    "TransactionTracker",
    "TxOutcome",
    # Signing
    "SigningAdapter",
    # Deployment state
    "DeploymentRecord",
    "DeploymentStore",
    "StateStoreError",
    # Config
    "Settings",
]

from .pneuma.scale import (
    EncodingError,
    encode_actor_id,
    encode_compact_length,
    encode_string,
    encode_u128_le,
)
from .pneuma.payload import Payload, PayloadKind, build_constructor_payload, build_service_call_payload
from .pneuma.gas import EstimationError, ExistingProgram, GasCeilings, GasEstimator, GasQuote, NewProgram
from .pneuma.lifecycle import (
    Failed,
    Finalized,
    Invalid,
    LifecycleManager,
    SubmissionError,
    TimedOut,
    TransactionTracker,
    TxOutcome,
)
from .pneuma.signing import SigningAdapter
from .anamnesis.state import DeploymentRecord, DeploymentStore, StateStoreError
from .config import Settings
