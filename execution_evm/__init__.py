"""Engine API execution adapter for rollup chain drivers."""

from .context import CallContext
from .errors import (
    CancellationError,
    ConcurrentProductionError,
    CredentialError,
    EngineCallError,
    EngineConnectionError,
    EngineRPCError,
    ExecutionError,
    FinalizationRejected,
    MalformedResponse,
    MissingPayloadID,
    PayloadFetchError,
    PayloadRejected,
    UnknownBlockError,
)
from .execution import EngineAPIExecutionClient, Execution
from .remote import RemoteExecutionClient
from .rpc.auth import JWTCredentialProvider

__version__ = "0.1.0"

__all__ = [
    "CallContext",
    "Execution",
    "EngineAPIExecutionClient",
    "RemoteExecutionClient",
    "JWTCredentialProvider",
    "ExecutionError",
    "EngineConnectionError",
    "CredentialError",
    "EngineCallError",
    "EngineRPCError",
    "MalformedResponse",
    "MissingPayloadID",
    "PayloadFetchError",
    "PayloadRejected",
    "FinalizationRejected",
    "CancellationError",
    "UnknownBlockError",
    "ConcurrentProductionError",
]
