"""
Error taxonomy for the execution adapter.

Every failure path returns one of these to the caller. Each class carries a
JSON-RPC error code used by the service facade, and enough structured
context (RPC method, engine status, validation message) for the chain
driver to decide whether to retry, skip, or halt block production.
"""

from __future__ import annotations

from typing import Any, Optional

# Facade error codes (application range, below the JSON-RPC reserved block)
EXECUTION_ERROR = -39000
ENGINE_CONNECTION_FAILED = -39001
CREDENTIAL_FAILED = -39002
ENGINE_CALL_FAILED = -39003
MALFORMED_RESPONSE = -39004
MISSING_PAYLOAD_ID = -39005
PAYLOAD_FETCH_FAILED = -39006
PAYLOAD_REJECTED = -39007
FINALIZATION_REJECTED = -39008
CANCELLED = -39009
UNKNOWN_BLOCK = -39010
CONCURRENT_PRODUCTION = -39011


class ExecutionError(Exception):
    """Base class for all adapter errors."""

    error_code = EXECUTION_ERROR

    def __init__(self, message: str, *, method: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.method = method

    def to_rpc_data(self) -> dict[str, Any]:
        return {"kind": type(self).__name__, "method": self.method}

    @classmethod
    def from_rpc_data(cls, message: str, data: dict[str, Any]) -> ExecutionError:
        return cls(message, method=data.get("method"))


class EngineConnectionError(ExecutionError, ConnectionError):
    """An endpoint could not be reached while setting up the transport."""

    error_code = ENGINE_CONNECTION_FAILED

    def __init__(self, url: str, reason: str) -> None:
        super().__init__(f"cannot reach {url}: {reason}")
        self.url = url
        self.reason = reason

    def to_rpc_data(self) -> dict[str, Any]:
        data = super().to_rpc_data()
        data["url"] = self.url
        data["reason"] = self.reason
        return data

    @classmethod
    def from_rpc_data(cls, message: str, data: dict[str, Any]) -> EngineConnectionError:
        return cls(data.get("url", "?"), data.get("reason", message))


class CredentialError(ExecutionError):
    """The shared secret could not be decoded or a token could not be signed."""

    error_code = CREDENTIAL_FAILED


class EngineCallError(ExecutionError):
    """A round trip to the engine or query endpoint failed."""

    error_code = ENGINE_CALL_FAILED

    def __init__(self, method: str, message: str, *, status_code: Optional[int] = None) -> None:
        super().__init__(f"{method} failed: {message}", method=method)
        self.status_code = status_code

    def to_rpc_data(self) -> dict[str, Any]:
        data = super().to_rpc_data()
        data["statusCode"] = self.status_code
        return data

    @classmethod
    def from_rpc_data(cls, message: str, data: dict[str, Any]) -> EngineCallError:
        err = cls(data.get("method") or "?", message, status_code=data.get("statusCode"))
        err.message = message
        err.args = (message,)
        return err


class EngineRPCError(EngineCallError):
    """The endpoint answered with a JSON-RPC error object."""

    def __init__(self, method: str, code: int, message: str, data: Any = None) -> None:
        super().__init__(method, f"[{code}] {message}")
        self.code = code
        self.rpc_message = message
        self.data = data


class MalformedResponse(ExecutionError):
    """A response field is missing or cannot be parsed as its expected type."""

    error_code = MALFORMED_RESPONSE

    def __init__(self, method: Optional[str], message: str, *, field: Optional[str] = None) -> None:
        prefix = f"{method}: " if method else ""
        super().__init__(f"{prefix}{message}", method=method)
        self.field = field

    def to_rpc_data(self) -> dict[str, Any]:
        data = super().to_rpc_data()
        data["field"] = self.field
        return data

    @classmethod
    def from_rpc_data(cls, message: str, data: dict[str, Any]) -> MalformedResponse:
        err = cls(None, message, field=data.get("field"))
        err.method = data.get("method")
        return err


class MissingPayloadID(MalformedResponse):
    """A fork-choice update that requested a build returned no payload id."""

    error_code = MISSING_PAYLOAD_ID

    def __init__(self, method: Optional[str], status: Optional[str] = None,
                 validation_error: Optional[str] = None) -> None:
        detail = "no payloadId in response"
        if status is not None:
            detail += f" (payload status {status}"
            detail += f": {validation_error})" if validation_error else ")"
        super().__init__(method, detail, field="payloadId")
        self.status = status
        self.validation_error = validation_error

    def to_rpc_data(self) -> dict[str, Any]:
        data = super().to_rpc_data()
        data["status"] = self.status
        data["validationError"] = self.validation_error
        return data

    @classmethod
    def from_rpc_data(cls, message: str, data: dict[str, Any]) -> MissingPayloadID:
        return cls(data.get("method"), data.get("status"), data.get("validationError"))


class PayloadFetchError(ExecutionError):
    """Fetching a built payload failed. The underlying error is chained as __cause__."""

    error_code = PAYLOAD_FETCH_FAILED

    def __init__(self, payload_id: str, reason: str, *, method: Optional[str] = "engine_getPayloadV1") -> None:
        super().__init__(f"fetching payload {payload_id} failed: {reason}", method=method)
        self.payload_id = payload_id
        self.reason = reason

    def to_rpc_data(self) -> dict[str, Any]:
        data = super().to_rpc_data()
        data["payloadId"] = self.payload_id
        data["reason"] = self.reason
        return data

    @classmethod
    def from_rpc_data(cls, message: str, data: dict[str, Any]) -> PayloadFetchError:
        return cls(data.get("payloadId", "?"), data.get("reason", message), method=data.get("method"))


class PayloadRejected(ExecutionError):
    """The engine returned a non-VALID status for a submitted payload."""

    error_code = PAYLOAD_REJECTED

    def __init__(
        self,
        status: str,
        validation_error: Optional[str] = None,
        latest_valid_hash: Optional[bytes] = None,
        *,
        method: Optional[str] = "engine_newPayloadV1",
    ) -> None:
        message = f"payload rejected with status {status}"
        if validation_error:
            message += f": {validation_error}"
        super().__init__(message, method=method)
        self.status = status
        self.validation_error = validation_error
        self.latest_valid_hash = latest_valid_hash

    def to_rpc_data(self) -> dict[str, Any]:
        data = super().to_rpc_data()
        data["status"] = self.status
        data["validationError"] = self.validation_error
        data["latestValidHash"] = (
            None if self.latest_valid_hash is None else "0x" + self.latest_valid_hash.hex()
        )
        return data

    @classmethod
    def from_rpc_data(cls, message: str, data: dict[str, Any]) -> PayloadRejected:
        lvh = data.get("latestValidHash")
        return cls(
            data.get("status", "?"),
            data.get("validationError"),
            bytes.fromhex(lvh[2:]) if isinstance(lvh, str) and lvh.startswith("0x") else None,
            method=data.get("method"),
        )


class FinalizationRejected(ExecutionError):
    """The engine did not report VALID for a finalization fork-choice update."""

    error_code = FINALIZATION_REJECTED

    def __init__(
        self,
        status: str,
        validation_error: Optional[str] = None,
        *,
        method: Optional[str] = "engine_forkchoiceUpdatedV1",
    ) -> None:
        message = f"finalization rejected with status {status}"
        if validation_error:
            message += f": {validation_error}"
        super().__init__(message, method=method)
        self.status = status
        self.validation_error = validation_error

    def to_rpc_data(self) -> dict[str, Any]:
        data = super().to_rpc_data()
        data["status"] = self.status
        data["validationError"] = self.validation_error
        return data

    @classmethod
    def from_rpc_data(cls, message: str, data: dict[str, Any]) -> FinalizationRejected:
        return cls(data.get("status", "?"), data.get("validationError"), method=data.get("method"))


class CancellationError(ExecutionError):
    """The caller's deadline passed or the call was cancelled mid-sequence."""

    error_code = CANCELLED


class UnknownBlockError(ExecutionError):
    """No block exists at the requested height."""

    error_code = UNKNOWN_BLOCK

    def __init__(self, height: int, *, method: Optional[str] = "eth_getBlockByNumber") -> None:
        super().__init__(f"no block at height {height}", method=method)
        self.height = height

    def to_rpc_data(self) -> dict[str, Any]:
        data = super().to_rpc_data()
        data["height"] = self.height
        return data

    @classmethod
    def from_rpc_data(cls, message: str, data: dict[str, Any]) -> UnknownBlockError:
        return cls(int(data.get("height", 0)), method=data.get("method"))


class ConcurrentProductionError(ExecutionError):
    """A block-production call was issued while another one was in flight."""

    error_code = CONCURRENT_PRODUCTION

    def __init__(self, operation: str, *, method: Optional[str] = None) -> None:
        super().__init__(
            f"{operation} called while another block-production call is in flight",
            method=method,
        )
        self.operation = operation

    def to_rpc_data(self) -> dict[str, Any]:
        data = super().to_rpc_data()
        data["operation"] = self.operation
        return data

    @classmethod
    def from_rpc_data(cls, message: str, data: dict[str, Any]) -> ConcurrentProductionError:
        return cls(data.get("operation", "?"))


_BY_CODE: dict[int, type[ExecutionError]] = {
    cls.error_code: cls
    for cls in (
        ExecutionError,
        EngineConnectionError,
        CredentialError,
        EngineCallError,
        MalformedResponse,
        MissingPayloadID,
        PayloadFetchError,
        PayloadRejected,
        FinalizationRejected,
        CancellationError,
        UnknownBlockError,
        ConcurrentProductionError,
    )
}


def error_from_rpc(code: int, message: str, data: Any = None) -> Optional[ExecutionError]:
    """Rebuild an adapter error from a facade JSON-RPC error, or None for foreign codes."""
    cls = _BY_CODE.get(code)
    if cls is None:
        return None
    if not isinstance(data, dict):
        data = {}
    return cls.from_rpc_data(message, data)
