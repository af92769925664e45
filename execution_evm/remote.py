"""Client stub for an Execution served by the execution_* JSON-RPC facade."""

from __future__ import annotations

import logging
from typing import Any, Optional, Sequence

import httpx

from execution_evm.context import CallContext
from execution_evm.engine.types import HASH_SIZE, bytes_hex, quantity_hex
from execution_evm.errors import EngineRPCError, MalformedResponse, error_from_rpc
from execution_evm.execution import Execution, Timestamp, unix_seconds
from execution_evm.rpc import execution_api
from execution_evm.rpc.auth import JWTCredentialProvider
from execution_evm.rpc.transport import DEFAULT_TIMEOUT, BearerAuth, JSONRPCChannel

logger = logging.getLogger(__name__)


class RemoteExecutionClient(Execution):
    """Execution whose operations run in another process behind the facade.

    Facade errors are turned back into the same exception classes the
    in-process adapter raises.
    """

    def __init__(
        self,
        url: str,
        *,
        credentials: Optional[JWTCredentialProvider] = None,
        timeout: float = DEFAULT_TIMEOUT,
        transport: Optional[httpx.BaseTransport] = None,
        client: Optional[httpx.Client] = None,
    ) -> None:
        if client is None:
            client = httpx.Client(timeout=timeout, transport=transport)
        auth = BearerAuth(credentials) if credentials is not None else None
        self._channel = JSONRPCChannel(url, client, auth=auth, name="execution", timeout=timeout)

    def _call(self, method: str, params: list[Any], ctx: Optional[CallContext]) -> Any:
        if ctx is not None and ctx.deadline is not None:
            # let the server abort its own engine sequence at the same deadline
            params = params + [ctx.remaining()]
        try:
            return self._channel.call(method, params, ctx)
        except EngineRPCError as exc:
            err = error_from_rpc(exc.code, exc.rpc_message, exc.data)
            if err is None:
                raise
            raise err from exc

    def init_chain(
        self,
        genesis_time: Timestamp,
        initial_height: int,
        chain_id: str,
        ctx: Optional[CallContext] = None,
    ) -> tuple[bytes, int]:
        result = self._call(
            execution_api.INIT_CHAIN,
            [quantity_hex(unix_seconds(genesis_time)), quantity_hex(initial_height), chain_id],
            ctx,
        )
        return _root_and_quantity(result, execution_api.INIT_CHAIN, "gasLimit")

    def get_txs(self, ctx: Optional[CallContext] = None) -> list[bytes]:
        result = self._call(execution_api.GET_TXS, [], ctx)
        if not isinstance(result, list):
            raise MalformedResponse(execution_api.GET_TXS, "result must be a list", field="result")
        txs = []
        for i, tx in enumerate(result):
            if not isinstance(tx, str) or not tx.startswith("0x"):
                raise MalformedResponse(execution_api.GET_TXS, f"result[{i}] must be hex", field=f"result[{i}]")
            try:
                txs.append(bytes.fromhex(tx[2:]))
            except ValueError as exc:
                raise MalformedResponse(
                    execution_api.GET_TXS, f"result[{i}] is invalid hex", field=f"result[{i}]"
                ) from exc
        return txs

    def execute_txs(
        self,
        txs: Sequence[bytes],
        block_height: int,
        timestamp: Timestamp,
        prev_state_root: bytes,
        ctx: Optional[CallContext] = None,
    ) -> tuple[bytes, int]:
        result = self._call(
            execution_api.EXECUTE_TXS,
            [
                [bytes_hex(tx) for tx in txs],
                quantity_hex(block_height),
                quantity_hex(unix_seconds(timestamp)),
                bytes_hex(prev_state_root),
            ],
            ctx,
        )
        return _root_and_quantity(result, execution_api.EXECUTE_TXS, "gasUsed")

    def set_final(self, block_height: int, ctx: Optional[CallContext] = None) -> None:
        self._call(execution_api.SET_FINAL, [quantity_hex(block_height)], ctx)

    def close(self) -> None:
        self._channel.close()

    def __enter__(self) -> RemoteExecutionClient:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


def _root_and_quantity(result: Any, method: str, key: str) -> tuple[bytes, int]:
    if not isinstance(result, dict):
        raise MalformedResponse(method, "result must be an object", field="result")
    root = result.get("stateRoot")
    value = result.get(key)
    if not isinstance(root, str) or not root.startswith("0x") or len(root) != 2 + 2 * HASH_SIZE:
        raise MalformedResponse(method, "stateRoot must be a 32-byte hex string", field="stateRoot")
    if not isinstance(value, str) or not value.startswith("0x"):
        raise MalformedResponse(method, f"{key} must be hex quantity", field=key)
    try:
        return bytes.fromhex(root[2:]), int(value, 16)
    except ValueError as exc:
        raise MalformedResponse(method, "result holds invalid hex") from exc
