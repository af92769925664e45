"""execution_* JSON-RPC surface exposing an Execution over the network."""

from __future__ import annotations

import functools
import logging
from typing import Any, Callable, Optional

from execution_evm.context import CallContext
from execution_evm.errors import ExecutionError
from execution_evm.execution import Execution
from execution_evm.rpc.server import INVALID_PARAMS, RPCError, RPCServer, bytes_to_hex, int_to_hex

logger = logging.getLogger(__name__)

INIT_CHAIN = "execution_initChain"
GET_TXS = "execution_getTxs"
EXECUTE_TXS = "execution_executeTxs"
SET_FINAL = "execution_setFinal"


def _quantity(value: Any, name: str) -> int:
    if isinstance(value, int) and not isinstance(value, bool) and value >= 0:
        return value
    if not isinstance(value, str) or not value.startswith("0x"):
        raise RPCError(INVALID_PARAMS, f"{name} must be hex quantity")
    try:
        return int(value, 16)
    except ValueError as exc:
        raise RPCError(INVALID_PARAMS, f"{name} is invalid hex quantity") from exc


def _data(value: Any, name: str, size: Optional[int] = None) -> bytes:
    if not isinstance(value, str) or not value.startswith("0x"):
        raise RPCError(INVALID_PARAMS, f"{name} must be 0x-prefixed hex")
    try:
        raw = bytes.fromhex(value[2:])
    except ValueError as exc:
        raise RPCError(INVALID_PARAMS, f"{name} is invalid hex") from exc
    if size is not None and len(raw) != size:
        raise RPCError(INVALID_PARAMS, f"{name} must be {size} bytes")
    return raw


def _context(timeout: Any) -> Optional[CallContext]:
    if timeout is None:
        return None
    if not isinstance(timeout, (int, float)) or isinstance(timeout, bool) or timeout <= 0:
        raise RPCError(INVALID_PARAMS, "timeout must be a positive number of seconds")
    return CallContext.with_timeout(float(timeout))


def _translate_errors(func: Callable) -> Callable:
    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return func(*args, **kwargs)
        except ExecutionError as exc:
            logger.warning("%s failed: %s", func.__name__, exc)
            raise RPCError(exc.error_code, exc.message, exc.to_rpc_data()) from exc
        except ValueError as exc:
            raise RPCError(INVALID_PARAMS, str(exc)) from exc

    return wrapper


def register_execution_api(rpc: RPCServer, execution: Execution) -> None:
    """Register the four lifecycle operations of ``execution`` on ``rpc``."""

    @rpc.method(INIT_CHAIN)
    @_translate_errors
    def execution_init_chain(
        genesis_time: Any, initial_height: Any, chain_id: str, timeout: Optional[float] = None
    ) -> dict:
        if not isinstance(chain_id, str):
            raise RPCError(INVALID_PARAMS, "chain_id must be a string")
        state_root, gas_limit = execution.init_chain(
            _quantity(genesis_time, "genesis_time"),
            _quantity(initial_height, "initial_height"),
            chain_id,
            _context(timeout),
        )
        return {"stateRoot": bytes_to_hex(state_root), "gasLimit": int_to_hex(gas_limit)}

    @rpc.method(GET_TXS)
    @_translate_errors
    def execution_get_txs(timeout: Optional[float] = None) -> list[str]:
        return [bytes_to_hex(tx) for tx in execution.get_txs(_context(timeout))]

    @rpc.method(EXECUTE_TXS)
    @_translate_errors
    def execution_execute_txs(
        txs: Any, block_height: Any, timestamp: Any, prev_state_root: Any, timeout: Optional[float] = None
    ) -> dict:
        if not isinstance(txs, list):
            raise RPCError(INVALID_PARAMS, "txs must be a list")
        state_root, gas_used = execution.execute_txs(
            [_data(tx, f"txs[{i}]") for i, tx in enumerate(txs)],
            _quantity(block_height, "block_height"),
            _quantity(timestamp, "timestamp"),
            _data(prev_state_root, "prev_state_root", 32),
            _context(timeout),
        )
        return {"stateRoot": bytes_to_hex(state_root), "gasUsed": int_to_hex(gas_used)}

    @rpc.method(SET_FINAL)
    @_translate_errors
    def execution_set_final(block_height: Any, timeout: Optional[float] = None) -> None:
        execution.set_final(_quantity(block_height, "block_height"), _context(timeout))
        return None
