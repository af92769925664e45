"""
Lifecycle interface consumed by the chain driver, and its Engine API implementation.

Operations map onto engine round trips as follows:
  init_chain   forkchoiceUpdated(genesis x3, attrs) -> getPayload
  get_txs      txpool_content (query channel)
  execute_txs  forkchoiceUpdated(prev x3, attrs) -> getPayload -> newPayload
  set_final    eth_getBlockByNumber (query channel) -> forkchoiceUpdated(hash x3, null)

None of these are idempotent at the protocol level and nothing is retried
here. Block production for one adapter must be strictly sequential; an
overlapping call is refused with ConcurrentProductionError.
"""

from __future__ import annotations

import logging
import threading
import time
from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Callable, Iterator, Optional, Sequence, Union

import httpx

from execution_evm.common.crypto import keccak256
from execution_evm.common.types import Transaction
from execution_evm.context import CallContext
from execution_evm.engine.driver import PayloadDriver
from execution_evm.engine.types import (
    UINT64_MAX,
    ZERO_HASH,
    ForkchoiceState,
    PayloadAttributes,
    block_hash_from_rpc,
    bytes_hex,
    quantity_hex,
)
from execution_evm.errors import ConcurrentProductionError, MalformedResponse, UnknownBlockError
from execution_evm.rpc.auth import JWTCredentialProvider
from execution_evm.rpc.transport import DEFAULT_TIMEOUT, EngineTransport

logger = logging.getLogger(__name__)

Timestamp = Union[int, datetime, None]
RandaoSource = Callable[[int], bytes]

TXPOOL_CONTENT = "txpool_content"
GET_BLOCK_BY_NUMBER = "eth_getBlockByNumber"

_RANDAO_DOMAIN = b"execution-evm/prevRandao"


def derive_prev_randao(block_height: int) -> bytes:
    """Stable per-height prevRandao: keccak256(domain || uint64 height)."""
    return keccak256(_RANDAO_DOMAIN + block_height.to_bytes(8, "big"))


def unix_seconds(value: Timestamp) -> int:
    """Unix seconds of ``value``; a naive datetime is read as UTC."""
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return require_uint64(int(value.timestamp()), "timestamp")
    if value is None:
        return 0
    return require_uint64(int(value), "timestamp")


def require_uint64(value: int, name: str) -> int:
    if not 0 <= value <= UINT64_MAX:
        raise ValueError(f"{name} must be within uint64, got {value}")
    return value


class Execution(ABC):
    """The chain driver's view of an execution layer."""

    @abstractmethod
    def init_chain(
        self,
        genesis_time: Timestamp,
        initial_height: int,
        chain_id: str,
        ctx: Optional[CallContext] = None,
    ) -> tuple[bytes, int]:
        """Return (state_root, gas_limit) of the genesis build."""

    @abstractmethod
    def get_txs(self, ctx: Optional[CallContext] = None) -> list[bytes]:
        """Return the engine's pending then queued transactions as canonical bytes."""

    @abstractmethod
    def execute_txs(
        self,
        txs: Sequence[bytes],
        block_height: int,
        timestamp: Timestamp,
        prev_state_root: bytes,
        ctx: Optional[CallContext] = None,
    ) -> tuple[bytes, int]:
        """Build and submit a block carrying ``txs``; return (state_root, gas_used)."""

    @abstractmethod
    def set_final(self, block_height: int, ctx: Optional[CallContext] = None) -> None:
        """Mark the block at ``block_height`` as finalized."""

    def close(self) -> None:
        """Release any connections held by this execution."""


class EngineAPIExecutionClient(Execution):
    """Execution backed by an Engine API (V1) execution client."""

    def __init__(
        self,
        transport: EngineTransport,
        genesis_hash: bytes,
        fee_recipient: bytes,
        randao: RandaoSource = derive_prev_randao,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if len(genesis_hash) != 32:
            raise ValueError("genesis hash must be 32 bytes")
        if len(fee_recipient) != 20:
            raise ValueError("fee recipient must be 20 bytes")
        self._transport = transport
        self._driver = PayloadDriver(transport)
        self._genesis_hash = bytes(genesis_hash)
        self._fee_recipient = bytes(fee_recipient)
        self._randao = randao
        self._clock = clock
        self._production_lock = threading.Lock()

    @classmethod
    def connect(
        cls,
        engine_url: str,
        eth_url: str,
        genesis_hash: bytes,
        fee_recipient: bytes,
        credentials: JWTCredentialProvider,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        probe: bool = True,
        transport: Optional[httpx.BaseTransport] = None,
        **kwargs: Any,
    ) -> EngineAPIExecutionClient:
        handle = EngineTransport.connect(
            engine_url, eth_url, credentials, timeout=timeout, transport=transport, probe=probe,
        )
        try:
            return cls(handle, genesis_hash, fee_recipient, **kwargs)
        except ValueError:
            handle.close()
            raise

    @property
    def genesis_hash(self) -> bytes:
        return self._genesis_hash

    @property
    def fee_recipient(self) -> bytes:
        return self._fee_recipient

    @contextmanager
    def _producing(self, operation: str) -> Iterator[None]:
        if not self._production_lock.acquire(blocking=False):
            raise ConcurrentProductionError(operation)
        try:
            yield
        finally:
            self._production_lock.release()

    def init_chain(
        self,
        genesis_time: Timestamp,
        initial_height: int,
        chain_id: str,
        ctx: Optional[CallContext] = None,
    ) -> tuple[bytes, int]:
        require_uint64(initial_height, "initial_height")
        timestamp = unix_seconds(genesis_time)
        if timestamp == 0:
            timestamp = int(self._clock())

        with self._producing("init_chain"):
            payload = self._driver.build_and_fetch(
                ForkchoiceState.uniform(self._genesis_hash),
                PayloadAttributes(
                    timestamp=timestamp,
                    prev_randao=ZERO_HASH,
                    suggested_fee_recipient=self._fee_recipient,
                ),
                ctx,
            )

        logger.info(
            "InitChain chain=%s height=%d genesis=%s stateRoot=%s gasLimit=%d",
            chain_id, initial_height, bytes_hex(self._genesis_hash), bytes_hex(payload.state_root), payload.gas_limit,
        )
        return payload.state_root, payload.gas_limit

    def get_txs(self, ctx: Optional[CallContext] = None) -> list[bytes]:
        content = self._transport.query_call(TXPOOL_CONTENT, [], ctx)
        if not isinstance(content, dict):
            raise MalformedResponse(TXPOOL_CONTENT, "result must be an object", field="result")

        txs: list[bytes] = []
        for group in ("pending", "queued"):
            txs.extend(_flatten_pool_group(content.get(group), group))

        logger.debug("GetTxs returned %d transactions", len(txs))
        return txs

    def execute_txs(
        self,
        txs: Sequence[bytes],
        block_height: int,
        timestamp: Timestamp,
        prev_state_root: bytes,
        ctx: Optional[CallContext] = None,
    ) -> tuple[bytes, int]:
        if len(prev_state_root) != 32:
            raise ValueError("prev_state_root must be 32 bytes")
        require_uint64(block_height, "block_height")
        block_time = unix_seconds(timestamp)
        if ctx is None:
            ctx = CallContext()

        with self._producing("execute_txs"):
            payload = self._driver.build_and_fetch(
                ForkchoiceState.uniform(bytes(prev_state_root)),
                PayloadAttributes(
                    timestamp=block_time,
                    prev_randao=self._randao(block_height),
                    suggested_fee_recipient=self._fee_recipient,
                ),
                ctx,
            )
            payload = payload.with_transactions([bytes(tx) for tx in txs])
            self._driver.submit(payload, ctx)

        logger.info(
            "ExecuteTxs height=%d txs=%d stateRoot=%s gasUsed=%d",
            block_height, len(payload.transactions), bytes_hex(payload.state_root), payload.gas_used,
        )
        return payload.state_root, payload.gas_used

    def set_final(self, block_height: int, ctx: Optional[CallContext] = None) -> None:
        require_uint64(block_height, "block_height")
        if ctx is None:
            ctx = CallContext()

        with self._producing("set_final"):
            raw = self._transport.query_call(GET_BLOCK_BY_NUMBER, [quantity_hex(block_height), False], ctx)
            block_hash = block_hash_from_rpc(raw, method=GET_BLOCK_BY_NUMBER)
            if block_hash is None:
                raise UnknownBlockError(block_height)
            self._driver.finalize(block_hash, ctx)

        logger.info("SetFinal height=%d hash=%s", block_height, bytes_hex(block_hash))

    def close(self) -> None:
        self._transport.close()

    def __enter__(self) -> EngineAPIExecutionClient:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


def _flatten_pool_group(group: Any, name: str) -> list[bytes]:
    """Canonical bytes of every transaction in one txpool group, accounts in response order, nonces ascending."""
    if group is None:
        return []
    if not isinstance(group, dict):
        raise MalformedResponse(TXPOOL_CONTENT, f"{name} must be an object", field=name)

    out: list[bytes] = []
    for account, by_nonce in group.items():
        if not isinstance(by_nonce, dict):
            raise MalformedResponse(TXPOOL_CONTENT, f"{name}[{account}] must be an object", field=f"{name}.{account}")
        try:
            ordered = sorted(by_nonce.items(), key=lambda item: _nonce_key(item[0]))
        except ValueError as exc:
            raise MalformedResponse(
                TXPOOL_CONTENT, f"{name}[{account}] has a non-numeric nonce key", field=f"{name}.{account}"
            ) from exc

        for nonce, raw_tx in ordered:
            where = f"{name}.{account}.{nonce}"
            try:
                tx = Transaction.from_rpc(raw_tx)
                encoded = tx.encode_rlp()
            except ValueError as exc:
                raise MalformedResponse(TXPOOL_CONTENT, f"{where}: {exc}", field=where) from exc

            reported = raw_tx.get("hash")
            if reported is not None and (
                not isinstance(reported, str) or reported.lower() != bytes_hex(keccak256(encoded))
            ):
                raise MalformedResponse(
                    TXPOOL_CONTENT, f"{where}: re-encoded transaction does not match hash {reported}", field=where
                )
            out.append(encoded)
    return out


def _nonce_key(key: str) -> int:
    # geth keys nonces as decimal strings; tolerate hex quantities too
    if key.startswith(("0x", "0X")):
        return int(key, 16)
    return int(key, 10)
