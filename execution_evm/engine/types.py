"""Typed Engine API (V1) request/response schemas with strict decoding."""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from execution_evm.errors import MalformedResponse

HASH_SIZE = 32
ADDRESS_SIZE = 20
BLOOM_SIZE = 256
MAX_EXTRA_DATA = 32
UINT64_MAX = 2**64 - 1
UINT256_MAX = 2**256 - 1

ZERO_HASH = b"\x00" * HASH_SIZE
ZERO_ADDRESS = b"\x00" * ADDRESS_SIZE

FORKCHOICE_UPDATED = "engine_forkchoiceUpdatedV1"
GET_PAYLOAD = "engine_getPayloadV1"
NEW_PAYLOAD = "engine_newPayloadV1"


class PayloadStatusEnum(str, Enum):
    VALID = "VALID"
    INVALID = "INVALID"
    SYNCING = "SYNCING"
    ACCEPTED = "ACCEPTED"
    INVALID_BLOCK_HASH = "INVALID_BLOCK_HASH"


def _require_hex(value: Any, *, name: str, size: int, method: Optional[str]) -> bytes:
    if not isinstance(value, str) or not value.startswith("0x"):
        raise MalformedResponse(method, f"{name} must be 0x-prefixed hex", field=name)
    body = value[2:]
    if len(body) != size * 2:
        raise MalformedResponse(method, f"{name} must be {size} bytes", field=name)
    try:
        return bytes.fromhex(body)
    except ValueError as exc:
        raise MalformedResponse(method, f"{name} is invalid hex", field=name) from exc


def _optional_hex(value: Any, *, name: str, size: int, method: Optional[str]) -> Optional[bytes]:
    if value is None:
        return None
    return _require_hex(value, name=name, size=size, method=method)


def _require_data(value: Any, *, name: str, method: Optional[str], max_size: Optional[int] = None) -> bytes:
    if not isinstance(value, str) or not value.startswith("0x"):
        raise MalformedResponse(method, f"{name} must be 0x-prefixed hex", field=name)
    try:
        data = bytes.fromhex(value[2:])
    except ValueError as exc:
        raise MalformedResponse(method, f"{name} is invalid hex", field=name) from exc
    if max_size is not None and len(data) > max_size:
        raise MalformedResponse(method, f"{name} exceeds {max_size} bytes", field=name)
    return data


def _hex_to_int(value: Any, *, name: str, method: Optional[str], maximum: int = UINT64_MAX) -> int:
    # bool is an int subclass; reject it explicitly
    if isinstance(value, int) and not isinstance(value, bool):
        result = value
    elif isinstance(value, str) and value.startswith("0x"):
        try:
            result = int(value, 16)
        except ValueError as exc:
            raise MalformedResponse(method, f"{name} is invalid hex quantity", field=name) from exc
    else:
        raise MalformedResponse(method, f"{name} must be hex quantity", field=name)
    if result < 0:
        raise MalformedResponse(method, f"{name} must be >= 0", field=name)
    if result > maximum:
        raise MalformedResponse(method, f"{name} overflows {maximum.bit_length()} bits", field=name)
    return result


def _require_object(raw: Any, *, name: str, method: Optional[str]) -> dict[str, Any]:
    if not isinstance(raw, dict):
        raise MalformedResponse(method, f"{name} must be an object", field=name)
    return raw


def _as_hex(value: bytes) -> str:
    return "0x" + value.hex()


def _as_quantity(value: int) -> str:
    return hex(value)


@dataclass(frozen=True)
class ForkchoiceState:
    head_block_hash: bytes
    safe_block_hash: bytes
    finalized_block_hash: bytes

    @classmethod
    def uniform(cls, block_hash: bytes) -> ForkchoiceState:
        """head == safe == finalized, as used at genesis and for finalization."""
        return cls(block_hash, block_hash, block_hash)

    def to_rpc(self) -> dict[str, str]:
        return {
            "headBlockHash": _as_hex(self.head_block_hash),
            "safeBlockHash": _as_hex(self.safe_block_hash),
            "finalizedBlockHash": _as_hex(self.finalized_block_hash),
        }


@dataclass(frozen=True)
class PayloadAttributes:
    timestamp: int
    prev_randao: bytes
    suggested_fee_recipient: bytes

    def to_rpc(self) -> dict[str, str]:
        return {
            "timestamp": _as_quantity(self.timestamp),
            "prevRandao": _as_hex(self.prev_randao),
            "suggestedFeeRecipient": _as_hex(self.suggested_fee_recipient),
        }


@dataclass(frozen=True)
class PayloadStatus:
    status: PayloadStatusEnum
    latest_valid_hash: Optional[bytes] = None
    validation_error: Optional[str] = None

    @property
    def is_valid(self) -> bool:
        return self.status is PayloadStatusEnum.VALID

    @classmethod
    def from_rpc(cls, raw: Any, *, method: Optional[str], name: str = "payloadStatus") -> PayloadStatus:
        raw = _require_object(raw, name=name, method=method)
        status_raw = raw.get("status")
        if not isinstance(status_raw, str):
            raise MalformedResponse(method, f"{name}.status is missing", field=f"{name}.status")
        try:
            status = PayloadStatusEnum(status_raw)
        except ValueError as exc:
            raise MalformedResponse(
                method, f"{name}.status {status_raw!r} is not a known status", field=f"{name}.status"
            ) from exc

        validation_error = raw.get("validationError")
        if validation_error is not None and not isinstance(validation_error, str):
            raise MalformedResponse(
                method, f"{name}.validationError must be a string", field=f"{name}.validationError"
            )

        return cls(
            status=status,
            latest_valid_hash=_optional_hex(
                raw.get("latestValidHash"), name=f"{name}.latestValidHash", size=HASH_SIZE, method=method
            ),
            validation_error=validation_error,
        )


@dataclass(frozen=True)
class ForkchoiceUpdatedResponse:
    """Build replies only need ``payloadId``; ``require_status`` is set when the status is the answer."""

    payload_status: Optional[PayloadStatus] = None
    payload_id: Optional[str] = None

    @classmethod
    def from_rpc(
        cls, raw: Any, *, method: Optional[str] = FORKCHOICE_UPDATED, require_status: bool = False
    ) -> ForkchoiceUpdatedResponse:
        raw = _require_object(raw, name="result", method=method)
        status_raw = raw.get("payloadStatus")
        if status_raw is None and require_status:
            raise MalformedResponse(method, "payloadStatus is missing", field="payloadStatus")
        payload_id = raw.get("payloadId")
        if payload_id is not None and (not isinstance(payload_id, str) or not payload_id):
            raise MalformedResponse(method, "payloadId must be a non-empty string", field="payloadId")
        return cls(
            payload_status=None if status_raw is None else PayloadStatus.from_rpc(status_raw, method=method),
            payload_id=payload_id,
        )


@dataclass
class ExecutionPayload:
    """An ExecutionPayloadV1. ``state_root``/``block_hash`` are only trustworthy after a VALID submission."""

    parent_hash: bytes
    fee_recipient: bytes
    state_root: bytes
    receipts_root: bytes
    logs_bloom: bytes
    prev_randao: bytes
    block_number: int
    gas_limit: int
    gas_used: int
    timestamp: int
    extra_data: bytes
    base_fee_per_gas: int
    block_hash: bytes
    transactions: list[bytes] = field(default_factory=list)

    def with_transactions(self, txs: list[bytes]) -> ExecutionPayload:
        return dataclasses.replace(self, transactions=list(txs))

    @classmethod
    def from_rpc(cls, raw: Any, *, method: Optional[str] = GET_PAYLOAD) -> ExecutionPayload:
        raw = _require_object(raw, name="executionPayload", method=method)

        txs_raw = raw.get("transactions")
        if not isinstance(txs_raw, list):
            raise MalformedResponse(method, "transactions must be a list", field="transactions")
        txs = [
            _require_data(tx, name=f"transactions[{i}]", method=method)
            for i, tx in enumerate(txs_raw)
        ]

        return cls(
            parent_hash=_require_hex(raw.get("parentHash"), name="parentHash", size=HASH_SIZE, method=method),
            fee_recipient=_require_hex(raw.get("feeRecipient"), name="feeRecipient", size=ADDRESS_SIZE, method=method),
            state_root=_require_hex(raw.get("stateRoot"), name="stateRoot", size=HASH_SIZE, method=method),
            receipts_root=_require_hex(raw.get("receiptsRoot"), name="receiptsRoot", size=HASH_SIZE, method=method),
            logs_bloom=_require_hex(raw.get("logsBloom"), name="logsBloom", size=BLOOM_SIZE, method=method),
            prev_randao=_require_hex(raw.get("prevRandao"), name="prevRandao", size=HASH_SIZE, method=method),
            block_number=_hex_to_int(raw.get("blockNumber"), name="blockNumber", method=method),
            gas_limit=_hex_to_int(raw.get("gasLimit"), name="gasLimit", method=method),
            gas_used=_hex_to_int(raw.get("gasUsed"), name="gasUsed", method=method),
            timestamp=_hex_to_int(raw.get("timestamp"), name="timestamp", method=method),
            extra_data=_require_data(raw.get("extraData"), name="extraData", method=method, max_size=MAX_EXTRA_DATA),
            base_fee_per_gas=_hex_to_int(
                raw.get("baseFeePerGas"), name="baseFeePerGas", method=method, maximum=UINT256_MAX
            ),
            block_hash=_require_hex(raw.get("blockHash"), name="blockHash", size=HASH_SIZE, method=method),
            transactions=txs,
        )

    def to_rpc(self) -> dict[str, Any]:
        return {
            "parentHash": _as_hex(self.parent_hash),
            "feeRecipient": _as_hex(self.fee_recipient),
            "stateRoot": _as_hex(self.state_root),
            "receiptsRoot": _as_hex(self.receipts_root),
            "logsBloom": _as_hex(self.logs_bloom),
            "prevRandao": _as_hex(self.prev_randao),
            "blockNumber": _as_quantity(self.block_number),
            "gasLimit": _as_quantity(self.gas_limit),
            "gasUsed": _as_quantity(self.gas_used),
            "timestamp": _as_quantity(self.timestamp),
            "extraData": _as_hex(self.extra_data),
            "baseFeePerGas": _as_quantity(self.base_fee_per_gas),
            "blockHash": _as_hex(self.block_hash),
            "transactions": [_as_hex(tx) for tx in self.transactions],
        }


def block_hash_from_rpc(raw: Any, *, method: Optional[str]) -> Optional[bytes]:
    """Extract ``hash`` from an eth_getBlockByNumber result (None when the block is unknown)."""
    if raw is None:
        return None
    raw = _require_object(raw, name="block", method=method)
    return _require_hex(raw.get("hash"), name="hash", size=HASH_SIZE, method=method)


def quantity_hex(value: int) -> str:
    return _as_quantity(value)


def bytes_hex(value: bytes) -> str:
    return _as_hex(value)
