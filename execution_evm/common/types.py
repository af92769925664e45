"""
Transactions as reported by ``txpool_content``.

The pool hands back JSON transaction objects; the chain driver wants the
canonical wire bytes (EIP-2718: legacy RLP, or type byte || RLP payload).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Optional

import rlp


class TxType(IntEnum):
    LEGACY = 0
    ACCESS_LIST = 1   # EIP-2930
    FEE_MARKET = 2    # EIP-1559
    BLOB = 3          # EIP-4844


def _quantity(raw: dict[str, Any], key: str, default: Optional[int] = None) -> int:
    value = raw.get(key)
    if value is None:
        if default is None:
            raise ValueError(f"{key} is missing")
        return default
    if isinstance(value, int) and not isinstance(value, bool):
        if value < 0:
            raise ValueError(f"{key} must be >= 0")
        return value
    if not isinstance(value, str) or not value.startswith("0x"):
        raise ValueError(f"{key} must be a hex quantity")
    return int(value, 16)


def _data(value: Any, key: str, size: Optional[int] = None) -> bytes:
    if not isinstance(value, str) or not value.startswith("0x"):
        raise ValueError(f"{key} must be 0x-prefixed hex")
    data = bytes.fromhex(value[2:])
    if size is not None and len(data) != size:
        raise ValueError(f"{key} must be {size} bytes")
    return data


@dataclass
class AccessListEntry:
    address: bytes  # 20 bytes
    storage_keys: list[bytes] = field(default_factory=list)  # list of 32-byte keys

    def to_rlp_list(self) -> list:
        return [self.address, self.storage_keys]

    @classmethod
    def from_rpc(cls, raw: Any) -> AccessListEntry:
        if not isinstance(raw, dict):
            raise ValueError("accessList entry must be an object")
        keys = raw.get("storageKeys") or []
        if not isinstance(keys, list):
            raise ValueError("storageKeys must be a list")
        return cls(
            address=_data(raw.get("address"), "accessList.address", 20),
            storage_keys=[_data(k, "accessList.storageKeys", 32) for k in keys],
        )


@dataclass
class Transaction:
    """Unified transaction type supporting Legacy, EIP-2930, EIP-1559, EIP-4844."""
    tx_type: TxType = TxType.LEGACY

    # Common fields
    nonce: int = 0
    gas_limit: int = 0
    to: Optional[bytes] = None  # None for contract creation
    value: int = 0
    data: bytes = b""

    # Legacy / EIP-2930
    gas_price: int = 0

    # EIP-1559 / EIP-4844
    max_fee_per_gas: int = 0
    max_priority_fee_per_gas: int = 0

    # EIP-2930 / EIP-1559 / EIP-4844
    chain_id: int = 1
    access_list: list[AccessListEntry] = field(default_factory=list)

    # EIP-4844
    max_fee_per_blob_gas: int = 0
    blob_versioned_hashes: list[bytes] = field(default_factory=list)

    # Signature (v is yParity for typed transactions)
    v: int = 0
    r: int = 0
    s: int = 0

    @classmethod
    def from_rpc(cls, raw: Any) -> Transaction:
        """Decode an RPC transaction object (eth_getTransactionByHash / txpool_content shape)."""
        if not isinstance(raw, dict):
            raise ValueError("transaction must be an object")

        try:
            tx_type = TxType(_quantity(raw, "type", default=0))
        except ValueError as exc:
            raise ValueError(f"unsupported transaction type {raw.get('type')!r}") from exc

        to_raw = raw.get("to")
        to = None if to_raw is None else _data(to_raw, "to", 20)
        input_raw = raw.get("input", raw.get("data", "0x"))

        tx = cls(
            tx_type=tx_type,
            nonce=_quantity(raw, "nonce"),
            gas_limit=_quantity(raw, "gas"),
            to=to,
            value=_quantity(raw, "value"),
            data=_data(input_raw, "input"),
            v=_quantity(raw, "yParity") if tx_type != TxType.LEGACY and "yParity" in raw else _quantity(raw, "v"),
            r=_quantity(raw, "r"),
            s=_quantity(raw, "s"),
        )

        if tx_type in (TxType.LEGACY, TxType.ACCESS_LIST):
            tx.gas_price = _quantity(raw, "gasPrice")
        else:
            tx.max_fee_per_gas = _quantity(raw, "maxFeePerGas")
            tx.max_priority_fee_per_gas = _quantity(raw, "maxPriorityFeePerGas")

        if tx_type != TxType.LEGACY:
            tx.chain_id = _quantity(raw, "chainId")
            al_raw = raw.get("accessList") or []
            if not isinstance(al_raw, list):
                raise ValueError("accessList must be a list")
            tx.access_list = [AccessListEntry.from_rpc(e) for e in al_raw]

        if tx_type == TxType.BLOB:
            if tx.to is None:
                raise ValueError("blob transactions cannot create contracts")
            tx.max_fee_per_blob_gas = _quantity(raw, "maxFeePerBlobGas")
            hashes = raw.get("blobVersionedHashes") or []
            if not isinstance(hashes, list):
                raise ValueError("blobVersionedHashes must be a list")
            tx.blob_versioned_hashes = [_data(h, "blobVersionedHashes", 32) for h in hashes]

        return tx

    def to_rlp_list(self) -> list:
        to_bytes = self.to if self.to is not None else b""
        al = [e.to_rlp_list() for e in self.access_list]

        if self.tx_type == TxType.LEGACY:
            return [
                self.nonce,
                self.gas_price,
                self.gas_limit,
                to_bytes,
                self.value,
                self.data,
                self.v,
                self.r,
                self.s,
            ]
        elif self.tx_type == TxType.ACCESS_LIST:
            return [
                self.chain_id,
                self.nonce,
                self.gas_price,
                self.gas_limit,
                to_bytes,
                self.value,
                self.data,
                al,
                self.v,
                self.r,
                self.s,
            ]
        elif self.tx_type == TxType.FEE_MARKET:
            return [
                self.chain_id,
                self.nonce,
                self.max_priority_fee_per_gas,
                self.max_fee_per_gas,
                self.gas_limit,
                to_bytes,
                self.value,
                self.data,
                al,
                self.v,
                self.r,
                self.s,
            ]
        elif self.tx_type == TxType.BLOB:
            return [
                self.chain_id,
                self.nonce,
                self.max_priority_fee_per_gas,
                self.max_fee_per_gas,
                self.gas_limit,
                to_bytes,
                self.value,
                self.data,
                al,
                self.max_fee_per_blob_gas,
                self.blob_versioned_hashes,
                self.v,
                self.r,
                self.s,
            ]
        raise ValueError(f"Unknown tx type: {self.tx_type}")

    def encode_rlp(self) -> bytes:
        """Canonical wire encoding (with type prefix for typed txs)."""
        payload = rlp.encode(self.to_rlp_list())
        if self.tx_type == TxType.LEGACY:
            return payload
        return bytes([self.tx_type]) + payload
