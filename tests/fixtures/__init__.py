"""Test fixtures for execution adapter tests."""

from .keys import (
    ALICE_ADDRESS,
    ALICE_PRIVATE_KEY,
    BOB_ADDRESS,
    BOB_PRIVATE_KEY,
    CHARLIE_ADDRESS,
    CHARLIE_PRIVATE_KEY,
    JWT_SECRET,
    JWT_SECRET_HEX,
    get_keypair,
)
from .engine import (
    ENGINE_URL,
    ETH_URL,
    FEE_RECIPIENT,
    FIXED_NOW,
    GENESIS_HASH,
    FakeEngine,
    block_json,
    fcu_json,
    payload_json,
    status_json,
)
from .execution import STUB_STATE_ROOT, StubExecution
from .transactions import (
    SignedTx,
    access_list_tx,
    blob_tx,
    fee_market_tx,
    legacy_tx,
    txpool_content,
)

__all__ = [
    # Keys
    "ALICE_ADDRESS",
    "ALICE_PRIVATE_KEY",
    "BOB_ADDRESS",
    "BOB_PRIVATE_KEY",
    "CHARLIE_ADDRESS",
    "CHARLIE_PRIVATE_KEY",
    "JWT_SECRET",
    "JWT_SECRET_HEX",
    "get_keypair",
    # Engine
    "ENGINE_URL",
    "ETH_URL",
    "FEE_RECIPIENT",
    "FIXED_NOW",
    "GENESIS_HASH",
    "FakeEngine",
    "block_json",
    "fcu_json",
    "payload_json",
    "status_json",
    # Execution
    "STUB_STATE_ROOT",
    "StubExecution",
    # Transactions
    "SignedTx",
    "access_list_tx",
    "blob_tx",
    "fee_market_tx",
    "legacy_tx",
    "txpool_content",
]
