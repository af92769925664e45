"""
Tests for Engine API (V1) schemas: encoding requests and strictly decoding responses.
"""

import pytest

from execution_evm.engine.types import (
    UINT64_MAX,
    UINT256_MAX,
    ExecutionPayload,
    ForkchoiceState,
    ForkchoiceUpdatedResponse,
    PayloadAttributes,
    PayloadStatus,
    PayloadStatusEnum,
    block_hash_from_rpc,
    bytes_hex,
    quantity_hex,
)
from execution_evm.errors import MalformedResponse

from tests.fixtures import block_json, fcu_json, payload_json, status_json

H1 = b"\x11" * 32
H2 = b"\x22" * 32
H3 = b"\x33" * 32


class TestForkchoiceState:
    def test_to_rpc(self):
        state = ForkchoiceState(H1, H2, H3)
        assert state.to_rpc() == {
            "headBlockHash": "0x" + "11" * 32,
            "safeBlockHash": "0x" + "22" * 32,
            "finalizedBlockHash": "0x" + "33" * 32,
        }

    def test_uniform(self):
        state = ForkchoiceState.uniform(H1)
        assert state.head_block_hash == state.safe_block_hash == state.finalized_block_hash == H1


class TestPayloadAttributes:
    def test_to_rpc(self):
        attrs = PayloadAttributes(timestamp=1_700_000_000, prev_randao=H2, suggested_fee_recipient=b"\xfe" * 20)
        assert attrs.to_rpc() == {
            "timestamp": "0x6553f100",
            "prevRandao": "0x" + "22" * 32,
            "suggestedFeeRecipient": "0x" + "fe" * 20,
        }


# ===================================================================
# PayloadStatus / ForkchoiceUpdatedResponse
# ===================================================================

class TestPayloadStatus:
    def test_valid(self):
        status = PayloadStatus.from_rpc(status_json("VALID", latest_valid_hash="0x" + "33" * 32), method="m")
        assert status.is_valid
        assert status.status is PayloadStatusEnum.VALID
        assert status.latest_valid_hash == H3
        assert status.validation_error is None

    def test_invalid_with_message(self):
        status = PayloadStatus.from_rpc(status_json("INVALID", "bad root"), method="m")
        assert not status.is_valid
        assert status.validation_error == "bad root"

    @pytest.mark.parametrize("name", ["SYNCING", "ACCEPTED", "INVALID_BLOCK_HASH"])
    def test_other_statuses_are_not_valid(self, name):
        assert not PayloadStatus.from_rpc(status_json(name), method="m").is_valid

    def test_unknown_status(self):
        with pytest.raises(MalformedResponse, match="not a known status"):
            PayloadStatus.from_rpc(status_json("MAYBE"), method="m")

    def test_missing_status(self):
        with pytest.raises(MalformedResponse) as exc_info:
            PayloadStatus.from_rpc({"validationError": None}, method="m")
        assert exc_info.value.field == "payloadStatus.status"

    def test_bad_latest_valid_hash(self):
        with pytest.raises(MalformedResponse, match="latestValidHash"):
            PayloadStatus.from_rpc(status_json("VALID", latest_valid_hash="0x1234"), method="m")

    def test_validation_error_must_be_string(self):
        raw = status_json("INVALID")
        raw["validationError"] = 42
        with pytest.raises(MalformedResponse, match="validationError"):
            PayloadStatus.from_rpc(raw, method="m")

    def test_not_an_object(self):
        with pytest.raises(MalformedResponse, match="must be an object"):
            PayloadStatus.from_rpc("VALID", method="m", name="result")


class TestForkchoiceUpdatedResponse:
    def test_with_payload_id(self):
        response = ForkchoiceUpdatedResponse.from_rpc(fcu_json("0x0102030405060708"))
        assert response.payload_id == "0x0102030405060708"
        assert response.payload_status.is_valid

    def test_opaque_payload_id(self):
        assert ForkchoiceUpdatedResponse.from_rpc(fcu_json("p1")).payload_id == "p1"

    def test_null_payload_id(self):
        assert ForkchoiceUpdatedResponse.from_rpc(fcu_json(None)).payload_id is None

    def test_absent_payload_id(self):
        raw = {"payloadStatus": status_json()}
        assert ForkchoiceUpdatedResponse.from_rpc(raw).payload_id is None

    def test_empty_payload_id(self):
        with pytest.raises(MalformedResponse) as exc_info:
            ForkchoiceUpdatedResponse.from_rpc(fcu_json(""))
        assert exc_info.value.field == "payloadId"

    def test_non_string_payload_id(self):
        with pytest.raises(MalformedResponse):
            ForkchoiceUpdatedResponse.from_rpc(fcu_json(7))

    def test_payload_id_alone(self):
        response = ForkchoiceUpdatedResponse.from_rpc({"payloadId": "p1"})
        assert response.payload_id == "p1"
        assert response.payload_status is None

    def test_required_payload_status(self):
        with pytest.raises(MalformedResponse) as exc_info:
            ForkchoiceUpdatedResponse.from_rpc({"payloadId": "p1"}, require_status=True)
        assert exc_info.value.field == "payloadStatus"
        assert exc_info.value.method == "engine_forkchoiceUpdatedV1"

    def test_null_result(self):
        with pytest.raises(MalformedResponse):
            ForkchoiceUpdatedResponse.from_rpc(None)


# ===================================================================
# ExecutionPayload
# ===================================================================

class TestExecutionPayload:
    def test_decode(self):
        payload = ExecutionPayload.from_rpc(payload_json(transactions=["0x01", "0x02ab"]))
        assert payload.state_root == b"\xab" * 32
        assert payload.gas_limit == 30_000_000
        assert payload.block_number == 1
        assert payload.base_fee_per_gas == 7
        assert payload.extra_data == b""
        assert payload.transactions == [b"\x01", b"\x02\xab"]

    def test_reencodes_identically(self):
        raw = payload_json(transactions=["0xf86c01", "0x02f8"], extraData="0x6765746866")
        assert ExecutionPayload.from_rpc(raw).to_rpc() == raw

    @pytest.mark.parametrize("field", [
        "parentHash", "feeRecipient", "stateRoot", "receiptsRoot", "logsBloom", "prevRandao",
        "blockNumber", "gasLimit", "gasUsed", "timestamp", "extraData", "baseFeePerGas", "blockHash",
    ])
    def test_missing_field(self, field):
        raw = payload_json()
        del raw[field]
        with pytest.raises(MalformedResponse) as exc_info:
            ExecutionPayload.from_rpc(raw)
        assert exc_info.value.field == field

    def test_wrong_hash_size(self):
        with pytest.raises(MalformedResponse, match="stateRoot must be 32 bytes"):
            ExecutionPayload.from_rpc(payload_json(stateRoot="0xabc0"))

    def test_invalid_hex(self):
        with pytest.raises(MalformedResponse, match="invalid hex"):
            ExecutionPayload.from_rpc(payload_json(blockHash="0x" + "zz" * 32))

    def test_extra_data_limit(self):
        ExecutionPayload.from_rpc(payload_json(extraData="0x" + "00" * 32))
        with pytest.raises(MalformedResponse, match="extraData"):
            ExecutionPayload.from_rpc(payload_json(extraData="0x" + "00" * 33))

    def test_uint64_overflow(self):
        with pytest.raises(MalformedResponse, match="overflows 64 bits"):
            ExecutionPayload.from_rpc(payload_json(gasLimit=hex(UINT64_MAX + 1)))

    def test_base_fee_is_uint256(self):
        payload = ExecutionPayload.from_rpc(payload_json(baseFeePerGas=hex(UINT256_MAX)))
        assert payload.base_fee_per_gas == UINT256_MAX

    def test_integer_quantities_accepted(self):
        assert ExecutionPayload.from_rpc(payload_json(gasUsed=21_000)).gas_used == 21_000

    def test_bool_quantity_rejected(self):
        with pytest.raises(MalformedResponse):
            ExecutionPayload.from_rpc(payload_json(gasUsed=True))

    def test_decimal_string_rejected(self):
        with pytest.raises(MalformedResponse, match="gasUsed must be hex quantity"):
            ExecutionPayload.from_rpc(payload_json(gasUsed="21000"))

    def test_transactions_must_be_list(self):
        with pytest.raises(MalformedResponse) as exc_info:
            ExecutionPayload.from_rpc(payload_json(transactions=None))
        assert exc_info.value.field == "transactions"

    def test_transaction_must_be_hex(self):
        with pytest.raises(MalformedResponse) as exc_info:
            ExecutionPayload.from_rpc(payload_json(transactions=["0x01", 2]))
        assert exc_info.value.field == "transactions[1]"

    def test_with_transactions_copies(self):
        payload = ExecutionPayload.from_rpc(payload_json(transactions=["0x01"]))
        txs = [b"\xaa", b"\xbb"]
        replaced = payload.with_transactions(txs)
        txs.append(b"\xcc")
        assert replaced.transactions == [b"\xaa", b"\xbb"]
        assert payload.transactions == [b"\x01"]
        assert replaced.state_root == payload.state_root


class TestBlockHash:
    def test_extracts_hash(self):
        assert block_hash_from_rpc(block_json(5, H3), method="eth_getBlockByNumber") == H3

    def test_unknown_block(self):
        assert block_hash_from_rpc(None, method="eth_getBlockByNumber") is None

    def test_missing_hash(self):
        with pytest.raises(MalformedResponse) as exc_info:
            block_hash_from_rpc({"number": "0x5"}, method="eth_getBlockByNumber")
        assert exc_info.value.field == "hash"


class TestHexHelpers:
    def test_quantity_hex(self):
        assert quantity_hex(0) == "0x0"
        assert quantity_hex(30_000_000) == "0x1c9c380"

    def test_bytes_hex(self):
        assert bytes_hex(b"") == "0x"
        assert bytes_hex(b"\xde\xad") == "0xdead"
