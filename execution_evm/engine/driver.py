"""Block-production conversation with the engine: fork choice -> build -> submit."""

from __future__ import annotations

import logging
from typing import Optional

from execution_evm.context import CallContext
from execution_evm.engine.types import (
    FORKCHOICE_UPDATED,
    GET_PAYLOAD,
    NEW_PAYLOAD,
    ExecutionPayload,
    ForkchoiceState,
    ForkchoiceUpdatedResponse,
    PayloadAttributes,
    PayloadStatus,
    bytes_hex,
)
from execution_evm.errors import (
    CancellationError,
    ExecutionError,
    FinalizationRejected,
    MissingPayloadID,
    PayloadFetchError,
    PayloadRejected,
)
from execution_evm.rpc.transport import EngineTransport

logger = logging.getLogger(__name__)


class PayloadDriver:
    """Issues the Engine API V1 call sequences. Each step is a single round trip; nothing is retried."""

    def __init__(self, transport: EngineTransport) -> None:
        self._transport = transport

    def build_and_fetch(
        self,
        forkchoice: ForkchoiceState,
        attributes: PayloadAttributes,
        ctx: Optional[CallContext] = None,
    ) -> ExecutionPayload:
        if ctx is None:
            ctx = CallContext()

        raw = self._transport.engine_call(FORKCHOICE_UPDATED, [forkchoice.to_rpc(), attributes.to_rpc()], ctx)
        response = ForkchoiceUpdatedResponse.from_rpc(raw, method=FORKCHOICE_UPDATED)
        status = response.payload_status
        if response.payload_id is None:
            if status is None:
                raise MissingPayloadID(FORKCHOICE_UPDATED)
            raise MissingPayloadID(FORKCHOICE_UPDATED, status.status.value, status.validation_error)

        logger.debug(
            "forkchoiceUpdated head=%s status=%s payloadId=%s",
            bytes_hex(forkchoice.head_block_hash),
            status.status.value if status is not None else "-",
            response.payload_id,
        )
        return self.fetch(response.payload_id, ctx)

    def fetch(self, payload_id: str, ctx: Optional[CallContext] = None) -> ExecutionPayload:
        if ctx is None:
            ctx = CallContext()
        ctx.check(GET_PAYLOAD)
        try:
            raw = self._transport.engine_call(GET_PAYLOAD, [payload_id], ctx)
            payload = ExecutionPayload.from_rpc(raw, method=GET_PAYLOAD)
        except CancellationError:
            raise
        except ExecutionError as exc:
            raise PayloadFetchError(payload_id, exc.message) from exc

        logger.debug(
            "getPayload id=%s number=%d blockHash=%s",
            payload_id, payload.block_number, bytes_hex(payload.block_hash),
        )
        return payload

    def submit(self, payload: ExecutionPayload, ctx: Optional[CallContext] = None) -> PayloadStatus:
        if ctx is None:
            ctx = CallContext()

        raw = self._transport.engine_call(NEW_PAYLOAD, [payload.to_rpc()], ctx)
        status = PayloadStatus.from_rpc(raw, method=NEW_PAYLOAD, name="result")
        if not status.is_valid:
            logger.warning(
                "newPayload %s number=%d blockHash=%s error=%s",
                status.status.value, payload.block_number, bytes_hex(payload.block_hash), status.validation_error,
            )
            raise PayloadRejected(status.status.value, status.validation_error, status.latest_valid_hash)
        return status

    def finalize(self, block_hash: bytes, ctx: Optional[CallContext] = None) -> PayloadStatus:
        if ctx is None:
            ctx = CallContext()

        forkchoice = ForkchoiceState.uniform(block_hash)
        # No payload attributes: finalization never starts a build.
        raw = self._transport.engine_call(FORKCHOICE_UPDATED, [forkchoice.to_rpc(), None], ctx)
        response = ForkchoiceUpdatedResponse.from_rpc(raw, method=FORKCHOICE_UPDATED, require_status=True)
        status = response.payload_status
        if not status.is_valid:
            logger.warning("finalize %s rejected: %s %s", bytes_hex(block_hash), status.status.value, status.validation_error)
            raise FinalizationRejected(status.status.value, status.validation_error)
        return status
