"""
JSON-RPC 2.0 client channels to the execution engine.

Two logical channels are opened per chain handle:
  - the engine channel (authrpc, JWT bearer on every request) for
    engine_forkchoiceUpdated / engine_getPayload / engine_newPayload
  - the query channel (plain eth JSON-RPC) for block lookups and txpool
"""

from __future__ import annotations

import itertools
import logging
from typing import Any, Generator, Optional, Sequence

import httpx

from execution_evm.context import CallContext
from execution_evm.errors import (
    CancellationError,
    CredentialError,
    EngineCallError,
    EngineConnectionError,
    EngineRPCError,
    MalformedResponse,
)
from execution_evm.rpc.auth import JWTCredentialProvider

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10.0
PROBE_METHOD = "eth_chainId"


class BearerAuth(httpx.Auth):
    """Attach a freshly issued engine JWT to every outgoing request."""

    def __init__(self, provider: JWTCredentialProvider) -> None:
        self._provider = provider

    def auth_flow(self, request: httpx.Request) -> Generator[httpx.Request, httpx.Response, None]:
        request.headers["Authorization"] = self._provider.issue().header_value()
        yield request


class JSONRPCChannel:
    """One JSON-RPC endpoint. Safe for concurrent use; holds no per-call state."""

    def __init__(
        self,
        url: str,
        client: httpx.Client,
        auth: Optional[httpx.Auth] = None,
        name: str = "rpc",
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self.url = url
        self.name = name
        self._client = client
        self._auth = auth
        self._timeout = timeout
        self._ids = itertools.count(1)

    def call(self, method: str, params: Sequence[Any] = (), ctx: Optional[CallContext] = None) -> Any:
        """Perform one round trip and return the ``result`` member."""
        if ctx is None:
            ctx = CallContext()
        ctx.check(method)

        body = {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": list(params)}
        timeout = self._timeout
        remaining = ctx.remaining()
        if remaining is not None:
            timeout = min(timeout, remaining)

        logger.debug("%s -> %s id=%s", self.name, method, body["id"])
        try:
            response = self._client.post(
                self.url,
                json=body,
                auth=self._auth if self._auth is not None else httpx.USE_CLIENT_DEFAULT,
                timeout=timeout,
            )
        except httpx.TimeoutException as exc:
            if ctx.expired:
                raise CancellationError(f"deadline exceeded during {method}", method=method) from exc
            raise EngineCallError(method, f"timed out: {exc}") from exc
        except httpx.HTTPError as exc:
            # transport failures plus decoding and redirect errors
            raise EngineCallError(method, str(exc) or type(exc).__name__) from exc

        return self._decode(method, body["id"], response)

    def _decode(self, method: str, request_id: int, response: httpx.Response) -> Any:
        try:
            payload = response.json()
        except ValueError as exc:
            if response.status_code >= 400:
                raise EngineCallError(
                    method, f"HTTP {response.status_code}", status_code=response.status_code
                ) from exc
            raise MalformedResponse(method, "response is not JSON") from exc

        if not isinstance(payload, dict):
            if response.status_code >= 400:
                raise EngineCallError(method, f"HTTP {response.status_code}", status_code=response.status_code)
            raise MalformedResponse(method, "response is not a JSON object")

        error = payload.get("error")
        if error is not None:
            if not isinstance(error, dict):
                raise MalformedResponse(method, "error member is not an object", field="error")
            code = error.get("code")
            message = error.get("message")
            raise EngineRPCError(
                method,
                code if isinstance(code, int) else 0,
                message if isinstance(message, str) else str(message),
                error.get("data"),
            )

        if response.status_code >= 400:
            raise EngineCallError(method, f"HTTP {response.status_code}", status_code=response.status_code)

        if payload.get("id") != request_id:
            raise MalformedResponse(method, f"response id {payload.get('id')!r} does not match {request_id}", field="id")
        if "result" not in payload:
            raise MalformedResponse(method, "response has neither result nor error", field="result")
        return payload["result"]

    def close(self) -> None:
        self._client.close()


class EngineTransport:
    """Engine + query channels for one configured execution engine."""

    def __init__(self, engine: JSONRPCChannel, query: JSONRPCChannel) -> None:
        self.engine = engine
        self.query = query
        self._closed = False

    @classmethod
    def connect(
        cls,
        engine_url: str,
        eth_url: str,
        credentials: JWTCredentialProvider,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        transport: Optional[httpx.BaseTransport] = None,
        probe: bool = True,
    ) -> EngineTransport:
        if credentials is None:
            raise TypeError("the engine channel requires a credential provider")

        engine_http = httpx.Client(timeout=timeout, transport=transport)
        query_http = httpx.Client(timeout=timeout, transport=transport)
        handle = cls(
            JSONRPCChannel(engine_url, engine_http, auth=BearerAuth(credentials), name="engine", timeout=timeout),
            JSONRPCChannel(eth_url, query_http, name="eth", timeout=timeout),
        )
        if probe:
            try:
                handle.probe()
            except Exception:
                handle.close()
                raise
        logger.info("Connected to engine=%s eth=%s", engine_url, eth_url)
        return handle

    def probe(self) -> None:
        """Dial both endpoints once. Any JSON-RPC answer counts as reachable."""
        for channel in (self.engine, self.query):
            try:
                channel.call(PROBE_METHOD, [])
            except EngineRPCError as exc:
                logger.debug("%s probe answered with error: %s", channel.name, exc)
            except MalformedResponse as exc:
                logger.debug("%s probe answered with malformed reply: %s", channel.name, exc)
            except EngineCallError as exc:
                if exc.status_code in (401, 403):
                    raise CredentialError(f"{channel.url} rejected the bearer token") from exc
                if exc.status_code is None:
                    raise EngineConnectionError(channel.url, exc.message) from exc
                logger.debug("%s probe answered HTTP %s", channel.name, exc.status_code)

    def engine_call(self, method: str, params: Sequence[Any] = (), ctx: Optional[CallContext] = None) -> Any:
        return self.engine.call(method, params, ctx)

    def query_call(self, method: str, params: Sequence[Any] = (), ctx: Optional[CallContext] = None) -> Any:
        return self.query.call(method, params, ctx)

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self.engine.close()
        self.query.close()

    def __enter__(self) -> EngineTransport:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()
