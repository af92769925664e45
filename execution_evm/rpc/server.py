"""
JSON-RPC 2.0 endpoint for the execution facade.

One POST route accepts a single call or a batch. Handlers are plain
callables registered by name; blocking ones are run on the worker thread
pool so an engine round trip never holds the event loop.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Optional

from fastapi import FastAPI, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse, Response

from execution_evm.rpc.auth import extract_bearer_token, verify_jwt

logger = logging.getLogger(__name__)


PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603
UNAUTHORIZED = -32001


class RPCError(Exception):
    def __init__(self, code: int, message: str, data: Any = None) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.data = data

    def reply(self, req_id: Any) -> dict:
        error: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.data is not None:
            error["data"] = self.data
        return {"jsonrpc": "2.0", "id": req_id, "error": error}


class RPCServer:
    """Method registry plus the FastAPI app that dispatches into it."""

    def __init__(self, title: str = "execution-evm JSON-RPC") -> None:
        self.app = FastAPI(title=title, docs_url=None, redoc_url=None)
        self._methods: dict[str, Callable] = {}
        self._jwt_secret: Optional[bytes] = None
        self._auth_prefix = "execution_"
        self.app.add_api_route("/", self._serve, methods=["POST"])
        self.app.add_api_route("/health", self._health, methods=["GET"])

    def set_jwt_secret(self, secret: bytes, prefix: str = "execution_") -> None:
        """Require an HS256 bearer token for methods starting with ``prefix``."""
        self._jwt_secret = secret
        self._auth_prefix = prefix

    def register(self, name: str, handler: Callable) -> None:
        self._methods[name] = handler

    def method(self, name: str) -> Callable:
        def wrap(func: Callable) -> Callable:
            self.register(name, func)
            return func

        return wrap

    @property
    def methods(self) -> list[str]:
        return sorted(self._methods)

    async def _health(self) -> dict:
        return {"status": "ok", "methods": self.methods}

    async def _serve(self, request: Request) -> Response:
        try:
            body = await request.json()
        except ValueError:
            return JSONResponse(RPCError(PARSE_ERROR, "Parse error").reply(None))

        authorization = request.headers.get("authorization")
        if not isinstance(body, list):
            reply = await self._dispatch(body, authorization)
            if reply is None:
                return Response(status_code=204)
            return JSONResponse(reply)

        if not body:
            return JSONResponse(RPCError(INVALID_REQUEST, "Empty batch").reply(None))
        replies = [await self._dispatch(call, authorization) for call in body]
        return JSONResponse([r for r in replies if r is not None] or None)

    async def _dispatch(self, call: Any, authorization: Optional[str]) -> Optional[dict]:
        """Answer one call object; None for a notification."""
        if not isinstance(call, dict):
            return RPCError(INVALID_REQUEST, "Invalid request").reply(None)

        req_id = call.get("id")
        notification = "id" not in call
        name = call.get("method")
        try:
            if call.get("jsonrpc") != "2.0":
                raise RPCError(INVALID_REQUEST, "Invalid JSON-RPC version")
            if not isinstance(name, str):
                raise RPCError(INVALID_REQUEST, "Invalid method")
            self._authorize(name, authorization)
            handler = self._methods.get(name)
            if handler is None:
                if notification:
                    return None
                raise RPCError(METHOD_NOT_FOUND, f"Method not found: {name}")
            result = await self._invoke(name, handler, call.get("params"))
        except RPCError as exc:
            return exc.reply(req_id)

        if notification:
            return None
        return {"jsonrpc": "2.0", "id": req_id, "result": result}

    def _authorize(self, name: str, authorization: Optional[str]) -> None:
        if self._jwt_secret is None or not name.startswith(self._auth_prefix):
            return
        token = extract_bearer_token(authorization)
        if token is None or not verify_jwt(token, self._jwt_secret):
            raise RPCError(UNAUTHORIZED, "Unauthorized")

    async def _invoke(self, name: str, handler: Callable, params: Any) -> Any:
        if params is None:
            args, kwargs = [], {}
        elif isinstance(params, list):
            args, kwargs = params, {}
        elif isinstance(params, dict):
            args, kwargs = [], params
        else:
            raise RPCError(INVALID_PARAMS, "Invalid params")

        try:
            if asyncio.iscoroutinefunction(handler):
                return await handler(*args, **kwargs)
            return await run_in_threadpool(handler, *args, **kwargs)
        except RPCError:
            raise
        except TypeError as exc:
            logger.warning("%s called with bad arguments: %s", name, exc)
            raise RPCError(INVALID_PARAMS, str(exc)) from exc
        except Exception as exc:
            logger.exception("%s raised", name)
            raise RPCError(INTERNAL_ERROR, str(exc)) from exc


def int_to_hex(value: int) -> str:
    return hex(value)


def bytes_to_hex(value: bytes) -> str:
    return "0x" + value.hex()
