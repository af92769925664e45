"""
execution-evm: expose an Engine API execution client to a rollup chain driver.

Entry point for the service:
  1. Parse CLI arguments and the optional JSON config file
  2. Load the engine JWT secret
  3. Connect to the engine (authrpc) and query (eth) endpoints
  4. Serve the execution_* JSON-RPC facade
  5. Handle graceful shutdown
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys
from typing import Optional

from execution_evm.common.config import ConfigError, ExecutionConfig, LOG_LEVELS
from execution_evm.engine.types import bytes_hex
from execution_evm.errors import ExecutionError
from execution_evm.execution import EngineAPIExecutionClient, Execution
from execution_evm.rpc.execution_api import register_execution_api
from execution_evm.rpc.server import RPCServer

logger = logging.getLogger("execution_evm")


class ExecutionService:
    """Adapter plus the JSON-RPC facade serving it."""

    def __init__(self, config: ExecutionConfig, execution: Execution) -> None:
        self.config = config
        self.execution = execution
        self.rpc = RPCServer()
        register_execution_api(self.rpc, execution)
        self._rpc_server = None

    @classmethod
    def from_config(cls, config: ExecutionConfig) -> ExecutionService:
        config.check_ready()
        credentials = config.credential_provider()
        execution = EngineAPIExecutionClient.connect(
            config.engine_url,
            config.eth_url,
            config.genesis_hash,
            config.fee_recipient,
            credentials,
            timeout=config.timeout,
        )
        service = cls(config, execution)
        # The facade accepts the same bearer tokens as the engine.
        service.rpc.set_jwt_secret(credentials.secret)
        return service

    async def start(self) -> None:
        logger.info("Starting execution-evm")
        logger.info("  Engine: %s", self.config.engine_url)
        logger.info("  Eth: %s", self.config.eth_url)
        logger.info("  Genesis: %s", bytes_hex(self.config.genesis_hash))
        logger.info("  Fee recipient: %s", bytes_hex(self.config.fee_recipient))
        logger.info("  RPC: %s:%d", self.config.rpc_host, self.config.rpc_port)

        import uvicorn
        uv_config = uvicorn.Config(
            self.rpc.app,
            host=self.config.rpc_host,
            port=self.config.rpc_port,
            log_level="warning",
            loop="asyncio",
        )
        self._rpc_server = uvicorn.Server(uv_config)
        self._rpc_server.config.setup_event_loop = lambda: None
        self._rpc_task = asyncio.create_task(self._rpc_server.serve())

        logger.info("Service started")

    async def stop(self) -> None:
        logger.info("Shutting down...")
        if self._rpc_server is not None:
            self._rpc_server.should_exit = True
            await self._rpc_task
        self.execution.close()
        logger.info("Service stopped")

    async def run_until_stopped(self) -> None:
        stop_event = asyncio.Event()

        def _signal_handler():
            stop_event.set()

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, _signal_handler)

        await self.start()
        await stop_event.wait()
        await self.stop()


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="execution-evm",
        description="Drive an Engine API execution client on behalf of a rollup chain driver",
    )
    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="Path to a JSON config file (flags override its values)",
    )
    parser.add_argument(
        "--engine-url",
        type=str,
        default=None,
        help="Engine API (authrpc) endpoint (default: http://127.0.0.1:8551)",
    )
    parser.add_argument(
        "--eth-url",
        type=str,
        default=None,
        help="Eth JSON-RPC endpoint for block and txpool queries (default: http://127.0.0.1:8545)",
    )
    parser.add_argument(
        "--jwt-secret",
        type=str,
        default=None,
        dest="jwt_secret_file",
        help="Path to the hex-encoded engine JWT secret (jwt.hex)",
    )
    parser.add_argument(
        "--genesis-hash",
        type=str,
        default=None,
        help="Genesis block hash of the execution chain",
    )
    parser.add_argument(
        "--fee-recipient",
        type=str,
        default=None,
        help="Address credited with block fees",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="Per-request timeout in seconds (default: 10)",
    )
    parser.add_argument(
        "--rpc-host",
        type=str,
        default=None,
        help="Facade listen host (default: 127.0.0.1)",
    )
    parser.add_argument(
        "--rpc-port",
        type=int,
        default=None,
        help="Facade listen port (default: 40041)",
    )
    parser.add_argument(
        "--log-level",
        choices=list(LOG_LEVELS),
        default=None,
        help="Logging level (default: INFO)",
    )
    return parser


def load_config(args: argparse.Namespace) -> ExecutionConfig:
    config = ExecutionConfig.load(args.config) if args.config else ExecutionConfig()
    return config.merge(
        engine_url=args.engine_url,
        eth_url=args.eth_url,
        jwt_secret_file=args.jwt_secret_file,
        genesis_hash=args.genesis_hash,
        fee_recipient=args.fee_recipient,
        timeout=args.timeout,
        rpc_host=args.rpc_host,
        rpc_port=args.rpc_port,
        log_level=args.log_level,
    )


def main(argv: Optional[list[str]] = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        config = load_config(args)
    except ConfigError as exc:
        parser.error(str(exc))

    logging.basicConfig(
        level=getattr(logging, config.log_level),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )

    try:
        service = ExecutionService.from_config(config)
    except (ConfigError, ExecutionError) as exc:
        logger.error("Cannot start: %s", exc)
        sys.exit(1)

    try:
        asyncio.run(service.run_until_stopped())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
