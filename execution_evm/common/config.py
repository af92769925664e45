"""
Adapter configuration.

Everything is supplied at construction time: engine and query endpoints,
genesis hash, fee recipient and the shared JWT secret. The secret is read
from a hex string or a ``jwt.hex`` file; it is never a default.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Optional, Union

from eth_utils import decode_hex, is_hex_address, to_canonical_address

from execution_evm.rpc.auth import JWTCredentialProvider

logger = logging.getLogger(__name__)

DEFAULT_ENGINE_URL = "http://127.0.0.1:8551"
DEFAULT_ETH_URL = "http://127.0.0.1:8545"
DEFAULT_RPC_HOST = "127.0.0.1"
DEFAULT_RPC_PORT = 40041

ZERO_HASH = b"\x00" * 32
ZERO_ADDRESS = b"\x00" * 20

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


class ConfigError(ValueError):
    pass


def parse_hash(value: Union[str, bytes], name: str = "hash") -> bytes:
    if isinstance(value, bytes):
        raw = value
    else:
        try:
            raw = decode_hex(value)
        except (ValueError, TypeError) as exc:
            raise ConfigError(f"{name} is not valid hex") from exc
    if len(raw) != 32:
        raise ConfigError(f"{name} must be 32 bytes")
    return raw


def parse_address(value: Union[str, bytes], name: str = "address") -> bytes:
    if isinstance(value, bytes):
        if len(value) != 20:
            raise ConfigError(f"{name} must be 20 bytes")
        return value
    if not is_hex_address(value):
        raise ConfigError(f"{name} is not a hex address")
    return to_canonical_address(value)


@dataclass
class ExecutionConfig:
    engine_url: str = DEFAULT_ENGINE_URL
    eth_url: str = DEFAULT_ETH_URL
    genesis_hash: bytes = field(default=ZERO_HASH)
    fee_recipient: bytes = field(default=ZERO_ADDRESS)
    jwt_secret: Optional[str] = None
    jwt_secret_file: Optional[str] = None
    timeout: float = 10.0
    rpc_host: str = DEFAULT_RPC_HOST
    rpc_port: int = DEFAULT_RPC_PORT
    log_level: str = "INFO"

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> ExecutionConfig:
        """Build from a JSON object using camelCase keys (snake_case accepted too)."""
        known = {f.name for f in fields(cls)}
        kwargs: dict[str, Any] = {}
        for key, value in data.items():
            name = _snake(key)
            if name not in known:
                raise ConfigError(f"unknown config key: {key}")
            kwargs[name] = value
        config = cls()
        return config.merge(**kwargs)

    @classmethod
    def load(cls, path: Union[str, Path]) -> ExecutionConfig:
        path = Path(path)
        try:
            with open(path) as f:
                data = json.load(f)
        except FileNotFoundError as exc:
            raise ConfigError(f"config file not found: {path}") from exc
        except json.JSONDecodeError as exc:
            raise ConfigError(f"config file {path} is not valid JSON: {exc}") from exc
        if not isinstance(data, dict):
            raise ConfigError(f"config file {path} must hold a JSON object")
        return cls.from_json(data)

    def merge(self, **overrides: Any) -> ExecutionConfig:
        """Return a copy with non-None overrides applied and validated."""
        values = {f.name: getattr(self, f.name) for f in fields(self)}
        for key, value in overrides.items():
            if value is not None:
                values[key] = value
        # a secret given one way replaces one loaded the other way
        if overrides.get("jwt_secret_file") is not None and overrides.get("jwt_secret") is None:
            values["jwt_secret"] = None
        if overrides.get("jwt_secret") is not None and overrides.get("jwt_secret_file") is None:
            values["jwt_secret_file"] = None

        values["genesis_hash"] = parse_hash(values["genesis_hash"], "genesis_hash")
        values["fee_recipient"] = parse_address(values["fee_recipient"], "fee_recipient")
        try:
            values["timeout"] = float(values["timeout"])
            values["rpc_port"] = int(values["rpc_port"])
        except (TypeError, ValueError) as exc:
            raise ConfigError(f"invalid numeric setting: {exc}") from exc
        if values["timeout"] <= 0:
            raise ConfigError("timeout must be positive")
        values["log_level"] = str(values["log_level"]).upper()
        if values["log_level"] not in LOG_LEVELS:
            raise ConfigError(f"log_level must be one of {', '.join(LOG_LEVELS)}")
        return type(self)(**values)

    def check_ready(self) -> None:
        """Refuse to start a service without a real genesis hash."""
        if self.genesis_hash == ZERO_HASH:
            raise ConfigError("genesis_hash is required")
        if self.fee_recipient == ZERO_ADDRESS:
            logger.warning("fee_recipient is the zero address; block fees will be burned")

    def credential_provider(self) -> JWTCredentialProvider:
        if self.jwt_secret:
            return JWTCredentialProvider.from_hex(self.jwt_secret)
        if self.jwt_secret_file:
            return JWTCredentialProvider.from_file(self.jwt_secret_file)
        raise ConfigError("a jwt secret (jwtSecret or jwtSecretFile) is required")


def _snake(key: str) -> str:
    out = []
    for ch in key:
        if ch.isupper():
            out.append("_")
            out.append(ch.lower())
        else:
            out.append(ch)
    return "".join(out)
