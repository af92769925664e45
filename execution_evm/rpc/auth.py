"""Engine API JWT (HS256) issuance and verification."""

from __future__ import annotations

import base64
import hashlib
import hmac
import json
import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional, Union

from execution_evm.errors import CredentialError

logger = logging.getLogger(__name__)

TOKEN_VALIDITY = 3600
SECRET_SIZE = 32
# Engines reject tokens whose iat is further than this from their clock.
MAX_IAT_SKEW = 60

_HEADER = {"alg": "HS256", "typ": "JWT"}


@dataclass(frozen=True)
class Credential:
    token: str
    issued_at: int
    expires_at: int

    def header_value(self) -> str:
        return f"Bearer {self.token}"


class JWTCredentialProvider:
    """Issues short-lived HS256 bearer tokens bound to a shared secret."""

    def __init__(
        self,
        secret: bytes,
        validity: int = TOKEN_VALIDITY,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if not isinstance(secret, (bytes, bytearray)) or len(secret) == 0:
            raise CredentialError("jwt secret must be non-empty bytes")
        self._secret = bytes(secret)
        self._validity = validity
        self._clock = clock

    @classmethod
    def from_hex(cls, hex_secret: str, **kwargs) -> JWTCredentialProvider:
        """Decode a hex secret as written to ``jwt.hex`` by geth/reth."""
        value = hex_secret.strip()
        if value.startswith(("0x", "0X")):
            value = value[2:]
        try:
            secret = bytes.fromhex(value)
        except ValueError as exc:
            raise CredentialError("jwt secret is not valid hex") from exc
        if len(secret) != SECRET_SIZE:
            raise CredentialError(f"jwt secret must be {SECRET_SIZE} bytes, got {len(secret)}")
        return cls(secret, **kwargs)

    @classmethod
    def from_file(cls, path: Union[str, Path], **kwargs) -> JWTCredentialProvider:
        try:
            text = Path(path).read_text()
        except OSError as exc:
            raise CredentialError(f"cannot read jwt secret file {path}: {exc}") from exc
        return cls.from_hex(text, **kwargs)

    @property
    def secret(self) -> bytes:
        return self._secret

    def issue(self) -> Credential:
        now = int(self._clock())
        claims = {"iat": now, "exp": now + self._validity}
        try:
            token = sign_jwt(claims, self._secret)
        except (TypeError, ValueError) as exc:
            raise CredentialError(f"signing jwt failed: {exc}") from exc
        return Credential(token=token, issued_at=now, expires_at=now + self._validity)


def _b64url_encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode()


def _b64url_decode(data: str) -> bytes:
    padding = "=" * (-len(data) % 4)
    return base64.urlsafe_b64decode(data + padding)


def _json_segment(obj: dict) -> str:
    return _b64url_encode(json.dumps(obj, separators=(",", ":"), sort_keys=True).encode())


def sign_jwt(claims: dict, secret: bytes) -> str:
    signing_input = f"{_json_segment(_HEADER)}.{_json_segment(claims)}"
    sig = hmac.new(secret, signing_input.encode(), hashlib.sha256).digest()
    return f"{signing_input}.{_b64url_encode(sig)}"


def verify_jwt(token: str, secret: bytes, max_skew: int = MAX_IAT_SKEW, now: Optional[int] = None) -> bool:
    try:
        parts = token.split(".")
        if len(parts) != 3:
            return False
        header_raw, payload_raw, sig_raw = parts
        signing_input = f"{header_raw}.{payload_raw}".encode()

        expected_sig = hmac.new(secret, signing_input, hashlib.sha256).digest()
        got_sig = _b64url_decode(sig_raw)
        if not hmac.compare_digest(expected_sig, got_sig):
            return False

        header = json.loads(_b64url_decode(header_raw).decode())
        if header.get("alg") != "HS256":
            return False

        payload = json.loads(_b64url_decode(payload_raw).decode())
        iat = payload.get("iat")
        if not isinstance(iat, int):
            return False

        if now is None:
            now = int(time.time())
        if abs(now - iat) > max_skew:
            return False

        exp = payload.get("exp")
        if exp is not None and (not isinstance(exp, int) or exp < now):
            return False

        return True
    except (json.JSONDecodeError, ValueError, TypeError, KeyError, UnicodeDecodeError):
        logger.debug("rejecting undecodable jwt")
        return False


def extract_bearer_token(auth_header: Optional[str]) -> Optional[str]:
    if auth_header is None:
        return None
    parts = auth_header.split(" ", 1)
    if len(parts) != 2 or parts[0].lower() != "bearer":
        return None
    return parts[1].strip()
