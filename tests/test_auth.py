"""
Tests for engine JWT issuance and verification.
"""

import base64
import hashlib
import hmac
import json

import pytest

from execution_evm.errors import CredentialError
from execution_evm.rpc.auth import (
    MAX_IAT_SKEW,
    TOKEN_VALIDITY,
    Credential,
    JWTCredentialProvider,
    extract_bearer_token,
    sign_jwt,
    verify_jwt,
)

from tests.fixtures import JWT_SECRET, JWT_SECRET_HEX

NOW = 1_700_000_000


def _decode_segment(segment: str) -> dict:
    padding = "=" * (-len(segment) % 4)
    return json.loads(base64.urlsafe_b64decode(segment + padding))


# ===================================================================
# Issuance
# ===================================================================

class TestIssue:
    def setup_method(self):
        self.provider = JWTCredentialProvider(JWT_SECRET, clock=lambda: NOW)

    def test_token_shape(self):
        cred = self.provider.issue()
        header, claims, sig = cred.token.split(".")
        assert _decode_segment(header) == {"alg": "HS256", "typ": "JWT"}
        assert _decode_segment(claims) == {"iat": NOW, "exp": NOW + TOKEN_VALIDITY}
        assert sig and "=" not in sig

    def test_credential_times(self):
        cred = self.provider.issue()
        assert cred.issued_at == NOW
        assert cred.expires_at == NOW + TOKEN_VALIDITY

    def test_header_value(self):
        cred = Credential(token="abc.def.ghi", issued_at=0, expires_at=1)
        assert cred.header_value() == "Bearer abc.def.ghi"

    def test_custom_validity(self):
        provider = JWTCredentialProvider(JWT_SECRET, validity=30, clock=lambda: NOW)
        assert provider.issue().expires_at == NOW + 30

    def test_issued_token_verifies(self):
        cred = self.provider.issue()
        assert verify_jwt(cred.token, JWT_SECRET, now=NOW)

    def test_reissue_follows_clock(self):
        ticks = iter([NOW, NOW + 120])
        provider = JWTCredentialProvider(JWT_SECRET, clock=lambda: next(ticks))
        first = provider.issue()
        second = provider.issue()
        assert second.issued_at - first.issued_at == 120
        assert first.token != second.token

    def test_secret_property(self):
        assert self.provider.secret == JWT_SECRET

    def test_empty_secret_rejected(self):
        with pytest.raises(CredentialError):
            JWTCredentialProvider(b"")

    def test_non_bytes_secret_rejected(self):
        with pytest.raises(CredentialError):
            JWTCredentialProvider("not-bytes")


# ===================================================================
# Secret loading
# ===================================================================

class TestSecretLoading:
    def test_from_hex_with_prefix(self):
        assert JWTCredentialProvider.from_hex(JWT_SECRET_HEX).secret == JWT_SECRET

    def test_from_hex_without_prefix(self):
        assert JWTCredentialProvider.from_hex(JWT_SECRET.hex()).secret == JWT_SECRET

    def test_from_hex_strips_whitespace(self):
        assert JWTCredentialProvider.from_hex(f"  {JWT_SECRET_HEX}\n").secret == JWT_SECRET

    def test_from_hex_wrong_length(self):
        with pytest.raises(CredentialError, match="32 bytes"):
            JWTCredentialProvider.from_hex("0x" + "ab" * 16)

    def test_from_hex_invalid(self):
        with pytest.raises(CredentialError, match="not valid hex"):
            JWTCredentialProvider.from_hex("0xzz")

    def test_from_file(self, tmp_path):
        path = tmp_path / "jwt.hex"
        path.write_text(JWT_SECRET_HEX + "\n")
        assert JWTCredentialProvider.from_file(path).secret == JWT_SECRET

    def test_from_file_passes_kwargs(self, tmp_path):
        path = tmp_path / "jwt.hex"
        path.write_text(JWT_SECRET_HEX)
        provider = JWTCredentialProvider.from_file(str(path), clock=lambda: NOW)
        assert provider.issue().issued_at == NOW

    def test_from_missing_file(self, tmp_path):
        with pytest.raises(CredentialError, match="cannot read"):
            JWTCredentialProvider.from_file(tmp_path / "missing.hex")


# ===================================================================
# Verification
# ===================================================================

class TestVerify:
    def setup_method(self):
        self.token = sign_jwt({"iat": NOW, "exp": NOW + 60}, JWT_SECRET)

    def test_valid(self):
        assert verify_jwt(self.token, JWT_SECRET, now=NOW)

    def test_wrong_secret(self):
        assert not verify_jwt(self.token, b"\x00" * 32, now=NOW)

    def test_iat_skew_boundary(self):
        assert verify_jwt(self.token, JWT_SECRET, now=NOW - MAX_IAT_SKEW)
        assert not verify_jwt(self.token, JWT_SECRET, now=NOW - MAX_IAT_SKEW - 1)

    def test_expired(self):
        token = sign_jwt({"iat": NOW, "exp": NOW - 1}, JWT_SECRET)
        assert not verify_jwt(token, JWT_SECRET, now=NOW)

    def test_exp_optional(self):
        token = sign_jwt({"iat": NOW}, JWT_SECRET)
        assert verify_jwt(token, JWT_SECRET, now=NOW)

    def test_missing_iat(self):
        token = sign_jwt({"exp": NOW + 60}, JWT_SECRET)
        assert not verify_jwt(token, JWT_SECRET, now=NOW)

    def test_tampered_claims(self):
        header, _, sig = self.token.split(".")
        forged = base64.urlsafe_b64encode(b'{"iat":1}').rstrip(b"=").decode()
        assert not verify_jwt(f"{header}.{forged}.{sig}", JWT_SECRET, now=NOW)

    def test_wrong_algorithm(self):
        header = base64.urlsafe_b64encode(b'{"alg":"none"}').rstrip(b"=").decode()
        _, claims, _ = self.token.split(".")
        sig = hmac.new(JWT_SECRET, f"{header}.{claims}".encode(), hashlib.sha256).digest()
        encoded_sig = base64.urlsafe_b64encode(sig).rstrip(b"=").decode()
        assert not verify_jwt(f"{header}.{claims}.{encoded_sig}", JWT_SECRET, now=NOW)

    def test_garbage(self):
        assert not verify_jwt("not-a-jwt", JWT_SECRET)
        assert not verify_jwt("a.b.c", JWT_SECRET)


class TestBearerHeader:
    def test_extract(self):
        assert extract_bearer_token("Bearer abc") == "abc"
        assert extract_bearer_token("bearer  abc ") == "abc"

    def test_missing(self):
        assert extract_bearer_token(None) is None

    def test_wrong_scheme(self):
        assert extract_bearer_token("Basic abc") is None
        assert extract_bearer_token("Bearer") is None
