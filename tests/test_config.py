"""Tests for settings, the error taxonomy and the verification ledger."""
from __future__ import annotations

import pytest
from pydantic import ValidationError

from core.config import Environment, Settings, VerificationMode
from core.errors import (
    DecryptionFailed,
    InvalidGrant,
    InvalidToken,
    MdlKitError,
    TrustUnavailable,
    UnsupportedFormat,
    VerifierUnavailable,
)
from verifier.ledger import VerificationLedger


class TestSettings:
    def test_defaults(self):
        settings = Settings(environment="testing")
        assert settings.verification_mode is VerificationMode.STRICT
        assert settings.allow_mock is False
        assert settings.accepted_jurisdiction_codes == ["CA", "NY", "FL"]
        assert settings.derived_vc_ttl == 86400
        assert settings.session_ttl == 600

    def test_jurisdictions_from_env(self, monkeypatch):
        monkeypatch.setenv("ACCEPTED_JURISDICTIONS", " ca, tx ,")
        assert Settings().accepted_jurisdiction_codes == ["CA", "TX"]

    def test_mock_mode_allowed_outside_production(self):
        settings = Settings(environment="development", verification_mode="allow_mock")
        assert settings.allow_mock is True

    def test_mock_mode_forbidden_in_production(self):
        with pytest.raises(ValidationError):
            Settings(environment=Environment.PRODUCTION, verification_mode=VerificationMode.ALLOW_MOCK)


class TestErrors:
    @pytest.mark.parametrize(
        "error,kind,oauth,status",
        [
            (DecryptionFailed, "CryptoFailure", "invalid_request", 400),
            (TrustUnavailable, "TrustFailure", "invalid_request", 503),
            (VerifierUnavailable, "RemoteUnavailable", "invalid_request", 503),
            (InvalidGrant, "SessionFailure", "invalid_grant", 400),
            (InvalidToken, "SessionFailure", "invalid_token", 401),
            (UnsupportedFormat, "FormatUnsupported", "unsupported_credential_format", 400),
        ],
    )
    def test_taxonomy(self, error, kind, oauth, status):
        exc = error()
        assert isinstance(exc, MdlKitError)
        assert exc.kind == kind
        assert exc.oauth_error == oauth
        assert exc.status == status

    def test_to_dict(self):
        assert InvalidGrant("code reused").to_dict() == {
            "ok": False,
            "kind": "SessionFailure",
            "error": "InvalidGrant",
            "detail": "code reused",
        }


class TestLedger:
    def test_record_and_expire(self, clock):
        ledger = VerificationLedger(ttl=60, clock=clock)
        ledger.record("s1", {"over21": True})
        assert ledger.get("s1") == {"over21": True}
        assert "s1" in ledger
        clock.advance(60)
        assert ledger.get("s1") is None
        assert "s1" not in ledger

    def test_returns_copy(self, clock):
        ledger = VerificationLedger(clock=clock)
        ledger.record("s1", {"over21": True})
        ledger.get("s1")["over21"] = False
        assert ledger.get("s1") == {"over21": True}
