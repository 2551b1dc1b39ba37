"""Tests for IACA root loading and document signer checks."""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from unittest.mock import Mock

import pytest
import requests
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import NameOID

from trust.iaca import RootCertificateLoader, parse_root, verify_against_root
from helpers import FakeClock, FakeResponse

NOW = datetime(2026, 1, 1, tzinfo=timezone.utc)


def _name(common_name: str) -> x509.Name:
    return x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)])


def _certificate(subject, issuer, public_key, signing_key, not_before, not_after, ca=False):
    builder = (
        x509.CertificateBuilder()
        .subject_name(_name(subject))
        .issuer_name(_name(issuer))
        .public_key(public_key)
        .serial_number(x509.random_serial_number())
        .not_valid_before(not_before)
        .not_valid_after(not_after)
        .add_extension(x509.BasicConstraints(ca=ca, path_length=None), critical=True)
    )
    cert = builder.sign(signing_key, hashes.SHA256())
    return cert.public_bytes(serialization.Encoding.PEM).decode("ascii")


@pytest.fixture(scope="module")
def root_key():
    return ec.generate_private_key(ec.SECP256R1())


@pytest.fixture(scope="module")
def root_pem(root_key):
    return _certificate(
        "CA IACA Root", "CA IACA Root", root_key.public_key(), root_key,
        NOW - timedelta(days=365), NOW + timedelta(days=3650), ca=True,
    )


def _signer_pem(signing_key, not_after=NOW + timedelta(days=365)):
    leaf_key = ec.generate_private_key(ec.SECP256R1())
    return _certificate(
        "CA Document Signer", "CA IACA Root", leaf_key.public_key(), signing_key,
        NOW - timedelta(days=30), not_after,
    )


class TestVerifyAgainstRoot:
    def test_issued_by_root(self, root_key, root_pem):
        root = parse_root(root_pem, "CA")
        assert root.subject == "CN=CA IACA Root"
        assert verify_against_root(_signer_pem(root_key), root, NOW).accepted

    def test_issued_by_other_key(self, root_pem):
        rogue = ec.generate_private_key(ec.SECP256R1())
        decision = verify_against_root(_signer_pem(rogue), parse_root(root_pem, "CA"), NOW)
        assert not decision.accepted
        assert decision.code == "UntrustedIssuer"

    def test_expired_signer(self, root_key, root_pem):
        pem = _signer_pem(root_key, not_after=NOW - timedelta(days=1))
        assert not verify_against_root(pem, parse_root(root_pem, "CA"), NOW).accepted

    def test_expired_root(self, root_key, root_pem):
        later = NOW + timedelta(days=4000)
        assert not verify_against_root(_signer_pem(root_key), parse_root(root_pem, "CA"), later).accepted

    def test_not_pem(self, root_pem):
        decision = verify_against_root("garbage", parse_root(root_pem, "CA"), NOW)
        assert not decision.accepted


class TestLoader:
    @pytest.fixture
    def http(self, root_pem):
        session = Mock()
        session.get.return_value = FakeResponse(200, text=root_pem)
        return session

    @pytest.mark.asyncio
    async def test_downloads_and_caches(self, tmp_path, http):
        loader = RootCertificateLoader({"ca": "https://dmv.example/root.pem"}, tmp_path, http=http)
        root = await loader.get_root("ca")
        assert root.jurisdiction == "CA"
        assert (tmp_path / "ca-iaca-root.pem").exists()

    @pytest.mark.asyncio
    async def test_falls_back_to_cache(self, tmp_path, http):
        loader = RootCertificateLoader({"CA": "https://dmv.example/root.pem"}, tmp_path, http=http)
        await loader.get_root("CA")
        http.get.side_effect = requests.ConnectionError("down")
        root = await loader.get_root("CA")
        assert root is not None
        assert root.subject == "CN=CA IACA Root"

    @pytest.mark.asyncio
    async def test_unconfigured_uses_cache(self, tmp_path, root_pem):
        (tmp_path / "ny-iaca-root.pem").write_text(root_pem, encoding="utf-8")
        loader = RootCertificateLoader({}, tmp_path, http=Mock())
        assert (await loader.get_root("NY")) is not None

    @pytest.mark.asyncio
    async def test_nothing_available(self, tmp_path):
        http = Mock()
        http.get.side_effect = requests.ConnectionError("down")
        loader = RootCertificateLoader({"CA": "https://dmv.example/root.pem"}, tmp_path, http=http)
        assert await loader.get_root("CA") is None

    @pytest.mark.asyncio
    async def test_invalid_pem_is_untrusted(self, tmp_path):
        http = Mock()
        http.get.return_value = FakeResponse(200, text="not a certificate")
        loader = RootCertificateLoader({"CA": "https://dmv.example/root.pem"}, tmp_path, http=http)
        assert await loader.get_root("CA") is None

    def test_now_follows_clock(self, tmp_path):
        loader = RootCertificateLoader({}, tmp_path, clock=FakeClock(NOW.timestamp()))
        assert loader.now() == NOW
