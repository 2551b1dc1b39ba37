"""Tests for derived SD-JWT VC issuance and verification."""
from __future__ import annotations

import pytest

from core.errors import MalformedInput
from crypto.jws import sign_compact
from crypto.keys import public_jwk
from issuer.issue import (
    FORMAT,
    SD_ALG,
    DerivedCredentialIssuer,
    create_disclosures,
    decode_disclosure,
    disclosure_digest,
    encode_disclosure,
    issuer_metadata,
    join_sd_jwt,
    split_sd_jwt,
    verify_credential,
)
from wallet.presentation import select_disclosures
from helpers import peek_payload

CLAIMS = {"over21": True, "notExpired": True}


@pytest.fixture
def issuer(issuer_key, clock):
    return DerivedCredentialIssuer(issuer_key, "http://issuer.test", clock=clock)


@pytest.fixture
def issued(issuer, holder_public_jwk):
    return issuer.issue(holder_public_jwk, "vs-1", CLAIMS)


class TestDisclosures:
    def test_encode_decode(self):
        disclosure = encode_disclosure("salt", "over21", True)
        assert decode_disclosure(disclosure) == ("salt", "over21", True)

    def test_digest_matches_sha256_of_ascii(self):
        # known vector: sha256("abc")
        assert disclosure_digest("abc") == "ungWv48Bz-pBQUDeXa4iI7ADYaOWF3qctBD_YfIAFa0"

    def test_fresh_salt_per_disclosure(self):
        first, _ = create_disclosures({"over21": True})
        second, _ = create_disclosures({"over21": True})
        assert first != second

    def test_one_digest_per_disclosure(self):
        disclosures, digests = create_disclosures(CLAIMS)
        assert len(disclosures) == len(digests) == 2
        assert digests == [disclosure_digest(d) for d in disclosures]

    @pytest.mark.parametrize("bad", ["!!!", "e30", "WyJhIl0"])
    def test_decode_rejects_garbage(self, bad):
        with pytest.raises(MalformedInput):
            decode_disclosure(bad)


class TestWireFormat:
    def test_trailing_separator(self, issued):
        assert issued.sd_jwt.endswith("~")
        jwt, disclosures = split_sd_jwt(issued.sd_jwt)
        assert jwt.count(".") == 2
        assert disclosures == issued.disclosures

    def test_missing_trailing_separator_rejected(self, issued):
        with pytest.raises(MalformedInput):
            split_sd_jwt(issued.sd_jwt[:-1])

    def test_join_without_disclosures(self):
        assert join_sd_jwt("a.b.c", []) == "a.b.c~"
        assert split_sd_jwt("a.b.c~") == ("a.b.c", [])


class TestIssue:
    def test_payload_shape(self, issued, holder_public_jwk):
        jwt, _ = split_sd_jwt(issued.sd_jwt)
        payload = peek_payload(jwt)
        assert payload["iss"] == "http://issuer.test"
        assert payload["exp"] - payload["iat"] == 86400
        assert payload["_sd_alg"] == SD_ALG
        assert len(payload["_sd"]) == 2
        assert payload["cnf"]["jwk"] == holder_public_jwk
        assert payload["derivedFrom"] == {"type": "mDL-verification", "sessionId": "vs-1"}
        assert issued.format == FORMAT

    def test_subject_is_holder_kid(self, issuer, holder_public_jwk):
        issued = issuer.issue({**holder_public_jwk, "kid": "holder-1"}, "vs-1", CLAIMS)
        payload = peek_payload(split_sd_jwt(issued.sd_jwt)[0])
        assert payload["sub"] == "holder-1"

    def test_public_jwk_carries_kid(self, issuer):
        jwk = issuer.public_jwk()
        assert jwk["kid"] == "issuer-key-1"
        assert jwk["alg"] == "ES256"


class TestVerify:
    def test_round_trip(self, issued, issuer_key, holder_public_jwk, clock):
        result = verify_credential(issued.sd_jwt, issuer_key.public_key(), now=clock())
        assert result.valid
        assert result.claims == CLAIMS
        assert result.holder == holder_public_jwk
        assert result.issuer == "http://issuer.test"

    def test_accepts_issuer_jwk(self, issued, issuer, clock):
        result = verify_credential(issued.sd_jwt, issuer.public_jwk(), now=clock())
        assert result.valid

    def test_subset_presentation(self, issued, issuer_key, clock):
        presented = select_disclosures(issued.sd_jwt, {"over21"})
        result = verify_credential(presented, issuer_key.public_key(), now=clock())
        assert result.valid
        assert result.claims == {"over21": True}

    def test_tampered_signature(self, issued, issuer_key, clock):
        jwt, disclosures = split_sd_jwt(issued.sd_jwt)
        header, payload, signature = jwt.split(".")
        flipped = ("A" if signature[0] != "A" else "B") + signature[1:]
        forged = join_sd_jwt(f"{header}.{payload}.{flipped}", disclosures)
        result = verify_credential(forged, issuer_key.public_key(), now=clock())
        assert not result.valid
        assert result.error == "InvalidSignature"
        assert result.kind == "CryptoFailure"

    def test_wrong_issuer_key(self, issued, holder_key, clock):
        result = verify_credential(issued.sd_jwt, holder_key.public_key(), now=clock())
        assert not result.valid
        assert result.error == "InvalidSignature"

    def test_expired(self, issued, issuer_key, clock):
        result = verify_credential(issued.sd_jwt, issuer_key.public_key(), now=clock() + 86401)
        assert not result.valid
        assert result.kind == "CredentialExpired"

    def test_valid_until_expiry(self, issued, issuer_key, clock):
        result = verify_credential(issued.sd_jwt, issuer_key.public_key(), now=clock() + 86400)
        assert result.valid

    def test_foreign_disclosure_not_revealed(self, issued, issuer_key, clock):
        jwt, disclosures = split_sd_jwt(issued.sd_jwt)
        foreign = encode_disclosure("salt", "over65", True)
        result = verify_credential(
            join_sd_jwt(jwt, [*disclosures, foreign]), issuer_key.public_key(), now=clock()
        )
        assert result.valid
        assert "over65" not in result.claims

    def test_duplicate_disclosure_rejected(self, issued, issuer_key, clock):
        jwt, disclosures = split_sd_jwt(issued.sd_jwt)
        result = verify_credential(
            join_sd_jwt(jwt, [disclosures[0], disclosures[0]]), issuer_key.public_key(), now=clock()
        )
        assert not result.valid
        assert result.kind == "MalformedInput"

    def test_sd_claim_must_be_array(self, issuer_key, clock):
        jwt = sign_compact({}, {"_sd": "not-a-list", "exp": clock() + 10}, issuer_key)
        result = verify_credential(join_sd_jwt(jwt, []), issuer_key.public_key(), now=clock())
        assert not result.valid
        assert result.kind == "MalformedInput"

    @pytest.mark.parametrize("exp", [None, "9999999999", True])
    def test_exp_must_be_numeric(self, issuer_key, clock, exp):
        payload = {"_sd": [], "_sd_alg": SD_ALG}
        if exp is not None:
            payload["exp"] = exp
        jwt = sign_compact({}, payload, issuer_key)
        result = verify_credential(join_sd_jwt(jwt, []), issuer_key.public_key(), now=clock())
        assert not result.valid
        assert result.kind == "MalformedInput"

    def test_non_ascii_token(self, issued, issuer_key, clock):
        jwt, disclosures = split_sd_jwt(issued.sd_jwt)
        header, _, signature = jwt.split(".")
        result = verify_credential(
            join_sd_jwt(f"{header}.\u00e9.{signature}", disclosures), issuer_key.public_key(), now=clock()
        )
        assert not result.valid
        assert result.kind == "MalformedInput"

    def test_not_an_sd_jwt(self, issuer_key):
        result = verify_credential("garbage", issuer_key.public_key())
        assert not result.valid
        assert result.kind == "MalformedInput"


def test_metadata_endpoints(issuer_key):
    jwk = public_jwk(issuer_key, kid="issuer-key-1")
    metadata = issuer_metadata("http://issuer.test/", jwk)
    assert metadata["credential_issuer"] == "http://issuer.test"
    assert metadata["credential_endpoint"] == "http://issuer.test/credential"
    assert metadata["token_endpoint"] == "http://issuer.test/token"
    assert metadata["jwks"] == {"keys": [jwk]}
    assert metadata["credentials_supported"][0]["format"] == FORMAT
