"""
SD-JWT VC issuance and verification.

Wire format:  <issuer-signed JWT>~<disclosure>~<disclosure>~...~
The trailing '~' is part of the format.
"""
from __future__ import annotations

import binascii
import json
import logging
import os
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple, Union

from Crypto.PublicKey import ECC

from core.errors import CredentialExpired, MalformedInput, MdlKitError
from crypto.canonical import canonicalize
from crypto.encoding import b64url_decode, b64url_encode
from crypto.hashing import sha256, sha256_b64url
from crypto.jws import sign_compact, verify_compact
from crypto.keys import key_from_jwk, public_jwk

logger = logging.getLogger(__name__)

SD_JWT_SEPARATOR = "~"
SD_ALG = "sha-256"
FORMAT = "vc+sd-jwt"
DERIVED_VCT = "https://example.com/derived-mdl-vc"
DEFAULT_TTL = 24 * 60 * 60
DEFAULT_KID = "issuer-key-1"

def random_salt(n_bytes: int = 16) -> str:
    return b64url_encode(os.urandom(n_bytes))

def encode_disclosure(salt: str, name: str, value: Any) -> str:
    return b64url_encode(canonicalize([salt, name, value]))

def decode_disclosure(disclosure: str) -> Tuple[str, str, Any]:
    try:
        decoded = json.loads(b64url_decode(disclosure))
    except (binascii.Error, UnicodeDecodeError, ValueError) as exc:
        raise MalformedInput("disclosure is not base64url JSON") from exc
    if not isinstance(decoded, list) or len(decoded) != 3 or not isinstance(decoded[1], str):
        raise MalformedInput("disclosure is not a [salt, name, value] array")
    salt, name, value = decoded
    return salt, name, value

def disclosure_digest(disclosure: str) -> str:
    return sha256_b64url(disclosure)

def create_disclosures(claims: Mapping[str, Any]) -> Tuple[List[str], List[str]]:
    """One disclosure per claim, fresh salt each; digests in the same order."""
    disclosures = []
    digests = []
    for name, value in claims.items():
        disclosure = encode_disclosure(random_salt(), name, value)
        disclosures.append(disclosure)
        digests.append(disclosure_digest(disclosure))
    return disclosures, digests

def split_sd_jwt(sd_jwt: str) -> Tuple[str, List[str]]:
    if not isinstance(sd_jwt, str):
        raise MalformedInput("not an SD-JWT")
    parts = sd_jwt.split(SD_JWT_SEPARATOR)
    if len(parts) < 2 or not parts[0]:
        raise MalformedInput("not an SD-JWT")
    if parts[-1] != "":
        raise MalformedInput("SD-JWT must end with '~'")
    return parts[0], parts[1:-1]

def join_sd_jwt(jwt: str, disclosures: List[str]) -> str:
    return SD_JWT_SEPARATOR.join([jwt, *disclosures, ""])

def holder_subject(holder_public_key: Mapping[str, Any]) -> str:
    kid = holder_public_key.get("kid")
    if isinstance(kid, str) and kid:
        return kid
    return sha256(canonicalize(dict(holder_public_key))).hex()[:16]


@dataclass
class IssuedCredential:
    sd_jwt : str
    disclosures : List[str]
    format : str = FORMAT


@dataclass
class CredentialVerification:
    valid: bool
    claims: Dict[str, Any] = field(default_factory=dict)
    holder: Optional[Dict[str, Any]] = None
    issuer: Optional[str] = None
    issued_at: Optional[int] = None
    expires_at: Optional[int] = None
    error: Optional[str] = None
    kind: Optional[str] = None
    reason: Optional[str] = None


class DerivedCredentialIssuer:
    def __init__(
        self,
        signing_key: ECC.EccKey,
        issuer_id: str,
        ttl: int = DEFAULT_TTL,
        vct: str = DERIVED_VCT,
        kid: str = DEFAULT_KID,
        clock: Callable[[], float] = time.time,
    ):
        self.signing_key = signing_key
        self.issuer_id = issuer_id
        self.ttl = ttl
        self.vct = vct
        self.kid = kid
        self._clock = clock

    def public_jwk(self) -> Dict[str, Any]:
        return public_jwk(self.signing_key, kid=self.kid, use="sig", alg="ES256")

    def make_payload(
        self,
        holder_public_key: Mapping[str, Any],
        verification_session_id: str,
        digests: List[str],
    ) -> Dict[str, Any]:
        now = int(self._clock())
        return {
            "iss": self.issuer_id,
            "sub": holder_subject(holder_public_key),
            "iat": now,
            "exp": now + self.ttl,
            "vct": self.vct,
            "_sd": digests,
            "_sd_alg": SD_ALG,
            "cnf": {"jwk": dict(holder_public_key)},
            "derivedFrom": {"type": "mDL-verification", "sessionId": verification_session_id},
        }

    def issue(
        self,
        holder_public_key: Mapping[str, Any],
        verification_session_id: str,
        claims: Mapping[str, Any],
    ) -> IssuedCredential:
        disclosures, digests = create_disclosures(claims)
        payload = self.make_payload(holder_public_key, verification_session_id, digests)
        header = {"typ": FORMAT, "kid": self.kid}
        jwt = sign_compact(header, payload, self.signing_key)
        logger.info("Issued %s with %d disclosures (exp=%s)", self.vct, len(disclosures), payload["exp"])
        return IssuedCredential(sd_jwt=join_sd_jwt(jwt, disclosures), disclosures=disclosures)


def _check_credential(
    sd_jwt: str,
    issuer_public_key: Union[ECC.EccKey, Mapping[str, Any]],
    now: float,
) -> CredentialVerification:
    jwt, disclosures = split_sd_jwt(sd_jwt)

    key = issuer_public_key if isinstance(issuer_public_key, ECC.EccKey) else key_from_jwk(issuer_public_key)
    _, payload = verify_compact(jwt, key)

    exp = payload.get("exp")
    if not isinstance(exp, (int, float)) or isinstance(exp, bool):
        raise MalformedInput("credential has no numeric exp")
    if exp < now:
        raise CredentialExpired()

    sd_digests = payload.get("_sd") or []
    if not isinstance(sd_digests, list):
        raise MalformedInput("_sd is not an array")
    signed = set(sd_digests)

    claims: Dict[str, Any] = {}
    seen = set()
    for disclosure in disclosures:
        _, name, value = decode_disclosure(disclosure)
        digest = disclosure_digest(disclosure)
        if digest in seen:
            raise MalformedInput("disclosure presented more than once")
        seen.add(digest)
        # digests missing from the envelope are not revealed
        if digest in signed:
            claims[name] = value

    cnf = payload.get("cnf")
    return CredentialVerification(
        valid=True,
        claims=claims,
        holder=cnf.get("jwk") if isinstance(cnf, dict) else None,
        issuer=payload.get("iss"),
        issued_at=payload.get("iat"),
        expires_at=exp,
    )


def verify_credential(
    sd_jwt: str,
    issuer_public_key: Union[ECC.EccKey, Mapping[str, Any]],
    now: Optional[float] = None,
) -> CredentialVerification:
    try:
        return _check_credential(sd_jwt, issuer_public_key, time.time() if now is None else now)
    except MdlKitError as exc:
        logger.info("Credential verification failed: %s", exc.code)
        return CredentialVerification(valid=False, error=exc.code, kind=exc.kind, reason=exc.detail)


def issuer_metadata(issuer_url: str, issuer_jwk: Dict[str, Any]) -> Dict[str, Any]:
    """OID4VCI discovery document."""
    issuer_url = issuer_url.rstrip("/")
    return {
        "credential_issuer": issuer_url,
        "credential_endpoint": f"{issuer_url}/credential",
        "token_endpoint": f"{issuer_url}/token",
        "authorization_endpoint": f"{issuer_url}/authorize",
        "jwks": {"keys": [issuer_jwk]},
        "credentials_supported": [
            {
                "format": FORMAT,
                "id": "derived-mdl-vc",
                "vct": DERIVED_VCT,
                "cryptographic_binding_methods_supported": ["jwk"],
                "cryptographic_suites_supported": ["ES256"],
                "display": [
                    {
                        "name": "Derived mDL Credential",
                        "locale": "en-US",
                        "description": "Short-lived derived credential from mDL verification",
                    }
                ],
                "claims": {
                    "over21": {"display": [{"name": "Over 21", "locale": "en-US"}]},
                    "notExpired": {"display": [{"name": "Not Expired", "locale": "en-US"}]},
                },
            }
        ],
    }
