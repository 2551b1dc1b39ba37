"""
Core verification logic for mDL presentations.

Decrypts the DC-API response, binds it to the session transcript, hands the
proof to the remote verifier and reduces the answer to boolean predicates.
"""
from __future__ import annotations

import json
import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Mapping, Optional, Tuple, Union

from Crypto.PublicKey import ECC

from core.config import Settings, VerificationMode
from core.errors import (
    MalformedInput,
    MdlKitError,
    MissingNonce,
    MissingPresentation,
    ProofRejected,
    TrustUnavailable,
    UntrustedIssuer,
    VerifierUnavailable,
)
from crypto.jwe import decrypt_compact
from trust.iaca import RootCertificateLoader, verify_against_root
from trust.pinning import jurisdiction_of
from trust.trust_list import TrustStore
from verifier.ledger import VerificationLedger
from verifier.remote import RemoteVerifierClient, mock_verifier_result
from verifier.session_transcript import build_session_transcript, require_valid_transcript

logger = logging.getLogger(__name__)

AGE_OVER_21 = "org.iso.18013.5.1.age_over_21"
AGE_OVER_18 = "org.iso.18013.5.1.age_over_18"
NOT_EXPIRED = "org.iso.18013.5.1.not_expired"

Predicates = Dict[str, Union[bool, str]]


@dataclass
class VerificationResult:
    valid: bool
    predicates: Predicates = field(default_factory=dict)
    issuer: Optional[str] = None
    session_id: Optional[str] = None
    error: Optional[str] = None
    kind: Optional[str] = None
    reason: Optional[str] = None
    mock: bool = False
    trust_stale: bool = False

    @classmethod
    def failure(cls, exc: MdlKitError) -> "VerificationResult":
        return cls(valid=False, error=exc.code, kind=exc.kind, reason=exc.detail)

    def to_dict(self) -> Dict[str, Any]:
        if not self.valid:
            return {"valid": False, "error": self.error, "kind": self.kind, "reason": self.reason}
        return {
            "valid": True,
            "predicates": dict(self.predicates),
            "issuer": self.issuer,
            "sessionId": self.session_id,
            "mock": self.mock,
            "trustStale": self.trust_stale,
        }


def extract_vp_token(envelope: Mapping[str, Any]) -> Any:
    """vp_token directly, nested under a credential id (usually 'mdl'), or the first entry."""
    vp_token = envelope.get("vp_token")
    if isinstance(vp_token, Mapping):
        if vp_token.get("mdl"):
            return vp_token["mdl"]
        return next((v for v in vp_token.values() if v), None)
    return vp_token or None


def extract_predicates(remote_result: Mapping[str, Any]) -> Predicates:
    """
    Data minimization. Only boolean outcomes survive, plus the issuer
    jurisdiction code and a notExpired flag. Ages, dates and names are dropped.
    """
    raw = remote_result.get("predicates")
    if not isinstance(raw, Mapping):
        raw = {}

    predicates: Predicates = {}
    for key, value in raw.items():
        if isinstance(value, bool):
            predicates[str(key)] = value

    if isinstance(raw.get(AGE_OVER_21), bool):
        predicates["over21"] = raw[AGE_OVER_21]
    if isinstance(raw.get(AGE_OVER_18), bool):
        predicates["over18"] = raw[AGE_OVER_18]

    issuer = remote_result.get("issuer")
    if isinstance(issuer, str) and issuer:
        predicates["issuerJurisdiction"] = jurisdiction_of(issuer)

    predicates["notExpired"] = raw.get(NOT_EXPIRED) is not False and raw.get("notExpired") is not False
    return predicates


class PresentationVerifier:
    def __init__(
        self,
        reader_key: ECC.EccKey,
        remote: RemoteVerifierClient,
        trust_store: Optional[TrustStore] = None,
        root_loader: Optional[RootCertificateLoader] = None,
        mode: VerificationMode = VerificationMode.STRICT,
        default_audience: str = "https://verifier.example.com",
        ledger: Optional[VerificationLedger] = None,
        id_factory: Callable[[], str] = lambda: str(uuid.uuid4()),
    ):
        self.reader_key = reader_key
        self.remote = remote
        self.trust_store = trust_store
        self.root_loader = root_loader
        self.mode = mode
        self.default_audience = default_audience
        self.ledger = ledger
        self._new_id = id_factory

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        reader_key: ECC.EccKey,
        ledger: Optional[VerificationLedger] = None,
    ) -> "PresentationVerifier":
        return cls(
            reader_key=reader_key,
            remote=RemoteVerifierClient(settings.verifier_url, timeout=settings.verifier_timeout),
            trust_store=TrustStore.from_settings(settings),
            root_loader=RootCertificateLoader(
                settings.root_cert_urls, settings.trust_cache_dir, timeout=settings.trust_timeout
            ),
            mode=settings.verification_mode,
            default_audience=settings.default_audience,
            ledger=ledger,
        )

    async def verify(self, encrypted_envelope: str) -> VerificationResult:
        """Never raises; every failure comes back as valid=False with a reason."""
        try:
            result = await self._verify(encrypted_envelope)
        except MdlKitError as exc:
            logger.info("Presentation rejected: %s (%s)", exc.code, exc.kind)
            return VerificationResult.failure(exc)
        except Exception:
            logger.exception("Unexpected presentation verification fault")
            return VerificationResult(valid=False, error="InternalError", kind="InternalError",
                                      reason="verification failed")

        if self.ledger is not None:
            self.ledger.record(result.session_id, result.predicates)
        return result

    async def _verify(self, encrypted_envelope: str) -> VerificationResult:
        # 1. decrypt
        envelope = self._decrypt(encrypted_envelope)

        # 2. vp_token
        vp_token = extract_vp_token(envelope)
        if vp_token is None:
            raise MissingPresentation()

        # 3. session transcript
        transcript = require_valid_transcript(build_session_transcript(
            self._nonce(envelope),
            self._audience(envelope),
            envelope.get("response_uri"),
        ))

        # 4. remote proof verification
        remote_result, mock = await self._remote_verify(vp_token, transcript)
        if remote_result.get("valid") is not True:
            raise ProofRejected()

        # 5. issuer trust
        trust_stale = await self._check_issuer(remote_result, mock)

        # 6. minimize
        issuer = remote_result.get("issuer")
        return VerificationResult(
            valid=True,
            predicates=extract_predicates(remote_result),
            issuer=issuer if isinstance(issuer, str) else None,
            session_id=self._new_id(),
            mock=mock,
            trust_stale=trust_stale,
        )

    def _decrypt(self, encrypted_envelope: str) -> Dict[str, Any]:
        if not isinstance(encrypted_envelope, str) or not encrypted_envelope:
            raise MalformedInput("missing encrypted response")
        plaintext = decrypt_compact(encrypted_envelope, self.reader_key)
        try:
            envelope = json.loads(plaintext)
        except (UnicodeDecodeError, ValueError) as exc:
            raise MalformedInput("decrypted envelope is not JSON") from exc
        if not isinstance(envelope, dict):
            raise MalformedInput("decrypted envelope is not a JSON object")
        return envelope

    def _nonce(self, envelope: Mapping[str, Any]) -> str:
        nonce = envelope.get("nonce")
        if isinstance(nonce, str) and nonce:
            return nonce
        if self.mode is VerificationMode.STRICT:
            raise MissingNonce()
        logger.warning("Envelope has no nonce; generating one (replay protection is weakened)")
        return str(uuid.uuid4())

    def _audience(self, envelope: Mapping[str, Any]) -> str:
        aud = envelope.get("aud")
        if isinstance(aud, list):
            aud = aud[0] if aud else None
        if isinstance(aud, str) and aud:
            return aud
        return self.default_audience

    async def _remote_verify(self, vp_token: Any, transcript: list) -> Tuple[Dict[str, Any], bool]:
        try:
            return await self.remote.verify(vp_token, transcript), False
        except VerifierUnavailable:
            if self.mode is not VerificationMode.ALLOW_MOCK:
                raise
            logger.warning("Proof verifier unavailable - returning mock verification result")
            return mock_verifier_result(), True

    async def _check_issuer(self, remote_result: Mapping[str, Any], mock: bool) -> bool:
        """Returns whether the decision was made on a stale trust list."""
        if self.trust_store is None:
            return False

        issuer = remote_result.get("issuer")
        if not isinstance(issuer, str) or not issuer:
            raise UntrustedIssuer("verifier result does not name an issuer")

        code = jurisdiction_of(issuer)
        stale = False
        kid = remote_result.get("kid")
        if isinstance(kid, str) and kid:
            decision = await self.trust_store.verify_issuer(issuer, kid)
            if not decision.accepted:
                if decision.code == "TrustUnavailable":
                    raise TrustUnavailable(decision.reason)
                raise UntrustedIssuer(decision.reason)
            stale = decision.stale
        elif not self.trust_store.is_accepted(code):
            raise UntrustedIssuer(f"Jurisdiction {code} not in accepted list")

        cert_pem = remote_result.get("issuerCertificate")
        if self.root_loader is not None and isinstance(cert_pem, str) and cert_pem and not mock:
            root = await self.root_loader.get_root(code)
            if root is None:
                raise UntrustedIssuer(f"no IACA root available for {code}")
            decision = verify_against_root(cert_pem, root, self.root_loader.now())
            if not decision.accepted:
                raise UntrustedIssuer(decision.reason)

        return stale
