"""
Authorization code -> access token -> credential flow (OID4VCI pre-issuance).

    Authorized --token--> TokenIssued --credential--> CredentialIssued

Every session expires `ttl` seconds after creation whatever state it is in.
Expiry is checked on every lookup, so an expired session that has not been
purged yet behaves exactly like an unknown one.
"""
from __future__ import annotations

import logging
import threading
import time
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Mapping, Optional

from core.errors import (
    InvalidGrant,
    InvalidProof,
    InvalidRequest,
    InvalidToken,
    MdlKitError,
    UnsupportedFormat,
    UnsupportedGrant,
)
from crypto.jws import verify_compact
from crypto.keys import key_from_jwk
from issuer.issue import FORMAT, DerivedCredentialIssuer
from verifier.ledger import VerificationLedger

logger = logging.getLogger(__name__)

SESSION_TTL = 10 * 60
C_NONCE_TTL = 300
GRANT_TYPE = "authorization_code"
PROOF_TYPE = "jwt"
DEFAULT_CLAIMS = {"over21": True, "notExpired": True}
MIRRORED_PREDICATES = ("over21", "notExpired")


class SessionState(str, Enum):
    AUTHORIZED = "authorized"
    TOKEN_ISSUED = "token_issued"
    CREDENTIAL_ISSUED = "credential_issued"


@dataclass
class IssuanceSession:
    auth_code: str
    holder_public_key: Dict[str, Any]
    verification_session_id: str
    created_at: float
    expires_at: float
    state: SessionState = SessionState.AUTHORIZED
    access_token: Optional[str] = None
    c_nonce: Optional[str] = None

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at


class SessionStore:
    """
    One table, two kinds of key: the authorization code and, once exchanged,
    the access token both point at the same IssuanceSession. What a key may
    be used for is decided by the session state, not by which key it is.
    """

    def __init__(self, ttl: int = SESSION_TTL, clock: Callable[[], float] = time.time):
        self.ttl = ttl
        self._clock = clock
        self._lock = threading.Lock()
        self._table: Dict[str, IssuanceSession] = {}

    def __len__(self) -> int:
        with self._lock:
            return len({id(s) for s in self._table.values()})

    def _live(self, key: str) -> Optional[IssuanceSession]:
        # caller holds the lock
        session = self._table.get(key)
        if session is None:
            return None
        if session.is_expired(self._clock()):
            self._drop(session)
            return None
        return session

    def _drop(self, session: IssuanceSession) -> None:
        self._table.pop(session.auth_code, None)
        if session.access_token:
            self._table.pop(session.access_token, None)

    def create(self, holder_public_key: Dict[str, Any], verification_session_id: str) -> IssuanceSession:
        now = self._clock()
        session = IssuanceSession(
            auth_code=str(uuid.uuid4()),
            holder_public_key=holder_public_key,
            verification_session_id=verification_session_id,
            created_at=now,
            expires_at=now + self.ttl,
        )
        with self._lock:
            self._table[session.auth_code] = session
        return session

    def exchange_code(self, code: str, access_token: str, c_nonce: str) -> Optional[IssuanceSession]:
        """Authorized -> TokenIssued. A code can be exchanged once."""
        with self._lock:
            session = self._live(code)
            if session is None or session.auth_code != code or session.state is not SessionState.AUTHORIZED:
                return None
            session.state = SessionState.TOKEN_ISSUED
            session.access_token = access_token
            session.c_nonce = c_nonce
            self._table[access_token] = session
            return session

    def by_token(self, access_token: str) -> Optional[IssuanceSession]:
        with self._lock:
            session = self._live(access_token)
            if session is None or session.access_token != access_token:
                return None
            if session.state is not SessionState.TOKEN_ISSUED:
                return None
            return session

    def finish(self, access_token: str) -> bool:
        """TokenIssued -> CredentialIssued; False if someone got there first."""
        with self._lock:
            session = self._live(access_token)
            if session is None or session.access_token != access_token:
                return False
            if session.state is not SessionState.TOKEN_ISSUED:
                return False
            session.state = SessionState.CREDENTIAL_ISSUED
            return True

    def remaining(self, session: IssuanceSession) -> int:
        return max(0, int(session.expires_at - self._clock()))

    def purge_expired(self) -> int:
        now = self._clock()
        with self._lock:
            expired = {id(s): s for s in self._table.values() if s.is_expired(now)}
            for session in expired.values():
                self._drop(session)
        if expired:
            logger.debug("Purged %d expired issuance sessions", len(expired))
        return len(expired)


class IssuanceSessionMachine:
    def __init__(
        self,
        issuer: DerivedCredentialIssuer,
        store: Optional[SessionStore] = None,
        ledger: Optional[VerificationLedger] = None,
        require_verified_session: bool = False,
        token_factory: Callable[[], str] = lambda: str(uuid.uuid4()),
    ):
        if require_verified_session and ledger is None:
            raise ValueError("require_verified_session needs a verification ledger")
        self.issuer = issuer
        self.store = store if store is not None else SessionStore()
        self.ledger = ledger
        self.require_verified_session = require_verified_session
        self._new_token = token_factory

    def authorize(self, verification_session_id: Any, holder_public_key: Any) -> Dict[str, Any]:
        if not verification_session_id or not isinstance(verification_session_id, str):
            raise InvalidRequest("Missing verificationSessionId or holderPublicKey")
        if not holder_public_key or not isinstance(holder_public_key, Mapping):
            raise InvalidRequest("Missing verificationSessionId or holderPublicKey")
        if self.require_verified_session and verification_session_id not in self.ledger:
            raise InvalidRequest("Unknown or expired verification session")

        session = self.store.create(dict(holder_public_key), verification_session_id)
        logger.info("Authorized issuance for verification session %s", verification_session_id)
        return {"authorization_code": session.auth_code, "expires_in": self.store.ttl}

    def token(self, code: Any, grant_type: Any) -> Dict[str, Any]:
        if grant_type != GRANT_TYPE:
            raise UnsupportedGrant()
        if not code or not isinstance(code, str):
            raise InvalidGrant()

        session = self.store.exchange_code(code, self._new_token(), self._new_token())
        if session is None:
            raise InvalidGrant()

        return {
            "access_token": session.access_token,
            "token_type": "bearer",
            "expires_in": self.store.remaining(session),
            "c_nonce": session.c_nonce,
            "c_nonce_expires_in": C_NONCE_TTL,
        }

    def credential(
        self,
        authorization: Optional[str],
        credential_format: Optional[str] = None,
        proof: Optional[Mapping[str, Any]] = None,
    ) -> Dict[str, Any]:
        if not authorization or not authorization.startswith("Bearer "):
            raise InvalidToken("Missing or invalid access token")
        access_token = authorization[len("Bearer "):].strip()

        session = self.store.by_token(access_token)
        if session is None:
            raise InvalidToken()

        if credential_format is not None and credential_format != FORMAT:
            raise UnsupportedFormat()
        if proof is not None:
            self._check_proof(proof, session)

        claims = self._claims_for(session)
        if not self.store.finish(access_token):
            raise InvalidToken()

        issued = self.issuer.issue(
            holder_public_key=session.holder_public_key,
            verification_session_id=session.verification_session_id,
            claims=claims,
        )
        return {
            "format": FORMAT,
            "credential": issued.sd_jwt,
            "c_nonce": self._new_token(),
            "c_nonce_expires_in": C_NONCE_TTL,
        }

    def _check_proof(self, proof: Mapping[str, Any], session: IssuanceSession) -> None:
        if not isinstance(proof, Mapping):
            raise InvalidProof()
        proof_type = proof.get("proof_type", proof.get("type"))
        if proof_type != PROOF_TYPE:
            raise InvalidProof()

        jwt = proof.get("jwt")
        if jwt is None:
            return
        if not isinstance(jwt, str):
            raise InvalidProof("proof jwt is not a string")
        # key-binding proof: signed by the holder key, echoing our c_nonce
        try:
            _, payload = verify_compact(jwt, key_from_jwk(session.holder_public_key))
        except MdlKitError as exc:
            raise InvalidProof("proof is not signed by the holder key") from exc
        if payload.get("nonce") != session.c_nonce:
            raise InvalidProof("proof does not carry the expected c_nonce")

    def _claims_for(self, session: IssuanceSession) -> Dict[str, Any]:
        if self.ledger is not None:
            predicates = self.ledger.get(session.verification_session_id)
            if predicates:
                mirrored = {
                    name: predicates[name]
                    for name in MIRRORED_PREDICATES
                    if isinstance(predicates.get(name), bool)
                }
                if mirrored:
                    return mirrored
        return dict(DEFAULT_CLAIMS)
