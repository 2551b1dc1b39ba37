"""
Error taxonomy shared by the verifier and the issuer.

Every failure the components report is one of these. `kind` is the broad
category, `code` the specific reason, `oauth_error` the code the issuance
endpoints put on the wire. Components convert them into structured results
at their boundary; raw library faults never reach a caller.
"""
from __future__ import annotations

from typing import Any, Dict, Optional


class MdlKitError(Exception):
    kind = "MalformedInput"
    oauth_error = "invalid_request"
    status = 400
    default_detail = "request could not be processed"

    def __init__(self, detail: Optional[str] = None):
        self.detail = detail or self.default_detail
        super().__init__(self.detail)

    @property
    def code(self) -> str:
        return type(self).__name__

    def to_dict(self) -> Dict[str, Any]:
        return {"ok": False, "kind": self.kind, "error": self.code, "detail": self.detail}


# categories

class MalformedInput(MdlKitError):
    kind = "MalformedInput"


class CryptoFailure(MdlKitError):
    kind = "CryptoFailure"
    default_detail = "cryptographic check failed"


class TrustFailure(MdlKitError):
    kind = "TrustFailure"
    default_detail = "issuer is not trusted"


class RemoteUnavailable(MdlKitError):
    kind = "RemoteUnavailable"
    status = 503
    default_detail = "remote service unavailable"


class SessionFailure(MdlKitError):
    kind = "SessionFailure"
    oauth_error = "invalid_grant"


class FormatUnsupported(MdlKitError):
    kind = "FormatUnsupported"


class CredentialExpired(MdlKitError):
    kind = "CredentialExpired"
    default_detail = "credential expired"


# malformed input

class MalformedTranscript(MalformedInput):
    default_detail = "session transcript has an invalid structure"


class MissingPresentation(MalformedInput):
    default_detail = "no vp_token found in decrypted envelope"


class MissingNonce(MalformedInput):
    default_detail = "envelope carries no nonce"


class InvalidRequest(MalformedInput):
    oauth_error = "invalid_request"


# crypto

class DecryptionFailed(CryptoFailure):
    default_detail = "envelope could not be decrypted"


class InvalidSignature(CryptoFailure):
    default_detail = "signature does not verify"


class ProofRejected(CryptoFailure):
    default_detail = "presentation proof was rejected by the verifier"


# trust

class UnknownJurisdiction(TrustFailure):
    default_detail = "jurisdiction not present in the trust list"


class UntrustedIssuer(TrustFailure):
    default_detail = "issuer not accepted by the trust policy"


class TrustUnavailable(TrustFailure):
    status = 503
    default_detail = "trust list unavailable and no cached copy exists"


# remote

class VerifierUnavailable(RemoteUnavailable):
    default_detail = "proof verifier unreachable"


# issuance sessions

class InvalidGrant(SessionFailure):
    oauth_error = "invalid_grant"
    default_detail = "invalid or expired authorization code"


class InvalidToken(SessionFailure):
    oauth_error = "invalid_token"
    status = 401
    default_detail = "invalid or expired access token"


# formats

class UnsupportedGrant(FormatUnsupported):
    oauth_error = "unsupported_grant_type"
    default_detail = "only the authorization_code grant type is supported"


class UnsupportedFormat(FormatUnsupported):
    oauth_error = "unsupported_credential_format"
    default_detail = "only the vc+sd-jwt format is supported"


class InvalidProof(FormatUnsupported):
    oauth_error = "invalid_proof"
    default_detail = "only jwt proofs are supported"
