from __future__ import annotations

import json
import time
from typing import Any, Dict, Iterable, Mapping, Optional

from Crypto.PublicKey import ECC

from crypto.jwe import encrypt_compact
from crypto.jws import sign_compact
from issuer.issue import decode_disclosure, join_sd_jwt, split_sd_jwt
from wallet.keygen import holder_jwk

PROOF_TYP = "openid4vci-proof+jwt"

def select_disclosures(sd_jwt: str, keep: Iterable[str]) -> str:
    """
    Selective disclosure: drop every disclosure whose claim name is not in
    `keep`. The issuer signature still covers what remains.
    """
    keep = set(keep)
    jwt, disclosures = split_sd_jwt(sd_jwt)
    kept = [d for d in disclosures if decode_disclosure(d)[1] in keep]
    return join_sd_jwt(jwt, kept)

def build_proof_jwt(sk: ECC.EccKey, c_nonce: str, audience: str, now: Optional[float] = None) -> str:
    """Key-binding proof for the credential request."""
    header = {"typ": PROOF_TYP, "jwk": holder_jwk(sk)}
    payload = {
        "aud": audience,
        "iat": int(time.time() if now is None else now),
        "nonce": c_nonce,
    }
    return sign_compact(header, payload, sk)

def build_dc_api_response(
    vp_token: Any,
    reader_jwk: Mapping[str, Any],
    nonce: Optional[str] = None,
    audience: Optional[str] = None,
    response_uri: Optional[str] = None,
) -> str:
    """Encrypt a vp_token to the reader key the way a wallet answers a DC-API request."""
    envelope: Dict[str, Any] = {"vp_token": vp_token}
    if nonce is not None:
        envelope["nonce"] = nonce
    if audience is not None:
        envelope["aud"] = audience
    if response_uri is not None:
        envelope["response_uri"] = response_uri
    return encrypt_compact(json.dumps(envelope).encode("utf-8"), reader_jwk)
