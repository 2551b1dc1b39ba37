"""Compact JWE envelopes exchanged with the browser credential API."""
from __future__ import annotations

import json
from typing import Any, Dict, Mapping

from Crypto.PublicKey import ECC
from jwcrypto import jwe, jwk
from jwcrypto.common import JWException

from core.errors import DecryptionFailed
from crypto.keys import as_jwk

DEFAULT_ALG = "ECDH-ES"
DEFAULT_ENC = "A256GCM"

def decrypt_compact(token: str, sk: ECC.EccKey) -> bytes:
    try:
        envelope = jwe.JWE()
        envelope.deserialize(token, key=as_jwk(sk))
    except (JWException, ValueError, TypeError) as exc:
        raise DecryptionFailed("envelope could not be decrypted with the reader key") from exc
    return envelope.payload

def encrypt_compact(
    plaintext: bytes,
    recipient: Mapping[str, Any],
    alg: str = DEFAULT_ALG,
    enc: str = DEFAULT_ENC,
) -> str:
    """Encrypt to a recipient's public JWK (holder side of the exchange)."""
    key = jwk.JWK(**{k: v for k, v in recipient.items() if k in ("kty", "crv", "x", "y", "kid")})
    protected: Dict[str, Any] = {"alg": alg, "enc": enc}
    if recipient.get("kid"):
        protected["kid"] = recipient["kid"]
    envelope = jwe.JWE(plaintext, protected=json.dumps(protected))
    envelope.add_recipient(key)
    return envelope.serialize(compact=True)
