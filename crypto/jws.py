"""Compact JWS, ES256 only, over canonical JSON segments."""
from __future__ import annotations

import json
from typing import Any, Dict, Tuple

from Crypto.PublicKey import ECC
from jwcrypto import jws
from jwcrypto.common import JWException

from core.errors import InvalidSignature, MalformedInput
from crypto.canonical import canonicalize
from crypto.keys import as_jwk

ALG = "ES256"

def sign_compact(header: Dict[str, Any], payload: Dict[str, Any], sk: ECC.EccKey) -> str:
    header = {**header, "alg": ALG}
    token = jws.JWS(canonicalize(payload))
    token.add_signature(as_jwk(sk), alg=ALG, protected=canonicalize(header).decode("utf-8"))
    return token.serialize(compact=True)

def _deserialize(token: Any) -> jws.JWS:
    if not isinstance(token, str) or not token.isascii() or token.count(".") != 2:
        raise MalformedInput("not a compact JWS")
    parsed = jws.JWS()
    try:
        parsed.deserialize(token)
    except (JWException, ValueError, TypeError) as exc:
        raise MalformedInput("not a compact JWS") from exc
    return parsed

def _as_object(raw: Any, what: str) -> Dict[str, Any]:
    try:
        value = json.loads(raw)
    except (UnicodeDecodeError, ValueError) as exc:
        raise MalformedInput(f"JWS {what} is not JSON") from exc
    if not isinstance(value, dict):
        raise MalformedInput(f"JWS {what} is not a JSON object")
    return value

def verify_compact(token: str, pk: ECC.EccKey) -> Tuple[Dict[str, Any], Dict[str, Any]]:
    """Returns (header, payload); raises InvalidSignature on any signature problem."""
    parsed = _deserialize(token)
    try:
        header = parsed.jose_header
    except (JWException, ValueError, TypeError) as exc:
        raise MalformedInput("JWS header is not a JSON object") from exc
    if header.get("alg") != ALG:
        raise InvalidSignature(f"unsupported JWS algorithm {header.get('alg')!r}")

    try:
        parsed.verify(as_jwk(pk), alg=ALG)
    except (JWException, ValueError, TypeError) as exc:
        raise InvalidSignature("JWS signature does not verify") from exc

    return header, _as_object(parsed.payload, "payload")
