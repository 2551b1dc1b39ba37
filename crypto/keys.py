from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from Crypto.PublicKey import ECC
from jwcrypto import jwk
from jwcrypto.common import JWException

from core.errors import MalformedInput

logger = logging.getLogger(__name__)

CURVE = "P-256"
DEFAULT_KEY_DIR = Path(".keys")
PUBLIC_MEMBERS = ("kty", "crv", "x", "y")

def generate_keypair() -> ECC.EccKey:
    return ECC.generate(curve=CURVE)

def save_keypair(sk: ECC.EccKey, sk_path: Path) -> None:
    sk_path.parent.mkdir(parents=True, exist_ok=True)
    sk_path.write_text(sk.export_key(format='PEM'), encoding='utf-8')
    pk_path = sk_path.with_name(sk_path.name.replace("_sk", "_pk"))
    pk_path.write_text(sk.public_key().export_key(format='PEM'), encoding='utf-8')

def load_key(path: Path) -> ECC.EccKey:
    return ECC.import_key(path.read_text(encoding='utf-8'))

def load_or_create_keypair(
    name: str,
    key_dir: Path = DEFAULT_KEY_DIR,
    pem: Optional[str] = None,
) -> ECC.EccKey:
    """
    Key material for the reader (JWE decryption) or the issuer (ES256).
    An explicitly supplied PEM wins; otherwise the key is loaded from
    key_dir, or generated and persisted there.
    """
    if pem:
        return ECC.import_key(pem)

    sk_path = Path(key_dir) / f"{name}_sk.pem"
    if sk_path.exists():
        return load_key(sk_path)

    logger.info("Generating new %s key pair (%s)", name, CURVE)
    sk = generate_keypair()
    save_keypair(sk, sk_path)
    logger.warning(
        "%s key persisted to %s; local key files are not suitable for production, "
        "supply the key through configuration instead",
        name, sk_path,
    )
    return sk

def as_jwk(key: ECC.EccKey) -> jwk.JWK:
    """jwcrypto view of a pycryptodome key, private half included when present."""
    pem = key.export_key(format='PEM') if key.has_private() else key.public_key().export_key(format='PEM')
    return jwk.JWK.from_pem(pem.encode("ascii"))

def public_jwk(key: ECC.EccKey, **extra: Any) -> Dict[str, Any]:
    """Public half of a P-256 key as a JWK."""
    exported = as_jwk(key).export_public(as_dict=True)
    # from_pem stamps its own kid; callers choose theirs
    public = {k: exported[k] for k in PUBLIC_MEMBERS}
    public.update({k: v for k, v in extra.items() if v is not None})
    return public

def _import_jwk(data: Mapping[str, Any]) -> jwk.JWK:
    if data.get("kty") != "EC" or data.get("crv") != CURVE:
        raise MalformedInput("only P-256 EC keys are supported")
    members = {k: data[k] for k in (*PUBLIC_MEMBERS, "d") if k in data}
    try:
        return jwk.JWK(**members)
    except (JWException, TypeError, ValueError) as exc:
        raise MalformedInput("invalid EC JWK") from exc

def key_from_jwk(data: Mapping[str, Any]) -> ECC.EccKey:
    key = _import_jwk(data)
    try:
        pem = key.export_to_pem(private_key=key.has_private, password=None)
        return ECC.import_key(pem.decode("ascii"))
    except (JWException, TypeError, ValueError) as exc:
        raise MalformedInput("invalid EC JWK") from exc

def jwk_thumbprint(data: Mapping[str, Any]) -> str:
    """RFC 7638 thumbprint (SHA-256) over the required EC members."""
    return _import_jwk({k: data[k] for k in PUBLIC_MEMBERS if k in data}).thumbprint()
