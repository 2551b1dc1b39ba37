from pathlib import Path
from typing import Any, Dict

from Crypto.PublicKey import ECC

from crypto.keys import generate_keypair, jwk_thumbprint, load_key, public_jwk, save_keypair

WALLET_DIR = Path("wallet_data")
SK_NAME = "holder_sk.pem"

def generate_wallet(wallet_dir: Path = WALLET_DIR) -> ECC.EccKey:
    """Holder key pair (P-256). The credential is bound to its public half."""
    sk = generate_keypair()
    save_keypair(sk, Path(wallet_dir) / SK_NAME)
    return sk

def load_wallet_sk(wallet_dir: Path = WALLET_DIR) -> ECC.EccKey:
    return load_key(Path(wallet_dir) / SK_NAME)

def load_or_generate_wallet(wallet_dir: Path = WALLET_DIR) -> ECC.EccKey:
    if (Path(wallet_dir) / SK_NAME).exists():
        return load_wallet_sk(wallet_dir)
    return generate_wallet(wallet_dir)

def holder_jwk(sk: ECC.EccKey) -> Dict[str, Any]:
    """Public JWK with its RFC 7638 thumbprint as kid."""
    jwk = public_jwk(sk)
    jwk["kid"] = jwk_thumbprint(jwk)
    return jwk

if __name__ == "__main__":
    sk = generate_wallet()
    print("Wallet generated.")
    print("holder kid:", holder_jwk(sk)["kid"])
