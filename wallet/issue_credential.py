"""
Walks the issuer's authorize -> token -> credential flow for a verification
session and stores the derived credential in the wallet.
"""
import argparse
from pathlib import Path
from typing import Any, Dict

import requests

from wallet.keygen import WALLET_DIR, holder_jwk, load_or_generate_wallet
from wallet.presentation import build_proof_jwt
from wallet.storage import save_credential_bundle

ISSUER_URL = "http://127.0.0.1:3001"

def _post(http, url: str, **kwargs) -> Dict[str, Any]:
    r = http.post(url, timeout=5, **kwargs)
    r.raise_for_status()
    return r.json()

def issue(
    verification_session_id: str,
    issuer_url: str = ISSUER_URL,
    wallet_dir: Path = WALLET_DIR,
    http=requests,
) -> Dict[str, Any]:
    sk = load_or_generate_wallet(wallet_dir)

    auth = _post(http, f"{issuer_url}/authorize", json={
        "verificationSessionId": verification_session_id,
        "holderPublicKey": holder_jwk(sk),
    })
    token = _post(http, f"{issuer_url}/token", json={
        "grant_type": "authorization_code",
        "code": auth["authorization_code"],
    })
    bundle = _post(
        http,
        f"{issuer_url}/credential",
        headers={"Authorization": f"Bearer {token['access_token']}"},
        json={
            "format": "vc+sd-jwt",
            "proof": {"proof_type": "jwt", "jwt": build_proof_jwt(sk, token["c_nonce"], issuer_url)},
        },
    )
    save_credential_bundle(bundle, wallet_dir)
    return bundle

if __name__ == "__main__":
    p = argparse.ArgumentParser()
    p.add_argument("verification_session_id")
    p.add_argument("--issuer_url", default=ISSUER_URL)
    args = p.parse_args()
    issue(args.verification_session_id, issuer_url=args.issuer_url)
    print("Credential saved to", WALLET_DIR / "credential_bundle.json")
