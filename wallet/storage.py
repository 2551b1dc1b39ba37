from pathlib import Path
import json
from typing import Any, Dict

WALLET_DIR = Path("wallet_data")
CRED_FILE = "credential_bundle.json"  # {"format":..., "credential": "<sd-jwt>", ...}

def save_credential_bundle(bundle: Dict[str, Any], wallet_dir: Path = WALLET_DIR) -> Path:
    wallet_dir = Path(wallet_dir)
    wallet_dir.mkdir(parents=True, exist_ok=True)
    path = wallet_dir / CRED_FILE
    path.write_text(json.dumps(bundle, indent=2, sort_keys=True), encoding="utf-8")
    return path

def load_credential_bundle(wallet_dir: Path = WALLET_DIR) -> Dict[str, Any]:
    path = Path(wallet_dir) / CRED_FILE
    if not path.exists():
        raise FileNotFoundError("No credential stored. Run wallet 'issue_credential' first.")
    return json.loads(path.read_text(encoding="utf-8"))
