import json
from typing import Any

def canonicalize(obj: Any) -> bytes:
    """
    Canonical JSON bytes for JWS segments, SD-JWT disclosures and JWK
    thumbprints: sorted keys, no whitespace, UTF-8 kept as is.
    """
    return json.dumps(obj, sort_keys=True, separators=(',', ':'), ensure_ascii=False).encode('utf-8')
