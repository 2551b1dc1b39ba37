import hashlib

from crypto.encoding import b64_encode, b64url_encode

def sha256(data: bytes) -> bytes:
    return hashlib.sha256(data).digest()

def sha256_b64(value: str) -> str:
    """SHA-256 over the UTF-8 value, standard Base64."""
    return b64_encode(sha256(value.encode("utf-8")))

def sha256_b64url(value: str) -> str:
    """SHA-256 over the ASCII value, unpadded base64url (SD-JWT digests)."""
    return b64url_encode(sha256(value.encode("ascii")))
