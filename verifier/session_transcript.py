"""
SessionTranscript for the ISO 18013-7 OpenID4VP DC-API web handover.

    [DeviceEngagementBytes, EReaderKeyBytes, Handover]

For the web handover the first two are null and Handover is

    ["OpenID4VPDCAPIHandover", h(client_id), h(nonce), h(response_uri) | null]
"""
from __future__ import annotations

from typing import Any, List, Optional

from core.errors import MalformedInput, MalformedTranscript
from crypto.hashing import sha256_b64

HANDOVER_TAG = "OpenID4VPDCAPIHandover"

def build_session_transcript(
    nonce: str,
    audience: str,
    response_uri: Optional[str] = None,
) -> List[Any]:
    """Deterministic: the same inputs always give the same transcript."""
    if not isinstance(nonce, str) or not nonce:
        raise MalformedInput("session transcript needs a nonce")
    if not isinstance(audience, str) or not audience:
        raise MalformedInput("session transcript needs an audience")

    handover = [
        HANDOVER_TAG,
        sha256_b64(audience),
        sha256_b64(nonce),
        sha256_b64(response_uri) if response_uri else None,
    ]
    return [None, None, handover]

def validate_session_transcript(transcript: Any) -> bool:
    if not isinstance(transcript, list) or len(transcript) != 3:
        return False

    device_engagement, reader_key, handover = transcript
    if device_engagement is not None or reader_key is not None:
        return False

    if not isinstance(handover, list) or len(handover) != 4:
        return False
    return handover[0] == HANDOVER_TAG

def require_valid_transcript(transcript: Any) -> List[Any]:
    if not validate_session_transcript(transcript):
        raise MalformedTranscript()
    return transcript
