"""Client for the remote proof verifier service (POST {endpoint}/verify)."""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import requests

from core.errors import ProofRejected, VerifierUnavailable

logger = logging.getLogger(__name__)


class RemoteVerifierClient:
    """
    One attempt per call, bounded by `timeout` seconds end to end. Connection
    failures and timeouts raise VerifierUnavailable; a non-2xx answer is a
    rejection and raises ProofRejected.
    """

    def __init__(self, endpoint: str, timeout: float = 10.0, http: Optional[requests.Session] = None):
        self.endpoint = endpoint.rstrip("/")
        self.timeout = timeout
        self._http = http or requests.Session()

    async def verify(self, proof: Any, session_transcript: List[Any]) -> Dict[str, Any]:
        url = f"{self.endpoint}/verify"
        body = {"proof": proof, "sessionTranscript": session_transcript}
        try:
            # the worker thread is not cancelled on timeout; requests' own
            # timeout bounds it
            response = await asyncio.wait_for(
                asyncio.to_thread(self._http.post, url, json=body, timeout=self.timeout),
                timeout=self.timeout,
            )
        except (requests.RequestException, asyncio.TimeoutError) as exc:
            logger.error("Proof verifier call failed: %s", type(exc).__name__)
            raise VerifierUnavailable(f"proof verifier unreachable at {self.endpoint}") from exc

        if not response.ok:
            logger.info("Proof verifier returned %s", response.status_code)
            raise ProofRejected(f"proof verifier returned {response.status_code}")

        try:
            result = response.json()
        except ValueError as exc:
            raise ProofRejected("proof verifier returned a non-JSON body") from exc
        if not isinstance(result, dict):
            raise ProofRejected("proof verifier returned an unexpected body")
        return result


def mock_verifier_result() -> Dict[str, Any]:
    """Synthetic result for allow_mock mode. Always carries mock: True."""
    return {
        "valid": True,
        "predicates": {
            "org.iso.18013.5.1.age_over_21": True,
            "org.iso.18013.5.1.not_expired": True,
        },
        "issuer": "CA-DMV",
        "issuedAt": datetime.now(timezone.utc).isoformat(),
        "mock": True,
    }
