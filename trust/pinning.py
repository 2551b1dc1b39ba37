"""
Issuer pinning: which jurisdictions are trusted, and the issuer/kid check
that is the only place a trust decision is made.
"""
from __future__ import annotations

import logging
import threading
from datetime import datetime
from typing import Any, Dict, Iterable, List

from trust.models import TrustDecision, TrustSnapshot

logger = logging.getLogger(__name__)

DEFAULT_ACCEPTED = ("CA", "NY", "FL")
ISSUER_SEPARATOR = "-"

def jurisdiction_of(issuer_label: str) -> str:
    """'CA-DMV' -> 'CA'"""
    return issuer_label.split(ISSUER_SEPARATOR, 1)[0].strip().upper()


class JurisdictionPolicy:
    """Allow-list of two-letter jurisdiction codes."""

    def __init__(self, accepted: Iterable[str] = DEFAULT_ACCEPTED):
        self._lock = threading.Lock()
        self._accepted: List[str] = []
        for code in accepted:
            self.add(code)

    @property
    def accepted(self) -> List[str]:
        with self._lock:
            return list(self._accepted)

    def is_accepted(self, code: str) -> bool:
        if not isinstance(code, str) or len(code.strip()) != 2:
            return False
        with self._lock:
            return code.strip().upper() in self._accepted

    def add(self, code: str) -> None:
        code = code.strip().upper()
        with self._lock:
            if code not in self._accepted:
                self._accepted.append(code)
                logger.info("Added %s to accepted jurisdictions", code)

    def remove(self, code: str) -> None:
        code = code.strip().upper()
        with self._lock:
            if code in self._accepted:
                self._accepted.remove(code)
                logger.info("Removed %s from accepted jurisdictions", code)

    def describe(self) -> Dict[str, Any]:
        return {
            "acceptedJurisdictions": self.accepted,
            "policyType": "jurisdiction-based",
            "dataMinimization": True,
            "description": "Only accepts mDL from configured jurisdictions",
        }


def decide(
    policy: JurisdictionPolicy,
    snapshot: TrustSnapshot,
    issuer_label: str,
    kid: str,
    now: datetime,
) -> TrustDecision:
    """Allow-list, then kid lookup, then validity window. All three must pass."""
    code = jurisdiction_of(issuer_label)
    if not policy.is_accepted(code):
        return TrustDecision(
            accepted=False,
            reason=f"Jurisdiction {code} not in accepted list",
            code="UntrustedIssuer",
            stale=snapshot.stale,
        )

    record = snapshot.cache.find(code)
    if record is None:
        return TrustDecision(
            accepted=False,
            reason=f"Jurisdiction {code} not found in trust list",
            code="UnknownJurisdiction",
            stale=snapshot.stale,
        )

    cert = record.find(kid)
    if cert is None:
        return TrustDecision(
            accepted=False,
            reason=f"Key ID {kid} not found in trusted certificates for {code}",
            code="UntrustedIssuer",
            stale=snapshot.stale,
        )

    if not cert.is_valid_at(now):
        return TrustDecision(
            accepted=False,
            reason=f"Certificate {kid} is not currently valid",
            code="UntrustedIssuer",
            stale=snapshot.stale,
        )

    return TrustDecision(accepted=True, certificate=cert, stale=snapshot.stale)
