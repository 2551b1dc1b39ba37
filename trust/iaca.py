"""
IACA root certificate loader.

Roots are optional: a jurisdiction whose root cannot be fetched and has no
cached copy is simply untrusted, never an unhandled error.
"""
from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Dict, Optional

import requests
from cryptography import x509
from cryptography.exceptions import InvalidSignature as X509InvalidSignature

from trust.models import TrustDecision

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RootCertificate:
    jurisdiction: str
    pem: str
    subject: str
    not_before: datetime
    not_after: datetime
    certificate: x509.Certificate


def parse_root(pem: str, jurisdiction: str) -> RootCertificate:
    cert = x509.load_pem_x509_certificate(pem.encode("ascii"))
    return RootCertificate(
        jurisdiction=jurisdiction,
        pem=pem,
        subject=cert.subject.rfc4514_string(),
        not_before=cert.not_valid_before_utc,
        not_after=cert.not_valid_after_utc,
        certificate=cert,
    )


def verify_against_root(
    cert_pem: str,
    root: RootCertificate,
    now: Optional[datetime] = None,
) -> TrustDecision:
    """Direct issuance by the root, both certificates inside their validity."""
    now = now or datetime.now(timezone.utc)
    try:
        cert = x509.load_pem_x509_certificate(cert_pem.encode("ascii"))
    except ValueError:
        return TrustDecision(accepted=False, reason="certificate is not valid PEM", code="UntrustedIssuer")

    if not root.not_before <= now <= root.not_after:
        return TrustDecision(accepted=False, reason=f"IACA root for {root.jurisdiction} is not currently valid",
                             code="UntrustedIssuer")
    if not cert.not_valid_before_utc <= now <= cert.not_valid_after_utc:
        return TrustDecision(accepted=False, reason="document signer certificate is not currently valid",
                             code="UntrustedIssuer")
    try:
        cert.verify_directly_issued_by(root.certificate)
    except (ValueError, TypeError, X509InvalidSignature):
        return TrustDecision(accepted=False, reason=f"certificate not issued by the {root.jurisdiction} IACA root",
                             code="UntrustedIssuer")
    return TrustDecision(accepted=True)


class RootCertificateLoader:
    def __init__(
        self,
        urls: Dict[str, str],
        cache_dir: Path,
        timeout: float = 10.0,
        http: Optional[requests.Session] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.urls = {k.upper(): v for k, v in urls.items()}
        self.cache_dir = Path(cache_dir)
        self.timeout = timeout
        self._http = http or requests.Session()
        self._clock = clock

    def _cache_file(self, code: str) -> Path:
        return self.cache_dir / f"{code.lower()}-iaca-root.pem"

    def _load_cached(self, code: str) -> Optional[str]:
        path = self._cache_file(code)
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    async def _download(self, code: str, url: str) -> str:
        logger.info("Downloading %s IACA root certificate", code)
        response = await asyncio.wait_for(
            asyncio.to_thread(self._http.get, url, timeout=self.timeout),
            timeout=self.timeout,
        )
        response.raise_for_status()
        pem = response.text
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        self._cache_file(code).write_text(pem, encoding="utf-8")
        return pem

    async def get_root(self, jurisdiction: str) -> Optional[RootCertificate]:
        code = jurisdiction.upper()
        pem = None
        url = self.urls.get(code)
        if url:
            try:
                pem = await self._download(code, url)
            except (requests.RequestException, asyncio.TimeoutError, OSError) as exc:
                logger.warning("Failed to download %s IACA root: %s", code, exc)
        if pem is None:
            pem = self._load_cached(code)
            if pem is not None:
                logger.warning("Using cached %s IACA root certificate", code)
        if pem is None:
            logger.warning("No IACA root available for %s; jurisdiction untrusted", code)
            return None

        try:
            return parse_root(pem, code)
        except ValueError as exc:
            logger.error("IACA root for %s is not a valid certificate: %s", code, exc)
            return None

    def now(self) -> datetime:
        return datetime.fromtimestamp(self._clock(), tz=timezone.utc)
