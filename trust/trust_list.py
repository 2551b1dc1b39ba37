"""
Trust list (VICAL) fetcher and cache.

The cache is an immutable TrustCache swapped atomically under a lock. It is
kept in memory and mirrored to a JSON file so a restart can fall back to the
last good copy when the source is down.
"""
from __future__ import annotations

import asyncio
import json
import logging
import threading
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional

import requests

from core.config import Settings
from core.errors import MalformedInput, TrustUnavailable, UnknownJurisdiction
from trust.fixtures import DEV_TRUST_LIST
from trust.models import Certificate, TrustCache, TrustDecision, TrustRecord, TrustSnapshot
from trust.pinning import JurisdictionPolicy, decide

logger = logging.getLogger(__name__)

CACHE_FILE = "vical.json"
DEFAULT_TTL = 24 * 60 * 60


class TrustStore:
    def __init__(
        self,
        source_url: Optional[str],
        cache_dir: Path,
        policy: Optional[JurisdictionPolicy] = None,
        ttl: int = DEFAULT_TTL,
        timeout: float = 10.0,
        http: Optional[requests.Session] = None,
        fixture: Optional[Mapping[str, Any]] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.source_url = source_url
        self.cache_path = Path(cache_dir) / CACHE_FILE
        self.policy = policy if policy is not None else JurisdictionPolicy()
        self.ttl = ttl
        self.timeout = timeout
        self._http = http or requests.Session()
        self._fixture = fixture
        self._clock = clock
        self._lock = threading.Lock()
        self._cache: Optional[TrustCache] = None

    @classmethod
    def from_settings(cls, settings: Settings, **kwargs: Any) -> "TrustStore":
        fixture = DEV_TRUST_LIST if settings.allow_mock and not settings.trust_list_url else None
        return cls(
            source_url=settings.trust_list_url,
            cache_dir=settings.trust_cache_dir,
            policy=JurisdictionPolicy(settings.accepted_jurisdiction_codes),
            ttl=settings.trust_cache_ttl,
            timeout=settings.trust_timeout,
            fixture=fixture,
            **kwargs,
        )

    def _now(self) -> datetime:
        return datetime.fromtimestamp(self._clock(), tz=timezone.utc)

    def _is_expired(self, cache: TrustCache) -> bool:
        return (self._now() - cache.fetched_at).total_seconds() > self.ttl

    # -- cache plumbing --

    def _current(self) -> Optional[TrustCache]:
        with self._lock:
            if self._cache is not None:
                return self._cache
        loaded = self._load_from_disk()
        if loaded is not None:
            with self._lock:
                if self._cache is None:
                    self._cache = loaded
                return self._cache
        return None

    def _swap(self, cache: TrustCache) -> None:
        with self._lock:
            self._cache = cache
        self._save_to_disk(cache)

    def _discard(self) -> None:
        logger.info("Discarding trust list cache")
        with self._lock:
            self._cache = None
        self.cache_path.unlink(missing_ok=True)

    def _load_from_disk(self) -> Optional[TrustCache]:
        if not self.cache_path.exists():
            return None
        try:
            return TrustCache.from_dict(json.loads(self.cache_path.read_text(encoding="utf-8")))
        except (OSError, ValueError, MalformedInput) as exc:
            logger.warning("Ignoring unreadable trust cache %s: %s", self.cache_path, exc)
            return None

    def _save_to_disk(self, cache: TrustCache) -> None:
        try:
            self.cache_path.parent.mkdir(parents=True, exist_ok=True)
            self.cache_path.write_text(json.dumps(cache.to_dict(), indent=2), encoding="utf-8")
        except OSError as exc:
            # in-memory copy is still authoritative
            logger.error("Failed to save trust cache: %s", exc)

    # -- source --

    async def _download(self) -> TrustCache:
        if not self.source_url:
            if self._fixture is None:
                raise TrustUnavailable("no trust list source configured")
            logger.warning("No trust list URL configured - using development trust list")
            return TrustCache.from_source(self._fixture, self._now())

        logger.info("Fetching trust list from %s", self.source_url)
        response = await asyncio.wait_for(
            asyncio.to_thread(
                self._http.get,
                self.source_url,
                headers={"Accept": "application/json"},
                timeout=self.timeout,
            ),
            timeout=self.timeout,
        )
        response.raise_for_status()
        payload = response.json()
        if not isinstance(payload, dict):
            raise MalformedInput("trust list is not a JSON object")
        return TrustCache.from_source(payload, self._now())

    # -- public API --

    async def fetch(self, force: bool = False) -> TrustSnapshot:
        """
        Fresh cache if there is one; otherwise refresh. A failed refresh falls
        back to whatever copy exists, flagged stale. No copy at all raises
        TrustUnavailable.
        """
        if force:
            self._discard()

        cached = self._current()
        if cached is not None and not self._is_expired(cached):
            return TrustSnapshot(cached)

        try:
            fresh = await self._download()
        except (requests.RequestException, asyncio.TimeoutError, ValueError,
                MalformedInput, TrustUnavailable) as exc:
            if cached is not None:
                logger.warning("Trust list refresh failed (%s); using stale cache", exc)
                return TrustSnapshot(cached, stale=True)
            raise TrustUnavailable(f"trust list fetch failed and no cache available: {exc}") from exc

        self._swap(fresh)
        logger.info("Trust list cached (%d jurisdictions)", len(fresh.records))
        return TrustSnapshot(fresh)

    async def refresh(self) -> TrustSnapshot:
        return await self.fetch(force=True)

    async def certificates_for(self, jurisdiction: str) -> List[Certificate]:
        snapshot = await self.fetch()
        record = snapshot.cache.find(jurisdiction)
        if record is None:
            raise UnknownJurisdiction(f"Jurisdiction {jurisdiction.upper()} not found in trust list")
        return list(record.certificates)

    def is_accepted(self, jurisdiction: str) -> bool:
        return self.policy.is_accepted(jurisdiction)

    def add_accepted(self, jurisdiction: str) -> None:
        self.policy.add(jurisdiction)

    def remove_accepted(self, jurisdiction: str) -> None:
        self.policy.remove(jurisdiction)

    async def verify_issuer(self, issuer_label: str, kid: str) -> TrustDecision:
        try:
            snapshot = await self.fetch()
        except TrustUnavailable as exc:
            return TrustDecision(accepted=False, reason=exc.detail, code=exc.code)
        decision = decide(self.policy, snapshot, issuer_label, kid, self._now())
        if not decision.accepted:
            logger.info("Issuer %s/%s rejected: %s", issuer_label, kid, decision.reason)
        return decision

    async def accepted_issuers(self) -> List[TrustRecord]:
        snapshot = await self.fetch()
        issuers = []
        for code in self.policy.accepted:
            record = snapshot.cache.find(code)
            if record is None:
                logger.warning("Accepted jurisdiction %s missing from trust list", code)
                continue
            issuers.append(record)
        return issuers

    def trust_policy(self) -> Dict[str, Any]:
        return self.policy.describe()
