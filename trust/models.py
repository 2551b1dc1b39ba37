from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional, Tuple

from core.errors import MalformedInput

def parse_time(value: Any) -> datetime:
    if not isinstance(value, str) or not value:
        raise MalformedInput("timestamp missing")
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError as exc:
        raise MalformedInput(f"invalid timestamp {value!r}") from exc
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed

def format_time(value: datetime) -> str:
    return value.astimezone(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


@dataclass(frozen=True)
class Certificate:
    kid: str
    type: str
    algorithm: str
    public_key: str
    valid_from: datetime
    valid_until: datetime

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Certificate":
        if not isinstance(data, Mapping):
            raise MalformedInput("certificate entry is not an object")
        kid = data.get("kid")
        if not isinstance(kid, str) or not kid:
            raise MalformedInput("certificate without kid")
        cert = cls(
            kid=kid,
            type=str(data.get("type", "IACA")),
            algorithm=str(data.get("algorithm", "ES256")),
            public_key=str(data.get("publicKey", "")),
            valid_from=parse_time(data.get("validFrom")),
            valid_until=parse_time(data.get("validUntil")),
        )
        if cert.valid_from > cert.valid_until:
            raise MalformedInput(f"certificate {kid} has validFrom after validUntil")
        return cert

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kid": self.kid,
            "type": self.type,
            "algorithm": self.algorithm,
            "publicKey": self.public_key,
            "validFrom": format_time(self.valid_from),
            "validUntil": format_time(self.valid_until),
        }

    def is_valid_at(self, when: datetime) -> bool:
        return self.valid_from <= when <= self.valid_until


@dataclass(frozen=True)
class TrustRecord:
    code: str
    name: str
    issuer: str
    certificates: Tuple[Certificate, ...]

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "TrustRecord":
        if not isinstance(data, Mapping):
            raise MalformedInput("jurisdiction entry is not an object")
        code = data.get("code")
        if not isinstance(code, str) or not code:
            raise MalformedInput("jurisdiction without code")
        raw_certs = data.get("certificates") or []
        if not isinstance(raw_certs, list):
            raise MalformedInput(f"certificates of jurisdiction {code} is not an array")
        certs = tuple(Certificate.from_dict(c) for c in raw_certs)
        kids = [c.kid for c in certs]
        if len(kids) != len(set(kids)):
            raise MalformedInput(f"duplicate kid in jurisdiction {code}")
        return cls(
            code=code.upper(),
            name=str(data.get("name", code)),
            issuer=str(data.get("issuer", "")),
            certificates=certs,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "name": self.name,
            "issuer": self.issuer,
            "certificates": [c.to_dict() for c in self.certificates],
        }

    def find(self, kid: str) -> Optional[Certificate]:
        return next((c for c in self.certificates if c.kid == kid), None)


@dataclass(frozen=True)
class TrustCache:
    records: Tuple[TrustRecord, ...]
    fetched_at: datetime
    version: str = "1.0"

    @classmethod
    def from_source(cls, payload: Mapping[str, Any], fetched_at: datetime) -> "TrustCache":
        """Build from the trust list wire shape: {version, jurisdictions: [...]}."""
        if not isinstance(payload, Mapping):
            raise MalformedInput("trust list is not a JSON object")
        jurisdictions = payload.get("jurisdictions")
        if not isinstance(jurisdictions, list):
            raise MalformedInput("trust list has no jurisdictions array")
        return cls(
            records=tuple(TrustRecord.from_dict(j) for j in jurisdictions),
            fetched_at=fetched_at,
            version=str(payload.get("version", "1.0")),
        )

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "TrustCache":
        if not isinstance(data, Mapping):
            raise MalformedInput("trust cache is not a JSON object")
        return cls.from_source(data, parse_time(data.get("timestamp")))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": self.version,
            "timestamp": format_time(self.fetched_at),
            "jurisdictions": [r.to_dict() for r in self.records],
        }

    def find(self, code: str) -> Optional[TrustRecord]:
        code = code.upper()
        return next((r for r in self.records if r.code == code), None)


@dataclass(frozen=True)
class TrustSnapshot:
    """What TrustStore.fetch hands out: the cache plus whether it is stale."""

    cache: TrustCache
    stale: bool = False


@dataclass
class TrustDecision:
    accepted: bool
    reason: Optional[str] = None
    code: Optional[str] = None
    certificate: Optional[Certificate] = None
    stale: bool = False
