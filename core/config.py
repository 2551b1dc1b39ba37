"""Service configuration, read from the environment and an optional .env file."""
from __future__ import annotations

from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import Dict, List, Optional

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(str, Enum):
    DEVELOPMENT = "development"
    TESTING = "testing"
    PRODUCTION = "production"


class VerificationMode(str, Enum):
    """How the verifier behaves when the remote proof verifier is unreachable."""

    STRICT = "strict"
    ALLOW_MOCK = "allow_mock"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", case_sensitive=False, extra="ignore"
    )

    environment: Environment = Environment.DEVELOPMENT
    log_level: str = "INFO"
    verification_mode: VerificationMode = VerificationMode.STRICT

    # trust
    accepted_jurisdictions: str = Field(default="CA,NY,FL", description="comma separated")
    trust_list_url: Optional[str] = None
    trust_cache_dir: Path = Path("trust/cache")
    trust_cache_ttl: int = 24 * 60 * 60
    trust_timeout: float = 10.0
    root_cert_urls: Dict[str, str] = Field(
        default_factory=lambda: {"CA": "https://www.dmv.ca.gov/portal/ca-dmv-wallet/iaca-root.pem"}
    )

    # verifier
    verifier_url: str = "http://localhost:8080"
    verifier_timeout: float = 10.0
    default_audience: str = "https://verifier.example.com"
    verifier_port: int = 3000
    verification_ttl: int = 15 * 60

    # issuer
    issuer_url: str = "http://localhost:3001"
    issuer_port: int = 3001
    derived_vc_ttl: int = 24 * 60 * 60
    session_ttl: int = 10 * 60
    require_verified_session: bool = False

    # keys
    key_dir: Path = Path(".keys")
    reader_private_key_pem: Optional[str] = None
    issuer_private_key_pem: Optional[str] = None

    @model_validator(mode="after")
    def _no_mock_in_production(self) -> "Settings":
        if (
            self.environment is Environment.PRODUCTION
            and self.verification_mode is VerificationMode.ALLOW_MOCK
        ):
            raise ValueError("verification_mode=allow_mock is not permitted in production")
        return self

    @property
    def accepted_jurisdiction_codes(self) -> List[str]:
        return [c.strip().upper() for c in self.accepted_jurisdictions.split(",") if c.strip()]

    @property
    def allow_mock(self) -> bool:
        return self.verification_mode is VerificationMode.ALLOW_MOCK


@lru_cache
def get_settings() -> Settings:
    return Settings()
