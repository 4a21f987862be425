"""Configuration via environment variables with cloud-native secret support.

Supports:
  - Environment variables (local dev, optionally from a .env file)
  - AWS Secrets Manager for the password (aws-secret://name#key)
  - GCP Secret Manager for the password (gcp-secret://name)
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Optional

from dotenv import load_dotenv

from timekeeper.secrets import resolve_secret


@dataclass(frozen=True)
class CredentialsConfig:
    email: str
    password: str
    company_name: str
    totp_code: Optional[str] = None  # only needed when 2FA is enforced


@dataclass(frozen=True)
class ApiConfig:
    base_url: str = "https://api2.timedoctor.com"
    version: str = "1.0"
    auth_scheme: str = "JWT"
    timeout: float = 30.0
    page_size: int = 1000
    max_pages: int = 100
    page_delay: float = 0.0

    @property
    def auth_endpoint(self) -> str:
        return f"/api/{self.version}/authorization/login"

    def resource(self, path: str) -> str:
        """Build a versioned resource path, e.g. resource("users")."""
        return f"/api/{self.version}/{path.lstrip('/')}"


@dataclass(frozen=True)
class AuthPolicyConfig:
    refresh_skew_seconds: int = 300
    default_lifetime_hours: int = 24
    token_cache_path: Optional[str] = ".token-cache.json"  # None = memory only


@dataclass(frozen=True)
class ResolverConfig:
    cache_ttl_seconds: int = 300
    cache_max_entries: int = 1000
    activity_window_days: int = 7
    activity_sample_size: int = 10
    synthetic_prefix_length: int = 8


@dataclass(frozen=True)
class TimekeeperConfig:
    credentials: CredentialsConfig
    api: ApiConfig = field(default_factory=ApiConfig)
    auth: AuthPolicyConfig = field(default_factory=AuthPolicyConfig)
    resolver: ResolverConfig = field(default_factory=ResolverConfig)


def load_config() -> TimekeeperConfig:
    """Load configuration from environment variables.

    All missing required variables are reported together so a broken
    .env file can be fixed in one pass.
    """
    load_dotenv()

    required = {
        "TD_EMAIL": os.environ.get("TD_EMAIL", ""),
        "TD_PASSWORD": os.environ.get("TD_PASSWORD", ""),
        "TD_COMPANY_NAME": os.environ.get("TD_COMPANY_NAME", ""),
    }
    missing = [name for name, value in required.items() if not value]
    if missing:
        raise ValueError(
            f"Missing required configuration: {', '.join(missing)}"
        )

    # Password might be a secret reference
    credentials = CredentialsConfig(
        email=required["TD_EMAIL"],
        password=resolve_secret(required["TD_PASSWORD"]),
        company_name=required["TD_COMPANY_NAME"],
        totp_code=os.environ.get("TD_TOTP_CODE") or None,
    )

    api = ApiConfig(
        base_url=os.environ.get("TD_API_BASE_URL", "https://api2.timedoctor.com").rstrip("/"),
        version=os.environ.get("TD_API_VERSION", "1.0"),
        auth_scheme=os.environ.get("TD_AUTH_SCHEME", "JWT"),
        timeout=float(os.environ.get("TD_REQUEST_TIMEOUT", "30")),
        page_delay=float(os.environ.get("TD_PAGE_DELAY", "0")),
    )

    auth = AuthPolicyConfig(
        token_cache_path=os.environ.get("TD_TOKEN_CACHE", ".token-cache.json") or None,
    )

    resolver = ResolverConfig(
        cache_ttl_seconds=int(os.environ.get("TD_RESOLVER_CACHE_TTL", "300")),
        cache_max_entries=int(os.environ.get("TD_RESOLVER_CACHE_SIZE", "1000")),
    )

    return TimekeeperConfig(
        credentials=credentials,
        api=api,
        auth=auth,
        resolver=resolver,
    )
