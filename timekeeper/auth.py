"""Token lifecycle: login, cache, expiry-based refresh.

At most one login round-trip is outstanding at a time. The upstream
invalidates sibling sessions on a fresh login, so duplicate logins from
concurrent callers break requests already in flight.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Optional

import requests

from timekeeper.config import ApiConfig, AuthPolicyConfig, CredentialsConfig
from timekeeper.credential_store import CredentialStore, MemoryCredentialStore
from timekeeper.errors import (
    AuthError,
    ForbiddenError,
    InvalidCredentialsError,
    MalformedAuthResponseError,
    NetworkUnreachableError,
    ScopeNotFoundError,
    TwoFactorRequiredError,
)
from timekeeper.models import Credential, principal_fingerprint

logger = logging.getLogger("timekeeper.auth")

Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _parse_expiry(value: Any) -> Optional[datetime]:
    """Accept an ISO-8601 string or epoch seconds/milliseconds."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        seconds = value / 1000 if value > 1e12 else value
        return datetime.fromtimestamp(seconds, tz=timezone.utc)
    if isinstance(value, str) and value:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed
    return None


def _format_remaining(remaining: timedelta) -> str:
    minutes = int(remaining.total_seconds() // 60)
    return f"{minutes // 60}h {minutes % 60}m"


class CredentialManager:
    """Single source of truth for a currently valid credential."""

    def __init__(
        self,
        credentials: CredentialsConfig,
        api: ApiConfig,
        policy: Optional[AuthPolicyConfig] = None,
        store: Optional[CredentialStore] = None,
        session: Optional[requests.Session] = None,
        clock: Clock = _utcnow,
    ) -> None:
        self._credentials = credentials
        self._api = api
        self._policy = policy or AuthPolicyConfig(token_cache_path=None)
        self._store = store or MemoryCredentialStore()
        self._session = session or requests.Session()
        self._clock = clock
        self._skew = timedelta(seconds=self._policy.refresh_skew_seconds)
        self._fingerprint = principal_fingerprint(
            credentials.email, credentials.company_name
        )
        self._credential: Optional[Credential] = None
        # Reentrant so authenticate() can be called on its own or from a refresh
        self._lock = threading.RLock()

    @property
    def fingerprint(self) -> str:
        return self._fingerprint

    def _is_usable(self, credential: Optional[Credential]) -> bool:
        return credential is not None and credential.is_valid(
            self._fingerprint, self._clock(), self._skew
        )

    def get_credential(self) -> Credential:
        """Return a valid credential, logging in only when needed."""
        credential = self._credential
        if self._is_usable(credential):
            return credential

        with self._lock:
            # Another caller may have refreshed while we waited for the lock
            if self._is_usable(self._credential):
                return self._credential

            if self._credential is not None:
                logger.info("Token expired or expiring soon, refreshing")
            cached = self._store.load(self._fingerprint)
            if self._is_usable(cached):
                logger.info(
                    "Using cached token (expires in %s)",
                    _format_remaining(cached.time_remaining(self._clock())),
                    extra={"scope_id": cached.scope_id},
                )
                self._credential = cached
                return cached
            return self.authenticate()

    def refresh(self, stale: Optional[Credential] = None) -> Credential:
        """Replace ``stale`` with a fresh credential.

        If a concurrent caller already replaced it, the newer credential is
        returned without logging in again.
        """
        with self._lock:
            current = self._credential
            if (
                stale is not None
                and current is not None
                and current.token != stale.token
                and self._is_usable(current)
            ):
                return current
            self.invalidate()
            return self.authenticate()

    def invalidate(self) -> None:
        """Drop the in-memory and cached credential."""
        with self._lock:
            self._credential = None
            self._store.clear()

    def authenticate(self) -> Credential:
        """Log in, resolve the company, persist and return the new credential."""
        with self._lock:
            logger.info("Authenticating as %s", self._credentials.email)
            data = self._login()

            token = data.get("token")
            if not isinstance(token, str) or not token:
                raise MalformedAuthResponseError("No token received in authentication response")
            scope_id = self._resolve_scope(data.get("companies"))

            now = self._clock()
            try:
                expires_at = _parse_expiry(data.get("expiresAt"))
            except (ValueError, OverflowError, OSError):
                logger.warning("Unparseable expiresAt %r, using default lifetime", data.get("expiresAt"))
                expires_at = None
            if expires_at is None:
                expires_at = now + timedelta(hours=self._policy.default_lifetime_hours)

            credential = Credential(
                token=token,
                scope_id=scope_id,
                expires_at=expires_at,
                issued_for=self._fingerprint,
                cached_at=now,
            )
            self._credential = credential
            self._store.save(credential)
            logger.info(
                "Authentication successful, token valid for %s",
                _format_remaining(credential.time_remaining(now)),
                extra={"scope_id": scope_id},
            )
            return credential

    def _login(self) -> dict[str, Any]:
        body: dict[str, Any] = {
            "email": self._credentials.email,
            "password": self._credentials.password,
            "permissions": "write",
        }
        if self._credentials.totp_code:
            body["totpCode"] = self._credentials.totp_code

        url = f"{self._api.base_url}{self._api.auth_endpoint}"
        try:
            resp = self._session.request(
                "POST",
                url,
                json=body,
                headers={"Content-Type": "application/json", "Accept": "application/json"},
                timeout=self._api.timeout,
            )
        except requests.RequestException as exc:
            raise NetworkUnreachableError(f"Authentication request failed: {exc}") from exc

        try:
            payload = resp.json()
        except ValueError:
            payload = None

        if not 200 <= resp.status_code < 300:
            self._raise_auth_error(resp.status_code, payload, resp.text)
        if not isinstance(payload, dict):
            raise MalformedAuthResponseError(f"Invalid response from API: {resp.text[:500]}")
        data = payload.get("data")
        if not isinstance(data, dict):
            raise MalformedAuthResponseError("Authentication response has no data object")
        return data

    @staticmethod
    def _raise_auth_error(status: int, payload: Any, text: str) -> None:
        message = "Unknown error"
        if isinstance(payload, dict):
            message = str(payload.get("message") or payload.get("error") or message)
        elif text:
            message = text[:500]

        if status == 401:
            lowered = message.lower()
            if "totp" in lowered or "2fa" in lowered:
                raise TwoFactorRequiredError(
                    f"Two-factor authentication is required, set TD_TOTP_CODE: {message}",
                    status=status,
                )
            raise InvalidCredentialsError(
                f"Invalid credentials, check TD_EMAIL and TD_PASSWORD: {message}",
                status=status,
            )
        if status == 403:
            raise ForbiddenError(
                f"Authentication denied (wrong password, API access disabled, "
                f"or account locked): {message}",
                status=status,
            )
        if status == 404:
            raise AuthError("Authentication endpoint not found", status=status)
        raise AuthError(f"Authentication failed ({status}): {message}", status=status)

    def _resolve_scope(self, companies: Any) -> str:
        """Match the configured company by ``name`` property, then by key."""
        wanted = self._credentials.company_name
        if isinstance(companies, list):
            companies = {str(i): c for i, c in enumerate(companies)}
        if not isinstance(companies, dict) or not companies:
            raise MalformedAuthResponseError("No companies found in authentication response")

        for company in companies.values():
            if isinstance(company, dict) and company.get("name") == wanted and company.get("id") is not None:
                logger.info("Found company '%s'", wanted)
                return str(company["id"])

        keyed = companies.get(wanted)
        if isinstance(keyed, dict) and keyed.get("id") is not None:
            logger.info("Found company '%s' by key", wanted)
            return str(keyed["id"])

        available = [
            (str(company.get("name") or key), str(company.get("id")))
            for key, company in companies.items()
            if isinstance(company, dict)
        ]
        logger.error(
            "Company '%s' not found, available: %s",
            wanted,
            ", ".join(name for name, _ in available),
        )
        raise ScopeNotFoundError(wanted, available)

    def status(self) -> dict[str, Any]:
        """Token diagnostics; never includes the token itself."""
        credential = self._credential
        if credential is None:
            return {"status": "No token", "valid": False}
        now = self._clock()
        remaining = credential.time_remaining(now)
        if remaining <= timedelta(0):
            return {
                "status": "Expired",
                "valid": False,
                "expired_at": credential.expires_at.isoformat(),
            }
        return {
            "status": "Valid" if self._is_usable(credential) else "Expiring",
            "valid": self._is_usable(credential),
            "expires_at": credential.expires_at.isoformat(),
            "time_remaining": _format_remaining(remaining),
            "scope_id": credential.scope_id,
        }
