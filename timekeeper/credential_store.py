"""Persistence for the single cached credential."""

from __future__ import annotations

import json
import logging
import os
import threading
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from timekeeper.models import Credential

logger = logging.getLogger("timekeeper.credential_store")


class CredentialStore(ABC):
    """Holds at most one credential, scoped to a principal fingerprint."""

    @abstractmethod
    def load(self, fingerprint: str) -> Optional[Credential]:
        """Return the cached credential for ``fingerprint``, or None.

        A record cached for a different principal is discarded.
        """

    @abstractmethod
    def save(self, credential: Credential) -> None:
        ...

    @abstractmethod
    def clear(self) -> None:
        ...


class MemoryCredentialStore(CredentialStore):
    def __init__(self, credential: Optional[Credential] = None) -> None:
        self._credential = credential
        self._lock = threading.Lock()

    def load(self, fingerprint: str) -> Optional[Credential]:
        with self._lock:
            if self._credential is None:
                return None
            if self._credential.issued_for != fingerprint:
                logger.info("Credentials changed, discarding cached token")
                self._credential = None
                return None
            return self._credential

    def save(self, credential: Credential) -> None:
        with self._lock:
            self._credential = credential

    def clear(self) -> None:
        with self._lock:
            self._credential = None


def _parse_timestamp(value: str) -> datetime:
    """ISO-8601 timestamp; naive values are taken as UTC."""
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class FileCredentialStore(CredentialStore):
    """JSON file holding ``{token, scopeId, expiresAt, principalFingerprint, cachedAt}``."""

    def __init__(self, path: str | os.PathLike[str]) -> None:
        self.path = Path(path)
        self._lock = threading.Lock()

    def load(self, fingerprint: str) -> Optional[Credential]:
        with self._lock:
            try:
                data = json.loads(self.path.read_text(encoding="utf-8"))
                credential = Credential(
                    token=data["token"],
                    scope_id=str(data["scopeId"]),
                    expires_at=_parse_timestamp(data["expiresAt"]),
                    issued_for=data["principalFingerprint"],
                    cached_at=(
                        _parse_timestamp(data["cachedAt"])
                        if data.get("cachedAt") else None
                    ),
                )
            except FileNotFoundError:
                logger.debug("No token cache at %s", self.path)
                return None
            except (OSError, ValueError, KeyError, TypeError, AttributeError) as exc:
                logger.warning("Ignoring unreadable token cache %s: %s", self.path, exc)
                return None

            if credential.issued_for != fingerprint:
                logger.info("Credentials changed, discarding cached token")
                self._unlink()
                return None
            return credential

    def save(self, credential: Credential) -> None:
        data = {
            "token": credential.token,
            "scopeId": credential.scope_id,
            "expiresAt": credential.expires_at.isoformat(),
            "principalFingerprint": credential.issued_for,
            "cachedAt": credential.cached_at.isoformat() if credential.cached_at else None,
        }
        with self._lock:
            try:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                tmp = self.path.with_suffix(self.path.suffix + ".tmp")
                tmp.write_text(json.dumps(data, indent=2), encoding="utf-8")
                os.chmod(tmp, 0o600)
                os.replace(tmp, self.path)
                logger.debug("Token cached at %s", self.path)
            except OSError as exc:
                # The in-memory credential is still usable
                logger.warning("Could not cache token: %s", exc)

    def clear(self) -> None:
        with self._lock:
            self._unlink()

    def _unlink(self) -> None:
        try:
            self.path.unlink()
            logger.info("Token cache cleared")
        except FileNotFoundError:
            pass
        except OSError as exc:
            logger.warning("Could not remove token cache %s: %s", self.path, exc)
