"""Shared fixtures: a fake requests session and ready-made configs."""

from __future__ import annotations

import json as jsonlib
import threading
from datetime import datetime, timezone
from typing import Any, Callable, Optional

import pytest

from timekeeper.auth import CredentialManager
from timekeeper.config import ApiConfig, AuthPolicyConfig, CredentialsConfig, TimekeeperConfig
from timekeeper.credential_store import MemoryCredentialStore
from timekeeper.executor import RequestExecutor

BASE_URL = "https://td.example.test"
LOGIN_URL = f"{BASE_URL}/api/1.0/authorization/login"
NOW = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)


class FakeResponse:
    def __init__(self, status_code: int = 200, payload: Any = None, text: Optional[str] = None) -> None:
        self.status_code = status_code
        self._payload = payload
        if text is None:
            text = "" if payload is None else jsonlib.dumps(payload)
        self.text = text
        self.content = text.encode("utf-8")

    def json(self) -> Any:
        return jsonlib.loads(self.text)


class FakeSession:
    """Stands in for requests.Session; every call goes through ``handler``.

    ``handler(method, url, kwargs)`` returns a FakeResponse or raises.
    """

    def __init__(self, handler: Callable[[str, str, dict], FakeResponse]) -> None:
        self.handler = handler
        self.calls: list[dict[str, Any]] = []
        self._lock = threading.Lock()
        self.closed = False

    def request(self, method: str, url: str, **kwargs: Any) -> FakeResponse:
        with self._lock:
            self.calls.append({"method": method, "url": url, **kwargs})
        return self.handler(method, url, kwargs)

    def close(self) -> None:
        self.closed = True

    def login_calls(self) -> list[dict[str, Any]]:
        return [c for c in self.calls if c["url"] == LOGIN_URL]

    def api_calls(self) -> list[dict[str, Any]]:
        return [c for c in self.calls if c["url"] != LOGIN_URL]


def login_payload(token: str = "tok-1", **data: Any) -> dict[str, Any]:
    body = {
        "token": token,
        "companies": {
            "0": {"id": "cmp-1", "name": "Acme Ltd"},
            "1": {"id": "cmp-2", "name": "Other Co"},
        },
    }
    body.update(data)
    return {"data": body}


class TokenIssuer:
    """Login handler issuing tok-1, tok-2, ... on successive logins."""

    def __init__(self) -> None:
        self.count = 0
        self._lock = threading.Lock()

    def __call__(self) -> FakeResponse:
        with self._lock:
            self.count += 1
            token = f"tok-{self.count}"
        return FakeResponse(200, login_payload(token))


@pytest.fixture
def credentials() -> CredentialsConfig:
    return CredentialsConfig(
        email="ops@acme.test",
        password="s3cret",
        company_name="Acme Ltd",
    )


@pytest.fixture
def api_config() -> ApiConfig:
    return ApiConfig(base_url=BASE_URL, timeout=5.0)


@pytest.fixture
def config(credentials, api_config) -> TimekeeperConfig:
    return TimekeeperConfig(
        credentials=credentials,
        api=api_config,
        auth=AuthPolicyConfig(token_cache_path=None),
    )


@pytest.fixture
def clock():
    """Mutable clock: set ``clock.now`` to move time."""

    class _Clock:
        now = NOW

        def __call__(self) -> datetime:
            return self.now

    return _Clock()


@pytest.fixture
def make_stack(credentials, api_config, clock):
    """Build (session, manager, executor) around an API handler.

    Login requests are answered by a TokenIssuer; everything else goes to
    ``api_handler(method, url, kwargs)``.
    """

    def _make(api_handler=None, issuer: Optional[TokenIssuer] = None, store=None):
        issuer = issuer or TokenIssuer()

        def handler(method, url, kwargs):
            if url == LOGIN_URL:
                return issuer()
            if api_handler is None:
                return FakeResponse(200, {"data": []})
            return api_handler(method, url, kwargs)

        session = FakeSession(handler)
        manager = CredentialManager(
            credentials,
            api_config,
            policy=AuthPolicyConfig(token_cache_path=None),
            store=store or MemoryCredentialStore(),
            session=session,
            clock=clock,
        )
        executor = RequestExecutor(manager, api_config, session=session)
        return session, manager, executor

    return _make
