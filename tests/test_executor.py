"""Tests for RequestExecutor: headers, 401 recovery, error mapping."""

from __future__ import annotations

import pytest
import requests

from timekeeper.errors import (
    NetworkUnreachableError,
    NotFoundError,
    PermissionDeniedError,
    RequestFailedError,
    UnauthorizedError,
)

from tests.conftest import BASE_URL, FakeResponse


def test_attaches_token_and_builds_url(make_stack):
    session, _, executor = make_stack(lambda m, u, k: FakeResponse(200, {"data": {"id": "u1"}}))

    body = executor.execute("/api/1.0/users/u1", params={"company": "cmp-1"})

    call = session.api_calls()[0]
    assert body == {"data": {"id": "u1"}}
    assert call["url"] == f"{BASE_URL}/api/1.0/users/u1"
    assert call["headers"]["Authorization"] == "JWT tok-1"
    assert call["params"] == {"company": "cmp-1"}
    assert call["timeout"] == 5.0


def test_company_placeholder_substituted(make_stack):
    session, _, executor = make_stack()

    executor.execute("/api/1.0/companies/{companyId}/projects")

    assert session.api_calls()[0]["url"] == f"{BASE_URL}/api/1.0/companies/cmp-1/projects"


def test_absolute_url_passed_through(make_stack):
    session, _, executor = make_stack()

    executor.execute("https://elsewhere.test/api/1.0/files")

    assert session.api_calls()[0]["url"] == "https://elsewhere.test/api/1.0/files"


def test_single_401_recovers_with_one_reauth(make_stack):
    responses = iter([FakeResponse(401, {"message": "expired"}), FakeResponse(200, {"ok": True})])
    session, _, executor = make_stack(lambda m, u, k: next(responses))

    body = executor.execute("/api/1.0/users")

    api_calls = session.api_calls()
    assert body == {"ok": True}
    assert len(api_calls) == 2
    # one initial login plus exactly one re-authentication
    assert len(session.login_calls()) == 2
    assert api_calls[0]["headers"]["Authorization"] == "JWT tok-1"
    assert api_calls[1]["headers"]["Authorization"] == "JWT tok-2"


def test_second_401_raises_unauthorized(make_stack):
    session, _, executor = make_stack(lambda m, u, k: FakeResponse(401, text="no"))

    with pytest.raises(UnauthorizedError) as exc_info:
        executor.execute("/api/1.0/users")

    assert exc_info.value.status == 401
    assert len(session.api_calls()) == 2
    assert len(session.login_calls()) == 2


@pytest.mark.parametrize(
    "status,expected",
    [(403, PermissionDeniedError), (404, NotFoundError), (500, RequestFailedError), (429, RequestFailedError)],
)
def test_error_statuses_carry_body(make_stack, status, expected):
    session, _, executor = make_stack(lambda m, u, k: FakeResponse(status, text="detail here"))

    with pytest.raises(expected) as exc_info:
        executor.execute("/api/1.0/users")

    assert exc_info.value.status == status
    assert exc_info.value.body == "detail here"
    assert len(session.api_calls()) == 1


def test_timeout_is_not_retried(make_stack):
    def handler(method, url, kwargs):
        raise requests.Timeout("read timed out")

    session, _, executor = make_stack(handler)

    with pytest.raises(NetworkUnreachableError):
        executor.execute("/api/1.0/users")

    assert len(session.api_calls()) == 1


def test_empty_body_decodes_to_empty_dict(make_stack):
    _, _, executor = make_stack(lambda m, u, k: FakeResponse(204))

    assert executor.execute("/api/1.0/users/u1", method="DELETE") == {}


def test_non_json_body_rejected(make_stack):
    _, _, executor = make_stack(lambda m, u, k: FakeResponse(200, text="<html/>"))

    with pytest.raises(RequestFailedError):
        executor.execute("/api/1.0/users")
