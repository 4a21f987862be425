"""Authenticated HTTP calls with a single re-login on 401."""

from __future__ import annotations

import logging
from typing import Any, Mapping, Optional

import requests

from timekeeper.auth import CredentialManager
from timekeeper.config import ApiConfig
from timekeeper.errors import (
    NetworkUnreachableError,
    NotFoundError,
    PermissionDeniedError,
    RequestFailedError,
    UnauthorizedError,
)
from timekeeper.models import Credential

logger = logging.getLogger("timekeeper.executor")

_SCOPE_PLACEHOLDER = "{companyId}"


class RequestExecutor:
    """Issues one API call with the current token attached.

    The only retry in the package lives here: a 401 triggers exactly one
    re-authentication and one repeat of the same request. Timeouts and
    other failures surface immediately.
    """

    def __init__(
        self,
        auth: CredentialManager,
        api: ApiConfig,
        session: Optional[requests.Session] = None,
    ) -> None:
        self._auth = auth
        self._api = api
        self._session = session or requests.Session()

    def execute(
        self,
        endpoint: str,
        method: str = "GET",
        params: Optional[Mapping[str, Any]] = None,
        json: Any = None,
        headers: Optional[Mapping[str, str]] = None,
    ) -> Any:
        credential = self._auth.get_credential()
        resp = self._send(credential, endpoint, method, params, json, headers)

        if resp.status_code == 401:
            logger.warning(
                "Received 401, re-authenticating and retrying once",
                extra={"endpoint": endpoint, "status": 401},
            )
            credential = self._auth.refresh(credential)
            resp = self._send(credential, endpoint, method, params, json, headers)
            if resp.status_code == 401:
                raise UnauthorizedError(
                    f"API Error 401 after re-authentication: {resp.text}",
                    status=401,
                    body=resp.text,
                )

        return self._handle_response(resp, endpoint)

    def _url(self, endpoint: str, credential: Credential) -> str:
        endpoint = endpoint.replace(_SCOPE_PLACEHOLDER, credential.scope_id)
        if endpoint.startswith(("http://", "https://")):
            return endpoint
        return f"{self._api.base_url}/{endpoint.lstrip('/')}"

    def _send(
        self,
        credential: Credential,
        endpoint: str,
        method: str,
        params: Optional[Mapping[str, Any]],
        json: Any,
        headers: Optional[Mapping[str, str]],
    ) -> requests.Response:
        merged_headers = {
            "Authorization": f"{self._api.auth_scheme} {credential.token}",
            "Accept": "application/json",
            "Content-Type": "application/json",
        }
        if headers:
            merged_headers.update(headers)

        url = self._url(endpoint, credential)
        logger.debug("API request %s %s", method, url, extra={"endpoint": endpoint})
        try:
            return self._session.request(
                method,
                url,
                params=dict(params) if params else None,
                json=json,
                headers=merged_headers,
                timeout=self._api.timeout,
            )
        except requests.Timeout as exc:
            raise NetworkUnreachableError(
                f"Request to {endpoint} timed out after {self._api.timeout}s"
            ) from exc
        except requests.RequestException as exc:
            raise NetworkUnreachableError(f"Request to {endpoint} failed: {exc}") from exc

    @staticmethod
    def _handle_response(resp: requests.Response, endpoint: str) -> Any:
        status = resp.status_code
        if status == 403:
            raise PermissionDeniedError(
                f"API Error 403 for {endpoint}: {resp.text}", status=status, body=resp.text
            )
        if status == 404:
            raise NotFoundError(
                f"API Error 404 for {endpoint}: {resp.text}", status=status, body=resp.text
            )
        if not 200 <= status < 300:
            raise RequestFailedError(
                f"API Error {status} for {endpoint}: {resp.text}", status=status, body=resp.text
            )

        if not resp.content:
            return {}
        try:
            return resp.json()
        except ValueError as exc:
            raise RequestFailedError(
                f"Non-JSON response from {endpoint}", status=status, body=resp.text[:500]
            ) from exc
