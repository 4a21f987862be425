"""Exception hierarchy for authentication, requests and identity resolution."""

from __future__ import annotations

from typing import Optional


class TimekeeperError(Exception):
    """Base class for every error raised by this package."""


# ----------------------------------------------------------------------
# Authentication
# ----------------------------------------------------------------------


class AuthError(TimekeeperError):
    """Login failed; fatal to the calling operation."""

    def __init__(self, message: str, status: Optional[int] = None) -> None:
        super().__init__(message)
        self.status = status


class InvalidCredentialsError(AuthError):
    pass


class ForbiddenError(AuthError):
    pass


class TwoFactorRequiredError(AuthError):
    pass


class MalformedAuthResponseError(AuthError):
    pass


class ScopeNotFoundError(AuthError):
    """The configured company is not among those the account can access."""

    def __init__(self, company_name: str, available: list[tuple[str, str]]) -> None:
        self.company_name = company_name
        self.available = available
        if available:
            listing = "; ".join(f"{name} (ID: {cid})" for name, cid in available)
            message = (
                f"Company '{company_name}' not found in account. "
                f"Available companies: {listing}. "
                "Update TD_COMPANY_NAME with one of these names."
            )
        else:
            message = f"Company '{company_name}' not found in account (no companies listed)"
        super().__init__(message)


# ----------------------------------------------------------------------
# Requests
# ----------------------------------------------------------------------


class RequestError(TimekeeperError):
    """A call to the API failed. ``body`` holds the response text, if any."""

    def __init__(self, message: str, status: Optional[int] = None, body: str = "") -> None:
        super().__init__(message)
        self.status = status
        self.body = body


class UnauthorizedError(RequestError):
    pass


class PermissionDeniedError(RequestError):
    pass


class NotFoundError(RequestError):
    pass


class NetworkUnreachableError(RequestError):
    pass


class RequestFailedError(RequestError):
    pass


# ----------------------------------------------------------------------
# Identity resolution
# ----------------------------------------------------------------------


class ResolutionExhausted(TimekeeperError):
    """Raised by a resolver strategy that found nothing. Never leaves the resolver."""
