"""Value types shared by the auth, pagination and identity layers."""

from __future__ import annotations

import hashlib
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Mapping, Optional

from timekeeper.device_names import iter_device_names


def principal_fingerprint(email: str, company_name: str) -> str:
    """Stable digest of the configured login principal (no secrets)."""
    raw = f"{email.strip().lower()}\x00{company_name.strip()}"
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class Credential:
    token: str
    scope_id: str
    expires_at: datetime
    issued_for: str
    cached_at: Optional[datetime] = None

    def time_remaining(self, now: datetime) -> timedelta:
        return self.expires_at - now

    def is_valid(self, fingerprint: str, now: datetime, skew: timedelta) -> bool:
        """Valid only while more than ``skew`` remains and the principal matches."""
        if self.issued_for != fingerprint:
            return False
        return now < self.expires_at - skew


class TerminationReason(str, Enum):
    SHORT_PAGE = "short_page"
    PAGINATION_META_EXHAUSTED = "pagination_meta_exhausted"
    SAFETY_CAP_REACHED = "safety_cap_reached"
    SINGLE_OBJECT_RESPONSE = "single_object_response"


@dataclass(frozen=True)
class PageRequest:
    endpoint: str
    params: dict[str, str] = field(default_factory=dict)
    page_field: str = "page"
    size_field: str = "limit"
    page_size: int = 1000
    first_page: int = 1

    def params_for(self, page: int) -> dict[str, str]:
        merged = dict(self.params)
        merged[self.page_field] = str(page)
        merged[self.size_field] = str(self.page_size)
        return merged


@dataclass(frozen=True)
class PageResult:
    page: int
    items: list[Any]
    is_terminal: bool
    termination_reason: Optional[TerminationReason] = None


@dataclass
class CollectionResult:
    items: list[Any]
    fetched_completely: bool
    termination_reason: TerminationReason
    pages_fetched: int
    payload: Any = None  # unmodified body of a single-object response

    @property
    def total_count(self) -> int:
        return len(self.items)

    @property
    def is_single_object(self) -> bool:
        return self.termination_reason is TerminationReason.SINGLE_OBJECT_RESPONSE


def _str_or_none(value: Any) -> Optional[str]:
    return value if isinstance(value, str) else None


@dataclass(frozen=True)
class SubjectRecord:
    """A user record as returned by any of the upstream endpoints.

    Every field is optional; upstream shapes differ per endpoint.
    """

    id: Optional[str] = None
    name: Optional[str] = None
    display_name: Optional[str] = None
    full_name: Optional[str] = None
    username: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None
    timezone: Optional[str] = None
    role: Optional[str] = None
    device_names: tuple[str, ...] = ()

    @classmethod
    def from_mapping(cls, raw: Any) -> "SubjectRecord":
        """Build a record from a loosely typed mapping; anything else is empty.

        A ``{"data": {...}}`` envelope is unwrapped.
        """
        if not isinstance(raw, Mapping):
            return cls()
        inner = raw.get("data")
        if isinstance(inner, Mapping):
            raw = inner

        raw_id = raw.get("id")
        return cls(
            id=str(raw_id) if isinstance(raw_id, (str, int)) else None,
            name=_str_or_none(raw.get("name")),
            display_name=_str_or_none(raw.get("displayName")),
            full_name=_str_or_none(raw.get("fullName")),
            username=_str_or_none(raw.get("username")),
            first_name=_str_or_none(raw.get("firstName")),
            last_name=_str_or_none(raw.get("lastName")),
            email=_str_or_none(raw.get("email")),
            timezone=_str_or_none(raw.get("timezone")),
            role=_str_or_none(raw.get("role")),
            device_names=tuple(iter_device_names(raw)),
        )


class ResolutionMethod(str, Enum):
    PROVIDED_RECORD = "provided_record"
    DIRECT_LOOKUP = "direct_lookup"
    LIST_SEARCH = "list_search"
    ACTIVITY_INFERENCE = "activity_inference"
    DEVICE_NAME_PATTERN = "device_name_pattern"
    SYNTHETIC_FALLBACK = "synthetic_fallback"


class Confidence(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    VERY_LOW = "very_low"


@dataclass(frozen=True)
class IdentityResolution:
    subject_id: str
    resolved_name: Optional[str]
    resolved_email: Optional[str]
    method: ResolutionMethod
    confidence: Confidence
    success: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "subjectId": self.subject_id,
            "resolvedName": self.resolved_name,
            "resolvedEmail": self.resolved_email,
            "method": self.method.value,
            "confidence": self.confidence.value,
            "success": self.success,
        }


@dataclass
class UserMonitoring:
    """Activity feeds gathered for one user by a monitoring sweep."""

    user_id: str
    username: str
    email: Optional[str] = None
    feeds: dict[str, list[Any]] = field(default_factory=dict)
    errors: dict[str, str] = field(default_factory=dict)

    @property
    def has_data(self) -> bool:
        return any(self.feeds.values())

    def to_dict(self) -> dict[str, Any]:
        return {
            "userId": self.user_id,
            "username": self.username,
            "email": self.email,
            "feeds": {name: len(items) for name, items in self.feeds.items()},
            "errors": dict(self.errors),
            "hasData": self.has_data,
        }


@dataclass
class MonitoringReport:
    users: list[UserMonitoring] = field(default_factory=list)

    @property
    def total_users(self) -> int:
        return len(self.users)

    @property
    def users_with_data(self) -> int:
        return sum(1 for user in self.users if user.has_data)

    def to_dict(self) -> dict[str, Any]:
        return {
            "totalUsers": self.total_users,
            "usersWithData": self.users_with_data,
            "users": [user.to_dict() for user in self.users],
        }
