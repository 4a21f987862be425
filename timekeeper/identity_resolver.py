"""Cascading identity resolution for opaque user ids.

Each step is tried in order and the first one that yields a usable name
wins. A step that fails (network error, 404, nothing usable) is logged at
debug level and the cascade moves on; the final step always succeeds
with a deterministic placeholder, so ``resolve()`` never raises.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Any, Callable, Mapping, Optional

from timekeeper.config import ApiConfig, ResolverConfig
from timekeeper.device_names import device_label, iter_device_names, is_real_device_name
from timekeeper.errors import ResolutionExhausted
from timekeeper.executor import RequestExecutor
from timekeeper.models import Confidence, IdentityResolution, ResolutionMethod, SubjectRecord
from timekeeper.names import extract_email, extract_name
from timekeeper.paginator import PaginatedFetcher

logger = logging.getLogger("timekeeper.identity")

# Keys under which activity records embed the owning user
_ACTIVITY_USER_KEYS = ("user", "userInfo", "employee", "owner")
_ACTIVITY_NAME_KEYS = ("userName", "user_name", "employeeName", "userDisplayName")


@dataclass
class _Attempt:
    """Records collected while walking the cascade, reused by later steps."""

    subject_id: str
    records: list[SubjectRecord] = field(default_factory=list)
    device_names: list[str] = field(default_factory=list)

    def add(self, record: SubjectRecord) -> None:
        self.records.append(record)
        for name in record.device_names:
            if name not in self.device_names:
                self.device_names.append(name)


class _TTLCache:
    """Bounded LRU cache with per-entry expiry."""

    def __init__(
        self,
        ttl_seconds: float,
        maxsize: int = 1000,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ttl = ttl_seconds
        self._maxsize = maxsize
        self._clock = clock
        # value stored as (expires_at, payload)
        self._entries: OrderedDict[str, tuple[float, Any]] = OrderedDict()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, key: str) -> Any:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            expires_at, value = entry
            if self._clock() >= expires_at:
                del self._entries[key]
                return None
            self._entries.move_to_end(key)
            return value

    def set(self, key: str, value: Any) -> None:
        if self._ttl <= 0 or self._maxsize < 1:
            return
        with self._lock:
            now = self._clock()
            self._entries.pop(key, None)
            for stale in [k for k, (expires_at, _) in self._entries.items() if now >= expires_at]:
                del self._entries[stale]
            while len(self._entries) >= self._maxsize:
                self._entries.popitem(last=False)
            self._entries[key] = (now + self._ttl, value)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()


class IdentityResolver:
    def __init__(
        self,
        executor: RequestExecutor,
        fetcher: PaginatedFetcher,
        api: ApiConfig,
        config: Optional[ResolverConfig] = None,
        scope_id: Optional[Callable[[], str]] = None,
        today: Callable[[], date] = date.today,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.executor = executor
        self.fetcher = fetcher
        self.api = api
        self.config = config or ResolverConfig()
        self._scope_id = scope_id
        self._today = today
        self._resolutions = _TTLCache(
            self.config.cache_ttl_seconds, self.config.cache_max_entries, clock
        )
        self._directory = _TTLCache(self.config.cache_ttl_seconds, 1, clock)

    def resolve(
        self, subject_id: Any, known_record: Optional[Mapping[str, Any]] = None
    ) -> IdentityResolution:
        """Resolve ``subject_id`` to a display identity. Never raises."""
        subject_id = "" if subject_id is None else str(subject_id).strip()

        cached = self._resolutions.get(subject_id) if subject_id else None
        if cached is not None and known_record is None:
            return cached

        attempt = _Attempt(subject_id)
        steps = [
            (ResolutionMethod.PROVIDED_RECORD, lambda: self._resolve_provided(attempt, known_record)),
            (ResolutionMethod.DIRECT_LOOKUP, lambda: self._resolve_direct(attempt)),
            (ResolutionMethod.LIST_SEARCH, lambda: self._resolve_list_search(attempt)),
            (ResolutionMethod.ACTIVITY_INFERENCE, lambda: self._resolve_activity(attempt)),
            (ResolutionMethod.DEVICE_NAME_PATTERN, lambda: self._resolve_device_name(attempt)),
        ]
        for method, step in steps:
            try:
                resolution = step()
            except ResolutionExhausted as exc:
                logger.debug(
                    "%s found nothing: %s", method.value, exc,
                    extra={"subject_id": subject_id, "method": method.value},
                )
                continue
            except Exception as exc:
                logger.debug(
                    "%s failed: %s", method.value, exc,
                    extra={"subject_id": subject_id, "method": method.value},
                )
                continue
            logger.info(
                "Resolved %s via %s", subject_id, method.value,
                extra={"subject_id": subject_id, "method": method.value},
            )
            if subject_id:
                self._resolutions.set(subject_id, resolution)
            return resolution

        logger.info(
            "Could not resolve %s, using placeholder", subject_id or "<empty id>",
            extra={"subject_id": subject_id, "method": ResolutionMethod.SYNTHETIC_FALLBACK.value},
        )
        return self._synthetic(subject_id)

    def clear_cache(self) -> None:
        self._resolutions.clear()
        self._directory.clear()

    # ------------------------------------------------------------------
    # Strategies
    # ------------------------------------------------------------------

    def _from_record(
        self,
        attempt: _Attempt,
        record: SubjectRecord,
        method: ResolutionMethod,
        confidence: Confidence,
    ) -> IdentityResolution:
        attempt.add(record)
        found = extract_name(record)
        if found is None:
            raise ResolutionExhausted("record carries no usable name")
        name, source = found
        logger.debug("Name taken from %s", source, extra={"subject_id": attempt.subject_id})
        return IdentityResolution(
            subject_id=attempt.subject_id,
            resolved_name=name,
            resolved_email=extract_email(record),
            method=method,
            confidence=confidence,
            success=True,
        )

    def _resolve_provided(
        self, attempt: _Attempt, known_record: Optional[Mapping[str, Any]]
    ) -> IdentityResolution:
        if known_record is None:
            raise ResolutionExhausted("no record provided")
        return self._from_record(
            attempt,
            SubjectRecord.from_mapping(known_record),
            ResolutionMethod.PROVIDED_RECORD,
            Confidence.HIGH,
        )

    def _resolve_direct(self, attempt: _Attempt) -> IdentityResolution:
        if not attempt.subject_id:
            raise ResolutionExhausted("empty subject id")
        body = self.executor.execute(self.api.resource(f"users/{attempt.subject_id}"))
        return self._from_record(
            attempt,
            SubjectRecord.from_mapping(body),
            ResolutionMethod.DIRECT_LOOKUP,
            Confidence.HIGH,
        )

    def _resolve_list_search(self, attempt: _Attempt) -> IdentityResolution:
        if not attempt.subject_id:
            raise ResolutionExhausted("empty subject id")
        for raw in self._user_directory():
            if isinstance(raw, Mapping) and str(raw.get("id")) == attempt.subject_id:
                return self._from_record(
                    attempt,
                    SubjectRecord.from_mapping(raw),
                    ResolutionMethod.LIST_SEARCH,
                    Confidence.HIGH,
                )
        raise ResolutionExhausted("subject not in user list")

    def _user_directory(self) -> list[Any]:
        users = self._directory.get("users")
        if users is None:
            params = {"detail": "extended"}
            if self._scope_id is not None:
                params["company"] = self._scope_id()
            result = self.fetcher.fetch_all(self.api.resource("users"), params)
            users = result.items
            if result.is_single_object and isinstance(result.payload, Mapping):
                users = [result.payload.get("data", result.payload)]
            self._directory.set("users", users)
        return users

    def _resolve_activity(self, attempt: _Attempt) -> IdentityResolution:
        if not attempt.subject_id:
            raise ResolutionExhausted("empty subject id")
        today = self._today()
        start = today - timedelta(days=self.config.activity_window_days)
        params = {
            "user": attempt.subject_id,
            "from": start.isoformat(),
            "to": today.isoformat(),
            "limit": str(self.config.activity_sample_size),
        }
        if self._scope_id is not None:
            params["company"] = self._scope_id()

        body = self.executor.execute(self.api.resource("activity/worklog"), params=params)
        records = body.get("data") if isinstance(body, Mapping) else None
        if not isinstance(records, list) or not records:
            raise ResolutionExhausted("no recent activity")

        for activity in records[: self.config.activity_sample_size]:
            if not isinstance(activity, Mapping):
                continue
            attempt.device_names.extend(
                n for n in iter_device_names(activity) if n not in attempt.device_names
            )
            for candidate in self._activity_candidates(activity):
                found = extract_name(candidate)
                if found is not None:
                    return IdentityResolution(
                        subject_id=attempt.subject_id,
                        resolved_name=found[0],
                        resolved_email=extract_email(candidate),
                        method=ResolutionMethod.ACTIVITY_INFERENCE,
                        confidence=Confidence.MEDIUM,
                        success=True,
                    )
        raise ResolutionExhausted("activity records carry no name")

    @staticmethod
    def _activity_candidates(activity: Mapping[str, Any]) -> list[SubjectRecord]:
        candidates = []
        for key in _ACTIVITY_USER_KEYS:
            nested = activity.get(key)
            if isinstance(nested, Mapping):
                candidates.append(SubjectRecord.from_mapping(nested))
        for key in _ACTIVITY_NAME_KEYS:
            value = activity.get(key)
            if isinstance(value, str):
                candidates.append(SubjectRecord(name=value))
        email = activity.get("userEmail") or activity.get("email")
        if isinstance(email, str):
            candidates.append(SubjectRecord(email=email))
        return candidates

    def _resolve_device_name(self, attempt: _Attempt) -> IdentityResolution:
        for name in attempt.device_names:
            if is_real_device_name(name):
                return IdentityResolution(
                    subject_id=attempt.subject_id,
                    resolved_name=device_label(name),
                    resolved_email=None,
                    method=ResolutionMethod.DEVICE_NAME_PATTERN,
                    confidence=Confidence.LOW,
                    success=True,
                )
        raise ResolutionExhausted("no real device name seen")

    def _synthetic(self, subject_id: str) -> IdentityResolution:
        prefix = subject_id[: self.config.synthetic_prefix_length]
        return IdentityResolution(
            subject_id=subject_id,
            resolved_name=f"User {prefix}" if prefix else "Unknown User",
            resolved_email=None,
            method=ResolutionMethod.SYNTHETIC_FALLBACK,
            confidence=Confidence.VERY_LOW,
            success=False,
        )
