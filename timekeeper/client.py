"""Consumer-facing facade wiring auth, requests, pagination and identity."""

from __future__ import annotations

import logging
import time
from datetime import date, timedelta
from typing import Any, Mapping, Optional

import requests

from timekeeper.auth import CredentialManager
from timekeeper.config import TimekeeperConfig
from timekeeper.credential_store import CredentialStore, FileCredentialStore, MemoryCredentialStore
from timekeeper.errors import RequestError
from timekeeper.executor import RequestExecutor
from timekeeper.identity_resolver import IdentityResolver
from timekeeper.models import (
    CollectionResult,
    Credential,
    IdentityResolution,
    MonitoringReport,
    UserMonitoring,
)
from timekeeper.paginator import PaginatedFetcher

logger = logging.getLogger("timekeeper.client")

# Default date windows, in days
DAY = 1
WEEK = 7


class TimekeeperClient:
    """Entry point for callers (servers, exporters, schedulers).

    Usage:
        client = TimekeeperClient.from_config(load_config())
        users = client.fetch_all("/api/1.0/users", {"company": client.scope_id()})
        identity = client.resolve_identity("aXb9Kq2mZ0")
    """

    def __init__(
        self,
        config: TimekeeperConfig,
        store: Optional[CredentialStore] = None,
        session: Optional[requests.Session] = None,
        auth: Optional[CredentialManager] = None,
    ) -> None:
        self.config = config
        self._session = session or requests.Session()
        self.auth = auth or CredentialManager(
            config.credentials,
            config.api,
            policy=config.auth,
            store=store or MemoryCredentialStore(),
            session=self._session,
        )
        self.executor = RequestExecutor(self.auth, config.api, session=self._session)
        self.fetcher = PaginatedFetcher(
            self.executor,
            page_size=config.api.page_size,
            max_pages=config.api.max_pages,
            page_delay=config.api.page_delay,
        )
        self.resolver = IdentityResolver(
            self.executor,
            self.fetcher,
            config.api,
            config.resolver,
            scope_id=self.scope_id,
        )

    @classmethod
    def from_config(cls, config: TimekeeperConfig) -> "TimekeeperClient":
        """Build a client that persists its token to the configured cache file."""
        path = config.auth.token_cache_path
        store: CredentialStore = FileCredentialStore(path) if path else MemoryCredentialStore()
        return cls(config, store=store)

    def close(self) -> None:
        self._session.close()

    # ------------------------------------------------------------------
    # Core surface
    # ------------------------------------------------------------------

    def get_credential(self) -> Credential:
        return self.auth.get_credential()

    def invalidate_credential(self) -> None:
        self.auth.invalidate()
        self.resolver.clear_cache()

    def request(self, endpoint: str, **options: Any) -> Any:
        """Single authenticated call; see RequestExecutor.execute for options."""
        return self.executor.execute(endpoint, **options)

    def fetch_all(
        self, endpoint: str, params: Optional[Mapping[str, Any]] = None
    ) -> CollectionResult:
        return self.fetcher.fetch_all(endpoint, params)

    def resolve_identity(
        self, subject_id: Any, known_record: Optional[Mapping[str, Any]] = None
    ) -> IdentityResolution:
        return self.resolver.resolve(subject_id, known_record)

    # ------------------------------------------------------------------
    # Endpoint helpers
    # ------------------------------------------------------------------

    def scope_id(self) -> str:
        return self.get_credential().scope_id

    def token_status(self) -> dict[str, Any]:
        return self.auth.status()

    def get_users(self, **params: Any) -> CollectionResult:
        query = {"company": self.scope_id(), **params}
        return self.fetch_all(self.config.api.resource("users"), query)

    def get_user(self, user_id: str) -> Any:
        return self.request(self.config.api.resource(f"users/{user_id}"))

    def _window_query(
        self,
        days: int,
        user_id: Optional[str],
        start: Optional[date],
        end: Optional[date],
        params: Mapping[str, Any],
    ) -> dict[str, Any]:
        end = end or date.today()
        start = start or end - timedelta(days=days)
        query: dict[str, Any] = {
            "company": self.scope_id(),
            "from": start.isoformat(),
            "to": end.isoformat(),
        }
        if user_id:
            query["user"] = user_id
        query.update(params)
        return query

    def get_activity_worklog(
        self,
        user_id: Optional[str] = None,
        start: Optional[date] = None,
        end: Optional[date] = None,
        **params: Any,
    ) -> CollectionResult:
        """Worklog entries, defaulting to the last 7 days."""
        query = self._window_query(WEEK, user_id, start, end, params)
        return self.fetch_all(self.config.api.resource("activity/worklog"), query)

    def get_screenshots(
        self,
        user_id: Optional[str] = None,
        start: Optional[date] = None,
        end: Optional[date] = None,
        **params: Any,
    ) -> CollectionResult:
        """Screenshots, defaulting to the last day."""
        query = self._window_query(DAY, user_id, start, end, params)
        return self.fetch_all(self.config.api.resource("screenshots"), query)

    def get_files(
        self,
        user_id: Optional[str] = None,
        start: Optional[date] = None,
        end: Optional[date] = None,
        **params: Any,
    ) -> CollectionResult:
        """Uploaded files filtered by ``filter[date]=<from>_<to>`` (last day by default)."""
        query = self._window_query(DAY, user_id, start, end, params)
        date_from, date_to = query.pop("from"), query.pop("to")
        query.setdefault("filter[date]", f"{date_from}_{date_to}")
        return self.fetch_all(self.config.api.resource("files"), query)

    def get_activity_timeuse(
        self,
        user_id: Optional[str] = None,
        start: Optional[date] = None,
        end: Optional[date] = None,
        **params: Any,
    ) -> CollectionResult:
        query = self._window_query(WEEK, user_id, start, end, params)
        return self.fetch_all(self.config.api.resource("activity/timeuse"), query)

    def get_disconnectivity(
        self,
        user_id: Optional[str] = None,
        start: Optional[date] = None,
        end: Optional[date] = None,
        **params: Any,
    ) -> CollectionResult:
        query = self._window_query(WEEK, user_id, start, end, params)
        return self.fetch_all(self.config.api.resource("activity/disconnectivity"), query)

    def get_timeuse_stats(
        self, start: Optional[date] = None, end: Optional[date] = None, **params: Any
    ) -> Any:
        """Aggregated time-use statistics (single response, not paginated)."""
        query = self._window_query(WEEK, None, start, end, params)
        return self.request(self.config.api.resource("activity/timeuse/stats"), params=query)

    def get_total_stats(
        self, start: Optional[date] = None, end: Optional[date] = None, **params: Any
    ) -> Any:
        query = self._window_query(WEEK, None, start, end, params)
        return self.request(self.config.api.resource("activity/stats/total"), params=query)

    def get_user_activity(
        self,
        user_id: str,
        start: Optional[date] = None,
        end: Optional[date] = None,
        **params: Any,
    ) -> Any:
        """Activity summary for one user."""
        query = self._window_query(WEEK, user_id, start, end, params)
        return self.request(self.config.api.resource("activity/summary"), params=query)

    # ------------------------------------------------------------------
    # Monitoring sweep
    # ------------------------------------------------------------------

    def monitor_users(
        self,
        start: Optional[date] = None,
        end: Optional[date] = None,
        delay: float = 0.0,
    ) -> MonitoringReport:
        """Collect every monitoring feed for every user, one user at a time.

        A failing feed or user is recorded on that user's entry and the sweep
        moves on. Authentication failures still propagate.
        """
        end = end or date.today()
        start = start or end - timedelta(days=WEEK)
        feeds = {
            "worklog": self.get_activity_worklog,
            "screenshots": self.get_screenshots,
            "timeuse": self.get_activity_timeuse,
            "disconnectivity": self.get_disconnectivity,
        }
        report = MonitoringReport()

        for index, raw in enumerate(self.get_users().items):
            if not isinstance(raw, Mapping) or raw.get("id") in (None, ""):
                logger.warning("Skipping user record without id")
                continue
            if index and delay:
                time.sleep(delay)

            user_id = str(raw["id"])
            identity = self.resolve_identity(user_id, known_record=raw)
            entry = UserMonitoring(
                user_id=user_id,
                username=identity.resolved_name or user_id,
                email=identity.resolved_email,
            )
            for name, fetch in feeds.items():
                try:
                    entry.feeds[name] = fetch(user_id=user_id, start=start, end=end).items
                except RequestError as exc:
                    logger.warning(
                        "%s feed failed for %s: %s", name, user_id, exc,
                        extra={"subject_id": user_id, "status": exc.status},
                    )
                    entry.errors[name] = str(exc)
            report.users.append(entry)

        logger.info(
            "Monitoring sweep covered %d users, %d with data",
            report.total_users,
            report.users_with_data,
        )
        return report
