"""timekeeper: client layer for the TimeDoctor time-tracking API.

Authenticates and caches a bearer token, fetches paginated collections
with a hard page cap, and resolves opaque user ids into display names
through a cascade of lookup strategies.
"""

from timekeeper.client import TimekeeperClient
from timekeeper.config import TimekeeperConfig, load_config

__all__ = ["TimekeeperClient", "TimekeeperConfig", "load_config"]
