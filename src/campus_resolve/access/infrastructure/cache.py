"""
Role Cache
==========

Process-local, bounded cache of resolved roles.

Only the lowest-privilege role is ever stored. Elevated roles are always
re-read from the database so a demotion takes effect on the very next
request instead of after the TTL.
"""

import threading
import time
from collections import OrderedDict
from typing import Callable, Optional, Tuple

from campus_resolve.config import Role, LOWEST_ROLE

# Fraction of max_size above which the whole cache is dropped
CLEAR_THRESHOLD = 0.9


class RoleCache:
    """
    Thread-safe TTL cache keyed by principal external id.

    Eviction: when full the oldest entry is dropped; when more than 90% full
    the cache is cleared before the next insert.
    """

    def __init__(
        self,
        ttl_seconds: float = 5.0,
        max_size: int = 1000,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._ttl = ttl_seconds
        self._max_size = max_size
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: "OrderedDict[str, Tuple[Role, float]]" = OrderedDict()

    @staticmethod
    def is_cacheable(role: Role) -> bool:
        return role == LOWEST_ROLE

    def get(self, principal_id: str) -> Optional[Role]:
        with self._lock:
            entry = self._entries.get(principal_id)
            if entry is None:
                return None
            role, stored_at = entry
            if self._clock() - stored_at >= self._ttl or not self.is_cacheable(role):
                del self._entries[principal_id]
                return None
            return role

    def put(self, principal_id: str, role: Role) -> bool:
        """Store a role if policy allows it. Returns whether it was stored."""
        with self._lock:
            if not self.is_cacheable(role):
                self._entries.pop(principal_id, None)
                return False

            self._entries.pop(principal_id, None)
            if len(self._entries) >= self._max_size:
                self._entries.popitem(last=False)
            if len(self._entries) > self._max_size * CLEAR_THRESHOLD:
                self._entries.clear()
            self._entries[principal_id] = (role, self._clock())
            return True

    def invalidate(self, principal_id: str) -> None:
        with self._lock:
            self._entries.pop(principal_id, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, principal_id: str) -> bool:
        return self.get(principal_id) is not None
