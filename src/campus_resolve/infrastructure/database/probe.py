"""
Schema Capability Probe
=======================

Optional configuration surfaces (tables, or columns on existing tables)
arrive through progressive migrations, so a given deployment may not have
them yet. The probe answers ``exists(surface)`` from a capability set that
is negotiated at startup and refreshed once an entry is older than the TTL.

Surface names are either ``"table"`` or ``"table.column"``.
"""

import threading
import time
from typing import Callable, Dict, Iterable, Optional, Tuple

from sqlalchemy import inspect
from sqlalchemy.ext.asyncio import AsyncEngine

from campus_resolve.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


def _inspect_surface(sync_conn, surface: str) -> bool:
    inspector = inspect(sync_conn)
    table, _, column = surface.partition(".")
    if not inspector.has_table(table):
        return False
    if not column:
        return True
    return any(c["name"] == column for c in inspector.get_columns(table))


class SchemaProbe:
    """
    Memoized existence checks for optional schema surfaces.

    Probe failures are reported as "absent" and are not memoized, so the
    next call after a transient error probes again.
    """

    def __init__(
        self,
        engine_provider: Callable[[], AsyncEngine],
        ttl_seconds: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._engine_provider = engine_provider
        self._ttl = ttl_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._capabilities: Dict[str, Tuple[bool, float]] = {}

    def _cached(self, surface: str) -> Optional[bool]:
        with self._lock:
            entry = self._capabilities.get(surface)
            if entry is None:
                return None
            present, checked_at = entry
            if self._clock() - checked_at >= self._ttl:
                del self._capabilities[surface]
                return None
            return present

    def _remember(self, surface: str, present: bool) -> None:
        with self._lock:
            self._capabilities[surface] = (present, self._clock())

    async def _probe(self, surface: str) -> bool:
        engine = self._engine_provider()
        async with engine.connect() as conn:
            return await conn.run_sync(_inspect_surface, surface)

    async def exists(self, surface: str) -> bool:
        """Whether the surface is provisioned in the connected database."""
        cached = self._cached(surface)
        if cached is not None:
            return cached

        try:
            present = await self._probe(surface)
        except Exception as e:
            logger.warning(
                "Schema probe failed, treating surface as absent",
                extra={"surface": surface, "error": str(e)}
            )
            return False

        self._remember(surface, present)
        if not present:
            logger.info("Optional schema surface not provisioned", extra={"surface": surface})
        return present

    async def negotiate(self, surfaces: Iterable[str]) -> Dict[str, bool]:
        """Probe every surface up front and return the capability set."""
        return {surface: await self.exists(surface) for surface in surfaces}

    def capabilities(self) -> Dict[str, bool]:
        """Snapshot of the currently memoized capability set."""
        with self._lock:
            return {surface: present for surface, (present, _) in self._capabilities.items()}

    def invalidate(self, surface: Optional[str] = None) -> None:
        with self._lock:
            if surface is None:
                self._capabilities.clear()
            else:
                self._capabilities.pop(surface, None)
