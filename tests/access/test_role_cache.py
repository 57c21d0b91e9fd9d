"""Tests for the role cache."""

from campus_resolve.access.infrastructure import RoleCache
from campus_resolve.config import Role


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


class TestRoleCachePolicy:
    """Tests for which roles are cached."""

    def test_student_role_is_cached(self):
        """Test the lowest role is stored."""
        cache = RoleCache()
        assert cache.put("student-1", Role.STUDENT) is True
        assert cache.get("student-1") == Role.STUDENT

    def test_elevated_roles_are_never_cached(self):
        """Test committee and above always go back to the database."""
        cache = RoleCache()
        for role in (Role.COMMITTEE, Role.ADMIN, Role.SUPER_ADMIN):
            assert cache.put("spoc-1", role) is False
            assert cache.get("spoc-1") is None
        assert len(cache) == 0

    def test_elevated_put_evicts_stale_student_entry(self):
        """Test a promotion seen through put removes the cached student role."""
        cache = RoleCache()
        cache.put("student-1", Role.STUDENT)
        cache.put("student-1", Role.ADMIN)
        assert "student-1" not in cache

    def test_invalidate(self):
        """Test explicit invalidation."""
        cache = RoleCache()
        cache.put("student-1", Role.STUDENT)
        cache.invalidate("student-1")
        assert cache.get("student-1") is None


class TestRoleCacheExpiry:
    """Tests for TTL and size bounds."""

    def test_entry_expires_after_ttl(self):
        """Test entries are dropped once the TTL has elapsed."""
        clock = FakeClock()
        cache = RoleCache(ttl_seconds=5, clock=clock)
        cache.put("student-1", Role.STUDENT)

        clock.now = 4.9
        assert cache.get("student-1") == Role.STUDENT
        clock.now = 5.0
        assert cache.get("student-1") is None
        assert len(cache) == 0

    def test_cache_cleared_when_nearly_full(self):
        """Test the whole cache is dropped once it is more than 90% full."""
        cache = RoleCache(max_size=20)
        for i in range(19):
            cache.put(f"student-{i}", Role.STUDENT)
        assert len(cache) == 19

        cache.put("student-19", Role.STUDENT)
        assert len(cache) == 1
        assert cache.get("student-19") == Role.STUDENT

    def test_size_never_exceeds_max(self):
        """Test many inserts stay within max_size."""
        cache = RoleCache(max_size=10)
        for i in range(100):
            cache.put(f"student-{i}", Role.STUDENT)
            assert len(cache) <= 10
