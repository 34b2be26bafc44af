"""Cache performance counters.

Usage:
    from fpl_sync.monitoring.metrics import CacheMetrics

    cm = CacheMetrics(hits=80, misses=15, invalid_entries=5)
    print(f"Hit rate: {cm.hit_rate}%")  # 80.0%
"""

from dataclasses import dataclass


@dataclass
class CacheMetrics:
    """Track cache-aside behaviour of one synchronized entity kind.

    Attributes:
        hits: Reads served from a warm, structurally valid cache entry
        misses: Reads that found no usable cache entry and went to the store
        invalid_entries: Cache entries discarded as structurally invalid (also a miss)
        read_errors: Cache reads that failed and fell back to the store (also a miss)
        write_failures: Cache writes that failed after the store was read or written
    """

    hits: int = 0
    misses: int = 0
    invalid_entries: int = 0
    read_errors: int = 0
    write_failures: int = 0

    @property
    def lookups(self) -> int:
        return self.hits + self.misses

    @property
    def hit_rate(self) -> float:
        """Calculate cache hit rate as percentage.

        Returns 0.0 if no cache lookups have occurred.
        """
        total = self.lookups
        return round(self.hits / total * 100, 1) if total > 0 else 0.0

    def to_dict(self) -> dict:
        """Export metrics as dictionary for API responses."""
        return {
            "hits": self.hits,
            "misses": self.misses,
            "invalid_entries": self.invalid_entries,
            "read_errors": self.read_errors,
            "write_failures": self.write_failures,
            "hit_rate": self.hit_rate,
        }
