"""Session-scoped cache shared by the swap components."""

from dataclasses import dataclass, field

from .types import PoolKey


@dataclass
class SessionCache:
    """Resolved pool keys and signer capabilities for one session.

    Written once per entry from the single control flow; invalidated
    explicitly when the traded pair changes.
    """

    pool_keys: dict[str, list[PoolKey]] = field(default_factory=dict)
    unavailable: dict[str, str] = field(default_factory=dict)
    atomic_batch_support: dict[str, bool] = field(default_factory=dict)

    def get_route(self, pair_id: str) -> list[PoolKey] | None:
        return self.pool_keys.get(pair_id)

    def store_route(self, pair_id: str, keys: list[PoolKey]):
        self.pool_keys[pair_id] = list(keys)
        self.unavailable.pop(pair_id, None)

    def mark_unavailable(self, pair_id: str, reason: str):
        self.unavailable[pair_id] = reason

    def invalidate_pair(self, pair_id: str):
        """Forget the failure state of a pair so it may be resolved again."""
        self.unavailable.pop(pair_id, None)

    def clear(self):
        self.pool_keys.clear()
        self.unavailable.clear()
        self.atomic_batch_support.clear()
