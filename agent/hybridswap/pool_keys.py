"""Pool key resolution from configuration or chain state."""

import asyncio
import logging

from web3.exceptions import Web3Exception

from .cache import SessionCache
from .config import PairConfig
from .errors import PoolKeyUnavailable
from .types import PoolKey

logger = logging.getLogger(__name__)


class PoolKeyResolver:
    """Resolves the pool key(s) of a pair and caches them for the session."""

    def __init__(self, reader, cache: SessionCache, read_timeout: float = 10.0):
        self.reader = reader
        self.cache = cache
        self.read_timeout = read_timeout

    async def resolve(self, pair: PairConfig) -> PoolKey:
        """Return the pair's first (native-side) pool key."""
        route = await self.resolve_route(pair)
        return route[0]

    async def resolve_route(self, pair: PairConfig) -> list[PoolKey]:
        """Return one key for direct pairs, two for indirect pairs."""
        cached = self.cache.get_route(pair.pair_id)
        if cached is not None:
            return cached

        if pair.pair_id in self.cache.unavailable:
            raise PoolKeyUnavailable(pair.pair_id, self.cache.unavailable[pair.pair_id])

        if pair.is_dynamic:
            try:
                key = await asyncio.wait_for(self._read_registered_key(), self.read_timeout)
            except (Web3Exception, ValueError, asyncio.TimeoutError) as e:
                reason = str(e) or type(e).__name__
                logger.error(f"Pool key lookup failed for {pair.pair_id}: {reason}")
                self.cache.mark_unavailable(pair.pair_id, reason)
                raise PoolKeyUnavailable(pair.pair_id, reason) from e
            route = [key]
        else:
            route = [pair.pool]
            if pair.is_indirect:
                if pair.second_pool is None:
                    self.cache.mark_unavailable(pair.pair_id, "missing second pool")
                    raise PoolKeyUnavailable(pair.pair_id, "missing second pool")
                route.append(pair.second_pool)

        self.cache.store_route(pair.pair_id, route)
        logger.info(f"Resolved pool key(s) for {pair.pair_id}: {route}")
        return route

    async def _read_registered_key(self) -> PoolKey:
        pool_id = await self.reader.pool_id_raw()
        hook_address = await self.reader.hook_address()
        return await self.reader.get_pool_key(hook_address, pool_id)
