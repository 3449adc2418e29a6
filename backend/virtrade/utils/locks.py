"""
Keyed Locks

One asyncio.Lock per ledger key, e.g. (email, currency). Operations that
read-validate-write a balance or a position hold the lock for the key of
the scope they touch, so at most one mutation per key is in flight.

These locks serialize within one process only. Across worker processes
the balance row of the scope is also locked with SELECT ... FOR UPDATE
(see LedgerRepository.get_balance), which PostgreSQL honours.
"""
import asyncio
import weakref
from contextlib import AsyncExitStack, asynccontextmanager
from typing import Any, AsyncIterator, Awaitable, Callable, Hashable, Iterable


class KeyedLock:
    """
    Registry of per-key asyncio locks.

    Entries are weakly held: a key's lock lives only while some coroutine
    holds or waits for it, so the registry does not grow with every
    (email, currency) ever seen.
    """

    def __init__(self):
        self._locks: weakref.WeakValueDictionary[Hashable, asyncio.Lock] = weakref.WeakValueDictionary()

    def __len__(self) -> int:
        return len(self._locks)

    def _lock_for(self, key: Hashable) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    @asynccontextmanager
    async def hold(self, key: Hashable) -> AsyncIterator[None]:
        """Hold the lock for ``key`` for the duration of the block."""
        lock = self._lock_for(key)
        async with lock:
            yield

    def locked(self, key: Hashable) -> bool:
        """Whether a mutation is currently in flight for ``key``."""
        lock = self._locks.get(key)
        return lock is not None and lock.locked()

    @asynccontextmanager
    async def hold_all(self, keys: Iterable[Hashable]) -> AsyncIterator[None]:
        """Hold several locks, acquired in sorted order."""
        async with AsyncExitStack() as stack:
            for key in sorted(set(keys)):
                await stack.enter_async_context(self.hold(key))
            yield

    async def run(self, key: Hashable, func: Callable[[], Awaitable[Any]]) -> Any:
        """Run ``func()`` while holding the lock for ``key``."""
        return await self.run_all([key], func)

    async def run_all(self, keys: Iterable[Hashable], func: Callable[[], Awaitable[Any]]) -> Any:
        """
        Run ``func()`` while holding the locks for all ``keys``.

        Waiting for the locks can be cancelled. Once ``func`` has started it
        runs to completion even if the caller is cancelled, and the locks are
        released only after it settles.
        """
        async with self.hold_all(keys):
            task = asyncio.ensure_future(func())
            try:
                return await asyncio.shield(task)
            except asyncio.CancelledError:
                while not task.done():
                    try:
                        await asyncio.wait({task})
                    except asyncio.CancelledError:
                        pass
                raise


def ledger_key(email: str, currency: str) -> tuple[str, str]:
    """Lock key for an account's balance and positions in one currency."""
    return (email, currency.strip().upper())
