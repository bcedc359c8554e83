# locks.py
import asyncio
from contextlib import asynccontextmanager
from typing import Dict, List, Optional


class SlotLockRegistry:
    """One asyncio.Lock per slot id, acquired in ascending id order.

    Entries are reference counted and dropped once nobody holds or waits on
    them. ``serialize_writers`` adds one process-wide lock taken after the
    slot locks, for stores such as SQLite that allow a single writer.
    """

    def __init__(self, serialize_writers: bool = False):
        self.serialize_writers = serialize_writers
        # slot id -> [lock, number of holders and waiters]
        self._locks: Dict[int, List] = {}
        self._writer: Optional[asyncio.Lock] = None

    def __len__(self) -> int:
        return len(self._locks)

    def _checkout(self, slot_id: int) -> asyncio.Lock:
        entry = self._locks.get(slot_id)
        if entry is None:
            entry = self._locks[slot_id] = [asyncio.Lock(), 0]
        entry[1] += 1
        return entry[0]

    def _checkin(self, slot_id: int):
        entry = self._locks[slot_id]
        entry[1] -= 1
        if entry[1] == 0:
            del self._locks[slot_id]

    def is_held(self, slot_id: int) -> bool:
        entry = self._locks.get(slot_id)
        return entry is not None and entry[0].locked()

    @asynccontextmanager
    async def hold(self, *slot_ids: int):
        checked_out = []
        acquired = []
        try:
            for slot_id in sorted(set(slot_ids)):
                lock = self._checkout(slot_id)
                checked_out.append(slot_id)
                await lock.acquire()
                acquired.append(lock)
            if self.serialize_writers:
                # Created lazily so it binds to the running loop
                if self._writer is None:
                    self._writer = asyncio.Lock()
                await self._writer.acquire()
                acquired.append(self._writer)
            yield
        finally:
            for lock in reversed(acquired):
                lock.release()
            for slot_id in checked_out:
                self._checkin(slot_id)
