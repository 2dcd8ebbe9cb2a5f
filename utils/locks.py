from contextlib import asynccontextmanager
from typing import Hashable

from utils.logger import get_logger

log = get_logger("[Bot.Locks]")


class ActionInProgress(Exception):
    pass


class ActionGuard:
    """
    Loading flags per (chat, order). A second tap while a mutation for the same
    order is in flight is refused instead of being sent twice.
    """

    def __init__(self):
        self._busy: set = set()

    def is_busy(self, key: Hashable) -> bool:
        return key in self._busy

    def acquire(self, key: Hashable) -> bool:
        if key in self._busy:
            return False
        self._busy.add(key)
        return True

    def release(self, key: Hashable) -> None:
        self._busy.discard(key)

    @asynccontextmanager
    async def hold(self, key: Hashable):
        if not self.acquire(key):
            log.debug(f"Ignored duplicate action for {key}")
            raise ActionInProgress(key)
        try:
            yield
        finally:
            self.release(key)

    def __len__(self) -> int:
        return len(self._busy)
