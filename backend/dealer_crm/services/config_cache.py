import time
from typing import Any, Awaitable, Callable, Dict, Hashable, Optional, Tuple


class ConfigCache:
    """Small TTL cache for per-dealer configuration.

    Instances are created by the application (or a test) and handed to the
    services that need them; ``clock`` returns seconds and defaults to
    ``time.monotonic``. ``None`` results are cached like any other value.
    """

    def __init__(self, ttl_seconds: float, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self.clock = clock
        self._entries: Dict[Hashable, Tuple[float, Any]] = {}
        self.hits = 0
        self.misses = 0

    def peek(self, key: Hashable) -> Tuple[bool, Optional[Any]]:
        entry = self._entries.get(key)
        if entry is None:
            return False, None
        expires_at, value = entry
        if self.clock() >= expires_at:
            self._entries.pop(key, None)
            return False, None
        return True, value

    def set(self, key: Hashable, value: Any) -> None:
        self._entries[key] = (self.clock() + self.ttl_seconds, value)

    async def get_or_load(self, key: Hashable, loader: Callable[[], Awaitable[Any]]) -> Any:
        found, value = self.peek(key)
        if found:
            self.hits += 1
            return value
        self.misses += 1
        value = await loader()
        self.set(key, value)
        return value

    def invalidate(self, key: Hashable) -> None:
        self._entries.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()
