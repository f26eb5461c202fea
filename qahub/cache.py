import logging
import threading
import time

from .signals import content_invalidated

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 60
DEFAULT_MAX_ENTRIES = 1024


class RenderCache:
    """Rendered responses keyed by (path, variant), the variant being whatever
    else the response depended on (query args, signed-in user).

    Connected to content_invalidated, every entry rendered for a path is
    dropped when the data layer reports that path stale. Entries also expire
    after ttl seconds, and the oldest entry is evicted once max_entries is hit.
    """

    def __init__(self, ttl=DEFAULT_TTL_SECONDS, max_entries=DEFAULT_MAX_ENTRIES):
        self.ttl = ttl
        self.max_entries = max_entries
        # (path, variant) -> (stored_at, value); dicts keep insertion order, oldest first
        self._entries = {}
        self._lock = threading.Lock()

    def connect(self, signal=content_invalidated):
        signal.connect(self.on_invalidated)
        return self

    def disconnect(self, signal=content_invalidated):
        signal.disconnect(self.on_invalidated)

    def get(self, path, variant=''):
        key = (path, variant)
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            stored_at, value = entry
            if time.monotonic() - stored_at >= self.ttl:
                del self._entries[key]
                return None
            return value

    def set(self, path, variant, value):
        key = (path, variant)
        with self._lock:
            self._entries.pop(key, None)
            while len(self._entries) >= self.max_entries:
                del self._entries[next(iter(self._entries))]
            self._entries[key] = (time.monotonic(), value)

    def invalidate(self, path):
        with self._lock:
            stale = [key for key in self._entries if key[0] == path]
            for key in stale:
                del self._entries[key]
        if stale:
            logger.debug(f"Dropped {len(stale)} cached renders of {path}")

    def on_invalidated(self, sender, path=None, **extra):
        if path:
            self.invalidate(path)

    def __len__(self):
        return len(self._entries)
