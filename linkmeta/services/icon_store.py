# linkmeta/services/icon_store.py
# Responsibility: Long-lived origin -> icon URL store with expiration and debounced persistence.

import asyncio
import copy
import logging
import time
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

from linkmeta.config.settings import settings

logger = logging.getLogger(__name__)

LoadDurable = Callable[[], Awaitable[Dict[str, Any]]]
SaveDurable = Callable[[Dict[str, Any]], Awaitable[None]]

DAY_MS = 24 * 60 * 60 * 1000


class _Missing:
    def __repr__(self) -> str:
        return "MISSING"

    def __bool__(self) -> bool:
        return False


# Returned by IconStore.get when nothing (or only an expired record) is stored.
# Distinct from None, which is a cached "no icon found" result.
MISSING = _Missing()


class IconStore:
    """
    Two tiers:
    - memory: every result, including "no icon" (None)
    - durable: only real URLs, persisted as {origin: {"url", "timestamp"}}
      under one namespaced key of an opaque blob
    Timestamps are epoch milliseconds.
    """

    def __init__(
        self,
        load_durable: LoadDurable,
        save_durable: SaveDurable,
        expiration_days: float = settings.ICON.EXPIRATION_DAYS,
        debounce_seconds: float = settings.ICON.SAVE_DEBOUNCE_SECONDS,
        cache_key: str = settings.ICON.CACHE_KEY,
        clock: Callable[[], float] = time.time,
    ):
        self._load_durable = load_durable
        self._save_durable = save_durable
        self.expiration_ms = int(expiration_days * DAY_MS)
        self.debounce_seconds = debounce_seconds
        self.cache_key = cache_key
        self._clock = clock

        self._memory: Dict[str, Tuple[Optional[str], int]] = {}
        self._durable: Dict[str, Dict[str, Any]] = {}

        # Dirty tracking: a write bumps _version, a successful flush records it
        self._version = 0
        self._saved_version = 0
        self._timer: Optional[asyncio.TimerHandle] = None
        self._flush_task: Optional[asyncio.Task] = None
        # One save at a time: an older snapshot must never land after a newer one
        self._flush_lock = asyncio.Lock()

    @property
    def dirty(self) -> bool:
        return self._version != self._saved_version

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def _is_fresh(self, timestamp: int, now: int) -> bool:
        return now - timestamp < self.expiration_ms

    # ---------------------------
    # Load
    # ---------------------------
    async def load(self) -> None:
        """Reads the durable tier and eagerly purges expired records."""
        try:
            data = await self._load_durable()
        except Exception as e:
            logger.warning("[IconStore] Failed to load durable icon cache: %s", e)
            self._durable = {}
            return

        entries = data.get(self.cache_key) if isinstance(data, dict) else None
        if not isinstance(entries, dict):
            self._durable = {}
            return

        self._durable = {
            origin: {"url": entry["url"], "timestamp": int(entry["timestamp"])}
            for origin, entry in entries.items()
            if isinstance(entry, dict)
            and isinstance(entry.get("url"), str)
            and isinstance(entry.get("timestamp"), (int, float))
        }
        purged = self._purge_expired()
        logger.info("[IconStore] Loaded %d icon records (%d expired)", len(self._durable), purged)

    def _purge_expired(self) -> int:
        now = self._now_ms()
        expired = [o for o, e in self._durable.items() if not self._is_fresh(e["timestamp"], now)]
        for origin in expired:
            del self._durable[origin]
        if expired:
            self._mark_dirty()
        return len(expired)

    # ---------------------------
    # Access
    # ---------------------------
    def get(self, origin: str):
        """
        Returns:
            The icon URL, None for a cached "no icon" result, or MISSING.
        """
        now = self._now_ms()

        cached = self._memory.get(origin)
        if cached is not None:
            url, timestamp = cached
            if self._is_fresh(timestamp, now):
                return url
            del self._memory[origin]

        entry = self._durable.get(origin)
        if entry is not None:
            if self._is_fresh(entry["timestamp"], now):
                self._memory[origin] = (entry["url"], entry["timestamp"])
                return entry["url"]
            del self._durable[origin]
            self._mark_dirty()

        return MISSING

    def has(self, origin: str) -> bool:
        return self.get(origin) is not MISSING

    def set(self, origin: str, icon_url: Optional[str]) -> None:
        now = self._now_ms()
        self._memory[origin] = (icon_url, now)

        if icon_url:
            self._durable[origin] = {"url": icon_url, "timestamp": now}
            self._mark_dirty()
        elif origin in self._durable:
            # "No icon" is never persisted; drop any stale durable record
            del self._durable[origin]
            self._mark_dirty()

    def clear(self) -> None:
        self._memory.clear()
        self._durable = {}
        self._mark_dirty()

    def stats(self) -> Dict[str, Any]:
        timestamps = [e["timestamp"] for e in self._durable.values()]
        return {
            "entries": len(self._durable),
            "memory_entries": len(self._memory),
            "oldest_timestamp": min(timestamps) if timestamps else None,
        }

    # ---------------------------
    # Persistence
    # ---------------------------
    def _mark_dirty(self) -> None:
        self._version += 1
        self._schedule_flush()

    def _schedule_flush(self) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No loop (synchronous caller): state stays dirty until flush()
            return
        if self._timer is not None:
            self._timer.cancel()
        self._timer = loop.call_later(self.debounce_seconds, self._on_timer)

    def _on_timer(self) -> None:
        self._timer = None
        self._flush_task = asyncio.ensure_future(self.flush())

    async def flush(self) -> None:
        """
        Merges the durable tier into the stored blob, leaving other keys untouched.
        Flushes are serialized; the snapshot is taken once the previous save is done.
        """
        async with self._flush_lock:
            if not self.dirty:
                return

            target_version = self._version
            snapshot = copy.deepcopy(self._durable)
            try:
                data = await self._load_durable()
                if not isinstance(data, dict):
                    data = {}
                data[self.cache_key] = snapshot
                await self._save_durable(data)
            except Exception as e:
                logger.warning("[IconStore] Failed to save icon cache: %s", e)
                return

            self._saved_version = target_version
            logger.debug("[IconStore] Flushed %d icon records", len(snapshot))

    async def close(self) -> None:
        """Cancels the pending timer, waits for a running save and writes any dirty state."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        if self._flush_task is not None and not self._flush_task.done():
            await self._flush_task
        self._flush_task = None
        # Writes made during the awaited save are still dirty here
        await self.flush()
