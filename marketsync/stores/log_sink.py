"""Append-only integration log sink.

Adapters mirror every step of a fetch here, keyed by shop and adapter name.
A failed write never reaches the caller: it is reported on the error logger
and counted in ``dropped``.
"""

import itertools
import logging
import threading
from collections import deque
from typing import Any, Deque, Dict, List, Optional

from ..models.log_entry import LogEntry, LogLevel
from ..utils.logger import get_error_logger, get_integration_logger

_STDLIB_LEVELS = {
    LogLevel.DEBUG: logging.DEBUG,
    LogLevel.INFO: logging.INFO,
    LogLevel.WARN: logging.WARNING,
    LogLevel.ERROR: logging.ERROR,
}


class LogSink:
    """In-memory structured event store, newest entries listed first.

    At most ``max_entries`` are kept; the oldest are evicted first. Ids keep
    increasing across evictions.
    """

    def __init__(
        self,
        mirror: Optional[logging.Logger] = None,
        fallback: Optional[logging.Logger] = None,
        max_entries: Optional[int] = 10000,
    ):
        if max_entries is not None and max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self._entries: Deque[LogEntry] = deque(maxlen=max_entries)
        self._ids = itertools.count(1)
        self._lock = threading.Lock()
        self.mirror = mirror or get_integration_logger()
        self.fallback = fallback or get_error_logger()
        self.dropped = 0

    def log(
        self,
        shop_id: Optional[str],
        adapter: str,
        level: Any,
        message: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        """
        Append one entry.

        Raises:
            ValueError: If ``level`` is not debug/info/warn/error.
        """
        level = LogLevel.parse(level)
        metadata = dict(metadata or {})

        try:
            entry = self._write(shop_id, adapter, level, message, metadata)
        except Exception as e:
            self.dropped += 1
            self.fallback.error(
                f"Failed to write integration log for shop {shop_id} ({adapter}): {str(e)}",
                exc_info=True,
            )
            return

        self.mirror.log(
            _STDLIB_LEVELS[level],
            f"[{entry.adapter}] [{entry.shop_id}] {entry.message}",
            extra={"integration_metadata": entry.metadata},
        )

    def _write(
        self,
        shop_id: Optional[str],
        adapter: str,
        level: LogLevel,
        message: str,
        metadata: Dict[str, Any],
    ) -> LogEntry:
        with self._lock:
            entry = LogEntry(
                id=next(self._ids),
                shop_id=shop_id,
                adapter=adapter,
                level=level,
                message=message,
                metadata=metadata,
            )
            self._entries.append(entry)
            return entry

    def list(self, limit: int = 50, offset: int = 0) -> List[LogEntry]:
        """Return up to ``limit`` entries, newest first, skipping ``offset``."""
        if limit < 0 or offset < 0:
            raise ValueError("limit and offset must be non-negative")
        with self._lock:
            newest_first = list(reversed(self._entries))
        return newest_first[offset:offset + limit]

    def for_shop(self, shop_id: str) -> List[LogEntry]:
        """Entries for one shop in causal (oldest first) order."""
        with self._lock:
            return [e for e in self._entries if e.shop_id == shop_id]

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __bool__(self) -> bool:
        # An empty sink is still a sink.
        return True
