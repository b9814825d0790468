"""
classroom.dataset_cache — Thread-safe, bounded, keyed cache of shaped datasets.

Design contract:
    - Each (kind, source) pair is loaded, parsed and shaped exactly once
      until evicted or invalidated.
    - Bounded by MAX_CACHED_DATASETS entries; least-recently-used entry
      is evicted first.
    - Thread-safe via threading.Lock. The lock is held only during dict
      operations, never during I/O or parsing.
    - Cached records are frozen dataclasses. Callers must not mutate the
      returned dict.
"""

from __future__ import annotations

import json
import logging
import os
import threading
from collections import OrderedDict
from pathlib import Path
from typing import Any

from classroom.constants import DATASET_FILES, DATASET_KINDS, DEFAULT_DATA_DIR
from classroom.csv_parser import parse
from classroom.shaping import shape_dataset
from classroom.sources import load_text

logger = logging.getLogger("classroom.cache")

# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

MAX_CACHED_DATASETS: int = int(os.getenv("MAX_CACHED_DATASETS", "16"))
"""Maximum number of shaped datasets held in memory."""


def default_source(kind: str, data_dir: Path = DEFAULT_DATA_DIR) -> Path:
    """Filesystem path of a dataset kind's bundled CSV.

    Raises ValueError for an unknown kind.
    """
    if kind not in DATASET_KINDS:
        raise ValueError(f"Unknown dataset kind: '{kind}'")
    return data_dir / DATASET_FILES[kind]


# ---------------------------------------------------------------------------
# DatasetCache
# ---------------------------------------------------------------------------

class DatasetCache:
    """Bounded LRU cache of shaped datasets.

    Usage::

        cache = DatasetCache()
        reports = cache.get("country_report")              # bundled CSV
        spider = cache.get("spider", "https://host/spiderplot.csv")
    """

    def __init__(
        self,
        max_datasets: int | None = None,
        data_dir: Path = DEFAULT_DATA_DIR,
    ) -> None:
        self._max: int = max_datasets if max_datasets is not None else MAX_CACHED_DATASETS
        if self._max < 1:
            raise ValueError(f"max_datasets must be positive, got {self._max}")
        self._data_dir = data_dir
        self._lock: threading.Lock = threading.Lock()
        self._entries: OrderedDict[tuple[str, str], dict[str, Any]] = OrderedDict()

    def get(self, kind: str, source: str | Path | None = None) -> dict[str, Any]:
        """Shaped records for ``kind`` loaded from ``source``.

        ``source`` defaults to the bundled CSV under the data directory.

        Raises:
            ValueError: unknown dataset kind.
            DataSourceError: the source cannot be read.
            ParseError: the source is empty.
        """
        if source is None:
            source = default_source(kind, self._data_dir)
        elif kind not in DATASET_KINDS:
            raise ValueError(f"Unknown dataset kind: '{kind}'")

        key = (kind, str(source))

        with self._lock:
            if key in self._entries:
                self._entries.move_to_end(key)
                return self._entries[key]

        # Load and shape outside the lock
        records = shape_dataset(kind, parse(load_text(source), skip_blank_lines=True))

        with self._lock:
            while key not in self._entries and len(self._entries) >= self._max:
                evicted_key, _ = self._entries.popitem(last=False)
                logger.info(json.dumps({
                    "event": "cache_eviction",
                    "kind": evicted_key[0],
                    "source": evicted_key[1],
                    "max_datasets": self._max,
                }))
            self._entries[key] = records
            self._entries.move_to_end(key)

        return records

    def invalidate(self, kind: str | None = None) -> int:
        """Drop cached datasets of one kind, or all when kind is None.

        Returns the number of entries dropped.
        """
        with self._lock:
            if kind is None:
                count = len(self._entries)
                self._entries.clear()
                return count
            doomed = [k for k in self._entries if k[0] == kind]
            for k in doomed:
                del self._entries[k]
            return len(doomed)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    @property
    def stats(self) -> dict[str, Any]:
        """Cache statistics for diagnostics."""
        with self._lock:
            return {
                "max_datasets": self._max,
                "entries": [
                    {"kind": kind, "records": len(records)}
                    for (kind, _), records in self._entries.items()
                ],
            }
