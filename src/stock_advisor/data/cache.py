"""Disk cache for fetched price history and company info."""

import gzip
import hashlib
import logging
import os
from datetime import datetime, timezone
from typing import Any

import diskcache
import pandas as pd

from stock_advisor.utils.ohlcv import df_from_csv, df_to_csv
from stock_advisor.utils.validators import FetchParams

logger = logging.getLogger(__name__)


def info_uri(symbol: str) -> str:
    return f"info://{symbol.upper().strip()}"


def statements_uri(symbol: str) -> str:
    return f"statements://{symbol.upper().strip()}"


class SnapshotCache:
    """
    TTL cache keyed by canonical URI.

    History is stored as gzipped CSV text so a cache hit reproduces the
    exact frame that was fetched. Info and statement payloads are stored
    as plain mappings.
    """

    def __init__(self, cache_dir: str | None = None, ttl: int | None = None):
        if cache_dir is None:
            cache_dir = os.environ.get("CACHE_DIR", ".cache/snapshots")
        self.cache: diskcache.Cache = diskcache.Cache(cache_dir)
        self._default_ttl = ttl if ttl is not None else int(os.environ.get("CACHE_TTL", "300"))

    def store_history(self, params: FetchParams, df: pd.DataFrame, ttl: int | None = None) -> str:
        """
        Store a standardized OHLCV frame, return its canonical URI.

        Args:
            params: Fetch parameters (used to generate URI)
            df: Standardized DataFrame
            ttl: Cache TTL in seconds (default: CACHE_TTL)
        """
        uri = params.to_uri()
        csv_bytes = df_to_csv(df).encode("utf-8")

        entry: dict[str, Any] = {
            "csv_gz": gzip.compress(csv_bytes),
            "rows": len(df),
            "hash": hashlib.sha256(csv_bytes).hexdigest()[:16],
            "stored_at": datetime.now(timezone.utc).isoformat(),
        }
        self.cache.set(uri, entry, expire=ttl if ttl is not None else self._default_ttl)
        return uri

    def get_history(self, params: FetchParams) -> pd.DataFrame | None:
        entry = self.cache.get(params.to_uri())
        if not entry:
            return None
        logger.debug(f"Cache hit: {params.to_uri()} ({entry['rows']} rows)")
        return df_from_csv(gzip.decompress(entry["csv_gz"]).decode("utf-8"))

    def store_payload(self, uri: str, payload: Any, ttl: int | None = None) -> str:
        self.cache.set(uri, payload, expire=ttl if ttl is not None else self._default_ttl)
        return uri

    def get_payload(self, uri: str) -> Any | None:
        payload = self.cache.get(uri)
        if payload is not None:
            logger.debug(f"Cache hit: {uri}")
        return payload


_snapshot_cache: SnapshotCache | None = None


def get_snapshot_cache() -> SnapshotCache:
    """Process-wide cache instance, created on first use."""
    global _snapshot_cache
    if _snapshot_cache is None:
        _snapshot_cache = SnapshotCache()
    return _snapshot_cache
