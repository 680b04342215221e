# =============================================================================
# order_core/offline/cache_warmer.py
# Mirrors remote collections into the local table cache
# =============================================================================
"""
CacheWarmer - fetches whole remote collections and stores them as table
snapshots ahead of offline use.

Features:
- Independent per-table fan-out on a thread pool
- Per-table error accounting (one failure never aborts the others)
- Fire-and-forget background mode with completion callbacks

Usage:
    warmer = CacheWarmer(remote, table_cache)
    result = warmer.prepare(["teams", "products"])
    if not result.success:
        print(result.errors)
"""

from __future__ import annotations
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence

from order_core.data.remote_source import RemoteSource
from order_core.errors import StorageError
from order_core.offline.table_cache import TableCache
from order_core.services.base_service import BaseService


@dataclass
class WarmupResult:
    """Outcome of one warm-up run."""
    errors: Dict[str, Exception] = field(default_factory=dict)
    counts: Dict[str, int] = field(default_factory=dict)

    @property
    def success(self) -> bool:
        return not self.errors

    def to_dict(self) -> Dict[str, object]:
        return {
            "success": self.success,
            "errors": {table: str(error) for table, error in self.errors.items()},
            "counts": dict(self.counts),
        }


class CacheWarmer(BaseService):
    """Copies remote collections into the TableCache."""

    DEFAULT_WORKERS = 4

    def __init__(
        self,
        remote: RemoteSource,
        table_cache: TableCache,
        max_workers: int = DEFAULT_WORKERS,
    ):
        super().__init__()
        self.remote = remote
        self.table_cache = table_cache
        self.max_workers = max(1, max_workers)

    def _warm_table(self, table: str, result: WarmupResult, lock: threading.Lock) -> None:
        try:
            rows = self.remote.query_all(table)
            if not self.table_cache.set(table, rows):
                raise StorageError("Snapshot could not be written", table=table)
        except Exception as e:
            self.logger.warning(f"Warm-up of {table} failed: {e}")
            with lock:
                result.errors[table] = e
            return

        with lock:
            result.counts[table] = len(rows)

    def prepare(self, table_names: Sequence[str]) -> WarmupResult:
        """
        Fetch every table and replace its cached snapshot.

        Args:
            table_names: Remote collections to mirror; duplicates are
                fetched once

        Returns:
            WarmupResult; ``success`` is True iff no table failed
        """
        tables = list(dict.fromkeys(table_names))
        result = WarmupResult()
        if not tables:
            return result

        lock = threading.Lock()
        with self.log_operation(f"Warming cache for {len(tables)} tables"):
            workers = min(self.max_workers, len(tables))
            with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="CacheWarmer") as pool:
                for table in tables:
                    pool.submit(self._warm_table, table, result, lock)

        if result.success:
            self.logger.info(f"Cache ready: {result.counts}")
        else:
            self.logger.warning(
                f"Cache partially prepared; failed tables: {sorted(result.errors)}"
            )
        return result

    def prepare_in_background(
        self,
        table_names: Sequence[str],
        on_complete: Optional[Callable[[WarmupResult], None]] = None,
    ) -> threading.Thread:
        """
        Run ``prepare`` on a daemon thread and return immediately.

        The outcome is only logged and handed to ``on_complete``.
        """
        tables: List[str] = list(table_names)

        def run() -> None:
            try:
                result = self.prepare(tables)
            except Exception as e:
                self.logger.error(f"Background warm-up crashed: {e}", exc_info=True)
                return
            if on_complete is not None:
                try:
                    on_complete(result)
                except Exception as e:
                    self.logger.error(f"Error in warm-up callback: {e}")

        thread = threading.Thread(target=run, daemon=True, name="CacheWarmer")
        thread.start()
        return thread
