"""
Reference statistics: population mean / std per metric over stored wallets.

The population is every wallet currently in the store. Missing values count
as 0. Standard deviation is the population std (ddof=0); a metric whose
values are all identical gets std exactly 0.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Mapping

import numpy as np

from wallet_persona.analytics.features import METRIC_KEYS, MetricVector
from wallet_persona.core.exceptions import EmptyPopulationError
from wallet_persona.persona_logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class MetricStats:
    mean: float
    std: float

    def to_dict(self) -> dict[str, float]:
        return {"mean": self.mean, "std": self.std}


ReferenceStats = dict[str, MetricStats]


def _column_stats(values: np.ndarray) -> MetricStats:
    # Identical values: report exact mean and std 0 rather than float residue
    if values.max() == values.min():
        return MetricStats(mean=float(values[0]), std=0.0)
    return MetricStats(mean=float(values.mean()), std=float(values.std()))


def compute_reference_stats(
    population: Iterable[MetricVector | Mapping[str, Any]],
) -> ReferenceStats:
    """
    Compute {metric: MetricStats} over a population of metric vectors or row mappings.

    Raises EmptyPopulationError when the population is empty.
    """
    vectors = [p if isinstance(p, MetricVector) else MetricVector.from_mapping(p) for p in population]
    if not vectors:
        raise EmptyPopulationError("No stored wallets to compute reference statistics from")

    matrix = np.array([[v.get(key) for key in METRIC_KEYS] for v in vectors], dtype=float)
    return {key: _column_stats(matrix[:, i]) for i, key in enumerate(METRIC_KEYS)}


class ReferenceStatsEngine:
    """
    Reference statistics over the live wallet store.

    ttl_sec == 0 recomputes on every call. With ttl_sec > 0 the last snapshot
    is reused until it is older than ttl_sec or the store has been written to
    since (store.write_version changed).
    """

    def __init__(
        self,
        store: Any,
        *,
        ttl_sec: float = 0.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._store = store
        self._ttl_sec = max(ttl_sec, 0.0)
        self._clock = clock
        self._lock = threading.Lock()
        self._cached: ReferenceStats | None = None
        self._cached_at = 0.0
        self._cached_version: int | None = None

    def compute(self) -> ReferenceStats:
        """Return reference statistics; raises EmptyPopulationError on an empty store."""
        if self._ttl_sec > 0:
            with self._lock:
                if (
                    self._cached is not None
                    and self._cached_version == self._store.write_version
                    and self._clock() - self._cached_at < self._ttl_sec
                ):
                    return self._cached

        version = self._store.write_version
        rows = self._store.all_metric_rows()
        stats = compute_reference_stats(rows)
        logger.info("reference_stats_computed", population=len(rows))

        if self._ttl_sec > 0:
            with self._lock:
                self._cached = stats
                self._cached_at = self._clock()
                self._cached_version = version
        return stats

    def invalidate(self) -> None:
        with self._lock:
            self._cached = None
