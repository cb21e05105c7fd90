"""
Persona pipeline: aggregate -> extract -> reference stats -> score -> upsert.

One canonical evaluation path with thin entry points for the API and CLI:
analyze (read-only bundle), update_persona (write-through), get_or_update
(cache-or-fetch) and evaluate (score a precomputed vector). Store access is
blocking SQLAlchemy work and runs in the default executor.
"""

from __future__ import annotations

import asyncio
from typing import Any, Callable, Iterable, Mapping, TypeVar

from wallet_persona.analytics.aggregator import Aggregator, RawActivityBundle
from wallet_persona.analytics.features import MetricVector, extract_metrics
from wallet_persona.analytics.persona_contracts import record_persona_contracts
from wallet_persona.analytics.reference_stats import ReferenceStats, ReferenceStatsEngine
from wallet_persona.analytics.scorer import PersonaScore, score_wallet
from wallet_persona.config import Settings, get_settings
from wallet_persona.core.exceptions import EmptyPopulationError, InvalidAddressError, StorageError
from wallet_persona.database import WalletRecord, WalletStore
from wallet_persona.persona_logging import bind_wallet, get_logger
from wallet_persona.utils.wallet_utils import to_checksum_wallet

logger = get_logger(__name__)

R = TypeVar("R")


class PersonaPipeline:
    """
    Evaluation pipeline over one aggregator and one wallet store.

    Owns neither unless built with from_settings(); aclose() releases
    whatever it owns.
    """

    def __init__(
        self,
        aggregator: Aggregator,
        store: WalletStore,
        stats_engine: ReferenceStatsEngine | None = None,
        *,
        owns_resources: bool = False,
    ) -> None:
        self.aggregator = aggregator
        self.store = store
        self.stats_engine = stats_engine or ReferenceStatsEngine(store)
        self._owns_resources = owns_resources

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "PersonaPipeline":
        """Build store (tables created), aggregator and stats engine from configuration."""
        settings = settings or get_settings()
        store = WalletStore(settings.database_url)
        store.init_db()
        return cls(
            Aggregator(settings),
            store,
            ReferenceStatsEngine(store, ttl_sec=settings.reference_stats_ttl_sec),
            owns_resources=True,
        )

    async def aclose(self) -> None:
        if self._owns_resources:
            await self.aggregator.aclose()
            self.store.dispose()

    async def _run(self, fn: Callable[..., R], *args: Any) -> R:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, lambda: fn(*args))

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    async def analyze(self, address: str) -> RawActivityBundle:
        """Aggregate one wallet without scoring or persisting."""
        return await self.aggregator.aggregate(address)

    def evaluate(self, vector: MetricVector, stats: ReferenceStats | None = None) -> PersonaScore:
        """
        Score a metric vector against the current population.

        Raises EmptyPopulationError when the store holds no wallets and no
        stats snapshot was supplied.
        """
        if stats is None:
            stats = self.stats_engine.compute()
        return score_wallet(vector, stats)

    def _evaluate_or_empty(self, wallet: str, vector: MetricVector) -> PersonaScore:
        try:
            return self.evaluate(vector)
        except EmptyPopulationError:
            logger.warning("persona_score_skipped", wallet=wallet, reason="empty_population")
        return PersonaScore.empty()

    async def update_persona(self, address: str) -> WalletRecord:
        """
        Run a fresh aggregation + scoring cycle and upsert the result.

        An empty population yields zeroed scores and no position; the record is
        still stored so the population grows. When the population cannot be
        read the unscored record is returned without touching the store. A
        failed upsert is logged and the computed record returned anyway.
        """
        bundle = await self.aggregator.aggregate(address)
        log = bind_wallet(bundle.wallet)
        vector = extract_metrics(bundle)
        try:
            persona = await self._run(self._evaluate_or_empty, bundle.wallet, vector)
        except StorageError as e:
            log.error("persona_score_skipped", reason="storage", error=str(e))
            return WalletRecord(address=bundle.wallet, balance=bundle.balance, metrics=vector)

        record = WalletRecord(
            address=bundle.wallet,
            balance=bundle.balance,
            metrics=vector,
            persona=persona,
        )
        try:
            await self._run(self.store.upsert, record)
        except StorageError as e:
            log.error("persona_store_failed", error=str(e))

        log.info("persona_updated", position=persona.position, scores=persona.scores)
        return record

    async def get_or_update(self, address: str) -> WalletRecord:
        """Return the cached record when present, otherwise run update_persona."""
        wallet = to_checksum_wallet(address)
        try:
            cached = await self._run(self.store.get, wallet)
        except StorageError as e:
            logger.error("persona_cache_read_failed", wallet=wallet, error=str(e))
            cached = None

        if cached is not None:
            logger.info("persona_cache_hit", wallet=wallet)
            return cached
        logger.info("persona_cache_miss", wallet=wallet)
        return await self.update_persona(wallet)


def build_persona_contracts(
    store: WalletStore,
    wallet_parameters: Iterable[Mapping[str, Any]],
    stats: ReferenceStats | None = None,
) -> dict[str, int]:
    """
    Score every wallet-parameter object against one reference snapshot and
    record its persona-contract associations.

    Addresses are checksummed so they join against stored wallets; entries
    with a missing or malformed address are skipped. Missing metric fields
    count as 0. Returns {position: wallets recorded}.
    Raises EmptyPopulationError when no snapshot is given and the store is empty.
    """
    if stats is None:
        stats = ReferenceStatsEngine(store).compute()
    for key, metric in stats.items():
        logger.info("reference_stat", metric=key, mean=metric.mean, std=metric.std)

    groups: dict[str, int] = {}
    for params in wallet_parameters:
        raw = params.get("address") or params.get("wallet")
        if not raw:
            logger.warning("persona_contracts_skip", reason="missing_address")
            continue
        try:
            address = to_checksum_wallet(str(raw))
        except InvalidAddressError as e:
            logger.warning("persona_contracts_skip", reason="invalid_address", error=str(e))
            continue
        persona = score_wallet(MetricVector.from_mapping(params), stats)
        record_persona_contracts(store, persona.position, params.get("transactions") or [], address)
        groups[persona.position] = groups.get(persona.position, 0) + 1
    return groups
