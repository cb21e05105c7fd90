"""
WalletStore: SQLAlchemy-backed wallet cache and persona-contract table.

Point lookup and upsert keyed by checksum address, full-population reads for
the reference statistics engine, and the population queries behind the
category/average endpoints. Uses DATABASE_URL (SQLite by default).

Upserts to the same address are serialized with a per-address lock; upserts
to different addresses run independently and the database serializes the
writes transactionally.
"""

from __future__ import annotations

import threading
from collections import Counter
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, Iterator

from sqlalchemy import create_engine, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from wallet_persona.analytics.features import METRIC_KEYS
from wallet_persona.config import get_settings
from wallet_persona.core.exceptions import StorageError
from wallet_persona.database.models import UpsertResult, WalletRecord
from wallet_persona.database.schema import Base, PersonaContractRow, WalletRow
from wallet_persona.persona_logging import get_logger

logger = get_logger(__name__)

_MEMORY_URLS = ("sqlite://", "sqlite:///:memory:")
# Upserts for one address serialize on one of these; unrelated addresses may share a stripe
ADDRESS_LOCK_STRIPES = 64


def utc_now_naive() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _redact_url(url: str) -> str:
    return url.split("?")[0].split("//")[-1].split("@")[-1]


class WalletStore:
    """Wallet cache over one SQLAlchemy engine. Call init_db() once before use."""

    def __init__(
        self,
        database_url: str | None = None,
        *,
        clock: Callable[[], datetime] = utc_now_naive,
    ) -> None:
        self.url = database_url or get_settings().database_url
        engine_kwargs: dict[str, Any] = {"pool_pre_ping": True}
        if self.url.startswith("sqlite"):
            engine_kwargs["connect_args"] = {"check_same_thread": False}
            if self.url in _MEMORY_URLS:
                # One shared connection, otherwise every checkout sees an empty database
                engine_kwargs["poolclass"] = StaticPool
        self._engine = create_engine(self.url, **engine_kwargs)
        self._session_factory = sessionmaker(autocommit=False, autoflush=False, bind=self._engine)
        self._clock = clock
        self._locks = tuple(threading.Lock() for _ in range(ADDRESS_LOCK_STRIPES))
        self._version_lock = threading.Lock()
        self._write_version = 0

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def init_db(self) -> None:
        """Create tables if they do not exist. Safe to call on every startup."""
        try:
            Base.metadata.create_all(bind=self._engine)
        except SQLAlchemyError as e:
            logger.exception("wallet_store_init_db_failed", error=str(e))
            raise StorageError(f"Failed to initialize wallet store: {e}") from e
        logger.info("wallet_store_init_db", url=_redact_url(self.url))

    def dispose(self) -> None:
        self._engine.dispose()

    @contextmanager
    def session_scope(self) -> Iterator[Session]:
        """Context manager for a single session. Commits on success, rolls back on error."""
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    @property
    def write_version(self) -> int:
        """Incremented on every successful upsert; lets readers detect population changes."""
        return self._write_version

    def _bump_version(self, by: int = 1) -> None:
        with self._version_lock:
            self._write_version += by

    def _address_lock(self, address: str) -> threading.Lock:
        """Fixed stripe of locks; one address always maps to the same lock."""
        return self._locks[hash(address) % ADDRESS_LOCK_STRIPES]

    # ------------------------------------------------------------------
    # Wallet cache
    # ------------------------------------------------------------------

    def get(self, address: str) -> WalletRecord | None:
        """Return the stored record for address, or None."""
        try:
            with self.session_scope() as session:
                row = session.query(WalletRow).filter(WalletRow.address == address).first()
                return row.to_record() if row else None
        except SQLAlchemyError as e:
            logger.exception("wallet_store_get_failed", wallet=address, error=str(e))
            raise StorageError(f"Failed to read wallet {address}: {e}") from e

    def _upsert_row(self, session: Session, record: WalletRecord, now: datetime) -> tuple[UpsertResult, datetime]:
        row = session.query(WalletRow).filter(WalletRow.address == record.address).first()
        if row is None:
            row = WalletRow(address=record.address, created_at=now, updated_at=now)
            row.apply(record)
            session.add(row)
            return UpsertResult.INSERTED, now

        result = UpsertResult.UNCHANGED if row.matches(record) else UpsertResult.UPDATED
        row.apply(record)
        row.updated_at = now
        return result, row.created_at

    def upsert(self, record: WalletRecord) -> UpsertResult:
        """
        Insert or overwrite the record for record.address.

        Every derived field is overwritten and updated_at refreshed; created_at
        is kept from the first insert. Returns UNCHANGED when the stored
        derived fields already equal the record's. On success the record's
        created_at / updated_at are set to the stored values.
        """
        with self._address_lock(record.address):
            now = self._clock()
            try:
                with self.session_scope() as session:
                    result, created_at = self._upsert_row(session, record, now)
            except SQLAlchemyError as e:
                logger.exception("wallet_store_upsert_failed", wallet=record.address, error=str(e))
                raise StorageError(f"Failed to upsert wallet {record.address}: {e}") from e

        record.created_at = created_at
        record.updated_at = now
        self._bump_version()
        logger.info("wallet_upserted", wallet=record.address, result=result.value)
        return result

    def bulk_upsert(self, records: Iterable[WalletRecord]) -> Counter:
        """Upsert many records in one transaction. All or nothing; returns a Counter of UpsertResult."""
        results: Counter = Counter()
        now = self._clock()
        records = list(records)
        try:
            with self.session_scope() as session:
                for record in records:
                    result, created_at = self._upsert_row(session, record, now)
                    # Rows added earlier in this transaction must be visible to later lookups
                    session.flush()
                    record.created_at = created_at
                    record.updated_at = now
                    results[result] += 1
        except SQLAlchemyError as e:
            logger.exception("wallet_store_bulk_upsert_failed", count=len(records), error=str(e))
            raise StorageError(f"Bulk upsert of {len(records)} wallets failed: {e}") from e

        self._bump_version(max(len(records), 1))
        logger.info(
            "wallet_bulk_upserted",
            count=len(records),
            inserted=results[UpsertResult.INSERTED],
            updated=results[UpsertResult.UPDATED],
            unchanged=results[UpsertResult.UNCHANGED],
        )
        return results

    def all_records(self) -> list[WalletRecord]:
        """Every stored wallet, most recently updated first."""
        try:
            with self.session_scope() as session:
                rows = session.query(WalletRow).order_by(WalletRow.updated_at.desc(), WalletRow.id.desc()).all()
                return [r.to_record() for r in rows]
        except SQLAlchemyError as e:
            logger.exception("wallet_store_list_failed", error=str(e))
            raise StorageError(f"Failed to list wallets: {e}") from e

    def all_metric_rows(self) -> list[dict[str, Any]]:
        """Metric columns of every stored wallet, for population statistics."""
        columns = [getattr(WalletRow, key) for key in METRIC_KEYS]
        try:
            with self.session_scope() as session:
                return [dict(zip(METRIC_KEYS, row)) for row in session.query(*columns).all()]
        except SQLAlchemyError as e:
            logger.exception("wallet_store_metrics_failed", error=str(e))
            raise StorageError(f"Failed to read wallet metrics: {e}") from e

    def count(self) -> int:
        try:
            with self.session_scope() as session:
                return session.query(func.count(WalletRow.id)).scalar() or 0
        except SQLAlchemyError as e:
            logger.exception("wallet_store_count_failed", error=str(e))
            raise StorageError(f"Failed to count wallets: {e}") from e

    # ------------------------------------------------------------------
    # Persona contracts
    # ------------------------------------------------------------------

    def add_persona_contracts(self, group: str, contracts: Iterable[str], address: str | None = None) -> int:
        """Append one (group -> contract) row per contract, tagged with the contributing wallet."""
        rows = [PersonaContractRow(from_group=group, to_contract=c, address=address) for c in contracts]
        if not rows:
            return 0
        try:
            with self.session_scope() as session:
                session.add_all(rows)
        except SQLAlchemyError as e:
            logger.exception("persona_contracts_insert_failed", group=group, wallet=address, error=str(e))
            raise StorageError(f"Failed to record persona contracts for {group}: {e}") from e
        logger.debug("persona_contracts_inserted", group=group, wallet=address, count=len(rows))
        return len(rows)

    def popular_contracts(self, group: str, limit: int = 1) -> list[dict[str, Any]]:
        """Contracts associated with group, most frequent first; ties keep first-recorded order."""
        frequency = func.count(PersonaContractRow.id).label("frequency")
        try:
            with self.session_scope() as session:
                rows = (
                    session.query(PersonaContractRow.to_contract, frequency)
                    .filter(PersonaContractRow.from_group == group)
                    .group_by(PersonaContractRow.to_contract)
                    .order_by(frequency.desc(), func.min(PersonaContractRow.id))
                    .limit(max(limit, 0))
                    .all()
                )
        except SQLAlchemyError as e:
            logger.exception("persona_contracts_query_failed", group=group, error=str(e))
            raise StorageError(f"Failed to query contracts for {group}: {e}") from e
        return [{"contract_address": contract, "frequency": int(freq)} for contract, freq in rows]

    def average_metrics(self, group: str) -> dict[str, Any]:
        """
        Average metric vector over the stored wallets that contributed rows to group.

        Each wallet counts once regardless of how many contracts it recorded.
        Zero defaults when the group has no matching wallets.
        """
        members = select(PersonaContractRow.address).where(PersonaContractRow.from_group == group)
        averages = [func.avg(getattr(WalletRow, key)) for key in METRIC_KEYS]
        try:
            with self.session_scope() as session:
                row = (
                    session.query(func.count(WalletRow.id), *averages)
                    .filter(WalletRow.address.in_(members))
                    .one()
                )
        except SQLAlchemyError as e:
            logger.exception("persona_average_query_failed", group=group, error=str(e))
            raise StorageError(f"Failed to average metrics for {group}: {e}") from e

        unique_addresses = int(row[0] or 0)
        return {
            "group": group,
            "unique_addresses": unique_addresses,
            "average_metrics": {
                key: round(float(value), 2) if unique_addresses and value is not None else 0
                for key, value in zip(METRIC_KEYS, row[1:])
            },
        }

    def clear_persona_contracts(self) -> int:
        try:
            with self.session_scope() as session:
                deleted = session.query(PersonaContractRow).delete()
        except SQLAlchemyError as e:
            logger.exception("persona_contracts_clear_failed", error=str(e))
            raise StorageError(f"Failed to clear persona contracts: {e}") from e
        logger.info("persona_contracts_cleared", deleted=deleted)
        return deleted
