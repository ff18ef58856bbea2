"""
Database abstraction layer for the dividends ledger.

All access goes through the abstract DatabaseBackend; the SQLAlchemy backend
serves both SQLite (default, tests) and PostgreSQL (DATABASE_URL). The Database
facade returns plain dataclasses from database.models so callers never hold ORM
sessions.
"""

from __future__ import annotations

import time
from abc import ABC, abstractmethod
from contextlib import contextmanager
from decimal import Decimal
from typing import Any, Iterable, Iterator

from sqlalchemy import create_engine, event, func, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from backend_dividends.core.exceptions import (
    ClaimInProgressError,
    ClaimNotFoundError,
    ClaimStateError,
    PersistenceError,
)
from backend_dividends.database.models import (
    CLAIM_COMPLETED,
    CLAIM_FAILED,
    CLAIM_PROCESSING,
    PAYOUT_COMPLETED,
    AutoClaimSettings,
    ClaimTotals,
    DividendClaim,
    DividendDistribution,
    DividendPayout,
    HolderEligibility,
    HolderSnapshot,
)
from backend_dividends.database.tables import (
    AutoClaimSettingsRow,
    Base,
    DividendClaimRow,
    DividendDistributionRow,
    DividendPayoutRow,
    HolderEligibilityRow,
    HolderSnapshotRow,
)
from backend_dividends.dividends_logging import get_logger

logger = get_logger(__name__)

SETTINGS_ROW_ID = 1

_SETTINGS_UPDATABLE_FIELDS = frozenset(
    {
        "enabled",
        "claim_interval_minutes",
        "distribution_percentage",
        "min_claim_amount_lamports",
        "fee_source_account",
        "token_mint_address",
        "next_claim_scheduled",
        "last_successful_claim",
        "sell_threshold_percent",
        "auto_payout_enabled",
    }
)
_SETTINGS_DECIMAL_FIELDS = frozenset({"distribution_percentage", "sell_threshold_percent"})

_CLAIM_UPDATABLE_FIELDS = frozenset(
    {
        "status",
        "claimed_amount",
        "distribution_amount",
        "transaction_id",
        "total_supply",
        "eligible_holder_count",
        "holder_count",
        "error_message",
        "failure_stage",
        "completed_at",
    }
)


# -----------------------------------------------------------------------------
# Row <-> model conversion
# -----------------------------------------------------------------------------


def _settings_from_row(row: AutoClaimSettingsRow) -> AutoClaimSettings:
    return AutoClaimSettings(
        enabled=bool(row.enabled),
        claim_interval_minutes=int(row.claim_interval_minutes),
        distribution_percentage=Decimal(row.distribution_percentage),
        min_claim_amount_lamports=int(row.min_claim_amount_lamports),
        fee_source_account=row.fee_source_account,
        token_mint_address=row.token_mint_address,
        next_claim_scheduled=row.next_claim_scheduled,
        last_successful_claim=row.last_successful_claim,
        sell_threshold_percent=Decimal(row.sell_threshold_percent),
        auto_payout_enabled=bool(row.auto_payout_enabled),
        updated_at=row.updated_at,
    )


def _claim_from_row(row: DividendClaimRow) -> DividendClaim:
    return DividendClaim(
        id=row.id,
        status=row.status,
        claim_timestamp=row.claim_timestamp,
        claimed_amount=int(row.claimed_amount or 0),
        distribution_amount=int(row.distribution_amount or 0),
        transaction_id=row.transaction_id,
        total_supply=int(row.total_supply or 0),
        eligible_holder_count=int(row.eligible_holder_count or 0),
        holder_count=int(row.holder_count or 0),
        error_message=row.error_message,
        failure_stage=row.failure_stage,
        completed_at=row.completed_at,
    )


def _snapshot_from_row(row: HolderSnapshotRow) -> HolderSnapshot:
    return HolderSnapshot(
        id=row.id,
        claim_id=row.claim_id,
        holder_address=row.holder_address,
        token_balance=int(row.token_balance),
        percentage_of_supply=Decimal(row.percentage_of_supply),
        initial_balance=int(row.initial_balance),
        retention_percentage=Decimal(row.retention_percentage),
        is_eligible=bool(row.is_eligible),
    )


def _eligibility_from_row(row: HolderEligibilityRow) -> HolderEligibility:
    return HolderEligibility(
        id=row.id,
        token_mint_address=row.token_mint_address,
        holder_address=row.holder_address,
        current_balance=int(row.current_balance or 0),
        initial_balance=int(row.initial_balance or 0),
        retention_percentage=Decimal(row.retention_percentage),
        is_eligible=bool(row.is_eligible),
        permanently_blacklisted=bool(row.permanently_blacklisted),
        violation_count=int(row.violation_count or 0),
        blacklist_reason=row.blacklist_reason,
        blacklisted_at=row.blacklisted_at,
        first_seen_at=row.first_seen_at,
        last_checked_at=row.last_checked_at,
    )


def _distribution_from_row(row: DividendDistributionRow) -> DividendDistribution:
    return DividendDistribution(
        id=row.id,
        claim_id=row.claim_id,
        holder_address=row.holder_address,
        token_balance=int(row.token_balance),
        share_percentage=Decimal(row.share_percentage),
        dividend_amount=int(row.dividend_amount),
        status=row.status,
        created_at=row.created_at,
    )


def _payout_from_row(row: DividendPayoutRow) -> DividendPayout:
    return DividendPayout(
        id=row.id,
        distribution_id=row.distribution_id,
        claim_id=row.claim_id,
        holder_address=row.holder_address,
        payout_amount=int(row.payout_amount),
        payout_status=row.payout_status,
        transaction_signature=row.transaction_signature,
        error_message=row.error_message,
        paid_at=row.paid_at,
        created_at=row.created_at,
    )


# -----------------------------------------------------------------------------
# Abstract backend
# -----------------------------------------------------------------------------


class DatabaseBackend(ABC):
    """Abstract persistence interface for the dividends ledger."""

    @abstractmethod
    def ensure_schema(self) -> None:
        """Create tables and indexes if they do not exist."""
        ...

    # --- settings ---

    @abstractmethod
    def get_settings(self) -> AutoClaimSettings | None:
        ...

    @abstractmethod
    def save_settings(self, settings: AutoClaimSettings) -> AutoClaimSettings:
        """Insert or replace the singleton settings row."""
        ...

    @abstractmethod
    def update_settings_fields(self, **fields: Any) -> AutoClaimSettings:
        """
        Write only the named columns of the existing settings row in one UPDATE;
        columns not named keep whatever another writer stored.
        """
        ...

    # --- claims ---

    @abstractmethod
    def create_claim(self, claim_timestamp: int) -> DividendClaim:
        """
        Insert a new claim in 'processing'. Raises ClaimInProgressError if another
        claim is already processing; the check and the insert are atomic.
        """
        ...

    @abstractmethod
    def get_claim(self, claim_id: int) -> DividendClaim | None:
        ...

    @abstractmethod
    def list_claims(self, *, limit: int = 50, status: str | None = None) -> list[DividendClaim]:
        """Return claims newest first, optionally filtered by status."""
        ...

    @abstractmethod
    def get_processing_claim(self) -> DividendClaim | None:
        ...

    @abstractmethod
    def update_claim_if_status(self, claim_id: int, expected_status: str, **fields: Any) -> DividendClaim:
        """
        Compare-and-set update: apply fields only if the claim is still in
        expected_status. Raises ClaimNotFoundError or ClaimStateError.
        """
        ...

    # --- snapshots ---

    @abstractmethod
    def insert_snapshots(self, rows: list[HolderSnapshot]) -> int:
        """Insert all snapshot rows for one claim in a single transaction."""
        ...

    @abstractmethod
    def get_snapshots(self, claim_id: int) -> list[HolderSnapshot]:
        ...

    # --- distributions and payouts ---

    @abstractmethod
    def insert_distributions(self, rows: list[DividendDistribution]) -> list[DividendDistribution]:
        """Insert all distributions for one claim in a single transaction; returns rows with ids."""
        ...

    @abstractmethod
    def get_distributions(self, claim_id: int, *, status: str | None = None) -> list[DividendDistribution]:
        ...

    @abstractmethod
    def update_distribution_status(
        self, distribution_id: int, status: str, *, expected_status: str | None = None
    ) -> bool:
        """Set the status; with expected_status only if the row still has it. Returns whether a row changed."""
        ...

    @abstractmethod
    def insert_payout(self, payout: DividendPayout) -> DividendPayout:
        ...

    @abstractmethod
    def get_payouts(self, claim_id: int) -> list[DividendPayout]:
        ...

    # --- eligibility ---

    @abstractmethod
    def get_eligibility(self, token_mint: str, holder_address: str) -> HolderEligibility | None:
        ...

    @abstractmethod
    def list_eligibility(
        self,
        token_mint: str,
        *,
        limit: int | None = None,
        blacklisted_only: bool = False,
    ) -> list[HolderEligibility]:
        """Return holder records for a mint ordered by current balance, largest first."""
        ...

    @abstractmethod
    def upsert_eligibility(self, records: Iterable[HolderEligibility]) -> int:
        """Insert or update by (token_mint_address, holder_address) in one transaction."""
        ...

    # --- reporting ---

    @abstractmethod
    def claim_totals(self) -> ClaimTotals:
        ...


# -----------------------------------------------------------------------------
# SQLAlchemy backend (SQLite or PostgreSQL)
# -----------------------------------------------------------------------------


class SQLAlchemyBackend(DatabaseBackend):
    """SQLAlchemy implementation; one short session per operation."""

    def __init__(self, url: str, *, echo: bool = False) -> None:
        self._url = url
        connect_args: dict[str, Any] = {}
        engine_kwargs: dict[str, Any] = {"pool_pre_ping": True, "echo": echo}
        if url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
            if url in ("sqlite://", "sqlite:///:memory:"):
                engine_kwargs["poolclass"] = StaticPool
        self._engine = create_engine(url, connect_args=connect_args, **engine_kwargs)
        if url.startswith("sqlite"):
            event.listen(self._engine, "connect", _enable_sqlite_foreign_keys)
        self._session_factory = sessionmaker(
            autocommit=False, autoflush=False, expire_on_commit=False, bind=self._engine
        )

    @property
    def url(self) -> str:
        return self._url

    def dispose(self) -> None:
        self._engine.dispose()

    @contextmanager
    def _session_scope(self) -> Iterator[Session]:
        """Single session; commits on success, rolls back on error. Driver errors become PersistenceError."""
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            logger.warning("db_operation_failed", error=str(e).splitlines()[0])
            raise PersistenceError(f"Database error: {e}") from e
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def ensure_schema(self) -> None:
        Base.metadata.create_all(bind=self._engine)
        logger.info("db_schema_ready", url=self._url.split("?")[0].split("//")[-1])

    # --- settings ---

    def get_settings(self) -> AutoClaimSettings | None:
        with self._session_scope() as session:
            row = session.get(AutoClaimSettingsRow, SETTINGS_ROW_ID)
            return _settings_from_row(row) if row else None

    def save_settings(self, settings: AutoClaimSettings) -> AutoClaimSettings:
        with self._session_scope() as session:
            row = session.get(AutoClaimSettingsRow, SETTINGS_ROW_ID)
            if row is None:
                row = AutoClaimSettingsRow(id=SETTINGS_ROW_ID)
                session.add(row)
            row.enabled = settings.enabled
            row.claim_interval_minutes = settings.claim_interval_minutes
            row.distribution_percentage = str(settings.distribution_percentage)
            row.min_claim_amount_lamports = settings.min_claim_amount_lamports
            row.fee_source_account = settings.fee_source_account
            row.token_mint_address = settings.token_mint_address
            row.next_claim_scheduled = settings.next_claim_scheduled
            row.last_successful_claim = settings.last_successful_claim
            row.sell_threshold_percent = str(settings.sell_threshold_percent)
            row.auto_payout_enabled = settings.auto_payout_enabled
            row.updated_at = int(time.time())
            session.flush()
            return _settings_from_row(row)

    def update_settings_fields(self, **fields: Any) -> AutoClaimSettings:
        unknown = set(fields) - _SETTINGS_UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown settings fields: {sorted(unknown)}")
        values = {
            name: (str(value) if name in _SETTINGS_DECIMAL_FIELDS else value) for name, value in fields.items()
        }
        values["updated_at"] = int(time.time())
        with self._session_scope() as session:
            result = session.execute(
                update(AutoClaimSettingsRow).where(AutoClaimSettingsRow.id == SETTINGS_ROW_ID).values(**values)
            )
            if result.rowcount != 1:
                raise PersistenceError("Settings row does not exist")
            row = session.get(AutoClaimSettingsRow, SETTINGS_ROW_ID, populate_existing=True)
            return _settings_from_row(row)

    # --- claims ---

    def create_claim(self, claim_timestamp: int) -> DividendClaim:
        with self._session_scope() as session:
            active = (
                session.query(DividendClaimRow)
                .filter(DividendClaimRow.status == CLAIM_PROCESSING)
                .first()
            )
            if active is not None:
                raise ClaimInProgressError(f"Claim {active.id} is already processing")
            row = DividendClaimRow(status=CLAIM_PROCESSING, claim_timestamp=claim_timestamp)
            session.add(row)
            try:
                session.flush()
            except IntegrityError as e:
                raise ClaimInProgressError("Another claim started processing concurrently") from e
            return _claim_from_row(row)

    def get_claim(self, claim_id: int) -> DividendClaim | None:
        with self._session_scope() as session:
            row = session.get(DividendClaimRow, claim_id)
            return _claim_from_row(row) if row else None

    def list_claims(self, *, limit: int = 50, status: str | None = None) -> list[DividendClaim]:
        with self._session_scope() as session:
            q = session.query(DividendClaimRow)
            if status:
                q = q.filter(DividendClaimRow.status == status)
            rows = q.order_by(DividendClaimRow.id.desc()).limit(limit).all()
            return [_claim_from_row(r) for r in rows]

    def get_processing_claim(self) -> DividendClaim | None:
        with self._session_scope() as session:
            row = (
                session.query(DividendClaimRow)
                .filter(DividendClaimRow.status == CLAIM_PROCESSING)
                .order_by(DividendClaimRow.id.asc())
                .first()
            )
            return _claim_from_row(row) if row else None

    def update_claim_if_status(self, claim_id: int, expected_status: str, **fields: Any) -> DividendClaim:
        unknown = set(fields) - _CLAIM_UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown claim fields: {sorted(unknown)}")
        with self._session_scope() as session:
            result = session.execute(
                update(DividendClaimRow)
                .where(DividendClaimRow.id == claim_id)
                .where(DividendClaimRow.status == expected_status)
                .values(**fields)
            )
            if result.rowcount != 1:
                row = session.get(DividendClaimRow, claim_id)
                if row is None:
                    raise ClaimNotFoundError(f"Claim {claim_id} not found")
                raise ClaimStateError(
                    f"Claim {claim_id} is '{row.status}', expected '{expected_status}'"
                )
            row = session.get(DividendClaimRow, claim_id, populate_existing=True)
            return _claim_from_row(row)

    # --- snapshots ---

    def insert_snapshots(self, rows: list[HolderSnapshot]) -> int:
        with self._session_scope() as session:
            session.add_all(
                [
                    HolderSnapshotRow(
                        claim_id=r.claim_id,
                        holder_address=r.holder_address,
                        token_balance=r.token_balance,
                        percentage_of_supply=str(r.percentage_of_supply),
                        initial_balance=r.initial_balance,
                        retention_percentage=str(r.retention_percentage),
                        is_eligible=r.is_eligible,
                    )
                    for r in rows
                ]
            )
        return len(rows)

    def get_snapshots(self, claim_id: int) -> list[HolderSnapshot]:
        with self._session_scope() as session:
            rows = (
                session.query(HolderSnapshotRow)
                .filter(HolderSnapshotRow.claim_id == claim_id)
                .order_by(HolderSnapshotRow.token_balance.desc(), HolderSnapshotRow.holder_address.asc())
                .all()
            )
            return [_snapshot_from_row(r) for r in rows]

    # --- distributions and payouts ---

    def insert_distributions(self, rows: list[DividendDistribution]) -> list[DividendDistribution]:
        now = int(time.time())
        with self._session_scope() as session:
            db_rows = [
                DividendDistributionRow(
                    claim_id=r.claim_id,
                    holder_address=r.holder_address,
                    token_balance=r.token_balance,
                    share_percentage=str(r.share_percentage),
                    dividend_amount=r.dividend_amount,
                    status=r.status,
                    created_at=r.created_at or now,
                )
                for r in rows
            ]
            session.add_all(db_rows)
            session.flush()
            return [_distribution_from_row(r) for r in db_rows]

    def get_distributions(self, claim_id: int, *, status: str | None = None) -> list[DividendDistribution]:
        with self._session_scope() as session:
            q = session.query(DividendDistributionRow).filter(DividendDistributionRow.claim_id == claim_id)
            if status:
                q = q.filter(DividendDistributionRow.status == status)
            rows = q.order_by(DividendDistributionRow.id.asc()).all()
            return [_distribution_from_row(r) for r in rows]

    def update_distribution_status(
        self, distribution_id: int, status: str, *, expected_status: str | None = None
    ) -> bool:
        stmt = update(DividendDistributionRow).where(DividendDistributionRow.id == distribution_id)
        if expected_status is not None:
            stmt = stmt.where(DividendDistributionRow.status == expected_status)
        with self._session_scope() as session:
            return session.execute(stmt.values(status=status)).rowcount == 1

    def insert_payout(self, payout: DividendPayout) -> DividendPayout:
        with self._session_scope() as session:
            row = DividendPayoutRow(
                distribution_id=payout.distribution_id,
                claim_id=payout.claim_id,
                holder_address=payout.holder_address,
                payout_amount=payout.payout_amount,
                payout_status=payout.payout_status,
                transaction_signature=payout.transaction_signature,
                error_message=payout.error_message,
                paid_at=payout.paid_at,
                created_at=payout.created_at or int(time.time()),
            )
            session.add(row)
            session.flush()
            return _payout_from_row(row)

    def get_payouts(self, claim_id: int) -> list[DividendPayout]:
        with self._session_scope() as session:
            rows = (
                session.query(DividendPayoutRow)
                .filter(DividendPayoutRow.claim_id == claim_id)
                .order_by(DividendPayoutRow.id.asc())
                .all()
            )
            return [_payout_from_row(r) for r in rows]

    # --- eligibility ---

    def get_eligibility(self, token_mint: str, holder_address: str) -> HolderEligibility | None:
        with self._session_scope() as session:
            row = (
                session.query(HolderEligibilityRow)
                .filter(HolderEligibilityRow.token_mint_address == token_mint)
                .filter(HolderEligibilityRow.holder_address == holder_address)
                .first()
            )
            return _eligibility_from_row(row) if row else None

    def list_eligibility(
        self,
        token_mint: str,
        *,
        limit: int | None = None,
        blacklisted_only: bool = False,
    ) -> list[HolderEligibility]:
        with self._session_scope() as session:
            q = session.query(HolderEligibilityRow).filter(HolderEligibilityRow.token_mint_address == token_mint)
            if blacklisted_only:
                q = q.filter(HolderEligibilityRow.permanently_blacklisted.is_(True))
            q = q.order_by(HolderEligibilityRow.current_balance.desc(), HolderEligibilityRow.holder_address.asc())
            if limit is not None:
                q = q.limit(limit)
            return [_eligibility_from_row(r) for r in q.all()]

    def upsert_eligibility(self, records: Iterable[HolderEligibility]) -> int:
        records = list(records)
        if not records:
            return 0
        by_mint: dict[str, list[HolderEligibility]] = {}
        for rec in records:
            by_mint.setdefault(rec.token_mint_address, []).append(rec)
        with self._session_scope() as session:
            for mint, recs in by_mint.items():
                existing = {
                    row.holder_address: row
                    for row in session.query(HolderEligibilityRow)
                    .filter(HolderEligibilityRow.token_mint_address == mint)
                    .filter(HolderEligibilityRow.holder_address.in_([r.holder_address for r in recs]))
                    .all()
                }
                for rec in recs:
                    row = existing.get(rec.holder_address)
                    if row is None:
                        row = HolderEligibilityRow(token_mint_address=mint, holder_address=rec.holder_address)
                        session.add(row)
                    row.current_balance = rec.current_balance
                    row.initial_balance = rec.initial_balance
                    row.retention_percentage = str(rec.retention_percentage)
                    row.is_eligible = rec.is_eligible
                    row.permanently_blacklisted = rec.permanently_blacklisted
                    row.violation_count = rec.violation_count
                    row.blacklist_reason = rec.blacklist_reason
                    row.blacklisted_at = rec.blacklisted_at
                    row.first_seen_at = rec.first_seen_at
                    row.last_checked_at = rec.last_checked_at
        return len(records)

    # --- reporting ---

    def claim_totals(self) -> ClaimTotals:
        with self._session_scope() as session:
            status_counts = {
                status: int(count)
                for status, count in session.query(DividendClaimRow.status, func.count(DividendClaimRow.id))
                .group_by(DividendClaimRow.status)
                .all()
            }
            completed = session.query(
                func.coalesce(func.sum(DividendClaimRow.claimed_amount), 0),
                func.coalesce(func.sum(DividendClaimRow.distribution_amount), 0),
            ).filter(DividendClaimRow.status == CLAIM_COMPLETED).one()
            last_claim_at = session.query(func.max(DividendClaimRow.claim_timestamp)).scalar()
            distribution_count = session.query(func.count(DividendDistributionRow.id)).scalar() or 0
            payout_count, total_paid = session.query(
                func.count(DividendPayoutRow.id),
                func.coalesce(func.sum(DividendPayoutRow.payout_amount), 0),
            ).filter(DividendPayoutRow.payout_status == PAYOUT_COMPLETED).one()
            return ClaimTotals(
                total_claims=sum(status_counts.values()),
                completed_claims=status_counts.get(CLAIM_COMPLETED, 0),
                failed_claims=status_counts.get(CLAIM_FAILED, 0),
                total_claimed=int(completed[0] or 0),
                total_distributed=int(completed[1] or 0),
                distribution_count=int(distribution_count),
                payout_count=int(payout_count or 0),
                total_paid=int(total_paid or 0),
                last_claim_at=last_claim_at,
                status_counts=status_counts,
            )


def _enable_sqlite_foreign_keys(dbapi_connection: Any, connection_record: Any) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys = ON")
    cursor.close()


# -----------------------------------------------------------------------------
# Database facade
# -----------------------------------------------------------------------------


class Database:
    """
    Single entrypoint for ledger persistence; backend is swappable.

    The facade adds small conveniences (lookups that raise, bulk snapshot of a
    claim) on top of the backend contract.
    """

    def __init__(self, backend: DatabaseBackend) -> None:
        self._backend = backend

    @property
    def backend(self) -> DatabaseBackend:
        return self._backend

    def ensure_schema(self) -> None:
        self._backend.ensure_schema()

    # --- settings ---

    def get_settings(self) -> AutoClaimSettings | None:
        return self._backend.get_settings()

    def save_settings(self, settings: AutoClaimSettings) -> AutoClaimSettings:
        return self._backend.save_settings(settings)

    def update_settings_fields(self, **fields: Any) -> AutoClaimSettings:
        return self._backend.update_settings_fields(**fields)

    # --- claims ---

    def create_claim(self, claim_timestamp: int) -> DividendClaim:
        return self._backend.create_claim(claim_timestamp)

    def get_claim(self, claim_id: int) -> DividendClaim | None:
        return self._backend.get_claim(claim_id)

    def require_claim(self, claim_id: int) -> DividendClaim:
        claim = self._backend.get_claim(claim_id)
        if claim is None:
            raise ClaimNotFoundError(f"Claim {claim_id} not found")
        return claim

    def list_claims(self, *, limit: int = 50, status: str | None = None) -> list[DividendClaim]:
        return self._backend.list_claims(limit=limit, status=status)

    def get_processing_claim(self) -> DividendClaim | None:
        return self._backend.get_processing_claim()

    def update_claim_if_status(self, claim_id: int, expected_status: str, **fields: Any) -> DividendClaim:
        return self._backend.update_claim_if_status(claim_id, expected_status, **fields)

    # --- snapshots / distributions / payouts ---

    def insert_snapshots(self, rows: list[HolderSnapshot]) -> int:
        return self._backend.insert_snapshots(rows)

    def get_snapshots(self, claim_id: int) -> list[HolderSnapshot]:
        return self._backend.get_snapshots(claim_id)

    def insert_distributions(self, rows: list[DividendDistribution]) -> list[DividendDistribution]:
        return self._backend.insert_distributions(rows)

    def get_distributions(self, claim_id: int, *, status: str | None = None) -> list[DividendDistribution]:
        return self._backend.get_distributions(claim_id, status=status)

    def update_distribution_status(
        self, distribution_id: int, status: str, *, expected_status: str | None = None
    ) -> bool:
        return self._backend.update_distribution_status(distribution_id, status, expected_status=expected_status)

    def insert_payout(self, payout: DividendPayout) -> DividendPayout:
        return self._backend.insert_payout(payout)

    def get_payouts(self, claim_id: int) -> list[DividendPayout]:
        return self._backend.get_payouts(claim_id)

    # --- eligibility ---

    def get_eligibility(self, token_mint: str, holder_address: str) -> HolderEligibility | None:
        return self._backend.get_eligibility(token_mint, holder_address)

    def get_eligibility_map(self, token_mint: str) -> dict[str, HolderEligibility]:
        """All known holders of a mint keyed by address."""
        return {r.holder_address: r for r in self._backend.list_eligibility(token_mint)}

    def list_eligibility(
        self,
        token_mint: str,
        *,
        limit: int | None = None,
        blacklisted_only: bool = False,
    ) -> list[HolderEligibility]:
        return self._backend.list_eligibility(token_mint, limit=limit, blacklisted_only=blacklisted_only)

    def upsert_eligibility(self, records: Iterable[HolderEligibility]) -> int:
        return self._backend.upsert_eligibility(records)

    # --- reporting ---

    def claim_totals(self) -> ClaimTotals:
        return self._backend.claim_totals()


def get_database(url: str | None = None) -> Database:
    """
    Return a Database for the given SQLAlchemy URL and ensure its schema.

    url: e.g. "sqlite:///data/dividends.db" or a PostgreSQL URL. Default: resolved
    from DIVIDENDS_DB_URL / DATABASE_URL / DIVIDENDS_DB_PATH.
    """
    if url is None:
        from backend_dividends.config.settings import get_database_url

        url = get_database_url()
    db = Database(SQLAlchemyBackend(url))
    db.ensure_schema()
    return db
