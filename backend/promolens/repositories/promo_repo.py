"""
Promo repository: the read/write boundary between the metrics core and
the relational store.

Every SQLAlchemyError is wrapped in PromoStoreError so callers classify
failures once, by policy, without knowing about the ORM:
- metrics aggregation degrades store errors to zero-valued results
- owner lookups and all writes propagate them
"""

import logging
from contextlib import contextmanager
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Iterator, List, Optional

from sqlalchemy.orm import Session, joinedload
from sqlalchemy.exc import SQLAlchemyError

from promolens.models.promo import (
    Owner, PromoCode, Customer, Order, CodeRedemption,
)
from promolens.models.metrics_snapshot import MetricsSnapshot
from promolens.models.anomaly_flag import AnomalyFlag

logger = logging.getLogger(__name__)

SNAPSHOT_FIELDS = (
    "total_uses",
    "total_revenue",
    "total_discount",
    "new_customer_uses",
    "new_customer_revenue",
    "roi",
    "pvi",
    "leakage",
)


class PromoStoreError(Exception):
    """Raised when a read or write against the store fails."""

    def __init__(self, message: str, operation: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.operation = operation


class PromoRepository:
    """
    Repository for promo attribution, snapshot and anomaly rows.

    Read methods never mutate. Write methods for snapshots and flags
    commit immediately; ingestion helpers only flush and leave the
    commit to the caller so one order is written atomically.
    """

    def __init__(self, db_session: Session):
        """
        Initialize promo repository.

        Args:
            db_session: Database session
        """
        self.db = db_session

    @contextmanager
    def _store_errors(self, operation: str, write: bool = False) -> Iterator[None]:
        try:
            yield
        except SQLAlchemyError as e:
            if write:
                self.db.rollback()
            logger.error(
                "Promo store operation failed",
                extra={"operation": operation, "error": str(e)},
            )
            raise PromoStoreError(f"{operation} failed: {e}", operation=operation) from e

    # =========================================================================
    # Reads
    # =========================================================================

    def get_redemptions(
        self,
        code_id: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ) -> List[CodeRedemption]:
        """
        Fetch redemptions joined with their order and the order's customer.

        Args:
            code_id: Restrict to one code; None returns redemptions for all codes
            start_date: Inclusive lower bound on redemption created_at
            end_date: Inclusive upper bound on redemption created_at

        Returns:
            Redemptions, newest first
        """
        with self._store_errors("get_redemptions"):
            query = self.db.query(CodeRedemption).options(
                joinedload(CodeRedemption.order).joinedload(Order.customer)
            )
            if code_id is not None:
                query = query.filter(CodeRedemption.code_id == code_id)
            if start_date is not None:
                query = query.filter(CodeRedemption.created_at >= start_date)
            if end_date is not None:
                query = query.filter(CodeRedemption.created_at <= end_date)
            return query.order_by(CodeRedemption.created_at.desc()).all()

    def get_snapshots(self, code_id: str) -> List[MetricsSnapshot]:
        """Fetch all daily snapshots for a code, newest first."""
        with self._store_errors("get_snapshots"):
            return (
                self.db.query(MetricsSnapshot)
                .filter(MetricsSnapshot.code_id == code_id)
                .order_by(MetricsSnapshot.date.desc())
                .all()
            )

    def get_owner(self, owner_id: str) -> Optional[Owner]:
        with self._store_errors("get_owner"):
            return self.db.query(Owner).filter(Owner.id == owner_id).first()

    def list_owners(self) -> List[Owner]:
        with self._store_errors("list_owners"):
            return (
                self.db.query(Owner)
                .options(joinedload(Owner.codes))
                .order_by(Owner.name.asc())
                .all()
            )

    def get_code(self, code_id: str) -> Optional[PromoCode]:
        with self._store_errors("get_code"):
            return self.db.query(PromoCode).filter(PromoCode.id == code_id).first()

    def get_code_by_string(self, code: str) -> Optional[PromoCode]:
        with self._store_errors("get_code_by_string"):
            return self.db.query(PromoCode).filter(PromoCode.code == code).first()

    def list_codes(self) -> List[PromoCode]:
        with self._store_errors("list_codes"):
            return (
                self.db.query(PromoCode)
                .options(joinedload(PromoCode.owner))
                .order_by(PromoCode.code.asc())
                .all()
            )

    def get_codes_by_owner(self, owner_id: str) -> List[PromoCode]:
        with self._store_errors("get_codes_by_owner"):
            return (
                self.db.query(PromoCode)
                .filter(PromoCode.owner_id == owner_id)
                .order_by(PromoCode.code.asc())
                .all()
            )

    def get_active_codes(self) -> List[PromoCode]:
        with self._store_errors("get_active_codes"):
            return (
                self.db.query(PromoCode)
                .filter(PromoCode.is_active.is_(True))
                .order_by(PromoCode.code.asc())
                .all()
            )

    def list_orders(
        self,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ) -> List[Order]:
        """Fetch orders with customer and redemption->code->owner joins, newest first."""
        with self._store_errors("list_orders"):
            query = self.db.query(Order).options(
                joinedload(Order.customer),
                joinedload(Order.redemptions)
                .joinedload(CodeRedemption.code)
                .joinedload(PromoCode.owner),
            )
            if start_date is not None:
                query = query.filter(Order.created_at >= start_date)
            if end_date is not None:
                query = query.filter(Order.created_at <= end_date)
            return query.order_by(Order.created_at.desc()).all()

    def list_anomaly_flags(
        self,
        is_resolved: Optional[bool] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ) -> List[AnomalyFlag]:
        """Fetch anomaly flags with their code and owner, newest first."""
        with self._store_errors("list_anomaly_flags"):
            query = self.db.query(AnomalyFlag).options(
                joinedload(AnomalyFlag.code).joinedload(PromoCode.owner)
            )
            if is_resolved is not None:
                query = query.filter(AnomalyFlag.is_resolved.is_(is_resolved))
            if start_date is not None:
                query = query.filter(AnomalyFlag.created_at >= start_date)
            if end_date is not None:
                query = query.filter(AnomalyFlag.created_at <= end_date)
            return query.order_by(AnomalyFlag.created_at.desc()).all()

    # =========================================================================
    # Writes
    # =========================================================================

    def upsert_snapshot(
        self,
        code_id: str,
        snapshot_date: date,
        values: Dict[str, Any],
    ) -> MetricsSnapshot:
        """
        Insert or overwrite the snapshot row for (code_id, snapshot_date).

        Args:
            code_id: Code the snapshot belongs to
            snapshot_date: Calendar day of the snapshot
            values: Metric values keyed by SNAPSHOT_FIELDS names

        Returns:
            The persisted snapshot

        Raises:
            PromoStoreError: If the write fails
        """
        unknown = set(values) - set(SNAPSHOT_FIELDS)
        if unknown:
            raise ValueError(f"Unknown snapshot fields: {sorted(unknown)}")

        with self._store_errors("upsert_snapshot", write=True):
            snapshot = (
                self.db.query(MetricsSnapshot)
                .filter(
                    MetricsSnapshot.code_id == code_id,
                    MetricsSnapshot.date == snapshot_date,
                )
                .first()
            )
            if snapshot is None:
                snapshot = MetricsSnapshot(code_id=code_id, date=snapshot_date)
                self.db.add(snapshot)

            for field_name in SNAPSHOT_FIELDS:
                if field_name in values:
                    setattr(snapshot, field_name, values[field_name])

            self.db.commit()
            self.db.refresh(snapshot)
            return snapshot

    def create_anomaly_flag(
        self,
        code_id: str,
        anomaly_type: str,
        severity: str,
        message: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> AnomalyFlag:
        """Insert one anomaly flag. No deduplication against existing flags."""
        with self._store_errors("create_anomaly_flag", write=True):
            flag = AnomalyFlag(
                code_id=code_id,
                type=anomaly_type,
                severity=severity,
                message=message,
                flag_metadata=metadata or {},
                is_resolved=False,
            )
            self.db.add(flag)
            self.db.commit()
            self.db.refresh(flag)
            return flag

    def resolve_anomaly_flag(self, flag_id: str) -> Optional[AnomalyFlag]:
        """Mark a flag resolved. Returns None if the flag does not exist."""
        with self._store_errors("resolve_anomaly_flag", write=True):
            flag = self.db.query(AnomalyFlag).filter(AnomalyFlag.id == flag_id).first()
            if flag is None:
                return None
            if not flag.is_resolved:
                flag.is_resolved = True
                flag.resolved_at = datetime.now(timezone.utc)
                self.db.commit()
                self.db.refresh(flag)
            return flag

    # =========================================================================
    # Ingestion helpers (flush only; caller commits)
    # =========================================================================

    def get_order_by_external_id(self, external_id: str) -> Optional[Order]:
        with self._store_errors("get_order_by_external_id"):
            return self.db.query(Order).filter(Order.external_id == external_id).first()

    def get_customer_by_email(self, email: str) -> Optional[Customer]:
        with self._store_errors("get_customer_by_email"):
            return self.db.query(Customer).filter(Customer.email == email).first()

    def create_customer(self, **fields: Any) -> Customer:
        with self._store_errors("create_customer", write=True):
            customer = Customer(**fields)
            self.db.add(customer)
            self.db.flush()
            return customer

    def add_lifetime_value(self, customer: Customer, amount: Decimal) -> Customer:
        with self._store_errors("add_lifetime_value", write=True):
            customer.lifetime_value = Decimal(customer.lifetime_value or 0) + amount
            self.db.flush()
            return customer

    def create_order(self, **fields: Any) -> Order:
        with self._store_errors("create_order", write=True):
            order = Order(**fields)
            self.db.add(order)
            self.db.flush()
            return order

    def create_redemption(
        self,
        code_id: str,
        order_id: str,
        created_at: Optional[datetime] = None,
    ) -> CodeRedemption:
        with self._store_errors("create_redemption", write=True):
            redemption = CodeRedemption(code_id=code_id, order_id=order_id)
            if created_at is not None:
                redemption.created_at = created_at
            self.db.add(redemption)
            self.db.flush()
            return redemption

    def commit(self) -> None:
        with self._store_errors("commit", write=True):
            self.db.commit()
