"""
CSV export of codes, orders, owners and anomaly flags.

Rows are built from the promo repository and rendered with the csv
module, which quotes fields containing commas, quotes or newlines.
"""

import csv
import io
import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from promolens.metrics.kpi_definitions import to_float
from promolens.repositories.promo_repo import PromoRepository

logger = logging.getLogger(__name__)


class ExportType(str, Enum):
    CODES = "codes"
    ORDERS = "orders"
    OWNERS = "owners"
    ANOMALIES = "anomalies"


@dataclass
class ExportResult:
    """Rendered export ready to be served as a download."""
    export_type: ExportType
    filename: str
    record_count: int
    content: str


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def format_csv(rows: List[Dict[str, Any]]) -> str:
    """Render dict rows as CSV, header taken from the first row's keys."""
    if not rows:
        return ""

    output = io.StringIO()
    writer = csv.DictWriter(output, fieldnames=list(rows[0].keys()), lineterminator="\n")
    writer.writeheader()
    for row in rows:
        writer.writerow({k: "" if v is None else v for k, v in row.items()})
    return output.getvalue()


class ExportService:
    """Builds CSV exports for the dashboard download links."""

    def __init__(self, db_session: Session, repository: Optional[PromoRepository] = None):
        self.db = db_session
        self.repository = repository or PromoRepository(db_session)

    def _redemption_totals(self) -> Dict[str, Dict[str, float]]:
        """All-time uses, revenue and discount per code id."""
        totals: Dict[str, Dict[str, float]] = defaultdict(
            lambda: {"uses": 0, "revenue": 0.0, "discount": 0.0}
        )
        for redemption in self.repository.get_redemptions():
            entry = totals[redemption.code_id]
            entry["uses"] += 1
            if redemption.order is not None:
                entry["revenue"] += to_float(redemption.order.total)
                entry["discount"] += to_float(redemption.order.discount_value)
        return totals

    def code_rows(self) -> List[Dict[str, Any]]:
        totals = self._redemption_totals()
        rows = []
        for code in self.repository.list_codes():
            t = totals.get(code.id, {"uses": 0, "revenue": 0.0, "discount": 0.0})
            rows.append({
                "code": code.code,
                "owner": code.owner.name if code.owner else "Unknown",
                "owner_type": code.owner.type if code.owner else "Unknown",
                "channel": code.channel,
                "campaign": code.campaign,
                "issued_at": _iso(code.issued_at),
                "is_active": code.is_active,
                "total_uses": t["uses"],
                "total_revenue": round(t["revenue"], 2),
                "total_discount": round(t["discount"], 2),
            })
        return rows

    def order_rows(
        self,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ) -> List[Dict[str, Any]]:
        rows = []
        for order in self.repository.list_orders(start_date, end_date):
            redemption = order.redemptions[0] if order.redemptions else None
            owner = redemption.code.owner if redemption and redemption.code else None
            rows.append({
                "order_id": order.id,
                "external_id": order.external_id,
                "customer_email": order.customer.email if order.customer else None,
                "total": to_float(order.total),
                "discount_value": to_float(order.discount_value),
                "coupon": order.coupon,
                "channel": order.channel,
                "owner": owner.name if owner else None,
                "owner_type": owner.type if owner else None,
                "created_at": _iso(order.created_at),
            })
        return rows

    def owner_rows(self) -> List[Dict[str, Any]]:
        totals = self._redemption_totals()
        rows = []
        for owner in self.repository.list_owners():
            uses = sum(totals[c.id]["uses"] for c in owner.codes if c.id in totals)
            revenue = sum(totals[c.id]["revenue"] for c in owner.codes if c.id in totals)
            discount = sum(totals[c.id]["discount"] for c in owner.codes if c.id in totals)
            rows.append({
                "owner_id": owner.id,
                "name": owner.name,
                "type": owner.type,
                "email": owner.email,
                "channel": owner.channel,
                "total_codes": len(owner.codes),
                "total_uses": uses,
                "total_revenue": round(revenue, 2),
                "total_discount": round(discount, 2),
                "avg_revenue_per_use": round(revenue / uses, 2) if uses > 0 else 0,
            })
        return rows

    def anomaly_rows(
        self,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ) -> List[Dict[str, Any]]:
        rows = []
        for flag in self.repository.list_anomaly_flags(None, start_date, end_date):
            code = flag.code
            rows.append({
                "id": flag.id,
                "code": code.code if code else None,
                "owner": code.owner.name if code and code.owner else None,
                "type": flag.type,
                "severity": flag.severity,
                "message": flag.message,
                "is_resolved": flag.is_resolved,
                "created_at": _iso(flag.created_at),
                "resolved_at": _iso(flag.resolved_at),
            })
        return rows

    def export(
        self,
        export_type: ExportType,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ) -> ExportResult:
        """
        Build one export. Date bounds apply to orders and anomalies only.

        Raises:
            PromoStoreError: If any read fails
        """
        if export_type == ExportType.CODES:
            rows = self.code_rows()
        elif export_type == ExportType.ORDERS:
            rows = self.order_rows(start_date, end_date)
        elif export_type == ExportType.OWNERS:
            rows = self.owner_rows()
        else:
            rows = self.anomaly_rows(start_date, end_date)

        logger.info(
            "Export built",
            extra={"export_type": export_type.value, "record_count": len(rows)},
        )
        return ExportResult(
            export_type=export_type,
            filename=f"{export_type.value}_export.csv",
            record_count=len(rows),
            content=format_csv(rows),
        )
