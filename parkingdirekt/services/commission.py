"""
Commission split between the platform and space owners.

platform_fee = amount * platformCommissionPercent / 100, owner_payout is the
remainder. Both are rounded to cents, so they always add back up to the
rounded amount.
"""
import logging
from datetime import timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Optional

from pydantic import BaseModel
from sqlalchemy import func
from sqlalchemy.orm import Session

from parkingdirekt.db.connection import DatabaseConnectionManager
from parkingdirekt.db.models import PlatformRevenue
from parkingdirekt.services.system_config import SystemConfigService
from parkingdirekt.utils.clock import utcnow

logger = logging.getLogger(__name__)

DEFAULT_COMMISSION_PERCENT = 10.0
_CENT = Decimal("0.01")


class CommissionSplit(BaseModel):
    amount: float
    commission_percent: float
    platform_fee: float
    owner_payout: float


def _to_cents(value: Decimal) -> Decimal:
    return value.quantize(_CENT, rounding=ROUND_HALF_UP)


def calculate_commission(amount: float, commission_percent: float) -> CommissionSplit:
    """
    Split an amount between platform and owner.

    Args:
        amount: Gross amount paid by the renter
        commission_percent: Platform share in percent (0-100)

    Returns:
        CommissionSplit with cent-rounded fee and payout
    """
    gross = _to_cents(Decimal(str(amount)))
    fee = _to_cents(gross * Decimal(str(commission_percent)) / Decimal(100))
    return CommissionSplit(
        amount=float(gross),
        commission_percent=float(commission_percent),
        platform_fee=float(fee),
        owner_payout=float(gross - fee),
    )


class CommissionService:
    """Applies the configured commission and records platform revenue."""

    def __init__(self, db: DatabaseConnectionManager, config_store: SystemConfigService):
        self.db = db
        self.config_store = config_store

    async def get_commission_percent(self, environment: str = "production") -> float:
        try:
            value = await self.config_store.get_config_value(
                "platformCommissionPercent", DEFAULT_COMMISSION_PERCENT, environment
            )
            return float(value)
        except (TypeError, ValueError):
            logger.warning("Invalid platformCommissionPercent, using default")
            return DEFAULT_COMMISSION_PERCENT

    async def calculate_platform_fee(self, amount: float, environment: str = "production") -> CommissionSplit:
        percent = await self.get_commission_percent(environment)
        return calculate_commission(amount, percent)

    def record_revenue(
        self,
        session: Session,
        split: CommissionSplit,
        booking_id: Optional[str] = None,
        currency: str = "EUR",
    ) -> PlatformRevenue:
        """
        Add a revenue row inside the caller's transaction.

        A booking only ever gets one row; an existing row is returned as is.
        """
        if booking_id:
            existing = session.query(PlatformRevenue).filter_by(booking_id=booking_id).first()
            if existing is not None:
                return existing

        revenue = PlatformRevenue(
            booking_id=booking_id,
            amount=split.amount,
            commission_percent=split.commission_percent,
            commission_amount=split.platform_fee,
            owner_amount=split.owner_payout,
            currency=currency,
            status="completed",
        )
        session.add(revenue)
        logger.info(
            "Platform revenue recorded",
            extra={"booking_id": booking_id, "amount": split.amount, "commission": split.platform_fee},
        )
        return revenue

    async def get_revenue_analytics(self, days: int = 30) -> dict[str, Any]:
        """Totals over the last ``days`` days, broken down by status and currency."""
        since = utcnow() - timedelta(days=days)
        try:
            with self.db.get_session() as session:
                rows = (
                    session.query(
                        PlatformRevenue.status,
                        PlatformRevenue.currency,
                        func.sum(PlatformRevenue.amount),
                        func.sum(PlatformRevenue.commission_amount),
                        func.count(PlatformRevenue.id),
                    )
                    .filter(PlatformRevenue.created_at >= since)
                    .group_by(PlatformRevenue.status, PlatformRevenue.currency)
                    .all()
                )
        except Exception as e:
            logger.error(
                "Failed to get revenue analytics",
                extra={"error": str(e), "error_type": type(e).__name__},
            )
            rows = []

        breakdown = [
            {
                "status": status,
                "currency": currency,
                "revenue": round(float(revenue or 0), 2),
                "commission": round(float(commission or 0), 2),
                "transactions": count,
            }
            for status, currency, revenue, commission, count in rows
        ]
        total_revenue = sum(item["revenue"] for item in breakdown)
        total_transactions = sum(item["transactions"] for item in breakdown)
        return {
            "total_revenue": round(total_revenue, 2),
            "total_commission": round(sum(item["commission"] for item in breakdown), 2),
            "total_transactions": total_transactions,
            "average_transaction_value": (
                round(total_revenue / total_transactions, 2) if total_transactions else 0.0
            ),
            "breakdown": breakdown,
            "days": days,
        }
