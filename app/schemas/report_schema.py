from pydantic import BaseModel
from datetime import date, datetime
from decimal import Decimal
from typing import Dict, List

from enums.payment_status import PaymentStatus


class BookingAnalytics(BaseModel):
    period_start: datetime
    period_end: datetime
    total_bookings: int = 0
    total_revenue: Decimal = Decimal("0.00")
    # nights per booking
    average_stay: float = 0.0
    status_breakdown: Dict[str, int] = {}


class PaymentStatusSummary(BaseModel):
    status: PaymentStatus
    count: int = 0
    total_amount: Decimal = Decimal("0.00")
    average_amount: Decimal = Decimal("0.00")


class DailyRevenue(BaseModel):
    day: date
    revenue: Decimal
    count: int


class PaymentAnalytics(BaseModel):
    """Payments created in the period, by status, plus collected revenue per day"""
    period_start: datetime
    period_end: datetime
    summary: List[PaymentStatusSummary] = []
    daily_revenue: List[DailyRevenue] = []
