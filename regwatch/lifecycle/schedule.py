"""Review Interval Table and calendar-month arithmetic."""

import calendar
from datetime import date

from regwatch.schemas.enums import RiskLevel

REVIEW_INTERVAL_MONTHS: dict[RiskLevel, int] = {
    RiskLevel.CRITICAL: 3,
    RiskLevel.HIGH: 6,
    RiskLevel.MEDIUM: 12,
    RiskLevel.LOW: 12,
}


def add_months(start: date, months: int) -> date:
    """
    Shift by calendar months, clamping to the last day of the target month.

    Jan 31 + 1 month -> Feb 28 (or 29). Negative ``months`` go backwards.
    """
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    day = min(start.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def next_review_date(risk_level: RiskLevel, today: date) -> date:
    return add_months(today, REVIEW_INTERVAL_MONTHS[risk_level])
