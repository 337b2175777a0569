import calendar
from datetime import datetime

from apps.subscription.models import BillingCycle


def add_months(value: datetime, months: int) -> datetime:
    """Add calendar months, clamping the day to the end of the target month."""
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def add_billing_period(start: datetime, billing_cycle: str, periods: int = 1) -> datetime:
    if billing_cycle == BillingCycle.YEARLY:
        return add_months(start, 12 * periods)
    return add_months(start, periods)
