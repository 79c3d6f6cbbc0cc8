"""Billing period arithmetic.

Pure functions over plan billing cycles: no I/O and no clock reads, so callers
decide which instant a period starts at.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional, Union

from dateutil.relativedelta import relativedelta

from schoolbilling.core.exceptions import UnsupportedBillingCycleError
from schoolbilling.schemas.subscription_plan import BillingCycle

# Calendar step per billable cycle; relativedelta clamps to the end of shorter months
_CYCLE_STEPS = {
    BillingCycle.MONTHLY: relativedelta(months=1),
    BillingCycle.YEARLY: relativedelta(years=1),
}

# Recurring interval names understood by the payment gateway
_GATEWAY_INTERVALS = {
    BillingCycle.MONTHLY: "month",
    BillingCycle.YEARLY: "year",
}


@dataclass(frozen=True)
class BillingPeriodWindow:
    """One billing period of a subscription."""

    start: datetime
    next_billing_date: datetime
    end_date: Optional[datetime] = None


def _billable_cycle(billing_cycle: Union[BillingCycle, str, None]) -> BillingCycle:
    try:
        cycle = BillingCycle(billing_cycle)
    except ValueError:
        raise UnsupportedBillingCycleError(billing_cycle) from None

    if cycle not in _CYCLE_STEPS:
        raise UnsupportedBillingCycleError(cycle.value)
    return cycle


def compute_period(
    billing_cycle: Union[BillingCycle, str],
    start: datetime,
    end_date: Optional[datetime] = None,
) -> BillingPeriodWindow:
    """Compute the period that starts at ``start`` for a billing cycle.

    MONTHLY adds one calendar month and YEARLY one calendar year. When the
    target month is shorter the day is clamped, so Jan 31 is followed by the
    last day of February and Feb 29 by Feb 28 of the next year.

    Args:
        billing_cycle: The plan's billing cycle
        start: Period start
        end_date: Termination instant, if the subscription is ending

    Returns:
        The billing period window

    Raises:
        UnsupportedBillingCycleError: For ONE_TIME or any unknown cycle
    """
    cycle = _billable_cycle(billing_cycle)
    return BillingPeriodWindow(
        start=start,
        next_billing_date=start + _CYCLE_STEPS[cycle],
        end_date=end_date,
    )


def gateway_interval(billing_cycle: Union[BillingCycle, str]) -> str:
    """Recurring interval for a checkout line item ("month" or "year")."""
    return _GATEWAY_INTERVALS[_billable_cycle(billing_cycle)]


def to_minor_units(price: Union[Decimal, int, str]) -> int:
    """Convert a decimal price to integer minor units (cents), rounding half up."""
    amount = Decimal(str(price)) * 100
    return int(amount.quantize(Decimal("1"), rounding=ROUND_HALF_UP))
