"""
Flat-interest EMI schedule generation.

Interest is ``principal * rate / 100`` over the whole tenor, not amortized.
Principal and interest are each split into whole currency units and the last
installment takes whatever is left, so both columns always sum exactly to
their totals.
"""
import math
from collections import namedtuple
from decimal import Decimal, ROUND_FLOOR, ROUND_HALF_UP

from dateutil.relativedelta import relativedelta
from django.conf import settings

CENT = Decimal("0.01")
UNIT = Decimal("1")

ScheduledInstallment = namedtuple(
    "ScheduledInstallment",
    ["emi_number", "due_date", "principal_component", "interest_component"],
)


def total_interest(principal, rate):
    return (Decimal(principal) * Decimal(rate) / Decimal("100")).quantize(
        CENT, rounding=ROUND_HALF_UP
    )


def total_repayable(principal, rate):
    return Decimal(principal).quantize(CENT) + total_interest(principal, rate)


def installment_count(tenor_days):
    period = settings.EMI_PERIOD_DAYS
    return max(1, math.ceil(tenor_days / period))


def split_evenly(total, count):
    """Split ``total`` into ``count`` whole-unit parts, remainder on the last."""
    share = (total / count).quantize(UNIT, rounding=ROUND_FLOOR).quantize(CENT)
    parts = [share] * (count - 1)
    parts.append((total - share * (count - 1)).quantize(CENT))
    return parts


def due_dates(start_date, end_date, count):
    span = (end_date - start_date).days
    return [start_date + relativedelta(days=span * i // count) for i in range(1, count + 1)]


def build_schedule(principal, rate, start_date, end_date, count):
    if count < 1:
        raise ValueError("installment count must be at least 1")
    if end_date < start_date:
        raise ValueError("end_date must not precede start_date")

    principal = Decimal(principal).quantize(CENT)
    principal_parts = split_evenly(principal, count)
    interest_parts = split_evenly(total_interest(principal, rate), count)
    dates = due_dates(start_date, end_date, count)

    return [
        ScheduledInstallment(
            emi_number=number,
            due_date=due_date,
            principal_component=principal_part,
            interest_component=interest_part,
        )
        for number, (due_date, principal_part, interest_part) in enumerate(
            zip(dates, principal_parts, interest_parts), start=1
        )
    ]


def schedule_for_contract(contract):
    return build_schedule(
        contract.principal,
        contract.interest_rate,
        contract.start_date,
        contract.end_date,
        installment_count(contract.tenor_days),
    )
