# src/projection02/depletion.py

"""
Depletion Calculator
====================

Computes, for one store-tier (location, item) and one step, how many
whole units leave stock while keeping long-run consumption equal to
``units_per_day x days``.

Algorithm (per step):
---------------------
1. raw      = units_per_day * days_in_step
2. carried  = prior_carry + raw
3. target   = min(max(0, round_half_up(carried)), available)
4. carry    = carried - target
5. closing  = available - target

``available`` is opening stock plus this step's inward quantity.
When target is capped by stock, the unmet remainder stays in the carry
and is caught up once stock returns. A negative carry (only possible
from upstream corrections) never produces negative sales.

Pure function: no state, no I/O besides logging.
"""

import math
from dataclasses import dataclass
from typing import Optional
import logging

from .exceptions import InvariantViolation
from .models import StepWindow, StockPosition, WeeklyProjection


logger = logging.getLogger(__name__)


def round_half_up(value: float) -> int:
    """Round to the nearest integer, ties away from -inf (2.5 -> 3)."""
    return int(math.floor(value + 0.5))


@dataclass(frozen=True)
class DepletionResult:
    position: StockPosition
    record: WeeklyProjection


def deplete(
    location: str,
    item: str,
    window: StepWindow,
    opening_qty: int,
    inward_qty: int,
    fractional_carry: float,
    units_per_day: Optional[float],
) -> DepletionResult:
    """
    Deplete one store-tier position for one step.

    Parameters
    ----------
    opening_qty : int
        Stock before this step's receipts (previous closing).
    inward_qty : int
        Receipts and transfers applied to the store tier this step.
    fractional_carry : float
        Carry forwarded by the previous step.
    units_per_day : float or None
        Forecast rate; None means no rate record, treated as zero.

    Raises
    ------
    InvariantViolation
        If opening stock is negative on entry.
    """

    if opening_qty < 0 or inward_qty < 0:
        raise InvariantViolation(
            f"Negative stock on entry to depletion "
            f"(opening={opening_qty}, inward={inward_qty})",
            location=location,
            item=item,
            step=window.start,
        )

    if units_per_day is None:
        logger.info(
            f"No rate of sale for ({location}, {item}) at {window.start}; "
            f"forecasted sales treated as zero."
        )
        units_per_day = 0.0

    available = opening_qty + inward_qty

    raw_sales = units_per_day * window.days
    carried_sales = fractional_carry + raw_sales

    demanded = max(0, round_half_up(carried_sales))
    target_sales = min(demanded, available)

    new_carry = carried_sales - target_sales
    closing_qty = available - target_sales
    stockout = demanded > available

    if stockout:
        logger.debug(
            f"Stock-out for ({location}, {item}) at {window.start}: "
            f"demand {demanded} > available {available}; "
            f"carrying {new_carry:.4f} forward."
        )

    record = WeeklyProjection(
        location=location,
        item=item,
        week_start=window.start,
        week_end=window.end,
        opening_qty=opening_qty,
        inward_qty=inward_qty,
        forecasted_sales_qty=target_sales,
        closing_qty=closing_qty,
        carry_out=new_carry,
        stockout=stockout,
    )

    return DepletionResult(
        position=StockPosition(on_hand_qty=closing_qty, fractional_carry=new_carry),
        record=record,
    )
