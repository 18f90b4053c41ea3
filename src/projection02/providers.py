# src/projection02/providers.py

"""
Input Providers
===============

Table-backed implementations of the two external collaborators the
engine consumes:

- ReceiptSchedule : receipts_for(location, item, window)
- RateOfSaleTable : rate_for(location, item, on_date) -> units per day

Both are fully materialized before the first step, so every lookup
during the simulation is an in-memory read. Missing data is a defined
condition (zero receipts / no rate), never an error.
"""

from bisect import bisect_right
from collections import defaultdict
from dataclasses import dataclass
from datetime import date
from typing import Dict, Iterable, List, Optional, Set, Tuple
import logging

import pandas as pd

from utils.config_loader import RATE_VALUE_COLUMNS

from .models import Key, RateOfSaleRecord, ReceiptEvent, StepWindow, Tier


logger = logging.getLogger(__name__)


RECEIPT_COLUMNS = ["location", "item", "tier", "effective_week_start", "quantity"]


def _as_int_quantity(value, context: str) -> int:
    if pd.isna(value):
        raise ValueError(f"Missing quantity for {context}.")

    quantity = float(value)

    if not quantity.is_integer():
        raise ValueError(f"Quantity must be a whole number for {context}: got {value}")

    return int(quantity)


def _as_bool(value) -> bool:
    if pd.isna(value):
        return False

    if isinstance(value, str):
        return value.strip().lower() in {"true", "1", "yes", "y"}

    return bool(value)


# ==========================================================
# Receipt Schedule
# ==========================================================

@dataclass(frozen=True)
class ReceiptQuantities:
    """Receipts applying to one (location, item) in one step."""
    warehouse: int = 0
    store: int = 0
    transfer: int = 0

    @property
    def is_empty(self) -> bool:
        return not (self.warehouse or self.store or self.transfer)


class ReceiptSchedule:
    """
    Immutable receipt schedule indexed by (location, item).

    Each event is consumed on the step whose window contains its
    ``effective_week``. Duplicate rows are summed, not collapsed.
    """

    def __init__(self, events: Iterable[ReceiptEvent] = ()):
        self._events: Dict[Key, List[ReceiptEvent]] = defaultdict(list)

        for event in events:
            self._events[(event.location, event.item)].append(event)

        for key in self._events:
            self._events[key].sort(key=lambda e: (e.effective_week, e.tier.value, e.from_warehouse))

    @classmethod
    def from_frame(cls, df: pd.DataFrame) -> "ReceiptSchedule":
        """
        Build a schedule from a ``receipts`` table.

        Rows with a zero quantity are skipped; negative or fractional
        quantities and unknown tiers raise ValueError.
        """

        if df is None or df.empty:
            logger.info("Receipt schedule is empty; all receipts treated as zero.")
            return cls()

        missing = [col for col in RECEIPT_COLUMNS if col not in df.columns]
        if missing:
            raise ValueError(f"Receipt table is missing columns: {missing}")

        has_transfer_flag = "from_warehouse" in df.columns
        weeks = pd.to_datetime(df["effective_week_start"], errors="raise").dt.date

        events = []
        skipped = 0

        for row, effective_week in zip(df.itertuples(index=False), weeks):
            location = str(row.location)
            item = str(row.item)
            context = f"receipt ({location}, {item}) on {effective_week}"

            quantity = _as_int_quantity(row.quantity, context)

            if quantity < 0:
                raise ValueError(f"Negative quantity for {context}: {quantity}")

            if quantity == 0:
                skipped += 1
                continue

            events.append(
                ReceiptEvent(
                    location=location,
                    item=item,
                    tier=Tier.parse(row.tier),
                    effective_week=effective_week,
                    quantity=quantity,
                    from_warehouse=_as_bool(row.from_warehouse) if has_transfer_flag else False,
                )
            )

        if skipped:
            logger.info(f"Skipped {skipped} zero-quantity receipt rows.")

        logger.info(f"Receipt schedule built with {len(events)} events.")

        return cls(events)

    def events(self) -> List[ReceiptEvent]:
        return [event for key in sorted(self._events) for event in self._events[key]]

    def keys(self) -> Set[Key]:
        return set(self._events)

    def total_quantity(self) -> int:
        return sum(event.quantity for event in self.events())

    def supplier_quantity(self) -> int:
        """Quantity entering the network (everything except transfers)."""
        return sum(event.quantity for event in self.events() if not event.from_warehouse)

    def transfer_quantity(self) -> int:
        return sum(event.quantity for event in self.events() if event.from_warehouse)

    def within_horizon(
        self,
        horizon_start: date,
        horizon_end: date,
    ) -> Tuple["ReceiptSchedule", List[ReceiptEvent]]:
        """
        Restrict the schedule to ``[horizon_start, horizon_end)``.

        Events dated before the horizon are moved onto ``horizon_start``
        so they are consumed by the first step. Events at or after the
        horizon end are returned separately as unconsumed.
        """

        kept = []
        unconsumed = []

        for event in self.events():
            if event.effective_week >= horizon_end:
                unconsumed.append(event)
                continue

            if event.effective_week < horizon_start:
                logger.warning(
                    f"Receipt for ({event.location}, {event.item}) dated "
                    f"{event.effective_week} precedes horizon start "
                    f"{horizon_start}; applying it in the first step."
                )
                event = ReceiptEvent(
                    location=event.location,
                    item=event.item,
                    tier=event.tier,
                    effective_week=horizon_start,
                    quantity=event.quantity,
                    from_warehouse=event.from_warehouse,
                )

            kept.append(event)

        if unconsumed:
            logger.warning(
                f"{len(unconsumed)} receipts totalling "
                f"{sum(e.quantity for e in unconsumed)} units fall on or after "
                f"horizon end {horizon_end} and will not be applied."
            )

        return ReceiptSchedule(kept), unconsumed

    def receipts_for(self, location: str, item: str, window: StepWindow) -> ReceiptQuantities:
        """
        Sum of receipts for one (location, item) inside ``window``.
        Missing data yields zeros.
        """

        warehouse = store = transfer = 0

        for event in self._events.get((location, item), ()):
            if event.effective_week >= window.end:
                break

            if not window.contains(event.effective_week):
                continue

            if event.tier is Tier.WAREHOUSE:
                warehouse += event.quantity
            elif event.from_warehouse:
                transfer += event.quantity
            else:
                store += event.quantity

        return ReceiptQuantities(warehouse=warehouse, store=store, transfer=transfer)


# ==========================================================
# Rate-of-Sale Provider
# ==========================================================

def to_units_per_day(value: float, rate_unit: str, period: date) -> float:
    """
    Convert a rate expressed in ``rate_unit`` to units per day.

    ``per_month`` divides by the number of days in the period's
    calendar month.
    """

    if rate_unit == "per_day":
        return float(value)

    if rate_unit == "per_week":
        return float(value) / 7.0

    if rate_unit == "per_month":
        return float(value) / pd.Timestamp(period).days_in_month

    raise ValueError(
        f"Unsupported rate_unit '{rate_unit}'. "
        f"Expected one of: {sorted(RATE_VALUE_COLUMNS)}"
    )


class RateOfSaleTable:
    """
    As-of lookup of forecasted units per day.

    The rate applying on a date is the one from the latest ``period``
    on or before that date. Nothing is interpolated or fabricated: a key
    with no period on or before the date has no rate.
    """

    def __init__(self, records: Iterable[RateOfSaleRecord] = ()):
        by_key: Dict[Key, Dict[date, float]] = defaultdict(dict)

        for record in records:
            periods = by_key[(record.location, record.item)]

            if record.period in periods:
                raise ValueError(
                    f"Duplicate rate-of-sale rows for ({record.location}, "
                    f"{record.item}) period {record.period}"
                )

            periods[record.period] = record.units_per_day

        self._periods: Dict[Key, List[date]] = {}
        self._rates: Dict[Key, List[float]] = {}

        for key, periods in by_key.items():
            ordered = sorted(periods)
            self._periods[key] = ordered
            self._rates[key] = [periods[p] for p in ordered]

    @classmethod
    def from_frame(cls, df: pd.DataFrame, rate_unit: str = "per_day") -> "RateOfSaleTable":
        """
        Build the table from a ``rate_of_sale`` table whose value column
        is ``units_per_day``, ``units_per_week`` or ``units_per_month``
        according to ``rate_unit``. Values are stored as units per day.
        """

        if rate_unit not in RATE_VALUE_COLUMNS:
            raise ValueError(
                f"Unsupported rate_unit '{rate_unit}'. "
                f"Expected one of: {sorted(RATE_VALUE_COLUMNS)}"
            )

        if df is None or df.empty:
            logger.info("Rate-of-sale table is empty; all forecasted sales are zero.")
            return cls()

        value_column = RATE_VALUE_COLUMNS[rate_unit]
        required = ["location", "item", "period", value_column]

        missing = [col for col in required if col not in df.columns]
        if missing:
            raise ValueError(f"Rate-of-sale table is missing columns: {missing}")

        periods = pd.to_datetime(df["period"], errors="raise").dt.date
        values = pd.to_numeric(df[value_column], errors="raise")

        records = []
        dropped = 0

        for location, item, period, value in zip(df["location"], df["item"], periods, values):
            if pd.isna(value):
                dropped += 1
                continue

            records.append(
                RateOfSaleRecord(
                    location=str(location),
                    item=str(item),
                    period=period,
                    units_per_day=to_units_per_day(value, rate_unit, period),
                )
            )

        if dropped:
            logger.info(f"Dropped {dropped} rate-of-sale rows with no value.")

        logger.info(
            f"Rate-of-sale table built with {len(records)} records ({rate_unit})."
        )

        return cls(records)

    def keys(self) -> Set[Key]:
        return set(self._periods)

    def rate_for(self, location: str, item: str, on_date: date) -> Optional[float]:
        periods = self._periods.get((location, item))

        if not periods:
            return None

        position = bisect_right(periods, on_date)

        if position == 0:
            return None

        return self._rates[(location, item)][position - 1]
