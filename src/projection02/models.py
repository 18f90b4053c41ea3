# src/projection02/models.py

"""
Projection Data Model
=====================

Immutable value objects shared by every engine component.

- StockPosition      : live stock + fractional carry of one (location, item, tier)
- ReceiptEvent       : one scheduled inward quantity
- RateOfSaleRecord   : one forecasted units-per-day figure
- WeeklyProjection   : one store-tier output row per (location, item, step)
- WarehouseProjection: one warehouse-tier output row per (location, item, step)
- StepWindow         : one half-open time bucket [start, end)

No I/O, no mutation. "Updating" a position means building a new one.
"""

from dataclasses import dataclass, asdict, replace
from datetime import date
from enum import Enum
from typing import Tuple


class Tier(Enum):
    """Stage in the stock network. Sales only happen at the store tier."""
    WAREHOUSE = "warehouse"
    STORE = "store"

    @classmethod
    def parse(cls, value) -> "Tier":
        if isinstance(value, Tier):
            return value

        text = str(value).strip().lower()

        for tier in cls:
            if tier.value == text:
                return tier

        raise ValueError(
            f"Unknown tier '{value}'. Expected one of: {[t.value for t in cls]}"
        )


Key = Tuple[str, str]
"""(location, item)"""

CARRY_OUTPUT_DECIMALS = 6


@dataclass(frozen=True)
class StockPosition:
    on_hand_qty: int = 0
    fractional_carry: float = 0.0

    def add_stock(self, quantity: int) -> "StockPosition":
        return replace(self, on_hand_qty=self.on_hand_qty + quantity)


@dataclass(frozen=True)
class ReceiptEvent:
    """
    Scheduled inward quantity.

    ``from_warehouse`` marks a store-tier receipt that is a transfer out
    of the same (location, item)'s warehouse tier rather than a supplier
    delivery.
    """
    location: str
    item: str
    tier: Tier
    effective_week: date
    quantity: int
    from_warehouse: bool = False

    def __post_init__(self):
        if self.quantity <= 0:
            raise ValueError(
                f"Receipt quantity must be positive for "
                f"({self.location}, {self.item}) on {self.effective_week}: "
                f"got {self.quantity}"
            )

        if self.from_warehouse and self.tier is not Tier.STORE:
            raise ValueError(
                f"Warehouse transfer for ({self.location}, {self.item}) "
                f"must target the store tier."
            )


@dataclass(frozen=True)
class RateOfSaleRecord:
    location: str
    item: str
    period: date
    units_per_day: float

    def __post_init__(self):
        if self.units_per_day < 0:
            raise ValueError(
                f"units_per_day must be >= 0 for ({self.location}, {self.item}) "
                f"period {self.period}: got {self.units_per_day}"
            )


@dataclass(frozen=True)
class StepWindow:
    """Half-open window [start, end)."""
    index: int
    start: date
    end: date

    @property
    def days(self) -> int:
        return (self.end - self.start).days

    def contains(self, day: date) -> bool:
        return self.start <= day < self.end


@dataclass(frozen=True)
class WeeklyProjection:
    """
    Store-tier projection row.

    closing_qty == opening_qty + inward_qty - forecasted_sales_qty, always >= 0.

    ``opening_qty`` is stock before this step's receipts, i.e. the
    previous closing. A week that starts empty and receives 40 units reads
    opening 0 / inward 40, not opening 40; the stock available to sell is
    opening_qty + inward_qty.

    ``carry_out`` is exact here and in the ledger; ``to_row`` rounds it to
    CARRY_OUTPUT_DECIMALS for the output tables.
    """
    location: str
    item: str
    week_start: date
    week_end: date
    opening_qty: int
    inward_qty: int
    forecasted_sales_qty: int
    closing_qty: int
    carry_out: float
    stockout: bool

    def to_row(self) -> dict:
        row = asdict(self)
        row["carry_out"] = round(self.carry_out, CARRY_OUTPUT_DECIMALS)
        return row


@dataclass(frozen=True)
class WarehouseProjection:
    """
    Warehouse-tier projection row. No sales happen here.

    closing_qty == opening_qty + inward_qty - transferred_out_qty.
    """
    location: str
    item: str
    week_start: date
    week_end: date
    opening_qty: int
    inward_qty: int
    transferred_out_qty: int
    pending_transfer_qty: int
    closing_qty: int

    def to_row(self) -> dict:
        return asdict(self)


PROJECTION_COLUMNS = [
    "location",
    "item",
    "week_start",
    "week_end",
    "opening_qty",
    "inward_qty",
    "forecasted_sales_qty",
    "closing_qty",
    "carry_out",
    "stockout",
]

WAREHOUSE_COLUMNS = [
    "location",
    "item",
    "week_start",
    "week_end",
    "opening_qty",
    "inward_qty",
    "transferred_out_qty",
    "pending_transfer_qty",
    "closing_qty",
]
