# src/projection02/ledger.py

"""
Stock Ledger
============

Key-indexed table of StockPosition values, one per
(location, item, tier). It is the only long-lived state of a run.

The ledger is never mutated in place: ``apply`` returns a new ledger
with the patched entries, so each step hands an explicit table to the
next. Positions are created lazily on first sighting and never deleted.

Also tracks the warehouse->store transfer backlog per (location, item):
transfer quantity that could not be filled from warehouse stock yet.
"""

from typing import Dict, Iterable, List, Mapping, Optional, Tuple
import logging

import pandas as pd

from .models import Key, StockPosition, Tier


logger = logging.getLogger(__name__)


LedgerKey = Tuple[str, str, Tier]

SNAPSHOT_COLUMNS = ["location", "item", "tier", "quantity"]


class StockLedger:

    def __init__(
        self,
        positions: Optional[Mapping[LedgerKey, StockPosition]] = None,
        pending_transfers: Optional[Mapping[Key, int]] = None,
    ):
        self._positions: Dict[LedgerKey, StockPosition] = dict(positions or {})
        self._pending: Dict[Key, int] = {
            key: qty for key, qty in (pending_transfers or {}).items() if qty
        }

    # --------------------------------------------------
    # Construction
    # --------------------------------------------------

    @classmethod
    def from_snapshot(cls, df: pd.DataFrame) -> "StockLedger":
        """
        Build the opening ledger from an ``opening_stock`` table.

        Raises
        ------
        ValueError
            On missing columns, negative or fractional quantities, unknown
            tiers, or two rows for the same (location, item, tier).
        """

        if df is None or df.empty:
            logger.warning("Opening stock snapshot is empty.")
            return cls()

        missing = [col for col in SNAPSHOT_COLUMNS if col not in df.columns]
        if missing:
            raise ValueError(f"Opening stock table is missing columns: {missing}")

        positions: Dict[LedgerKey, StockPosition] = {}

        for row in df.itertuples(index=False):
            key = (str(row.location), str(row.item), Tier.parse(row.tier))

            if pd.isna(row.quantity):
                raise ValueError(f"Missing opening quantity for {key[:2]} ({key[2].value}).")

            quantity = float(row.quantity)

            if not quantity.is_integer() or quantity < 0:
                raise ValueError(
                    f"Opening quantity must be a non-negative whole number for "
                    f"{key[:2]} ({key[2].value}): got {row.quantity}"
                )

            if key in positions:
                raise ValueError(
                    f"Duplicate opening stock row for {key[:2]} ({key[2].value})."
                )

            positions[key] = StockPosition(on_hand_qty=int(quantity))

        logger.info(f"Opening ledger built with {len(positions)} stock positions.")

        return cls(positions)

    # --------------------------------------------------
    # Reads
    # --------------------------------------------------

    def __contains__(self, key: LedgerKey) -> bool:
        return key in self._positions

    def __len__(self) -> int:
        return len(self._positions)

    def get(self, location: str, item: str, tier: Tier) -> Optional[StockPosition]:
        return self._positions.get((location, item, tier))

    def position(self, location: str, item: str, tier: Tier) -> StockPosition:
        """Position for the key, or an empty one if never sighted."""
        return self._positions.get((location, item, tier), StockPosition())

    def keys(self, tier: Optional[Tier] = None) -> List[Key]:
        """Sorted (location, item) keys, optionally restricted to one tier."""
        return sorted(
            {
                (location, item)
                for location, item, key_tier in self._positions
                if tier is None or key_tier is tier
            }
        )

    def pending_transfer(self, location: str, item: str) -> int:
        return self._pending.get((location, item), 0)

    def pending_transfers(self) -> Dict[Key, int]:
        return dict(self._pending)

    def total_on_hand(self, tier: Optional[Tier] = None) -> int:
        return sum(
            position.on_hand_qty
            for (_, _, key_tier), position in self._positions.items()
            if tier is None or key_tier is tier
        )

    # --------------------------------------------------
    # Copy-on-write updates
    # --------------------------------------------------

    def apply(
        self,
        patch: Mapping[LedgerKey, StockPosition],
        pending_transfers: Optional[Mapping[Key, int]] = None,
    ) -> "StockLedger":
        """
        Return a new ledger with ``patch`` entries replaced or added.

        ``pending_transfers``, when given, replaces the backlog entries for
        the keys it names; a zero entry clears the backlog.
        """

        positions = dict(self._positions)
        positions.update(patch)

        pending = dict(self._pending)
        if pending_transfers is not None:
            pending.update(pending_transfers)

        return StockLedger(positions, pending)

    def items(self) -> Iterable[Tuple[LedgerKey, StockPosition]]:
        return sorted(
            self._positions.items(),
            key=lambda kv: (kv[0][0], kv[0][1], kv[0][2].value),
        )

    def to_frame(self) -> pd.DataFrame:
        """Current positions as a table (location, item, tier, on_hand_qty, fractional_carry)."""
        rows = [
            {
                "location": location,
                "item": item,
                "tier": tier.value,
                "on_hand_qty": position.on_hand_qty,
                "fractional_carry": position.fractional_carry,
            }
            for (location, item, tier), position in self.items()
        ]

        return pd.DataFrame(
            rows,
            columns=["location", "item", "tier", "on_hand_qty", "fractional_carry"],
        )
