# src/projection02/flow_resolver.py

"""
Two-Tier Flow Resolver
======================

Fixed three-phase pipeline applied to every step:

1. apply_warehouse_receipts
       supplier receipts land on the warehouse tier
2. apply_store_receipts_and_transfers
       direct store receipts land on the store tier, then
       warehouse -> store transfers are filled from warehouse stock
3. deplete_store_tier
       the Depletion Calculator runs once per store-tier position

The order is structural: stock always arrives before it is depleted.
The warehouse tier is never depleted; its residual carries forward as
next step's opening stock. Transfers that exceed warehouse stock are
filled partially and the remainder is kept as a backlog that is retried
every following step.

Each phase takes and returns an immutable StepState.
"""

from concurrent.futures import Executor
from dataclasses import dataclass, field, replace
from typing import Dict, List, Optional, Tuple
import logging

from .depletion import deplete, DepletionResult
from .exceptions import InvariantViolation
from .ledger import StockLedger
from .models import (
    Key,
    StepWindow,
    StockPosition,
    Tier,
    WarehouseProjection,
    WeeklyProjection,
)
from .providers import RateOfSaleTable, ReceiptQuantities, ReceiptSchedule
from .recorder import ProjectionRecorder


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StepContext:
    """Read-only inputs of one step."""
    window: StepWindow
    receipts: Dict[Key, ReceiptQuantities]
    rates: RateOfSaleTable
    executor: Optional[Executor] = None
    recorder: Optional[ProjectionRecorder] = None

    @classmethod
    def build(
        cls,
        window: StepWindow,
        schedule: ReceiptSchedule,
        rates: RateOfSaleTable,
        executor: Optional[Executor] = None,
        recorder: Optional[ProjectionRecorder] = None,
    ) -> "StepContext":
        receipts = {}

        for location, item in sorted(schedule.keys()):
            quantities = schedule.receipts_for(location, item, window)
            if not quantities.is_empty:
                receipts[(location, item)] = quantities

        return cls(
            window=window,
            receipts=receipts,
            rates=rates,
            executor=executor,
            recorder=recorder,
        )

    def receipts_for(self, key: Key) -> ReceiptQuantities:
        return self.receipts.get(key, ReceiptQuantities())


@dataclass(frozen=True)
class StepState:
    """Ledger plus what has happened to it so far within one step."""
    ledger: StockLedger
    warehouse_opening: Dict[Key, int] = field(default_factory=dict)
    warehouse_inward: Dict[Key, int] = field(default_factory=dict)
    transferred: Dict[Key, int] = field(default_factory=dict)
    store_opening: Dict[Key, int] = field(default_factory=dict)
    store_inward: Dict[Key, int] = field(default_factory=dict)
    store_records: Tuple[WeeklyProjection, ...] = ()
    warehouse_records: Tuple[WarehouseProjection, ...] = ()

    @property
    def applied_receipt_qty(self) -> int:
        """Supplier receipts applied this step (transfers are internal moves)."""
        transfers = sum(self.transferred.values())
        return sum(self.warehouse_inward.values()) + sum(self.store_inward.values()) - transfers


def _check_opening(position: StockPosition, key: Key, tier: Tier, window: StepWindow) -> int:
    if position.on_hand_qty < 0:
        raise InvariantViolation(
            f"Negative {tier.value} opening stock {position.on_hand_qty}",
            location=key[0],
            item=key[1],
            step=window.start,
        )
    return position.on_hand_qty


# ==========================================================
# Phase 1: warehouse receipts
# ==========================================================

def apply_warehouse_receipts(state: StepState, ctx: StepContext) -> StepState:
    ledger = state.ledger
    warehouse_opening = {}
    warehouse_inward = {}
    patch = {}

    keys = set(ledger.keys(Tier.WAREHOUSE)) | {
        key for key, quantities in ctx.receipts.items() if quantities.warehouse
    }

    for key in sorted(keys):
        location, item = key
        position = ledger.position(location, item, Tier.WAREHOUSE)
        opening = _check_opening(position, key, Tier.WAREHOUSE, ctx.window)
        inward = ctx.receipts_for(key).warehouse

        if (location, item, Tier.WAREHOUSE) not in ledger:
            logger.debug(f"Creating warehouse position for {key} at {ctx.window.start}.")

        warehouse_opening[key] = opening
        warehouse_inward[key] = inward

        if inward or (location, item, Tier.WAREHOUSE) not in ledger:
            patch[(location, item, Tier.WAREHOUSE)] = position.add_stock(inward)

    return replace(
        state,
        ledger=ledger.apply(patch),
        warehouse_opening=warehouse_opening,
        warehouse_inward=warehouse_inward,
    )


# ==========================================================
# Phase 2: store receipts and warehouse -> store transfers
# ==========================================================

def apply_store_receipts_and_transfers(state: StepState, ctx: StepContext) -> StepState:
    ledger = state.ledger
    store_opening = {}
    store_inward = {}
    transferred = {}
    pending_updates = {}
    patch = {}

    requested_keys = {
        key for key, quantities in ctx.receipts.items() if quantities.store or quantities.transfer
    } | set(ledger.pending_transfers())

    keys = set(ledger.keys(Tier.STORE)) | requested_keys

    for key in sorted(keys):
        location, item = key
        store_position = ledger.position(location, item, Tier.STORE)
        opening = _check_opening(store_position, key, Tier.STORE, ctx.window)
        quantities = ctx.receipts_for(key)

        requested = ledger.pending_transfer(location, item) + quantities.transfer
        moved = 0

        if requested:
            warehouse_position = patch.get(
                (location, item, Tier.WAREHOUSE),
                ledger.position(location, item, Tier.WAREHOUSE),
            )
            moved = min(requested, warehouse_position.on_hand_qty)
            backlog = requested - moved

            if backlog:
                logger.warning(
                    f"Transfer for {key} at {ctx.window.start} short by {backlog} "
                    f"units (warehouse has {warehouse_position.on_hand_qty}); "
                    f"backlog retried next step."
                )

            pending_updates[key] = backlog

            if moved:
                patch[(location, item, Tier.WAREHOUSE)] = warehouse_position.add_stock(-moved)
                transferred[key] = moved

        inward = quantities.store + moved
        exists = (location, item, Tier.STORE) in ledger

        if not exists and not inward:
            continue

        if not exists:
            logger.debug(f"Creating store position for {key} at {ctx.window.start}.")

        store_opening[key] = opening
        store_inward[key] = inward
        patch[(location, item, Tier.STORE)] = store_position.add_stock(inward)

    return replace(
        state,
        ledger=ledger.apply(patch, pending_transfers=pending_updates),
        store_opening=store_opening,
        store_inward=store_inward,
        transferred=transferred,
    )


# ==========================================================
# Phase 3: store-tier depletion
# ==========================================================

def _deplete_key(state: StepState, ctx: StepContext, key: Key) -> Tuple[Key, DepletionResult]:
    location, item = key
    position = state.ledger.position(location, item, Tier.STORE)
    opening = state.store_opening[key]
    inward = state.store_inward[key]

    if position.on_hand_qty != opening + inward:
        raise InvariantViolation(
            f"Store stock {position.on_hand_qty} does not equal opening "
            f"{opening} + inward {inward}",
            location=location,
            item=item,
            step=ctx.window.start,
        )

    result = deplete(
        location=location,
        item=item,
        window=ctx.window,
        opening_qty=opening,
        inward_qty=inward,
        fractional_carry=position.fractional_carry,
        units_per_day=ctx.rates.rate_for(location, item, ctx.window.start),
    )

    return key, result


def deplete_store_tier(state: StepState, ctx: StepContext) -> StepState:
    """
    Keys are independent within a step, so they may be depleted on
    ``ctx.executor``. Results are collected (the step barrier) and applied
    in sorted key order before the ledger is replaced. The warehouse
    tier is closed out here as well, since nothing depletes it.
    """

    keys = sorted(state.store_opening)

    if ctx.executor is not None and len(keys) > 1:
        results: List[Tuple[Key, DepletionResult]] = list(
            ctx.executor.map(lambda key: _deplete_key(state, ctx, key), keys)
        )
    else:
        results = [_deplete_key(state, ctx, key) for key in keys]

    ledger = state.ledger.apply(
        {
            (location, item, Tier.STORE): result.position
            for (location, item), result in results
        }
    )

    warehouse_records = tuple(
        _warehouse_record(ledger, ctx.window, key, state)
        for key in sorted(state.warehouse_opening)
    )

    return replace(
        state,
        ledger=ledger,
        store_records=tuple(result.record for _, result in results),
        warehouse_records=warehouse_records,
    )


def _warehouse_record(
    ledger: StockLedger,
    window: StepWindow,
    key: Key,
    state: StepState,
) -> WarehouseProjection:
    location, item = key
    opening = state.warehouse_opening[key]
    inward = state.warehouse_inward.get(key, 0)
    moved = state.transferred.get(key, 0)
    closing = ledger.position(location, item, Tier.WAREHOUSE).on_hand_qty

    if closing != opening + inward - moved:
        raise InvariantViolation(
            f"Warehouse closing {closing} does not equal opening {opening} "
            f"+ inward {inward} - transferred {moved}",
            location=location,
            item=item,
            step=window.start,
        )

    return WarehouseProjection(
        location=location,
        item=item,
        week_start=window.start,
        week_end=window.end,
        opening_qty=opening,
        inward_qty=inward,
        transferred_out_qty=moved,
        pending_transfer_qty=ledger.pending_transfer(location, item),
        closing_qty=closing,
    )


FLOW_PHASES = (
    apply_warehouse_receipts,
    apply_store_receipts_and_transfers,
    deplete_store_tier,
)
