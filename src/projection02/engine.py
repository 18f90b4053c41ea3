# src/projection02/engine.py

"""
Projection Engine
=================

Composes the per-step stages and folds them over the horizon:

    STEP_STAGES = (
        apply_warehouse_receipts,
        apply_store_receipts_and_transfers,
        deplete_store_tier,
        record_step,
    )

The driver below has no business logic of its own. Each stage is a
``(StepState, StepContext) -> StepState`` function; the ledger that
leaves step n is the ledger that enters step n+1.

Outputs are deterministic: keys are visited in sorted order and records
appended in that order whatever ``max_workers`` is, so replaying the
same inputs yields identical tables.
"""

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional
import logging

import pandas as pd

from utils.config_loader import validate_projection_section

from .exceptions import InvariantViolation
from .flow_resolver import FLOW_PHASES, StepContext, StepState
from .horizon import HorizonDriver
from .ledger import StockLedger
from .models import ReceiptEvent, StepWindow
from .providers import RateOfSaleTable, ReceiptSchedule
from .recorder import ProjectionRecorder


logger = logging.getLogger(__name__)


def record_step(state: StepState, ctx: StepContext) -> StepState:
    for record in state.store_records:
        ctx.recorder.append(record)

    for record in state.warehouse_records:
        ctx.recorder.append_warehouse(record)

    return state


STEP_STAGES = FLOW_PHASES + (record_step,)


@dataclass
class ProjectionResult:
    recorder: ProjectionRecorder
    ledger: StockLedger
    steps_completed: int
    total_steps: int
    applied_receipt_qty: int = 0
    transferred_qty: int = 0
    unconsumed_receipts: List[ReceiptEvent] = field(default_factory=list)

    @property
    def completed(self) -> bool:
        return self.steps_completed == self.total_steps

    @property
    def projection(self) -> pd.DataFrame:
        return self.recorder.to_frame()

    @property
    def warehouse_projection(self) -> pd.DataFrame:
        return self.recorder.warehouse_frame()


def run_projection_engine(
    opening_ledger: StockLedger,
    schedule: ReceiptSchedule,
    rates: RateOfSaleTable,
    driver: HorizonDriver,
    max_workers: int = 1,
    stop_requested: Optional[Callable[[], bool]] = None,
) -> ProjectionResult:
    """
    Run the projection over every window of ``driver``.

    Parameters
    ----------
    opening_ledger : StockLedger
        Stock at horizon start.
    schedule : ReceiptSchedule
        Receipt schedule; events outside the horizon are handled by
        ReceiptSchedule.within_horizon.
    rates : RateOfSaleTable
        Forecast units per day.
    driver : HorizonDriver
        Step windows.
    max_workers : int
        Threads used to deplete keys within one step (1 = serial).
    stop_requested : callable, optional
        Polled after each completed step; returning True stops the run.

    Raises
    ------
    InvariantViolation
        On negative stock, inconsistent tier arithmetic, or receipts
        that were not applied exactly once.
    """

    schedule, unconsumed = schedule.within_horizon(driver.start, driver.end)

    recorder = ProjectionRecorder()

    # Mutable only through the fold below, one step at a time.
    carried: Dict[str, object] = {"ledger": opening_ledger, "applied": 0, "transferred": 0}

    executor = ThreadPoolExecutor(max_workers=max_workers) if max_workers > 1 else None

    def process_step(window: StepWindow) -> None:
        ctx = StepContext.build(window, schedule, rates, executor, recorder)
        state = StepState(ledger=carried["ledger"])

        for stage in STEP_STAGES:
            state = stage(state, ctx)

        carried["ledger"] = state.ledger
        carried["applied"] += state.applied_receipt_qty
        carried["transferred"] += sum(state.transferred.values())

    logger.info(
        f"Projection started: {len(driver.windows)} steps from {driver.start} "
        f"to {driver.end}, {len(opening_ledger)} opening positions, "
        f"max_workers={max_workers}."
    )

    try:
        steps_completed = driver.run(process_step, stop_requested=stop_requested)
    finally:
        if executor is not None:
            executor.shutdown(wait=True)

    result = ProjectionResult(
        recorder=recorder,
        ledger=carried["ledger"],
        steps_completed=steps_completed,
        total_steps=len(driver.windows),
        applied_receipt_qty=carried["applied"],
        transferred_qty=carried["transferred"],
        unconsumed_receipts=unconsumed,
    )

    if result.completed:
        _check_receipt_conservation(result, schedule)

    logger.info(
        f"Projection {'completed' if result.completed else 'stopped'}: "
        f"{steps_completed}/{result.total_steps} steps, "
        f"{len(recorder)} store records, "
        f"{len(recorder.warehouse_records)} warehouse records."
    )

    return result


def project_from_frames(
    opening_stock: pd.DataFrame,
    receipts: pd.DataFrame,
    rate_of_sale: pd.DataFrame,
    projection_cfg: dict,
    stop_requested: Optional[Callable[[], bool]] = None,
) -> ProjectionResult:
    """
    Convenience entry point: tables in, ProjectionResult out.

    ``projection_cfg`` is the ``projection`` config section
    (horizon_start_date, horizon_length_days, step_length_days,
    rate_unit, max_workers).
    """

    cfg = validate_projection_section(projection_cfg)

    driver = HorizonDriver.from_config(cfg)

    return run_projection_engine(
        opening_ledger=StockLedger.from_snapshot(opening_stock),
        schedule=ReceiptSchedule.from_frame(receipts),
        rates=RateOfSaleTable.from_frame(rate_of_sale, cfg["rate_unit"]),
        driver=driver,
        max_workers=cfg["max_workers"],
        stop_requested=stop_requested,
    )


def _check_receipt_conservation(result: ProjectionResult, schedule: ReceiptSchedule) -> None:
    """
    Every in-horizon supplier receipt is applied exactly once, and every
    transfer is either moved or still in the backlog.
    """

    if result.applied_receipt_qty != schedule.supplier_quantity():
        raise InvariantViolation(
            f"Applied receipt quantity {result.applied_receipt_qty} does not "
            f"equal scheduled in-horizon quantity {schedule.supplier_quantity()}"
        )

    backlog = sum(result.ledger.pending_transfers().values())

    if result.transferred_qty + backlog != schedule.transfer_quantity():
        raise InvariantViolation(
            f"Transferred {result.transferred_qty} + backlog {backlog} does not "
            f"equal scheduled transfers {schedule.transfer_quantity()}"
        )
