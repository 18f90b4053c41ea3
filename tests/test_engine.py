"""
End-to-end projection engine tests over literal fixture tables.

Properties checked:
- non-negativity and local conservation of every record
- global conservation with no receipts
- rounding carry prevents drift
- stock-out capping and catch-up after a receipt
- idempotent replay, serial vs threaded
- cancellation yields a valid partial result
- receipt conservation across the horizon
"""

from datetime import date, datetime

import pytest

from projection02.engine import project_from_frames, run_projection_engine
from projection02.exceptions import InvariantViolation
from projection02.horizon import HorizonDriver, build_step_windows
from projection02.ledger import StockLedger
from projection02.models import StockPosition, Tier
from projection02.providers import RateOfSaleTable, ReceiptSchedule
from tables import HORIZON_START, projection_cfg, rate_frame, receipt_frame, stock_frame


def _network_inputs():
    opening = stock_frame(
        [
            ("S001", "SKU-100", "store", 100),
            ("S001", "SKU-200", "store", 50),
            ("S001", "SKU-200", "warehouse", 200),
            ("S002", "SKU-100", "store", 30),
            ("S002", "SKU-300", "warehouse", 120),
        ]
    )
    receipts = receipt_frame(
        [
            ("S001", "SKU-200", "store", "2025-03-10", 40, False),
            ("S001", "SKU-200", "store", "2025-03-17", 60, True),
            ("S002", "SKU-300", "store", "2025-03-03", 48, True),
            ("S002", "SKU-300", "warehouse", "2025-04-07", 96, False),
            ("S001", "SKU-100", "store", "2025-04-14", 80, False),
            ("S003", "SKU-100", "store", "2025-03-24", 25, False),
        ]
    )
    rates = rate_frame(
        [
            ("S001", "SKU-100", "2025-03-01", 10),
            ("S001", "SKU-200", "2025-03-01", 10),
            ("S001", "SKU-200", "2025-04-01", 5),
            ("S002", "SKU-300", "2025-03-01", 1.3),
            ("S003", "SKU-100", "2025-03-01", 0.45),
        ]
    )
    return opening, receipts, rates


def _run_network(**cfg):
    opening, receipts, rates = _network_inputs()
    return project_from_frames(
        opening, receipts, rates, projection_cfg(horizon_length_days=84, **cfg)
    )


# ---------------------------------------------------------------------
# Literal scenarios
# ---------------------------------------------------------------------

def test_single_step_depletion():
    result = project_from_frames(
        stock_frame([("S001", "SKU-1", "store", 100)]),
        receipt_frame([]),
        rate_frame([("S001", "SKU-1", "2025-03-01", 10)]),
        projection_cfg(),
    )

    (record,) = result.recorder.records
    assert record.forecasted_sales_qty == 70
    assert record.closing_qty == 30
    assert result.completed


def test_stockout_then_catch_up_after_store_receipt():
    result = project_from_frames(
        stock_frame([("S001", "SKU-1", "store", 50)]),
        receipt_frame([("S001", "SKU-1", "store", "2025-03-10", 40, False)]),
        rate_frame([("S001", "SKU-1", "2025-03-01", 10)]),
        projection_cfg(horizon_length_days=14),
    )

    first, second = result.recorder.series("S001", "SKU-1")

    assert (first.forecasted_sales_qty, first.closing_qty) == (50, 0)
    assert first.carry_out == pytest.approx(20.0)

    # opening is stock before receipts; the 40 units arrive as inward
    assert (second.opening_qty, second.inward_qty) == (0, 40)
    assert (second.forecasted_sales_qty, second.closing_qty) == (40, 0)
    assert second.carry_out == pytest.approx(50.0)


def test_no_rate_record_means_no_depletion():
    result = project_from_frames(
        stock_frame([("S001", "SKU-1", "store", 30)]),
        receipt_frame([]),
        rate_frame([]),
        projection_cfg(horizon_length_days=21),
    )

    assert [r.closing_qty for r in result.recorder.series("S001", "SKU-1")] == [30, 30, 30]
    assert all(r.forecasted_sales_qty == 0 for r in result.recorder.records)


# ---------------------------------------------------------------------
# Properties
# ---------------------------------------------------------------------

def test_non_negativity_and_local_conservation():
    result = _run_network()

    assert len(result.recorder) > 0

    for record in result.recorder.records:
        assert record.opening_qty >= 0
        assert record.closing_qty >= 0
        assert record.closing_qty == (
            record.opening_qty + record.inward_qty - record.forecasted_sales_qty
        )

    for record in result.recorder.warehouse_records:
        assert record.closing_qty >= 0
        assert record.closing_qty == (
            record.opening_qty + record.inward_qty - record.transferred_out_qty
        )


def test_series_are_contiguous_and_chain_closing_to_opening():
    result = _run_network()

    for location, item in result.recorder.keys():
        series = result.recorder.series(location, item)

        for previous, current in zip(series, series[1:]):
            assert current.week_start == previous.week_end
            assert current.opening_qty == previous.closing_qty


def test_lazily_observed_key_starts_series_on_first_receipt():
    result = _run_network()

    series = result.recorder.series("S003", "SKU-100")

    assert series[0].week_start == date(2025, 3, 24)
    assert series[0].opening_qty == 0
    assert series[0].inward_qty == 25
    assert len(series) == 9


def test_global_conservation_without_receipts():
    result = project_from_frames(
        stock_frame([("S001", "SKU-1", "store", 100)]),
        receipt_frame([]),
        rate_frame([("S001", "SKU-1", "2025-03-01", 3.3)]),
        projection_cfg(horizon_length_days=70),
    )

    series = result.recorder.series("S001", "SKU-1")
    total_sales = sum(r.forecasted_sales_qty for r in series)

    assert total_sales == 100
    first_zero = next(i for i, r in enumerate(series) if r.closing_qty == 0)
    assert all(r.closing_qty == 0 for r in series[first_zero:])


def test_global_conservation_bound_before_stock_runs_out():
    result = project_from_frames(
        stock_frame([("S001", "SKU-1", "store", 1000)]),
        receipt_frame([]),
        rate_frame([("S001", "SKU-1", "2025-03-01", 3.3)]),
        projection_cfg(horizon_length_days=28),
    )

    total_sales = sum(r.forecasted_sales_qty for r in result.recorder.records)

    assert total_sales <= 1000
    assert result.recorder.records[-1].closing_qty == 1000 - total_sales


def test_carry_prevents_rounding_drift():
    steps, days, rate = 10, 7, 1.3

    result = project_from_frames(
        stock_frame([("S001", "SKU-1", "store", 10 ** 6)]),
        receipt_frame([]),
        rate_frame([("S001", "SKU-1", "2025-03-01", rate)]),
        projection_cfg(horizon_length_days=steps * days, step_length_days=days),
    )

    total_sales = sum(r.forecasted_sales_qty for r in result.recorder.records)
    naive_total = steps * round(rate * days)

    assert abs(total_sales - round(rate * days * steps)) <= 1
    assert total_sales == 91
    assert naive_total == 90


def test_replay_is_identical():
    first = _run_network().projection.to_csv(index=False)
    second = _run_network().projection.to_csv(index=False)

    assert first == second


def test_threaded_depletion_matches_serial():
    serial = _run_network(max_workers=1)
    threaded = _run_network(max_workers=4)

    assert serial.projection.to_csv(index=False) == threaded.projection.to_csv(index=False)
    assert (
        serial.warehouse_projection.to_csv(index=False)
        == threaded.warehouse_projection.to_csv(index=False)
    )


def test_stop_request_returns_partial_result():
    opening, receipts, rates = _network_inputs()
    calls = []

    def stop_requested():
        calls.append(1)
        return len(calls) >= 3

    result = project_from_frames(
        opening, receipts, rates,
        projection_cfg(horizon_length_days=84),
        stop_requested=stop_requested,
    )

    assert result.steps_completed == 3
    assert result.total_steps == 12
    assert not result.completed
    assert all(len(result.recorder.series(*key)) <= 3 for key in result.recorder.keys())
    assert max(r.week_end for r in result.recorder.records) == date(2025, 3, 24)


def test_receipts_applied_exactly_once():
    result = _run_network()

    # supplier receipts: 40 + 96 + 80 + 25; transfers 60 + 48 are internal
    assert result.applied_receipt_qty == 241
    assert result.transferred_qty == 108
    assert result.unconsumed_receipts == []


def test_receipts_beyond_horizon_are_reported_not_applied():
    result = project_from_frames(
        stock_frame([("S001", "SKU-1", "store", 10)]),
        receipt_frame(
            [
                ("S001", "SKU-1", "store", "2025-03-05", 5, False),
                ("S001", "SKU-1", "store", "2025-03-10", 99, False),
            ]
        ),
        rate_frame([]),
        projection_cfg(horizon_length_days=7),
    )

    assert result.applied_receipt_qty == 5
    assert [e.quantity for e in result.unconsumed_receipts] == [99]
    assert result.recorder.records[0].closing_qty == 15


def test_negative_ledger_entry_aborts_run():
    ledger = StockLedger({("S001", "SKU-1", Tier.STORE): StockPosition(on_hand_qty=-5)})

    with pytest.raises(InvariantViolation) as excinfo:
        run_projection_engine(
            opening_ledger=ledger,
            schedule=ReceiptSchedule(),
            rates=RateOfSaleTable(),
            driver=HorizonDriver(build_step_windows(HORIZON_START, 14)),
        )

    assert excinfo.value.location == "S001"
    assert excinfo.value.step == HORIZON_START


def test_datetime_horizon_start_runs_like_a_date():
    schedule = ReceiptSchedule.from_frame(
        receipt_frame([("S001", "SKU-1", "store", "2025-03-10", 40, False)])
    )
    rates = RateOfSaleTable.from_frame(rate_frame([("S001", "SKU-1", "2025-03-01", 10)]))
    ledger = StockLedger.from_snapshot(stock_frame([("S001", "SKU-1", "store", 50)]))

    result = run_projection_engine(
        opening_ledger=ledger,
        schedule=schedule,
        rates=rates,
        driver=HorizonDriver(build_step_windows(datetime(2025, 3, 3), 14)),
    )

    assert result.completed
    assert [r.week_start for r in result.recorder.records] == [date(2025, 3, 3), date(2025, 3, 10)]
    assert [r.inward_qty for r in result.recorder.records] == [0, 40]
    assert result.applied_receipt_qty == 40


def test_carry_out_is_rounded_in_output_only():
    result = project_from_frames(
        stock_frame([("S001", "SKU-1", "store", 100)]),
        receipt_frame([]),
        rate_frame([("S001", "SKU-1", "2025-03-01", 1.3)]),
        projection_cfg(),
    )

    assert result.projection["carry_out"].tolist() == [0.1]
    assert result.projection.to_csv(index=False).splitlines()[1].endswith(",0.1,False")
    assert result.recorder.records[0].carry_out == pytest.approx(0.1)
    assert result.ledger.position("S001", "SKU-1", Tier.STORE).fractional_carry == (
        result.recorder.records[0].carry_out
    )
