"""
Receipt Schedule and Rate-of-Sale Provider tests.
"""

from datetime import date

import pandas as pd
import pytest

from projection02.models import StepWindow, Tier
from projection02.providers import (
    RateOfSaleTable,
    ReceiptQuantities,
    ReceiptSchedule,
    to_units_per_day,
)
from tables import rate_frame, receipt_frame


WEEK_1 = StepWindow(index=0, start=date(2025, 3, 3), end=date(2025, 3, 10))
WEEK_2 = StepWindow(index=1, start=date(2025, 3, 10), end=date(2025, 3, 17))


# ---------------------------------------------------------------------
# Receipt Schedule
# ---------------------------------------------------------------------

def test_receipts_split_by_tier_and_transfer():
    schedule = ReceiptSchedule.from_frame(
        receipt_frame(
            [
                ("S001", "SKU-1", "warehouse", "2025-03-03", 100, False),
                ("S001", "SKU-1", "store", "2025-03-05", 12, False),
                ("S001", "SKU-1", "Store", "2025-03-09", 30, True),
                ("S001", "SKU-1", "store", "2025-03-10", 7, False),
            ]
        )
    )

    assert schedule.receipts_for("S001", "SKU-1", WEEK_1) == ReceiptQuantities(
        warehouse=100, store=12, transfer=30
    )
    assert schedule.receipts_for("S001", "SKU-1", WEEK_2) == ReceiptQuantities(store=7)


def test_missing_receipts_are_zero():
    schedule = ReceiptSchedule.from_frame(pd.DataFrame())

    quantities = schedule.receipts_for("S404", "SKU-X", WEEK_1)

    assert quantities == ReceiptQuantities()
    assert quantities.is_empty


def test_duplicate_rows_are_summed():
    schedule = ReceiptSchedule.from_frame(
        receipt_frame(
            [
                ("S001", "SKU-1", "store", "2025-03-04", 10, False),
                ("S001", "SKU-1", "store", "2025-03-04", 10, False),
            ]
        )
    )

    assert schedule.receipts_for("S001", "SKU-1", WEEK_1).store == 20
    assert schedule.total_quantity() == 20


def test_zero_quantity_rows_skipped():
    schedule = ReceiptSchedule.from_frame(
        receipt_frame([("S001", "SKU-1", "store", "2025-03-04", 0, False)])
    )

    assert schedule.keys() == set()


@pytest.mark.parametrize(
    "row",
    [
        ("S001", "SKU-1", "store", "2025-03-04", -5, False),
        ("S001", "SKU-1", "store", "2025-03-04", 2.5, False),
        ("S001", "SKU-1", "dock", "2025-03-04", 5, False),
        ("S001", "SKU-1", "warehouse", "2025-03-04", 5, True),
    ],
)
def test_malformed_receipt_rows_rejected(row):
    with pytest.raises(ValueError):
        ReceiptSchedule.from_frame(receipt_frame([row]))


def test_transfer_flag_column_is_optional():
    df = receipt_frame([("S001", "SKU-1", "store", "2025-03-04", 5, True)]).drop(
        columns=["from_warehouse"]
    )

    schedule = ReceiptSchedule.from_frame(df)

    assert schedule.receipts_for("S001", "SKU-1", WEEK_1) == ReceiptQuantities(store=5)


def test_within_horizon_moves_early_and_reports_late_receipts():
    schedule = ReceiptSchedule.from_frame(
        receipt_frame(
            [
                ("S001", "SKU-1", "store", "2025-02-24", 5, False),
                ("S001", "SKU-1", "store", "2025-03-12", 6, False),
                ("S001", "SKU-1", "store", "2025-03-17", 7, False),
            ]
        )
    )

    bounded, unconsumed = schedule.within_horizon(date(2025, 3, 3), date(2025, 3, 17))

    assert bounded.receipts_for("S001", "SKU-1", WEEK_1).store == 5
    assert bounded.receipts_for("S001", "SKU-1", WEEK_2).store == 6
    assert bounded.total_quantity() == 11
    assert [event.quantity for event in unconsumed] == [7]
    assert unconsumed[0].tier is Tier.STORE


# ---------------------------------------------------------------------
# Rate-of-Sale Provider
# ---------------------------------------------------------------------

def test_rate_is_looked_up_as_of_period():
    rates = RateOfSaleTable.from_frame(
        rate_frame(
            [
                ("S001", "SKU-1", "2025-04-01", 5.0),
                ("S001", "SKU-1", "2025-03-01", 10.0),
            ]
        )
    )

    assert rates.rate_for("S001", "SKU-1", date(2025, 3, 1)) == 10.0
    assert rates.rate_for("S001", "SKU-1", date(2025, 3, 31)) == 10.0
    assert rates.rate_for("S001", "SKU-1", date(2025, 4, 1)) == 5.0
    assert rates.rate_for("S001", "SKU-1", date(2026, 1, 1)) == 5.0


def test_missing_rate_is_none_not_fabricated():
    rates = RateOfSaleTable.from_frame(rate_frame([("S001", "SKU-1", "2025-03-10", 4.0)]))

    assert rates.rate_for("S001", "SKU-1", date(2025, 3, 3)) is None
    assert rates.rate_for("S002", "SKU-1", date(2025, 3, 10)) is None
    assert RateOfSaleTable.from_frame(pd.DataFrame()).rate_for("S001", "SKU-1", date(2025, 3, 3)) is None


def test_weekly_rates_converted_to_daily():
    rates = RateOfSaleTable.from_frame(
        rate_frame([("S001", "SKU-1", "2025-03-03", 70)], value_column="units_per_week"),
        rate_unit="per_week",
    )

    assert rates.rate_for("S001", "SKU-1", date(2025, 3, 3)) == pytest.approx(10.0)


def test_monthly_rates_use_days_in_month():
    assert to_units_per_day(280, "per_month", date(2025, 2, 1)) == pytest.approx(10.0)
    assert to_units_per_day(310, "per_month", date(2025, 3, 1)) == pytest.approx(10.0)
    assert to_units_per_day(3.5, "per_day", date(2025, 3, 1)) == 3.5


def test_rate_table_requires_column_for_its_unit():
    with pytest.raises(ValueError):
        RateOfSaleTable.from_frame(
            rate_frame([("S001", "SKU-1", "2025-03-03", 70)]),
            rate_unit="per_week",
        )

    with pytest.raises(ValueError):
        RateOfSaleTable.from_frame(rate_frame([("S001", "SKU-1", "2025-03-03", 1)]), "per_year")


def test_negative_rate_rejected():
    with pytest.raises(ValueError):
        RateOfSaleTable.from_frame(rate_frame([("S001", "SKU-1", "2025-03-03", -1.0)]))


def test_duplicate_rate_periods_rejected():
    with pytest.raises(ValueError):
        RateOfSaleTable.from_frame(
            rate_frame(
                [
                    ("S001", "SKU-1", "2025-03-03", 1.0),
                    ("S001", "SKU-1", "2025-03-03", 2.0),
                ]
            )
        )
