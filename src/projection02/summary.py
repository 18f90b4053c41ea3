# src/projection02/summary.py

"""
Projection Summary
==================

Collapses the weekly projection table into one row per
(location, item):

location, item, steps, total_sales_qty, ending_qty, stockout_weeks,
first_stockout_week, weeks_of_cover, unmet_demand_qty

``unmet_demand_qty`` is the rounded carry left after the last step,
i.e. forecast demand the projected stock could not serve.
``first_stockout_week`` is NaT for keys that never stock out.
"""

import numpy as np
import pandas as pd

from utils.helpers import validate_columns_present

from .depletion import round_half_up
from .models import PROJECTION_COLUMNS


SUMMARY_COLUMNS = [
    "location",
    "item",
    "steps",
    "total_sales_qty",
    "ending_qty",
    "stockout_weeks",
    "first_stockout_week",
    "weeks_of_cover",
    "unmet_demand_qty",
]


def _summarize_key(group: pd.DataFrame) -> dict:
    group = group.sort_values("week_start")
    stockouts = group["stockout"].to_numpy(dtype=bool)

    if stockouts.any():
        first_index = int(np.argmax(stockouts))
        first_stockout_week = group["week_start"].iloc[first_index]
        weeks_of_cover = first_index
    else:
        first_stockout_week = pd.NaT
        weeks_of_cover = len(group)

    return {
        "steps": len(group),
        "total_sales_qty": int(group["forecasted_sales_qty"].sum()),
        "ending_qty": int(group["closing_qty"].iloc[-1]),
        "stockout_weeks": int(stockouts.sum()),
        "first_stockout_week": first_stockout_week,
        "weeks_of_cover": weeks_of_cover,
        "unmet_demand_qty": max(0, round_half_up(float(group["carry_out"].iloc[-1]))),
    }


def summarize_projection(projection_df: pd.DataFrame) -> pd.DataFrame:
    """
    Build the per-key summary table from a weekly projection table.
    """

    if not isinstance(projection_df, pd.DataFrame):
        raise ValueError("projection_df must be a pandas DataFrame.")

    validate_columns_present(projection_df, PROJECTION_COLUMNS, "projection_df")

    if projection_df.empty:
        return pd.DataFrame(columns=SUMMARY_COLUMNS)

    rows = []

    for (location, item), group in projection_df.groupby(["location", "item"], sort=True):
        row = {"location": location, "item": item}
        row.update(_summarize_key(group))
        rows.append(row)

    return pd.DataFrame(rows, columns=SUMMARY_COLUMNS)
