# src/utils/helpers.py

"""
Reusable Helper Utilities
==========================

Small, generic utility functions used by the projection pipeline.
"""

import os
import pandas as pd
from datetime import date
from typing import Union


# ==========================================================
# Filesystem Utilities
# ==========================================================

def ensure_directory(path: str) -> None:
    """
    Ensure that a directory exists.

    Safe to call multiple times. Used in pipelines before writing
    projection artifacts.
    """
    os.makedirs(path, exist_ok=True)


# ==========================================================
# Filename Utilities
# ==========================================================

def build_period_filename(
    start_date: Union[str, date],
    end_date: Union[str, date],
    suffix: str
) -> str:
    """
    Create a standardized filename using a date range.

    Example
    -------
    build_period_filename("2025-03-03", "2025-05-26", "store_projection.csv")

    Returns:
        Mar2025-May2025-store_projection.csv
    """

    start_fmt = pd.to_datetime(start_date).strftime("%b%Y")
    end_fmt = pd.to_datetime(end_date).strftime("%b%Y")

    return f"{start_fmt}-{end_fmt}-{suffix}"


# ==========================================================
# Validation Utilities
# ==========================================================

def validate_columns_present(df: pd.DataFrame, columns, name: str) -> None:
    """
    Raise an error if any of ``columns`` is missing from ``df``.
    """
    missing = [col for col in columns if col not in df.columns]

    if missing:
        raise ValueError(f"{name} is missing columns: {missing}")
