"""
Schema validation and normalization utilities for projection inputs.

Responsibilities:
- Enforce snake_case column names
- Apply per-dataset rename mappings (alias -> canonical)
- Detect schema integrity violations
- Validate required columns of each input table

Execution order (enforced by apply_dataset_schema):
    1. normalize_column_names
    2. apply_rename_map
    3. detect_duplicate_columns
    4. validate_required_columns
"""

from typing import Any, Dict, Iterable, List, Optional
import logging
import re

import pandas as pd


logger = logging.getLogger(__name__)


class SchemaValidationError(Exception):
    """
    Raised when an input table violates its expected schema.

    Handled by the ingestion layer according to ``ingestion.strict_load``.
    """
    pass


# ---------------------------------------------------------------------
# Column Normalization
# ---------------------------------------------------------------------
def normalize_column_names(columns: Iterable[str]) -> List[str]:
    """
    Normalize column names to snake_case.

    "Effective Week Start" -> "effective_week_start",
    "Units/Day" -> "unitsday".
    """

    normalized = []

    for col in columns:
        if not isinstance(col, str):
            raise SchemaValidationError(
                f"Column name must be a string. Found type: {type(col).__name__}"
            )

        col_clean = col.strip().lower()
        col_clean = re.sub(r"[\s\-]+", "_", col_clean)
        col_clean = re.sub(r"[^a-z0-9_]", "", col_clean)
        col_clean = re.sub(r"_+", "_", col_clean)
        col_clean = col_clean.strip("_")

        normalized.append(col_clean)

    return normalized


# ---------------------------------------------------------------------
# Rename Mapping
# ---------------------------------------------------------------------
def apply_rename_map(columns: Iterable[str], rename_map: Dict[str, List[str]]) -> List[str]:
    """
    Rename alias columns to their canonical names.

    ``rename_map`` maps a canonical name to a list of accepted aliases,
    e.g. ``{"location": ["store_id", "site"]}``. Duplicate detection is
    a separate step.
    """

    reverse_map = {}

    for canonical, aliases in rename_map.items():
        if not isinstance(aliases, (list, tuple)):
            raise SchemaValidationError(
                f"Rename map for '{canonical}' must be a list of aliases."
            )

        for alias in aliases:
            if alias in reverse_map and reverse_map[alias] != canonical:
                raise SchemaValidationError(
                    f"Alias '{alias}' maps to both '{reverse_map[alias]}' "
                    f"and '{canonical}'."
                )
            reverse_map[alias] = canonical

    return [reverse_map.get(col, col) for col in columns]


# ---------------------------------------------------------------------
# Duplicate Detection
# ---------------------------------------------------------------------
def detect_duplicate_columns(columns: Iterable[str]) -> None:
    seen = set()
    duplicates = set()

    for col in columns:
        if col in seen:
            duplicates.add(col)
        else:
            seen.add(col)

    if duplicates:
        raise SchemaValidationError(
            f"Duplicate columns detected after schema processing: {sorted(duplicates)}"
        )


# ---------------------------------------------------------------------
# Required & Optional Column Validation
# ---------------------------------------------------------------------
def validate_required_columns(
    columns: Iterable[str],
    required_columns: Iterable[str],
    optional_columns: Optional[Iterable[str]] = None,
    optional_policy: str = "ignore"
) -> None:
    """
    Validate presence of required and optional columns.

    Missing required columns always fail. Missing optional columns are
    handled by ``optional_policy``: "ignore", "warn" or "error".
    """

    available = set(columns)

    missing_required = set(required_columns) - available
    if missing_required:
        raise SchemaValidationError(
            f"Missing required columns: {sorted(missing_required)}"
        )

    allowed_policies = {"ignore", "warn", "error"}

    if optional_policy not in allowed_policies:
        raise SchemaValidationError(
            f"Invalid optional_policy '{optional_policy}'. "
            f"Allowed values are: {sorted(allowed_policies)}"
        )

    if optional_columns:
        missing_optional = set(optional_columns) - available

        if missing_optional:
            if optional_policy == "error":
                raise SchemaValidationError(
                    f"Missing optional columns (policy=error): {sorted(missing_optional)}"
                )
            elif optional_policy == "warn":
                logger.warning(
                    "Missing optional columns (policy=warn): %s",
                    sorted(missing_optional)
                )


# ---------------------------------------------------------------------
# Full Schema Application
# ---------------------------------------------------------------------
def apply_dataset_schema(
    df: pd.DataFrame,
    dataset_schema: Dict[str, Any],
    dataset_name: str,
) -> pd.DataFrame:
    """
    Apply schema normalization and validation to one input table.

    Returns a copy; the input frame is not modified.
    """

    logger.info(f"Applying schema to dataset '{dataset_name}'")

    df = df.copy()

    df.columns = normalize_column_names(df.columns)
    df.columns = apply_rename_map(df.columns, dataset_schema.get("rename_map", {}))

    detect_duplicate_columns(df.columns)

    validate_required_columns(
        columns=df.columns,
        required_columns=dataset_schema.get("required_columns", []),
        optional_columns=dataset_schema.get("optional_columns", []),
        optional_policy=dataset_schema.get("optional_column_policy", "ignore"),
    )

    return df
