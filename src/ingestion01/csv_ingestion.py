# src/ingestion01/csv_ingestion.py

"""
CSV ingestion module for projection input tables.

Responsibilities
----------------
- Read opening stock, receipt schedule and rate-of-sale CSV files
- Perform defensive validation of ingestion settings
- Return raw data without applying schema or type coercion

Column names, tiers and dates are handled downstream by schema_utils
and the projection providers.
"""

from pathlib import Path
from typing import Dict
import logging

import pandas as pd


logger = logging.getLogger(__name__)


def resolve_input_path(dataset_name: str, dataset_cfg: Dict, paths_cfg: Dict, tag: str) -> Path:
    """
    Resolve ``dataset_cfg["file"]`` against ``paths.data.raw``.
    """
    file_name = dataset_cfg.get("file")

    if not isinstance(file_name, str) or not file_name:
        raise ValueError(
            f"[{tag}] 'file' must be a non-empty string for dataset '{dataset_name}'"
        )

    file_path = Path(paths_cfg["data"]["raw"]) / file_name

    if not file_path.exists():
        raise FileNotFoundError(
            f"[{tag}] File not found for dataset '{dataset_name}': {file_path}"
        )

    return file_path


def ingest(
    dataset_name: str,
    dataset_cfg: Dict,
    global_cfg: Dict,
    paths_cfg: Dict,
) -> pd.DataFrame:
    """
    Ingest a CSV dataset as configured under ``ingestion.datasets``.

    Parameters
    ----------
    dataset_name : str
        Logical name of the dataset (opening_stock, receipts, rate_of_sale)
    dataset_cfg : dict
        Dataset-specific ingestion configuration (file, csv block)
    global_cfg : dict
        Global ingestion configuration (header, skip_rows, na_values)
    paths_cfg : dict
        Resolved project paths configuration

    Returns
    -------
    pandas.DataFrame
        Raw DataFrame loaded from the CSV file

    Raises
    ------
    ValueError
        If required configuration keys are missing
    FileNotFoundError
        If the CSV file does not exist
    """

    file_path = resolve_input_path(dataset_name, dataset_cfg, paths_cfg, "CSV INGESTION")

    # --------------------------------------------------
    # Global ingestion config
    # --------------------------------------------------
    required_global_keys = {"header", "skip_rows", "na_values"}
    missing_keys = required_global_keys - global_cfg.keys()

    if missing_keys:
        raise ValueError(
            f"[CSV INGESTION] Missing global ingestion keys for '{dataset_name}': "
            f"{sorted(missing_keys)}"
        )

    header_flag = global_cfg["header"]

    if not isinstance(header_flag, bool):
        raise ValueError(
            f"[CSV INGESTION] 'header' must be boolean for dataset '{dataset_name}'"
        )

    # --------------------------------------------------
    # CSV-specific config
    # --------------------------------------------------
    csv_cfg = dataset_cfg.get("csv", {})

    delimiter = csv_cfg.get("delimiter", ",")
    encoding = csv_cfg.get("encoding", "utf-8")

    if not isinstance(delimiter, str):
        raise ValueError(
            f"[CSV INGESTION] 'delimiter' must be string for dataset '{dataset_name}'"
        )

    if not isinstance(encoding, str):
        raise ValueError(
            f"[CSV INGESTION] 'encoding' must be string for dataset '{dataset_name}'"
        )

    logger.info(
        f"[CSV INGESTION] Reading dataset '{dataset_name}' from {file_path}"
    )

    df = pd.read_csv(
        file_path,
        sep=delimiter,
        encoding=encoding,
        header=0 if header_flag else None,
        skiprows=global_cfg["skip_rows"],
        na_values=global_cfg["na_values"],
    )

    logger.info(
        f"[CSV INGESTION] Loaded dataset '{dataset_name}' with shape {df.shape}"
    )

    return df
