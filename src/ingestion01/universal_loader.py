"""
universal_loader.py
===================

Orchestration layer for loading the three projection input tables.

RESPONSIBILITIES
----------------
- Iterate over ingestion.datasets
- Dispatch each dataset to the loader for its source_type
- Apply per-dataset schema enforcement (data_schema.<dataset>)
- Enforce strict vs non-strict error behavior
- Ensure every table the engine needs has been loaded

DESIGN CONTRACT
---------------
Each ingestion module MUST expose:

    ingest(
        dataset_name: str,
        dataset_cfg: dict,
        global_cfg: dict,
        paths_cfg: dict
    ) -> pandas.DataFrame
"""

from typing import Dict, Any
import logging

import pandas as pd

from ingestion01 import csv_ingestion, parquet_ingestion

from utils.schema_utils import apply_dataset_schema, SchemaValidationError

logger = logging.getLogger(__name__)


SOURCE_DISPATCH = {
    "csv": csv_ingestion,
    "parquet": parquet_ingestion,
}

REQUIRED_DATASETS = ("opening_stock", "receipts", "rate_of_sale")


def load_all_datasets(
    config: Dict[str, Any],
    paths_cfg: Dict[str, Any],
) -> Dict[str, pd.DataFrame]:
    """
    Load all enabled input tables defined in ingestion configuration.

    A disabled or failed ``receipts`` / ``rate_of_sale`` dataset (in
    non-strict mode) becomes an empty table: missing receipts and
    missing rates are defined conditions for the engine, not errors.
    ``opening_stock`` is the anchor and must always load.

    Raises
    ------
    ValueError
        If a dataset has an unsupported source_type
    RuntimeError
        If the opening stock dataset is not loaded successfully
    """

    ingestion_cfg = config["ingestion"]
    datasets_cfg = ingestion_cfg["datasets"]
    schema_cfg = config.get("data_schema", {})

    strict_load = ingestion_cfg.get("strict_load", True)

    results: Dict[str, pd.DataFrame] = {}
    errors: Dict[str, str] = {}

    for dataset_name, dataset_cfg in datasets_cfg.items():

        if not dataset_cfg.get("enabled", False):
            logger.info(f"Skipping disabled dataset: {dataset_name}")
            continue

        source_type = dataset_cfg.get("source_type")

        if source_type not in SOURCE_DISPATCH:
            raise ValueError(
                f"Unsupported source_type '{source_type}' "
                f"for dataset '{dataset_name}'"
            )

        logger.info(
            f"Loading dataset '{dataset_name}' from source '{source_type}'"
        )

        try:
            data = SOURCE_DISPATCH[source_type].ingest(
                dataset_name=dataset_name,
                dataset_cfg=dataset_cfg,
                global_cfg=ingestion_cfg,
                paths_cfg=paths_cfg,
            )

            if dataset_name in schema_cfg:
                data = apply_dataset_schema(
                    df=data,
                    dataset_schema=schema_cfg[dataset_name],
                    dataset_name=dataset_name,
                )

            results[dataset_name] = data
            logger.info(f"Dataset '{dataset_name}' loaded successfully")

        except SchemaValidationError as exc:
            logger.error(
                f"Schema validation failed for dataset '{dataset_name}': {exc}"
            )
            if strict_load:
                raise
            errors[dataset_name] = f"SchemaError: {exc}"

        except (OSError, ValueError) as exc:
            logger.exception(
                f"Failed to load dataset '{dataset_name}': {exc}"
            )
            if strict_load:
                raise
            errors[dataset_name] = str(exc)

    if "opening_stock" not in results:
        raise RuntimeError(
            "Opening stock dataset 'opening_stock' was not loaded successfully."
        )

    for dataset_name in REQUIRED_DATASETS:
        if dataset_name not in results:
            logger.info(
                f"Dataset '{dataset_name}' not available; treating as empty."
            )
            results[dataset_name] = pd.DataFrame()

    if errors:
        logger.warning(f"Ingestion completed with errors: {errors}")

    return results
