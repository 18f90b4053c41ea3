"""
Parquet ingestion module for projection input tables.

Same contract as csv_ingestion.ingest; the optional ``parquet.engine``
key selects the pandas Parquet engine (pyarrow by default).
"""

from typing import Dict, Any
import logging

import pandas as pd

from .csv_ingestion import resolve_input_path


logger = logging.getLogger(__name__)


def ingest(
    dataset_name: str,
    dataset_cfg: Dict[str, Any],
    global_cfg: Dict[str, Any],
    paths_cfg: Dict[str, Any],
) -> pd.DataFrame:
    file_path = resolve_input_path(dataset_name, dataset_cfg, paths_cfg, "PARQUET INGESTION")

    engine = dataset_cfg.get("parquet", {}).get("engine", "pyarrow")

    logger.info(
        f"[PARQUET INGESTION] Reading dataset '{dataset_name}' from {file_path}"
    )

    df = pd.read_parquet(file_path, engine=engine)

    logger.info(
        f"[PARQUET INGESTION] Loaded dataset '{dataset_name}' with shape {df.shape}"
    )

    return df
