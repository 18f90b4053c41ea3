# src/pipelines/run_projection.py

"""
Projection Pipeline Orchestrator
================================

Config-driven workflow around the depletion projection engine:

1. Load and validate configuration
2. Ingest opening stock, receipt schedule and rate-of-sale tables
3. Run the projection engine over the configured horizon
4. Save store projection, warehouse projection, summary and closing ledger tables

Design Principles:
------------------
- Fully config-driven
- Strict logging (no print statements)
- No planning logic here; the engine owns the arithmetic
- Partial (stopped) runs are saved with a "partial" suffix, never as complete
"""

import argparse
import os
from datetime import timedelta
from typing import Callable, Dict, Optional

import pandas as pd

from utils.config_loader import load_config, validate_projection_section
from utils.logger import get_logger
from utils.helpers import build_period_filename, ensure_directory

from ingestion01.universal_loader import load_all_datasets
from projection02.engine import ProjectionResult, run_projection_engine
from projection02.horizon import HorizonDriver
from projection02.ledger import StockLedger
from projection02.providers import RateOfSaleTable, ReceiptSchedule
from projection02.summary import summarize_projection


DEFAULT_CONFIG_PATH = "config/config.yaml"


# ==========================================================
# Output Helpers
# ==========================================================

def _write_table(df: pd.DataFrame, path: str, overwrite: bool, logger) -> None:
    if os.path.exists(path) and not overwrite:
        raise FileExistsError(
            f"Output already exists and overwrite is disabled: {path}"
        )

    df.to_csv(path, index=False)
    logger.info(f"Saved {len(df)} rows to: {path}")


def save_outputs(result: ProjectionResult, config: Dict, logger) -> Dict[str, str]:
    """
    Write projection outputs under ``paths.output.projections``.

    Returns
    -------
    Dict[str, str]
        Output name -> written file path.
    """

    output_dir = config["paths"]["output"]["projections"]
    ensure_directory(output_dir)

    overwrite = config["execution"].get("overwrite_existing_outputs", False)
    projection_cfg = validate_projection_section(config["projection"])

    start = projection_cfg["horizon_start_date"]
    end = start + timedelta(days=projection_cfg["horizon_length_days"] - 1)

    suffix = "" if result.completed else "_partial"

    tables = {
        "store_projection": result.projection,
        "warehouse_projection": result.warehouse_projection,
        "projection_summary": summarize_projection(result.projection),
        "closing_ledger": result.ledger.to_frame(),
    }

    written = {}

    for name, df in tables.items():
        path = os.path.join(
            output_dir,
            build_period_filename(start, end, f"{name}{suffix}.csv")
        )
        _write_table(df, path, overwrite, logger)
        written[name] = path

    # "latest" copies always reflect the most recent complete run
    if result.completed:
        for name, df in tables.items():
            latest_path = os.path.join(output_dir, f"{name}_latest.csv")
            df.to_csv(latest_path, index=False)

    return written


# ==========================================================
# Main Projection Pipeline
# ==========================================================

def run_projection(
    config_path: str = DEFAULT_CONFIG_PATH,
    stop_requested: Optional[Callable[[], bool]] = None,
) -> ProjectionResult:
    """
    Execute the full projection workflow.
    """

    config = load_config(config_path)
    logger = get_logger(config)

    logger.info("========== PROJECTION PIPELINE STARTED ==========")

    execution_mode = config["execution"]["mode"]
    strict_load = config["ingestion"].get("strict_load", True)

    if execution_mode == "prod" and not strict_load:
        raise ValueError(
            "ingestion.strict_load must be true in production mode."
        )

    try:
        # ------------------------------------------------------
        # 1. Ingest input tables
        # ------------------------------------------------------

        datasets = load_all_datasets(config=config, paths_cfg=config["paths"])

        # ------------------------------------------------------
        # 2. Build engine inputs
        # ------------------------------------------------------

        projection_cfg = validate_projection_section(config["projection"])

        ledger = StockLedger.from_snapshot(datasets["opening_stock"])
        schedule = ReceiptSchedule.from_frame(datasets["receipts"])
        rates = RateOfSaleTable.from_frame(
            datasets["rate_of_sale"],
            projection_cfg["rate_unit"]
        )
        driver = HorizonDriver.from_config(projection_cfg)

        logger.info(
            f"Horizon: {driver.start} -> {driver.end} "
            f"({len(driver.windows)} steps of "
            f"{projection_cfg['step_length_days']} days, "
            f"rates {projection_cfg['rate_unit']})"
        )

        # ------------------------------------------------------
        # 3. Run engine
        # ------------------------------------------------------

        result = run_projection_engine(
            opening_ledger=ledger,
            schedule=schedule,
            rates=rates,
            driver=driver,
            max_workers=projection_cfg["max_workers"],
            stop_requested=stop_requested,
        )

        if result.unconsumed_receipts:
            logger.warning(
                f"{len(result.unconsumed_receipts)} receipts fall outside the "
                f"horizon and were not projected."
            )

        # ------------------------------------------------------
        # 4. Save outputs
        # ------------------------------------------------------

        save_outputs(result, config, logger)

    except Exception:
        logger.exception("Projection pipeline failed due to an error.")
        raise

    logger.info("========== PROJECTION PIPELINE COMPLETED ==========")

    return result


def step_budget(max_steps: Optional[int]) -> Optional[Callable[[], bool]]:
    """
    Stop callback that requests a stop once ``max_steps`` steps ran.
    """

    if max_steps is None:
        return None

    if max_steps <= 0:
        raise ValueError("max_steps must be positive.")

    completed = {"steps": 0}

    def stop_requested() -> bool:
        completed["steps"] += 1
        return completed["steps"] >= max_steps

    return stop_requested


def main(argv=None) -> None:
    parser = argparse.ArgumentParser(
        description="Project week-by-week inventory depletion."
    )
    parser.add_argument(
        "--config",
        default=DEFAULT_CONFIG_PATH,
        help=f"Path to YAML configuration (default: {DEFAULT_CONFIG_PATH})",
    )
    parser.add_argument(
        "--max-steps",
        type=int,
        default=None,
        help="Stop after this many steps and save a partial projection",
    )

    args = parser.parse_args(argv)

    run_projection(
        config_path=args.config,
        stop_requested=step_budget(args.max_steps),
    )


if __name__ == "__main__":
    main()
