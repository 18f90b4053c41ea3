# src/utils/config_loader.py

"""
Centralized configuration loader for the projection engine.

Responsibilities:
- Load YAML configuration
- Validate mandatory sections
- Validate the projection horizon before any simulation starts
- Provide a single, safe config object

Design Principles:
------------------
- Fail-fast validation
- No silent defaults for mandatory keys
- Every failure raises ConfigurationError
"""

from pathlib import Path
from typing import Dict, Any
import yaml
import logging

import pandas as pd


logger = logging.getLogger(__name__)


REQUIRED_SECTIONS = {
    "project",
    "paths",
    "logging",
    "ingestion",
    "data_schema",
    "projection",
    "execution",
}

# rate_unit -> rate_of_sale value column
RATE_VALUE_COLUMNS = {
    "per_day": "units_per_day",
    "per_week": "units_per_week",
    "per_month": "units_per_month",
}

RATE_UNITS = set(RATE_VALUE_COLUMNS)

DEFAULT_STEP_LENGTH_DAYS = 7


class ConfigurationError(Exception):
    """Raised when configuration or horizon parameters are invalid."""
    pass


def load_config(config_path: str) -> Dict[str, Any]:
    path = Path(config_path)

    if not path.exists():
        raise ConfigurationError(
            f"Configuration file not found at path: {path.resolve()}"
        )

    if not path.is_file():
        raise ConfigurationError(
            f"Configuration path is not a file: {path.resolve()}"
        )

    if path.suffix not in {".yaml", ".yml"}:
        raise ConfigurationError(
            f"Invalid config file format: {path.name}. Expected a YAML file."
        )

    try:
        with path.open("r", encoding="utf-8") as f:
            config = yaml.safe_load(f)
    except OSError as exc:
        raise ConfigurationError(
            f"Failed to read configuration file: {path.resolve()} ({exc})"
        ) from exc
    except yaml.YAMLError as exc:
        raise ConfigurationError(
            f"Failed to parse YAML configuration: {exc}"
        ) from exc

    if config is None:
        raise ConfigurationError(
            "Configuration file is empty or contains no valid YAML content."
        )

    if not isinstance(config, dict):
        raise ConfigurationError(
            "Top-level configuration must be a dictionary."
        )

    validate_config(config)

    logger.info("Configuration loaded and validated successfully.")

    return dict(config)


def validate_config(config: Dict[str, Any]) -> None:
    """
    Validate an already-parsed configuration dictionary.
    """

    missing = REQUIRED_SECTIONS - config.keys()
    if missing:
        raise ConfigurationError(
            f"Missing required config sections: {sorted(missing)}"
        )

    extra_sections = set(config.keys()) - REQUIRED_SECTIONS
    if extra_sections:
        raise ConfigurationError(
            f"Unknown top-level config sections detected: {sorted(extra_sections)}"
        )

    for section in REQUIRED_SECTIONS:
        if not isinstance(config.get(section), dict):
            raise ConfigurationError(
                f"Config section '{section}' must be a dictionary."
            )

    _validate_logging(config)
    _validate_paths(config)
    _validate_ingestion(config)
    _validate_execution(config)
    projection_cfg = validate_projection_section(config["projection"])
    _validate_rate_schema(config, projection_cfg["rate_unit"])


def _validate_logging(config: Dict[str, Any]) -> None:
    logging_cfg = config["logging"]

    required = {"level", "log_to_file", "filename"}
    missing = required - logging_cfg.keys()
    if missing:
        raise ConfigurationError(
            f"Missing required logging config keys: {sorted(missing)}"
        )

    if not isinstance(logging_cfg["log_to_file"], bool):
        raise ConfigurationError("logging.log_to_file must be boolean.")


def _validate_paths(config: Dict[str, Any]) -> None:
    paths_cfg = config["paths"]

    if not isinstance(paths_cfg.get("logs"), str):
        raise ConfigurationError("paths.logs must be a string.")

    data_cfg = paths_cfg.get("data")
    if not isinstance(data_cfg, dict) or not isinstance(data_cfg.get("raw"), str):
        raise ConfigurationError("paths.data.raw must be a string.")

    output_cfg = paths_cfg.get("output")
    if not isinstance(output_cfg, dict) or not isinstance(
        output_cfg.get("projections"), str
    ):
        raise ConfigurationError("paths.output.projections must be a string.")


def _validate_ingestion(config: Dict[str, Any]) -> None:
    ingestion_cfg = config["ingestion"]

    datasets = ingestion_cfg.get("datasets")
    if not isinstance(datasets, dict) or not datasets:
        raise ConfigurationError(
            "ingestion.datasets must be a non-empty dictionary."
        )

    for required in ("opening_stock", "receipts", "rate_of_sale"):
        if required not in datasets:
            raise ConfigurationError(
                f"ingestion.datasets.{required} is not configured."
            )

    if "strict_load" in ingestion_cfg and not isinstance(
        ingestion_cfg["strict_load"], bool
    ):
        raise ConfigurationError("ingestion.strict_load must be boolean.")


def _validate_execution(config: Dict[str, Any]) -> None:
    execution_cfg = config["execution"]

    mode = execution_cfg.get("mode")
    allowed_modes = {"dev", "prod", "backfill"}

    if not isinstance(mode, str):
        raise ConfigurationError("Execution mode must be a string.")

    if mode not in allowed_modes:
        raise ConfigurationError(
            f"Invalid execution mode '{mode}'. "
            f"Allowed values are: {sorted(allowed_modes)}"
        )

    if "overwrite_existing_outputs" in execution_cfg and not isinstance(
        execution_cfg["overwrite_existing_outputs"], bool
    ):
        raise ConfigurationError(
            "execution.overwrite_existing_outputs must be boolean."
        )


def _validate_rate_schema(config: Dict[str, Any], rate_unit: str) -> None:
    """
    The rate_of_sale schema must require the value column that
    ``projection.rate_unit`` reads (units_per_day, units_per_week or
    units_per_month).
    """

    rate_schema = config["data_schema"].get("rate_of_sale")

    if rate_schema is None:
        return

    value_column = RATE_VALUE_COLUMNS[rate_unit]
    required = rate_schema.get("required_columns", [])

    if value_column not in required:
        raise ConfigurationError(
            f"projection.rate_unit is '{rate_unit}' but "
            f"data_schema.rate_of_sale.required_columns does not include "
            f"'{value_column}': {required}"
        )


def validate_projection_section(projection_cfg: Dict[str, Any]) -> Dict[str, Any]:
    """
    Validate and normalise the projection section.

    Returns a new dictionary with ``horizon_start_date`` parsed to a
    ``datetime.date`` and defaults filled for optional keys.
    """

    if not isinstance(projection_cfg, dict):
        raise ConfigurationError("projection section must be a dictionary.")

    if "horizon_start_date" not in projection_cfg:
        raise ConfigurationError("Missing 'projection.horizon_start_date'.")

    try:
        start = pd.Timestamp(projection_cfg["horizon_start_date"]).date()
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(
            f"projection.horizon_start_date is not a valid date: "
            f"{projection_cfg['horizon_start_date']!r}"
        ) from exc

    horizon = projection_cfg.get("horizon_length_days")
    step = projection_cfg.get("step_length_days", DEFAULT_STEP_LENGTH_DAYS)

    validate_horizon_lengths(horizon, step)

    rate_unit = projection_cfg.get("rate_unit", "per_day")
    if rate_unit not in RATE_UNITS:
        raise ConfigurationError(
            f"Invalid projection.rate_unit '{rate_unit}'. "
            f"Allowed values are: {sorted(RATE_UNITS)}"
        )

    max_workers = projection_cfg.get("max_workers", 1)
    if isinstance(max_workers, bool) or not isinstance(max_workers, int) or max_workers < 1:
        raise ConfigurationError("projection.max_workers must be a positive integer.")

    return {
        "horizon_start_date": start,
        "horizon_length_days": horizon,
        "step_length_days": step,
        "rate_unit": rate_unit,
        "max_workers": max_workers,
    }


def validate_horizon_lengths(horizon_length_days, step_length_days) -> None:
    for name, value in (
        ("horizon_length_days", horizon_length_days),
        ("step_length_days", step_length_days),
    ):
        if isinstance(value, bool) or not isinstance(value, int):
            raise ConfigurationError(f"{name} must be an integer, got {value!r}.")

        if value <= 0:
            raise ConfigurationError(f"{name} must be > 0, got {value}.")
