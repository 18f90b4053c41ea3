# src/projection02/horizon.py

"""
Horizon Driver
==============

Splits the planning horizon into fixed-size step windows and drives a
"process step" callback over them strictly in order. Step n+1 opens with
step n's closing stock, so windows are never reordered or skipped.

Cancellation: ``stop_requested`` is polled after every completed step;
everything processed up to that point is a valid partial result.
"""

from datetime import date, timedelta
from typing import Callable, List, Optional
import logging

import pandas as pd

from utils.config_loader import (
    ConfigurationError,
    DEFAULT_STEP_LENGTH_DAYS,
    validate_horizon_lengths,
)

from .exceptions import InvariantViolation
from .models import StepWindow


logger = logging.getLogger(__name__)


def build_step_windows(
    start_date: date,
    horizon_length_days: int,
    step_length_days: int = DEFAULT_STEP_LENGTH_DAYS,
) -> List[StepWindow]:
    """
    Build ``[start, start+step), [start+step, start+2*step), ...`` until
    the horizon is covered. The last window may be shorter than a step.

    Raises
    ------
    ConfigurationError
        If either length is not a positive integer.
    """

    if not isinstance(start_date, date):
        raise ConfigurationError(
            f"horizon start must be a date, got {type(start_date).__name__}."
        )

    # datetime and Timestamp are date subclasses; windows hold plain dates
    start_date = pd.Timestamp(start_date).date()

    validate_horizon_lengths(horizon_length_days, step_length_days)

    horizon_end = start_date + timedelta(days=horizon_length_days)

    windows = []
    cursor = start_date
    index = 0

    while cursor < horizon_end:
        window_end = min(cursor + timedelta(days=step_length_days), horizon_end)
        windows.append(StepWindow(index=index, start=cursor, end=window_end))
        cursor = window_end
        index += 1

    return windows


class HorizonDriver:
    """
    Owns the step loop. Carries no business logic: the callback does
    all the work and the driver only guarantees ordering.
    """

    def __init__(self, windows: List[StepWindow]):
        if not windows:
            raise ConfigurationError("Horizon produced no step windows.")

        self._validate_monotonic(windows)
        self.windows = list(windows)

    @classmethod
    def from_config(cls, projection_cfg: dict) -> "HorizonDriver":
        return cls(
            build_step_windows(
                projection_cfg["horizon_start_date"],
                projection_cfg["horizon_length_days"],
                projection_cfg.get("step_length_days", DEFAULT_STEP_LENGTH_DAYS),
            )
        )

    @property
    def start(self) -> date:
        return self.windows[0].start

    @property
    def end(self) -> date:
        return self.windows[-1].end

    @staticmethod
    def _validate_monotonic(windows: List[StepWindow]) -> None:
        for previous, current in zip(windows, windows[1:]):
            if current.start != previous.end or current.end <= current.start:
                raise InvariantViolation(
                    f"Step windows are not contiguous and increasing: "
                    f"{previous.start}..{previous.end} then "
                    f"{current.start}..{current.end}",
                    step=current.start,
                )

        if windows[0].end <= windows[0].start:
            raise InvariantViolation(
                "First step window is empty.", step=windows[0].start
            )

    def run(
        self,
        process_step: Callable[[StepWindow], None],
        stop_requested: Optional[Callable[[], bool]] = None,
    ) -> int:
        """
        Invoke ``process_step`` once per window, in order.

        Returns
        -------
        int
            Number of steps completed.
        """

        completed = 0

        for window in self.windows:
            logger.debug(
                f"Processing step {window.index} [{window.start}, {window.end})"
            )

            process_step(window)
            completed += 1

            if stop_requested is not None and stop_requested():
                logger.info(
                    f"Stop requested after step {window.index}; "
                    f"{completed}/{len(self.windows)} steps completed."
                )
                break

        return completed
