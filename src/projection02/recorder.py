# src/projection02/recorder.py

"""
Output Recorder
===============

Append-only store of projection records. Records are frozen dataclasses
and are never updated or removed during a run; whatever has been
appended after any completed step is a valid partial result.
"""

from collections import defaultdict
from typing import Dict, List, Set, Tuple
from datetime import date

import pandas as pd

from .exceptions import InvariantViolation
from .models import (
    Key,
    PROJECTION_COLUMNS,
    WAREHOUSE_COLUMNS,
    WarehouseProjection,
    WeeklyProjection,
)


class ProjectionRecorder:

    def __init__(self):
        self._records: List[WeeklyProjection] = []
        self._warehouse_records: List[WarehouseProjection] = []
        self._by_key: Dict[Key, List[WeeklyProjection]] = defaultdict(list)
        self._warehouse_by_key: Dict[Key, List[WarehouseProjection]] = defaultdict(list)
        self._seen: Set[Tuple[str, str, str, date]] = set()

    def _claim(self, tier: str, location: str, item: str, week_start: date) -> None:
        marker = (tier, location, item, week_start)

        if marker in self._seen:
            raise InvariantViolation(
                f"Duplicate {tier} projection record",
                location=location,
                item=item,
                step=week_start,
            )

        self._seen.add(marker)

    def append(self, record: WeeklyProjection) -> None:
        series = self._by_key[(record.location, record.item)]

        if series and record.week_start <= series[-1].week_start:
            raise InvariantViolation(
                "Projection records appended out of step order",
                location=record.location,
                item=record.item,
                step=record.week_start,
            )

        self._claim("store", record.location, record.item, record.week_start)
        self._records.append(record)
        series.append(record)

    def append_warehouse(self, record: WarehouseProjection) -> None:
        self._claim("warehouse", record.location, record.item, record.week_start)
        self._warehouse_records.append(record)
        self._warehouse_by_key[(record.location, record.item)].append(record)

    def __len__(self) -> int:
        return len(self._records)

    @property
    def records(self) -> Tuple[WeeklyProjection, ...]:
        return tuple(self._records)

    @property
    def warehouse_records(self) -> Tuple[WarehouseProjection, ...]:
        return tuple(self._warehouse_records)

    def keys(self) -> List[Key]:
        return sorted(self._by_key)

    def series(self, location: str, item: str) -> List[WeeklyProjection]:
        """Full store-tier time series of one key, in step order."""
        return list(self._by_key.get((location, item), ()))

    def warehouse_series(self, location: str, item: str) -> List[WarehouseProjection]:
        return list(self._warehouse_by_key.get((location, item), ()))

    def to_frame(self) -> pd.DataFrame:
        """Weekly projection table, in step order then (location, item)."""
        return pd.DataFrame(
            [record.to_row() for record in self._records],
            columns=PROJECTION_COLUMNS,
        )

    def warehouse_frame(self) -> pd.DataFrame:
        return pd.DataFrame(
            [record.to_row() for record in self._warehouse_records],
            columns=WAREHOUSE_COLUMNS,
        )
