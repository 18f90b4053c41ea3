"""
Shared fixtures for the projection engine test suite.
"""

import pytest

from tables import base_config, rate_frame, receipt_frame, stock_frame, write_config


@pytest.fixture
def project_root(tmp_path):
    """tmp project with the three input CSVs and a valid config.yaml."""
    raw = tmp_path / "raw"
    raw.mkdir()

    stock_frame(
        [
            ("S001", "SKU-100", "store", 100),
            ("S001", "SKU-200", "warehouse", 200),
            ("S001", "SKU-200", "store", 0),
        ]
    ).rename(columns={"item": "sku"}).to_csv(raw / "opening_stock.csv", index=False)

    receipt_frame(
        [
            ("S001", "SKU-200", "store", "2025-03-03", 60, True),
            ("S001", "SKU-100", "store", "2025-03-17", 40, False),
        ]
    ).to_csv(raw / "receipts.csv", index=False)

    rate_frame(
        [
            ("S001", "SKU-100", "2025-03-01", 10),
            ("S001", "SKU-200", "2025-03-01", 5),
        ]
    ).to_csv(raw / "rate_of_sale.csv", index=False)

    write_config(tmp_path, base_config(tmp_path))

    return tmp_path
