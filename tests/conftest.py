"""Pytest configuration and fixtures."""

import matplotlib

matplotlib.use("Agg")

import pandas as pd
import pytest

from src.config import AnalysisConfig, InputConfig, ReportConfig


@pytest.fixture
def reference_df() -> pd.DataFrame:
    """Small reference sample, already loaded (canonical columns)."""
    return pd.DataFrame({
        "address": ["r1", "r2", "r3", "r4", "r5", "r6"],
        "city": ["Genesis", "Genesis", "Genesis", "Harbor", "Harbor", "Harbor"],
        "neighborhood": ["Old Town", "Old Town", "Docks", "Pier", None, "Pier"],
        "area": [10.0, 20.0, 5.0, 8.0, 4.0, 0.0],
        "yield": [100.0, 200.0, 0.0, 40.0, 12.0, 30.0],
    })


@pytest.fixture
def portfolio_df() -> pd.DataFrame:
    """Small portfolio, already loaded (canonical columns)."""
    return pd.DataFrame({
        "address": ["p1", "p2", "p3", "p4", "p5"],
        "city": ["Genesis", "Genesis", "Harbor", "Harbor", "Harbor"],
        "neighborhood": ["Old Town", "Old Town", "Pier", "Pier", "Docks"],
        "area": [10.0, 20.0, 8.0, 16.0, 5.0],
        "yield": [100.0, 200.0, 40.0, 80.0, 10.0],
        "mint_price": [1000.0, 2000.0, 400.0, 800.0, 0.0],
        "last_price": [1000.0, 4000.0, 800.0, 800.0, 250.0],
    })


REFERENCE_CSV = """Address,City,Neighbourhood,Size,Monthly Yield
r1,Genesis,Old Town,10,100
r2,Genesis,Old Town,20,200
r3,Genesis,Docks,5,0
r4,Harbor,Pier,8,40
r5,Harbor,,4,12
glitch-1,Harbor,Pier,1,99999
"""

PORTFOLIO_CSV = """address,city,neighborhood,area,yield,mint_price,last_price
p1,Genesis,Old Town,10,100,1000,1000
p2,Genesis,Old Town,20,200,2000,4000
p3,Harbor,Pier,8,40,400,800
p4,Harbor,Pier,16,80,800,800
p5,Harbor,Docks,5,10,200,250
p6,Harbor,Docks,5,10,200,
"""


@pytest.fixture
def csv_inputs(tmp_path):
    """Reference/portfolio CSVs and curated lists written to tmp_path."""
    ref = tmp_path / "reference.csv"
    ref.write_text(REFERENCE_CSV)
    port = tmp_path / "portfolio.csv"
    port.write_text(PORTFOLIO_CSV)
    excl = tmp_path / "glitched.txt"
    excl.write_text("# found by eye\nglitch-1\n")
    bad = tmp_path / "unprofitable.txt"
    bad.write_text("p2\n")
    return {"reference": ref, "portfolio": port, "exclusions": excl, "unprofitable": bad}


@pytest.fixture
def report_config(tmp_path, csv_inputs) -> ReportConfig:
    return ReportConfig(
        inputs=InputConfig(
            reference_csv=csv_inputs["reference"],
            portfolio_csv=csv_inputs["portfolio"],
            exclusions_file=csv_inputs["exclusions"],
            unprofitable_file=csv_inputs["unprofitable"],
        ),
        analysis=AnalysisConfig(top_n=5, cv_threshold=0.05, density_points=50, histogram_bins=5),
        output_dir=tmp_path / "out",
    )


@pytest.fixture(autouse=True)
def _restore_logging():
    """setup_logging() rewires the root logger; put it back after each test."""
    import logging

    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    src_level = logging.getLogger("src").level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)
    logging.getLogger("src").setLevel(src_level)
