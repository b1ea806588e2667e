"""Configuration management for the land report."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from src.exceptions import ConfigurationError


@dataclass
class InputConfig:
    """Input snapshot files and curated address lists."""

    reference_csv: Path = field(default_factory=lambda: Path("data/reference_sample.csv"))
    portfolio_csv: Path = field(default_factory=lambda: Path("data/portfolio.csv"))
    # rows found glitched by inspection of the reference sample
    exclusions_file: Optional[Path] = None
    # purchases judged poor by hand; never inferred from the data
    unprofitable_file: Optional[Path] = None


@dataclass
class AnalysisConfig:
    """Knobs for the aggregation and chart steps."""

    top_n: int = 15
    cv_threshold: float = 0.05
    density_points: int = 200
    histogram_bins: int = 30


@dataclass
class ReportConfig:
    """Main configuration for one report run."""

    inputs: InputConfig = field(default_factory=InputConfig)
    analysis: AnalysisConfig = field(default_factory=AnalysisConfig)
    output_dir: Path = field(default_factory=lambda: Path("output"))
    log_level: str = "INFO"
    log_format: str = "standard"
    llm_model: Optional[str] = None

    @property
    def charts_dir(self) -> Path:
        return self.output_dir / "charts"

    @property
    def tables_dir(self) -> Path:
        return self.output_dir / "tables"

    @property
    def report_path(self) -> Path:
        return self.output_dir / "report.md"

    def validate(self) -> "ReportConfig":
        """Raise ConfigurationError on settings the run cannot use."""
        if self.analysis.top_n <= 0:
            raise ConfigurationError(f"top_n must be positive, got {self.analysis.top_n}")
        if self.analysis.cv_threshold < 0:
            raise ConfigurationError(
                f"cv_threshold must be non-negative, got {self.analysis.cv_threshold}"
            )
        if self.analysis.density_points < 2:
            raise ConfigurationError("density_points must be at least 2")
        if self.analysis.histogram_bins <= 0:
            raise ConfigurationError("histogram_bins must be positive")
        if self.log_format not in ("standard", "json"):
            raise ConfigurationError(f"Unknown log format: {self.log_format!r}")
        return self

    @classmethod
    def from_env(cls) -> "ReportConfig":
        """Create config from ``LAND_*`` environment variables."""

        def _opt_path(name: str) -> Optional[Path]:
            value = os.getenv(name)
            return Path(value) if value else None

        try:
            inputs = InputConfig(
                reference_csv=Path(os.getenv("LAND_REFERENCE_CSV", "data/reference_sample.csv")),
                portfolio_csv=Path(os.getenv("LAND_PORTFOLIO_CSV", "data/portfolio.csv")),
                exclusions_file=_opt_path("LAND_EXCLUSIONS_FILE"),
                unprofitable_file=_opt_path("LAND_UNPROFITABLE_FILE"),
            )
            analysis = AnalysisConfig(
                top_n=int(os.getenv("LAND_TOP_N", "15")),
                cv_threshold=float(os.getenv("LAND_CV_THRESHOLD", "0.05")),
                density_points=int(os.getenv("LAND_DENSITY_POINTS", "200")),
                histogram_bins=int(os.getenv("LAND_HISTOGRAM_BINS", "30")),
            )
        except ValueError as e:
            raise ConfigurationError(f"Invalid numeric setting in environment: {e}") from e

        return cls(
            inputs=inputs,
            analysis=analysis,
            output_dir=Path(os.getenv("LAND_OUTPUT_DIR", "output")),
            log_level=os.getenv("LAND_LOG_LEVEL", "INFO"),
            log_format=os.getenv("LAND_LOG_FORMAT", "standard"),
            llm_model=os.getenv("LAND_LLM_MODEL") or None,
        )
