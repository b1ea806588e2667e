"""Tests for config and logging."""

import json
import logging
from pathlib import Path

import pytest

from src.config import AnalysisConfig, InputConfig, ReportConfig
from src.exceptions import ConfigurationError
from src.logging_setup import JsonFormatter, get_logger, setup_logging


class TestReportConfig:
    """Tests for ReportConfig."""

    def test_default_values(self) -> None:
        config = ReportConfig()

        assert config.inputs.reference_csv == Path("data/reference_sample.csv")
        assert config.inputs.exclusions_file is None
        assert config.analysis.top_n == 15
        assert config.analysis.cv_threshold == 0.05
        assert config.output_dir == Path("output")

    def test_derived_paths(self) -> None:
        config = ReportConfig(output_dir=Path("run1"))

        assert config.charts_dir == Path("run1/charts")
        assert config.tables_dir == Path("run1/tables")
        assert config.report_path == Path("run1/report.md")

    def test_from_env(self, monkeypatch) -> None:
        monkeypatch.setenv("LAND_REFERENCE_CSV", "/snap/ref.csv")
        monkeypatch.setenv("LAND_UNPROFITABLE_FILE", "/snap/bad.txt")
        monkeypatch.setenv("LAND_TOP_N", "7")
        monkeypatch.setenv("LAND_CV_THRESHOLD", "0.1")
        monkeypatch.setenv("LAND_LOG_LEVEL", "DEBUG")
        monkeypatch.delenv("LAND_EXCLUSIONS_FILE", raising=False)

        config = ReportConfig.from_env()

        assert config.inputs.reference_csv == Path("/snap/ref.csv")
        assert config.inputs.unprofitable_file == Path("/snap/bad.txt")
        assert config.inputs.exclusions_file is None
        assert config.analysis.top_n == 7
        assert config.analysis.cv_threshold == 0.1
        assert config.log_level == "DEBUG"

    def test_from_env_bad_number(self, monkeypatch) -> None:
        monkeypatch.setenv("LAND_TOP_N", "many")

        with pytest.raises(ConfigurationError):
            ReportConfig.from_env()

    @pytest.mark.parametrize("analysis", [
        AnalysisConfig(top_n=0),
        AnalysisConfig(cv_threshold=-1.0),
        AnalysisConfig(density_points=1),
        AnalysisConfig(histogram_bins=0),
    ])
    def test_validate_rejects(self, analysis) -> None:
        with pytest.raises(ConfigurationError):
            ReportConfig(analysis=analysis).validate()

    def test_validate_log_format(self) -> None:
        with pytest.raises(ConfigurationError):
            ReportConfig(log_format="xml").validate()

    def test_validate_returns_self(self) -> None:
        config = ReportConfig(inputs=InputConfig())

        assert config.validate() is config


class TestLogging:
    """Tests for logging setup."""

    def test_setup_standard(self) -> None:
        setup_logging("DEBUG")

        root = logging.getLogger()
        assert root.level == logging.DEBUG
        assert len(root.handlers) == 1
        assert logging.getLogger("matplotlib").level == logging.WARNING

    def test_setup_json(self) -> None:
        setup_logging("INFO", format_type="json")

        assert isinstance(logging.getLogger().handlers[0].formatter, JsonFormatter)

    def test_unknown_level_defaults_to_info(self) -> None:
        setup_logging("LOUD")

        assert logging.getLogger().level == logging.INFO

    def test_json_formatter(self) -> None:
        record = logging.LogRecord("src.metrics", logging.WARNING, __file__, 1, "hello %s", ("world",), None)

        data = json.loads(JsonFormatter().format(record))

        assert data["level"] == "WARNING"
        assert data["logger"] == "src.metrics"
        assert data["message"] == "hello world"

    def test_json_formatter_fixed_keys(self) -> None:
        record = logging.LogRecord("src.viz", logging.INFO, __file__, 1, "saved", (), None)
        record.extra = {"chart": "roi.png"}

        data = json.loads(JsonFormatter().format(record))

        assert set(data) == {"timestamp", "level", "logger", "message"}

    def test_get_logger(self) -> None:
        assert get_logger("src.viz").name == "src.viz"
