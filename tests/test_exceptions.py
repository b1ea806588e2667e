"""Tests for custom exception hierarchy."""

from src.exceptions import (
    ConfigurationError,
    DataLoadError,
    EmptyResultError,
    LandReportError,
    MissingColumnsError,
)


class TestExceptionHierarchy:
    """Test exception inheritance chain."""

    def test_base_is_exception(self) -> None:
        assert isinstance(LandReportError("test"), Exception)

    def test_subclasses(self) -> None:
        for cls in (ConfigurationError, DataLoadError, EmptyResultError):
            assert isinstance(cls("test"), LandReportError)

    def test_missing_columns_is_value_error(self) -> None:
        err = MissingColumnsError("portfolio.csv", {"yield", "area"})
        assert isinstance(err, ValueError)
        assert isinstance(err, LandReportError)

    def test_missing_columns_message(self) -> None:
        err = MissingColumnsError("portfolio.csv", {"yield", "area"}, found=["address", "city"])

        assert err.missing == ["area", "yield"]
        assert str(err) == "portfolio.csv is missing required columns: ['area', 'yield']. Found: ['address', 'city']"
