"""Tests for chart rendering and table export."""

import numpy as np
import pandas as pd
import pytest

from src.data_prep import enrich_portfolio
from src.exceptions import EmptyResultError, MissingColumnsError
from src.metrics import ranked_means
from src.viz import plot_category_bars, plot_category_points, plot_density, plot_histogram, save_table


@pytest.fixture
def enriched(portfolio_df) -> pd.DataFrame:
    return enrich_portfolio(portfolio_df)


class TestCategoryBars:
    def test_saves_png(self, enriched, tmp_path) -> None:
        agg = ranked_means(enriched, "city", "roi")
        out = tmp_path / "charts" / "roi_city.png"

        fig, ax, saved = plot_category_bars(agg, "city", "mean_roi", out_path=out)

        assert saved == str(out)
        assert out.exists() and out.stat().st_size > 0
        assert [t.get_text() for t in ax.get_yticklabels()] == list(agg["city"])

    def test_top_n_and_undefined_skipped(self, enriched) -> None:
        agg = ranked_means(enriched, "neighborhood", "markup")

        _, ax, saved = plot_category_bars(agg, "neighborhood", "mean_markup", top_n=2)

        assert saved is None
        assert len(ax.patches) == 2

    def test_all_undefined(self) -> None:
        agg = pd.DataFrame({"city": ["x"], "mean_roi": [np.nan]})

        with pytest.raises(EmptyResultError):
            plot_category_bars(agg, "city", "mean_roi")

    def test_missing_columns(self, enriched) -> None:
        with pytest.raises(MissingColumnsError):
            plot_category_bars(enriched, "city", "mean_roi")


class TestCategoryPoints:
    def test_one_column_per_category(self, enriched, tmp_path) -> None:
        out = tmp_path / "points.png"

        _, ax, saved = plot_category_points(enriched, "neighborhood", "yield_per_area", out_path=out)

        assert saved == str(out)
        assert len(ax.get_xticklabels()) == 3

    def test_nothing_to_plot(self) -> None:
        df = pd.DataFrame({"neighborhood": [None], "yield_per_area": [1.0]})

        with pytest.raises(EmptyResultError):
            plot_category_points(df, "neighborhood", "yield_per_area")


class TestDistributions:
    def test_histogram(self, enriched, tmp_path) -> None:
        out = tmp_path / "hist.png"

        _, ax, saved = plot_histogram(enriched["markup"], out_path=out, bins=4, reference_line=1.0)

        assert saved == str(out)
        assert sum(p.get_height() for p in ax.patches) == 4  # markup undefined for p5

    def test_histogram_empty(self) -> None:
        with pytest.raises(EmptyResultError):
            plot_histogram(pd.Series([np.nan, np.nan]))

    def test_density(self, enriched, tmp_path) -> None:
        out = tmp_path / "density.png"

        _, _, saved = plot_density(enriched["roi"], out_path=out, points=50)

        assert saved == str(out)
        assert out.exists()


class TestSaveTable:
    def test_writes_csv(self, enriched, tmp_path) -> None:
        out = tmp_path / "tables" / "roi.csv"
        agg = ranked_means(enriched, "city", "roi")

        returned = save_table(agg, out)

        assert returned is agg
        assert list(pd.read_csv(out)["city"]) == list(agg["city"])
