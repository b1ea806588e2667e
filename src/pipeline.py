"""End-to-end report run: load, clean, derive, aggregate, chart, write."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Optional

import pandas as pd

from src import data_prep, metrics, viz
from src.config import ReportConfig
from src.exceptions import EmptyResultError
from src.logging_setup import get_logger
from src.recommendations import Finding, build_findings, polish_findings, render_markdown

logger = get_logger(__name__)


@dataclass
class ReportResult:
    """Every table the report is built from, plus where the artifacts went."""

    reference: pd.DataFrame
    portfolio: pd.DataFrame
    reference_by_neighborhood: pd.DataFrame
    portfolio_spread: pd.DataFrame
    inconsistent_neighborhoods: pd.DataFrame
    value_by_city: pd.DataFrame
    value_by_neighborhood: pd.DataFrame
    price_changes: pd.DataFrame
    unprofitable: pd.DataFrame
    remaining_changes: pd.DataFrame
    roi_by_city: pd.DataFrame
    roi_by_neighborhood: pd.DataFrame
    summary: dict
    cv_threshold: float = 0.05
    charts: Dict[str, str] = field(default_factory=dict)
    tables: Dict[str, str] = field(default_factory=dict)
    findings: List[Finding] = field(default_factory=list)
    report_path: Optional[Path] = None


def prepare_reference(path, exclusions) -> pd.DataFrame:
    """Step 1 cleaning: derive yield per area, drop glitched rows and rows with no neighborhood."""
    ref = data_prep.add_yield_per_area(data_prep.load_reference(path))
    ref = data_prep.drop_addresses(ref, exclusions, label="reference exclusions")
    ref = data_prep.drop_missing(ref, "neighborhood")
    if ref.empty:
        raise EmptyResultError("Reference sample is empty after cleaning")
    return ref


def prepare_portfolio(path) -> pd.DataFrame:
    port = data_prep.enrich_portfolio(data_prep.load_portfolio(path))
    if port.empty:
        raise EmptyResultError("Portfolio is empty")
    return port


def _chart(charts: Dict[str, str], name: str, fn: Callable, *args, **kwargs) -> None:
    # one empty metric should not sink the whole report
    try:
        _, _, saved = fn(*args, **kwargs)
    except EmptyResultError as e:
        logger.warning("Skipping chart %r: %s", name, e)
        return
    if saved:
        charts[name] = saved


def render_charts(result: ReportResult, config: ReportConfig) -> Dict[str, str]:
    out = config.charts_dir
    a = config.analysis
    charts: Dict[str, str] = {}

    _chart(charts, "Reference yield per area by neighborhood", viz.plot_category_bars,
           result.reference_by_neighborhood, "neighborhood", "mean_yield_per_area",
           out_path=out / "reference_yield_per_area.png", top_n=a.top_n,
           title="Mean yield per area by neighborhood (reference sample)", xlabel="Yield per area")
    _chart(charts, "Portfolio yield per area consistency", viz.plot_category_points,
           result.portfolio, "neighborhood", "yield_per_area",
           out_path=out / "portfolio_yield_per_area_points.png",
           title="Portfolio yield per area by neighborhood (red = mean)", ylabel="Yield per area")
    _chart(charts, "Mint value per area by city", viz.plot_category_bars,
           result.value_by_city, "city", "mean_value_per_area",
           out_path=out / "value_per_area_city.png", top_n=a.top_n,
           title="Mean mint value per area by city", xlabel="Mint price per area")
    _chart(charts, "Mint value per area by neighborhood", viz.plot_category_bars,
           result.value_by_neighborhood, "neighborhood", "mean_value_per_area",
           out_path=out / "value_per_area_neighborhood.png", top_n=a.top_n,
           title="Mean mint value per area by neighborhood", xlabel="Mint price per area")
    _chart(charts, "Markup of traded properties", viz.plot_histogram,
           result.price_changes["markup"],
           out_path=out / "markup_histogram.png", bins=a.histogram_bins, reference_line=1.0,
           title="Last price / mint price for properties that changed price", xlabel="Markup (x)")
    _chart(charts, "ROI by city", viz.plot_category_bars,
           result.roi_by_city, "city", "mean_roi",
           out_path=out / "roi_city.png", top_n=a.top_n,
           title="Mean ROI (monthly yield / last price) by city", xlabel="ROI")
    _chart(charts, "ROI by neighborhood", viz.plot_category_bars,
           result.roi_by_neighborhood, "neighborhood", "mean_roi",
           out_path=out / "roi_neighborhood.png", top_n=a.top_n,
           title="Mean ROI (monthly yield / last price) by neighborhood", xlabel="ROI")
    _chart(charts, "ROI distribution", viz.plot_density,
           result.portfolio["roi"],
           out_path=out / "roi_density.png", points=a.density_points,
           title="ROI density across the portfolio", xlabel="ROI")
    return charts


def save_tables(result: ReportResult, config: ReportConfig) -> Dict[str, str]:
    named = {
        "reference_by_neighborhood": result.reference_by_neighborhood,
        "portfolio_spread": result.portfolio_spread,
        "value_by_city": result.value_by_city,
        "value_by_neighborhood": result.value_by_neighborhood,
        "price_changes": result.price_changes,
        "unprofitable": result.unprofitable,
        "roi_by_city": result.roi_by_city,
        "roi_by_neighborhood": result.roi_by_neighborhood,
    }
    paths = {}
    for name, df in named.items():
        path = config.tables_dir / f"{name}.csv"
        viz.save_table(df, path)
        paths[name] = str(path)
    return paths


def analyze(config: ReportConfig) -> ReportResult:
    """Steps 1-5: every table, no files written."""
    inputs = config.inputs
    exclusions = data_prep.load_address_list(inputs.exclusions_file)
    unprofitable = data_prep.load_address_list(inputs.unprofitable_file)

    # 1. reference sample
    reference = prepare_reference(inputs.reference_csv, exclusions)
    ref_by_hood = metrics.ranked_means(reference, "neighborhood", "yield_per_area")

    # 2. portfolio + consistency check
    portfolio = prepare_portfolio(inputs.portfolio_csv)
    spread = metrics.within_category_spread(portfolio, "neighborhood", "yield_per_area")
    flagged = metrics.flag_inconsistent(spread, config.analysis.cv_threshold)
    if not flagged.empty:
        logger.warning("%d neighborhood(s) exceed cv %.2f on yield per area: %s",
                       len(flagged), config.analysis.cv_threshold, list(flagged["neighborhood"][:5]))

    # 3. value per area
    value_city = metrics.ranked_means(portfolio, "city", "value_per_area")
    value_hood = metrics.ranked_means(portfolio, "neighborhood", "value_per_area")

    # 4. traded properties
    changes = metrics.price_changes(portfolio)
    bad, rest = metrics.split_purchases(changes, unprofitable)
    logger.info("%d properties changed price; %d curated as unprofitable", len(changes), len(bad))

    # 5. ROI
    roi_city = metrics.ranked_means(portfolio, "city", "roi")
    roi_hood = metrics.ranked_means(portfolio, "neighborhood", "roi")

    return ReportResult(
        reference=reference,
        portfolio=portfolio,
        reference_by_neighborhood=ref_by_hood,
        portfolio_spread=spread,
        inconsistent_neighborhoods=flagged,
        value_by_city=value_city,
        value_by_neighborhood=value_hood,
        price_changes=changes,
        unprofitable=bad,
        remaining_changes=rest,
        roi_by_city=roi_city,
        roi_by_neighborhood=roi_hood,
        summary=metrics.portfolio_summary(portfolio),
        cv_threshold=config.analysis.cv_threshold,
    )


def run_report(config: ReportConfig, llm_call_fn: Optional[Callable[[str], str]] = None) -> ReportResult:
    """Run every step in order and write charts, CSV tables and report.md."""
    config.validate()
    result = analyze(config)

    # 6. charts + tables
    result.charts = render_charts(result, config)
    result.tables = save_tables(result, config)

    findings = build_findings(result)
    if llm_call_fn is not None:
        findings = polish_findings(findings, llm_call_fn)
    result.findings = findings

    top = config.analysis.top_n
    text = render_markdown(
        findings,
        {
            "Reference: yield per area by neighborhood": result.reference_by_neighborhood.head(top),
            "ROI by city": result.roi_by_city.head(top),
            "ROI by neighborhood": result.roi_by_neighborhood.head(top),
            "Mint value per area by city": result.value_by_city.head(top),
            "Curated unprofitable purchases": result.unprofitable[
                ["address", "city", "neighborhood", "mint_price", "last_price", "markup", "roi"]
            ],
        },
        result.charts,
        summary=result.summary,
        report_dir=str(config.output_dir),
        max_rows=top,
    )
    config.report_path.parent.mkdir(parents=True, exist_ok=True)
    config.report_path.write_text(text, encoding="utf-8")
    result.report_path = config.report_path
    logger.info("Wrote %s (%d charts, %d tables)", config.report_path, len(result.charts), len(result.tables))
    return result
