"""
Build the metaverse land report from the two snapshot CSVs.

    python cli_report.py --reference data/reference_sample.csv \
        --portfolio data/portfolio.csv --exclusions data/glitched.txt \
        --unprofitable data/unprofitable.txt --output-dir output

Unset flags fall back to LAND_* environment variables (see src/config.py).
"""
import argparse
import sys
from functools import partial
from pathlib import Path

import pandas as pd

from src.config import ReportConfig
from src.exceptions import LandReportError
from src.logging_setup import get_logger, setup_logging
from src.pipeline import run_report

logger = get_logger("cli_report")


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(description="Metaverse land portfolio report")
    p.add_argument("--reference", type=Path, help="reference sample CSV")
    p.add_argument("--portfolio", type=Path, help="portfolio CSV")
    p.add_argument("--exclusions", type=Path, help="addresses to drop from the reference sample")
    p.add_argument("--unprofitable", type=Path, help="addresses curated as poor purchases")
    p.add_argument("--output-dir", type=Path, help="where charts, tables and report.md go")
    p.add_argument("--top-n", type=int, help="rows per ranked chart/table")
    p.add_argument("--cv-threshold", type=float, help="max yield-per-area cv within a neighborhood")
    p.add_argument("--log-level", help="DEBUG, INFO, WARNING, ...")
    p.add_argument("--log-format", choices=["standard", "json"])
    p.add_argument("--llm", action="store_true", help="reword recommendations with OpenAI")
    p.add_argument("--model", help="OpenAI model for --llm")
    return p


def config_from_args(args: argparse.Namespace) -> ReportConfig:
    config = ReportConfig.from_env()
    if args.reference:
        config.inputs.reference_csv = args.reference
    if args.portfolio:
        config.inputs.portfolio_csv = args.portfolio
    if args.exclusions:
        config.inputs.exclusions_file = args.exclusions
    if args.unprofitable:
        config.inputs.unprofitable_file = args.unprofitable
    if args.output_dir:
        config.output_dir = args.output_dir
    if args.top_n is not None:
        config.analysis.top_n = args.top_n
    if args.cv_threshold is not None:
        config.analysis.cv_threshold = args.cv_threshold
    if args.log_level:
        config.log_level = args.log_level
    if args.log_format:
        config.log_format = args.log_format
    if args.model:
        config.llm_model = args.model
    return config


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    config = config_from_args(args)
    setup_logging(config.log_level, config.log_format)

    llm_call_fn = None
    if args.llm:
        from src.openai_llm import DEFAULT_MODEL, openai_llm_call
        llm_call_fn = partial(openai_llm_call, model=config.llm_model or DEFAULT_MODEL)

    try:
        result = run_report(config, llm_call_fn=llm_call_fn)
    except LandReportError as e:
        logger.error("%s", e)
        return 1

    top = config.analysis.top_n
    with pd.option_context("display.width", 120, "display.max_columns", 20):
        print("\nROI by city\n", result.roi_by_city.head(top).to_string(index=False))
        print("\nROI by neighborhood\n", result.roi_by_neighborhood.head(top).to_string(index=False))
        print(f"\n{len(result.unprofitable)} of {len(result.price_changes)} traded properties curated as unprofitable")
    print(f"\nReport: {result.report_path}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
