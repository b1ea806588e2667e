from __future__ import annotations
import json, re, os
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional

import numpy as np
import pandas as pd

from src.logging_setup import get_logger

logger = get_logger(__name__)


@dataclass
class Finding:
    title: str
    text: str


# ----------------------------
# Number formatting
# ----------------------------
def _fmt_num(x: Any, digits: int = 2) -> str:
    if x is None or (isinstance(x, float) and np.isnan(x)):
        return "undefined"
    return f"{x:,.{digits}f}"

def _fmt_pct(x: Any) -> str:
    if x is None or (isinstance(x, float) and np.isnan(x)):
        return "undefined"
    return f"{x:.2%}"

def _leaders(agg: Optional[pd.DataFrame], label: str, value: str, k: int = 3, pct: bool = False) -> List[str]:
    if agg is None or agg.empty:
        return []
    rows = agg.loc[agg[value].notna()].head(k)
    fmt = _fmt_pct if pct else _fmt_num
    return [f"{r[label]} ({fmt(float(r[value]))})" for _, r in rows.iterrows()]

def _join(items: List[str]) -> str:
    if not items:
        return "none"
    if len(items) == 1:
        return items[0]
    return ", ".join(items[:-1]) + " and " + items[-1]


# ----------------------------
# Deterministic findings
# ----------------------------
def build_findings(result: Any) -> List[Finding]:
    """
    Turn the computed tables into short prose recommendations.
    `result` is a pipeline.ReportResult (anything with the same attributes works).
    """
    out: List[Finding] = []

    ref = result.reference_by_neighborhood
    best_ref = _leaders(ref, "neighborhood", "mean_yield_per_area")
    if best_ref:
        out.append(Finding(
            "Highest-yielding neighborhoods in the market sample",
            f"Across {len(result.reference):,} cleaned reference properties, the best yield per unit of "
            f"area is found in {_join(best_ref)}. Land in these neighborhoods earns the most for its size "
            f"and is the benchmark for new acquisitions.",
        ))

    flagged = result.inconsistent_neighborhoods
    if flagged is not None and not flagged.empty:
        names = [str(x) for x in flagged["neighborhood"].head(5)]
        out.append(Finding(
            "Neighborhoods with inconsistent yield per area",
            f"{len(flagged)} portfolio neighborhood(s) show a yield-per-area spread above the "
            f"{result.cv_threshold:.0%} tolerance: {_join(names)}. Check these rows for glitched "
            f"values before relying on their averages.",
        ))
    else:
        out.append(Finding(
            "Portfolio data looks consistent",
            "Yield per area is near-constant within every portfolio neighborhood, so the "
            "portfolio snapshot can be trusted for per-neighborhood comparisons.",
        ))

    cheap = result.value_by_city.loc[result.value_by_city["mean_value_per_area"].notna()]
    if not cheap.empty:
        dear = _leaders(cheap, "city", "mean_value_per_area", k=2)
        low = _leaders(cheap.iloc[::-1], "city", "mean_value_per_area", k=2)
        out.append(Finding(
            "Where land costs the most to mint",
            f"Mint value per unit of area is highest in {_join(dear)} and lowest in {_join(low)}. "
            f"Cheaper cities only pay off where their ROI keeps up.",
        ))

    roi_city = _leaders(result.roi_by_city, "city", "mean_roi", pct=True)
    roi_hood = _leaders(result.roi_by_neighborhood, "neighborhood", "mean_roi", pct=True)
    if roi_city or roi_hood:
        out.append(Finding(
            "Best return on the last sale price",
            f"By city, the strongest monthly yield relative to last price is in {_join(roi_city)}. "
            f"By neighborhood, prioritise {_join(roi_hood)} when buying or holding.",
        ))

    n_changed = len(result.price_changes)
    n_bad = len(result.unprofitable)
    if n_changed:
        share = n_bad / n_changed
        markup = result.remaining_changes["markup"].mean() if not result.remaining_changes.empty else float("nan")
        out.append(Finding(
            "Properties resold away from mint price",
            f"{n_changed} properties last sold at a price different from mint. {n_bad} of them "
            f"({share:.0%}) are judged poor purchases and are candidates to sell; the other "
            f"{len(result.remaining_changes)} carry a mean markup of {_fmt_num(markup)}x.",
        ))

    summary = result.summary
    if summary.get("undefined_roi") or summary.get("undefined_markup"):
        out.append(Finding(
            "Undefined metrics",
            f"ROI is undefined for {summary.get('undefined_roi', 0)} properties and markup for "
            f"{summary.get('undefined_markup', 0)} (missing or zero prices). They are left out of "
            f"the averages rather than counted as zero.",
        ))

    return out


# ----------------------------
# Optional LLM rewrite
# ----------------------------
PROMPT_HEADER = """You are editing the recommendations section of a portfolio report about virtual land
in a metaverse game. Rewrite each finding below as a clear, actionable recommendation for the owner.
Keep every number exactly as given. Do not invent facts.

Return STRICT JSON with this schema:
{
  "recommendations": [
    {"title": "short heading", "text": "2-3 sentences"}
  ]
}

Rules:
- One recommendation per finding, same order.
- Do not add extra fields.
"""

def build_prompt(findings: List[Finding]) -> str:
    body = "\n".join(f"- {f.title}: {f.text}" for f in findings)
    return f"{PROMPT_HEADER}\n\nFindings:\n{body}\n\nJSON only:"

def default_json_loader(text: str) -> Dict[str, Any]:
    # exact parse first, then the first {...} block, then with code fences stripped
    try:
        return json.loads(text)
    except (TypeError, ValueError):
        m = re.search(r"\{.*\}", text or "", re.S)
        if m:
            try:
                return json.loads(m.group(0))
            except ValueError:
                pass
        cleaned = [ln for ln in (text or "").strip().splitlines()
                   if not ln.strip().startswith(("```", "json"))]
        return json.loads("\n".join(cleaned))  # will raise; let caller handle

def polish_findings(findings: List[Finding], llm_call_fn: Callable[[str], str]) -> List[Finding]:
    """
    Ask an LLM to reword the findings. Any failure keeps the deterministic text.
    """
    if not findings:
        return findings
    try:
        raw = llm_call_fn(build_prompt(findings))
        js = default_json_loader(raw)
    except Exception as e:
        logger.warning("LLM rewrite failed, keeping generated text: %s", e)
        return findings

    recs = js.get("recommendations") if isinstance(js, dict) else None
    if not isinstance(recs, list) or len(recs) != len(findings):
        logger.warning("LLM returned %s recommendation(s) for %d finding(s); keeping generated text",
                       len(recs) if isinstance(recs, list) else "no", len(findings))
        return findings

    out = []
    for orig, rec in zip(findings, recs):
        title = str(rec.get("title") or orig.title).strip() if isinstance(rec, dict) else orig.title
        text = str(rec.get("text") or orig.text).strip() if isinstance(rec, dict) else orig.text
        out.append(Finding(title, text))
    return out


# ----------------------------
# Markdown report
# ----------------------------
def _md_cell(x: Any) -> str:
    if isinstance(x, float):
        return "undefined" if np.isnan(x) else f"{x:,.4g}"
    if x is None or x is pd.NA:
        return ""
    return str(x).replace("|", "\\|")

def md_table(df: pd.DataFrame, max_rows: int = 15) -> str:
    if df is None or df.empty:
        return "_(no rows)_"
    shown = df.head(max_rows)
    head = "| " + " | ".join(str(c) for c in shown.columns) + " |"
    sep = "|" + "|".join("---" for _ in shown.columns) + "|"
    rows = ["| " + " | ".join(_md_cell(v) for v in r) + " |" for r in shown.itertuples(index=False)]
    lines = [head, sep] + rows
    if len(df) > max_rows:
        lines.append(f"\n_{len(df) - max_rows} more row(s) in the CSV._")
    return "\n".join(lines)

def render_markdown(
    findings: List[Finding],
    tables: Mapping[str, pd.DataFrame],
    charts: Mapping[str, str],
    *,
    summary: Optional[Mapping[str, Any]] = None,
    report_dir: Optional[str] = None,
    title: str = "Metaverse land portfolio report",
    max_rows: int = 15,
) -> str:
    """Assemble the report: headline numbers, recommendations, tables, charts."""
    parts = [f"# {title}", ""]

    if summary:
        parts += ["## Portfolio at a glance", ""]
        for k, v in summary.items():
            label = k.replace("_", " ").capitalize()
            if "roi" in k and isinstance(v, float):
                shown = _fmt_pct(v)
            elif isinstance(v, float):
                shown = _fmt_num(v)
            else:
                shown = str(v)
            parts.append(f"- **{label}**: {shown}")
        parts.append("")

    parts += ["## Recommendations", ""]
    for i, f in enumerate(findings, start=1):
        parts += [f"### {i}. {f.title}", "", f.text, ""]

    for name, df in tables.items():
        parts += [f"## {name}", "", md_table(df, max_rows=max_rows), ""]

    if charts:
        parts += ["## Charts", ""]
        for name, path in charts.items():
            rel = os.path.relpath(path, report_dir) if report_dir else path
            parts += [f"### {name}", "", f"![{name}]({rel.replace(os.sep, '/')})", ""]

    return "\n".join(parts).rstrip() + "\n"
