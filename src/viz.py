from __future__ import annotations
import os, textwrap
from typing import Optional, Tuple, Sequence
import numpy as np
import pandas as pd
import matplotlib.pyplot as plt

from src.exceptions import EmptyResultError, MissingColumnsError
from src.metrics import density_curve
from src.logging_setup import get_logger

logger = get_logger(__name__)

def _ensure_dir(p: Optional[str]) -> None:
    if p:
        d = os.path.dirname(p)
        if d and not os.path.exists(d):
            os.makedirs(d, exist_ok=True)

def _wrap(s: str, width: int) -> str:
    s = (s or "").strip()
    return "\n".join(textwrap.wrap(s, width=width)) if s else ""

def _check(df: pd.DataFrame, need: Sequence[str], what: str) -> None:
    miss = set(need) - set(df.columns)
    if miss:
        raise MissingColumnsError(what, miss, found=list(df.columns))

def _finish(fig: plt.Figure, out_path: Optional[str], show: bool) -> Optional[str]:
    fig.tight_layout()
    saved = None
    if out_path:
        out_path = str(out_path)
        _ensure_dir(out_path)
        fig.savefig(out_path, dpi=150, bbox_inches="tight")
        saved = out_path
        logger.debug("Saved chart %s", out_path)
    if show:
        plt.show()
    else:
        plt.close(fig)
    return saved


def plot_category_bars(
    agg: pd.DataFrame,
    label_col: str,
    value_col: str,
    out_path: Optional[str] = None,
    show: bool = False,
    *,
    title: str = "",
    xlabel: str = "",
    top_n: Optional[int] = None,
    annotate_n: bool = True,
) -> Tuple[plt.Figure, plt.Axes, Optional[str]]:
    """
    Horizontal bars for a ranked aggregate (first row drawn at the top).
    Rows with an undefined value are skipped.
    """
    _check(agg, [label_col, value_col], "aggregate")
    data = agg.loc[agg[value_col].notna()]
    if top_n is not None:
        data = data.head(top_n)
    if data.empty:
        raise EmptyResultError(f"Nothing to plot for {value_col!r}")

    labels = [_wrap(str(x), 28) for x in data[label_col]]
    vals = data[value_col].to_numpy(dtype=float)
    y = np.arange(len(data))

    fig, ax = plt.subplots(figsize=(10, max(3.0, 0.38 * len(data) + 1.2)))
    bars = ax.barh(y, vals, color="#4C72B0")
    ax.set_yticks(y)
    ax.set_yticklabels(labels, fontsize=9)
    ax.invert_yaxis()
    ax.set_title(title or f"{value_col} by {label_col}")
    ax.set_xlabel(xlabel or value_col)
    ax.grid(axis="x", alpha=0.3)

    if annotate_n and "n" in data.columns:
        for bar, n in zip(bars, data["n"]):
            ax.text(bar.get_width(), bar.get_y() + bar.get_height() / 2, f"  n={int(n)}",
                    va="center", ha="left", fontsize=8, color="#555555")

    saved = _finish(fig, out_path, show)
    return fig, ax, saved


def plot_category_points(
    df: pd.DataFrame,
    category_col: str,
    value_col: str,
    out_path: Optional[str] = None,
    show: bool = False,
    *,
    title: str = "",
    ylabel: str = "",
    max_categories: int = 30,
    seed: int = 0,
) -> Tuple[plt.Figure, plt.Axes, Optional[str]]:
    """
    One jittered point per row within each category plus a bar marking the
    category mean. A tight column of points means a consistent category.
    """
    _check(df, [category_col, value_col], "table")
    data = df.loc[df[category_col].notna() & df[value_col].notna(), [category_col, value_col]]
    if data.empty:
        raise EmptyResultError(f"Nothing to plot for {value_col!r}")

    order = (data.groupby(category_col)[value_col].mean()
                 .sort_values(ascending=False, kind="stable")
                 .head(max_categories))
    rng = np.random.default_rng(seed)

    fig, ax = plt.subplots(figsize=(max(8.0, 0.45 * len(order) + 2), 5))
    for i, (cat, mean) in enumerate(order.items()):
        vals = data.loc[data[category_col] == cat, value_col].to_numpy(dtype=float)
        jitter = rng.uniform(-0.18, 0.18, size=len(vals))
        ax.scatter(np.full(len(vals), i) + jitter, vals, s=12, alpha=0.55, color="#4C72B0")
        ax.hlines(mean, i - 0.3, i + 0.3, colors="#C44E52", linewidth=2)

    ax.set_xticks(np.arange(len(order)))
    ax.set_xticklabels([str(c) for c in order.index], rotation=60, ha="right", fontsize=8)
    ax.set_title(title or f"{value_col} per row by {category_col} (red = mean)")
    ax.set_ylabel(ylabel or value_col)
    ax.grid(axis="y", alpha=0.3)

    saved = _finish(fig, out_path, show)
    return fig, ax, saved


def plot_histogram(
    values: pd.Series,
    out_path: Optional[str] = None,
    show: bool = False,
    *,
    bins: int = 30,
    title: str = "",
    xlabel: str = "",
    reference_line: Optional[float] = None,
) -> Tuple[plt.Figure, plt.Axes, Optional[str]]:
    """Histogram of the defined values; `reference_line` draws a dashed marker (e.g. markup = 1)."""
    x = pd.to_numeric(pd.Series(values), errors="coerce").dropna()
    if x.empty:
        raise EmptyResultError("No defined values to plot")

    fig, ax = plt.subplots(figsize=(9, 4.5))
    ax.hist(x.to_numpy(dtype=float), bins=bins, color="#55A868", edgecolor="white")
    if reference_line is not None:
        ax.axvline(reference_line, color="#C44E52", linestyle="--", linewidth=1.2)
    ax.set_title(title or f"Distribution of {x.name or 'values'} (n={len(x)})")
    ax.set_xlabel(xlabel or str(x.name or "value"))
    ax.set_ylabel("Properties")
    ax.grid(axis="y", alpha=0.3)

    saved = _finish(fig, out_path, show)
    return fig, ax, saved


def plot_density(
    values: pd.Series,
    out_path: Optional[str] = None,
    show: bool = False,
    *,
    points: int = 200,
    title: str = "",
    xlabel: str = "",
    rug: bool = True,
) -> Tuple[plt.Figure, plt.Axes, Optional[str]]:
    """Kernel density curve of the defined values, with an optional rug of the raw points."""
    curve = density_curve(values, points=points)
    x = pd.to_numeric(pd.Series(values), errors="coerce").dropna()

    fig, ax = plt.subplots(figsize=(9, 4.5))
    ax.plot(curve["x"].to_numpy(), curve["density"].to_numpy(), color="#8172B2", linewidth=1.8)
    ax.fill_between(curve["x"].to_numpy(), curve["density"].to_numpy(), alpha=0.2, color="#8172B2")
    if rug:
        ax.plot(x.to_numpy(dtype=float), np.zeros(len(x)), "|", color="#333333", alpha=0.4, markersize=8)
    ax.set_title(title or f"Density of {x.name or 'values'} (n={len(x)})")
    ax.set_xlabel(xlabel or str(x.name or "value"))
    ax.set_ylabel("Density")

    saved = _finish(fig, out_path, show)
    return fig, ax, saved


def save_table(df: pd.DataFrame, out_csv_path: Optional[str] = None) -> pd.DataFrame:
    """Save (and return) a table as CSV."""
    if out_csv_path:
        out_csv_path = str(out_csv_path)
        _ensure_dir(out_csv_path)
        df.to_csv(out_csv_path, index=False)
    return df
