from __future__ import annotations

from typing import Iterable, List, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd
from sklearn.neighbors import KernelDensity

from src.data_prep import drop_addresses, keep_addresses
from src.exceptions import EmptyResultError, MissingColumnsError
from src.logging_setup import get_logger

logger = get_logger(__name__)

Keys = Union[str, Sequence[str]]


def _as_list(keys: Keys) -> List[str]:
    return [keys] if isinstance(keys, str) else list(keys)


def _require(df: pd.DataFrame, cols: Iterable[str], what: str = "table") -> None:
    missing = set(cols) - set(df.columns)
    if missing:
        raise MissingColumnsError(what, missing, found=list(df.columns))


def category_means(df: pd.DataFrame, keys: Keys, value: str) -> pd.DataFrame:
    """
    Mean of `value` per group. Undefined values are skipped in the mean but
    still counted in `n`; `n_defined` says how many fed the mean.
    Rows with a null key are not grouped.
    """
    keys = _as_list(keys)
    _require(df, keys + [value])
    agg = (
        df.groupby(keys, dropna=True, sort=True)
          .agg(**{
              f"mean_{value}": (value, "mean"),
              "n": (value, "size"),
              "n_defined": (value, "count"),
          })
          .reset_index()
    )
    return agg


def rank(df: pd.DataFrame, by: str, ascending: bool = False) -> pd.DataFrame:
    """
    Total order on `by`: NaN last, ties keep their input order.
    """
    _require(df, [by])
    pos = "__pos"
    out = df.assign(**{pos: np.arange(len(df))})
    out = out.sort_values([by, pos], ascending=[ascending, True], na_position="last")
    return out.drop(columns=pos).reset_index(drop=True)


def ranked_means(df: pd.DataFrame, key: Keys, value: str, top_n: Optional[int] = None) -> pd.DataFrame:
    agg = rank(category_means(df, key, value), f"mean_{value}", ascending=False)
    if top_n is not None:
        agg = agg.head(top_n).copy()
    return agg


# ----------------------------
# Data-quality check
# ----------------------------
def within_category_spread(df: pd.DataFrame, key: str, value: str) -> pd.DataFrame:
    """
    Per-group spread of `value`. `cv` is std/|mean| (NaN when the mean is 0 or
    the group has a single defined value).
    """
    _require(df, [key, value])
    spread = (
        df.groupby(key, dropna=True)[value]
          .agg(n="count", mean="mean", std="std", min="min", max="max")
          .reset_index()
    )
    denom = spread["mean"].abs()
    spread["cv"] = spread["std"] / denom.where(denom > 0, np.nan)
    return spread


def flag_inconsistent(spread: pd.DataFrame, cv_threshold: float = 0.05) -> pd.DataFrame:
    """Groups whose coefficient of variation exceeds the threshold, worst first."""
    _require(spread, ["cv"])
    flagged = spread.loc[spread["cv"] > cv_threshold]
    return rank(flagged, "cv", ascending=False)


# ----------------------------
# Mint vs last price
# ----------------------------
def price_changes(df: pd.DataFrame) -> pd.DataFrame:
    """Rows whose last price differs from the mint price; rows missing either are left out."""
    _require(df, ["mint_price", "last_price"])
    both = df["mint_price"].notna() & df["last_price"].notna()
    changed = both & (df["mint_price"] != df["last_price"])
    return df.loc[changed].copy()


def split_purchases(changes: pd.DataFrame, unprofitable: Iterable[str]) -> Tuple[pd.DataFrame, pd.DataFrame]:
    """
    Split traded rows into (curated unprofitable, remaining).
    The curated list is supplied by hand; nothing here decides what is unprofitable.
    """
    unprofitable = list(unprofitable)
    bad = keep_addresses(changes, unprofitable)
    rest = drop_addresses(changes, unprofitable, label="unprofitable list")
    return bad, rest


# ----------------------------
# Distributions + headline numbers
# ----------------------------
def density_curve(values: pd.Series, bandwidth: Optional[float] = None, points: int = 200) -> pd.DataFrame:
    """
    Gaussian KDE over the defined values, evaluated on an evenly spaced grid
    padded by three bandwidths. Bandwidth defaults to Scott's rule.
    """
    x = pd.to_numeric(pd.Series(values), errors="coerce").dropna().to_numpy(dtype=float)
    x = x[np.isfinite(x)]
    if x.size < 2:
        raise EmptyResultError("density_curve needs at least two defined values")

    if bandwidth is None:
        std = x.std(ddof=1)
        bandwidth = std * x.size ** (-1.0 / 5.0) if std > 0 else 1e-3 * max(abs(x.mean()), 1.0)

    kde = KernelDensity(kernel="gaussian", bandwidth=bandwidth).fit(x.reshape(-1, 1))
    grid = np.linspace(x.min() - 3 * bandwidth, x.max() + 3 * bandwidth, points)
    dens = np.exp(kde.score_samples(grid.reshape(-1, 1)))
    return pd.DataFrame({"x": grid, "density": dens})


def portfolio_summary(df: pd.DataFrame) -> dict:
    _require(df, ["address", "area", "yield", "mint_price", "last_price", "roi", "markup"])
    return {
        "properties": int(len(df)),
        "total_area": float(df["area"].sum()),
        "total_yield": float(df["yield"].sum()),
        "total_mint_value": float(df["mint_price"].sum()),
        "total_last_value": float(df["last_price"].sum()),
        "mean_roi": float(df["roi"].mean()) if df["roi"].notna().any() else float("nan"),
        "mean_markup": float(df["markup"].mean()) if df["markup"].notna().any() else float("nan"),
        "undefined_roi": int(df["roi"].isna().sum()),
        "undefined_markup": int(df["markup"].isna().sum()),
    }
