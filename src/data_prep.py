from __future__ import annotations

import re
from pathlib import Path
from typing import Iterable, List, Optional, Sequence, Union

import numpy as np
import pandas as pd

from src.exceptions import DataLoadError, MissingColumnsError
from src.logging_setup import get_logger

logger = get_logger(__name__)

PathLike = Union[str, Path]

TEXT_COLUMNS = ["address", "city", "neighborhood"]
NUMERIC_COLUMNS = ["area", "yield", "mint_price", "last_price"]

REFERENCE_COLUMNS = ["address", "city", "neighborhood", "area", "yield"]
PORTFOLIO_COLUMNS = REFERENCE_COLUMNS + ["mint_price", "last_price"]

# header spellings seen in exports, after normalize_header()
COLUMN_ALIASES = {
    "id": "address",
    "identifier": "address",
    "property": "address",
    "property_address": "address",
    "neighbourhood": "neighborhood",
    "district": "neighborhood",
    "size": "area",
    "area_size": "area",
    "monthly_yield": "yield",
    "rent": "yield",
    "income": "yield",
    "mint": "mint_price",
    "mint_value": "mint_price",
    "first_price": "mint_price",
    "last": "last_price",
    "last_sale": "last_price",
    "last_sale_price": "last_price",
    "recent_price": "last_price",
}


# a comma followed by exactly three-digit groups is a thousands separator;
# any other single comma between digits is a decimal comma
THOUSANDS_RX = r"^-?\d{1,3}(?:,\d{3})+(?:\.\d+)?$"
DECIMAL_COMMA_RX = r"^-?\d+,\d+$"


def normalize_header(s: str) -> str:
    s = (s or "").strip().lower()
    s = re.sub(r"[\s\-/]+", "_", s)
    return re.sub(r"[^a-z0-9_]", "", s)


def _clean_text(s: pd.Series) -> pd.Series:
    out = s.astype("string").str.strip()
    return out.replace("", pd.NA)


def _clean_numeric(s: pd.Series) -> pd.Series:
    # "1,234.5" -> 1234.5 and "1,5" -> 1.5; anything else unparseable -> NaN
    txt = s.astype("string").str.strip()
    thousands = txt.str.match(THOUSANDS_RX, na=False).astype(bool)
    txt = txt.mask(thousands, txt.str.replace(",", "", regex=False))
    decimal = txt.str.match(DECIMAL_COMMA_RX, na=False).astype(bool)
    txt = txt.mask(decimal, txt.str.replace(",", ".", regex=False))
    vals = pd.to_numeric(txt.to_numpy(dtype=object, na_value=np.nan), errors="coerce")
    return pd.Series(vals, index=s.index, dtype=float)


def load_table(path: PathLike, required: Sequence[str], sep: Optional[str] = None) -> pd.DataFrame:
    """
    Load a delimited snapshot and normalize it:
      - headers matched case-insensitively, common aliases mapped to canonical names
      - text columns stripped (empty -> null), numeric columns coerced (bad -> NaN)
    Fails fast if any of `required` is absent.
    """
    path = Path(path)
    if not path.exists():
        raise DataLoadError(f"Input file not found: {path}")
    try:
        # sep=None lets the python engine sniff comma/semicolon/tab exports
        raw = pd.read_csv(path, sep=sep, engine="python", dtype=str)
    except (pd.errors.EmptyDataError, pd.errors.ParserError, UnicodeDecodeError, OSError) as e:
        raise DataLoadError(f"Could not parse {path}: {e}") from e

    keys = {col: normalize_header(str(col)) for col in raw.columns}
    present = set(keys.values())
    renames = {}
    for col, key in keys.items():
        target = COLUMN_ALIASES.get(key, key)
        # an alias never shadows a header that already carries the canonical name
        renames[col] = key if target != key and target in present else target
    df = raw.rename(columns=renames)
    df = df.loc[:, ~df.columns.duplicated()]

    missing = [c for c in required if c not in df.columns]
    if missing:
        raise MissingColumnsError(str(path), missing, found=list(raw.columns))

    for c in TEXT_COLUMNS:
        if c in df.columns:
            df[c] = _clean_text(df[c])
    for c in NUMERIC_COLUMNS:
        if c in df.columns:
            df[c] = _clean_numeric(df[c])

    logger.info("Loaded %d rows from %s", len(df), path)
    return df


def load_reference(path: PathLike) -> pd.DataFrame:
    """Reference sample: address, city, neighborhood (nullable), area, yield."""
    return load_table(path, REFERENCE_COLUMNS)


def load_portfolio(path: PathLike) -> pd.DataFrame:
    """Portfolio: reference columns plus mint and last price."""
    return load_table(path, PORTFOLIO_COLUMNS)


# ----------------------------
# Derived columns
# ----------------------------
def _require(df: pd.DataFrame, cols: Iterable[str], what: str = "table") -> None:
    missing = set(cols) - set(df.columns)
    if missing:
        raise MissingColumnsError(what, missing, found=list(df.columns))


def add_ratio(df: pd.DataFrame, column: str, numerator: str, denominator: str) -> pd.DataFrame:
    """
    Add `column` = numerator / denominator.
    Undefined (NaN) when the numerator is null or the denominator is null, zero
    or negative; never coerced to 0 or inf.
    """
    _require(df, [numerator, denominator])
    out = df.copy()
    num = pd.to_numeric(out[numerator], errors="coerce").astype(float)
    den = pd.to_numeric(out[denominator], errors="coerce").astype(float)
    out[column] = num / den.where(den > 0, np.nan)
    n_undef = int(out[column].isna().sum())
    if n_undef:
        logger.debug("%s: %d of %d rows undefined", column, n_undef, len(out))
    return out


def add_yield_per_area(df: pd.DataFrame) -> pd.DataFrame:
    return add_ratio(df, "yield_per_area", "yield", "area")


def add_value_per_area(df: pd.DataFrame) -> pd.DataFrame:
    return add_ratio(df, "value_per_area", "mint_price", "area")


def add_markup(df: pd.DataFrame) -> pd.DataFrame:
    return add_ratio(df, "markup", "last_price", "mint_price")


def add_roi(df: pd.DataFrame) -> pd.DataFrame:
    """Monthly yield over last sale price; a payback-rate proxy, not annualized."""
    return add_ratio(df, "roi", "yield", "last_price")


def enrich_portfolio(df: pd.DataFrame) -> pd.DataFrame:
    out = add_yield_per_area(df)
    out = add_value_per_area(out)
    out = add_markup(out)
    return add_roi(out)


# ----------------------------
# Row filters
# ----------------------------
def _normalize_addresses(addresses: Iterable[str]) -> set:
    return {str(a).strip() for a in addresses if a is not None and str(a).strip()}


def drop_addresses(df: pd.DataFrame, addresses: Iterable[str], *, label: str = "exclusion list") -> pd.DataFrame:
    """
    Remove exactly the rows whose address is listed (every duplicate of it).
    Listed addresses that are not in the table are reported, not fatal.
    """
    _require(df, ["address"])
    wanted = _normalize_addresses(addresses)
    hit = df["address"].isin(wanted).fillna(False).astype(bool)
    absent = wanted - set(df["address"].dropna())
    if absent:
        logger.warning("%s: %d listed address(es) not found, e.g. %s",
                       label, len(absent), sorted(absent)[:5])
    logger.info("%s: removed %d of %d rows", label, int(hit.sum()), len(df))
    return df.loc[~hit].copy()


def keep_addresses(df: pd.DataFrame, addresses: Iterable[str]) -> pd.DataFrame:
    """Complement of drop_addresses: only the listed rows."""
    _require(df, ["address"])
    wanted = _normalize_addresses(addresses)
    hit = df["address"].isin(wanted).fillna(False).astype(bool)
    return df.loc[hit].copy()


def drop_missing(df: pd.DataFrame, column: str) -> pd.DataFrame:
    """Drop rows with no label in `column`."""
    _require(df, [column])
    keep = df[column].notna()
    dropped = int((~keep).sum())
    if dropped:
        logger.info("Dropped %d rows with no %s", dropped, column)
    return df.loc[keep].copy()


def load_address_list(path: Optional[PathLike]) -> List[str]:
    """
    Read a curated address list: one per line, blank lines and '#' comments ignored.
    Order of first appearance is kept; duplicates collapse.
    """
    if path is None:
        return []
    path = Path(path)
    if not path.exists():
        logger.warning("Address list %s not found; treating it as empty", path)
        return []
    seen, out = set(), []
    for line in path.read_text(encoding="utf-8").splitlines():
        s = line.strip()
        if not s or s.startswith("#"):
            continue
        if s not in seen:
            seen.add(s)
            out.append(s)
    logger.info("Loaded %d addresses from %s", len(out), path)
    return out
