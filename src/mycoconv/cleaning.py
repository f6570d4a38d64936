from __future__ import annotations
from typing import Iterable
import pandas as pd
import numpy as np

from .config import CONFIDENCE_LEVELS, UNRESOLVED_MARKER

_TRUE_STRINGS = {"true", "t", "yes", "y", "1", "1.0"}
_FALSE_STRINGS = {"false", "f", "no", "n", "0", "0.0", "", "nan", "-"}

def normalize_columns(df: pd.DataFrame, exclude: Iterable[str] | None = None) -> pd.DataFrame:
    """
    Normalize column names by stripping whitespace, replacing spaces with underscores,
    and removing special characters.

    Columns listed in `exclude` (e.g. OTU identifiers, which must keep matching the
    annotation table) are only stripped of surrounding whitespace.

    Args:
        df: Input DataFrame
        exclude: Column names to leave untouched apart from stripping

    Returns:
        DataFrame with normalized column names
    """
    df = df.copy()
    keep = {str(c).strip() for c in (exclude or [])}
    stripped = df.columns.astype(str).str.strip()
    normalized = (
        stripped
        .str.replace(r"\s+", "_", regex=True)
        .str.replace(r"[^0-9A-Za-z_]", "", regex=True)
    )
    df.columns = [s if s in keep else n for s, n in zip(stripped, normalized)]
    return df

def harmonize_ids(df: pd.DataFrame, id_col="tree") -> pd.DataFrame:
    """
    Standardize ID column values by converting to uppercase strings and stripping whitespace.

    Args:
        df: Input DataFrame
        id_col: Name of the ID column to harmonize (default: "tree")

    Returns:
        DataFrame with standardized ID column
    """
    df = df.copy()
    if id_col in df.columns:
        df[id_col] = df[id_col].astype(str).str.strip().str.upper()
    return df

def harmonize_sites(df: pd.DataFrame, site_col="site") -> pd.DataFrame:
    """Strip and lower-case site labels so that 'Arid ' and 'arid' match."""
    df = df.copy()
    if site_col in df.columns:
        df[site_col] = df[site_col].astype(str).str.strip().str.lower()
    return df

def drop_duplicates_on_keys(df: pd.DataFrame, keys: list[str]) -> pd.DataFrame:
    """
    Remove duplicate rows based on specified key columns.

    Args:
        df: Input DataFrame
        keys: List of column names to use for duplicate detection

    Returns:
        DataFrame with duplicates removed
    """
    return df.drop_duplicates(subset=keys[0] if len(keys) == 1 else keys)

def handle_missing(df: pd.DataFrame, strategy: str, columns: Iterable[str] | None = None) -> pd.DataFrame:
    """
    Handle missing values in numeric columns using specified strategy.

    Args:
        df: Input DataFrame
        strategy: Strategy for handling missing values; "zero_for_absent_otus"
                 fills blank OTU cells with 0 (the OTU was not observed)
        columns: Restrict to these columns (optional, default: all numeric columns)

    Returns:
        DataFrame with missing values handled according to strategy
    """
    df = df.copy()
    cols = (
        df[list(columns)].select_dtypes(include="number").columns
        if columns is not None else df.select_dtypes(include="number").columns
    )
    if strategy == "zero_for_absent_otus":
        df[cols] = df[cols].fillna(0.0)
    else:
        raise ValueError(f"Unknown missing strategy: {strategy}")
    return df

def coerce_flags(df: pd.DataFrame, columns: Iterable[str]) -> pd.DataFrame:
    """
    Convert functional-group flag columns to bool.

    Accepts real booleans, 0/1 and the usual yes/no/true/false spellings.
    Missing flags count as False.

    Raises:
        KeyError: If a flag column is absent
        ValueError: If a flag value cannot be interpreted
    """
    df = df.copy()
    for col in columns:
        if col not in df.columns:
            raise KeyError(f"Flag column not found: {col!r}. Available: {list(df.columns)[:20]}")
        if df[col].dtype == bool:
            continue
        text = df[col].astype(str).str.strip().str.lower()
        unknown = set(text) - _TRUE_STRINGS - _FALSE_STRINGS - {"none", "<na>"}
        if unknown:
            raise ValueError(f"Cannot interpret values {sorted(unknown)[:5]} in flag column {col!r}")
        df[col] = text.isin(_TRUE_STRINGS)
    return df

def cast_confidence(df: pd.DataFrame, col: str = "confidence_ranking") -> pd.DataFrame:
    """
    Cast the confidence ranking to an ordered categorical.

    The unresolved marker and blanks become missing; they are never a valid level.
    """
    df = df.copy()
    if col not in df.columns:
        return df
    values = df[col].astype("string").str.strip()
    values = values.mask(values.isin([UNRESOLVED_MARKER, ""]))
    df[col] = pd.Categorical(values, categories=CONFIDENCE_LEVELS, ordered=True)
    return df

def cast_sites(df: pd.DataFrame, sites: Iterable[str], site_col: str = "site") -> pd.DataFrame:
    """Cast the site column to an ordered categorical over the known sites."""
    df = df.copy()
    if site_col in df.columns:
        df[site_col] = pd.Categorical(df[site_col], categories=list(sites), ordered=True)
    return df

def to_counts(df: pd.DataFrame, columns: Iterable[str]) -> pd.DataFrame:
    """
    Convert abundance columns to float.

    Blank cells stay missing (see handle_missing); any other value that is not
    a number raises instead of being dropped.

    Raises:
        ValueError: If a column holds text that does not parse as a number
    """
    df = df.copy()
    for col in columns:
        try:
            df[col] = pd.to_numeric(df[col]).astype(np.float64)
        except (ValueError, TypeError) as err:
            raise ValueError(f"Non-numeric counts in OTU column {col!r}: {err}") from err
    return df
