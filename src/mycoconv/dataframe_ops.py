from __future__ import annotations
from typing import Iterable, Literal
import pandas as pd

# -------------------------------
# Index helpers (tree-keyed frames)
# -------------------------------

def index_by(df: pd.DataFrame, key: str = "tree") -> pd.DataFrame:
    """Return df indexed by `key` (drops the column); no-op if already indexed by it."""
    if df.index.name == key:
        return df
    if key not in df.columns:
        raise KeyError(f"Key column not found: {key!r}. Available: {list(df.columns)[:20]}...")
    return df.set_index(key, drop=True)

def assert_unique_index(df: pd.DataFrame, name: str = "frame") -> None:
    if not df.index.is_unique:
        dups = df.index[df.index.duplicated()].unique()
        raise ValueError(f"{name} has duplicate index values (first 10): {dups[:10].tolist()}")

def _assert_same_index(a: pd.DataFrame, b: pd.DataFrame) -> None:
    if not a.index.equals(b.index):
        raise ValueError(
            "Index mismatch between frames. "
            "Check that both are indexed by the same key (e.g., 'tree') "
            "and have identical dtype/normalization."
        )

# -------------------------------
# Align by tree
# -------------------------------

JoinHow = Literal["inner", "left"]

def align_by_tree(
    metadata: pd.DataFrame,
    matrix: pd.DataFrame,
    how: JoinHow = "inner",
) -> tuple[pd.DataFrame, pd.DataFrame]:
    """
    Reindex metadata and matrix to a common tree index.

    - how='inner': keep trees present in both frames, in metadata order.
    - how='left': keep every metadata tree; a tree missing from matrix raises.

    Returns new DataFrames with identical indexes; originals untouched.
    """
    assert_unique_index(metadata, "metadata")
    assert_unique_index(matrix, "matrix")
    if how == "inner":
        idx = metadata.index[metadata.index.isin(matrix.index)]
    elif how == "left":
        missing = metadata.index.difference(matrix.index)
        if len(missing) > 0:
            raise ValueError(f"Trees missing from matrix (first 10): {missing[:10].tolist()}")
        idx = metadata.index
    else:
        raise ValueError(f"Unsupported how={how}")
    meta_out, mat_out = metadata.reindex(idx), matrix.reindex(idx)
    _assert_same_index(meta_out, mat_out)
    return meta_out, mat_out

def subset_rows(frames: Iterable[pd.DataFrame], keep: pd.Index) -> list[pd.DataFrame]:
    """Restrict several tree-indexed frames to the same rows, by label."""
    frames = list(frames)
    for f in frames:
        missing = keep.difference(f.index)
        if len(missing) > 0:
            raise KeyError(f"Trees not found in frame (first 10): {missing[:10].tolist()}")
    return [f.reindex(keep) for f in frames]
