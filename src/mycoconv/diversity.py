from __future__ import annotations
import logging

import numpy as np
import pandas as pd
from scipy.stats import entropy

from .community import CommunityMatrix
from .config import SITE_COL

logger = logging.getLogger("mycoconv")


def richness(matrix: pd.DataFrame) -> pd.Series:
    """Number of OTUs with nonzero abundance in each row (tree)."""
    X = matrix.to_numpy(dtype=float)
    return pd.Series((X > 0).sum(axis=1), index=matrix.index, name="richness")


def shannon(matrix: pd.DataFrame) -> pd.Series:
    """
    Shannon diversity H = -sum(p_i * ln p_i) over the nonzero OTUs of each row.

    Rows without any reads have no defined diversity and come back as NaN.
    """
    X = matrix.to_numpy(dtype=float)
    if np.any(X < 0):
        raise ValueError("shannon requires nonnegative abundances.")
    empty = X.sum(axis=1) == 0
    H = np.full(X.shape[0], np.nan)
    if (~empty).any():
        H[~empty] = entropy(X[~empty], axis=1)
    return pd.Series(H, index=matrix.index, name="shannon")


def alpha_diversity(community: CommunityMatrix) -> pd.DataFrame:
    """
    Per-tree richness and Shannon diversity joined to the tree's site.

    Trees with an empty community keep richness 0 and a missing Shannon value;
    they are counted in the log.
    """
    out = community.metadata[[SITE_COL]].copy()
    out["richness"] = richness(community.matrix)
    out["shannon"] = shannon(community.matrix)
    n_empty = int(out["shannon"].isna().sum())
    if n_empty:
        logger.warning(
            f"{community.group}: Shannon diversity undefined for {n_empty} empty tree(s); excluded from summaries"
        )
    return out


def summarize_by_site(alpha: pd.DataFrame, metrics=("richness", "shannon")) -> pd.DataFrame:
    """
    Site means of diversity metrics, ignoring missing values.

    Returns one row per site with '<metric>_mean', '<metric>_n' and
    '<metric>_missing' columns.
    """
    metrics = list(metrics)
    grouped = alpha.groupby(SITE_COL, observed=True)[metrics]
    means = grouped.mean().add_suffix("_mean")
    counts = grouped.count().add_suffix("_n")
    missing = grouped.agg(lambda s: int(s.isna().sum())).add_suffix("_missing")
    out = pd.concat([means, counts, missing], axis=1)
    ordered = [f"{m}_{s}" for m in metrics for s in ("mean", "n", "missing")]
    return out[ordered].reset_index()
