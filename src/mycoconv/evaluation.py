"""
Permutation tests of site separation.

This module provides:
- A distance-based multivariate permutation test (PERMANOVA) that works on any
  square dissimilarity matrix (Bray-Curtis for communities, Euclidean for
  standardized soil chemistry).
- Feature-matrix preparation for the soil table (z-scored numeric columns).
- Wrappers running the test on a CommunityMatrix or on the soil table.

Notes
-----
- Sums of squares are computed from squared distances (Anderson 2001):
  SS_total = sum_{i<j} d_ij^2 / n and SS_within = sum_g sum_{i<j in g} d_ij^2 / n_g.
  For Euclidean distances this equals the classic between/within decomposition.
- The p-value counts the observed statistic: (#{F_perm >= F_obs} + 1) / (permutations + 1).
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional, Tuple, Dict

import numpy as np
import pandas as pd
from scipy.spatial.distance import pdist, squareform

from .community import CommunityMatrix
from .config import DEFAULT_PERMUTATIONS, SITE_COL, SOIL_VARIABLES
from .ordination import bray_curtis

__all__ = [
    "EvalResult",
    "prepare_feature_matrix",
    "euclidean_distances_for",
    "permanova",
    "community_permanova",
    "soil_permanova",
    "result_table",
]


@dataclass
class EvalResult:
    groups: pd.Series  # index aligned to samples, categorical labels
    F_stat: float
    p_value: float
    R2: float
    df_between: int
    df_within: int
    n_perm: int
    method: str = "permanova"
    meta: Optional[Dict] = None


# ---------------------- Feature matrix preparation ----------------------

def prepare_feature_matrix(df: pd.DataFrame,
                           variables: Optional[Iterable[str]] = None,
                           standardize: bool = True) -> Tuple[np.ndarray, pd.Index]:
    """
    Extract an (n_samples x n_features) matrix from df.

    - variables: columns to use (default: the soil chemistry variables).
    - standardize: if True, z-score each feature to mean=0, std=1.

    Rows with any missing value in the chosen variables are dropped.

    Returns (X, index) where index is the kept sample index of df.
    """
    variables = list(SOIL_VARIABLES if variables is None else variables)
    missing = [v for v in variables if v not in df.columns]
    if missing:
        raise KeyError(f"Variables not found: {missing}")
    sub = df.loc[:, variables].apply(pd.to_numeric, errors="coerce").dropna(axis=0, how="any")

    X = sub.to_numpy(dtype=float)
    if standardize:
        mu = X.mean(axis=0)
        sd = X.std(axis=0, ddof=1)
        sd[~np.isfinite(sd) | (sd == 0)] = 1.0
        X = (X - mu) / sd
    return X, sub.index


def euclidean_distances_for(X: np.ndarray) -> np.ndarray:
    """Square Euclidean distance matrix of the rows of X."""
    return squareform(pdist(np.asarray(X, dtype=float), metric="euclidean"))


# ----------------------------- PERMANOVA -----------------------------

def _ss_total(D2: np.ndarray) -> float:
    n = D2.shape[0]
    return float(np.triu(D2, k=1).sum() / n)


def _ss_within(D2: np.ndarray, groups: np.ndarray) -> float:
    ssw = 0.0
    for g in np.unique(groups):
        idx = np.flatnonzero(groups == g)
        if idx.size < 2:
            continue
        sub = D2[np.ix_(idx, idx)]
        ssw += float(np.triu(sub, k=1).sum() / idx.size)
    return ssw


def _pseudo_f(ssT: float, ssW: float, dfB: int, dfW: int) -> float:
    ssB = ssT - ssW
    msB = ssB / dfB if dfB > 0 else np.nan
    msW = ssW / dfW if dfW > 0 else np.nan
    return msB / msW if msW > 0 else np.inf


def permanova(distances: np.ndarray,
              group_labels: Iterable[str],
              permutations: int = DEFAULT_PERMUTATIONS,
              rng: Optional[np.random.Generator] = None) -> EvalResult:
    """
    Distance-based MANOVA with permutation p-value.

    Parameters
    ----------
    distances : ndarray (n x n)
        Symmetric dissimilarity matrix.
    group_labels : iterable of labels, length n
    permutations : int, default 999
    rng : numpy Generator, optional

    Returns EvalResult with pseudo-F, p, R2.
    """
    if rng is None:
        rng = np.random.default_rng()

    D = np.asarray(distances, dtype=float)
    if D.ndim != 2 or D.shape[0] != D.shape[1]:
        raise ValueError("distances must be a square matrix")
    groups = np.asarray([str(g) for g in group_labels])
    n = D.shape[0]
    if groups.shape[0] != n:
        raise ValueError(f"Got {groups.shape[0]} labels for {n} samples")
    levels = np.unique(groups)
    k = len(levels)
    if k < 2:
        raise ValueError("Need at least 2 groups for the test")

    D2 = D ** 2
    ssT = _ss_total(D2)
    ssW = _ss_within(D2, groups)
    dfB = k - 1
    dfW = n - k
    F_obs = _pseudo_f(ssT, ssW, dfB, dfW)
    R2 = (ssT - ssW) / ssT if ssT > 0 else 0.0

    # Permute labels
    count_ge = 1  # include observed
    for _ in range(permutations):
        perm = rng.permutation(groups)
        F_p = _pseudo_f(ssT, _ss_within(D2, perm), dfB, dfW)
        if F_p >= F_obs:
            count_ge += 1
    p_val = count_ge / (permutations + 1)

    return EvalResult(
        groups=pd.Series(groups, index=np.arange(n), dtype="category"),
        F_stat=float(F_obs),
        p_value=float(p_val),
        R2=float(R2),
        df_between=int(dfB),
        df_within=int(dfW),
        n_perm=int(permutations),
        method="permanova",
        meta={"levels": levels.tolist()},
    )


# ------------------------------ High-level API ------------------------------

def community_permanova(community: CommunityMatrix,
                        permutations: int = DEFAULT_PERMUTATIONS,
                        seed: Optional[int] = None) -> EvalResult:
    """PERMANOVA of Bray-Curtis community dissimilarities across sites."""
    D = bray_curtis(community.matrix)
    res = permanova(D, community.sites.astype(str), permutations=permutations,
                    rng=np.random.default_rng(seed))
    res.groups = pd.Series(pd.Categorical(community.sites.astype(str)), index=community.trees)
    res.meta = (res.meta or {})
    res.meta.update({"distance": "braycurtis", "group": community.group})
    return res


def soil_permanova(soil: pd.DataFrame,
                   variables: Optional[Iterable[str]] = None,
                   permutations: int = DEFAULT_PERMUTATIONS,
                   seed: Optional[int] = None) -> EvalResult:
    """PERMANOVA of standardized-Euclidean soil chemistry distances across sites."""
    if SITE_COL not in soil.columns:
        raise KeyError(f"Site column {SITE_COL!r} not found in soil table")
    X, idx = prepare_feature_matrix(soil, variables, standardize=True)
    groups = soil.loc[idx, SITE_COL].astype(str)
    res = permanova(euclidean_distances_for(X), groups, permutations=permutations,
                    rng=np.random.default_rng(seed))
    res.groups = pd.Series(pd.Categorical(groups), index=idx)
    res.meta = (res.meta or {})
    res.meta.update({"distance": "euclidean_standardized", "group": "soil"})
    return res


def result_table(results: Dict[str, EvalResult]) -> pd.DataFrame:
    """One row per named PERMANOVA result, ready for reporting."""
    rows = [
        {
            "analysis": name,
            "distance": (res.meta or {}).get("distance"),
            "F": res.F_stat,
            "R2": res.R2,
            "p_value": res.p_value,
            "df_between": res.df_between,
            "df_within": res.df_within,
            "n_perm": res.n_perm,
        }
        for name, res in results.items()
    ]
    return pd.DataFrame(rows)
