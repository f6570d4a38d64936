"""
Non-metric multidimensional scaling (NMDS) on Bray-Curtis dissimilarities.

This module provides:
- bray_curtis: square Bray-Curtis dissimilarity matrix with an optional positive
  adjustment for zero dissimilarities between distinct trees.
- nmds: non-metric SMACOF (scikit-learn MDS on the precomputed matrix) with a
  capped number of iterations per random start; the best start is kept.

Notes
-----
- Stress is Kruskal's stress-1 (normalized_stress=True).
- A run is flagged as converged when SMACOF stopped on its own rule (stress
  decrease, relative to the configuration's sum of squared distances, below
  `eps`) before hitting `max_iter`, i.e. n_iter < max_iter. Non-convergence is
  a warning, not an error: the best start is still returned.
- scikit-learn drops zero dissimilarities from the monotone regression; the
  zero adjustment keeps pairs of identical trees in the fit.
- The final configuration is centred and rotated onto its principal axes, so
  MDS1 carries the largest spread. Distances are unaffected.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional, Union

import numpy as np
import pandas as pd
from scipy.spatial.distance import pdist, squareform
from sklearn.decomposition import PCA
from sklearn.manifold import MDS

from .community import CommunityMatrix
from .config import NMDS_EPS, NMDS_MAX_ITER, NMDS_N_INIT, ZERO_DISTANCE_ADJUSTMENT

logger = logging.getLogger("mycoconv")

__all__ = [
    "OrdinationResult",
    "bray_curtis",
    "nmds",
    "ordinate",
]


@dataclass
class OrdinationResult:
    coordinates: pd.DataFrame  # index=tree, columns MDS1..MDSk
    stress: float
    converged: bool
    n_iter: int
    warnings: list = field(default_factory=list)


# ------------------------------ Dissimilarity ------------------------------

def bray_curtis(matrix: Union[pd.DataFrame, np.ndarray],
                zero_adjustment: Optional[float] = None) -> np.ndarray:
    """
    Square Bray-Curtis dissimilarity: sum|x_i - y_i| / sum(x_i + y_i).

    - Two all-zero rows are identical (dissimilarity 0).
    - zero_adjustment: if given, every off-diagonal zero becomes this positive
      constant so that duplicated trees do not collapse the embedding. The
      diagonal stays 0.
    """
    X = np.asarray(matrix, dtype=float)
    if X.ndim != 2:
        raise ValueError("bray_curtis expects a 2-D matrix (trees x OTUs)")
    if np.any(X < 0):
        raise ValueError("bray_curtis requires nonnegative abundances.")
    n = X.shape[0]
    if n < 2:
        return np.zeros((n, n))
    with np.errstate(invalid="ignore", divide="ignore"):
        D = squareform(pdist(X, metric="braycurtis"))
    D = np.nan_to_num(D, nan=0.0)
    if zero_adjustment is not None:
        if zero_adjustment <= 0:
            raise ValueError("zero_adjustment must be positive")
        off_diag = ~np.eye(n, dtype=bool)
        D[(D == 0) & off_diag] = zero_adjustment
    return D


# ----------------------------------- NMDS -----------------------------------

def _random_state(rng: Optional[Union[np.random.Generator, int]]) -> Optional[int]:
    """scikit-learn takes an int seed; draw one from a Generator."""
    if isinstance(rng, np.random.Generator):
        return int(rng.integers(np.iinfo(np.int32).max))
    return rng


def _principal_axes(X: np.ndarray) -> np.ndarray:
    """Centre and rotate a configuration onto its principal axes."""
    n, k = X.shape
    if n <= k:
        return X - X.mean(axis=0, keepdims=True)
    return PCA(n_components=k).fit_transform(X)


def nmds(dissimilarities: np.ndarray,
         n_components: int = 2,
         *,
         max_iter: int = NMDS_MAX_ITER,
         n_init: int = NMDS_N_INIT,
         eps: float = NMDS_EPS,
         rng: Optional[Union[np.random.Generator, int]] = None) -> tuple[np.ndarray, float, bool, int]:
    """
    Non-metric MDS of a precomputed square dissimilarity matrix.

    Runs `n_init` random starts of at most `max_iter` SMACOF iterations each and
    keeps the lowest-stress configuration.

    Returns (coordinates, stress, converged, n_iter) for the best start, where
    stress is Kruskal's stress-1 and converged means the SMACOF stopping rule
    fired before `max_iter` iterations.
    """
    D = np.asarray(dissimilarities, dtype=float)
    if D.ndim != 2 or D.shape[0] != D.shape[1]:
        raise ValueError("dissimilarities must be a square matrix")
    if not np.allclose(D, D.T):
        raise ValueError("dissimilarities must be symmetric")
    if n_components < 1:
        raise ValueError("n_components must be >= 1")
    if max_iter < 1 or n_init < 1:
        raise ValueError("max_iter and n_init must be >= 1")
    if D.shape[0] < 2:
        raise ValueError("At least 2 samples required")

    mds = MDS(
        n_components=n_components,
        metric_mds=False,
        metric="precomputed",
        init="random",
        n_init=n_init,
        max_iter=max_iter,
        eps=eps,
        normalized_stress=True,
        random_state=_random_state(rng),
    )
    X = mds.fit_transform(D)
    n_iter = int(mds.n_iter_)
    return _principal_axes(X), float(mds.stress_), n_iter < max_iter, n_iter


def ordinate(community: Union[CommunityMatrix, pd.DataFrame],
             n_components: int = 2,
             *,
             zero_adjustment: Optional[float] = ZERO_DISTANCE_ADJUSTMENT,
             max_iter: int = NMDS_MAX_ITER,
             n_init: int = NMDS_N_INIT,
             eps: float = NMDS_EPS,
             rng: Optional[Union[np.random.Generator, int]] = None,
             log_warnings: bool = True) -> OrdinationResult:
    """
    Bray-Curtis NMDS of a community matrix (trees x OTUs).

    Returns an OrdinationResult with one MDS1/MDS2 row per tree, Kruskal
    stress-1 and `converged`. `converged` is True when the best SMACOF start met
    its stopping rule (relative stress decrease below `eps`) in fewer than
    `max_iter` iterations; it does not test the stress value itself. When the
    optimiser stops at the iteration cap the result carries a warning and,
    if log_warnings, the warning is logged; the best configuration is used.
    """
    matrix = community.matrix if isinstance(community, CommunityMatrix) else community
    D = bray_curtis(matrix, zero_adjustment=zero_adjustment)
    X, stress, converged, n_iter = nmds(
        D, n_components, max_iter=max_iter, n_init=n_init, eps=eps, rng=rng
    )
    coords = pd.DataFrame(
        X, index=matrix.index, columns=[f"MDS{i + 1}" for i in range(n_components)]
    )
    result = OrdinationResult(coordinates=coords, stress=stress, converged=converged, n_iter=n_iter)
    if not converged:
        msg = f"NMDS did not converge within {max_iter} iterations (best stress={stress:.4f})"
        result.warnings.append(msg)
        if log_warnings:
            logger.warning(msg)
    return result
