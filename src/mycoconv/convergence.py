"""
Bootstrapped community convergence.

For one community matrix, each resample:
1. draws `lowest_n` OTU columns without replacement,
2. ordinates the sub-matrix (Bray-Curtis NMDS, 2 axes),
3. takes each site's centroid as the mean of its trees' coordinates (the
   site's convex-hull area is kept alongside, in BootstrapResult.centroids),
4. measures the Euclidean distances between site centroids and from every tree
   to its own site centroid,
5. emits, for every tree and every site pair that includes the tree's site,
   ratio = inter-centroid distance / distance to own centroid.

Large ratios mean a tree sits close to its own centroid relative to how far the
site centroids are apart (tight within-site clustering).

A tree lying exactly on its own centroid (e.g. the only tree of its site) has no
defined ratio: the record keeps ratio=NaN with undefined=True, and summaries
exclude and count it.

Resamples are independent and run on a joblib worker pool when n_jobs != 1.
Each resample draws from its own generator spawned from one SeedSequence, so a
given seed gives the same records whatever the number of workers.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from itertools import combinations
from pathlib import Path
from typing import Iterable, Optional, Sequence

import numpy as np
import pandas as pd
from joblib import Parallel, delayed
from scipy.spatial import ConvexHull, QhullError

from .cleaning import harmonize_ids, harmonize_sites, normalize_columns
from .community import CommunityMatrix
from .config import (
    DEFAULT_RESAMPLES, NMDS_EPS, NMDS_MAX_ITER, NMDS_N_INIT, SITES, SITE_COL,
    ZERO_DISTANCE_ADJUSTMENT,
)
from .ingest import read_bootstrap_raw
from .ordination import ordinate
from .validators import assert_bootstrap

logger = logging.getLogger("mycoconv")

RECORD_COLUMNS = ["tree", "site", "comparison", "ratio", "resample", "undefined"]


@dataclass
class BootstrapResult:
    records: pd.DataFrame      # one row per (tree, comparison, resample)
    diagnostics: pd.DataFrame  # one row per resample: stress, converged, n_iter, n_undefined
    centroids: pd.DataFrame    # one row per (resample, site): MDS1, MDS2, area, n
    group: str
    lowest_n: int
    resamples: int

    @property
    def n_undefined(self) -> int:
        return int(self.records["undefined"].sum())

    @property
    def n_not_converged(self) -> int:
        return int((~self.diagnostics["converged"]).sum())

    def __repr__(self):
        return (
            f"BootstrapResult(group='{self.group}', resamples={self.resamples}, "
            f"lowest_n={self.lowest_n}, records={len(self.records)}, "
            f"undefined={self.n_undefined}, not_converged={self.n_not_converged})"
        )


# ------------------------------ Geometry helpers ------------------------------

def ordered_sites(sites: pd.Series) -> list:
    """Sites present in `sites`, in categorical order (or the configured gradient order)."""
    present = set(pd.unique(sites.dropna()))
    if isinstance(sites.dtype, pd.CategoricalDtype):
        order = list(sites.cat.categories)
    else:
        order = list(SITES) + sorted(str(s) for s in present if s not in SITES)
    return [s for s in order if s in present]


def site_comparisons(sites: Iterable[str]) -> list[tuple[str, str, str]]:
    """All site pairs as (site_a, site_b, 'site_a-site_b'), in the given order."""
    return [(a, b, f"{a}-{b}") for a, b in combinations(list(sites), 2)]


def _hull_area(points: np.ndarray) -> float:
    if len(points) < 3:
        return 0.0
    try:
        # in 2-D, ConvexHull.volume is the enclosed area
        return float(ConvexHull(points).volume)
    except QhullError:
        return 0.0  # collinear or coincident points


def site_centroids(coordinates: pd.DataFrame, sites: pd.Series) -> pd.DataFrame:
    """
    Per-site centroid (arithmetic mean of the trees' coordinates) with hull area.

    `sites` is matched to `coordinates` by tree label.
    """
    sites = _sites_for(coordinates, sites)
    order = ordered_sites(sites)
    centroids = coordinates.groupby(sites, observed=True).mean().reindex(order)
    centroids["area"] = [
        _hull_area(coordinates.loc[(sites == s).to_numpy()].to_numpy()) for s in order
    ]
    centroids["n"] = sites.value_counts().reindex(order).to_numpy()
    centroids.index.name = SITE_COL
    return centroids


def _sites_for(coordinates: pd.DataFrame, sites: pd.Series) -> pd.Series:
    aligned = sites.reindex(coordinates.index)
    if aligned.isna().any():
        missing = coordinates.index[aligned.isna()]
        raise KeyError(f"No site for trees (first 10): {missing[:10].tolist()}")
    return aligned


def convergence_ratios(coordinates: pd.DataFrame,
                       sites: pd.Series,
                       resample: Optional[int] = None,
                       centroids: Optional[pd.DataFrame] = None) -> pd.DataFrame:
    """
    Convergence records for one ordination.

    Parameters
    ----------
    coordinates : pd.DataFrame
        Tree-indexed ordination coordinates (MDS1, MDS2, ...).
    sites : pd.Series
        Site of each tree, indexed by tree.
    resample : int, optional
        Resample index stored on every record.
    centroids : pd.DataFrame, optional
        Output of site_centroids for the same coordinates; computed when omitted.

    Returns
    -------
    pd.DataFrame with RECORD_COLUMNS; each tree appears once per site pair that
    includes its own site (twice for three sites).
    """
    sites = _sites_for(coordinates, sites)
    order = ordered_sites(sites)
    if len(order) < 2:
        raise ValueError("Need at least 2 sites to compare centroids")

    X = coordinates.to_numpy(dtype=float)
    if centroids is None:
        centroids = site_centroids(coordinates, sites)
    C = centroids.loc[order, list(coordinates.columns)].to_numpy(dtype=float)
    pos = {s: i for i, s in enumerate(order)}
    site_idx = np.array([pos[s] for s in sites])
    own_dist = np.linalg.norm(X - C[site_idx], axis=1)
    undefined = own_dist == 0

    trees = coordinates.index.to_numpy()
    site_vals = sites.to_numpy()
    frames = []
    for a, b, label in site_comparisons(order):
        between = float(np.linalg.norm(C[pos[a]] - C[pos[b]]))
        members = (site_idx == pos[a]) | (site_idx == pos[b])
        with np.errstate(divide="ignore", invalid="ignore"):
            ratio = np.where(undefined[members], np.nan, between / own_dist[members])
        frames.append(pd.DataFrame({
            "tree": trees[members],
            "site": site_vals[members],
            "comparison": label,
            "ratio": ratio,
            "resample": resample if resample is not None else 0,
            "undefined": undefined[members],
        }))
    out = pd.concat(frames, ignore_index=True)
    out["site"] = pd.Categorical(out["site"].astype(str), categories=[str(s) for s in order])
    return out[RECORD_COLUMNS]


def draw_otu_subset(otus: Sequence[str], lowest_n: int, rng: np.random.Generator) -> list[str]:
    """Draw `lowest_n` distinct OTU ids uniformly without replacement."""
    otus = list(otus)
    if not 1 <= lowest_n <= len(otus):
        raise ValueError(f"lowest_n must be between 1 and {len(otus)}, got {lowest_n}")
    idx = rng.choice(len(otus), size=lowest_n, replace=False)
    return [otus[i] for i in np.sort(idx)]


# ------------------------------ Bootstrap loop ------------------------------

def _run_resample(matrix: pd.DataFrame,
                  sites: pd.Series,
                  lowest_n: int,
                  seed: np.random.SeedSequence,
                  resample: int,
                  nmds_options: dict) -> tuple[pd.DataFrame, dict, pd.DataFrame]:
    rng = np.random.default_rng(seed)
    columns = draw_otu_subset(matrix.columns, lowest_n, rng)
    result = ordinate(matrix.loc[:, columns], rng=rng, log_warnings=False, **nmds_options)
    centroids = site_centroids(result.coordinates, sites)
    records = convergence_ratios(result.coordinates, sites, resample=resample, centroids=centroids)
    if not result.converged:
        logger.debug(f"resample {resample}: {result.warnings[0]}")
    diag = {
        "resample": resample,
        "stress": result.stress,
        "converged": result.converged,
        "n_iter": result.n_iter,
        "n_undefined": int(records["undefined"].sum()),
    }
    return records, diag, centroids.reset_index().assign(resample=resample)


def bootstrap_convergence(community: CommunityMatrix,
                          lowest_n: int,
                          resamples: int = DEFAULT_RESAMPLES,
                          *,
                          seed: Optional[int] = None,
                          n_jobs: int = 1,
                          zero_adjustment: Optional[float] = ZERO_DISTANCE_ADJUSTMENT,
                          max_iter: int = NMDS_MAX_ITER,
                          n_init: int = NMDS_N_INIT,
                          eps: float = NMDS_EPS) -> BootstrapResult:
    """
    Resample OTUs `resamples` times and collect convergence ratios.

    Parameters
    ----------
    community : CommunityMatrix
        Full matrix of one functional group (or the whole community).
    lowest_n : int
        OTUs drawn per resample; use the smallest OTU count across the groups
        being compared (community.lowest_otu_count) so ratios are comparable.
    resamples : int, default 1000
    seed : int, optional
        Root seed; None draws fresh entropy.
    n_jobs : int, default 1
        joblib workers (-1 for all cores).

    Returns
    -------
    BootstrapResult with resamples x trees x (n_sites - 1) records.
    """
    if resamples < 1:
        raise ValueError("resamples must be >= 1")
    n_otus = community.shape[1]
    if not 1 <= lowest_n <= n_otus:
        raise ValueError(f"lowest_n must be between 1 and {n_otus}, got {lowest_n}")
    if len(ordered_sites(community.sites)) < 2:
        raise ValueError(f"{community.group}: need trees from at least 2 sites")

    nmds_options = {
        "zero_adjustment": zero_adjustment,
        "max_iter": max_iter,
        "n_init": n_init,
        "eps": eps,
    }
    children = np.random.SeedSequence(seed).spawn(resamples)
    logger.info(
        f"{community.group}: bootstrapping {resamples} resamples of {lowest_n}/{n_otus} OTUs "
        f"over {community.shape[0]} trees (n_jobs={n_jobs})"
    )
    outputs = Parallel(n_jobs=n_jobs)(
        delayed(_run_resample)(community.matrix, community.sites, lowest_n, ss, i, nmds_options)
        for i, ss in enumerate(children, start=1)
    )

    records = pd.concat([rec for rec, _, _ in outputs], ignore_index=True)
    records["site"] = pd.Categorical(
        records["site"].astype(str), categories=ordered_sites(community.sites)
    )
    diagnostics = pd.DataFrame([diag for _, diag, _ in outputs])
    centroids = pd.concat([cen for _, _, cen in outputs], ignore_index=True)
    centroids[SITE_COL] = centroids[SITE_COL].astype(str)

    result = BootstrapResult(
        records=records,
        diagnostics=diagnostics,
        centroids=centroids,
        group=community.group,
        lowest_n=int(lowest_n),
        resamples=int(resamples),
    )
    if result.n_not_converged:
        logger.warning(
            f"{community.group}: NMDS hit the {max_iter}-iteration cap in "
            f"{result.n_not_converged}/{resamples} resamples; best iterates used"
        )
    if result.n_undefined:
        logger.warning(
            f"{community.group}: {result.n_undefined} ratio(s) undefined (tree on its own centroid); "
            f"excluded from summaries"
        )
    return result


# ------------------------------ Summaries ------------------------------

def summarize_convergence(records: pd.DataFrame, by: Sequence[str] = ("comparison",)) -> pd.DataFrame:
    """
    Mean, standard deviation (ddof=1) and standard error of the ratio per group.

    Undefined ratios are excluded from the statistics and reported in
    'n_undefined'; 'n' counts the defined ratios.
    """
    by = list(by)
    missing = [c for c in by + ["ratio"] if c not in records.columns]
    if missing:
        raise KeyError(f"Columns not found in records: {missing}")
    if "undefined" in records.columns:
        undefined = records["undefined"].astype(bool)
    else:
        undefined = pd.Series(~np.isfinite(records["ratio"].to_numpy(dtype=float)), index=records.index)
    work = records[by].copy()
    work["ratio"] = records["ratio"].astype(float).where(~undefined)
    work["undefined"] = undefined.to_numpy()

    grouped = work.groupby(by, observed=True)
    out = grouped["ratio"].agg(["mean", "std", "count"]).rename(columns={"std": "sd", "count": "n"})
    out["se"] = out["sd"] / np.sqrt(out["n"])
    out["n_undefined"] = grouped["undefined"].sum().astype(int)
    return out[["mean", "sd", "se", "n", "n_undefined"]].reset_index()


def load_bootstrap_results(path: str | Path | None = None) -> pd.DataFrame:
    """
    Load a precomputed bootstrap results table for replay instead of recomputing.

    Ratios that are missing or non-finite are marked undefined and stored as NaN.
    """
    df = read_bootstrap_raw(path)
    df = normalize_columns(df)
    df = harmonize_sites(df)
    df = harmonize_ids(df)
    df = assert_bootstrap(df)
    ratio = df["ratio"].to_numpy(dtype=float)
    df["undefined"] = ~np.isfinite(ratio)
    df["ratio"] = np.where(df["undefined"], np.nan, ratio)
    df["site"] = pd.Categorical(df["site"], categories=list(SITES), ordered=True)
    return df[RECORD_COLUMNS]
