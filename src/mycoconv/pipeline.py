from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, Iterable, Optional

import numpy as np
import pandas as pd

from . import config
from .anova import anova_table, site_means, tukey_table
from .cleaning import (
    normalize_columns, cast_confidence, cast_sites, coerce_flags, harmonize_ids,
    harmonize_sites, drop_duplicates_on_keys, handle_missing, to_counts,
)
from .community import CommunityMatrix, build_functional_community, lowest_otu_count
from .convergence import bootstrap_convergence, load_bootstrap_results, summarize_convergence
from .data_io import save_interim, save_report
from .diversity import alpha_diversity, summarize_by_site
from .evaluation import community_permanova, result_table, soil_permanova
from .functional_groups import FUNCTIONAL_GROUP_FLAGS, analysis_groups
from .ingest import read_soil_raw, read_annotations_raw, read_abundance_raw, read_traits_raw
from .ordination import ordinate
from .traits import chi_square_traits
from .validators import assert_soil, assert_annotations, assert_abundance, assert_traits

logger = logging.getLogger("mycoconv")

MIN_TREES = 3  # NMDS needs a handful of trees to say anything


# ------------------------------ Loading ------------------------------

def load_soil(path=None) -> pd.DataFrame:
    soil = read_soil_raw(path)
    soil = normalize_columns(soil)
    soil = harmonize_sites(soil, config.SITE_COL)
    soil = assert_soil(soil)
    return cast_sites(soil, config.SITES, config.SITE_COL)


def load_annotations(path=None) -> pd.DataFrame:
    ann = read_annotations_raw(path)
    ann = normalize_columns(ann)
    ann[config.OTU_ID_COL] = ann[config.OTU_ID_COL].astype(str).str.strip()
    ann = cast_confidence(ann)
    ann = coerce_flags(ann, FUNCTIONAL_GROUP_FLAGS.values())
    return assert_annotations(ann)


def load_abundance(path=None, otu_ids: Optional[Iterable[str]] = None) -> pd.DataFrame:
    """Abundance table with harmonized tree/site keys and numeric, gap-free OTU counts."""
    ab = read_abundance_raw(path)
    ab = normalize_columns(ab, exclude=otu_ids)
    ab = harmonize_ids(ab, "tree")
    ab = harmonize_sites(ab, config.SITE_COL)
    otu_cols = [c for c in ab.columns if c not in config.KEYS + [config.SITE_COL]]
    ab = to_counts(ab, otu_cols)
    ab = handle_missing(ab, "zero_for_absent_otus", columns=otu_cols)
    ab = drop_duplicates_on_keys(ab, list(ab.columns))  # exact repeats only
    ab = assert_abundance(ab, otu_cols)
    return cast_sites(ab, config.SITES, config.SITE_COL)


def load_traits(path=None) -> pd.DataFrame:
    traits = read_traits_raw(path)
    traits = normalize_columns(traits)
    for col in (config.OTU_ID_COL, "trait", "type"):
        if col in traits.columns:
            traits[col] = traits[col].astype(str).str.strip()
    return assert_traits(traits)


# ------------------------------ Helpers ------------------------------

def _usable(community: CommunityMatrix) -> bool:
    n_trees, n_otus = community.shape
    n_sites = community.sites.dropna().nunique()
    if n_trees < MIN_TREES or n_otus < 1 or n_sites < 2:
        logger.warning(
            f"{community.group}: skipped ({n_trees} trees, {n_otus} OTUs, {n_sites} sites)"
        )
        return False
    return True


def _seeder(seed: Optional[int]):
    rng = np.random.default_rng(seed)
    return lambda: int(rng.integers(2**32)) if seed is not None else None


def _raw_path(data_dir: Optional[Path], default: Path) -> Path:
    return default if data_dir is None else Path(data_dir) / default.name


# ------------------------------ Report ------------------------------

def make_report(data_dir: Optional[Path] = None,
                out_dir: Optional[Path] = None,
                interim_dir: Optional[Path] = None,
                *,
                resamples: int = config.DEFAULT_RESAMPLES,
                permutations: int = config.DEFAULT_PERMUTATIONS,
                seed: Optional[int] = None,
                n_jobs: int = 1,
                replay: bool = False,
                bootstrap_path: Optional[Path] = None) -> Dict[str, pd.DataFrame]:
    """
    Run the full analysis and write every summary table.

    Stages: soil ANOVA/PERMANOVA; per group (whole community and each functional
    group) diversity, NMDS and Bray-Curtis PERMANOVA; bootstrapped convergence
    (or replay of a precomputed table); trait chi-square tests.

    Returns the summary tables by name.
    """
    next_seed = _seeder(seed)
    reports: Dict[str, pd.DataFrame] = {}

    # ---- Soil chemistry ----
    soil = load_soil(_raw_path(data_dir, config.RAW_SOIL_CSV))
    soil_vars = [v for v in config.SOIL_VARIABLES if v in soil.columns]
    reports["soil_means"] = site_means(soil, soil_vars)
    reports["soil_anova"] = anova_table(soil, soil_vars)
    reports["soil_tukey"] = tukey_table(soil, soil_vars)
    permanovas = {"soil": soil_permanova(soil, soil_vars, permutations=permutations, seed=next_seed())}

    # ---- Communities ----
    annotations = load_annotations(_raw_path(data_dir, config.RAW_ANNOTATION_CSV))
    abundance = load_abundance(
        _raw_path(data_dir, config.RAW_ABUNDANCE_CSV), otu_ids=annotations[config.OTU_ID_COL]
    )
    traits = load_traits(_raw_path(data_dir, config.RAW_TRAITS_CSV))

    communities = {}
    for group in analysis_groups():
        community = build_functional_community(abundance, annotations, group)
        if _usable(community):
            communities[group] = community
    if not communities:
        raise ValueError("No community had enough trees, OTUs and sites to analyse")

    alpha_frames, alpha_summaries, alpha_anovas, coords, stresses, chi = [], [], [], [], [], []
    for group, community in communities.items():
        alpha = alpha_diversity(community)
        alpha_frames.append(alpha.reset_index().assign(group=group))
        alpha_summaries.append(summarize_by_site(alpha).assign(group=group))
        alpha_anovas.append(anova_table(alpha, ["richness", "shannon"]).assign(group=group))

        ordination = ordinate(community, rng=next_seed())
        coords.append(
            ordination.coordinates.join(community.metadata).reset_index().assign(group=group)
        )
        stresses.append({"group": group, "stress": ordination.stress,
                         "converged": ordination.converged, "n_iter": ordination.n_iter})
        permanovas[group] = community_permanova(community, permutations=permutations, seed=next_seed())
        chi.append(chi_square_traits(community, traits))

    reports["diversity"] = pd.concat(alpha_frames, ignore_index=True)
    reports["diversity_summary"] = pd.concat(alpha_summaries, ignore_index=True)
    reports["diversity_anova"] = pd.concat(alpha_anovas, ignore_index=True)
    reports["nmds_stress"] = pd.DataFrame(stresses)
    reports["permanova"] = result_table(permanovas)
    reports["trait_chi_square"] = pd.concat(chi, ignore_index=True)
    save_interim(pd.concat(coords, ignore_index=True), "nmds_coordinates.parquet", directory=interim_dir)

    # ---- Convergence bootstrap ----
    if replay:
        records = load_bootstrap_results(bootstrap_path or _raw_path(data_dir, config.RAW_BOOTSTRAP_CSV))
        records.insert(0, "group", "precomputed")
        logger.info(f"Replaying {len(records)} precomputed bootstrap records")
    else:
        lowest_n = lowest_otu_count(communities.values())
        logger.info(f"Resampling every group to lowest_n={lowest_n} OTUs")
        frames, diags, cents = [], [], []
        for group, community in communities.items():
            boot = bootstrap_convergence(
                community, lowest_n, resamples, seed=next_seed(), n_jobs=n_jobs
            )
            frames.append(boot.records.assign(group=group))
            diags.append(boot.diagnostics.assign(group=group))
            cents.append(boot.centroids.assign(group=group))
        records = pd.concat(frames, ignore_index=True)
        reports["bootstrap_diagnostics"] = pd.concat(diags, ignore_index=True)
        centroids = pd.concat(cents, ignore_index=True)
        reports["site_centroid_summary"] = (
            centroids.groupby(["group", config.SITE_COL], sort=False)
            .agg(area_mean=("area", "mean"), area_sd=("area", "std"), n_trees=("n", "max"))
            .reset_index()
        )
        save_interim(records, "bootstrap_records.parquet", directory=interim_dir)
        save_interim(centroids, "bootstrap_centroids.parquet", directory=interim_dir)

    reports["convergence_summary"] = summarize_convergence(records, by=["group", "comparison"])
    reports["convergence_site_summary"] = summarize_convergence(records, by=["group", "site"])

    for name, table in reports.items():
        path = save_report(table, f"{name}.csv", directory=out_dir)
        logger.info(f"Wrote {path}")
    return reports
