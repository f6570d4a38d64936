"""
Functional-trait contingency tables and chi-square tests.

For a given trait (e.g. exploration type, hyphal morphology) the contingency
table counts, for every site, the OTUs observed at that site (nonzero reads in
at least one of its trees) falling in each trait type. The chi-square test asks
whether trait composition differs between sites.
"""
from __future__ import annotations

import logging
from typing import Iterable, Optional

import numpy as np
import pandas as pd
from scipy.stats import chi2_contingency

from .community import CommunityMatrix
from .config import DEFAULT_ALPHA, OTU_ID_COL, SITE_COL

logger = logging.getLogger("mycoconv")

_TRAIT_COLUMNS = (OTU_ID_COL, "trait", "type")


def _require_trait_columns(traits: pd.DataFrame) -> None:
    missing = [c for c in _TRAIT_COLUMNS if c not in traits.columns]
    if missing:
        raise KeyError(f"Trait columns not found: {missing}. Available: {list(traits.columns)[:20]}")


def otu_presence_by_site(community: CommunityMatrix) -> pd.DataFrame:
    """Boolean site x OTU table: OTU has reads in at least one tree of the site."""
    present = community.matrix.gt(0).groupby(community.sites, observed=True).any()
    present.index = present.index.astype(str)
    present.index.name = SITE_COL
    return present


def trait_contingency(community: CommunityMatrix,
                      traits: pd.DataFrame,
                      trait: str) -> pd.DataFrame:
    """
    Site x trait-type counts of OTUs present at each site.

    OTUs without an annotation for `trait` are ignored. An OTU listed with
    several types for the same trait counts once per type.

    Raises
    ------
    KeyError
        If the trait table lacks OTU_ID/trait/type, or `trait` does not occur.
    """
    _require_trait_columns(traits)
    sub = traits.loc[traits["trait"].astype(str) == trait, [OTU_ID_COL, "type"]].drop_duplicates()
    if sub.empty:
        raise KeyError(f"Trait {trait!r} not found. Available: {sorted(traits['trait'].astype(str).unique())[:20]}")

    presence = otu_presence_by_site(community)
    long = (
        presence.reset_index()
        .melt(id_vars=SITE_COL, var_name=OTU_ID_COL, value_name="present")
    )
    long = long[long["present"]].copy()
    long[OTU_ID_COL] = long[OTU_ID_COL].astype(str)
    sub = sub.assign(**{OTU_ID_COL: sub[OTU_ID_COL].astype(str)})
    merged = long.merge(sub, on=OTU_ID_COL, how="inner")
    table = pd.crosstab(merged[SITE_COL], merged["type"])
    table = table.reindex(presence.index, fill_value=0)
    table.index.name = SITE_COL
    table.columns.name = "type"
    return table


def chi_square_table(table: pd.DataFrame) -> dict:
    """
    Chi-square test of independence on a contingency table.

    Empty rows and columns are dropped first; a table smaller than 2x2 after
    that has no test and yields NaN statistics.
    """
    t = table.loc[table.sum(axis=1) > 0, table.sum(axis=0) > 0]
    if t.shape[0] < 2 or t.shape[1] < 2:
        logger.warning(f"Contingency table {t.shape} too small for a chi-square test")
        return {"chi2": np.nan, "p_value": np.nan, "dof": 0, "n": int(t.to_numpy().sum()),
                "min_expected": np.nan}
    res = chi2_contingency(t.to_numpy())
    chi2, p, dof, expected = res[0], res[1], res[2], res[3]
    return {
        "chi2": float(chi2),
        "p_value": float(p),
        "dof": int(dof),
        "n": int(t.to_numpy().sum()),
        "min_expected": float(np.min(expected)),
    }


def chi_square_traits(community: CommunityMatrix,
                      traits: pd.DataFrame,
                      trait_names: Optional[Iterable[str]] = None) -> pd.DataFrame:
    """
    Chi-square test of trait-type composition across sites for each trait.

    Returns one row per trait: trait, group, chi2, p_value, dof, n,
    min_expected and a significance flag.
    """
    _require_trait_columns(traits)
    names = sorted(traits["trait"].astype(str).unique()) if trait_names is None else list(trait_names)
    rows = []
    for name in names:
        stats = chi_square_table(trait_contingency(community, traits, name))
        rows.append({"trait": name, "group": community.group, **stats})
    out = pd.DataFrame(rows)
    out[f"significant_at_{DEFAULT_ALPHA}"] = out["p_value"] < DEFAULT_ALPHA
    return out
