"""
OTU inclusion predicate.

An OTU is kept for analysis when its guild assignment is trustworthy:
- its confidence ranking is resolved and better than "Possible",
- its notes do not mark it as "Unassigned",
- and, when a functional group is requested, its flag for that group is set.
"""
from __future__ import annotations

import logging
from typing import Optional

import pandas as pd

from .config import EXCLUDED_CONFIDENCE, OTU_ID_COL, UNASSIGNED_NOTE
from .functional_groups import WHOLE_COMMUNITY, get_group_flag

logger = logging.getLogger("mycoconv")

_REQUIRED = (OTU_ID_COL, "confidence_ranking", "notes")


def _require_columns(df: pd.DataFrame, columns) -> None:
    missing = [c for c in columns if c not in df.columns]
    if missing:
        raise KeyError(f"Annotation columns not found: {missing}. Available: {list(df.columns)[:20]}...")


def inclusion_mask(annotations: pd.DataFrame, group: Optional[str] = None) -> pd.Series:
    """
    Boolean mask over annotation rows implementing the inclusion predicate.

    Parameters
    ----------
    annotations : pd.DataFrame
        OTU annotation table with OTU_ID, confidence_ranking, notes and flag columns.
    group : str, optional
        Functional group name (see functional_groups). None or "all" means no
        group restriction.

    Returns
    -------
    pd.Series of bool aligned to annotations.index
    """
    _require_columns(annotations, _REQUIRED)

    confidence = annotations["confidence_ranking"]
    resolved = confidence.notna() & ~confidence.astype("string").str.strip().isin(EXCLUDED_CONFIDENCE)
    assigned = annotations["notes"].astype("string").str.strip() != UNASSIGNED_NOTE
    mask = resolved & assigned.fillna(True)

    if group is not None and group != WHOLE_COMMUNITY:
        flag = get_group_flag(group)
        _require_columns(annotations, [flag])
        mask &= annotations[flag].fillna(False).astype(bool)

    return mask.astype(bool)


def select_otus(annotations: pd.DataFrame, group: Optional[str] = None) -> list[str]:
    """Return the OTU identifiers passing the inclusion predicate, in table order."""
    mask = inclusion_mask(annotations, group)
    otus = annotations.loc[mask, OTU_ID_COL].astype(str).tolist()
    logger.info(
        f"OTU filter ({group or WHOLE_COMMUNITY}): kept {len(otus)} of {len(annotations)} OTUs"
    )
    return otus
