"""
Community matrix construction.

A CommunityMatrix pairs a tree-indexed metadata frame (site of each tree) with
a tree x OTU abundance matrix restricted to a chosen set of OTUs. Both frames
always share the same tree index: rows are matched by tree identifier, never by
position.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Optional

import pandas as pd

from .config import SITE_COL
from .dataframe_ops import align_by_tree, index_by, subset_rows
from .functional_groups import WHOLE_COMMUNITY
from .otu_filter import select_otus

logger = logging.getLogger("mycoconv")


@dataclass(frozen=True, eq=False)
class CommunityMatrix:
    metadata: pd.DataFrame  # index=tree, column 'site'
    matrix: pd.DataFrame    # index=tree, columns=OTU ids
    group: str = WHOLE_COMMUNITY

    @property
    def trees(self) -> pd.Index:
        return self.matrix.index

    @property
    def otus(self) -> list[str]:
        return list(self.matrix.columns)

    @property
    def sites(self) -> pd.Series:
        return self.metadata[SITE_COL]

    @property
    def shape(self) -> tuple[int, int]:
        return self.matrix.shape

    def __repr__(self):
        return (
            f"CommunityMatrix(group='{self.group}', trees={self.shape[0]}, "
            f"otus={self.shape[1]}, sites={self.sites.nunique()})"
        )


def build_community(abundance: pd.DataFrame,
                    otu_ids: Iterable[str],
                    *,
                    drop_empty: bool = False,
                    group: str = WHOLE_COMMUNITY,
                    tree_col: str = "tree") -> CommunityMatrix:
    """
    Build a CommunityMatrix from an abundance table and a set of OTU ids.

    Parameters
    ----------
    abundance : pd.DataFrame
        Abundance table with a tree column (or tree index), a site column and one
        column per OTU.
    otu_ids : iterable of str
        OTU columns to keep. Every id must exist in the abundance table.
    drop_empty : bool, default False
        Drop trees whose row-sum over the kept OTUs is zero. Used for functional
        group subsets, where such a tree carries no information.
    group : str
        Label of the subset, carried on the result.

    Raises
    ------
    KeyError
        If the site column or any requested OTU column is absent.
    """
    table = index_by(abundance, tree_col)
    if SITE_COL not in table.columns:
        raise KeyError(f"Site column {SITE_COL!r} not found in abundance table")

    otu_ids = list(dict.fromkeys(str(o) for o in otu_ids))
    missing = [o for o in otu_ids if o not in table.columns]
    if missing:
        raise KeyError(f"OTUs not found in abundance table ({len(missing)}): {missing[:10]}")

    metadata = table[[SITE_COL]].copy()
    matrix = table.loc[:, otu_ids].astype(float)
    metadata, matrix = align_by_tree(metadata, matrix, how="left")

    if drop_empty:
        keep = matrix.index[matrix.sum(axis=1) > 0]
        dropped = len(matrix) - len(keep)
        if dropped:
            logger.info(f"{group}: dropped {dropped} trees with no reads in the selected OTUs")
        metadata, matrix = subset_rows([metadata, matrix], keep)

    return CommunityMatrix(metadata=metadata, matrix=matrix, group=group)


def build_functional_community(abundance: pd.DataFrame,
                               annotations: pd.DataFrame,
                               group: Optional[str] = None,
                               *,
                               tree_col: str = "tree") -> CommunityMatrix:
    """
    Filter OTUs by annotation (optionally restricted to a functional group) and
    build the matching CommunityMatrix.

    Functional-group subsets drop trees without any reads in the group; the whole
    community (group None or "all") keeps every tree.
    """
    label = group or WHOLE_COMMUNITY
    otus = select_otus(annotations, group)
    return build_community(
        abundance, otus, drop_empty=label != WHOLE_COMMUNITY, group=label, tree_col=tree_col
    )


def lowest_otu_count(communities: Iterable[CommunityMatrix]) -> int:
    """Smallest OTU (column) count across communities: the shared resampling budget."""
    counts = [c.shape[1] for c in communities]
    if not counts:
        raise ValueError("At least one community is required")
    return int(min(counts))
