import numpy as np
import pandas as pd
import pytest

from mycoconv.community import CommunityMatrix
from mycoconv.traits import chi_square_table, chi_square_traits, otu_presence_by_site, trait_contingency


def _community():
    trees = pd.Index(["T1", "T2", "T3", "T4", "T5", "T6"], name="tree")
    matrix = pd.DataFrame(
        {
            "OTU_1": [3, 0, 2, 0, 0, 0],
            "OTU_2": [0, 4, 0, 0, 0, 0],
            "OTU_3": [0, 0, 0, 1, 5, 0],
            "OTU_4": [0, 0, 0, 0, 0, 2],
        },
        index=trees, dtype=float,
    )
    meta = pd.DataFrame(
        {"site": ["arid", "arid", "intermediate", "intermediate", "mesic", "mesic"]}, index=trees
    )
    return CommunityMatrix(meta, matrix, group="ectomycorrhizal")


def _traits():
    return pd.DataFrame({
        "OTU_ID": ["OTU_1", "OTU_2", "OTU_3", "OTU_4", "OTU_1"],
        "trait": ["exploration_type"] * 4 + ["hyphal_morphology"],
        "type": ["contact", "contact", "long_distance", "long_distance", "hydrophilic"],
    })


def test_otu_presence_by_site():
    present = otu_presence_by_site(_community())
    assert present.loc["arid"].tolist() == [True, True, False, False]
    assert present.loc["intermediate"].tolist() == [True, False, True, False]


def test_trait_contingency_counts_present_otus():
    table = trait_contingency(_community(), _traits(), "exploration_type")
    assert list(table.index) == ["arid", "intermediate", "mesic"]
    assert table.loc["arid", "contact"] == 2
    assert table.loc["arid", "long_distance"] == 0
    assert table.loc["intermediate", "contact"] == 1
    assert table.loc["intermediate", "long_distance"] == 1
    assert table.loc["mesic", "long_distance"] == 2


def test_trait_contingency_unknown_trait():
    with pytest.raises(KeyError):
        trait_contingency(_community(), _traits(), "spore_size")
    with pytest.raises(KeyError):
        trait_contingency(_community(), _traits().drop(columns=["type"]), "exploration_type")


def test_chi_square_table_small_table_is_missing():
    stats = chi_square_table(pd.DataFrame({"hydrophilic": [1, 1, 0]}, index=["arid", "intermediate", "mesic"]))
    assert np.isnan(stats["chi2"])
    assert stats["n"] == 2


def test_chi_square_traits_one_row_per_trait():
    out = chi_square_traits(_community(), _traits())
    assert list(out["trait"]) == ["exploration_type", "hyphal_morphology"]
    assert (out["group"] == "ectomycorrhizal").all()
    row = out.set_index("trait").loc["exploration_type"]
    assert row["dof"] == 2
    assert row["n"] == 6
    assert 0.0 <= row["p_value"] <= 1.0
    assert np.isnan(out.set_index("trait").loc["hyphal_morphology", "chi2"])
