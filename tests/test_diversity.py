import numpy as np
import pandas as pd
import pytest

from mycoconv.community import build_community
from mycoconv.diversity import alpha_diversity, richness, shannon, summarize_by_site


def test_three_tree_scenario():
    ab = pd.DataFrame({
        "tree": ["t1", "t2", "t3"],
        "site": ["A", "A", "B"],
        "o1": [2, 3, 0],
        "o2": [2, 1, 0],
        "o3": [0, 0, 2],
        "o4": [0, 0, 2],
    })
    com = build_community(ab, ["o1", "o2", "o3", "o4"])
    alpha = alpha_diversity(com)
    assert alpha.loc["t1", "richness"] == 2
    assert alpha.loc["t3", "richness"] == 2
    assert np.isclose(alpha.loc["t1", "shannon"], np.log(2))
    assert np.isclose(alpha.loc["t1", "shannon"], 0.693, atol=1e-3)


def test_shannon_even_and_single():
    m = pd.DataFrame([[4, 4, 4, 4, 4], [0, 0, 9, 0, 0]], index=["even", "single"])
    H = shannon(m)
    assert np.isclose(H["even"], np.log(5))
    assert H["single"] == 0.0


def test_richness_monotone_when_adding_otus():
    row = np.zeros(6)
    previous = 0
    for j, value in enumerate([3, 1, 7, 2, 5, 4]):
        row[j] = value
        r = int(richness(pd.DataFrame([row]))[0])
        assert r >= previous
        previous = r
    assert previous == 6


def test_empty_tree_has_missing_shannon():
    m = pd.DataFrame([[0, 0], [1, 1]], index=["empty", "full"])
    H = shannon(m)
    assert np.isnan(H["empty"])
    assert richness(m)["empty"] == 0

    with pytest.raises(ValueError):
        shannon(pd.DataFrame([[-1, 2]]))


def test_summarize_by_site_excludes_missing():
    alpha = pd.DataFrame({
        "site": ["arid", "arid", "mesic"],
        "richness": [2, 0, 4],
        "shannon": [0.5, np.nan, 1.0],
    })
    out = summarize_by_site(alpha).set_index("site")
    assert out.loc["arid", "shannon_mean"] == 0.5
    assert out.loc["arid", "shannon_n"] == 1
    assert out.loc["arid", "shannon_missing"] == 1
    assert out.loc["arid", "richness_mean"] == 1.0
