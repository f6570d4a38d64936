import pandas as pd
import pytest

from mycoconv.cleaning import cast_confidence
from mycoconv.otu_filter import inclusion_mask, select_otus


def _annotations():
    return pd.DataFrame({
        "OTU_ID": ["OTU_1", "OTU_2", "OTU_3", "OTU_4", "OTU_5"],
        "confidence_ranking": ["Probable", "Possible", "-", "Highly Probable", "Probable"],
        "notes": [None, None, None, "Unassigned", "Soil saprotroph"],
        "symbiotroph": [True, True, False, True, False],
        "ectomycorrhizal": [True, True, False, True, False],
        "arbuscular_mycorrhizal": [False, False, False, False, False],
    })


def test_select_otus_whole_community():
    ann = _annotations()
    assert select_otus(ann) == ["OTU_1", "OTU_5"]
    assert select_otus(ann, "all") == ["OTU_1", "OTU_5"]


def test_select_otus_after_casting_confidence():
    ann = cast_confidence(_annotations())
    assert select_otus(ann) == ["OTU_1", "OTU_5"]


def test_select_otus_functional_group():
    ann = _annotations()
    assert select_otus(ann, "ectomycorrhizal") == ["OTU_1"]
    assert select_otus(ann, "arbuscular_mycorrhizal") == []


def test_inclusion_mask_is_aligned_boolean():
    ann = _annotations()
    mask = inclusion_mask(ann)
    assert mask.dtype == bool
    assert mask.index.equals(ann.index)


def test_unknown_group_and_missing_columns():
    ann = _annotations()
    with pytest.raises(KeyError):
        select_otus(ann, "lichenized")
    with pytest.raises(KeyError):
        select_otus(ann.drop(columns=["notes"]))
    with pytest.raises(KeyError):
        select_otus(ann.drop(columns=["ectomycorrhizal"]), "ectomycorrhizal")
