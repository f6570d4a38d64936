# tests/test_cleaning.py
import pandas as pd
import pytest
from mycoconv.cleaning import (
    cast_confidence, coerce_flags, drop_duplicates_on_keys,
    handle_missing, harmonize_ids, harmonize_sites, normalize_columns, to_counts,
)

def test_drop_duplicates_on_keys():
    df = pd.DataFrame({"tree":["T1","T1"], "site":["arid","arid"], "x":[1,1]})
    out = drop_duplicates_on_keys(df, keys=["tree","site"])
    assert len(out) == 1

def test_handle_missing_zero_for_absent_otus():
    df = pd.DataFrame({"OTU_A":[1, None], "OTU_B":[None, 2.0], "site":["arid","mesic"]})
    out = handle_missing(df, "zero_for_absent_otus", columns=["OTU_A","OTU_B"])
    assert out[["OTU_A","OTU_B"]].isna().sum().sum() == 0
    assert float(out.loc[0, "OTU_B"]) == 0.0

def test_handle_missing_unknown_strategy():
    with pytest.raises(ValueError):
        handle_missing(pd.DataFrame({"a":[1.0]}), "interpolate")

def test_harmonize_ids_upper_trim():
    df = pd.DataFrame({"tree":[" abc ","X-1"], "v":[1,2]})
    out = harmonize_ids(df)
    assert list(out["tree"]) == ["ABC","X-1"]

def test_harmonize_sites_lower_trim():
    df = pd.DataFrame({"site":["Arid ","MESIC"]})
    assert list(harmonize_sites(df)["site"]) == ["arid","mesic"]

def test_normalize_columns_keeps_excluded_otu_ids():
    df = pd.DataFrame(columns=[" tree ", "Site Name", " OTU 1 "])
    out = normalize_columns(df, exclude=["OTU 1"])
    assert list(out.columns) == ["tree", "Site_Name", "OTU 1"]

def test_coerce_flags_spellings():
    df = pd.DataFrame({"ectomycorrhizal":["Yes","no","1", None]})
    out = coerce_flags(df, ["ectomycorrhizal"])
    assert out["ectomycorrhizal"].tolist() == [True, False, True, False]

def test_coerce_flags_rejects_unknown_values():
    df = pd.DataFrame({"ectomycorrhizal":["maybe"]})
    with pytest.raises(ValueError):
        coerce_flags(df, ["ectomycorrhizal"])
    with pytest.raises(KeyError):
        coerce_flags(df, ["symbiotroph"])

def test_cast_confidence_marks_unresolved_missing():
    df = pd.DataFrame({"confidence_ranking":["Probable","-","","Highly Probable"]})
    out = cast_confidence(df)
    assert out["confidence_ranking"].isna().tolist() == [False, True, True, False]
    assert out["confidence_ranking"].cat.ordered

def test_to_counts_keeps_blanks_and_rejects_text():
    df = pd.DataFrame({"OTU_A":["5", None, "2"], "OTU_B":["1", "abc", "0"]})
    out = to_counts(df, ["OTU_A"])
    assert out["OTU_A"].isna().tolist() == [False, True, False]
    assert out["OTU_A"].dtype == "float64"
    with pytest.raises(ValueError, match="OTU_B"):
        to_counts(df, ["OTU_A", "OTU_B"])
