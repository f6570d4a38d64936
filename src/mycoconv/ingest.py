from __future__ import annotations
import pandas as pd
from .config import (
    RAW_SOIL_CSV, RAW_ANNOTATION_CSV, RAW_ABUNDANCE_CSV, RAW_TRAITS_CSV, RAW_BOOTSTRAP_CSV,
)

def read_soil_raw(path: str | None = None) -> pd.DataFrame:
    return pd.read_csv(path or RAW_SOIL_CSV)

def read_annotations_raw(path: str | None = None) -> pd.DataFrame:
    return pd.read_csv(path or RAW_ANNOTATION_CSV, keep_default_na=False, na_values=[""])

def read_abundance_raw(path: str | None = None) -> pd.DataFrame:
    # only blank cells count as absent OTUs; text such as "NA" must fail parsing
    return pd.read_csv(path or RAW_ABUNDANCE_CSV, keep_default_na=False, na_values=[""])

def read_traits_raw(path: str | None = None) -> pd.DataFrame:
    return pd.read_csv(path or RAW_TRAITS_CSV)

def read_bootstrap_raw(path: str | None = None) -> pd.DataFrame:
    return pd.read_csv(path or RAW_BOOTSTRAP_CSV)
