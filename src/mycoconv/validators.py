from __future__ import annotations
from typing import Iterable

import pandas as pd
from pandera.pandas import Column, DataFrameSchema, Check

from .config import SITES, SOIL_VARIABLES, OTU_ID_COL
from .functional_groups import FUNCTIONAL_GROUP_FLAGS

_site_column = Column(str, Check.isin(SITES), nullable=False, coerce=True)
_whole_number = Check(lambda s: s % 1 == 0, error="counts must be whole numbers")

schema_soil = DataFrameSchema(
    {
        "site": _site_column,
        **{var: Column(float, nullable=True, coerce=True) for var in SOIL_VARIABLES},
    },
    strict=False,
)

schema_annotations = DataFrameSchema(
    {
        OTU_ID_COL: Column(str, nullable=False, unique=True, coerce=True),
        "confidence_ranking": Column(nullable=True),
        "notes": Column(nullable=True),
    },
    strict=False,
)

schema_abundance_keys = DataFrameSchema(
    {
        "tree": Column(str, nullable=False, unique=True, coerce=True),
        "site": _site_column,
    },
    strict=False,
)

schema_traits = DataFrameSchema(
    {
        OTU_ID_COL: Column(str, nullable=False, coerce=True),
        "trait": Column(str, nullable=False, coerce=True),
        "type": Column(str, nullable=False, coerce=True),
    },
    strict=False,
)

schema_bootstrap = DataFrameSchema(
    {
        "tree": Column(str, nullable=False, coerce=True),
        "site": _site_column,
        "comparison": Column(str, Check.str_matches(r"^[a-z_]+-[a-z_]+$"), nullable=False, coerce=True),
        "ratio": Column(float, Check.ge(0), nullable=True, coerce=True),
        "resample": Column(int, Check.ge(1), nullable=False, coerce=True),
    },
    strict=False,
)


def assert_soil(df: pd.DataFrame) -> pd.DataFrame:
    return schema_soil.validate(df, lazy=True)

def assert_annotations(df: pd.DataFrame, flag_columns: Iterable[str] | None = None) -> pd.DataFrame:
    """Validate annotation keys plus the boolean functional-group flag columns."""
    flags = list(FUNCTIONAL_GROUP_FLAGS.values()) if flag_columns is None else list(flag_columns)
    schema = schema_annotations.add_columns({flag: Column(bool, nullable=False) for flag in flags})
    return schema.validate(df, lazy=True)

def assert_abundance(df: pd.DataFrame, otu_columns: Iterable[str]) -> pd.DataFrame:
    """Validate tree/site keys and that every OTU column holds non-negative whole counts."""
    otu_columns = list(otu_columns)
    schema = schema_abundance_keys.add_columns(
        {otu: Column(float, [Check.ge(0), _whole_number], nullable=False, coerce=True) for otu in otu_columns}
    )
    return schema.validate(df, lazy=True)

def assert_traits(df: pd.DataFrame) -> pd.DataFrame:
    return schema_traits.validate(df, lazy=True)

def assert_bootstrap(df: pd.DataFrame) -> pd.DataFrame:
    return schema_bootstrap.validate(df, lazy=True)
