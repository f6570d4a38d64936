"""
One-way analyses of variance across sampling sites.
"""

from __future__ import annotations

from itertools import combinations
from typing import Iterable, Optional

import numpy as np
import pandas as pd
from statsmodels.formula.api import ols
from statsmodels.stats.anova import anova_lm
from statsmodels.stats.multicomp import pairwise_tukeyhsd

from .config import DEFAULT_ALPHA, SITE_COL

DEFAULT_ANOVA_TYPE = 2  # Type II sum of squares


def _prepare_model_df(df: pd.DataFrame, response: str, group: str) -> pd.DataFrame:
    """
    Prepare DataFrame for model fitting (coerce response, drop NAs, group as category).

    Raises
    ------
    KeyError
        If the response or group column is absent.
    """
    missing = [c for c in (response, group) if c not in df.columns]
    if missing:
        raise KeyError(f"Columns not found for ANOVA: {missing}")
    model_df = df[[response, group]].copy()
    model_df[response] = pd.to_numeric(model_df[response], errors="coerce")
    model_df = model_df.dropna()
    model_df[group] = model_df[group].astype(str).astype("category")
    return model_df


def anova_by_site(
    df: pd.DataFrame,
    response: str,
    group: str = SITE_COL,
    typ: int = DEFAULT_ANOVA_TYPE,
) -> pd.DataFrame:
    """
    One-way ANOVA of a numeric response across sites.

    Parameters
    ----------
    df : pd.DataFrame
        Input data.
    response : str
        Numeric response column name.
    group : str, default "site"
        Grouping column name.
    typ : int, default 2
        Type of sum of squares (1, 2 or 3).

    Returns
    -------
    pd.DataFrame
        Tidy ANOVA table with columns: response, term, sum_sq, df, F, p_value, n.

    Raises
    ------
    ValueError
        If fewer than two groups have data.
    """
    model_df = _prepare_model_df(df, response, group)
    if model_df[group].nunique() < 2:
        raise ValueError(f"ANOVA of {response!r} needs at least two {group} levels with data")

    model = ols(f"{response} ~ C({group})", data=model_df).fit()
    table = anova_lm(model, typ=typ)
    table = table.reset_index().rename(columns={"index": "term", "PR(>F)": "p_value"})
    table.insert(0, "response", response)
    table["n"] = len(model_df)
    return table[["response", "term", "sum_sq", "df", "F", "p_value", "n"]]


def anova_table(
    df: pd.DataFrame,
    responses: Iterable[str],
    group: str = SITE_COL,
    typ: int = DEFAULT_ANOVA_TYPE,
) -> pd.DataFrame:
    """
    Stack one-way ANOVAs for several responses (e.g. every soil variable).

    Only the group term of each model is kept, plus a significance flag.
    """
    rows = []
    for response in responses:
        table = anova_by_site(df, response, group=group, typ=typ)
        rows.append(table[table["term"] != "Residual"])
    out = pd.concat(rows, ignore_index=True)
    out[f"significant_at_{DEFAULT_ALPHA}"] = out["p_value"] < DEFAULT_ALPHA
    return out


def tukey_by_site(
    df: pd.DataFrame,
    response: str,
    group: str = SITE_COL,
    alpha: float = DEFAULT_ALPHA,
) -> pd.DataFrame:
    """
    Tukey HSD pairwise comparisons of a response between sites.

    Returns
    -------
    pd.DataFrame
        Columns: response, group_a, group_b, mean_diff, p_adj, lower, upper, reject.
    """
    model_df = _prepare_model_df(df, response, group)
    if model_df[group].nunique() < 2:
        return pd.DataFrame(columns=["response", "group_a", "group_b", "mean_diff",
                                     "p_adj", "lower", "upper", "reject"])
    res = pairwise_tukeyhsd(model_df[response].to_numpy(dtype=float),
                            model_df[group].astype(str).to_numpy(), alpha=alpha)
    pairs = list(combinations(res.groupsunique, 2))
    return pd.DataFrame({
        "response": response,
        "group_a": [str(a) for a, _ in pairs],
        "group_b": [str(b) for _, b in pairs],
        "mean_diff": res.meandiffs,
        "p_adj": res.pvalues,
        "lower": res.confint[:, 0],
        "upper": res.confint[:, 1],
        "reject": np.asarray(res.reject, dtype=bool),
    })


def site_means(df: pd.DataFrame,
               responses: Iterable[str],
               group: str = SITE_COL,
               ddof: int = 1) -> pd.DataFrame:
    """Mean, standard deviation and standard error of each response per site."""
    responses = list(responses)
    missing = [c for c in responses + [group] if c not in df.columns]
    if missing:
        raise KeyError(f"Columns not found: {missing}")
    long = df.melt(id_vars=[group], value_vars=responses, var_name="response", value_name="value")
    long["value"] = pd.to_numeric(long["value"], errors="coerce")
    grouped = long.groupby(["response", group], observed=True, sort=False)["value"]
    out = grouped.agg(mean="mean", sd=lambda s: s.std(ddof=ddof), n="count")
    out["se"] = out["sd"] / np.sqrt(out["n"])
    return out.reset_index()


def tukey_table(df: pd.DataFrame,
                responses: Iterable[str],
                group: str = SITE_COL,
                alpha: Optional[float] = None) -> pd.DataFrame:
    """Tukey HSD for several responses, stacked."""
    alpha = DEFAULT_ALPHA if alpha is None else alpha
    return pd.concat(
        [tukey_by_site(df, r, group=group, alpha=alpha) for r in responses],
        ignore_index=True,
    )
