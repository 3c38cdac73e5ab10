"""
Survey estimators for use inside summarise

Every estimator follows the same convention, and third-party estimators
are written the same way:

1. Take the design as ``svy=None`` and fall back to ``cur_svy()``
2. Resolve ``vartype`` with ``match_arg`` (the first choice is the default)
3. Inject the caller's variable with ``set_survey_vars``
4. Estimate with a single-weight statistic and ``svy.estimate``
5. Return ``get_var_est(...)``: one row per group, estimate in
   ``COEF_PLACEHOLDER``

Example
-------
>>> svy.group_by('CNT').summarise(
...     gini=lambda: survey_gini('INCOME', vartype=['se', 'ci']),
... )
"""

from typing import Optional, Sequence, Union

import numpy as np
import pandas as pd

from .context import cur_svy
from .statistics import WeightedStatistics
from .summarise import summarise
from .tempvars import TEMP_VAR, set_survey_vars
from .vartype import VARTYPES, get_var_est, match_arg

TEMP_NUM = '__SVY_TEMP_NUM__'
TEMP_DEN = '__SVY_TEMP_DEN__'


def _srs_mean(data: pd.DataFrame, weight: str) -> float:
    """Variance of the mean under simple random sampling"""
    vals, _ = WeightedStatistics._clean(data[TEMP_VAR], data[weight])
    if len(vals) == 0:
        return np.nan
    return WeightedStatistics.var(data[TEMP_VAR], data[weight]) / len(vals)


def _srs_total(data: pd.DataFrame, weight: str) -> float:
    """Variance of the total under simple random sampling"""
    vals, wts = WeightedStatistics._clean(data[TEMP_VAR], data[weight])
    if len(vals) == 0:
        return np.nan
    return wts.sum()**2 * WeightedStatistics.var(data[TEMP_VAR], data[weight]) / len(vals)


def survey_mean(x=None,
                vartype: Union[str, Sequence[str], None] = VARTYPES,
                level: float = 0.95,
                deff: bool = False,
                df: Optional[float] = None,
                svy=None) -> pd.DataFrame:
    """
    Weighted mean

    Parameters
    ----------
    x : str, scalar or array-like, optional
        Variable to average. If omitted on a grouped design, the
        proportion of each group within its parent groups is estimated
        (see ``survey_prop``).
    vartype : str, sequence of str or None
        Any of 'se', 'ci', 'var', 'cv'; default 'se'
    level : float, default 0.95
        Confidence level for 'ci'
    deff : bool, default False
        Report the design effect
    df : float, optional
        Degrees of freedom for 'ci'
    svy : SurveyDesign, optional
        Defaults to the current survey inside ``summarise``
    """
    if svy is None:
        svy = cur_svy()
    if x is None:
        return survey_prop(vartype=vartype, level=level, deff=deff, df=df, svy=svy)

    vartype = match_arg(vartype, VARTYPES, several_ok=True)
    svy = set_survey_vars(svy, x)
    stat = svy.estimate(
        lambda d, w: WeightedStatistics.mean(d[TEMP_VAR], d[w]),
        srs_func=_srs_mean if deff else None,
    )
    return get_var_est(stat, vartype, level=level, df=df, deff=deff)


def survey_total(x=None,
                 vartype: Union[str, Sequence[str], None] = VARTYPES,
                 level: float = 0.95,
                 deff: bool = False,
                 df: Optional[float] = None,
                 svy=None) -> pd.DataFrame:
    """Weighted total; without ``x`` the estimated population size"""
    if svy is None:
        svy = cur_svy()

    vartype = match_arg(vartype, VARTYPES, several_ok=True)
    svy = set_survey_vars(svy, 1 if x is None else x)
    stat = svy.estimate(
        lambda d, w: WeightedStatistics.total(d[TEMP_VAR], d[w]),
        srs_func=_srs_total if deff else None,
    )
    return get_var_est(stat, vartype, level=level, df=df, deff=deff)


def survey_ratio(numerator, denominator,
                 vartype: Union[str, Sequence[str], None] = VARTYPES,
                 level: float = 0.95,
                 df: Optional[float] = None,
                 svy=None) -> pd.DataFrame:
    """Ratio of the weighted totals of two variables"""
    if svy is None:
        svy = cur_svy()

    vartype = match_arg(vartype, VARTYPES, several_ok=True)
    svy = set_survey_vars(svy, numerator, name=TEMP_NUM)
    svy = set_survey_vars(svy, denominator, name=TEMP_DEN, add=True)
    stat = svy.estimate(
        lambda d, w: WeightedStatistics.ratio(d[TEMP_NUM], d[TEMP_DEN], d[w])
    )
    return get_var_est(stat, vartype, level=level, df=df)


def survey_var(x,
               vartype: Union[str, Sequence[str], None] = VARTYPES,
               level: float = 0.95,
               df: Optional[float] = None,
               svy=None) -> pd.DataFrame:
    """Population variance of a variable"""
    if svy is None:
        svy = cur_svy()

    vartype = match_arg(vartype, VARTYPES, several_ok=True)
    svy = set_survey_vars(svy, x)
    stat = svy.estimate(lambda d, w: WeightedStatistics.var(d[TEMP_VAR], d[w]))
    return get_var_est(stat, vartype, level=level, df=df)


def survey_sd(x, svy=None) -> pd.DataFrame:
    """Population standard deviation of a variable (estimate only)"""
    if svy is None:
        svy = cur_svy()

    svy = set_survey_vars(svy, x)
    stat = svy.estimate(lambda d, w: np.sqrt(WeightedStatistics.var(d[TEMP_VAR], d[w])))
    return get_var_est(stat, None)


def _quantile_name(q: float) -> str:
    return 'q' + f"{q * 100:g}".replace('.', '_')


def survey_quantile(x,
                    quantiles: Sequence[float] = (0.5,),
                    vartype: Union[str, Sequence[str], None] = VARTYPES,
                    level: float = 0.95,
                    df: Optional[float] = None,
                    svy=None) -> pd.DataFrame:
    """
    Weighted quantiles

    Parameters
    ----------
    x : str, scalar or array-like
        Variable
    quantiles : sequence of float
        Quantiles in [0, 1]. Output columns are suffixed ``_q25``, ``_q50``, ...

    Other parameters are as for ``survey_mean``.
    """
    if svy is None:
        svy = cur_svy()

    quantiles = [float(q) for q in np.atleast_1d(quantiles)]
    bad = [q for q in quantiles if not 0 <= q <= 1]
    if bad:
        raise ValueError(f"Quantiles must be between 0 and 1, got {bad}")

    vartype = match_arg(vartype, VARTYPES, several_ok=True)
    svy = set_survey_vars(svy, x)

    def quantile_stats(d, w):
        return {
            _quantile_name(q): WeightedStatistics.quantile(d[TEMP_VAR], d[w], 100 * q)
            for q in quantiles
        }

    stat = svy.estimate(quantile_stats)
    return get_var_est(stat, vartype, level=level, df=df)


def survey_median(x,
                  vartype: Union[str, Sequence[str], None] = VARTYPES,
                  level: float = 0.95,
                  df: Optional[float] = None,
                  svy=None) -> pd.DataFrame:
    """Weighted median"""
    if svy is None:
        svy = cur_svy()

    vartype = match_arg(vartype, VARTYPES, several_ok=True)
    svy = set_survey_vars(svy, x)
    stat = svy.estimate(lambda d, w: WeightedStatistics.quantile(d[TEMP_VAR], d[w], 50))
    return get_var_est(stat, vartype, level=level, df=df)


def _same_level(a, b) -> bool:
    if pd.isna(a) and pd.isna(b):
        return True
    return not pd.isna(a) and not pd.isna(b) and a == b


def _level_mask(data: pd.DataFrame, column: str, level) -> np.ndarray:
    if pd.isna(level):
        return data[column].isna().to_numpy()
    return (data[column] == level).to_numpy()


def survey_prop(vartype: Union[str, Sequence[str], None] = VARTYPES,
                level: float = 0.95,
                deff: bool = False,
                df: Optional[float] = None,
                svy=None) -> pd.DataFrame:
    """
    Proportion of each group within its parent groups

    The last grouping variable is tabulated within the levels of the
    others. The design must be grouped.
    """
    if svy is None:
        svy = cur_svy()
    if not svy.group_vars:
        raise ValueError("survey_prop() needs a grouped design")

    vartype = match_arg(vartype, VARTYPES, several_ok=True)
    inner = svy.group_vars[-1]
    outer = svy.group_vars[:-1]
    outer_svy = svy.group_by(*outer) if outer else svy.ungroup()

    all_levels = [k for k, _ in svy.data.groupby(inner, sort=True, dropna=False, observed=True)]
    names = [str(i) for i in range(len(all_levels))]

    def shares(d, w):
        wts = d[w].to_numpy(dtype=float)
        total = np.nansum(wts)
        return {
            name: (np.nansum(wts[_level_mask(d, inner, lev)]) / total) if total > 0 else np.nan
            for name, lev in zip(names, all_levels)
        }

    def srs_shares(d, w):
        p = shares(d, w)
        n = len(d)
        return {name: p[name] * (1 - p[name]) / n if n > 0 else np.nan for name in names}

    stat = outer_svy.estimate(shares, srs_func=srs_shares if deff else None)

    # Rows follow the design's group order: outer groups sorted, inner levels within
    coef, var, srs = [], [], []
    for i, (_, subset) in enumerate(outer_svy.group_levels()):
        present = [k for k, _ in subset.groupby(inner, sort=True, dropna=False, observed=True)]
        for lev in present:
            j = next(idx for idx, cand in enumerate(all_levels) if _same_level(cand, lev))
            coef.append(stat.coef[i, j])
            var.append(stat.var[i, j])
            if stat.srs_var is not None:
                srs.append(stat.srs_var[i, j])

    stat.groups = svy.group_keys()
    stat.coef = np.array(coef, dtype=float).reshape(-1, 1)
    stat.var = np.array(var, dtype=float).reshape(-1, 1)
    stat.names = None
    stat.srs_var = np.array(srs, dtype=float).reshape(-1, 1) if stat.srs_var is not None else None

    return get_var_est(stat, vartype, level=level, df=df, deff=deff)


def survey_gini(x,
                vartype: Union[str, Sequence[str], None] = VARTYPES,
                level: float = 0.95,
                df: Optional[float] = None,
                svy=None) -> pd.DataFrame:
    """Gini coefficient of a variable"""
    if svy is None:
        svy = cur_svy()

    vartype = match_arg(vartype, VARTYPES, several_ok=True)
    svy = set_survey_vars(svy, x)
    stat = svy.estimate(lambda d, w: WeightedStatistics.gini(d[TEMP_VAR], d[w]))
    return get_var_est(stat, vartype, level=level, df=df)


def survey_corr(x, y,
                vartype: Union[str, Sequence[str], None] = VARTYPES,
                level: float = 0.95,
                df: Optional[float] = None,
                svy=None) -> pd.DataFrame:
    """Pearson correlation of two variables"""
    if svy is None:
        svy = cur_svy()

    vartype = match_arg(vartype, VARTYPES, several_ok=True)
    svy = set_survey_vars(svy, x, name=TEMP_NUM)
    svy = set_survey_vars(svy, y, name=TEMP_DEN, add=True)
    stat = svy.estimate(
        lambda d, w: WeightedStatistics.corr(d[TEMP_NUM], d[TEMP_DEN], d[w])
    )
    return get_var_est(stat, vartype, level=level, df=df)


def survey_tally(svy, name: str = 'n',
                 vartype: Union[str, Sequence[str], None] = VARTYPES,
                 level: float = 0.95) -> pd.DataFrame:
    """Weighted count of every group of a design"""
    return summarise(svy, **{
        name: lambda: survey_total(vartype=vartype, level=level)
    })


def survey_count(svy, *group_vars: str, name: str = 'n',
                 vartype: Union[str, Sequence[str], None] = VARTYPES,
                 level: float = 0.95) -> pd.DataFrame:
    """Weighted count by ``group_vars`` (added to any existing grouping)"""
    return survey_tally(svy.group_by(*group_vars, add=True), name=name,
                        vartype=vartype, level=level)
