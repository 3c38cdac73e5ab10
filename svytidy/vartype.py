"""
Variance output formatting

Extension functions report their estimate in a column named
``COEF_PLACEHOLDER``; ``summarise`` swaps the placeholder for the label the
caller chose. Uncertainty columns append a suffix to the same name:

    __SVY_COEF__       ->  income
    __SVY_COEF___se    ->  income_se
    __SVY_COEF___low   ->  income_low
    __SVY_COEF___upp   ->  income_upp

Multi-choice arguments follow one rule: when the caller leaves the default
(the tuple of choices itself) untouched, the first choice is used.
"""

from typing import List, Optional, Sequence, Union

import numpy as np
import pandas as pd
from scipy import stats

COEF_PLACEHOLDER = '__SVY_COEF__'

VARTYPES = ('se', 'ci', 'var', 'cv')

VAR_SUFFIXES = {
    'se': ('_se',),
    'ci': ('_low', '_upp'),
    'var': ('_var',),
    'cv': ('_cv',),
}
DEFF_SUFFIX = '_deff'


def match_arg(arg: Union[str, Sequence[str], None],
              choices: Sequence[str],
              several_ok: bool = False) -> Union[str, List[str], None]:
    """
    Resolve a multi-choice argument

    Parameters
    ----------
    arg : str, sequence of str or None
        Value passed by the caller. The ``choices`` object itself (left as
        the default in a function signature) selects the first choice; an
        equal list written out by the caller selects all of them.
    choices : sequence of str
        Allowed values, the default first
    several_ok : bool, default False
        Allow more than one value; a list is returned

    Returns
    -------
    str, list of str or None
        The selected choice(s). None passes through unchanged.
    """
    if arg is None:
        return None
    if arg is choices:
        return [choices[0]] if several_ok else choices[0]

    choices = tuple(choices)
    values = [arg] if isinstance(arg, str) else list(arg)

    if not values:
        raise ValueError(f"Argument must be one of {list(choices)}, got an empty value")
    if len(values) > 1 and not several_ok:
        raise ValueError(f"Argument must be a single value from {list(choices)}, got {values}")

    bad = [v for v in values if v not in choices]
    if bad:
        raise ValueError(f"Argument should be one of {list(choices)}, got {bad}")

    if not several_ok:
        return values[0]
    return list(dict.fromkeys(values))


def critical_value(level: float, df: float) -> float:
    """Two-sided critical value, Student t with ``df`` or normal if infinite"""
    if not 0 < level < 1:
        raise ValueError(f"Confidence level must be between 0 and 1, got {level}")
    if not df >= 1:
        raise ValueError(
            f"Confidence intervals need at least 1 degree of freedom, got {df}; "
            f"pass df=np.inf for normal intervals"
        )
    q = (1 + level) / 2
    if np.isinf(df):
        return float(stats.norm.ppf(q))
    return float(stats.t.ppf(q, df))


def get_var_est(stat,
                vartype: Union[str, Sequence[str], None] = VARTYPES,
                level: float = 0.95,
                df: Optional[float] = None,
                deff: bool = False) -> pd.DataFrame:
    """
    Format estimates and variances as a placeholder-named output table

    Parameters
    ----------
    stat : SurveyStat
        Output of ``SurveyDesign.estimate``
    vartype : str, sequence of str or None
        Any of 'se', 'ci', 'var', 'cv' (default 'se'). None reports only
        the estimates.
    level : float, default 0.95
        Confidence level for 'ci'
    df : float, optional
        Degrees of freedom for 'ci' (default: the design's, ``np.inf`` for
        normal intervals)
    deff : bool, default False
        Add design effects (needs ``stat.srs_var``)

    Returns
    -------
    pd.DataFrame
        Group columns followed by the placeholder-named columns, one row
        per group
    """
    vartypes = match_arg(vartype, VARTYPES, several_ok=True) or []
    df = stat.df if df is None else df
    crit = critical_value(level, df) if 'ci' in vartypes else None

    if deff and stat.srs_var is None:
        raise ValueError("Design effects are not available for this estimator")

    out = stat.groups.reset_index(drop=True).copy()
    n_stats = stat.coef.shape[1]

    for j in range(n_stats):
        base = COEF_PLACEHOLDER if stat.names is None else f"{COEF_PLACEHOLDER}_{stat.names[j]}"
        coef = stat.coef[:, j]
        var = stat.var[:, j]
        se = np.sqrt(var)

        out[base] = coef
        for vt in vartypes:
            if vt == 'se':
                out[base + '_se'] = se
            elif vt == 'ci':
                low, upp = VAR_SUFFIXES['ci']
                out[base + low] = coef - crit * se
                out[base + upp] = coef + crit * se
            elif vt == 'var':
                out[base + '_var'] = var
            elif vt == 'cv':
                with np.errstate(divide='ignore', invalid='ignore'):
                    out[base + '_cv'] = se / coef
        if deff:
            with np.errstate(divide='ignore', invalid='ignore'):
                out[base + DEFF_SUFFIX] = var / stat.srs_var[:, j]

    return out
