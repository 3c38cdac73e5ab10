"""
The summarise verb

``summarise`` evaluates each keyword argument with the design published as
the current survey and glues the results side by side::

    svy.group_by('CNT').summarise(
        math=lambda: survey_mean('PV@MATH', vartype=['se', 'ci']),
        n=lambda: unweighted(len),
    )

Each value is a zero-argument callable (or an already computed result).
Results must have one row per group with the grouping columns, or one row
when ungrouped. Columns named with ``COEF_PLACEHOLDER`` are renamed after
the keyword: ``__SVY_COEF___se`` becomes ``math_se``.
"""

import numbers
from typing import Callable, List

import numpy as np
import pandas as pd

from .context import cur_svy, survey_context
from .vartype import COEF_PLACEHOLDER


def summarise(svy, display: bool = False, **exprs) -> pd.DataFrame:
    """
    Aggregate a survey design

    Parameters
    ----------
    svy : SurveyDesign
        Design to summarise, optionally grouped
    display : bool, default False
        Print the result table
    **exprs
        label -> zero-argument callable returning the estimator's table

    Returns
    -------
    pd.DataFrame
        Group columns followed by every labelled result, one row per group
    """
    group_vars = list(svy.group_vars)
    keys = svy.group_keys().reset_index(drop=True)
    out = keys
    n_rows = len(out)

    with survey_context(svy):
        for label, expr in exprs.items():
            value = expr() if callable(expr) else expr
            frame = _as_result_frame(value, label, group_vars, n_rows)
            frame = _relabel(frame, label, group_vars)

            clash = [c for c in frame.columns if c not in group_vars and c in out.columns]
            if clash:
                raise ValueError(f"Result of '{label}' duplicates existing column(s): {clash}")

            if group_vars:
                _check_group_keys(frame, keys, label, group_vars)
                out = out.merge(frame, on=group_vars, how='left', validate='one_to_one')
            else:
                out = pd.concat([out, frame.reset_index(drop=True)], axis=1)

    if display:
        _display_results(out)

    return out


summarize = summarise


def unweighted(func: Callable, svy=None) -> pd.DataFrame:
    """
    Unweighted summary of the raw data for every group

    Parameters
    ----------
    func : callable
        Receives the rows of one group as a DataFrame and returns a scalar,
        e.g. ``len`` or ``lambda d: d['MATH'].median()``
    svy : SurveyDesign, optional
        Defaults to the current survey inside ``summarise``

    Returns
    -------
    pd.DataFrame
        Group columns and the placeholder-named result
    """
    if svy is None:
        svy = cur_svy()

    values = [func(subset) for _, subset in svy.group_levels()]
    out = svy.group_keys().reset_index(drop=True)
    out[COEF_PLACEHOLDER] = values
    return out


def _as_result_frame(value, label: str, group_vars: List[str], n_rows: int) -> pd.DataFrame:
    """Check an estimator result against the one-row-per-group contract"""
    if isinstance(value, pd.DataFrame):
        frame = value
    elif value is None or isinstance(value, (numbers.Number, np.generic, str)):
        if group_vars:
            raise ValueError(
                f"'{label}' returned a single value for a design grouped by {group_vars}; "
                f"estimators must return one row per group"
            )
        frame = pd.DataFrame({COEF_PLACEHOLDER: [value]})
    else:
        raise TypeError(
            f"'{label}' must return a DataFrame or a scalar, got {type(value).__name__}"
        )

    missing = [v for v in group_vars if v not in frame.columns]
    if missing:
        raise ValueError(f"Result of '{label}' is missing grouping column(s): {missing}")
    if len(frame) != n_rows:
        expected = f"{n_rows} rows (one per group)" if group_vars else "1 row"
        raise ValueError(f"Result of '{label}' has {len(frame)} rows, expected {expected}")

    return frame


def _check_group_keys(frame: pd.DataFrame, keys: pd.DataFrame, label: str,
                      group_vars: List[str]):
    """Every group of the design must appear exactly once in the result"""
    check = keys.merge(frame[group_vars], on=group_vars, how='outer', indicator=True)
    unmatched = check[check['_merge'] != 'both']
    if len(unmatched) or len(check) != len(keys):
        raise ValueError(
            f"Result of '{label}' does not match the design's groups: "
            f"{unmatched[group_vars].to_dict('records')}"
        )


def _relabel(frame: pd.DataFrame, label: str, group_vars: List[str]) -> pd.DataFrame:
    """Substitute the caller's label for the placeholder"""
    value_cols = [c for c in frame.columns if c not in group_vars]

    if len(value_cols) == 1 and COEF_PLACEHOLDER not in str(value_cols[0]):
        return frame.rename(columns={value_cols[0]: label})

    mapping = {}
    for col in value_cols:
        name = str(col)
        if COEF_PLACEHOLDER in name:
            mapping[col] = name.replace(COEF_PLACEHOLDER, label)
        else:
            mapping[col] = f"{label}_{name}"
    return frame.rename(columns=mapping)


def _display_results(results: pd.DataFrame):
    """Display results table"""
    print("\n" + "="*80)
    print("SURVEY SUMMARY")
    print("="*80)
    print(results.to_string(index=False))
    print("="*80 + "\n")
