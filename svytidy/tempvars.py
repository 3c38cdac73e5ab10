"""
Temporary variables for extension functions

Estimators receive what the caller wrote (a column name, a plausible value
pattern, a vector computed on the fly) and need it as a column of the
design. ``set_survey_vars`` puts it there under a reserved name so the
estimator can always refer to ``TEMP_VAR``.
"""

import numbers

import numpy as np
import pandas as pd

TEMP_PREFIX = '__SVY_TEMP'
TEMP_VAR = '__SVY_TEMP_VAR__'


def set_survey_vars(svy, x, name: str = TEMP_VAR, add: bool = False):
    """
    Place a variable into a copy of the design under a temporary name

    Parameters
    ----------
    svy : SurveyDesign
        Design to add the variable to
    x : str, scalar or array-like
        Column name, plausible value pattern (e.g. 'PV@MATH'), a scalar
        broadcast to every row, or one value per row of the design
    name : str, default TEMP_VAR
        Name of the temporary column
    add : bool, default False
        Keep temporary columns injected earlier. When False they are
        dropped first.

    Returns
    -------
    SurveyDesign
        New design holding the variable as column ``name``
    """
    data = svy.data
    aliases = dict(svy.pv_aliases)

    if not add:
        stale = [c for c in data.columns if isinstance(c, str) and c.startswith(TEMP_PREFIX)]
        data = data.drop(columns=stale)
        aliases = {}
    else:
        data = data.copy()
    aliases.pop(name, None)

    if isinstance(x, str):
        if x in svy.pv_vars:
            aliases[name] = x
            data[name] = data[x.replace('@', '1')]
        elif x in data.columns:
            data[name] = data[x]
        else:
            raise ValueError(f"Variable '{x}' not found in data")
    elif x is None or isinstance(x, (numbers.Number, np.generic)):
        data[name] = np.nan if x is None else x
    else:
        values = x.to_numpy() if isinstance(x, (pd.Series, pd.Index)) else np.asarray(x)
        if values.ndim != 1 or len(values) != len(data):
            raise ValueError(
                f"Variable has {len(values) if values.ndim == 1 else values.shape} values, "
                f"design has {len(data)} rows"
            )
        data[name] = values

    return svy._replace(data=data, pv_aliases=aliases)
