"""
Writing Extension Functions

Shows how to write a new survey estimator that works inside summarise.
The example estimates the share of the population below a poverty line
set at 60% of the median income, the at-risk-of-poverty rate.

The convention:

1. Accept the design as ``svy=None`` and fall back to ``cur_svy()``, so
   callers never pass it inside summarise
2. Offer ``vartype=VARTYPES``; ``match_arg`` picks the first entry ('se')
   when the caller leaves it alone
3. Inject the caller's variable with ``set_survey_vars`` and refer to it
   as ``TEMP_VAR``
4. Compute the statistic with ONE weight column and let ``svy.estimate``
   handle replicates, groups and plausible values
5. Return ``get_var_est(...)``: one row per group, estimate named
   ``COEF_PLACEHOLDER``. summarise renames it after the caller's keyword.
"""

import numpy as np
import pandas as pd
from svytidy import (
    SurveyDesign, VARTYPES, TEMP_VAR, WeightedStatistics,
    cur_svy, get_var_est, match_arg, set_survey_vars, survey_gini,
)


def survey_arpr(x, percent=0.6, vartype=VARTYPES, level=0.95, svy=None):
    """At-risk-of-poverty rate: share below ``percent`` of the median"""
    if svy is None:
        svy = cur_svy()

    vartype = match_arg(vartype, VARTYPES, several_ok=True)
    svy = set_survey_vars(svy, x)

    def arpr(d, w):
        line = percent * WeightedStatistics.quantile(d[TEMP_VAR], d[w], 50)
        below = (d[TEMP_VAR] < line).astype(float)
        return WeightedStatistics.mean(below, d[w])

    stat = svy.estimate(arpr)
    return get_var_est(stat, vartype, level=level)


if __name__ == '__main__':
    np.random.seed(7)
    n = 3000

    data = pd.DataFrame({
        'REGION': np.random.choice(['North', 'South', 'East'], n),
        'INCOME': np.exp(np.random.normal(10, 0.7, n)),
        'WGT': np.random.uniform(50, 150, n),
    })
    for rep in range(1, 41):
        data[f'RWGT{rep}'] = data['WGT'] * np.random.uniform(0.8, 1.2, n)

    svy = SurveyDesign(data, weights='WGT', repweights='RWGT', rep_type='bootstrap')

    svy.group_by('REGION').summarise(
        display=True,
        arpr=lambda: survey_arpr('INCOME', vartype=['se', 'ci']),
        gini=lambda: survey_gini('INCOME'),
    )

    # Outside summarise the design is passed explicitly
    print(survey_arpr('INCOME', svy=svy).to_string(index=False))
