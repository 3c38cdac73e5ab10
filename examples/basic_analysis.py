"""
Basic Analysis Example

Demonstrates summarising a replicate-weight survey with group_by and
summarise: means, proportions, quantiles and counts with plausible values.
"""

import pandas as pd
import numpy as np
from svytidy import (
    SurveyDesign, survey_mean, survey_quantile, survey_count, unweighted,
)

# Create synthetic PISA-like data
np.random.seed(42)
n_students = 5000

data = pd.DataFrame({
    'CNT': np.random.choice(['USA', 'GBR', 'JPN'], n_students),
    'GENDER': np.random.choice([0, 1], n_students),
    'ESCS': np.random.normal(0, 1, n_students),
    'W_FSTUWT': np.random.uniform(0.5, 2.5, n_students),
})

# Add plausible values (normally distributed around true score)
for pv in range(1, 11):
    true_math = 500 + 50 * data['ESCS'] + 10 * data['GENDER'] + np.random.normal(0, 80, n_students)
    data[f'PV{pv}MATH'] = true_math + np.random.normal(0, 20, n_students)

# Add replicate weights
for rep in range(1, 81):
    data[f'W_FSTURWT{rep}'] = data['W_FSTUWT'] * np.random.uniform(0.8, 1.2, n_students)

print("="*80)
print("SVYTIDY BASIC ANALYSIS EXAMPLE")
print("="*80)

svy = SurveyDesign(data, survey='PISA2015', pv_vars=['PV@MATH'])
print(svy)

print("\n1. Mean Math Scores by Country")
print("-"*80)

svy.group_by('CNT').summarise(
    display=True,
    math=lambda: survey_mean('PV@MATH', vartype=['se', 'ci']),
    students=lambda: unweighted(len),
)

print("\n2. Share of Girls and Boys within Each Country")
print("-"*80)

svy.group_by('CNT', 'GENDER').summarise(
    display=True,
    share=lambda: survey_mean(vartype=['se', 'cv']),
)

print("\n3. Quartiles of ESCS for Low Performers")
print("-"*80)

(svy
    .filter(lambda d: d['PV1MATH'] < 450)
    .group_by('CNT')
    .summarise(display=True, escs=lambda: survey_quantile('ESCS', quantiles=[0.25, 0.5, 0.75])))

print("\n4. Estimated Population by Country")
print("-"*80)

print(survey_count(svy, 'CNT').to_string(index=False))
