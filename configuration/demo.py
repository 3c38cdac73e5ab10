#!/usr/bin/env python
"""
Quick Demo - svytidy Package

Run this script to verify the package is working correctly.
Creates synthetic data and demonstrates key functionality.
"""

import numpy as np
import pandas as pd
from svytidy import (
    SurveyDesign, SURVEY_CONFIGS, survey_mean, survey_total, unweighted,
)


def main():
    print("="*80)
    print(" SVYTIDY QUICK DEMO")
    print("="*80)

    print("\n1. Creating synthetic PISA data...")
    np.random.seed(42)
    n = 1000

    data = pd.DataFrame({
        'CNT': np.random.choice(['USA', 'GBR', 'JPN'], n),
        'GENDER': np.random.choice([0, 1], n),
        'ESCS': np.random.normal(0, 1, n),
        'W_FSTUWT': np.random.uniform(0.8, 2.0, n),
    })

    for pv in range(1, 11):
        true_math = 500 + 50*data['ESCS'] + 10*data['GENDER'] + np.random.normal(0, 80, n)
        data[f'PV{pv}MATH'] = true_math + np.random.normal(0, 20, n)

    for i in range(1, 81):
        data[f'W_FSTURWT{i}'] = data['W_FSTUWT'] * np.random.uniform(0.9, 1.1, n)

    print(f"   Created {len(data)} students from {data['CNT'].nunique()} countries")

    print("\n" + "-"*80)
    print("2. Mean math scores by country...")
    print("-"*80)

    svy = SurveyDesign(data, survey='PISA2015', pv_vars=['PV@MATH'])
    results = svy.group_by('CNT').summarise(
        display=True,
        math=lambda: survey_mean('PV@MATH', vartype=['se', 'ci']),
        pop=lambda: survey_total(),
        n=lambda: unweighted(len),
    )

    print("\n   Checking one row per country:")
    status = "✓" if len(results) == data['CNT'].nunique() else "✗"
    print(f"   {status} {len(results)} rows")

    print("\n" + "-"*80)
    print("3. Available survey configurations:")
    print("-"*80)
    for name, params in SURVEY_CONFIGS.items():
        print(f"  - {name}: {params.n_pv} PVs, {params.n_reps} replicates")

    print("\n" + "="*80)
    print(" DEMO COMPLETE")
    print("="*80 + "\n")


if __name__ == '__main__':
    main()
