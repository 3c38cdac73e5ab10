"""
Weighted statistics for a single weight column

Every function here computes its statistic with ONE weight variable. The
design calls them once with the final weight and once per replicate
weight, and derives standard errors from the spread of the replicates.
Missing values are dropped together with their weights.
"""

import numpy as np
import pandas as pd
from typing import Tuple


class WeightedStatistics:
    """Collection of weighted statistics used by the survey estimators"""

    @staticmethod
    def _clean(values, weights) -> Tuple[np.ndarray, np.ndarray]:
        """Drop observations where the value or the weight is missing"""
        values = np.asarray(values, dtype=float)
        weights = np.asarray(weights, dtype=float)
        mask = ~(pd.isna(values) | pd.isna(weights))
        return values[mask], weights[mask]

    @staticmethod
    def mean(values, weights) -> float:
        vals, wts = WeightedStatistics._clean(values, weights)
        if len(vals) == 0 or wts.sum() == 0:
            return np.nan
        return float(np.average(vals, weights=wts))

    @staticmethod
    def total(values, weights) -> float:
        vals, wts = WeightedStatistics._clean(values, weights)
        return float((vals * wts).sum())

    @staticmethod
    def ratio(numerator, denominator, weights) -> float:
        """Ratio of weighted totals, using rows where both parts are observed"""
        num = np.asarray(numerator, dtype=float)
        den = np.asarray(denominator, dtype=float)
        wts = np.asarray(weights, dtype=float)
        mask = ~(pd.isna(num) | pd.isna(den) | pd.isna(wts))

        den_total = (den[mask] * wts[mask]).sum()
        if den_total == 0:
            return np.nan
        return float((num[mask] * wts[mask]).sum() / den_total)

    @staticmethod
    def var(values, weights) -> float:
        """
        Weighted variance with the n/(n-1) small sample correction

        Returns NaN with fewer than two observations.
        """
        vals, wts = WeightedStatistics._clean(values, weights)
        n = len(vals)
        if n < 2 or wts.sum() == 0:
            return np.nan
        mean = np.average(vals, weights=wts)
        var = np.average((vals - mean)**2, weights=wts)
        return float(var * n / (n - 1))

    @staticmethod
    def quantile(values, weights, percentile: float) -> float:
        """Weighted percentile (0-100) with linear interpolation"""
        vals, wts = WeightedStatistics._clean(values, weights)
        keep = wts > 0
        vals, wts = vals[keep], wts[keep]
        if len(vals) == 0:
            return np.nan

        sorted_indices = np.argsort(vals)
        sorted_values = vals[sorted_indices]
        sorted_weights = wts[sorted_indices]

        cum_weights = np.cumsum(sorted_weights)
        target = (percentile / 100) * cum_weights[-1]

        idx = np.searchsorted(cum_weights, target)
        if idx == 0:
            return float(sorted_values[0])
        if idx >= len(sorted_values):
            return float(sorted_values[-1])

        w0 = cum_weights[idx - 1]
        w1 = cum_weights[idx]
        v0 = sorted_values[idx - 1]
        v1 = sorted_values[idx]
        if w1 - w0 > 0:
            frac = (target - w0) / (w1 - w0)
            return float(v0 + frac * (v1 - v0))
        return float(v0)

    @staticmethod
    def gini(values, weights) -> float:
        """
        Weighted Gini coefficient

        G = 2 * sum(w_i * x_i * W_i) / (N * T) - sum(w_i^2 * x_i) / (N * T) - 1

        with x sorted ascending, W_i the cumulative weight, N the total
        weight and T the weighted total of x.
        """
        vals, wts = WeightedStatistics._clean(values, weights)
        if len(vals) == 0:
            return np.nan

        order = np.argsort(vals, kind='mergesort')
        x = vals[order]
        w = wts[order]

        N = w.sum()
        T = (w * x).sum()
        if N == 0 or T == 0:
            return np.nan

        cum_w = np.cumsum(w)
        return float(2 * (w * x * cum_w).sum() / (N * T) - (w**2 * x).sum() / (N * T) - 1)

    @staticmethod
    def corr(x, y, weights) -> float:
        """Weighted Pearson correlation on complete pairs"""
        x = np.asarray(x, dtype=float)
        y = np.asarray(y, dtype=float)
        wts = np.asarray(weights, dtype=float)
        mask = ~(pd.isna(x) | pd.isna(y) | pd.isna(wts))
        if mask.sum() < 2:
            return np.nan

        v1, v2, w = x[mask], y[mask], wts[mask]
        mean1 = np.average(v1, weights=w)
        mean2 = np.average(v2, weights=w)

        cov = np.average((v1 - mean1) * (v2 - mean2), weights=w)
        var1 = np.average((v1 - mean1)**2, weights=w)
        var2 = np.average((v2 - mean2)**2, weights=w)

        return float(cov / np.sqrt(var1 * var2)) if (var1 * var2) > 0 else np.nan
