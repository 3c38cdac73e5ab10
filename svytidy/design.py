"""
Survey designs with replicate weights

The design object holds the survey data together with its final weight,
replicate weights and optional plausible values, and carries the grouping
used by ``summarise``. Designs are never modified in place: every verb
(``group_by``, ``filter``, ``mutate``, ...) returns a new design.

Variance is estimated the usual replicate way:

1. The statistic is computed with the final weight -> point estimate
2. It is recomputed with each replicate weight -> replicate estimates
3. Squared deviations of the replicates are summed and scaled
4. With plausible values, steps 1-3 run once per PV and are combined
   using Rubin's rules
"""

import copy
import re
import warnings
from dataclasses import dataclass
from typing import Union, List, Optional, Dict, Tuple, Callable, Sequence

import numpy as np
import pandas as pd

from .config import SURVEY_CONFIGS, REPLICATE_TYPES, SurveyParameters, replicate_scale
from .summarise import summarise as _summarise


@dataclass
class SurveyStat:
    """
    Replicate estimates for every group of a design

    ``coef`` and ``var`` have one row per group and one column per statistic.
    ``names`` is None for a single unnamed statistic.
    """
    groups: pd.DataFrame
    coef: np.ndarray
    var: np.ndarray
    names: Optional[List[str]] = None
    df: float = np.inf
    srs_var: Optional[np.ndarray] = None

    @property
    def se(self) -> np.ndarray:
        return np.sqrt(self.var)


class SurveyDesign:
    """
    Replicate-weight survey design

    Parameters
    ----------
    data : pd.DataFrame
        Survey data
    survey : str or SurveyParameters, optional
        Registered survey name (e.g. 'PISA2015') or custom parameters.
        If None, ``weights`` and ``repweights`` must be given.
    weights : str, optional
        Final weight column
    repweights : str or list of str, optional
        Replicate weight prefix (columns ``prefix1``, ``prefix2``, ...) or an
        explicit list of columns
    n_reps : int, optional
        Number of replicates when ``repweights`` is a prefix. Detected from
        the data when omitted.
    variance_factor : float, optional
        Scale applied to summed squared deviations. Derived from
        ``rep_type`` when omitted.
    rep_type : str, optional
        Replicate method used to derive the variance factor, one of
        REPLICATE_TYPES (default 'BRR')
    rho : float, optional
        Fay coefficient for ``rep_type='Fay'``
    mse : bool, optional
        Centre deviations on the full-sample estimate (True, default) or on
        the mean of the replicates
    pv_vars : list of str, optional
        Plausible value patterns with @ as placeholder for the PV number,
        e.g. ['PV@MATH', 'PV@READ']
    fast : bool, default False
        Compute replicate estimates only for the first PV
    """

    def __init__(self,
                 data: pd.DataFrame,
                 survey: Union[str, SurveyParameters, None] = None,
                 weights: Optional[str] = None,
                 repweights: Union[str, Sequence[str], None] = None,
                 n_reps: Optional[int] = None,
                 variance_factor: Optional[float] = None,
                 rep_type: Optional[str] = None,
                 rho: Optional[float] = None,
                 mse: Optional[bool] = None,
                 pv_vars: Optional[List[str]] = None,
                 fast: bool = False):
        self.data = data.copy()
        self.group_vars: List[str] = []
        self.pv_aliases: Dict[str, str] = {}
        self.fast = fast

        if survey is not None:
            if isinstance(survey, str):
                if survey.upper() not in SURVEY_CONFIGS:
                    raise ValueError(f"Unknown survey: {survey}. Available: {list(SURVEY_CONFIGS.keys())}")
                self.params = SURVEY_CONFIGS[survey.upper()]
            else:
                self.params = survey
            weights = self.params.final_weight
            repweights = self.params.rep_weight_prefix
            n_reps = self.params.n_reps
            variance_factor = self.params.variance_factor
            if mse is None:
                mse = self.params.mse
        else:
            if weights is None or repweights is None:
                raise ValueError("Must provide either 'survey' or both 'weights' and 'repweights'")
            self.params = None

        self.mse = True if mse is None else mse
        self.final_weight = self._resolve_column(weights)
        self.rep_weights = self._setup_rep_weights(repweights, n_reps)

        if variance_factor is None and self.params is None:
            variance_factor = replicate_scale(
                rep_type or REPLICATE_TYPES[0], len(self.rep_weights), rho
            )
        self.variance_factor = variance_factor

        self.pv_vars = list(pv_vars or [])
        self.has_pv = len(self.pv_vars) > 0
        self.n_pv = self._count_pvs() if self.has_pv else 1

    def _resolve_column(self, name: str) -> str:
        """Find a column, trying upper case when the exact name is absent"""
        if name in self.data.columns:
            return name
        if name.upper() in self.data.columns:
            return name.upper()
        raise ValueError(f"Weight '{name}' not found in data")

    def _setup_rep_weights(self, repweights: Union[str, Sequence[str]],
                           n_reps: Optional[int]) -> List[str]:
        """Setup replicate weight variable names"""
        if isinstance(repweights, str):
            if n_reps:
                names = [f"{repweights}{i}" for i in range(1, n_reps + 1)]
                if names[0] not in self.data.columns and names[0].upper() in self.data.columns:
                    names = [w.upper() for w in names]
            else:
                names = self._detect_rep_weights(repweights)
        else:
            names = list(repweights)

        present = [w for w in names if w in self.data.columns]
        if not present:
            raise ValueError(f"No replicate weights found in data (looked for {names[:3]}...)")
        if len(present) < len(names):
            warnings.warn(
                f"{len(names) - len(present)} of {len(names)} replicate weights not found in data; "
                f"using the {len(present)} available"
            )
        return present

    def _detect_rep_weights(self, prefix: str) -> List[str]:
        """Replicate weights named prefix1, prefix2, ... sorted by number"""
        for candidate in (prefix, prefix.upper()):
            pattern = re.compile(rf"^{re.escape(candidate)}(\d+)$")
            found = []
            for col in self.data.columns:
                match = pattern.match(str(col))
                if match and col != self.final_weight:
                    found.append((int(match.group(1)), col))
            if found:
                return [col for _, col in sorted(found)]
        return [prefix]

    def _count_pvs(self) -> int:
        """Number of plausible values available for every pattern"""
        for pattern in self.pv_vars:
            if '@' not in pattern:
                raise ValueError(f"Plausible value pattern '{pattern}' must contain '@'")

        if self.params is not None:
            if self.params.n_pv == 0:
                raise ValueError(f"Survey {self.params.name} has no plausible values")
            for pattern in self.pv_vars:
                missing = [
                    pattern.replace('@', str(i)) for i in range(1, self.params.n_pv + 1)
                    if pattern.replace('@', str(i)) not in self.data.columns
                ]
                if missing:
                    raise ValueError(
                        f"{self.params.name} has {self.params.n_pv} plausible values but "
                        f"{missing} not found in data"
                    )
            return self.params.n_pv

        counts = []
        for pattern in self.pv_vars:
            n = 0
            while pattern.replace('@', str(n + 1)) in self.data.columns:
                n += 1
            if n == 0:
                raise ValueError(f"No plausible values found for pattern '{pattern}'")
            counts.append(n)
        return min(counts)

    def _replace(self, **changes) -> 'SurveyDesign':
        new = copy.copy(self)
        for name, value in changes.items():
            setattr(new, name, value)
        return new

    def __repr__(self) -> str:
        label = self.params.name if self.params is not None else 'custom'
        parts = [
            f"{len(self.data):,} rows",
            f"weight '{self.final_weight}'",
            f"{len(self.rep_weights)} replicates",
        ]
        if self.has_pv:
            parts.append(f"{self.n_pv} PVs")
        if self.group_vars:
            parts.append(f"groups: {', '.join(self.group_vars)}")
        return f"<SurveyDesign ({label}): {'; '.join(parts)}>"

    # ------------------------------------------------------------------
    # Verbs
    # ------------------------------------------------------------------

    def group_by(self, *group_vars: str, add: bool = False) -> 'SurveyDesign':
        """Group by one or more variables"""
        missing = [v for v in group_vars if v not in self.data.columns]
        if missing:
            raise ValueError(f"Grouping variable(s) not found in data: {missing}")

        base = list(self.group_vars) if add else []
        new_vars = base + [v for v in group_vars if v not in base]
        return self._replace(group_vars=new_vars)

    def ungroup(self) -> 'SurveyDesign':
        return self._replace(group_vars=[])

    def filter(self, condition) -> 'SurveyDesign':
        """
        Keep rows matching a condition

        Parameters
        ----------
        condition : array-like of bool, callable or str
            Boolean mask, function of the data returning a mask, or a
            ``DataFrame.eval`` expression. Missing values count as False.
        """
        if callable(condition):
            mask = condition(self.data)
        elif isinstance(condition, str):
            mask = self.data.eval(condition)
        else:
            mask = condition

        values = np.asarray(mask, dtype=object).ravel()
        if len(values) != len(self.data):
            raise ValueError(f"Filter mask has {len(values)} values, data has {len(self.data)} rows")
        keep = np.array([False if pd.isna(v) else bool(v) for v in values], dtype=bool)

        return self._replace(data=self.data[keep].copy())

    def mutate(self, **columns) -> 'SurveyDesign':
        """
        Add or replace columns

        Values may be scalars, array-likes with one value per row, or
        callables receiving the data (including columns created earlier in
        the same call).
        """
        data = self.data.copy()
        for name, value in columns.items():
            if callable(value):
                value = value(data)
            data[name] = value
        return self._replace(data=data)

    def drop_na(self, *columns: str) -> 'SurveyDesign':
        """Drop rows with missing values in ``columns`` (all columns if none)"""
        subset = list(columns) if columns else None
        return self._replace(data=self.data.dropna(subset=subset).copy())

    def summarise(self, display: bool = False, **exprs) -> pd.DataFrame:
        """Aggregate with survey estimators, see ``svytidy.summarise``"""
        return _summarise(self, display=display, **exprs)

    summarize = summarise

    # ------------------------------------------------------------------
    # Groups
    # ------------------------------------------------------------------

    def group_levels(self) -> List[Tuple[tuple, pd.DataFrame]]:
        """(key, subset) for every group, sorted; a single () level if ungrouped"""
        if not self.group_vars:
            return [((), self.data)]

        levels = []
        for key, subset in self.data.groupby(self.group_vars, sort=True, dropna=False, observed=True):
            if not isinstance(key, tuple):
                key = (key,)
            levels.append((key, subset))
        return levels

    def group_keys(self) -> pd.DataFrame:
        """One row per group with the grouping columns (1 empty row if ungrouped)"""
        if not self.group_vars:
            return pd.DataFrame(index=range(1))
        keys = [key for key, _ in self.group_levels()]
        return pd.DataFrame(keys, columns=self.group_vars)

    def degf(self) -> int:
        """Design degrees of freedom: number of replicates minus one"""
        return len(self.rep_weights) - 1

    # ------------------------------------------------------------------
    # Estimation
    # ------------------------------------------------------------------

    def estimate(self,
                 func: Callable,
                 srs_func: Optional[Callable] = None,
                 **kwargs) -> SurveyStat:
        """
        Estimate a statistic and its replicate variance for every group

        Parameters
        ----------
        func : callable
            ``func(data, weight, **kwargs)`` computing the statistic with a
            SINGLE weight column. Returns a scalar, a sequence, or a dict
            whose keys name the statistics.
        srs_func : callable, optional
            ``srs_func(data, weight)`` giving the variance the statistic would
            have under simple random sampling (for design effects)
        **kwargs
            Passed to ``func``

        Returns
        -------
        SurveyStat
            Estimates and variances, one row per group
        """
        rows = []
        stat_names = None
        width = None

        for key, subset in self.group_levels():
            coefs, vcov, names, srs_var = self._estimate_with_replicates(
                subset, func, srs_func, **kwargs
            )
            if coefs is not None:
                if width is None:
                    width, stat_names = len(coefs), names
                elif len(coefs) != width:
                    raise ValueError(
                        f"Estimator returned {len(coefs)} statistics for group {key}, "
                        f"expected {width}"
                    )
            rows.append((coefs, vcov, srs_var))

        width = width or 1
        empty = np.full(width, np.nan)
        coef = np.array([c if c is not None else empty for c, _, _ in rows]).reshape(-1, width)
        var = np.array([np.diag(v) if v is not None else empty for _, v, _ in rows]).reshape(-1, width)

        srs = None
        if srs_func is not None:
            srs = np.array([
                s if s is not None and np.size(s) == width else empty for _, _, s in rows
            ], dtype=float).reshape(-1, width)

        return SurveyStat(
            groups=self.group_keys(),
            coef=coef,
            var=var,
            names=stat_names,
            df=self.degf(),
            srs_var=srs,
        )

    def _get_variance_factor(self, subset_data: Optional[pd.DataFrame] = None) -> float:
        """
        Get variance factor, computing dynamically for PIAAC if needed

        Parameters
        ----------
        subset_data : pd.DataFrame, optional
            Data subset for computing variance factor

        Returns
        -------
        float
            Variance adjustment factor
        """
        if self.variance_factor is not None:
            return self.variance_factor

        if self.params is not None and self.params.name == 'PIAAC':
            if subset_data is None:
                subset_data = self.data
            return self._compute_piaac_variance_factor(subset_data)

        return 1.0

    def _compute_piaac_variance_factor(self, data: pd.DataFrame) -> float:
        """
        Compute PIAAC variance factor based on methodology

        PIAAC uses different variance estimation methods:
        - JK1 (vemethodn=1): (venreps-1)/venreps
        - JK2 (vemethodn=2): 1
        - Fay (vemethodn=4): 1/(venreps*(1-vefayfac)^2)
        """
        method_var = 'vemethodn' if 'vemethodn' in data.columns else 'VEMETHODN'
        reps_var = 'venreps' if 'venreps' in data.columns else 'VENREPS'
        fay_var = 'vefayfac' if 'vefayfac' in data.columns else 'VEFAYFAC'

        if method_var not in data.columns or reps_var not in data.columns:
            raise ValueError("PIAAC variance factor needs VEMETHODN and VENREPS in the data")

        varfac = np.zeros(len(data))
        method = data[method_var].values
        reps = data[reps_var].values.astype(float)

        mask_jk1 = (method == 1)
        varfac[mask_jk1] = (reps[mask_jk1] - 1) / reps[mask_jk1]

        mask_jk2 = (method == 2)
        varfac[mask_jk2] = 1.0

        # Fay, falling back to JK1 when the Fay factor is missing
        mask_fay = (method == 4)
        if fay_var in data.columns:
            fay = data[fay_var].values.astype(float)
            fay_missing = pd.isna(fay)
            ok = mask_fay & ~fay_missing
            varfac[ok] = 1 / (reps[ok] * (1 - fay[ok])**2)
            varfac[mask_fay & fay_missing] = (reps[mask_fay & fay_missing] - 1) / reps[mask_fay & fay_missing]
        else:
            varfac[mask_fay] = (reps[mask_fay] - 1) / reps[mask_fay]

        if len(varfac) == 0:
            return 1.0
        if varfac.min() == varfac.max():
            return float(varfac[0])

        warnings.warn(
            "VEMETHODN is not constant. Using weighted average of variance factors. "
            "Results may be incorrect for pooled multi-country analysis."
        )
        return float(np.average(varfac, weights=data[self.final_weight].values))

    def _pv_frame(self, data: pd.DataFrame, pv_idx: int) -> pd.DataFrame:
        """Materialise plausible value ``pv_idx`` under each pattern's own name"""
        if not self.has_pv:
            return data

        data = data.copy()
        for pattern in self.pv_vars:
            data[pattern] = data[pattern.replace('@', str(pv_idx))]
        for alias, pattern in self.pv_aliases.items():
            data[alias] = data[pattern.replace('@', str(pv_idx))]
        return data

    def _estimate_with_replicates(self,
                                  data: pd.DataFrame,
                                  func: Callable,
                                  srs_func: Optional[Callable] = None,
                                  **kwargs) -> Tuple[Optional[np.ndarray], Optional[np.ndarray],
                                                     Optional[List[str]], Optional[np.ndarray]]:
        """
        Estimate with replicate weights and plausible values

        Returns
        -------
        coefs : np.ndarray or None
            Point estimates
        vcov : np.ndarray or None
            Variance-covariance matrix
        stat_names : list of str or None
            Names of statistics
        srs_var : np.ndarray or None
            Variance under simple random sampling, averaged over PVs
        """
        variance_factor = self._get_variance_factor(data)

        all_betas = []
        all_bvars = []
        all_srs = []
        stat_names = None

        for pv_idx in range(1, self.n_pv + 1):
            pv_data = self._pv_frame(data, pv_idx)

            beta, names = self._estimate_single(pv_data, func, self.final_weight, **kwargs)
            if beta is None:
                return None, None, None, None
            if stat_names is None:
                stat_names = names

            if srs_func is not None:
                srs, _ = self._estimate_single(pv_data, srs_func, self.final_weight)
                all_srs.append(srs)

            if self.fast and pv_idx > 1:
                # Fast mode: reuse first PV's replicate deviations
                bvar = all_bvars[0]
            else:
                rep_estimates = []
                for rep_weight in self.rep_weights:
                    rep_est, _ = self._estimate_single(pv_data, func, rep_weight, **kwargs)
                    if rep_est is None or len(rep_est) != len(beta):
                        rep_est = np.full(len(beta), np.nan)
                    rep_estimates.append(rep_est)

                rep_estimates = np.array(rep_estimates, dtype=float)
                centre = beta if self.mse else rep_estimates.mean(axis=0)
                bvar = rep_estimates - centre

            all_betas.append(beta)
            all_bvars.append(bvar)

        if self.has_pv and len(all_betas) > 1:
            coefs, vcov = self._combine_pv_estimates(all_betas, all_bvars, variance_factor)
        else:
            coefs = all_betas[0]
            bvar = all_bvars[0]
            vcov = variance_factor * (bvar.T @ bvar)

        srs_var = None
        if all_srs and all(s is not None for s in all_srs):
            srs_var = np.mean(np.array(all_srs, dtype=float), axis=0)

        return coefs, vcov, stat_names, srs_var

    def _estimate_single(self, data: pd.DataFrame, func: Callable,
                         weight: str, **kwargs) -> Tuple[Optional[np.ndarray], Optional[List[str]]]:
        """Run single estimation with given weight"""
        try:
            result = func(data, weight, **kwargs)
        except Exception as e:
            warnings.warn(f"Estimation failed with weight '{weight}': {str(e)}")
            return None, None

        if isinstance(result, dict):
            names = [str(k) for k in result.keys()]
            return np.array(list(result.values()), dtype=float), names
        if isinstance(result, (list, tuple, np.ndarray, pd.Series)):
            return np.asarray(result, dtype=float).ravel(), None
        return np.array([result], dtype=float), None

    def _combine_pv_estimates(self,
                              betas: List[np.ndarray],
                              bvars: List[np.ndarray],
                              variance_factor: float) -> Tuple[np.ndarray, np.ndarray]:
        """
        Combine estimates across plausible values

        Uses Rubin's rules for multiple imputation:
        - Total variance = Sampling variance + Imputation variance
        """
        betas = np.array(betas)
        n_pv = len(betas)

        beta = betas.mean(axis=0)

        sampling_var = np.mean(
            [variance_factor * (bvar.T @ bvar) for bvar in bvars], axis=0
        )

        beta_devs = betas - beta
        imputation_var = (beta_devs.T @ beta_devs) / (n_pv - 1)

        vcov = sampling_var + ((n_pv + 1) / n_pv) * imputation_var

        return beta, vcov


def as_survey(data: pd.DataFrame, **kwargs) -> SurveyDesign:
    """Create a replicate-weight survey design, see ``SurveyDesign``"""
    return SurveyDesign(data, **kwargs)
