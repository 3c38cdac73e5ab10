"""
Survey configurations for svytidy

Registered replicate-weight designs for international large-scale assessments
and the conventional variance scale factors for explicitly described
replicate designs.
"""

from dataclasses import dataclass
from typing import Optional


@dataclass
class SurveyParameters:
    """Survey-specific parameters for variance estimation"""
    name: str
    n_pv: int  # Number of plausible values (0 if none)
    final_weight: str  # Final weight variable name
    rep_weight_prefix: str  # Replicate weight prefix
    variance_factor: Optional[float]  # None means computed from the data
    n_reps: int  # Number of replicates
    mse: bool = True  # Centre replicate deviations on the full-sample estimate


SURVEY_CONFIGS = {
    'PISA': SurveyParameters(
        name='PISA',
        n_pv=5,
        final_weight='w_fstuwt',
        rep_weight_prefix='w_fstr',
        variance_factor=1/20,
        n_reps=80,
    ),
    'PISA2015': SurveyParameters(
        name='PISA2015',
        n_pv=10,
        final_weight='w_fstuwt',
        rep_weight_prefix='w_fsturwt',
        variance_factor=1/20,
        n_reps=80,
    ),
    'PIAAC': SurveyParameters(
        name='PIAAC',
        n_pv=10,
        final_weight='spfwt0',
        rep_weight_prefix='spfwt',
        variance_factor=None,
        n_reps=80,
    ),
    'TALISTCH': SurveyParameters(
        name='TALISTCH',
        n_pv=0,
        final_weight='tchwgt',
        rep_weight_prefix='trwgt',
        variance_factor=1/25,
        n_reps=100,
    ),
    'TALISSCH': SurveyParameters(
        name='TALISSCH',
        n_pv=0,
        final_weight='schwgt',
        rep_weight_prefix='srwgt',
        variance_factor=1/25,
        n_reps=100,
    ),
    'SSES': SurveyParameters(
        name='SSES',
        n_pv=0,
        final_weight='WT2019',
        rep_weight_prefix='rwgt',
        variance_factor=1/2,
        n_reps=76,
    ),
    'SSES2023': SurveyParameters(
        name='SSES2023',
        n_pv=0,
        final_weight='WT2023',
        rep_weight_prefix='rwgt',
        variance_factor=1/20,
        n_reps=80,
    ),
    'TIMSS': SurveyParameters(
        name='TIMSS',
        n_pv=5,
        final_weight='WGT',
        rep_weight_prefix='JR',
        variance_factor=1/2,
        n_reps=150,
    ),
    'PIRLS': SurveyParameters(
        name='PIRLS',
        n_pv=5,
        final_weight='WGT',
        rep_weight_prefix='JR',
        variance_factor=1/2,
        n_reps=150,
    ),
    'ICCS': SurveyParameters(
        name='ICCS',
        n_pv=5,
        final_weight='TOTWGTS',
        rep_weight_prefix='SRWGT',
        variance_factor=1,
        n_reps=75,
    ),
    'ICILS': SurveyParameters(
        name='ICILS',
        n_pv=5,
        final_weight='TOTWGTS',
        rep_weight_prefix='SRWGT',
        variance_factor=1,
        n_reps=75,
    ),
    'IELS': SurveyParameters(
        name='IELS',
        n_pv=5,
        final_weight='CHILDWGT',
        rep_weight_prefix='SRWGT',
        variance_factor=1/23,
        n_reps=92,
    ),
}

# First entry is the default replicate type
REPLICATE_TYPES = ('BRR', 'Fay', 'JK1', 'JK2', 'bootstrap', 'SDR')


def replicate_scale(rep_type: str, n_reps: int, rho: Optional[float] = None) -> float:
    """
    Scale factor applied to the sum of squared replicate deviations

    Parameters
    ----------
    rep_type : str
        One of REPLICATE_TYPES (case-insensitive)
    n_reps : int
        Number of replicate weights
    rho : float, optional
        Fay coefficient, required for 'Fay'

    Returns
    -------
    float
        Variance adjustment factor
    """
    if n_reps < 1:
        raise ValueError("At least one replicate weight is required")

    kind = rep_type.upper()
    if kind == 'BRR':
        return 1 / n_reps
    if kind == 'FAY':
        if rho is None or not 0 <= rho < 1:
            raise ValueError("Fay replicates need a coefficient rho in [0, 1)")
        return 1 / (n_reps * (1 - rho)**2)
    if kind == 'JK1':
        return (n_reps - 1) / n_reps
    if kind == 'JK2':
        return 1.0
    if kind == 'BOOTSTRAP':
        if n_reps < 2:
            raise ValueError("Bootstrap replicates need at least two replicate weights")
        return 1 / (n_reps - 1)
    if kind == 'SDR':
        return 4 / n_reps

    raise ValueError(f"Unknown replicate type: {rep_type}. Available: {list(REPLICATE_TYPES)}")
