"""
svytidy - Tidy Verbs for Replicate-Weight Survey Designs

A Python package for summarising survey data (PISA, PIAAC, TIMSS, etc.) with
replicate weights and plausible values through group_by / summarise verbs,
and for writing new survey estimators that plug into summarise.
"""

from .config import SurveyParameters, SURVEY_CONFIGS, REPLICATE_TYPES, replicate_scale
from .context import cur_svy, cur_svy_wts, survey_context, SurveyContextError
from .design import SurveyDesign, SurveyStat, as_survey
from .estimators import (
    survey_mean,
    survey_total,
    survey_ratio,
    survey_var,
    survey_sd,
    survey_quantile,
    survey_median,
    survey_prop,
    survey_gini,
    survey_corr,
    survey_tally,
    survey_count,
)
from .statistics import WeightedStatistics
from .summarise import summarise, summarize, unweighted
from .tempvars import set_survey_vars, TEMP_VAR
from .vartype import COEF_PLACEHOLDER, VARTYPES, get_var_est, match_arg

__version__ = "1.0.0"
__all__ = [
    "SurveyDesign",
    "SurveyStat",
    "SurveyParameters",
    "SURVEY_CONFIGS",
    "REPLICATE_TYPES",
    "replicate_scale",
    "as_survey",
    "summarise",
    "summarize",
    "unweighted",
    "cur_svy",
    "cur_svy_wts",
    "survey_context",
    "SurveyContextError",
    "set_survey_vars",
    "TEMP_VAR",
    "get_var_est",
    "match_arg",
    "COEF_PLACEHOLDER",
    "VARTYPES",
    "WeightedStatistics",
    "survey_mean",
    "survey_total",
    "survey_ratio",
    "survey_var",
    "survey_sd",
    "survey_quantile",
    "survey_median",
    "survey_prop",
    "survey_gini",
    "survey_corr",
    "survey_tally",
    "survey_count",
]
