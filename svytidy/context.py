"""
Implicit survey context

``summarise`` publishes the design it is aggregating so that extension
functions can pick it up without the caller passing it::

    def survey_thing(x, svy=None):
        if svy is None:
            svy = cur_svy()
        ...
"""

from contextlib import contextmanager
from contextvars import ContextVar

import pandas as pd

_current_svy = ContextVar('svytidy_current_svy', default=None)


class SurveyContextError(RuntimeError):
    """Raised when the current survey is requested outside of ``summarise``"""


@contextmanager
def survey_context(svy):
    """Make ``svy`` the current survey for the duration of the block"""
    token = _current_svy.set(svy)
    try:
        yield svy
    finally:
        _current_svy.reset(token)


def cur_svy():
    """
    Get the survey design currently being summarised

    Returns
    -------
    SurveyDesign
        The (possibly grouped) design passed to ``summarise``

    Raises
    ------
    SurveyContextError
        If called outside of ``summarise``
    """
    svy = _current_svy.get()
    if svy is None:
        raise SurveyContextError(
            "cur_svy() must only be used inside summarise(); "
            "pass the design explicitly with svy=... elsewhere"
        )
    return svy


def cur_svy_wts() -> pd.Series:
    """Final weights of the current survey design"""
    svy = cur_svy()
    return svy.data[svy.final_weight]
