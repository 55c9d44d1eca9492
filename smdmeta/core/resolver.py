"""
Input resolution for log odds ratio conversions.

Callers pass either a meta-analysis object with the odds ratio as
summary measure, or vectors of log odds ratios and standard errors.
Both are resolved here, once, into one of two input variants.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Optional, Any, Union, Mapping
import pandas as pd

from smdmeta.errors import ConfigurationError, MissingArgumentError
from smdmeta.core.estimand import is_odds_ratio
from smdmeta.core.study import StudySet
from smdmeta.models.base import MetaResult


@dataclass(frozen=True)
class PriorInput:
    """Object mode: a meta-analysis of log odds ratios."""

    prior: MetaResult
    studies: StudySet


@dataclass(frozen=True)
class VectorInput:
    """Vector mode: log odds ratios given study by study."""

    studies: StudySet


ResolvedInput = Union[PriorInput, VectorInput]


def lookup(
    value: Any,
    data: Optional[Union[pd.DataFrame, Mapping]],
    name: str
) -> Any:
    """
    Resolve an argument that may name a column of data.

    Args:
        value: Argument value, or column name if a string and data is given
        data: Optional table of study information
        name: Argument name used in error messages

    Returns:
        The column of data, or value itself
    """
    if not isinstance(value, str) or data is None:
        return value
    if value not in data:
        raise MissingArgumentError(
            f"Argument '{name}' refers to '{value}' which is not a column of 'data'."
        )
    column = data[value]
    return column.to_numpy() if isinstance(column, pd.Series) else column


def resolve_prior(prior: MetaResult) -> PriorInput:
    """
    Resolve a meta-analysis object.

    Args:
        prior: Meta-analysis with the odds ratio as summary measure

    Returns:
        PriorInput with the prior's log odds ratios
    """
    if not is_odds_ratio(prior.sm):
        raise ConfigurationError(
            f"Effect measure must be equal to 'OR', got '{prior.sm}'."
        )

    studies = StudySet(
        lnor=prior.te.copy(),
        selnor=prior.se_te.copy(),
        studlab=prior.studlab.copy(),
        subset=None if prior.subset is None else prior.subset.copy(),
        exclude=None if prior.exclude is None else prior.exclude.copy(),
    )
    return PriorInput(prior=prior, studies=studies)


def resolve_vectors(
    lnor: Any,
    selnor: Any = None,
    studlab: Any = None,
    data: Optional[Union[pd.DataFrame, Mapping]] = None,
    subset: Any = None,
    exclude: Any = None,
) -> VectorInput:
    """
    Resolve log odds ratios given as vectors or columns of data.

    Args:
        lnor: Log odds ratio(s), or column name in data
        selnor: Standard error(s) of log odds ratio(s), or column name
        studlab: Study labels, or column name
        data: Optional table of study information
        subset: Boolean mask or 0-based indices of studies to analyse
        exclude: Boolean mask or 0-based indices of studies to exclude

    Returns:
        VectorInput with a validated StudySet
    """
    for name, value in (("lnor", lnor), ("selnor", selnor)):
        if isinstance(value, str) and data is None:
            raise MissingArgumentError(
                f"Argument '{name}' is the column name '{value}' but no 'data' was given."
            )

    studies = StudySet.build(
        lookup(lnor, data, "lnor"),
        lookup(selnor, data, "selnor"),
        studlab=lookup(studlab, data, "studlab"),
        subset=lookup(subset, data, "subset"),
        exclude=lookup(exclude, data, "exclude"),
    )
    return VectorInput(studies=studies)


def resolve_input(
    lnor: Any,
    selnor: Any = None,
    studlab: Any = None,
    data: Optional[Union[pd.DataFrame, Mapping]] = None,
    subset: Any = None,
    exclude: Any = None,
) -> ResolvedInput:
    """Resolve either input mode; a MetaResult selects object mode."""
    if isinstance(lnor, MetaResult):
        return resolve_prior(lnor)
    return resolve_vectors(
        lnor, selnor, studlab=studlab, data=data, subset=subset, exclude=exclude
    )
