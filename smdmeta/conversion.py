"""
Conversion from log odds ratio to standardised mean difference.

This module provides :func:`or2smd`, which converts log odds ratios to
standardised mean differences using the method of Hasselblad & Hedges
(1995) or Cox (1970), and pools the converted effect sizes with a
generic inverse-variance meta-analysis.

Example Usage:
    >>> import numpy as np
    >>> from smdmeta import or2smd
    >>>
    >>> # Borenstein et al. (2009), Chapter 7
    >>> m = or2smd(0.9069, np.sqrt(0.0676))
    >>> # SMD = 0.5, variance of SMD = 0.0205
    >>> print(f"{m.te[0]:.4f} {m.se_te[0] ** 2:.4f}")
    0.5000 0.0205
"""

from __future__ import annotations
from typing import Optional, Any, Union, Mapping
import logging
import warnings
import pandas as pd

from smdmeta.alignment.effect_measures import LogOddsConverter
from smdmeta.core.dispatch import dispatch
from smdmeta.core.estimand import ConversionMethod
from smdmeta.core.resolver import PriorInput, resolve_input
from smdmeta.models.base import Aggregator
from smdmeta.models.frequentist import metagen

logger = logging.getLogger(__name__)


def or2smd(
    lnor: Any,
    selnor: Any = None,
    studlab: Any = None,
    data: Optional[Union[pd.DataFrame, Mapping]] = None,
    subset: Any = None,
    exclude: Any = None,
    method: Union[str, ConversionMethod] = "HH",
    aggregator: Optional[Aggregator] = None,
    **kwargs
) -> Any:
    """
    Convert log odds ratios to standardised mean differences and pool them.

    Argument lnor is either a vector of log odds ratios or a meta-analysis
    object (MetaResult) with the odds ratio as summary measure. In the
    latter case the meta-analysis is repeated on the SMD scale with all
    of its settings, and the remaining vector arguments are ignored.

    Args:
        lnor: Log odds ratio(s), column name in data, or MetaResult
        selnor: Standard error(s) of log odds ratio(s); mandatory for vectors
        studlab: Study labels (default "1".."k")
        data: Optional table of study information; string arguments
            name its columns
        subset: Boolean mask or 0-based indices of studies to analyse
        exclude: Boolean mask or 0-based indices of studies to exclude
            from pooling while keeping them in the result
        method: "HH" (Hasselblad & Hedges) or "CS" (Cox), can be abbreviated
        aggregator: Callable pooling the effect sizes (default: metagen)
        **kwargs: Additional arguments passed on to the aggregator
            (ignored for a meta-analysis object)

    Returns:
        The aggregator's result, a MetaResult with summary measure "SMD"
        for the default aggregator
    """
    aggregator = aggregator or metagen
    converter = LogOddsConverter.from_method(method)

    resolved = resolve_input(
        lnor, selnor, studlab=studlab, data=data, subset=subset, exclude=exclude
    )

    if isinstance(resolved, PriorInput):
        ignored = [
            name for name, value in (
                ("selnor", selnor), ("studlab", studlab), ("data", data),
                ("subset", subset), ("exclude", exclude),
            ) if value is not None
        ] + sorted(kwargs)
        if ignored:
            warnings.warn(
                "Arguments ignored for a meta-analysis object: " + ", ".join(ignored)
            )
        kwargs = {}

    converted = converter.convert_studies(resolved.studies)

    logger.debug(
        "Converted %d log odds ratios with method %s",
        len(converted), converter.method.value
    )

    return dispatch(resolved, converted, aggregator, kwargs)
