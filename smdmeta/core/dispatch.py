"""
Hand-off of converted effect sizes to a meta-analysis aggregator.
"""

from __future__ import annotations
from typing import Dict, Any
import logging
import pandas as pd

from smdmeta.alignment.effect_measures import ConvertedSet
from smdmeta.core.resolver import PriorInput, ResolvedInput
from smdmeta.models.base import Aggregator, MetaResult

logger = logging.getLogger(__name__)

# Options carried over from a meta-analysis object, field by field
CARRIED_OPTIONS = (
    "level",
    "level_ma",
    "common",
    "random",
    "hakn",
    "method_tau",
    "tau_common",
    "prediction",
    "level_predict",
    "method_bias",
    "title",
    "complab",
    "outclab",
    "label_e",
    "label_c",
    "label_left",
    "label_right",
    "control",
)

SUBGROUP_OPTIONS = (
    "subgroup",
    "subgroup_name",
    "print_subgroup_name",
    "sep_subgroup",
)


def prior_payload(prior: MetaResult) -> Dict[str, Any]:
    """
    Options of a meta-analysis object to repeat the analysis on the SMD scale.

    Subgroup options are only included when the object has subgroups.
    """
    payload: Dict[str, Any] = {
        "studlab": prior.studlab,
        "data": prior.data,
        "subset": prior.subset,
        "exclude": prior.exclude,
    }
    for name in CARRIED_OPTIONS:
        payload[name] = getattr(prior, name)
    if prior.subgroup is not None:
        for name in SUBGROUP_OPTIONS:
            payload[name] = getattr(prior, name)

    payload["sm"] = "SMD"
    payload["null_effect"] = 0
    return payload


def study_table(resolved: ResolvedInput, converted: ConvertedSet) -> pd.DataFrame:
    """Per-study table of log odds ratios and standardised mean differences."""
    studies = resolved.studies
    table = pd.DataFrame({
        "lnOR": studies.lnor,
        "selnOR": studies.selnor,
        "OR": converted.odds_ratio,
        "smd": converted.smd,
        "se_smd": converted.se_smd,
        "studlab": studies.studlab,
    })
    if studies.subset is not None:
        table["subset"] = studies.subset
    if studies.exclude is not None:
        table["exclude"] = studies.exclude
    return table


def dispatch(
    resolved: ResolvedInput,
    converted: ConvertedSet,
    aggregator: Aggregator,
    options: Dict[str, Any],
) -> Any:
    """
    Call the aggregator once with the converted effect sizes.

    Args:
        resolved: Resolved input (object or vector mode)
        converted: Standardised mean differences
        aggregator: Callable pooling the effect sizes
        options: Additional aggregator arguments (vector mode only)

    Returns:
        The aggregator's result, unchanged
    """
    if isinstance(resolved, PriorInput):
        logger.debug(
            "Re-running %d-study meta-analysis on SMD scale (subgroups: %s)",
            resolved.studies.k, resolved.prior.subgroup is not None
        )
        return aggregator(
            converted.smd, converted.se_smd, **prior_payload(resolved.prior)
        )

    studies = resolved.studies
    logger.debug("Pooling %d converted studies", studies.k)
    return aggregator(
        converted.smd, converted.se_smd,
        studlab=studies.studlab,
        data=study_table(resolved, converted),
        subset=studies.subset,
        exclude=studies.exclude,
        sm="SMD",
        **options
    )
