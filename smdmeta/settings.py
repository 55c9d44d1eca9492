"""
Default settings for meta-analyses run by smdmeta.

Options that are not given explicitly to :func:`smdmeta.models.metagen`
are taken from a :class:`MetaSettings` instance.
"""

from __future__ import annotations
from dataclasses import dataclass, field, replace
from typing import Dict, Any


@dataclass(frozen=True)
class MetaSettings:
    """
    Meta-analysis defaults.

    Attributes:
        level: Confidence level for individual studies
        level_ma: Confidence level for pooled estimates
        common: Report the common effect model
        random: Report the random effects model
        hakn: Use Hartung-Knapp adjustment for the random effects model
        method_tau: Between-study variance estimator
        tau_common: Assume common between-study variance across subgroups
        prediction: Report a prediction interval
        level_predict: Level of the prediction interval
        method_bias: Test for funnel plot asymmetry, carried for later use
        print_subgroup_name: Print the subgroup name in subgroup labels
        sep_subgroup: Separator between subgroup name and level
        control: Options for iterative tau-squared estimators
    """

    level: float = 0.95
    level_ma: float = 0.95
    common: bool = True
    random: bool = True
    hakn: bool = False
    method_tau: str = "REML"
    tau_common: bool = False
    prediction: bool = False
    level_predict: float = 0.95
    method_bias: str = "Egger"
    print_subgroup_name: bool = True
    sep_subgroup: str = " = "
    control: Dict[str, Any] = field(
        default_factory=lambda: {"max_iter": 100, "tol": 1e-6}
    )

    def with_options(self, **kwargs) -> MetaSettings:
        """Return a copy with some settings replaced."""
        return replace(self, **kwargs)


DEFAULT_SETTINGS = MetaSettings()
