"""
Effect measures and conversion methods for smdmeta.

This module defines the summary measures a meta-analysis can report
and the methods available to convert log odds ratios to standardised
mean differences.
"""

from __future__ import annotations
from enum import Enum
from typing import Union

from smdmeta.utils import set_choice


class EffectMeasure(Enum):
    """Types of effect measures used in meta-analysis."""

    # Ratio measures
    HAZARD_RATIO = "HR"
    RISK_RATIO = "RR"
    ODDS_RATIO = "OR"
    INCIDENCE_RATE_RATIO = "IRR"

    # Difference measures
    RISK_DIFFERENCE = "RD"
    MEAN_DIFFERENCE = "MD"
    STANDARDIZED_MEAN_DIFFERENCE = "SMD"

    @classmethod
    def from_string(cls, s: str) -> EffectMeasure:
        """Convert string to EffectMeasure enum."""
        s_upper = s.upper().strip()
        aliases = {
            "HAZARD RATIO": "HR",
            "RISK RATIO": "RR",
            "RELATIVE RISK": "RR",
            "ODDS RATIO": "OR",
            "RISK DIFFERENCE": "RD",
            "MEAN DIFFERENCE": "MD",
            "STANDARDIZED MEAN DIFFERENCE": "SMD",
            "STANDARDISED MEAN DIFFERENCE": "SMD",
            "HEDGES G": "SMD",
            "HEDGES' G": "SMD",
            "COHEN D": "SMD",
            "COHEN'S D": "SMD",
            "INCIDENCE RATE RATIO": "IRR",
            "RATE RATIO": "IRR",
        }
        if s_upper in aliases:
            s_upper = aliases[s_upper]

        for member in cls:
            if member.value == s_upper or member.name == s_upper:
                return member
        raise ValueError(f"Unknown effect measure: {s}")


def is_odds_ratio(sm) -> bool:
    """Check whether a summary measure label denotes the odds ratio."""
    if isinstance(sm, EffectMeasure):
        return sm is EffectMeasure.ODDS_RATIO
    if not isinstance(sm, str):
        return False
    try:
        return EffectMeasure.from_string(sm) is EffectMeasure.ODDS_RATIO
    except ValueError:
        return False


class ConversionMethod(Enum):
    """Methods converting log odds ratios to standardised mean differences."""

    # Hasselblad & Hedges (1995), logistic distributions
    HASSELBLAD_HEDGES = "HH"
    # Cox (1970), Cox & Snell (1989), normal distributions
    COX_SNELL = "CS"

    @classmethod
    def from_string(cls, s: Union[str, ConversionMethod]) -> ConversionMethod:
        """
        Resolve a method code, accepting abbreviations.

        Args:
            s: "HH" or "CS", case-insensitive, or an unambiguous prefix

        Returns:
            The matching ConversionMethod
        """
        if isinstance(s, cls):
            return s
        return cls(set_choice(s, [m.value for m in cls], name="method"))
