"""
Effect Measure Conversion for smdmeta.

This module converts log odds ratios and their standard errors to
standardised mean differences, so that binary-outcome studies can be
pooled together with continuous-outcome studies.

References:
    Hasselblad V, Hedges LV. Meta-analysis of screening and diagnostic
    tests. Psychological Bulletin 1995; 117: 167-78.

    Cox DR. Analysis of Binary Data. London: Chapman and Hall, 1970.

    Cox DR, Snell EJ. Analysis of Binary Data, 2nd edition.
    London: Chapman and Hall, 1989.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Tuple, Union
import numpy as np

from smdmeta.core.estimand import ConversionMethod
from smdmeta.core.study import StudySet


# Scale factor of the Cox approximation
COX_FACTOR = 1.65


def or_to_smd_hh(
    lnor: np.ndarray,
    se_lnor: np.ndarray
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Hasselblad-Hedges conversion assuming logistic distributions.

    Args:
        lnor: Log odds ratios
        se_lnor: Standard errors of log odds ratios

    Returns:
        Tuple of (smd, se_smd)
    """
    smd = lnor * np.sqrt(3) / np.pi
    se_smd = np.sqrt(se_lnor ** 2 * 3 / np.pi ** 2)
    return smd, se_smd


def or_to_smd_cs(
    lnor: np.ndarray,
    se_lnor: np.ndarray
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Cox (Cox & Snell) conversion assuming normal distributions.

    Args:
        lnor: Log odds ratios
        se_lnor: Standard errors of log odds ratios

    Returns:
        Tuple of (smd, se_smd)
    """
    smd = lnor / COX_FACTOR
    se_smd = np.sqrt(se_lnor ** 2 / COX_FACTOR)
    return smd, se_smd


def or_to_smd(
    lnor,
    se_lnor,
    method: Union[str, ConversionMethod] = "HH"
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Convert log odds ratios to standardised mean differences.

    Non-finite inputs give non-finite outputs; nothing is rejected.

    Args:
        lnor: Log odds ratio(s)
        se_lnor: Standard error(s) of log odds ratio(s)
        method: "HH" (Hasselblad & Hedges) or "CS" (Cox), can be abbreviated

    Returns:
        Tuple of (smd, se_smd) arrays
    """
    method = ConversionMethod.from_string(method)
    lnor = np.asarray(lnor, dtype=float)
    se_lnor = np.asarray(se_lnor, dtype=float)

    with np.errstate(invalid="ignore", over="ignore"):
        if method is ConversionMethod.HASSELBLAD_HEDGES:
            return or_to_smd_hh(lnor, se_lnor)
        return or_to_smd_cs(lnor, se_lnor)


@dataclass(frozen=True)
class ConvertedSet:
    """
    Standardised mean differences derived from a StudySet.

    Attributes:
        smd: Standardised mean differences
        se_smd: Standard errors of the standardised mean differences
        odds_ratio: Odds ratios (exponentiated log odds ratios)
        method: Conversion method used
    """

    smd: np.ndarray
    se_smd: np.ndarray
    odds_ratio: np.ndarray
    method: ConversionMethod

    def __len__(self) -> int:
        return len(self.smd)


@dataclass(frozen=True)
class LogOddsConverter:
    """
    Converter from log odds ratios to standardised mean differences.

    Attributes:
        method: Conversion method
    """

    method: ConversionMethod = ConversionMethod.HASSELBLAD_HEDGES

    @classmethod
    def from_method(cls, method: Union[str, ConversionMethod]) -> LogOddsConverter:
        """Create a converter from a (possibly abbreviated) method code."""
        return cls(ConversionMethod.from_string(method))

    def convert(
        self,
        lnor,
        se_lnor
    ) -> Tuple[np.ndarray, np.ndarray]:
        """Convert log odds ratios and standard errors."""
        return or_to_smd(lnor, se_lnor, self.method)

    def convert_studies(self, studies: StudySet) -> ConvertedSet:
        """
        Convert every study of a StudySet.

        Args:
            studies: Validated study set

        Returns:
            ConvertedSet with one entry per study
        """
        smd, se_smd = self.convert(studies.lnor, studies.selnor)
        with np.errstate(over="ignore", invalid="ignore"):
            odds_ratio = np.exp(studies.lnor)
        return ConvertedSet(
            smd=smd,
            se_smd=se_smd,
            odds_ratio=odds_ratio,
            method=self.method,
        )
