"""
Utility functions for smdmeta.

This module provides statistical utilities and argument helpers
used throughout the smdmeta package.
"""

from __future__ import annotations
from typing import Optional, Any, Sequence, Tuple, Type
import numpy as np
from scipy import stats

from smdmeta.errors import InvalidChoiceError, LengthMismatchError


# ============================================================================
# Statistical Utilities
# ============================================================================

def z_score(level: float = 0.95) -> float:
    """
    Get z-score for a confidence level.

    Args:
        level: Confidence level (0 to 1)

    Returns:
        z-score for two-tailed confidence interval
    """
    return stats.norm.ppf((1 + level) / 2)


def t_score(level: float, df: float) -> float:
    """Get t quantile for a two-tailed interval with df degrees of freedom."""
    return stats.t.ppf((1 + level) / 2, df)


def ci_from_se(
    estimate,
    se,
    level: float = 0.95,
    quantile: Optional[float] = None
) -> Tuple[Any, Any]:
    """
    Compute confidence interval from standard error.

    Args:
        estimate: Point estimate(s)
        se: Standard error(s)
        level: Confidence level
        quantile: Critical value to use instead of the normal quantile

    Returns:
        Tuple of (ci_lower, ci_upper)
    """
    crit = z_score(level) if quantile is None else quantile
    return estimate - crit * se, estimate + crit * se


def p_value_from_z(z, two_tailed: bool = True):
    """
    Compute p-value from z-score.

    Args:
        z: z-score(s)
        two_tailed: Use two-tailed test

    Returns:
        p-value(s)
    """
    if two_tailed:
        return 2 * stats.norm.sf(np.abs(z))
    return stats.norm.sf(z)


def p_value_from_t(t, df: float):
    """Two-tailed p-value for a t statistic."""
    return 2 * stats.t.sf(np.abs(t), df)


# ============================================================================
# Argument Utilities
# ============================================================================

def set_choice(
    value: Any,
    choices: Sequence[str],
    name: str = "argument"
) -> str:
    """
    Match a string against a set of allowed values.

    Matching ignores case and accepts any unambiguous prefix,
    so "H" selects "HH" from ("HH", "CS").

    Args:
        value: String supplied by the caller
        choices: Canonical allowed values
        name: Argument name used in error messages

    Returns:
        The matching canonical value
    """
    if not isinstance(value, str):
        raise InvalidChoiceError(
            f"Argument '{name}' must be a character string, got {type(value).__name__}"
        )

    wanted = value.strip().lower()

    for choice in choices:
        if choice.lower() == wanted:
            return choice

    matches = [c for c in choices if c.lower().startswith(wanted)]
    if len(matches) == 1 and wanted:
        return matches[0]

    allowed = ", ".join(f"'{c}'" for c in choices)
    if len(matches) > 1:
        raise InvalidChoiceError(
            f"Argument '{name}' is ambiguous: '{value}' matches several of {allowed}"
        )
    raise InvalidChoiceError(
        f"Argument '{name}' must be one of {allowed} (can be abbreviated), got '{value}'"
    )


def as_selection_mask(
    selector: Any,
    k: int,
    name: str = "subset",
    error: Type[Exception] = LengthMismatchError
) -> np.ndarray:
    """
    Convert a study selector into a boolean mask of length k.

    Args:
        selector: Boolean mask or list of 0-based study indices
        k: Number of studies
        name: Argument name used in error messages
        error: Exception class raised for invalid selectors

    Returns:
        Boolean array of length k
    """
    sel = np.atleast_1d(np.asarray(selector))

    if sel.dtype == bool:
        if sel.sum() > k or len(sel) > k:
            raise error(
                f"Length of argument '{name}' is larger than number of studies."
            )
        if len(sel) != k:
            raise error(
                f"Argument '{name}' must have length {k}, got {len(sel)}."
            )
        return sel.copy()

    if len(sel) > k:
        raise error(
            f"Length of argument '{name}' is larger than number of studies."
        )
    if sel.size and not np.issubdtype(sel.dtype, np.integer):
        raise error(
            f"Argument '{name}' must be a logical mask or integer study indices."
        )

    mask = np.zeros(k, dtype=bool)
    if sel.size:
        if sel.min() < 0 or sel.max() >= k:
            raise error(
                f"Argument '{name}' refers to studies outside 0..{k - 1}."
            )
        mask[sel] = True
    return mask


# ============================================================================
# Validation Utilities
# ============================================================================

def validate_probability(
    p: float,
    name: str = "probability",
    error: Type[Exception] = ValueError
) -> None:
    """Validate that value lies strictly between 0 and 1."""
    if not 0 < p < 1:
        raise error(f"{name} must be between 0 and 1, got {p}")
