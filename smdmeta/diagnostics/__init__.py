"""Heterogeneity diagnostics for smdmeta."""

from smdmeta.diagnostics.heterogeneity import (
    TAU_METHODS,
    cochran_q,
    compute_h,
    compute_i_squared,
    estimate_tau_squared,
    tau_squared_ci,
)

__all__ = [
    "TAU_METHODS",
    "cochran_q",
    "compute_h",
    "compute_i_squared",
    "estimate_tau_squared",
    "tau_squared_ci",
]
