"""
Meta-analysis models for smdmeta.

This module provides the generic inverse-variance aggregator used to
pool converted effect sizes.
"""

from smdmeta.models.base import (
    Aggregator,
    MetaResult,
    SubgroupResult,
)
from smdmeta.models.frequentist import (
    InverseVarianceModel,
    metagen,
)

__all__ = [
    "Aggregator",
    "MetaResult",
    "SubgroupResult",
    "InverseVarianceModel",
    "metagen",
]
