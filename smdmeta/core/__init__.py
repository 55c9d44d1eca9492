"""Core data structures for smdmeta."""

from smdmeta.core.estimand import EffectMeasure, ConversionMethod
from smdmeta.core.study import StudySet

__all__ = [
    "EffectMeasure",
    "ConversionMethod",
    "StudySet",
]
