"""Effect size conversion for smdmeta."""

from smdmeta.alignment.effect_measures import (
    ConvertedSet,
    LogOddsConverter,
    or_to_smd,
    or_to_smd_hh,
    or_to_smd_cs,
)

__all__ = [
    "ConvertedSet",
    "LogOddsConverter",
    "or_to_smd",
    "or_to_smd_hh",
    "or_to_smd_cs",
]
