"""
smdmeta: Log Odds Ratio to Standardised Mean Difference Meta-Analysis

Converts study-level log odds ratios to standardised mean differences
(SMD), so that studies with binary outcomes can be combined with
studies with continuous outcomes, and pools the converted effect sizes
in a generic inverse-variance meta-analysis.

Key Features:
    - Hasselblad & Hedges (1995) and Cox (1970) conversions
    - Vectors, columns of a data table, or an existing odds ratio
      meta-analysis as input
    - Common effect and random effects pooling with seven
      between-study variance estimators
    - Hartung-Knapp adjustment, prediction intervals and subgroups
    - Pluggable aggregator

Example Usage:
    >>> import numpy as np
    >>> from smdmeta import metagen, or2smd
    >>>
    >>> # Vectors of log odds ratios
    >>> m1 = or2smd([0.91, 0.35, -0.12], [0.26, 0.31, 0.22], method="CS")
    >>>
    >>> # Odds ratio meta-analysis, repeated on the SMD scale
    >>> m_or = metagen(np.log([2.1, 1.4, 0.9]), [0.3, 0.25, 0.2], sm="OR")
    >>> m2 = or2smd(m_or)
"""

__version__ = "1.0.0"

from smdmeta.errors import (
    SmdMetaError,
    ConfigurationError,
    MissingArgumentError,
    LengthMismatchError,
    InvalidChoiceError,
    AggregationError,
)
from smdmeta.settings import MetaSettings, DEFAULT_SETTINGS

# Core classes
from smdmeta.core.estimand import EffectMeasure, ConversionMethod
from smdmeta.core.study import StudySet

# Conversion
from smdmeta.alignment.effect_measures import (
    ConvertedSet,
    LogOddsConverter,
    or_to_smd,
)
from smdmeta.conversion import or2smd

# Meta-analysis
from smdmeta.models.base import MetaResult, SubgroupResult
from smdmeta.models.frequentist import InverseVarianceModel, metagen

# Diagnostics
from smdmeta.diagnostics.heterogeneity import (
    estimate_tau_squared,
    compute_i_squared,
    cochran_q,
)

__all__ = [
    "__version__",

    # Errors
    "SmdMetaError",
    "ConfigurationError",
    "MissingArgumentError",
    "LengthMismatchError",
    "InvalidChoiceError",
    "AggregationError",

    # Settings
    "MetaSettings",
    "DEFAULT_SETTINGS",

    # Core classes
    "EffectMeasure",
    "ConversionMethod",
    "StudySet",

    # Conversion
    "ConvertedSet",
    "LogOddsConverter",
    "or_to_smd",
    "or2smd",

    # Meta-analysis
    "MetaResult",
    "SubgroupResult",
    "InverseVarianceModel",
    "metagen",

    # Diagnostics
    "estimate_tau_squared",
    "compute_i_squared",
    "cochran_q",
]
