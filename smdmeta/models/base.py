"""
Result containers for smdmeta meta-analyses.

This module defines the result object returned by the generic
aggregator and the callable contract any aggregator must honour.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Optional, Dict, Any, List, Callable
import numpy as np
import pandas as pd


# An aggregator is called as aggregator(te, se_te, **payload) and
# returns a meta-analysis result; see smdmeta.models.frequentist.metagen.
Aggregator = Callable[..., Any]


@dataclass
class SubgroupResult:
    """
    Pooled results within one subgroup.

    Attributes:
        name: Subgroup level
        k: Number of studies pooled
        te_common: Common effect estimate
        se_te_common: Standard error of common effect estimate
        te_random: Random effects estimate
        se_te_random: Standard error of random effects estimate
        lower_common, upper_common: CI of common effect estimate
        lower_random, upper_random: CI of random effects estimate
        tau2: Between-study variance used for the random effects model
        q: Within-subgroup Cochran's Q
        df_q: Degrees of freedom of Q
        i2: Within-subgroup I-squared
    """

    name: str
    k: int
    te_common: float = np.nan
    se_te_common: float = np.nan
    lower_common: float = np.nan
    upper_common: float = np.nan
    te_random: float = np.nan
    se_te_random: float = np.nan
    lower_random: float = np.nan
    upper_random: float = np.nan
    tau2: float = np.nan
    q: float = np.nan
    df_q: int = 0
    i2: float = np.nan

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "name": self.name,
            "k": int(self.k),
            "te_common": float(self.te_common),
            "se_te_common": float(self.se_te_common),
            "lower_common": float(self.lower_common),
            "upper_common": float(self.upper_common),
            "te_random": float(self.te_random),
            "se_te_random": float(self.se_te_random),
            "lower_random": float(self.lower_random),
            "upper_random": float(self.upper_random),
            "tau2": float(self.tau2),
            "q": float(self.q),
            "df_q": int(self.df_q),
            "i2": float(self.i2),
        }


@dataclass
class MetaResult:
    """
    Container for a generic inverse-variance meta-analysis.

    Per-study arrays cover all k_all studies given to the aggregator;
    subset and exclude record which of them were pooled.

    Attributes:
        te: Study effect estimates
        se_te: Study standard errors
        studlab: Study labels
        sm: Summary measure label ("OR", "SMD", ...)
        lower, upper: Study confidence limits at `level`
        subset: Boolean mask of analysed studies (None: all)
        exclude: Boolean mask of studies excluded from pooling (None: none)
        data: Per-study table the analysis was based on
        w_common, w_random: Study weights (zero for studies not pooled)
        te_common, se_te_common: Common effect estimate and SE
        te_random, se_te_random: Random effects estimate and SE
        df_hakn: Degrees of freedom of the Hartung-Knapp t quantile
        lower_predict, upper_predict: Prediction interval
        tau2, lower_tau2, upper_tau2: Between-study variance and CI
        q, df_q, pval_q: Cochran's Q test for heterogeneity
        i2: I-squared
        h: H statistic
        subgroup: Subgroup membership of each study (None: no subgroups)
        subgroups: Pooled results per subgroup
        q_b_common, q_b_random: Tests for subgroup differences
        warnings: Warnings generated during pooling
    """

    # Study-level inputs
    te: np.ndarray
    se_te: np.ndarray
    studlab: np.ndarray
    sm: str = ""
    lower: np.ndarray = field(default_factory=lambda: np.array([]))
    upper: np.ndarray = field(default_factory=lambda: np.array([]))
    subset: Optional[np.ndarray] = None
    exclude: Optional[np.ndarray] = None
    data: Optional[pd.DataFrame] = field(default=None, repr=False)

    # Weights
    w_common: np.ndarray = field(default_factory=lambda: np.array([]))
    w_random: np.ndarray = field(default_factory=lambda: np.array([]))

    # Common effect model
    te_common: float = np.nan
    se_te_common: float = np.nan
    lower_common: float = np.nan
    upper_common: float = np.nan
    statistic_common: float = np.nan
    pval_common: float = np.nan

    # Random effects model
    te_random: float = np.nan
    se_te_random: float = np.nan
    lower_random: float = np.nan
    upper_random: float = np.nan
    statistic_random: float = np.nan
    pval_random: float = np.nan
    df_hakn: Optional[int] = None

    # Prediction interval
    lower_predict: float = np.nan
    upper_predict: float = np.nan

    # Heterogeneity
    tau2: float = np.nan
    lower_tau2: float = np.nan
    upper_tau2: float = np.nan
    q: float = np.nan
    df_q: int = 0
    pval_q: float = np.nan
    i2: float = np.nan
    h: float = np.nan

    # Subgroups
    subgroup: Optional[np.ndarray] = None
    subgroups: List[SubgroupResult] = field(default_factory=list)
    q_b_common: float = np.nan
    q_b_random: float = np.nan
    df_q_b: int = 0
    pval_q_b_common: float = np.nan
    pval_q_b_random: float = np.nan

    # Options
    level: float = 0.95
    level_ma: float = 0.95
    common: bool = True
    random: bool = True
    hakn: bool = False
    method_tau: str = "REML"
    tau_common: bool = False
    prediction: bool = False
    level_predict: float = 0.95
    null_effect: float = 0.0
    method_bias: str = "Egger"
    title: str = ""
    complab: str = ""
    outclab: str = ""
    label_e: str = ""
    label_c: str = ""
    label_left: str = ""
    label_right: str = ""
    subgroup_name: Optional[str] = None
    print_subgroup_name: bool = True
    sep_subgroup: str = " = "
    control: Dict[str, Any] = field(default_factory=dict)

    warnings: List[str] = field(default_factory=list)

    @property
    def k_all(self) -> int:
        """Number of studies given to the aggregator."""
        return len(self.te)

    @property
    def pooled(self) -> np.ndarray:
        """Boolean mask of studies contributing to pooled estimates."""
        return self.w_common > 0

    @property
    def k(self) -> int:
        """Number of studies pooled."""
        return int(np.sum(self.pooled))

    @property
    def tau(self) -> float:
        """Between-study standard deviation."""
        return float(np.sqrt(self.tau2))

    @property
    def has_subgroups(self) -> bool:
        return self.subgroup is not None

    def subgroup_labels(self) -> List[str]:
        """Subgroup labels as they would be printed."""
        labels = []
        for sg in self.subgroups:
            if self.print_subgroup_name and self.subgroup_name:
                labels.append(f"{self.subgroup_name}{self.sep_subgroup}{sg.name}")
            else:
                labels.append(str(sg.name))
        return labels

    def study_table(self) -> pd.DataFrame:
        """Per-study estimates, confidence limits and weights."""
        return pd.DataFrame({
            "studlab": self.studlab,
            "te": self.te,
            "se_te": self.se_te,
            "lower": self.lower,
            "upper": self.upper,
            "w_common": self.w_common,
            "w_random": self.w_random,
        })

    def subgroup_table(self) -> pd.DataFrame:
        """Pooled estimates per subgroup, one row per subgroup."""
        return pd.DataFrame([sg.to_dict() for sg in self.subgroups])

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "sm": self.sm,
            "k": self.k,
            "k_all": self.k_all,
            "studlab": [str(s) for s in self.studlab],
            "te": self.te.tolist(),
            "se_te": self.se_te.tolist(),
            "te_common": float(self.te_common),
            "se_te_common": float(self.se_te_common),
            "ci_common": [float(self.lower_common), float(self.upper_common)],
            "pval_common": float(self.pval_common),
            "te_random": float(self.te_random),
            "se_te_random": float(self.se_te_random),
            "ci_random": [float(self.lower_random), float(self.upper_random)],
            "pval_random": float(self.pval_random),
            "prediction_interval": [float(self.lower_predict), float(self.upper_predict)],
            "tau2": float(self.tau2),
            "tau2_ci": [float(self.lower_tau2), float(self.upper_tau2)],
            "q": float(self.q),
            "df_q": int(self.df_q),
            "pval_q": float(self.pval_q),
            "i2": float(self.i2),
            "h": float(self.h),
            "subgroups": [sg.to_dict() for sg in self.subgroups],
            "method_tau": self.method_tau,
            "hakn": self.hakn,
            "level": self.level,
            "level_ma": self.level_ma,
            "warnings": self.warnings,
        }
