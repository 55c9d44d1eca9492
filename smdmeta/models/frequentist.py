"""
Generic inverse-variance meta-analysis for smdmeta.

This module implements the default aggregator: common effect and
random effects pooling of study estimates with standard errors,
heterogeneity statistics, prediction intervals and subgroup analyses.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Optional, Dict, Any, List, Tuple
import logging
import warnings
import numpy as np
import pandas as pd
from scipy import stats

from smdmeta.errors import AggregationError, InvalidChoiceError
from smdmeta.settings import MetaSettings, DEFAULT_SETTINGS
from smdmeta.models.base import MetaResult, SubgroupResult
from smdmeta.diagnostics.heterogeneity import (
    TAU_METHODS,
    cochran_q,
    compute_i_squared,
    compute_h,
    estimate_tau_squared,
    tau_squared_ci,
)
from smdmeta.utils import (
    as_selection_mask,
    ci_from_se,
    p_value_from_t,
    p_value_from_z,
    set_choice,
    t_score,
    validate_probability,
    z_score,
)

logger = logging.getLogger(__name__)


@dataclass
class InverseVarianceModel:
    """
    Common effect and random effects inverse-variance model.

    Implements the model:
        y_j | theta_j, s_j^2 ~ N(theta_j, s_j^2)
        theta_j = theta + u_j
        u_j ~ N(0, tau^2)

    Attributes:
        method_tau: Between-study variance estimator
        level_ma: Confidence level for pooled estimates
        level_predict: Level of the prediction interval
        hakn: Use Hartung-Knapp adjustment for the random effects model
        null_effect: Effect under the null hypothesis
        control: Options for iterative tau-squared estimators
    """

    method_tau: str = "REML"
    level_ma: float = 0.95
    level_predict: float = 0.95
    hakn: bool = False
    null_effect: float = 0.0
    control: Dict[str, Any] = field(default_factory=dict)

    warnings: List[str] = field(default_factory=list, repr=False)

    def fit(
        self,
        y: np.ndarray,
        se: np.ndarray,
        tau2: Optional[float] = None
    ) -> Dict[str, Any]:
        """
        Pool effect estimates.

        Args:
            y: Effect estimates of the studies to pool
            se: Standard errors (finite and positive)
            tau2: Fixed between-study variance; estimated when None

        Returns:
            Dictionary of pooled estimates and heterogeneity statistics
        """
        y = np.asarray(y, dtype=float)
        se = np.asarray(se, dtype=float)
        k = len(y)

        out: Dict[str, Any] = {"k": k}
        if k == 0:
            return out

        # Common effect model
        w_common = 1 / se ** 2
        te_common = np.sum(w_common * y) / np.sum(w_common)
        se_common = np.sqrt(1 / np.sum(w_common))
        lower_common, upper_common = ci_from_se(te_common, se_common, self.level_ma)
        z_common = (te_common - self.null_effect) / se_common

        out.update(
            w_common=w_common,
            te_common=te_common,
            se_te_common=se_common,
            lower_common=lower_common,
            upper_common=upper_common,
            statistic_common=z_common,
            pval_common=p_value_from_z(z_common),
        )

        # Heterogeneity
        if k > 1:
            het = cochran_q(y, se)
            out.update(
                q=het["Q"],
                df_q=het["df"],
                pval_q=het["p_value"],
                i2=compute_i_squared(het["Q"], het["df"]),
                h=compute_h(het["Q"], het["df"]),
            )
        else:
            out.update(q=0.0, df_q=0)

        # Between-study variance
        if tau2 is None:
            if k > 1:
                tau2, converged = estimate_tau_squared(
                    y, se, self.method_tau, control=self.control
                )
                if not converged:
                    self.warnings.append(
                        f"{self.method_tau} did not converge; using last estimate"
                    )
                lower_tau2, upper_tau2 = tau_squared_ci(y, se, tau2, self.level_ma)
                out.update(tau2=tau2, lower_tau2=lower_tau2, upper_tau2=upper_tau2)
                tau2_used = tau2
            else:
                tau2_used = 0.0
        else:
            out.update(tau2=tau2)
            tau2_used = tau2

        # Random effects model
        w_random = 1 / (se ** 2 + tau2_used)
        te_random = np.sum(w_random * y) / np.sum(w_random)
        se_random = np.sqrt(1 / np.sum(w_random))

        if self.hakn and k > 1:
            # Hartung-Knapp variance scaling with t quantile
            df = k - 1
            scale = np.sum(w_random * (y - te_random) ** 2) / df
            se_random = np.sqrt(scale / np.sum(w_random))
            crit = t_score(self.level_ma, df)
            # Identical estimates give a zero scale and a zero standard error
            with np.errstate(divide="ignore", invalid="ignore"):
                statistic = (te_random - self.null_effect) / se_random
            pval = p_value_from_t(statistic, df)
            out["df_hakn"] = df
        else:
            crit = z_score(self.level_ma)
            statistic = (te_random - self.null_effect) / se_random
            pval = p_value_from_z(statistic)

        lower_random, upper_random = ci_from_se(
            te_random, se_random, self.level_ma, quantile=crit
        )
        out.update(
            w_random=w_random,
            te_random=te_random,
            se_te_random=se_random,
            lower_random=lower_random,
            upper_random=upper_random,
            statistic_random=statistic,
            pval_random=pval,
        )

        # Prediction interval
        if k >= 3:
            se_predict = np.sqrt(se_random ** 2 + tau2_used)
            lower_predict, upper_predict = ci_from_se(
                te_random, se_predict, self.level_predict,
                quantile=t_score(self.level_predict, k - 2)
            )
            out.update(lower_predict=lower_predict, upper_predict=upper_predict)

        return out


def _column(value: Any, data: Optional[pd.DataFrame], name: str) -> Any:
    """Look up a column of data when value is a column name."""
    if not isinstance(value, str):
        return value
    if data is None or value not in data.columns:
        raise AggregationError(
            f"Argument '{name}' refers to column '{value}' which is not in 'data'."
        )
    return data[value].to_numpy()


def _choice(value: str, choices, name: str) -> str:
    try:
        return set_choice(value, choices, name=name)
    except InvalidChoiceError as e:
        raise AggregationError(str(e)) from e


def _between_groups_q(
    estimates: np.ndarray,
    ses: np.ndarray
) -> Tuple[float, int, float]:
    """Test for subgroup differences from subgroup estimates."""
    ok = np.isfinite(estimates) & np.isfinite(ses) & (ses > 0)
    estimates, ses = estimates[ok], ses[ok]
    df = len(estimates) - 1
    if df < 1:
        return np.nan, 0, np.nan
    w = 1 / ses ** 2
    pooled = np.sum(w * estimates) / np.sum(w)
    q = float(np.sum(w * (estimates - pooled) ** 2))
    return q, df, float(stats.chi2.sf(q, df))


def _subgroup_analysis(
    model: InverseVarianceModel,
    y: np.ndarray,
    se: np.ndarray,
    groups: np.ndarray,
    tau_common: bool
) -> List[SubgroupResult]:
    levels = [g for g in pd.unique(groups) if not pd.isna(g)]

    common_tau2 = None
    if tau_common and levels:
        grouped = np.array([not pd.isna(g) for g in groups], dtype=bool)
        X = np.column_stack([groups[grouped] == g for g in levels]).astype(float)
        common_tau2, converged = estimate_tau_squared(
            y[grouped], se[grouped], model.method_tau, X=X, control=model.control
        )
        if not converged:
            model.warnings.append(
                f"{model.method_tau} did not converge for common tau-squared"
            )

    results = []
    for level in levels:
        in_group = groups == level
        fit = model.fit(y[in_group], se[in_group], tau2=common_tau2)
        results.append(SubgroupResult(
            name=str(level),
            k=fit["k"],
            te_common=fit.get("te_common", np.nan),
            se_te_common=fit.get("se_te_common", np.nan),
            lower_common=fit.get("lower_common", np.nan),
            upper_common=fit.get("upper_common", np.nan),
            te_random=fit.get("te_random", np.nan),
            se_te_random=fit.get("se_te_random", np.nan),
            lower_random=fit.get("lower_random", np.nan),
            upper_random=fit.get("upper_random", np.nan),
            tau2=fit.get("tau2", np.nan),
            q=fit.get("q", np.nan),
            df_q=fit.get("df_q", 0),
            i2=fit.get("i2", np.nan),
        ))
    return results


def metagen(
    te,
    se_te,
    studlab=None,
    data=None,
    subset=None,
    exclude=None,
    sm: str = "",
    level: Optional[float] = None,
    level_ma: Optional[float] = None,
    common: Optional[bool] = None,
    random: Optional[bool] = None,
    hakn: Optional[bool] = None,
    method_tau: Optional[str] = None,
    tau_common: Optional[bool] = None,
    prediction: Optional[bool] = None,
    level_predict: Optional[float] = None,
    null_effect: float = 0.0,
    method_bias: Optional[str] = None,
    title: str = "",
    complab: str = "",
    outclab: str = "",
    label_e: str = "",
    label_c: str = "",
    label_left: str = "",
    label_right: str = "",
    subgroup=None,
    subgroup_name: Optional[str] = None,
    print_subgroup_name: Optional[bool] = None,
    sep_subgroup: Optional[str] = None,
    control: Optional[Dict[str, Any]] = None,
    settings: Optional[MetaSettings] = None,
) -> MetaResult:
    """
    Generic inverse-variance meta-analysis.

    Args:
        te: Study effect estimates (or column name in data)
        se_te: Study standard errors (or column name in data)
        studlab: Study labels (default "1".."k")
        data: Optional table (DataFrame or mapping of columns)
        subset: Boolean mask or 0-based indices of studies to analyse
        exclude: Boolean mask or 0-based indices of studies to exclude
            from pooling while keeping them in the result
        sm: Summary measure label
        level: Confidence level for individual studies
        level_ma: Confidence level for pooled estimates
        common: Report the common effect model
        random: Report the random effects model
        hakn: Hartung-Knapp adjustment for the random effects model
        method_tau: Between-study variance estimator
            ('DL', 'PM', 'REML', 'ML', 'HS', 'SJ', 'EB')
        tau_common: Common between-study variance across subgroups
        prediction: Report a prediction interval
        level_predict: Level of the prediction interval
        null_effect: Effect under the null hypothesis
        method_bias: Test for funnel plot asymmetry
        title, complab, outclab: Descriptive labels
        label_e, label_c, label_left, label_right: Group and axis labels
        subgroup: Subgroup membership of each study (or column name)
        subgroup_name: Name of the subgroup variable
        print_subgroup_name: Print subgroup name in subgroup labels
        sep_subgroup: Separator between subgroup name and level
        control: Options for iterative tau-squared estimators
        settings: Defaults for options not given (default: DEFAULT_SETTINGS)

    Returns:
        MetaResult
    """
    settings = settings or DEFAULT_SETTINGS

    if data is not None and not isinstance(data, pd.DataFrame):
        data = pd.DataFrame(data)

    te = np.atleast_1d(np.array(_column(te, data, "te"), dtype=float))
    se_te = np.atleast_1d(np.array(_column(se_te, data, "se_te"), dtype=float))
    k_all = len(te)

    if k_all == 0:
        raise AggregationError("No studies to pool.")
    if len(se_te) != k_all:
        raise AggregationError(
            f"Arguments 'te' and 'se_te' must have the same length ({k_all} != {len(se_te)})."
        )
    if data is not None and len(data) != k_all:
        raise AggregationError(
            f"Argument 'data' must have {k_all} rows, got {len(data)}."
        )

    studlab = _column(studlab, data, "studlab")
    if studlab is None:
        studlab = np.array([str(i) for i in range(1, k_all + 1)], dtype=object)
    else:
        studlab = np.atleast_1d(np.array(studlab, dtype=object))
        if len(studlab) != k_all:
            raise AggregationError(
                f"Argument 'studlab' must have length {k_all}, got {len(studlab)}."
            )

    subset = _column(subset, data, "subset")
    exclude = _column(exclude, data, "exclude")
    if subset is not None:
        subset = as_selection_mask(subset, k_all, "subset", error=AggregationError)
    if exclude is not None:
        exclude = as_selection_mask(exclude, k_all, "exclude", error=AggregationError)

    subgroup = _column(subgroup, data, "subgroup")
    if subgroup is not None:
        subgroup = np.atleast_1d(np.array(subgroup, dtype=object))
        if len(subgroup) != k_all:
            raise AggregationError(
                f"Argument 'subgroup' must have length {k_all}, got {len(subgroup)}."
            )

    # Options
    level = settings.level if level is None else level
    level_ma = settings.level_ma if level_ma is None else level_ma
    level_predict = settings.level_predict if level_predict is None else level_predict
    for name, value in (("level", level), ("level_ma", level_ma),
                        ("level_predict", level_predict)):
        validate_probability(value, name, error=AggregationError)

    common = settings.common if common is None else common
    random = settings.random if random is None else random
    hakn = settings.hakn if hakn is None else hakn
    tau_common = settings.tau_common if tau_common is None else tau_common
    prediction = settings.prediction if prediction is None else prediction
    method_tau = _choice(
        settings.method_tau if method_tau is None else method_tau,
        TAU_METHODS, "method_tau"
    )
    method_bias = settings.method_bias if method_bias is None else method_bias
    print_subgroup_name = (
        settings.print_subgroup_name if print_subgroup_name is None
        else print_subgroup_name
    )
    sep_subgroup = settings.sep_subgroup if sep_subgroup is None else sep_subgroup
    control = {**settings.control, **(control or {})}

    # Studies contributing to pooled estimates
    selected = np.ones(k_all, dtype=bool) if subset is None else subset
    if exclude is not None:
        selected = selected & ~exclude
    with np.errstate(invalid="ignore"):
        usable = np.isfinite(te) & np.isfinite(se_te) & (se_te > 0)

    messages = []
    n_unusable = int(np.sum(selected & ~usable))
    if n_unusable:
        messages.append(
            f"{n_unusable} studies with missing or non-positive standard error "
            f"not considered in meta-analysis"
        )
    pooled = selected & usable

    logger.debug(
        "Pooling %d of %d studies (sm=%s, method_tau=%s, hakn=%s)",
        int(pooled.sum()), k_all, sm, method_tau, hakn
    )

    model = InverseVarianceModel(
        method_tau=method_tau,
        level_ma=level_ma,
        level_predict=level_predict,
        hakn=hakn,
        null_effect=null_effect,
        control=control,
    )
    fit = model.fit(te[pooled], se_te[pooled])

    w_common = np.zeros(k_all)
    w_random = np.zeros(k_all)
    if fit["k"] > 0:
        w_common[pooled] = fit["w_common"]
        w_random[pooled] = fit["w_random"]

    with np.errstate(invalid="ignore"):
        lower, upper = ci_from_se(te, se_te, level)

    # Per-study table
    table = pd.DataFrame(index=range(k_all)) if data is None else data.copy()
    table[".te"] = te
    table[".se_te"] = se_te
    table[".studlab"] = studlab
    if subset is not None:
        table[".subset"] = subset
    if exclude is not None:
        table[".exclude"] = exclude
    if subgroup is not None:
        table[".subgroup"] = subgroup

    result = MetaResult(
        te=te,
        se_te=se_te,
        studlab=studlab,
        sm=sm,
        lower=lower,
        upper=upper,
        subset=subset,
        exclude=exclude,
        data=table,
        w_common=w_common,
        w_random=w_random,
        te_common=fit.get("te_common", np.nan),
        se_te_common=fit.get("se_te_common", np.nan),
        lower_common=fit.get("lower_common", np.nan),
        upper_common=fit.get("upper_common", np.nan),
        statistic_common=fit.get("statistic_common", np.nan),
        pval_common=fit.get("pval_common", np.nan),
        te_random=fit.get("te_random", np.nan),
        se_te_random=fit.get("se_te_random", np.nan),
        lower_random=fit.get("lower_random", np.nan),
        upper_random=fit.get("upper_random", np.nan),
        statistic_random=fit.get("statistic_random", np.nan),
        pval_random=fit.get("pval_random", np.nan),
        df_hakn=fit.get("df_hakn"),
        lower_predict=fit.get("lower_predict", np.nan),
        upper_predict=fit.get("upper_predict", np.nan),
        tau2=fit.get("tau2", np.nan),
        lower_tau2=fit.get("lower_tau2", np.nan),
        upper_tau2=fit.get("upper_tau2", np.nan),
        q=fit.get("q", np.nan),
        df_q=fit.get("df_q", 0),
        pval_q=fit.get("pval_q", np.nan),
        i2=fit.get("i2", np.nan),
        h=fit.get("h", np.nan),
        subgroup=subgroup,
        level=level,
        level_ma=level_ma,
        common=common,
        random=random,
        hakn=hakn,
        method_tau=method_tau,
        tau_common=tau_common,
        prediction=prediction,
        level_predict=level_predict,
        null_effect=null_effect,
        method_bias=method_bias,
        title=title,
        complab=complab,
        outclab=outclab,
        label_e=label_e,
        label_c=label_c,
        label_left=label_left,
        label_right=label_right,
        subgroup_name=subgroup_name,
        print_subgroup_name=print_subgroup_name,
        sep_subgroup=sep_subgroup,
        control=control,
    )

    if subgroup is not None:
        result.subgroups = _subgroup_analysis(
            model, te[pooled], se_te[pooled], subgroup[pooled], tau_common
        )
        te_c = np.array([sg.te_common for sg in result.subgroups])
        se_c = np.array([sg.se_te_common for sg in result.subgroups])
        te_r = np.array([sg.te_random for sg in result.subgroups])
        se_r = np.array([sg.se_te_random for sg in result.subgroups])
        result.q_b_common, result.df_q_b, result.pval_q_b_common = _between_groups_q(te_c, se_c)
        result.q_b_random, _, result.pval_q_b_random = _between_groups_q(te_r, se_r)

    messages.extend(model.warnings)
    for message in messages:
        warnings.warn(message)
    result.warnings = messages

    return result
