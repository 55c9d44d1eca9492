"""
Heterogeneity statistics for smdmeta.

This module provides estimators of the between-study variance
(tau-squared) and the usual heterogeneity statistics (Cochran's Q,
I-squared, H). Estimators accept an optional design matrix so that a
common tau-squared can be estimated across subgroups.
"""

from __future__ import annotations
from typing import Optional, Dict, Any, Tuple
import numpy as np
from scipy import stats, optimize


TAU_METHODS = ("DL", "PM", "REML", "ML", "HS", "SJ", "EB")


def _design(n: int, X: Optional[np.ndarray]) -> np.ndarray:
    if X is None:
        return np.ones((n, 1))
    X = np.asarray(X, dtype=float)
    if X.ndim == 1:
        X = X.reshape(-1, 1)
    return X


def _wls(
    y: np.ndarray,
    X: np.ndarray,
    weights: np.ndarray
) -> Tuple[np.ndarray, np.ndarray]:
    """Weighted least squares; returns (beta, (X'WX)^-1)."""
    XtW = X.T * weights
    XtWX_inv = np.linalg.pinv(XtW @ X)
    beta = XtWX_inv @ XtW @ y
    return beta, XtWX_inv


def cochran_q(
    y: np.ndarray,
    se: np.ndarray,
    X: Optional[np.ndarray] = None
) -> Dict[str, float]:
    """
    Cochran's Q test for heterogeneity.

    Args:
        y: Effect estimates
        se: Standard errors
        X: Design matrix (default: intercept only)

    Returns:
        Dictionary with Q statistic, degrees of freedom, and p-value
    """
    y = np.asarray(y, dtype=float).flatten()
    se = np.asarray(se, dtype=float).flatten()
    X = _design(len(y), X)
    weights = 1 / se ** 2

    beta, _ = _wls(y, X, weights)
    q = float(np.sum(weights * (y - X @ beta) ** 2))
    df = len(y) - X.shape[1]
    pvalue = float(stats.chi2.sf(q, df)) if df > 0 else np.nan

    return {
        "Q": q,
        "df": int(df),
        "p_value": pvalue,
    }


def compute_i_squared(q: float, df: int) -> float:
    """
    I-squared statistic (proportion of variability due to heterogeneity).

    Args:
        q: Cochran's Q
        df: Degrees of freedom of Q

    Returns:
        I-squared value (0 to 1), NaN if df < 1
    """
    if df < 1:
        return np.nan
    if q <= df:
        return 0.0
    return (q - df) / q


def compute_h(q: float, df: int) -> float:
    """H statistic, sqrt(Q / df), bounded below by 1."""
    if df < 1:
        return np.nan
    return float(np.sqrt(max(1.0, q / df)))


def tau_squared_dl(
    y: np.ndarray,
    se: np.ndarray,
    X: Optional[np.ndarray] = None
) -> float:
    """
    DerSimonian-Laird moment estimator.

    Args:
        y: Effect estimates
        se: Standard errors
        X: Design matrix (default: intercept only)

    Returns:
        Estimated tau-squared
    """
    X = _design(len(y), X)
    weights = 1 / se ** 2
    beta, XtWX_inv = _wls(y, X, weights)
    q = np.sum(weights * (y - X @ beta) ** 2)
    df = len(y) - X.shape[1]

    # trace of the weighted projection
    c = np.sum(weights) - np.trace(XtWX_inv @ ((X.T * weights ** 2) @ X))
    if c <= 0:
        return 0.0
    return max(0.0, (q - df) / c)


def tau_squared_reml(
    y: np.ndarray,
    se: np.ndarray,
    X: Optional[np.ndarray] = None,
    max_iter: int = 100,
    tol: float = 1e-6
) -> Tuple[float, bool]:
    """
    Estimate tau-squared using REML (Fisher scoring).

    Args:
        y: Effect estimates
        se: Standard errors
        X: Design matrix
        max_iter: Maximum iterations
        tol: Convergence tolerance

    Returns:
        Tuple of (tau_squared, converged)
    """
    X = _design(len(y), X)
    variances = se ** 2

    # Initialize with DL estimate
    tau_sq = tau_squared_dl(y, se, X)

    converged = False
    for _ in range(max_iter):
        W = np.diag(1 / (variances + tau_sq))

        XtWX_inv = np.linalg.pinv(X.T @ W @ X)
        beta = XtWX_inv @ X.T @ W @ y
        residuals = y - X @ beta

        # Projection matrix
        P = W - W @ X @ XtWX_inv @ X.T @ W

        score = -0.5 * np.trace(P) + 0.5 * residuals.T @ P @ P @ residuals
        fisher = 0.5 * np.trace(P @ P)
        if fisher <= 0:
            break

        tau_sq_new = max(0.0, tau_sq + score / fisher)

        if abs(tau_sq_new - tau_sq) < tol:
            converged = True
            tau_sq = tau_sq_new
            break

        tau_sq = tau_sq_new

    return float(tau_sq), converged


def tau_squared_ml(
    y: np.ndarray,
    se: np.ndarray,
    X: Optional[np.ndarray] = None
) -> Tuple[float, bool]:
    """Estimate tau-squared using maximum likelihood."""
    X = _design(len(y), X)
    variances = se ** 2

    def neg_log_lik(tau_sq):
        if tau_sq < 0:
            return np.inf
        total_var = variances + tau_sq
        beta, _ = _wls(y, X, 1 / total_var)
        residuals = y - X @ beta
        return 0.5 * (np.sum(np.log(total_var)) + np.sum(residuals ** 2 / total_var))

    tau_sq_init = tau_squared_dl(y, se, X)

    result = optimize.minimize_scalar(
        neg_log_lik,
        bounds=(0, 10 * tau_sq_init + 1),
        method="bounded"
    )

    return float(max(0.0, result.x)), bool(result.success)


def tau_squared_pm(
    y: np.ndarray,
    se: np.ndarray,
    X: Optional[np.ndarray] = None
) -> float:
    """Estimate tau-squared using the Paule-Mandel method."""
    X = _design(len(y), X)
    n, p = X.shape
    variances = se ** 2

    def q_func(tau_sq):
        total_var = variances + tau_sq
        beta, _ = _wls(y, X, 1 / total_var)
        residuals = y - X @ beta
        return np.sum(residuals ** 2 / total_var) - (n - p)

    if q_func(0) <= 0:
        return 0.0

    tau_sq_dl = tau_squared_dl(y, se, X)
    upper = 10 * tau_sq_dl + 10
    while q_func(upper) > 0:
        upper *= 10

    result = optimize.brentq(q_func, 0, upper)
    return float(max(0.0, result))


def tau_squared_hs(
    y: np.ndarray,
    se: np.ndarray,
    X: Optional[np.ndarray] = None
) -> float:
    """Estimate tau-squared using the Hunter-Schmidt method."""
    X = _design(len(y), X)
    weights = 1 / se ** 2
    beta, _ = _wls(y, X, weights)
    q = np.sum(weights * (y - X @ beta) ** 2)
    return float(max(0.0, (q - len(y)) / np.sum(weights)))


def tau_squared_sj(
    y: np.ndarray,
    se: np.ndarray,
    X: Optional[np.ndarray] = None
) -> float:
    """Estimate tau-squared using the Sidik-Jonkman method."""
    X = _design(len(y), X)
    n, p = X.shape
    variances = se ** 2

    # Crude initial estimate from unweighted residuals
    beta_0, _ = _wls(y, X, np.ones(n))
    tau_sq_0 = np.sum((y - X @ beta_0) ** 2) / n
    if tau_sq_0 <= 0:
        return 0.0

    w = 1 / (variances / tau_sq_0 + 1)
    beta_1, _ = _wls(y, X, w)
    tau_sq = np.sum(w * (y - X @ beta_1) ** 2) / (n - p)

    return float(max(0.0, tau_sq))


def tau_squared_eb(
    y: np.ndarray,
    se: np.ndarray,
    X: Optional[np.ndarray] = None,
    max_iter: int = 100,
    tol: float = 1e-6
) -> Tuple[float, bool]:
    """Estimate tau-squared using the Morris empirical Bayes method."""
    X = _design(len(y), X)
    n, p = X.shape
    variances = se ** 2

    tau_sq = tau_squared_dl(y, se, X)
    converged = False
    for _ in range(max_iter):
        weights = 1 / (variances + tau_sq)
        beta, _ = _wls(y, X, weights)
        residuals = y - X @ beta
        tau_sq_new = max(
            0.0,
            np.sum(weights * (n / (n - p) * residuals ** 2 - variances)) / np.sum(weights)
        )
        if abs(tau_sq_new - tau_sq) < tol:
            converged = True
            tau_sq = tau_sq_new
            break
        tau_sq = tau_sq_new

    return float(tau_sq), converged


def estimate_tau_squared(
    y: np.ndarray,
    se: np.ndarray,
    method: str = "REML",
    X: Optional[np.ndarray] = None,
    control: Optional[Dict[str, Any]] = None
) -> Tuple[float, bool]:
    """
    Estimate between-study variance (tau-squared).

    Args:
        y: Effect estimates
        se: Standard errors
        method: Estimation method ('DL', 'PM', 'REML', 'ML', 'HS', 'SJ', 'EB')
        X: Design matrix (default: intercept only)
        control: Options for iterative estimators ('max_iter', 'tol')

    Returns:
        Tuple of (tau_squared, converged)
    """
    y = np.asarray(y, dtype=float).flatten()
    se = np.asarray(se, dtype=float).flatten()
    control = control or {}
    X = _design(len(y), X)

    # Not enough studies to separate heterogeneity from sampling error
    if len(y) <= X.shape[1]:
        return 0.0, True

    if method == "DL":
        return tau_squared_dl(y, se, X), True
    if method == "REML":
        tau_sq, converged = tau_squared_reml(
            y, se, X,
            max_iter=control.get("max_iter", 100),
            tol=control.get("tol", 1e-6),
        )
        return tau_sq, converged
    if method == "ML":
        return tau_squared_ml(y, se, X)
    if method == "PM":
        return tau_squared_pm(y, se, X), True
    if method == "HS":
        return tau_squared_hs(y, se, X), True
    if method == "SJ":
        return tau_squared_sj(y, se, X), True
    if method == "EB":
        return tau_squared_eb(
            y, se, X,
            max_iter=control.get("max_iter", 100),
            tol=control.get("tol", 1e-6),
        )

    raise ValueError(f"method must be one of {TAU_METHODS}, got '{method}'")


def tau_squared_ci(
    y: np.ndarray,
    se: np.ndarray,
    tau_sq: float,
    level: float = 0.95,
    X: Optional[np.ndarray] = None
) -> Tuple[float, float]:
    """
    Confidence interval for tau-squared using the Q-profile method.

    Args:
        y: Effect estimates
        se: Standard errors
        tau_sq: Point estimate of tau-squared
        level: Confidence level
        X: Design matrix (default: intercept only)

    Returns:
        Tuple of (lower, upper)
    """
    y = np.asarray(y, dtype=float).flatten()
    se = np.asarray(se, dtype=float).flatten()
    X = _design(len(y), X)
    n, p = X.shape
    variances = se ** 2
    df = n - p
    alpha = 1 - level

    if df <= 0:
        return (np.nan, np.nan)

    def q_func(tau):
        total_var = variances + tau
        beta, _ = _wls(y, X, 1 / total_var)
        residuals = y - X @ beta
        return np.sum(residuals ** 2 / total_var)

    q_crit_lower = stats.chi2.ppf(1 - alpha / 2, df)
    q_crit_upper = stats.chi2.ppf(alpha / 2, df)

    def solve(q_crit, upper):
        # Q is decreasing in tau, so widen until the bracket holds the root
        while q_func(upper) > q_crit:
            upper *= 10
        return optimize.brentq(lambda t: q_func(t) - q_crit, 0, upper)

    try:
        if q_func(0) <= q_crit_lower:
            tau_lower = 0.0
        else:
            tau_lower = solve(q_crit_lower, tau_sq * 10 + 10)
    except (ValueError, RuntimeError):
        tau_lower = 0.0

    try:
        if q_func(0) <= q_crit_upper:
            tau_upper = 0.0
        else:
            tau_upper = solve(q_crit_upper, tau_sq * 100 + 100)
    except (ValueError, RuntimeError):
        tau_upper = np.inf

    return (max(0.0, tau_lower), tau_upper)
