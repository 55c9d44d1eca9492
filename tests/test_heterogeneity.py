"""Tests for heterogeneity statistics and tau-squared estimators."""

import numpy as np
import pytest
from scipy import stats

from smdmeta import cochran_q, compute_i_squared, estimate_tau_squared
from smdmeta.diagnostics.heterogeneity import (
    TAU_METHODS,
    compute_h,
    tau_squared_ci,
)


@pytest.mark.parametrize("method", TAU_METHODS)
def test_homogeneous_studies_give_zero(method):
    y = np.full(5, 0.3)
    se = np.array([0.1, 0.2, 0.15, 0.3, 0.25])
    tau2, converged = estimate_tau_squared(y, se, method)
    assert converged
    assert tau2 == pytest.approx(0, abs=1e-4)


def test_dersimonian_laird_closed_form(heterogeneous):
    y, se = heterogeneous
    w = 1 / se ** 2
    theta = np.sum(w * y) / np.sum(w)
    q = np.sum(w * (y - theta) ** 2)
    expected = (q - (len(y) - 1)) / (np.sum(w) - np.sum(w ** 2) / np.sum(w))

    tau2, converged = estimate_tau_squared(y, se, "DL")
    assert converged
    assert tau2 == pytest.approx(expected)


def test_paule_mandel_solves_generalised_q(heterogeneous):
    y, se = heterogeneous
    tau2, _ = estimate_tau_squared(y, se, "PM")

    w = 1 / (se ** 2 + tau2)
    theta = np.sum(w * y) / np.sum(w)
    assert np.sum(w * (y - theta) ** 2) == pytest.approx(len(y) - 1, rel=1e-6)


def test_reml_converges(heterogeneous):
    y, se = heterogeneous
    tau2, converged = estimate_tau_squared(y, se, "REML")
    assert converged
    assert tau2 > 0


def test_reml_iteration_limit(heterogeneous):
    y, se = heterogeneous
    _, converged = estimate_tau_squared(y, se, "REML", control={"max_iter": 1, "tol": 1e-12})
    assert not converged


def test_ml_smaller_than_reml(heterogeneous):
    y, se = heterogeneous
    tau2_ml, _ = estimate_tau_squared(y, se, "ML")
    tau2_reml, _ = estimate_tau_squared(y, se, "REML")
    assert tau2_ml <= tau2_reml


def test_single_study_has_no_heterogeneity():
    assert estimate_tau_squared([0.5], [0.1], "REML") == (0.0, True)


def test_unknown_method(heterogeneous):
    y, se = heterogeneous
    with pytest.raises(ValueError):
        estimate_tau_squared(y, se, "XYZ")


@pytest.mark.parametrize("method", TAU_METHODS)
def test_design_matrix(heterogeneous, method):
    y, se = heterogeneous
    X = np.column_stack([np.ones(6), [0, 0, 0, 1, 1, 1]])
    tau2, _ = estimate_tau_squared(y, se, method, X=X)
    tau2_intercept, _ = estimate_tau_squared(y, se, method)
    assert 0 <= tau2
    assert np.isfinite(tau2_intercept)


def test_q_profile_contains_paule_mandel(heterogeneous):
    y, se = heterogeneous
    tau2, _ = estimate_tau_squared(y, se, "PM")
    lower, upper = tau_squared_ci(y, se, tau2, level=0.95)
    assert 0 <= lower < tau2 < upper


def test_q_profile_for_homogeneous_studies():
    y = np.array([0.3, 0.5, 0.1, 0.35])
    se = np.array([0.2, 0.2, 0.2, 0.2])
    lower, upper = tau_squared_ci(y, se, 0.0)
    assert lower == 0
    assert 0 < upper < np.inf


def test_q_profile_for_identical_estimates():
    lower, upper = tau_squared_ci(np.full(4, 0.3), np.full(4, 0.2), 0.0)
    assert lower == upper == 0


def test_q_profile_needs_two_studies():
    lower, upper = tau_squared_ci([0.3], [0.1], 0.0)
    assert np.isnan(lower) and np.isnan(upper)


def test_cochran_q(heterogeneous):
    y, se = heterogeneous
    result = cochran_q(y, se)
    assert result["df"] == 5
    assert result["Q"] > result["df"]
    assert 0 < result["p_value"] < 0.05


def test_i_squared_and_h():
    assert compute_i_squared(20.0, 5) == pytest.approx(0.75)
    assert compute_i_squared(3.0, 5) == 0.0
    assert np.isnan(compute_i_squared(0.0, 0))
    assert compute_h(20.0, 5) == pytest.approx(2.0)
    assert compute_h(3.0, 5) == 1.0


def test_q_profile_for_two_studies():
    y = np.array([0.0, 1.0])
    se = np.array([0.1, 0.1])
    tau2, _ = estimate_tau_squared(y, se, "DL")
    lower, upper = tau_squared_ci(y, se, tau2)

    # Q(tau2) = 0.5 / (0.01 + tau2) for two equally precise studies
    assert upper == pytest.approx(0.5 / stats.chi2.ppf(0.025, 1) - 0.01, rel=1e-6)
    assert lower == pytest.approx(0.5 / stats.chi2.ppf(0.975, 1) - 0.01, rel=1e-6)
