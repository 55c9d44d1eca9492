"""Tests for the generic inverse-variance meta-analysis."""

import warnings

import numpy as np
import pandas as pd
import pytest
from scipy import stats

from smdmeta import AggregationError, MetaResult, MetaSettings, metagen


def test_common_effect_is_weighted_mean(heterogeneous):
    y, se = heterogeneous
    m = metagen(y, se, method_tau="DL")

    w = 1 / se ** 2
    assert m.te_common == pytest.approx(np.sum(w * y) / np.sum(w))
    assert m.se_te_common == pytest.approx(np.sqrt(1 / np.sum(w)))
    np.testing.assert_allclose(m.w_common, w)
    assert m.k == m.k_all == 6
    assert m.df_q == 5
    assert m.q == pytest.approx(np.sum(w * (y - m.te_common) ** 2))


def test_random_effects_weights(heterogeneous):
    y, se = heterogeneous
    m = metagen(y, se, method_tau="DL")

    assert m.tau2 > 0
    assert m.tau == pytest.approx(np.sqrt(m.tau2))
    w = 1 / (se ** 2 + m.tau2)
    assert m.te_random == pytest.approx(np.sum(w * y) / np.sum(w))
    assert m.se_te_random > m.se_te_common
    assert 0 <= m.lower_tau2 < m.upper_tau2


def test_confidence_limits_for_studies():
    m = metagen([0.2, 0.5], [0.1, 0.2], level=0.9, method_tau="DL")
    z = stats.norm.ppf(0.95)
    np.testing.assert_allclose(m.lower, [0.2 - z * 0.1, 0.5 - z * 0.2])
    np.testing.assert_allclose(m.upper, [0.2 + z * 0.1, 0.5 + z * 0.2])


def test_single_study():
    m = metagen([0.4], [0.2])

    assert m.k == 1
    assert m.te_common == pytest.approx(0.4)
    assert m.te_random == pytest.approx(0.4)
    assert m.se_te_random == pytest.approx(0.2)
    assert np.isnan(m.tau2)
    assert np.isnan(m.lower_predict)
    assert m.warnings == []


def test_subset_equals_dropping_studies(heterogeneous):
    y, se = heterogeneous
    m_sub = metagen(y, se, subset=[0, 1, 2, 3], method_tau="DL")
    m_drop = metagen(y[:4], se[:4], method_tau="DL")

    assert m_sub.k_all == 6
    assert m_sub.k == 4
    assert m_sub.te_common == pytest.approx(m_drop.te_common)
    assert m_sub.te_random == pytest.approx(m_drop.te_random)
    assert m_sub.tau2 == pytest.approx(m_drop.tau2)


def test_exclude_keeps_study_without_weight(heterogeneous):
    y, se = heterogeneous
    m = metagen(y, se, exclude=[True, False, False, False, False, False],
                method_tau="DL")

    assert m.k_all == 6
    assert m.k == 5
    assert m.w_common[0] == 0
    assert m.w_random[0] == 0
    assert not m.pooled[0]
    assert m.te_common == pytest.approx(metagen(y[1:], se[1:], method_tau="DL").te_common)
    assert m.study_table()["te"].iloc[0] == y[0]


def test_hartung_knapp(heterogeneous):
    y, se = heterogeneous
    m = metagen(y, se, method_tau="DL", hakn=True)
    m_z = metagen(y, se, method_tau="DL")

    assert m.df_hakn == 5
    assert m_z.df_hakn is None
    assert m.te_random == pytest.approx(m_z.te_random)

    w = 1 / (se ** 2 + m.tau2)
    scale = np.sum(w * (y - m.te_random) ** 2) / 5
    assert m.se_te_random == pytest.approx(np.sqrt(scale / np.sum(w)))
    half_width = stats.t.ppf(0.975, 5) * m.se_te_random
    assert m.upper_random - m.te_random == pytest.approx(half_width)


def test_prediction_interval(heterogeneous):
    y, se = heterogeneous
    m = metagen(y, se, method_tau="DL", prediction=True)

    se_pred = np.sqrt(m.se_te_random ** 2 + m.tau2)
    half_width = stats.t.ppf(0.975, 4) * se_pred
    assert m.upper_predict - m.te_random == pytest.approx(half_width)
    assert m.lower_predict < m.lower_random


def test_no_prediction_interval_for_two_studies():
    m = metagen([0.1, 0.6], [0.2, 0.2], method_tau="DL")
    assert np.isnan(m.lower_predict)
    assert np.isnan(m.upper_predict)


def test_subgroups_match_separate_analyses(heterogeneous):
    y, se = heterogeneous
    groups = ["a", "a", "a", "b", "b", "b"]
    m = metagen(y, se, subgroup=groups, subgroup_name="dose", method_tau="DL")

    assert m.has_subgroups
    assert [sg.name for sg in m.subgroups] == ["a", "b"]
    assert m.subgroup_labels() == ["dose = a", "dose = b"]

    for sg, rows in zip(m.subgroups, (slice(0, 3), slice(3, 6))):
        single = metagen(y[rows], se[rows], method_tau="DL")
        assert sg.k == 3
        assert sg.te_common == pytest.approx(single.te_common)
        assert sg.te_random == pytest.approx(single.te_random)
        assert sg.tau2 == pytest.approx(single.tau2)

    assert m.df_q_b == 1
    assert m.q_b_common >= 0
    assert 0 <= m.pval_q_b_random <= 1
    assert len(m.subgroup_table()) == 2


def test_subgroup_labels_without_name(heterogeneous):
    y, se = heterogeneous
    m = metagen(y, se, subgroup=[1, 1, 2, 2, 3, 3], method_tau="DL",
                print_subgroup_name=False, subgroup_name="arm")
    assert m.subgroup_labels() == ["1", "2", "3"]


def test_subgroups_keep_order_of_appearance(heterogeneous):
    y, se = heterogeneous
    m = metagen(y, se, subgroup=["z", "a", "z", "a", "z", "a"], method_tau="DL")
    assert [sg.name for sg in m.subgroups] == ["z", "a"]


def test_common_tau_squared_across_subgroups(heterogeneous):
    y, se = heterogeneous
    m = metagen(y, se, subgroup=["a", "a", "a", "b", "b", "b"],
                method_tau="DL", tau_common=True)

    tau2 = {sg.tau2 for sg in m.subgroups}
    assert len(tau2) == 1
    assert tau2.pop() >= 0


def test_subgroup_from_data_column(fleiss93):
    fleiss93["period"] = np.where(fleiss93["year"] < 1980, "early", "late")
    m = metagen("lnor", "selnor", studlab="study", data=fleiss93,
                subgroup="period", method_tau="DL")

    assert [sg.k for sg in m.subgroups] == [4, 3]
    assert list(m.data[".subgroup"]) == list(fleiss93["period"])


def test_data_columns(fleiss93):
    m = metagen("lnor", "selnor", studlab="study", data=fleiss93,
                subset=[0, 1, 2], sm="OR", method_tau="DL")

    assert isinstance(m, MetaResult)
    assert m.sm == "OR"
    np.testing.assert_allclose(m.data[".te"], fleiss93["lnor"])
    np.testing.assert_allclose(m.data[".se_te"], fleiss93["selnor"])
    assert list(m.data[".studlab"]) == list(fleiss93["study"])
    assert list(m.data[".subset"]) == [True] * 3 + [False] * 4
    assert "year" in m.data.columns
    assert ".te" not in fleiss93.columns


def test_studies_with_zero_standard_error_are_skipped():
    with pytest.warns(UserWarning, match="non-positive standard error"):
        m = metagen([0.1, 0.5, 0.3], [0.2, 0.0, 0.25], method_tau="DL")

    assert m.k_all == 3
    assert m.k == 2
    assert m.w_common[1] == 0
    assert len(m.warnings) == 1


@pytest.mark.parametrize("value,expected", [
    ("D", "DL"),
    ("p", "PM"),
    ("RE", "REML"),
    ("ML", "ML"),
    ("H", "HS"),
    ("s", "SJ"),
    ("E", "EB"),
])
def test_method_tau_abbreviations(value, expected):
    m = metagen([0.1, 0.5, 0.3], [0.2, 0.2, 0.25], method_tau=value)
    assert m.method_tau == expected


@pytest.mark.parametrize("method_tau", ["DL", "PM", "REML", "ML", "HS", "SJ", "EB"])
def test_all_estimators_give_valid_results(heterogeneous, method_tau):
    y, se = heterogeneous
    m = metagen(y, se, method_tau=method_tau)
    assert m.tau2 >= 0
    assert m.lower_random < m.te_random < m.upper_random


def test_settings_provide_defaults(heterogeneous):
    y, se = heterogeneous
    settings = MetaSettings(method_tau="PM", hakn=True, level_ma=0.9)
    m = metagen(y, se, settings=settings)

    assert m.method_tau == "PM"
    assert m.hakn is True
    assert m.level_ma == 0.9
    assert m.control == {"max_iter": 100, "tol": 1e-6}

    m = metagen(y, se, settings=settings, method_tau="DL", control={"tol": 1e-8})
    assert m.method_tau == "DL"
    assert m.control == {"max_iter": 100, "tol": 1e-8}


def test_settings_with_options():
    settings = MetaSettings().with_options(prediction=True)
    assert settings.prediction is True
    assert settings.method_tau == "REML"


def test_to_dict(heterogeneous):
    y, se = heterogeneous
    d = metagen(y, se, method_tau="DL").to_dict()
    assert d["k"] == 6
    assert d["studlab"] == ["1", "2", "3", "4", "5", "6"]


@pytest.mark.parametrize("kwargs", [
    {"level": 1.5},
    {"level_ma": 0},
    {"level_predict": -0.1},
    {"method_tau": "XY"},
    {"studlab": ["a", "b"]},
    {"subgroup": ["a"]},
    {"subset": [0, 7]},
    {"exclude": [True, False]},
])
def test_invalid_arguments(kwargs):
    with pytest.raises(AggregationError):
        metagen([0.1, 0.5, 0.3], [0.2, 0.2, 0.25], **kwargs)


def test_length_mismatch():
    with pytest.raises(AggregationError):
        metagen([0.1, 0.5, 0.3], [0.2, 0.2])


def test_no_studies():
    with pytest.raises(AggregationError):
        metagen([], [])


def test_unknown_column():
    data = pd.DataFrame({"y": [0.1, 0.2], "s": [0.1, 0.1]})
    with pytest.raises(AggregationError, match="'se'"):
        metagen("y", "se", data=data)


def test_data_row_count():
    data = pd.DataFrame({"y": [0.1, 0.2, 0.3]})
    with pytest.raises(AggregationError):
        metagen([0.1, 0.2], [0.1, 0.1], data=data)


def test_all_studies_excluded():
    m = metagen([0.1, 0.5], [0.2, 0.2], exclude=[0, 1], method_tau="DL")

    assert m.k_all == 2
    assert m.k == 0
    assert np.isnan(m.te_common)
    assert np.isnan(m.te_random)
    assert np.isnan(m.tau2)
    np.testing.assert_array_equal(m.w_common, [0, 0])


def test_two_studies_have_finite_tau_squared_interval():
    m = metagen([0.0, 1.0], [0.1, 0.1], method_tau="DL")
    assert m.tau2 == pytest.approx(0.49)
    assert m.upper_tau2 == pytest.approx(0.5 / stats.chi2.ppf(0.025, 1) - 0.01, rel=1e-6)


def test_hartung_knapp_with_identical_estimates():
    with warnings.catch_warnings():
        warnings.simplefilter("error")
        m = metagen([0.3, 0.3, 0.3], [0.1, 0.2, 0.15], method_tau="DL", hakn=True)

    assert m.te_random == pytest.approx(0.3)
    assert m.se_te_random == pytest.approx(0, abs=1e-12)
    assert m.pval_random == pytest.approx(0, abs=1e-12)
    assert m.lower_random == pytest.approx(0.3)
    assert m.upper_random == pytest.approx(0.3)
