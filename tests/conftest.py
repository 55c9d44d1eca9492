"""Shared fixtures for smdmeta tests."""

import numpy as np
import pandas as pd
import pytest

from smdmeta import metagen


@pytest.fixture
def fleiss93() -> pd.DataFrame:
    """Aspirin after myocardial infarction (Fleiss, 1993) with log odds ratios."""
    df = pd.DataFrame({
        "study": ["MRC-1", "CDP", "MRC-2", "GASP", "PARIS", "AMIS", "ISIS-2"],
        "year": [1974, 1976, 1979, 1979, 1980, 1980, 1988],
        "event_e": [49, 44, 102, 32, 85, 246, 1570],
        "n_e": [615, 758, 832, 317, 810, 2267, 8587],
        "event_c": [67, 64, 126, 38, 52, 219, 1720],
        "n_c": [624, 771, 850, 309, 406, 2257, 8600],
    })
    a, c = df["event_e"], df["event_c"]
    b, d = df["n_e"] - a, df["n_c"] - c
    df["lnor"] = np.log((a * d) / (b * c))
    df["selnor"] = np.sqrt(1 / a + 1 / b + 1 / c + 1 / d)
    return df


@pytest.fixture
def heterogeneous():
    """Clearly heterogeneous effect estimates with standard errors."""
    y = np.array([0.1, 0.9, -0.4, 1.5, 0.3, 1.1])
    se = np.array([0.2, 0.25, 0.3, 0.2, 0.15, 0.3])
    return y, se


@pytest.fixture
def or_meta(fleiss93):
    """Odds ratio meta-analysis of the Fleiss (1993) studies."""
    return metagen(
        fleiss93["lnor"], fleiss93["selnor"],
        studlab=fleiss93["study"] + " " + fleiss93["year"].astype(str),
        sm="OR",
        method_tau="DL",
        hakn=True,
        prediction=True,
        title="Aspirin after myocardial infarction",
    )


@pytest.fixture
def echo():
    """Aggregator stub returning its inputs."""
    calls = []

    def aggregator(te, se_te, **kwargs):
        calls.append(kwargs)
        return {"te": te, "se_te": se_te, **kwargs}

    aggregator.calls = calls
    return aggregator
