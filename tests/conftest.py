import matplotlib

matplotlib.use("Agg")

import numpy as np
import pandas as pd
import pytest

from qc_drift_correction import DriftConfig, SampleSet, make_qc_object


def linear_decay_table(n_features=5, n_injections=10, decay=0.1):
    """Features sharing a linear decay of `decay` over the run (no noise)."""
    inj = np.arange(1, n_injections + 1)
    profile = 1 - decay * (inj - 1) / (n_injections - 1)
    base = 100.0 * np.arange(1, n_features + 1)
    table = pd.DataFrame(
        np.outer(profile, base),
        columns=[f"F{i}" for i in range(1, n_features + 1)],
    )
    return table, inj


def two_pattern_table(n_per_group=6, seed=0):
    """Half the features decay over the run, half rise; tiny noise."""
    rng = np.random.default_rng(seed)
    inj = np.array([1, 4, 7, 10, 13, 16, 19, 22])
    t = (inj - 1) / (inj.max() - 1)
    cols = {}
    for i in range(n_per_group):
        cols[f"down{i}"] = (50 + 10 * i) * (1 - 0.3 * t) * (1 + rng.normal(0, 0.002, len(t)))
    for i in range(n_per_group):
        cols[f"up{i}"] = (80 + 10 * i) * (1 + 0.3 * t) * (1 + rng.normal(0, 0.002, len(t)))
    return pd.DataFrame(cols), inj


def drifting_batch(n_features=8, qc_every=3, n_qc=10, seed=1):
    """
    Whole-batch peak table with QC, reference and study samples.

    Every feature drifts down by 10% over the run. QC and reference samples
    carry 0.5% noise, study samples a biological spread. QC injections
    bracket the run.
    """
    rng = np.random.default_rng(seed)
    n = qc_every * (n_qc - 1) + 1
    inj = np.arange(1, n + 1)
    groups = np.array(["sample"] * n, dtype=object)
    groups[(inj - 1) % qc_every == 0] = "QC"
    groups[[1, 11, 20]] = "Ref"
    drift = 1 - 0.1 * (inj - 1) / (n - 1)
    base = rng.uniform(100, 1000, n_features)
    spread = np.where(
        (groups == "sample")[:, None],
        rng.lognormal(0, 0.2, (n, n_features)),
        1 + rng.normal(0, 0.005, (n, n_features)),
    )
    ref_shift = np.where((groups == "Ref")[:, None], 1.3, 1.0)
    table = pd.DataFrame(
        np.outer(drift, base) * spread * ref_shift,
        columns=[f"M{i:03d}" for i in range(n_features)],
        index=[f"S{i:03d}" for i in inj],
    )
    return table, inj, groups


@pytest.fixture
def decay_qc():
    table, inj = linear_decay_table()
    return make_qc_object(table, inj)


@pytest.fixture
def two_pattern_qc():
    table, inj = two_pattern_table()
    return make_qc_object(table, inj)


@pytest.fixture
def small_config():
    return DriftConfig(model_shapes=("spherical",), n_clusters=(1, 2))


@pytest.fixture
def flat_reference():
    """Reference series without drift, injected between the QC injections."""
    inj = np.array([2, 5, 8])
    wiggle = np.array([1.0, 1.01, 0.99])
    features = pd.DataFrame(
        np.outer(wiggle, np.ones(5)),
        columns=[f"F{i}" for i in range(1, 6)],
    )
    return SampleSet(features=features, injections=inj)
