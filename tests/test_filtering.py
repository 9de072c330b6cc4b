import numpy as np
import pandas as pd
import pytest

from qc_drift_correction import (
    DimensionMismatchError,
    InvalidInputError,
    calculate_drift,
    cluster_features,
    correct_clusters,
    filter_features,
    make_qc_object,
    project_features,
    stable_features,
)
from qc_drift_correction.constants import FINAL_ACTION_COLUMNS

from conftest import linear_decay_table


@pytest.fixture
def mixed_correction():
    """Five features decaying by 10% plus one feature tripling over the run, in one cluster."""
    table, inj = linear_decay_table()
    table["R"] = 100.0 * (1 + 2 * (inj - 1) / (len(inj) - 1))
    qc = make_qc_object(table, inj)
    clustering = cluster_features(qc, model_shapes=("spherical",), n_clusters=(1,))
    drift = calculate_drift(clustering, smooth_method="spline", smoothing=0.2)
    return correct_clusters(drift)


def test_stable_features():
    df = pd.DataFrame(
        {
            "steady": [1.0, 1.05, 0.95],
            "noisy": [1.0, 2.0, 0.5],
            "centred": [-1.0, 0.0, 1.0],
        }
    )
    assert list(stable_features(df, 0.2)) == ["steady"]


@pytest.mark.parametrize("limit", [0, 1, 1.5, -0.1])
def test_stable_features_limit_range(limit):
    with pytest.raises(InvalidInputError):
        stable_features(pd.DataFrame({"a": [1.0, 2.0]}), limit)


def test_project_features_missing_column():
    with pytest.raises(DimensionMismatchError):
        project_features(pd.DataFrame({"a": [1.0]}), ["a", "b"])


def test_unstable_feature_is_removed(mixed_correction):
    result = filter_features(mixed_correction, cv_limit=0.2)
    expected = ["F1", "F2", "F3", "F4", "F5"]
    assert list(result.final_features) == expected
    assert list(result.qc_final.columns) == expected
    assert list(result.test_final.columns) == expected
    assert (result.feature_cvs <= 0.2).all()
    assert "R" in result.qc_corrected.columns


def test_action_info_counts(mixed_correction):
    result = filter_features(mixed_correction, cv_limit=0.2)
    info = result.action_info
    assert list(info.columns) == FINAL_ACTION_COLUMNS
    assert info["n_before"].sum() == 6
    assert info["n_after"].sum() == len(result.final_features)


def test_final_cv_not_above_corrected(mixed_correction):
    result = filter_features(mixed_correction, cv_limit=0.2)
    cvs = result.qc_cvs
    assert list(cvs.index) == ["cv_raw", "cv_clean", "cv_corrected", "cv_final"]
    assert cvs["cv_final"] <= cvs["cv_corrected"]
    assert cvs["cv_final"] <= 0.2
    assert result.reference_rmsd is None


def test_filtering_is_idempotent(mixed_correction):
    """Filtering the final QC matrix again keeps every feature."""
    result = filter_features(mixed_correction, cv_limit=0.2)
    again = stable_features(result.qc_final, 0.2)
    assert list(again) == list(result.final_features)


def test_reference_tables(decay_qc, flat_reference):
    clustering = cluster_features(decay_qc, model_shapes=("spherical",), n_clusters=(1, 2))
    drift = calculate_drift(clustering)
    correction = correct_clusters(drift, reference_mode="one", reference=flat_reference)
    result = filter_features(correction, cv_limit=0.2)
    assert list(result.reference_final.columns) == list(result.final_features)
    assert list(result.reference_rmsd.index) == [
        "rmsd_raw",
        "rmsd_clean",
        "rmsd_corrected",
        "rmsd_final",
    ]
    assert np.isfinite(result.reference_rmsd).all()
