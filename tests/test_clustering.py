import numpy as np
import pandas as pd
import pytest

from qc_drift_correction import (
    FittingFailedError,
    InvalidInputError,
    cluster_features,
    make_qc_object,
    select_best_model,
)
from qc_drift_correction.constants import DEFAULT_N_CLUSTERS, MODEL_SHAPES


def test_identical_drift_gives_one_cluster(decay_qc):
    """Features with the same scaled profile collapse into a single cluster."""
    result = cluster_features(decay_qc, model_shapes=("spherical",), n_clusters=(1, 2))
    assert result.n_clusters == 1
    assert (result.classification == 1).all()
    assert result.cluster_features() == {1: list(decay_qc.feature_ids)}


def test_all_shapes_over_default_counts(decay_qc):
    """Every covariance shape is tried; counts above the feature count stay empty."""
    result = cluster_features(decay_qc)
    assert list(result.bic.columns) == list(MODEL_SHAPES)
    assert list(result.bic.index) == list(DEFAULT_N_CLUSTERS)
    assert result.bic.loc[result.bic.index > decay_qc.n_features].isna().all().all()
    assert result.bic.loc[result.n_components, result.model_shape] == pytest.approx(
        np.nanmax(result.bic.to_numpy())
    )
    assert result.n_clusters == 1


def test_two_drift_patterns_are_separated(two_pattern_qc):
    result = cluster_features(two_pattern_qc, model_shapes=("spherical",), n_clusters=(1, 2))
    cls = result.classification
    down = cls[[c for c in cls.index if c.startswith("down")]]
    up = cls[[c for c in cls.index if c.startswith("up")]]
    assert result.n_clusters == 2
    assert down.nunique() == 1 and up.nunique() == 1
    # first feature seen gets label 1
    assert down.iloc[0] == 1 and up.iloc[0] == 2


def test_bic_table_layout(two_pattern_qc):
    result = cluster_features(
        two_pattern_qc, model_shapes=("spherical", "diag"), n_clusters=(3, 1, 2, 2)
    )
    assert list(result.bic.index) == [1, 2, 3]
    assert list(result.bic.columns) == ["spherical", "diag"]
    assert result.bic.loc[result.n_components, result.model_shape] == pytest.approx(
        np.nanmax(result.bic.to_numpy())
    )
    assert result.bic_time >= 0 and result.clust_time >= 0


def test_clustering_is_deterministic(two_pattern_qc):
    kwargs = dict(model_shapes=("spherical", "diag"), n_clusters=(1, 2, 3))
    first = cluster_features(two_pattern_qc, **kwargs)
    second = cluster_features(two_pattern_qc, **kwargs)
    pd.testing.assert_series_equal(first.classification, second.classification)
    pd.testing.assert_frame_equal(first.bic, second.bic)


def test_select_best_model_prefers_fewer_clusters_on_tie():
    bic = pd.DataFrame(
        {"full": [1.0, 3.0, 5.0], "diag": [2.0, 5.0, 4.0]},
        index=pd.Index([1, 2, 3], name="G"),
    )
    assert select_best_model(bic) == ("diag", 2)


def test_select_best_model_prefers_first_shape_on_tie():
    bic = pd.DataFrame({"tied": [4.0, np.nan], "spherical": [4.0, 1.0]}, index=[1, 2])
    assert select_best_model(bic) == ("tied", 1)


def test_select_best_model_all_failed():
    bic = pd.DataFrame({"full": [np.nan, np.nan]}, index=[1, 2])
    with pytest.raises(FittingFailedError):
        select_best_model(bic)


def test_no_candidate_fits():
    """More clusters than features leaves nothing to select."""
    qc = make_qc_object(pd.DataFrame({"a": [1.0, 2.0, 3.0], "b": [2.0, 2.0, 1.0]}), [1, 2, 3])
    with pytest.raises(FittingFailedError):
        cluster_features(qc, model_shapes=("spherical",), n_clusters=(5, 6))


def test_unknown_model_shape(decay_qc):
    with pytest.raises(InvalidInputError):
        cluster_features(decay_qc, model_shapes=("VVV",), n_clusters=(1,))
