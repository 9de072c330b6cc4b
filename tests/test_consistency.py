import numpy as np
import pandas as pd
import pytest

from qc_drift_correction.assessment import (
    coefficient_of_variation,
    cv_ratios,
    mean_cv,
    rms_distance,
)


def test_coefficient_of_variation_uses_sample_sd():
    """CV of [1, 2, 3] is sd (1) over mean (2)."""
    assert coefficient_of_variation(np.array([1.0, 2.0, 3.0])) == pytest.approx(0.5)


def test_coefficient_of_variation_per_column():
    """DataFrame input gives one CV per feature; zero mean gives NaN."""
    df = pd.DataFrame({"a": [1.0, 2.0, 3.0], "b": [5.0, 5.0, 5.0], "c": [-1.0, 0.0, 1.0]})
    cv = coefficient_of_variation(df)
    assert list(cv.index) == ["a", "b", "c"]
    assert cv["a"] == pytest.approx(0.5)
    assert cv["b"] == 0.0
    assert np.isnan(cv["c"])


def test_coefficient_of_variation_too_few_values():
    assert np.isnan(coefficient_of_variation([4.0]))


def test_mean_cv_empty_matrix():
    assert np.isnan(mean_cv(pd.DataFrame(index=range(3))))


def test_rms_distance_known_value():
    """Two points at distance 1 from their centroid."""
    mat = pd.DataFrame({"x": [0.0, 2.0], "y": [0.0, 0.0]})
    assert rms_distance(mat) == pytest.approx(1.0)


def test_rms_distance_identical_rows_is_zero():
    mat = np.tile([1.0, 2.0, 3.0], (4, 1))
    assert rms_distance(mat) == 0.0


def test_rms_distance_rejects_empty():
    with pytest.raises(ValueError):
        rms_distance(np.empty((0, 3)))


def test_cv_ratios_fractions():
    """Fractions of features below 15% and 20% CV, raw and corrected."""
    raw = pd.DataFrame({"a": [1.0, 1.5, 2.0], "b": [1.0, 1.1, 1.2]})
    corrected = pd.DataFrame({"a": [1.0, 1.0, 1.0], "b": [1.0, 1.1, 1.2]})
    ratios = cv_ratios(raw, corrected)
    assert list(ratios.index) == ["raw_15", "corr_15", "raw_20", "corr_20"]
    assert ratios["raw_15"] == 0.5
    assert ratios["corr_15"] == 1.0
    assert ratios["corr_20"] == 1.0
