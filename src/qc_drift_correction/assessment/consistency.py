"""
Quality metrics for repeated injections of the same sample.

Coefficient of variation (CV = σ/μ) per feature measures dispersion of a
single feature over the run; root-mean-squared distance of injections from
their centroid measures stability of a whole sample set.
"""

from typing import Iterable

import numpy as np
import pandas as pd

from qc_drift_correction.constants import CV_RATIO_THRESHOLDS


def coefficient_of_variation(values: np.ndarray | pd.Series | pd.DataFrame):
    """
    Compute CV = σ/μ as a fraction, using the sample standard deviation.

    Args:
        values: 1D values of one feature, or a matrix with features as columns.

    Returns:
        float for 1D input; Series indexed by feature for a DataFrame;
        ndarray (one CV per column) for a 2D array. CV is NaN where the mean
        is 0 or fewer than two values exist.
    """
    if isinstance(values, pd.DataFrame):
        mu = values.mean(axis=0)
        sd = values.std(axis=0, ddof=1)
        return (sd / mu.where(mu != 0)).astype(float)

    vals = np.asarray(values, dtype=float)
    if vals.ndim == 2:
        mu = vals.mean(axis=0)
        if vals.shape[0] < 2:
            return np.full(vals.shape[1], np.nan)
        sd = vals.std(axis=0, ddof=1)
        with np.errstate(divide="ignore", invalid="ignore"):
            return np.where(mu != 0, sd / mu, np.nan)

    vals = vals[np.isfinite(vals)]
    if len(vals) < 2:
        return np.nan
    mu = np.mean(vals)
    if mu == 0:
        return np.nan
    return float(np.std(vals, ddof=1) / mu)


def mean_cv(features: pd.DataFrame) -> float:
    """Mean feature CV of a matrix; NaN for a matrix without columns."""
    if features.shape[1] == 0:
        return np.nan
    return float(coefficient_of_variation(features).mean())


def rms_distance(features: pd.DataFrame | np.ndarray) -> float:
    """
    Root-mean-squared Euclidean distance of observations from their centroid.

    Args:
        features: Matrix with observations (injections) as rows and features
            as columns.

    Returns:
        sqrt(sum_i ||x_i - mean||^2 / n_rows). Lower values mean a more
        stable sample set.
    """
    mat = np.asarray(features, dtype=float)
    if mat.ndim != 2 or mat.shape[0] == 0:
        raise ValueError("rms_distance needs a non-empty 2D matrix.")
    centered = mat - mat.mean(axis=0)
    return float(np.sqrt(np.sum(centered**2) / mat.shape[0]))


def cv_ratios(
    raw: pd.DataFrame,
    corrected: pd.DataFrame,
    *,
    thresholds: Iterable[float] = CV_RATIO_THRESHOLDS,
) -> pd.Series:
    """
    Fraction of features with CV below each threshold, before and after correction.

    Args:
        raw: Uncorrected feature matrix.
        corrected: Corrected matrix with the same columns.
        thresholds: CV thresholds (fractions).

    Returns:
        Series with keys raw_15, corr_15, raw_20, corr_20 (suffix is the
        threshold in percent).
    """
    cv_raw = coefficient_of_variation(raw)
    cv_corr = coefficient_of_variation(corrected)
    out = {}
    for t in thresholds:
        suffix = f"{round(t * 100):d}"
        out[f"raw_{suffix}"] = float((cv_raw < t).mean()) if len(cv_raw) else np.nan
        out[f"corr_{suffix}"] = float((cv_corr < t).mean()) if len(cv_corr) else np.nan
    return pd.Series(out)
