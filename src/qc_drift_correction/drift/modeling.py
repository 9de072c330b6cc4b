"""
Drift modelling per feature cluster.

The scaled QC intensities of all features in a cluster are pooled into one
(injection, intensity) sample and a smooth curve is fitted through it. The
curve is evaluated at every integer injection between the first and last QC
injection and turned into multiplicative correction factors anchored to 1 at
the first injection.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np
import pandas as pd
from numpy.polynomial import Polynomial
from scipy.interpolate import UnivariateSpline
from statsmodels.nonparametric.smoothers_lowess import lowess

from qc_drift_correction.assessment import cv_ratios, mean_cv, rms_distance
from qc_drift_correction.constants import (
    ACTION_COLUMNS,
    DEFAULT_SMOOTH_METHOD,
    DEFAULT_SMOOTHING,
    POLY_FALLBACK_DEGREE,
    POLY_FALLBACK_MAX_INJECTIONS,
    SMOOTH_METHODS,
)
from qc_drift_correction.data import SampleSet
from qc_drift_correction.drift.clustering import ClusteringResult
from qc_drift_correction.exceptions import FittingFailedError, InvalidInputError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DriftCurve:
    """Fitted drift of one cluster on the dense injection grid."""

    cluster: int
    injections: np.ndarray  # every integer from first to last QC injection
    predicted: np.ndarray  # fitted scaled intensity
    factors: np.ndarray  # predicted[0] / predicted
    method: str  # "poly", "spline" or "loess"

    def factors_at(self, injections: Sequence[int], *, out_of_range: str = "raise") -> np.ndarray:
        """
        Look up correction factors for given injection numbers.

        Args:
            injections: Injection numbers.
            out_of_range: "raise" to reject injections outside the grid,
                "clamp" to use the factor of the nearest grid boundary.

        Returns:
            Array of factors aligned with injections.
        """
        inj = np.asarray(injections, dtype=np.int64)
        first, last = int(self.injections[0]), int(self.injections[-1])
        outside = (inj < first) | (inj > last)
        if outside.any():
            if out_of_range == "clamp":
                logger.debug(
                    "Cluster %d: clamping %d injections outside QC range [%d, %d]",
                    self.cluster,
                    int(outside.sum()),
                    first,
                    last,
                )
                inj = np.clip(inj, first, last)
            else:
                raise InvalidInputError(
                    f"Injections {inj[outside].tolist()} lie outside the QC injection "
                    f"range [{first}, {last}]; no correction factor is defined there."
                )
        return self.factors[inj - first]


@dataclass(frozen=True)
class DriftCalculation:
    """Clustering plus a drift curve and correction diagnostics per cluster."""

    clustering: ClusteringResult
    curves: dict[int, DriftCurve]
    delta_dist: pd.Series  # rms distance change if only this cluster were corrected
    action_info: pd.DataFrame
    ratios: pd.DataFrame
    smooth_method: str
    smoothing: float

    @property
    def qc(self) -> SampleSet:
        return self.clustering.qc

    @property
    def cluster_features(self) -> dict[int, list]:
        return self.clustering.cluster_features()

    @property
    def correction_matrix(self) -> pd.DataFrame:
        """Correction factors, dense injection grid (rows) by cluster (columns)."""
        grid = self.curves[min(self.curves)].injections
        return pd.DataFrame(
            {n: curve.factors for n, curve in sorted(self.curves.items())},
            index=pd.Index(grid, name="injection"),
        )


def _pool(features: pd.DataFrame, injections: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    """Stack all cluster features into (injection, intensity) pairs sorted by injection."""
    x = np.repeat(np.asarray(injections, dtype=float), features.shape[1])
    y = features.to_numpy(dtype=float).ravel()
    order = np.argsort(x, kind="stable")
    return x[order], y[order]


def _predict_poly(x: np.ndarray, y: np.ndarray, grid: np.ndarray, n_distinct: int) -> np.ndarray:
    if n_distinct == 1:
        return np.full(len(grid), float(np.mean(y)))
    deg = min(POLY_FALLBACK_DEGREE, n_distinct - 1)
    return Polynomial.fit(x, y, deg)(grid)


def _predict_spline(x: np.ndarray, y: np.ndarray, grid: np.ndarray, smoothing: float) -> np.ndarray:
    # Fitting the weighted injection means gives the same penalised fit as the
    # pooled points, and UnivariateSpline needs strictly increasing x.
    xu, inv, counts = np.unique(x, return_inverse=True, return_counts=True)
    ybar = np.bincount(inv, weights=y) / counts
    grand = np.average(ybar, weights=counts)
    ss_total = float(np.sum(counts * (ybar - grand) ** 2))
    spline = UnivariateSpline(xu, ybar, w=np.sqrt(counts), k=3, s=smoothing * ss_total)
    return spline(grid)


def _predict_loess(
    x: np.ndarray, y: np.ndarray, grid: np.ndarray, smoothing: float, n_per_injection: int
) -> np.ndarray:
    # Each local fit spans at least three distinct injections plus one point,
    # so at least two injections keep a non-zero tricube weight.
    min_frac = (3 * n_per_injection + 1) / len(x)
    frac = min(max(float(smoothing), min_frac), 1.0)
    return lowess(y, x, frac=frac, it=0, delta=0.0, xvals=grid, is_sorted=True)


def fit_drift_curve(
    features: pd.DataFrame,
    injections: Sequence[int],
    *,
    grid: Optional[np.ndarray] = None,
    smooth_method: str = DEFAULT_SMOOTH_METHOD,
    smoothing: float = DEFAULT_SMOOTHING,
    cluster: int = 1,
) -> DriftCurve:
    """
    Fit the pooled drift of a group of features and derive correction factors.

    With at most three distinct QC injections a quadratic is fitted instead of
    the smoother, whatever smooth_method says.

    Args:
        features: Scaled QC intensities of the cluster's features.
        injections: QC injection numbers aligned with the rows.
        grid: Dense injection grid; defaults to every integer between the
            first and last injection.
        smooth_method: "spline" (cubic smoothing spline) or "loess" (local
            linear regression).
        smoothing: For "spline", allowed residual sum of squares as a fraction
            of the total; for "loess", the span (fraction of points per fit),
            widened where needed so every local fit covers three injections.
        cluster: Cluster id, used in messages.

    Returns:
        DriftCurve on the grid.

    Raises:
        FittingFailedError: If the fitted curve is non-finite or non-positive
            anywhere on the grid.
    """
    if smooth_method not in SMOOTH_METHODS:
        raise InvalidInputError(
            f"smooth_method must be one of {list(SMOOTH_METHODS)}, got {smooth_method!r}."
        )
    if features.shape[1] == 0:
        raise InvalidInputError(f"Cluster {cluster} has no features.")
    inj = np.asarray(injections, dtype=np.int64)
    if grid is None:
        grid = np.arange(inj.min(), inj.max() + 1)
    grid = np.asarray(grid, dtype=np.int64)

    x, y = _pool(features, inj)
    n_distinct = len(np.unique(inj))
    x_grid = grid.astype(float)
    if n_distinct <= POLY_FALLBACK_MAX_INJECTIONS:
        method = "poly"
        predicted = _predict_poly(x, y, x_grid, n_distinct)
    elif smooth_method == "spline":
        method = "spline"
        predicted = _predict_spline(x, y, x_grid, smoothing)
    else:
        method = "loess"
        predicted = _predict_loess(x, y, x_grid, smoothing, features.shape[1])

    predicted = np.asarray(predicted, dtype=float)
    if not np.all(np.isfinite(predicted)) or np.any(predicted <= 0):
        raise FittingFailedError(
            f"Drift fit ({method}) for cluster {cluster} gives non-finite or "
            "non-positive intensities; correction factors are undefined."
        )
    factors = predicted[0] / predicted
    logger.debug("Cluster %d: %s drift fit over %d injections", cluster, method, len(grid))
    return DriftCurve(
        cluster=cluster, injections=grid, predicted=predicted, factors=factors, method=method
    )


def calculate_drift(
    clustering: ClusteringResult,
    *,
    smooth_method: str = DEFAULT_SMOOTH_METHOD,
    smoothing: float = DEFAULT_SMOOTHING,
) -> DriftCalculation:
    """
    Model the intensity drift of every cluster and its hypothetical effect.

    For each cluster, the QC matrix is corrected in that cluster's columns
    only, and the change in RMS distance of the whole QC matrix is recorded
    (negative = correction would make the QC injections more alike).

    Args:
        clustering: Result of cluster_features.
        smooth_method: "spline" or "loess".
        smoothing: Smoothing parameter (see fit_drift_curve).

    Returns:
        DriftCalculation with curves, delta distances, CV diagnostics and an
        action record with "None" for every cluster.
    """
    qc = clustering.qc
    feats = qc.features
    inj = qc.injections
    grid = np.arange(inj.min(), inj.max() + 1)
    rmsd_raw = rms_distance(feats)

    curves: dict[int, DriftCurve] = {}
    delta: dict[int, float] = {}
    rows: dict[int, dict] = {}
    ratios: dict[int, pd.Series] = {}
    for n, members in clustering.cluster_features().items():
        curve = fit_drift_curve(
            feats[members],
            inj,
            grid=grid,
            smooth_method=smooth_method,
            smoothing=smoothing,
            cluster=n,
        )
        corrected = feats.copy()
        corrected[members] = feats[members].mul(curve.factors_at(inj), axis=0)

        curves[n] = curve
        delta[n] = rms_distance(corrected) - rmsd_raw
        rows[n] = {
            "n_before": len(members),
            "action": "None",
            "cv_raw": mean_cv(feats[members]),
            "cv_corr": mean_cv(corrected[members]),
        }
        ratios[n] = cv_ratios(feats[members], corrected[members])

    index = pd.Index(sorted(curves), name="cluster")
    action_info = pd.DataFrame.from_dict(rows, orient="index").reindex(index)[ACTION_COLUMNS]
    ratio_table = pd.DataFrame(ratios).T.reindex(index)

    logger.info("Calculation of QC drift profiles performed for %d clusters", len(curves))
    return DriftCalculation(
        clustering=clustering,
        curves=curves,
        delta_dist=pd.Series(delta, name="delta_dist").reindex(index),
        action_info=action_info,
        ratios=ratio_table,
        smooth_method=smooth_method,
        smoothing=smoothing,
    )
