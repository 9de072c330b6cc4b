"""
Clustering of QC features by drift pattern.

Scaled QC features are treated as points in injection space (one coordinate
per QC injection), so features that drift alike end up close together.
Gaussian mixture models are fitted over a grid of covariance shapes and
cluster counts, and the configuration with the best BIC is kept.
"""

import logging
import time
import warnings
from dataclasses import dataclass
from typing import Iterable, Optional

import numpy as np
import pandas as pd
from sklearn.exceptions import ConvergenceWarning
from sklearn.mixture import GaussianMixture

from qc_drift_correction.constants import DEFAULT_N_CLUSTERS, MODEL_SHAPES
from qc_drift_correction.data import SampleSet
from qc_drift_correction.exceptions import FittingFailedError, InvalidInputError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ClusteringResult:
    """Winning mixture model and the hard feature-to-cluster assignment."""

    qc: SampleSet
    classification: pd.Series  # feature id -> cluster id (1..K)
    model_shape: str
    n_components: int
    bic: pd.DataFrame  # index: cluster count, columns: shape; higher is better
    bic_time: float
    clust_time: float

    @property
    def n_clusters(self) -> int:
        return int(self.classification.max())

    @property
    def cluster_ids(self) -> list[int]:
        return list(range(1, self.n_clusters + 1))

    def cluster_features(self) -> dict[int, list]:
        """Feature ids per cluster, in QC column order."""
        return {
            n: self.classification.index[self.classification == n].tolist()
            for n in self.cluster_ids
        }


def select_best_model(bic: pd.DataFrame) -> tuple[str, int]:
    """
    Pick the (shape, cluster count) with the highest BIC.

    Ties go to the smaller cluster count, then to the shape enumerated first
    (column order). NaN entries are candidates that did not converge.

    Args:
        bic: BIC table, index = cluster counts, columns = covariance shapes.

    Returns:
        Tuple (model_shape, n_components).

    Raises:
        FittingFailedError: If every entry is NaN.
    """
    candidates = []
    for shape_rank, shape in enumerate(bic.columns):
        for k, value in bic[shape].items():
            if pd.notna(value):
                candidates.append((-float(value), int(k), shape_rank, shape))
    if not candidates:
        raise FittingFailedError(
            "No clustering model converged for any combination of "
            f"shapes {list(bic.columns)} and cluster counts {list(bic.index)}."
        )
    _, k, _, shape = min(candidates)
    return shape, k


def _fit_candidate(
    X: np.ndarray,
    shape: str,
    k: int,
    *,
    random_state: int,
    n_init: int,
    max_iter: int,
    reg_covar: float,
) -> Optional[GaussianMixture]:
    """Fit one mixture model; None when it cannot be fitted or does not converge."""
    if k > X.shape[0]:
        logger.debug("Skipping %s with G=%d: only %d features", shape, k, X.shape[0])
        return None
    gmm = GaussianMixture(
        n_components=k,
        covariance_type=shape,
        random_state=random_state,
        n_init=n_init,
        max_iter=max_iter,
        reg_covar=reg_covar,
    )
    try:
        with warnings.catch_warnings():
            warnings.simplefilter("ignore", ConvergenceWarning)
            gmm.fit(X)
    except (ValueError, np.linalg.LinAlgError) as e:
        logger.debug("Mixture model %s with G=%d failed: %s", shape, k, e)
        return None
    if not gmm.converged_:
        logger.debug("Mixture model %s with G=%d did not converge", shape, k)
        return None
    return gmm


def _relabel(labels: np.ndarray) -> np.ndarray:
    """Renumber component labels 1..K by first appearance, dropping empty ones."""
    mapping: dict[int, int] = {}
    for lab in labels:
        if lab not in mapping:
            mapping[lab] = len(mapping) + 1
    return np.array([mapping[lab] for lab in labels], dtype=int)


def cluster_features(
    qc: SampleSet,
    *,
    model_shapes: Iterable[str] = MODEL_SHAPES,
    n_clusters: Iterable[int] = DEFAULT_N_CLUSTERS,
    random_state: int = 0,
    n_init: int = 1,
    max_iter: int = 100,
    reg_covar: float = 1e-6,
) -> ClusteringResult:
    """
    Cluster QC features with similar drift pattern.

    Args:
        qc: Scaled (not centered) QC sample set.
        model_shapes: Covariance structures to try ("full", "tied", "diag",
            "spherical").
        n_clusters: Cluster counts to try.
        random_state: Seed for mixture initialisation.
        n_init: Initialisations per candidate.
        max_iter: EM iterations per initialisation.
        reg_covar: Non-negative regularisation added to covariance diagonals.

    Returns:
        ClusteringResult with the selected model and the BIC table.

    Raises:
        FittingFailedError: If no candidate converges.
    """
    shapes = list(dict.fromkeys(model_shapes))
    counts = sorted(set(int(k) for k in n_clusters))
    unknown = [s for s in shapes if s not in MODEL_SHAPES]
    if unknown:
        raise InvalidInputError(f"Unknown model shapes {unknown}. Available: {list(MODEL_SHAPES)}")
    if not shapes or not counts:
        raise InvalidInputError("At least one model shape and one cluster count are required.")

    X = qc.features.to_numpy(dtype=float).T
    fit_kwargs = dict(
        random_state=random_state, n_init=n_init, max_iter=max_iter, reg_covar=reg_covar
    )

    start = time.perf_counter()
    bic = pd.DataFrame(np.nan, index=pd.Index(counts, name="G"), columns=shapes)
    models: dict[tuple[str, int], GaussianMixture] = {}
    for shape in shapes:
        for k in counts:
            gmm = _fit_candidate(X, shape, k, **fit_kwargs)
            if gmm is None:
                continue
            # mclust convention: larger BIC is better
            score = -gmm.bic(X)
            if np.isfinite(score):
                bic.loc[k, shape] = score
                models[(shape, k)] = gmm
    bic_time = time.perf_counter() - start

    best_shape, best_k = select_best_model(bic)

    start = time.perf_counter()
    best = models[(best_shape, best_k)]
    labels = _relabel(best.predict(X))
    clust_time = time.perf_counter() - start

    n_found = int(labels.max())
    if n_found < best_k:
        logger.warning(
            "Selected model has %d components but only %d received features",
            best_k,
            n_found,
        )
    classification = pd.Series(labels, index=qc.feature_ids, name="cluster")

    logger.info(
        "Mixture model selected with %d clusters and %s geometry", n_found, best_shape
    )
    logger.info(
        "BIC performed in %.2f seconds and clustering in %.2f seconds", bic_time, clust_time
    )
    return ClusteringResult(
        qc=qc,
        classification=classification,
        model_shape=best_shape,
        n_components=best_k,
        bic=bic,
        bic_time=bic_time,
        clust_time=clust_time,
    )
