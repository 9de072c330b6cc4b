"""
Run configuration for the drift correction pipeline.

DriftConfig bundles the model-search grid, the drift smoothing settings and
the final CV criterion. Values are validated on construction so that a bad
setting fails before any model is fitted.
"""

from dataclasses import dataclass
from typing import Iterable

from qc_drift_correction.constants import (
    DEFAULT_CV_LIMIT,
    DEFAULT_N_CLUSTERS,
    DEFAULT_SMOOTH_METHOD,
    DEFAULT_SMOOTHING,
    MODEL_SHAPES,
    OUT_OF_RANGE_POLICIES,
    SMOOTH_METHODS,
)
from qc_drift_correction.exceptions import InvalidInputError


def _as_cluster_counts(values: Iterable[int]) -> tuple[int, ...]:
    counts = tuple(values)
    if not counts:
        raise InvalidInputError("n_clusters must contain at least one candidate.")
    for k in counts:
        if isinstance(k, bool) or not isinstance(k, int) or k <= 0:
            raise InvalidInputError(
                f"Cluster counts must be positive integers, got {k!r}."
            )
    return tuple(sorted(set(counts)))


def _as_model_shapes(values: Iterable[str]) -> tuple[str, ...]:
    shapes = tuple(dict.fromkeys(values))
    if not shapes:
        raise InvalidInputError("model_shapes must contain at least one shape.")
    unknown = [s for s in shapes if s not in MODEL_SHAPES]
    if unknown:
        raise InvalidInputError(
            f"Unknown model shapes {unknown}. Available: {list(MODEL_SHAPES)}"
        )
    return shapes


@dataclass(frozen=True)
class DriftConfig:
    """Settings for clustering, drift modelling, correction and filtering."""

    model_shapes: tuple[str, ...] = MODEL_SHAPES
    n_clusters: tuple[int, ...] = DEFAULT_N_CLUSTERS
    smooth_method: str = DEFAULT_SMOOTH_METHOD
    smoothing: float = DEFAULT_SMOOTHING
    cv_limit: float = DEFAULT_CV_LIMIT
    out_of_range: str = "raise"
    random_state: int = 0
    n_init: int = 1
    max_iter: int = 100
    reg_covar: float = 1e-6

    def __post_init__(self) -> None:
        object.__setattr__(self, "model_shapes", _as_model_shapes(self.model_shapes))
        object.__setattr__(self, "n_clusters", _as_cluster_counts(self.n_clusters))

        if self.smooth_method not in SMOOTH_METHODS:
            raise InvalidInputError(
                f"smooth_method must be one of {list(SMOOTH_METHODS)}, "
                f"got {self.smooth_method!r}."
            )
        if not self.smoothing > 0:
            raise InvalidInputError(f"smoothing must be positive, got {self.smoothing}.")
        if not 0 < self.cv_limit < 1:
            raise InvalidInputError(f"cv_limit must be in (0, 1), got {self.cv_limit}.")
        if self.out_of_range not in OUT_OF_RANGE_POLICIES:
            raise InvalidInputError(
                f"out_of_range must be one of {list(OUT_OF_RANGE_POLICIES)}, "
                f"got {self.out_of_range!r}."
            )
        if self.n_init < 1 or self.max_iter < 1:
            raise InvalidInputError("n_init and max_iter must be at least 1.")
        if not self.reg_covar >= 0:
            raise InvalidInputError(f"reg_covar must be non-negative, got {self.reg_covar}.")
