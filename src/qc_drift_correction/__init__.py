"""
QC Drift Correction

Cluster-based, quality-gated correction of within-batch signal intensity
drift in repeated analytical measurements, using QC (and optionally external
reference) injections.
"""

from .assessment import coefficient_of_variation, cv_ratios, mean_cv, rms_distance
from .config import DriftConfig
from .data import (
    SampleSet,
    get_group,
    make_batch_object,
    make_qc_object,
    sort_by_injection,
)
from .drift import (
    ClusterAction,
    ClusteringResult,
    DriftCalculation,
    DriftCorrection,
    DriftCurve,
    FilteredResult,
    ReferenceMode,
    calculate_drift,
    cluster_features,
    correct_clusters,
    filter_features,
    fit_drift_curve,
    project_features,
    select_best_model,
    stable_features,
)
from .exceptions import (
    DimensionMismatchError,
    DriftCorrectionError,
    FittingFailedError,
    InvalidInputError,
    ReferenceModeUnsupportedError,
)
from .pipeline import correct_drift, drift_wrap
from .visualization import (
    DriftReporter,
    FigureReporter,
    LoggingReporter,
    plot_bic,
    plot_cluster_drift,
    plot_cv_histogram,
)

__version__ = "0.1.0"

__all__ = [
    "ClusterAction",
    "ClusteringResult",
    "DimensionMismatchError",
    "DriftCalculation",
    "DriftConfig",
    "DriftCorrection",
    "DriftCorrectionError",
    "DriftCurve",
    "DriftReporter",
    "FigureReporter",
    "FilteredResult",
    "FittingFailedError",
    "InvalidInputError",
    "LoggingReporter",
    "ReferenceMode",
    "ReferenceModeUnsupportedError",
    "SampleSet",
    "calculate_drift",
    "cluster_features",
    "coefficient_of_variation",
    "correct_clusters",
    "correct_drift",
    "cv_ratios",
    "drift_wrap",
    "filter_features",
    "fit_drift_curve",
    "get_group",
    "make_batch_object",
    "make_qc_object",
    "mean_cv",
    "plot_bic",
    "plot_cluster_drift",
    "plot_cv_histogram",
    "project_features",
    "rms_distance",
    "select_best_model",
    "sort_by_injection",
    "stable_features",
    "__version__",
]
