"""
Cluster-based drift correction: clustering, drift modelling, quality-gated
correction and CV filtering.
"""

from .clustering import ClusteringResult, cluster_features, select_best_model
from .correction import ClusterAction, DriftCorrection, ReferenceMode, correct_clusters
from .filtering import FilteredResult, filter_features, project_features, stable_features
from .modeling import DriftCalculation, DriftCurve, calculate_drift, fit_drift_curve

__all__ = [
    "ClusterAction",
    "ClusteringResult",
    "DriftCalculation",
    "DriftCorrection",
    "DriftCurve",
    "FilteredResult",
    "ReferenceMode",
    "calculate_drift",
    "cluster_features",
    "correct_clusters",
    "filter_features",
    "fit_drift_curve",
    "project_features",
    "select_best_model",
    "stable_features",
]
