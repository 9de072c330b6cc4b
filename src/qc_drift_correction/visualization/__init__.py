"""
Drift correction diagnostics: plots and stage reporters.
"""

from .drift_plots import plot_bic, plot_cluster_drift, plot_cv_histogram
from .reporting import DriftReporter, FigureReporter, LoggingReporter

__all__ = [
    "DriftReporter",
    "FigureReporter",
    "LoggingReporter",
    "plot_bic",
    "plot_cluster_drift",
    "plot_cv_histogram",
]
