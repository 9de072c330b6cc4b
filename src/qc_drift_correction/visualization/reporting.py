"""
Side-channel for pipeline diagnostics.

The pipeline hands every stage result to a reporter when reporting is
switched on. Reporters only observe: they never change a result. Figures are
kept in memory; writing them anywhere is up to the caller.
"""

import logging

import matplotlib.pyplot as plt

from qc_drift_correction.drift.clustering import ClusteringResult
from qc_drift_correction.drift.correction import DriftCorrection
from qc_drift_correction.drift.filtering import FilteredResult
from qc_drift_correction.drift.modeling import DriftCalculation
from qc_drift_correction.visualization.drift_plots import (
    plot_bic,
    plot_cluster_drift,
    plot_cv_histogram,
)

logger = logging.getLogger(__name__)


class DriftReporter:
    """Base reporter; every hook is a no-op."""

    def on_clustering(self, result: ClusteringResult) -> None:
        pass

    def on_drift(self, result: DriftCalculation) -> None:
        pass

    def on_correction(self, result: DriftCorrection) -> None:
        pass

    def on_filtering(self, result: FilteredResult) -> None:
        pass


class LoggingReporter(DriftReporter):
    """Writes the diagnostic tables of each stage to the log."""

    def __init__(self, level: int = logging.INFO):
        self.level = level

    def on_clustering(self, result: ClusteringResult) -> None:
        logger.log(self.level, "BIC per model shape and cluster count:\n%s", result.bic.round(2))

    def on_drift(self, result: DriftCalculation) -> None:
        table = result.action_info.assign(delta_dist=result.delta_dist).join(result.ratios)
        logger.log(self.level, "Drift per cluster:\n%s", table.round(4))

    def on_correction(self, result: DriftCorrection) -> None:
        logger.log(self.level, "Correction decisions:\n%s", result.decisions.round(6))

    def on_filtering(self, result: FilteredResult) -> None:
        logger.log(self.level, "Cluster actions:\n%s", result.action_info.round(4))
        logger.log(self.level, "Mean QC CV per stage:\n%s", result.qc_cvs.round(4))
        if result.reference_rmsd is not None:
            logger.log(
                self.level, "Reference RMS distance per stage:\n%s", result.reference_rmsd
            )


class FigureReporter(DriftReporter):
    """Collects diagnostic figures, keyed by name, in ``figures``."""

    def __init__(self, close: bool = True):
        # closed figures leave the pyplot registry but can still be saved
        self.close = close
        self.figures: dict[str, plt.Figure] = {}

    def _keep(self, name: str, fig: plt.Figure) -> None:
        if self.close:
            plt.close(fig)
        self.figures[name] = fig

    def on_clustering(self, result: ClusteringResult) -> None:
        self._keep("cluster_bic", plot_bic(result))

    def on_drift(self, result: DriftCalculation) -> None:
        for n in sorted(result.curves):
            self._keep(f"cluster_{n}_drift", plot_cluster_drift(result, n))

    def on_correction(self, result: DriftCorrection) -> None:
        self._keep(
            "hist_corrected",
            plot_cv_histogram(
                result.qc_clean,
                result.qc_corrected,
                labels=("Clean", "Corrected"),
                title="Cluster Correction",
            ),
        )

    def on_filtering(self, result: FilteredResult) -> None:
        self._keep(
            "hist_final",
            plot_cv_histogram(
                result.correction.qc_clean,
                result.qc_final,
                labels=("Clean", "Final"),
                title="Cluster Cleanup",
            ),
        )
