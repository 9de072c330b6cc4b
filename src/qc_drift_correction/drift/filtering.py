"""
Removal of features that stay unstable after drift correction.

Features whose CV over the corrected QC injections exceeds a limit are
dropped. The set of retained feature ids is computed once and the same
projection is applied to the QC, reference and test matrices.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np
import pandas as pd

from qc_drift_correction.assessment import coefficient_of_variation, mean_cv, rms_distance
from qc_drift_correction.constants import DEFAULT_CV_LIMIT, FINAL_ACTION_COLUMNS
from qc_drift_correction.drift.correction import DriftCorrection
from qc_drift_correction.exceptions import DimensionMismatchError, InvalidInputError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FilteredResult:
    """Drift correction plus the final, CV-filtered feature tables."""

    correction: DriftCorrection
    cv_limit: float
    action_info: pd.DataFrame
    final_features: pd.Index
    feature_cvs: pd.Series  # CV on the corrected QC matrix, retained features
    qc_final: pd.DataFrame
    test_final: pd.DataFrame
    reference_final: Optional[pd.DataFrame]
    qc_cvs: pd.Series  # mean QC CV at each stage
    reference_rmsd: Optional[pd.Series]  # reference RMS distance at each stage

    @property
    def qc_corrected(self) -> pd.DataFrame:
        return self.correction.qc_corrected

    @property
    def test_corrected(self) -> pd.DataFrame:
        return self.correction.test_corrected

    @property
    def reference_corrected(self) -> Optional[pd.DataFrame]:
        return self.correction.reference_corrected


def stable_features(features: pd.DataFrame, cv_limit: float = DEFAULT_CV_LIMIT) -> pd.Index:
    """
    Feature ids with CV <= cv_limit, in column order.

    Features with undefined CV (zero mean, fewer than two injections) are
    not retained.
    """
    if not 0 < cv_limit < 1:
        raise InvalidInputError(f"cv_limit must be in (0, 1), got {cv_limit}.")
    cv = coefficient_of_variation(features)
    keep = np.isfinite(cv.to_numpy()) & (cv.to_numpy() <= cv_limit)
    return features.columns[keep]


def project_features(features: pd.DataFrame, feature_ids: Sequence) -> pd.DataFrame:
    """Copy of features restricted to feature_ids, in that order."""
    missing = pd.Index(feature_ids).difference(features.columns)
    if len(missing) > 0:
        raise DimensionMismatchError(f"Features not present in matrix: {missing.tolist()}")
    return features.loc[:, list(feature_ids)].copy()


def filter_features(
    correction: DriftCorrection,
    *,
    cv_limit: float = DEFAULT_CV_LIMIT,
) -> FilteredResult:
    """
    Drop features with QC CV above cv_limit after correction.

    Args:
        correction: Result of correct_clusters.
        cv_limit: Maximum accepted CV (fraction) on the corrected QC matrix.

    Returns:
        FilteredResult with final matrices, the extended action record
        (n_after, cv_after per cluster) and stage-wise CV / RMS summaries.
    """
    qc_corrected = correction.qc_corrected
    keep = stable_features(qc_corrected, cv_limit)

    qc_final = project_features(qc_corrected, keep)
    test_final = project_features(correction.test_corrected, keep)
    reference_final = None
    if correction.reference_corrected is not None:
        reference_final = project_features(correction.reference_corrected, keep)

    keep_set = set(keep)
    action_info = correction.action_info.copy()
    n_after = {}
    cv_after = {}
    for n, members in correction.drift.cluster_features.items():
        survivors = [f for f in members if f in keep_set]
        n_after[n] = len(survivors)
        cv_after[n] = mean_cv(qc_final[survivors])
    action_info["n_after"] = pd.Series(n_after)
    action_info["cv_after"] = pd.Series(cv_after)
    action_info = action_info[FINAL_ACTION_COLUMNS]

    qc_cvs = pd.Series(
        {
            "cv_raw": mean_cv(correction.drift.qc.features),
            "cv_clean": mean_cv(correction.qc_clean),
            "cv_corrected": mean_cv(qc_corrected),
            "cv_final": mean_cv(qc_final),
        }
    )
    reference_rmsd = None
    if correction.reference is not None:
        reference_rmsd = pd.Series(
            {
                "rmsd_raw": rms_distance(correction.reference.features),
                "rmsd_clean": rms_distance(correction.reference_clean),
                "rmsd_corrected": rms_distance(correction.reference_corrected),
                "rmsd_final": rms_distance(reference_final),
            }
        )

    logger.info(
        "Filtering by QC CV < %s -> %d features out of %d kept in the peak table",
        cv_limit,
        len(keep),
        int(action_info["n_before"].sum()),
    )
    return FilteredResult(
        correction=correction,
        cv_limit=cv_limit,
        action_info=action_info,
        final_features=keep,
        feature_cvs=coefficient_of_variation(qc_final),
        qc_final=qc_final,
        test_final=test_final,
        reference_final=reference_final,
        qc_cvs=qc_cvs,
        reference_rmsd=reference_rmsd,
    )
