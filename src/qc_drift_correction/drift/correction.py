"""
Quality-gated drift correction.

Clusters are visited from the most to the least promising (ascending delta
distance). A cluster's correction is kept only if it strictly lowers the RMS
distance of the gating samples: the QC injections themselves, or an external
reference sample injected repeatedly through the run. Accepted corrections
are applied to the QC, reference and test matrices alike, and each later
decision is made against the already-corrected matrices.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from functools import reduce
from typing import Iterable, Optional

import numpy as np
import pandas as pd

from qc_drift_correction.assessment import rms_distance
from qc_drift_correction.data import SampleSet
from qc_drift_correction.drift.modeling import DriftCalculation
from qc_drift_correction.exceptions import (
    DimensionMismatchError,
    InvalidInputError,
    ReferenceModeUnsupportedError,
)

logger = logging.getLogger(__name__)


class ReferenceMode(Enum):
    """Which samples decide whether a cluster correction is kept."""

    NONE = "none"  # QC samples only
    ONE = "one"  # one external reference series
    MANY = "many"  # several reference series; not supported


class ClusterAction(str, Enum):
    NONE = "None"
    CORR_QC = "Corr_QC"
    CORR_1REF = "Corr_1Ref"


@dataclass(frozen=True)
class DriftCorrection:
    """Drift calculation plus the outcome of quality-gated correction."""

    drift: DriftCalculation
    action_info: pd.DataFrame
    reference_mode: ReferenceMode
    removed_features: tuple
    qc_clean: pd.DataFrame
    qc_corrected: pd.DataFrame
    test: SampleSet
    test_clean: pd.DataFrame
    test_corrected: pd.DataFrame
    reference: Optional[SampleSet]
    reference_clean: Optional[pd.DataFrame]
    reference_corrected: Optional[pd.DataFrame]
    decisions: pd.DataFrame  # one row per visited cluster, in visiting order

    @property
    def n_clusters(self) -> int:
        return len(self.action_info)

    @property
    def n_corrected(self) -> int:
        return int((self.action_info["action"] != ClusterAction.NONE.value).sum())


@dataclass(frozen=True)
class _FoldState:
    gating: pd.DataFrame
    qc: pd.DataFrame
    test: pd.DataFrame
    actions: dict
    decisions: tuple


def _resolve_mode(mode: "ReferenceMode | str") -> ReferenceMode:
    try:
        resolved = ReferenceMode(mode)
    except ValueError as e:
        raise InvalidInputError(
            f"Unknown reference mode {mode!r}. Options: {[m.value for m in ReferenceMode]}"
        ) from e
    if resolved is ReferenceMode.MANY:
        raise ReferenceModeUnsupportedError("Multiple reference samples are not implemented.")
    return resolved


def _align_features(features: pd.DataFrame, expected: pd.Index, name: str) -> pd.DataFrame:
    """Reorder columns to the QC order, failing when the feature sets differ."""
    if set(features.columns) != set(expected):
        missing = expected.difference(features.columns).tolist()
        extra = features.columns.difference(expected).tolist()
        raise DimensionMismatchError(
            f"{name} features differ from QC features (missing: {missing}, extra: {extra})."
        )
    return features.loc[:, list(expected)].copy()


def _drop_features(features: pd.DataFrame, removed: pd.Index) -> pd.DataFrame:
    return features.loc[:, ~features.columns.isin(removed)].copy()


def _apply_factors(matrix: pd.DataFrame, columns: list, factors: np.ndarray) -> pd.DataFrame:
    """Copy of matrix with columns multiplied row-wise by factors."""
    out = matrix.copy()
    out[columns] = matrix[columns].mul(factors, axis=0)
    return out


def correct_clusters(
    drift: DriftCalculation,
    *,
    reference_mode: "ReferenceMode | str" = ReferenceMode.NONE,
    reference: Optional[SampleSet] = None,
    test: Optional[SampleSet] = None,
    removed_features: Iterable = (),
    keep_clusters: Optional[Iterable[int]] = None,
    out_of_range: str = "raise",
) -> DriftCorrection:
    """
    Apply cluster drift corrections that improve data quality.

    Args:
        drift: Result of calculate_drift.
        reference_mode: ReferenceMode.NONE (gate on the QC samples) or
            ReferenceMode.ONE (gate on one external reference series).
            ReferenceMode.MANY is rejected.
        reference: Reference sample set, required for ReferenceMode.ONE.
        test: Batch samples to correct. Defaults to the QC samples.
        removed_features: Feature ids dropped from all matrices before
            correction (e.g. on a rerun after filtering).
        keep_clusters: Clusters to consider. Defaults to every cluster that
            still has features after removal.
        out_of_range: "raise" or "clamp" for injections outside the QC range.

    Returns:
        DriftCorrection with corrected QC, test and reference matrices.

    Raises:
        ReferenceModeUnsupportedError: For ReferenceMode.MANY.
        DimensionMismatchError: If QC, test and reference features differ.
        InvalidInputError: If a needed factor lies outside the QC range and
            out_of_range is "raise".
    """
    mode = _resolve_mode(reference_mode)
    if mode is ReferenceMode.ONE and reference is None:
        raise InvalidInputError("Reference mode 'one' needs a reference sample set.")
    if mode is ReferenceMode.NONE and reference is not None:
        logger.warning("Reference samples given but reference mode is 'none'; ignoring them")
        reference = None

    qc = drift.qc
    removed = pd.Index(list(removed_features))
    qc_clean = _drop_features(qc.features, removed)
    kept_ids = qc_clean.columns

    if test is None:
        test = SampleSet(features=qc_clean.copy(), injections=qc.injections.copy(), scale=qc.scale)
    test_clean = _align_features(_drop_features(test.features, removed), kept_ids, "Test")
    reference_clean = None
    if reference is not None:
        reference_clean = _align_features(
            _drop_features(reference.features, removed), kept_ids, "Reference"
        )

    kept_set = set(kept_ids)
    members = {
        n: [f for f in feats if f in kept_set]
        for n, feats in drift.cluster_features.items()
    }
    if keep_clusters is None:
        keep = {n for n, feats in members.items() if feats}
    else:
        keep = set(int(n) for n in keep_clusters)
        unknown = keep.difference(members)
        if unknown:
            raise InvalidInputError(f"Unknown clusters in keep_clusters: {sorted(unknown)}")
    order = [int(n) for n in drift.delta_dist.sort_values(kind="stable").index if n in keep]

    # Look up every factor before touching any matrix, so a bad injection
    # number fails the whole step rather than leaving it half done.
    gating_inj = qc.injections if mode is ReferenceMode.NONE else reference.injections
    if order and out_of_range == "clamp":
        grid = drift.curves[order[0]].injections
        lookups = np.concatenate([gating_inj, qc.injections, test.injections])
        outside = np.unique(lookups[(lookups < grid[0]) | (lookups > grid[-1])])
        if len(outside) > 0:
            logger.warning(
                "Clamping correction factors of injections %s to the QC range [%d, %d]",
                outside.tolist(),
                int(grid[0]),
                int(grid[-1]),
            )
    factors = {
        n: {
            "gating": drift.curves[n].factors_at(gating_inj, out_of_range=out_of_range),
            "qc": drift.curves[n].factors_at(qc.injections, out_of_range=out_of_range),
            "test": drift.curves[n].factors_at(test.injections, out_of_range=out_of_range),
        }
        for n in order
    }
    accepted_action = ClusterAction.CORR_QC if mode is ReferenceMode.NONE else ClusterAction.CORR_1REF

    def step(state: _FoldState, n: int) -> _FoldState:
        cols = members[n]
        if not cols:
            return state
        tentative = _apply_factors(state.gating, cols, factors[n]["gating"])
        rms_before = rms_distance(state.gating)
        rms_tentative = rms_distance(tentative)
        accepted = rms_tentative < rms_before
        action = accepted_action if accepted else ClusterAction.NONE
        record = {
            "cluster": n,
            "delta_dist": float(drift.delta_dist.loc[n]),
            "rms_before": rms_before,
            "rms_tentative": rms_tentative,
            "action": action.value,
        }
        logger.debug("Cluster %d: rms %.6g -> %.6g, %s", n, rms_before, rms_tentative, action.value)
        if not accepted:
            return _FoldState(
                gating=state.gating,
                qc=state.qc,
                test=state.test,
                actions={**state.actions, n: action.value},
                decisions=state.decisions + (record,),
            )
        if mode is ReferenceMode.NONE:
            qc_next = tentative
        else:
            qc_next = _apply_factors(state.qc, cols, factors[n]["qc"])
        return _FoldState(
            gating=tentative,
            qc=qc_next,
            test=_apply_factors(state.test, cols, factors[n]["test"]),
            actions={**state.actions, n: action.value},
            decisions=state.decisions + (record,),
        )

    initial = _FoldState(
        gating=qc_clean if mode is ReferenceMode.NONE else reference_clean,
        qc=qc_clean,
        test=test_clean,
        actions={},
        decisions=(),
    )
    final = reduce(step, order, initial)

    action_info = drift.action_info.copy()
    for n, action in final.actions.items():
        action_info.loc[n, "action"] = action
    decisions = pd.DataFrame(
        list(final.decisions),
        columns=["cluster", "delta_dist", "rms_before", "rms_tentative", "action"],
    )

    result = DriftCorrection(
        drift=drift,
        action_info=action_info,
        reference_mode=mode,
        removed_features=tuple(removed),
        qc_clean=qc_clean,
        qc_corrected=final.qc.copy(),
        test=test,
        test_clean=test_clean,
        test_corrected=final.test.copy(),
        reference=reference,
        reference_clean=reference_clean,
        reference_corrected=None if reference is None else final.gating.copy(),
        decisions=decisions,
    )
    logger.info(
        "Drift correction of %d out of %d clusters %s",
        result.n_corrected,
        result.n_clusters,
        "using QC samples only"
        if mode is ReferenceMode.NONE
        else "validated by external reference samples",
    )
    return result
