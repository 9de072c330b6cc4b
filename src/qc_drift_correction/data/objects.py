"""
Sample sets for drift correction: QC, batch (test) and reference injections.

A SampleSet pairs a feature matrix (injections as rows, features as columns)
with the injection number of every row. QC features are scaled per feature
(not centered); batch and reference sets reuse the QC scaling so that all
three matrices live on the same scale. Rows are kept in injection order.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np
import pandas as pd

from qc_drift_correction.exceptions import DimensionMismatchError, InvalidInputError

logger = logging.getLogger(__name__)


def _as_injections(injections: Sequence, n_rows: Optional[int] = None) -> np.ndarray:
    """Validate injection numbers and return them as an int64 array."""
    inj = np.asarray(injections)
    if inj.ndim != 1:
        raise InvalidInputError("Injections must be a 1D sequence.")
    if n_rows is not None and len(inj) != n_rows:
        raise InvalidInputError(
            f"Number of rows in feature matrix ({n_rows}) not equal to "
            f"number of injections ({len(inj)})."
        )
    if len(inj) == 0:
        raise InvalidInputError("At least one injection is required.")
    if not np.issubdtype(inj.dtype, np.integer):
        try:
            as_float = inj.astype(float)
        except (TypeError, ValueError) as e:
            raise InvalidInputError(f"Injections must be integers: {e}") from e
        if not np.all(np.isfinite(as_float)) or np.any(as_float != np.round(as_float)):
            raise InvalidInputError("Injections must be integer injection numbers.")
        inj = as_float
    return inj.astype(np.int64)


def _check_feature_ids(columns: pd.Index) -> None:
    if columns.hasnans:
        raise InvalidInputError("All features need an identifier (found missing column names).")
    if not columns.is_unique:
        dupes = columns[columns.duplicated()].unique().tolist()
        raise InvalidInputError(f"Feature identifiers must be unique. Duplicated: {dupes}")


@dataclass(frozen=True)
class SampleSet:
    """
    Feature matrix with aligned injection numbers.

    Rows are re-sorted by injection on construction when needed (matrix and
    injections together); the caller's objects are never modified.
    """

    features: pd.DataFrame
    injections: np.ndarray
    scale: Optional[pd.Series] = None

    def __post_init__(self) -> None:
        if not isinstance(self.features, pd.DataFrame):
            raise InvalidInputError("features must be a pandas DataFrame.")
        _check_feature_ids(self.features.columns)
        inj = _as_injections(self.injections, n_rows=len(self.features))
        if len(np.unique(inj)) != len(inj):
            raise InvalidInputError("Injection numbers must be unique within a sample set.")

        values = self.features.to_numpy(dtype=float)
        if not np.all(np.isfinite(values)):
            raise InvalidInputError("Feature matrix contains missing or non-finite values.")

        order = np.argsort(inj, kind="stable")
        features = self.features
        if np.any(order != np.arange(len(inj))):
            logger.info("Sorting feature matrix and injections to the order of the injections")
            features = features.iloc[order]
            inj = inj[order]
        object.__setattr__(self, "features", features.astype(float))
        object.__setattr__(self, "injections", inj)

        if self.scale is not None:
            missing = self.features.columns.difference(self.scale.index)
            if len(missing) > 0:
                raise InvalidInputError(f"No scale given for features {missing.tolist()}")

    @property
    def feature_ids(self) -> pd.Index:
        return self.features.columns

    @property
    def n_features(self) -> int:
        return self.features.shape[1]

    def select(self, feature_ids: Sequence) -> "SampleSet":
        """Return a new SampleSet restricted to feature_ids (in that order)."""
        missing = pd.Index(feature_ids).difference(self.features.columns)
        if len(missing) > 0:
            raise DimensionMismatchError(f"Features not present: {missing.tolist()}")
        return SampleSet(
            features=self.features.loc[:, list(feature_ids)].copy(),
            injections=self.injections.copy(),
            scale=None if self.scale is None else self.scale.loc[list(feature_ids)],
        )

    def unscaled(self, features: Optional[pd.DataFrame] = None) -> pd.DataFrame:
        """Multiply features (default: own features) back by the scaling factors."""
        mat = self.features if features is None else features
        if self.scale is None:
            return mat.copy()
        return mat.mul(self.scale.reindex(mat.columns), axis=1)


def sort_by_injection(
    peak_table: pd.DataFrame,
    injections: Sequence,
    sample_groups: Optional[Sequence] = None,
) -> tuple[pd.DataFrame, np.ndarray, Optional[np.ndarray]]:
    """
    Validate a whole-batch peak table and sort it by injection number.

    Rows, injections and sample groups are reordered together with one
    permutation, so the three never fall out of alignment.

    Args:
        peak_table: Batch peak table, samples as rows, features as columns.
        injections: Injection number of every row.
        sample_groups: Optional sample type of every row (e.g. "QC", "Ref").

    Returns:
        Tuple (peak_table, injections, sample_groups), sorted by injection.
    """
    _check_feature_ids(peak_table.columns)
    inj = _as_injections(injections, n_rows=len(peak_table))
    groups = None
    if sample_groups is not None:
        groups = np.asarray(sample_groups, dtype=object)
        if len(groups) != len(inj):
            raise InvalidInputError(
                f"Length of sample groups ({len(groups)}) not equal to "
                f"number of injections ({len(inj)})."
            )

    order = np.argsort(inj, kind="stable")
    if np.any(order != np.arange(len(inj))):
        logger.info("Sorting peak table, sample groups and injections to the order of the injections")
        peak_table = peak_table.iloc[order]
        inj = inj[order]
        if groups is not None:
            groups = groups[order]
    return peak_table, inj, groups


def get_group(
    peak_table: pd.DataFrame,
    injections: Sequence,
    sample_groups: Sequence,
    select: str,
) -> tuple[pd.DataFrame, np.ndarray]:
    """
    Extract the rows of one sample group (e.g. all QC injections).

    Returns:
        Tuple (peak_table subset, injections subset).
    """
    groups = np.asarray(sample_groups, dtype=object)
    inj = _as_injections(injections, n_rows=len(peak_table))
    if len(groups) != len(inj):
        raise InvalidInputError(
            f"Length of sample groups ({len(groups)}) not equal to "
            f"number of injections ({len(inj)})."
        )
    mask = groups == select
    if not mask.any():
        raise InvalidInputError(f"No samples of group '{select}' found.")
    return peak_table.loc[mask].copy(), inj[mask]


def _column_scale(features: pd.DataFrame) -> pd.Series:
    """Root-mean-square of each column: sqrt(sum(x^2) / (n - 1))."""
    n = len(features)
    denom = max(n - 1, 1)
    scale = np.sqrt((features.astype(float) ** 2).sum(axis=0) / denom)
    if (scale == 0).any():
        zero = scale.index[scale == 0].tolist()
        raise InvalidInputError(f"Features {zero} are zero in every QC injection.")
    return scale


def make_qc_object(peak_table: pd.DataFrame, injections: Sequence) -> SampleSet:
    """
    Build the QC SampleSet: features scaled (not centered) per column.

    Args:
        peak_table: QC rows of the peak table.
        injections: Injection numbers of the QC rows.

    Returns:
        SampleSet with scaled features and the per-feature scale.
    """
    _check_feature_ids(peak_table.columns)
    _as_injections(injections, n_rows=len(peak_table))
    scale = _column_scale(peak_table)
    return SampleSet(features=peak_table / scale, injections=injections, scale=scale)


def make_batch_object(
    peak_table: pd.DataFrame,
    injections: Sequence,
    qc: SampleSet,
) -> SampleSet:
    """
    Build a batch or reference SampleSet on the scale of the QC set.

    Args:
        peak_table: Rows to be corrected (or used as external reference).
        injections: Injection numbers of those rows.
        qc: QC SampleSet from make_qc_object.

    Returns:
        SampleSet with features divided by the QC scaling factors.
    """
    _check_feature_ids(peak_table.columns)
    if qc.scale is None:
        return SampleSet(features=peak_table.copy(), injections=injections)
    if set(peak_table.columns) != set(qc.feature_ids):
        raise DimensionMismatchError("Batch and QC peak tables must have the same features.")
    features = peak_table.loc[:, qc.feature_ids] / qc.scale
    return SampleSet(features=features, injections=injections, scale=qc.scale)
