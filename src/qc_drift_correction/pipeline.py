"""
End-to-end within-batch drift correction.

drift_wrap chains clustering, drift modelling, quality-gated correction and
CV filtering for ready-made sample sets. correct_drift starts one step
earlier, from a whole-batch peak table with sample group labels.
"""

import logging
from typing import Optional, Sequence

import pandas as pd

from qc_drift_correction.config import DriftConfig
from qc_drift_correction.constants import DEFAULT_QC_ID
from qc_drift_correction.data import (
    SampleSet,
    get_group,
    make_batch_object,
    make_qc_object,
    sort_by_injection,
)
from qc_drift_correction.drift import (
    FilteredResult,
    ReferenceMode,
    calculate_drift,
    cluster_features,
    correct_clusters,
    filter_features,
)
from qc_drift_correction.visualization import DriftReporter, LoggingReporter

logger = logging.getLogger(__name__)


def drift_wrap(
    qc: SampleSet,
    batch: Optional[SampleSet] = None,
    reference: Optional[SampleSet] = None,
    *,
    config: Optional[DriftConfig] = None,
    report: bool = False,
    reporter: Optional[DriftReporter] = None,
) -> FilteredResult:
    """
    Run all drift correction stages on prepared sample sets.

    Args:
        qc: Scaled QC sample set (from make_qc_object).
        batch: Samples to correct (from make_batch_object). Defaults to the
            QC samples.
        reference: Optional external reference samples. When given,
            corrections are validated on them instead of on the QC samples.
        config: Model search, smoothing and filtering settings.
        report: Pass every stage result to the reporter.
        reporter: Diagnostics receiver; defaults to LoggingReporter.

    Returns:
        FilteredResult; corrected tables in test_corrected, CV-filtered
        tables in test_final, per-cluster outcome in action_info.
    """
    config = config or DriftConfig()
    if report and reporter is None:
        reporter = LoggingReporter()
    sink = reporter if report else DriftReporter()
    mode = ReferenceMode.ONE if reference is not None else ReferenceMode.NONE

    clustering = cluster_features(
        qc,
        model_shapes=config.model_shapes,
        n_clusters=config.n_clusters,
        random_state=config.random_state,
        n_init=config.n_init,
        max_iter=config.max_iter,
        reg_covar=config.reg_covar,
    )
    sink.on_clustering(clustering)

    drift = calculate_drift(
        clustering, smooth_method=config.smooth_method, smoothing=config.smoothing
    )
    sink.on_drift(drift)

    correction = correct_clusters(
        drift,
        reference_mode=mode,
        reference=reference,
        test=batch,
        out_of_range=config.out_of_range,
    )
    sink.on_correction(correction)

    result = filter_features(correction, cv_limit=config.cv_limit)
    sink.on_filtering(result)
    return result


def correct_drift(
    peak_table: pd.DataFrame,
    injections: Sequence[int],
    sample_groups: Sequence,
    *,
    qc_id: str = DEFAULT_QC_ID,
    ref_id: Optional[str] = None,
    config: Optional[DriftConfig] = None,
    report: bool = False,
    reporter: Optional[DriftReporter] = None,
) -> FilteredResult:
    """
    Within-batch signal intensity drift correction from a whole peak table.

    Args:
        peak_table: Batch peak table, samples as rows, uniquely named
            features as columns, no missing values.
        injections: Injection number of every row.
        sample_groups: Sample type of every row (e.g. "sample", "QC", "Ref").
        qc_id: QC label in sample_groups.
        ref_id: Optional label of external reference samples in sample_groups,
            used for an unbiased assessment of each correction.
        config: Model search, smoothing and filtering settings.
        report: Pass every stage result to the reporter.
        reporter: Diagnostics receiver; defaults to LoggingReporter.

    Returns:
        FilteredResult for the whole batch (test_* tables hold every row of
        peak_table, on the QC scale).
    """
    peak_table, injections, sample_groups = sort_by_injection(
        peak_table, injections, sample_groups
    )

    qc_table, qc_inj = get_group(peak_table, injections, sample_groups, qc_id)
    qc = make_qc_object(qc_table, qc_inj)
    batch = make_batch_object(peak_table, injections, qc)

    reference = None
    if ref_id is not None:
        ref_table, ref_inj = get_group(peak_table, injections, sample_groups, ref_id)
        reference = make_batch_object(ref_table, ref_inj, qc)

    logger.info(
        "Drift correction of %d samples (%d QC%s)",
        len(peak_table),
        len(qc_inj),
        "" if reference is None else f", {len(reference.injections)} reference",
    )
    return drift_wrap(qc, batch, reference, config=config, report=report, reporter=reporter)
