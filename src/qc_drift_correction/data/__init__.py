"""
Sample sets (QC, batch, reference) and whole-batch peak table shaping.
"""

from .objects import (
    SampleSet,
    get_group,
    make_batch_object,
    make_qc_object,
    sort_by_injection,
)

__all__ = [
    "SampleSet",
    "get_group",
    "make_batch_object",
    "make_qc_object",
    "sort_by_injection",
]
