"""
Data quality metrics: per-feature dispersion and sample-set stability.
"""

from .consistency import (
    coefficient_of_variation,
    cv_ratios,
    mean_cv,
    rms_distance,
)

__all__ = [
    "coefficient_of_variation",
    "cv_ratios",
    "mean_cv",
    "rms_distance",
]
