"""
Waiting-duration bands used by heatmaps and histograms.

Bands are closed on the lower bound and open on the upper one:
``[0, 7)``, ``[7, 30)``, ``[30, 90)``, ``[90, inf)``.
"""

from typing import List, Optional, Tuple

WAITING_BUCKETS: List[Tuple[int, Optional[int], str]] = [
    (0, 7, "< 7 days"),
    (7, 30, "7-30 days"),
    (30, 90, "30-90 days"),
    (90, None, "90+ days"),
]

BUCKET_LABELS = [label for _, _, label in WAITING_BUCKETS]


def waiting_bucket(days: float) -> str:
    """
    Band of a waiting duration.

    Negative durations (clock skew between producers) fall in the first band.

    Args:
        days (float): Days waited

    Returns:
        str: Band label
    """
    for _, upper, label in WAITING_BUCKETS:
        if upper is None or days < upper:
            return label
    return BUCKET_LABELS[-1]
