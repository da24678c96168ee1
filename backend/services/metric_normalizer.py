"""Classify provider-specific metric labels into comparable buckets.

Every platform names its metrics differently ("Impressions", "Page Fans",
"Subscribers Gained", ...). Aggregation only needs to know whether a series
counts impressions, engagements or followers, so labels are matched by
case-insensitive substring. Checks run in a fixed order and the first match
wins: a label such as "video view engagement" is an impression metric.
"""

import enum
import re
from collections.abc import MutableMapping

from models.analytics import MetricSeries


class MetricBucket(str, enum.Enum):
    IMPRESSIONS = "impressions"
    ENGAGEMENT = "engagement"
    FOLLOWERS = "followers"
    UNCLASSIFIED = "unclassified"


# Order matters: first match wins.
_BUCKET_KEYWORDS: tuple[tuple[MetricBucket, tuple[str, ...]], ...] = (
    (MetricBucket.IMPRESSIONS, ("impression", "view")),
    (MetricBucket.ENGAGEMENT, ("engagement", "like", "comment", "share", "retweet")),
    (MetricBucket.FOLLOWERS, ("follower", "fan", "subscriber")),
)

_WHITESPACE = re.compile(r"\s+")


def classify(label: str) -> MetricBucket:
    """Return the bucket a metric label belongs to."""
    lowered = label.lower()
    for bucket, keywords in _BUCKET_KEYWORDS:
        if any(keyword in lowered for keyword in keywords):
            return bucket
    return MetricBucket.UNCLASSIFIED


def normalize_label(label: str) -> str:
    """Lowercase a label and drop all whitespace ("Page Fans" -> "pagefans")."""
    return _WHITESPACE.sub("", label.lower())


def fold_series(series: MetricSeries, totals_by_date: MutableMapping[str, float]) -> float:
    """Add each point of ``series`` into ``totals_by_date``.

    Returns the sum of the series. Values are summed as-is; overlapping
    dates are not de-duplicated.
    """
    subtotal = 0
    for point in series.data:
        totals_by_date[point.date] = totals_by_date.get(point.date, 0) + point.total
        subtotal += point.total
    return subtotal
