"""Cross-platform aggregation: merge, dedupe, filter and rank normalized markets."""

from predicthub.aggregation.service import AggregationService, dedupe, merge_stats

__all__ = ["AggregationService", "dedupe", "merge_stats"]
