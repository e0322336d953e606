"""PredictHub - prediction market aggregation."""
