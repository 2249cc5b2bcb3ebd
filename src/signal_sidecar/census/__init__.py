"""Room census polling and aggregation."""
