"""Health probing, aggregation and flap mitigation."""
