"""Load-balancer weighting and agent-check encoding."""
