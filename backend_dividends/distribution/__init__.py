from backend_dividends.distribution.calculator import HolderShare, compute_distribution, distribution_pool

__all__ = ["HolderShare", "compute_distribution", "distribution_pool"]
