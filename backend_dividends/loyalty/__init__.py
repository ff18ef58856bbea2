from backend_dividends.loyalty.evaluator import (
    EvaluatedHolder,
    EvaluationResult,
    LoyaltyEvaluator,
    required_retention,
    retention_percentage,
)

__all__ = [
    "EvaluatedHolder",
    "EvaluationResult",
    "LoyaltyEvaluator",
    "required_retention",
    "retention_percentage",
]
