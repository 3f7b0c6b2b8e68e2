"""Model evaluation on held-out data."""

from transfer_classifier.evaluation.evaluator import (
    EvaluationReport,
    evaluate,
    print_evaluation_report,
)

__all__ = [
    "EvaluationReport",
    "evaluate",
    "print_evaluation_report",
]
