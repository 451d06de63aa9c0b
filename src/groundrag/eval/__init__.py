"""Offline evaluation harness for groundrag."""

from .cli import EvaluationResult, main, run_evaluation

__all__ = ["EvaluationResult", "main", "run_evaluation"]
