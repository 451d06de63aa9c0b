"""Timeout, deadline and retry primitives for external calls."""

from .deadline import Deadline, call_with_timeout
from .retry import RetryPolicy

__all__ = ["Deadline", "RetryPolicy", "call_with_timeout"]
