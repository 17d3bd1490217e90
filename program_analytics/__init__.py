"""
Program Analytics - Survey Aggregation and Program Comparison Engine

Turns survey responses, complaints and course metadata into program-level
statistics and cross-program comparison matrices for academic quality
management.

Version: 1.0.0
"""

from .steps.classification import classify
from .steps.statistics import aggregate_question

__version__ = "1.0.0"
__author__ = "Program Analytics Team"

__all__ = ["classify", "aggregate_question", "__version__"]
