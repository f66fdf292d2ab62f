"""
Pipeline Errors
---------------
Every failure the churn report raises on purpose derives from
ChurnReportError, so a caller can abort a run with a single except clause.
Missing input files surface as the builtin FileNotFoundError.
"""


class ChurnReportError(Exception):
    """Base class for churn report failures."""


class ParseError(ChurnReportError):
    """Input file is not well-formed tabular text or lacks required columns."""


class InsufficientDataError(ChurnReportError):
    """Not enough rows of every class to run the requested cross-validation."""


class ConvergenceError(ChurnReportError):
    """Model fitting failed for every hyperparameter candidate."""


class InvalidArgumentError(ChurnReportError, ValueError):
    """An argument is outside the range the pipeline accepts."""


class InvalidThresholdError(InvalidArgumentError):
    """Decision threshold is not a number in [0, 1]."""
