"""
Exceptions raised by the Vybe Recs core and its adapters.
"""


class RecommendationError(Exception):
    """Base class for all Vybe Recs errors."""


class InsufficientInputError(RecommendationError, ValueError):
    """Raised when a reference profile is requested from no tracks."""


class TooManyReferencesError(RecommendationError, ValueError):
    """Raised when a request carries more reference tracks than allowed."""


class InvalidLimitError(RecommendationError, ValueError):
    """Raised when a result limit is negative."""


class DegenerateVectorError(RecommendationError, ArithmeticError):
    """
    Raised when a weighted feature vector has zero norm.

    Similarity scoring catches this and scores the pair as 0.
    """


class ContextInterpretationUnavailable(RecommendationError):
    """Raised by a context interpreter that cannot produce weights."""
