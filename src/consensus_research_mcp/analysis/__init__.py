"""Statistical analysis of a response set — consensus, variance, derivatives, outliers."""

from .consensus import calculate_consensus, extract_claims
from .derivatives import derive_insights
from .outliers import isolate_outliers
from .variance import analyze_variance

__all__ = [
    "analyze_variance",
    "calculate_consensus",
    "derive_insights",
    "extract_claims",
    "isolate_outliers",
]
