"""
Filter Engine Package.

This package provides the activity resolver, license matcher, exclusion
evaluator, and the filter pipeline that produces lifecycle candidates.
"""

from .activity_resolver import resolve_activity
from .exclusion_evaluator import ExclusionEvaluator
from .filter_pipeline import (
    AccountRetriever,
    ClientFilteredRetrieval,
    FilterPipeline,
    PipelineResult,
    RetrievalError,
    ServerFilteredRetrieval,
)
from .license_matcher import LicenseCatalogError, LicenseMatcher, load_product_names

__all__ = [
    "resolve_activity",
    "ExclusionEvaluator",
    "AccountRetriever",
    "ClientFilteredRetrieval",
    "FilterPipeline",
    "PipelineResult",
    "RetrievalError",
    "ServerFilteredRetrieval",
    "LicenseCatalogError",
    "LicenseMatcher",
    "load_product_names",
]
