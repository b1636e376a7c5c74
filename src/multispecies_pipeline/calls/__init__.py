"""Expression calls and their reconciliation across species."""

from multispecies_pipeline.calls.grouping import CallGroupingEngine
from multispecies_pipeline.calls.models import (
    Condition,
    ExpressionCall,
    Gene,
    GeneFilter,
    SimilarityExpressionCall,
    SummaryCallType,
    SummaryQuality,
    gene_filters_for,
)
from multispecies_pipeline.calls.reconcile import ReconciliationPolicy, expressed_dominates

__all__ = [
    "CallGroupingEngine",
    "Condition",
    "ExpressionCall",
    "Gene",
    "GeneFilter",
    "ReconciliationPolicy",
    "SimilarityExpressionCall",
    "SummaryCallType",
    "SummaryQuality",
    "expressed_dominates",
    "gene_filters_for",
]
