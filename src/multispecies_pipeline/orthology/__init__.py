"""Hierarchical orthologous groups."""

from multispecies_pipeline.orthology.grouper import (
    ORTHOLOG_GROUP_COLUMNS,
    HierarchicalGroupTable,
    OrthologyGrouper,
    OrthologyIntegrityError,
)

__all__ = [
    "ORTHOLOG_GROUP_COLUMNS",
    "HierarchicalGroupTable",
    "OrthologyGrouper",
    "OrthologyIntegrityError",
]
