"""Similarity groups and the expansion of condition filters through them."""

from multispecies_pipeline.similarity.expander import ConditionExpander, check_group_taxa
from multispecies_pipeline.similarity.index import SimilarityIndex, SimilarityIntegrityError
from multispecies_pipeline.similarity.models import (
    AnatEntity,
    AnatEntitySimilarity,
    AnatEntitySimilarityTaxonSummary,
    ConditionFilter,
    DevStage,
    DevStageSimilarity,
    MultiSpeciesCondition,
)

__all__ = [
    "AnatEntity",
    "AnatEntitySimilarity",
    "AnatEntitySimilarityTaxonSummary",
    "ConditionExpander",
    "ConditionFilter",
    "DevStage",
    "DevStageSimilarity",
    "MultiSpeciesCondition",
    "SimilarityIndex",
    "SimilarityIntegrityError",
    "check_group_taxa",
]
