"""Multi-species analyses and conservation scoring."""

from multispecies_pipeline.conservation.analyzer import ConservationAnalyzer
from multispecies_pipeline.conservation.models import (
    CONSERVATION_SCORE_THRESHOLD,
    MultiGeneExprCounts,
    MultiSpeciesCall,
    MultiSpeciesExprAnalysis,
)
from multispecies_pipeline.conservation.scoring import (
    ConservationEvidence,
    ConservationScorer,
    WeightedConservationScorer,
    rank_concordance,
    species_agreement,
)

__all__ = [
    "CONSERVATION_SCORE_THRESHOLD",
    "ConservationAnalyzer",
    "ConservationEvidence",
    "ConservationScorer",
    "MultiGeneExprCounts",
    "MultiSpeciesCall",
    "MultiSpeciesExprAnalysis",
    "WeightedConservationScorer",
    "rank_concordance",
    "species_agreement",
]
