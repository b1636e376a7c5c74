"""Conservation scores for multi-species calls."""

from collections import Counter
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from types import MappingProxyType
from typing import Protocol, runtime_checkable

from multispecies_pipeline.calls.models import SimilarityExpressionCall, SummaryCallType
from multispecies_pipeline.calls.reconcile import ReconciliationPolicy, expressed_dominates
from multispecies_pipeline.config.schema import ConservationWeights


@dataclass(frozen=True)
class ConservationEvidence:
    """What the calls of an orthologous group say, reduced to scoring inputs."""

    species_call_types: Mapping[int, SummaryCallType]
    ranks: tuple[float, ...]

    def __post_init__(self):
        object.__setattr__(
            self, "species_call_types", MappingProxyType(dict(self.species_call_types))
        )
        object.__setattr__(self, "ranks", tuple(self.ranks))

    @classmethod
    def from_similarity_calls(
        cls,
        calls: Iterable[SimilarityExpressionCall],
        policy: ReconciliationPolicy = expressed_dominates,
    ) -> "ConservationEvidence":
        """One call type per species (reconciled over its genes) and one rank per call."""
        by_species: dict[int, list[SummaryCallType]] = {}
        ranks = []
        for call in calls:
            by_species.setdefault(call.gene.species_id, []).append(call.summary_call_type)
            rank = call.best_observed_rank
            if rank is not None:
                ranks.append(rank)
        return cls(
            species_call_types={
                species_id: policy(types) for species_id, types in by_species.items()
            },
            ranks=tuple(sorted(ranks)),
        )


@runtime_checkable
class ConservationScorer(Protocol):
    def __call__(self, evidence: ConservationEvidence) -> float | None:
        ...


def species_agreement(evidence: ConservationEvidence) -> float | None:
    """Share of species agreeing with the most common call type."""
    if not evidence.species_call_types:
        return None
    counts = Counter(evidence.species_call_types.values())
    return max(counts.values()) / len(evidence.species_call_types)


def rank_concordance(evidence: ConservationEvidence) -> float | None:
    """1 for identical ranks, decreasing as the relative rank spread grows."""
    if not evidence.ranks:
        return None
    highest = max(evidence.ranks)
    if highest <= 0:
        return 1.0
    spread = (highest - min(evidence.ranks)) / highest
    return 1.0 / (1.0 + spread)


class WeightedConservationScorer:
    """
    Weighted average of species agreement and rank concordance.

    NULL-preserving: a component without evidence is left out and the
    remaining weights are renormalized. With no component available the
    score is None.
    """

    def __init__(self, weights: ConservationWeights | None = None):
        self.weights = weights or ConservationWeights()
        self.weights.validate_sum()

    def __call__(self, evidence: ConservationEvidence) -> float | None:
        components = [
            (species_agreement(evidence), self.weights.species_agreement),
            (rank_concordance(evidence), self.weights.rank_concordance),
        ]
        weighted_sum = sum(value * weight for value, weight in components if value is not None)
        available_weight = sum(weight for value, weight in components if value is not None)
        if available_weight == 0:
            return None
        return weighted_sum / available_weight
