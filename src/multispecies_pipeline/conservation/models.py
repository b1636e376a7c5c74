"""Results of multi-species expression analyses."""

from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from types import MappingProxyType

from multispecies_pipeline.calls.models import Gene, SimilarityExpressionCall, SummaryCallType
from multispecies_pipeline.similarity.models import MultiSpeciesCondition

CONSERVATION_SCORE_THRESHOLD = 0.75


@dataclass(frozen=True)
class MultiGeneExprCounts:
    """Expression state of a gene set in one multi-species condition."""

    call_type_to_genes: Mapping[SummaryCallType, frozenset[Gene]]
    genes_with_no_data: frozenset[Gene]
    gene_to_min_rank: Mapping[Gene, float | None]

    def __post_init__(self):
        object.__setattr__(
            self,
            "call_type_to_genes",
            MappingProxyType({k: frozenset(v) for k, v in self.call_type_to_genes.items()}),
        )
        object.__setattr__(self, "genes_with_no_data", frozenset(self.genes_with_no_data))
        object.__setattr__(self, "gene_to_min_rank", MappingProxyType(dict(self.gene_to_min_rank)))

    def genes_with(self, call_type: SummaryCallType) -> frozenset[Gene]:
        return self.call_type_to_genes.get(call_type, frozenset())

    @property
    def genes_with_data(self) -> frozenset[Gene]:
        return frozenset().union(*self.call_type_to_genes.values())


@dataclass(frozen=True)
class MultiSpeciesExprAnalysis:
    """Per-condition expression counts of a set of genes from several species."""

    requested_gene_ids: frozenset[str]
    requested_gene_ids_not_found: frozenset[str]
    genes: frozenset[Gene]
    cond_to_counts: Mapping[MultiSpeciesCondition, MultiGeneExprCounts]

    def __post_init__(self):
        object.__setattr__(self, "requested_gene_ids", frozenset(self.requested_gene_ids))
        object.__setattr__(
            self, "requested_gene_ids_not_found", frozenset(self.requested_gene_ids_not_found)
        )
        object.__setattr__(self, "genes", frozenset(self.genes))
        object.__setattr__(self, "cond_to_counts", MappingProxyType(dict(self.cond_to_counts)))

    @property
    def conditions(self) -> list[MultiSpeciesCondition]:
        return list(self.cond_to_counts)

    @property
    def species_ids(self) -> frozenset[int]:
        return frozenset(gene.species_id for gene in self.genes)


@dataclass(frozen=True)
class MultiSpeciesCall:
    """
    Reconciled calls of the members of one orthologous group in one
    multi-species condition.
    """

    condition: MultiSpeciesCondition
    taxon_id: int
    oma_group_id: str | None
    genes: frozenset[Gene]
    similarity_calls: frozenset[SimilarityExpressionCall]
    conservation_score: float | None = field(default=None)

    def __post_init__(self):
        object.__setattr__(self, "genes", frozenset(self.genes))
        object.__setattr__(self, "similarity_calls", frozenset(self.similarity_calls))
        identities = {gene.identity for gene in self.genes}
        for call in self.similarity_calls:
            if call.gene.identity not in identities:
                raise ValueError(
                    f"Call gene {call.gene.gene_id} is not among the orthologous genes "
                    f"of group {self.oma_group_id}"
                )
            if call.condition != self.condition:
                raise ValueError(
                    f"Call for gene {call.gene.gene_id} is in another condition than "
                    f"the multi-species call"
                )

    @property
    def gene_ids(self) -> frozenset[str]:
        return frozenset(gene.gene_id for gene in self.genes)

    @property
    def species_ids(self) -> frozenset[int]:
        """Species with at least one call, not just with an orthologous gene."""
        return frozenset(call.gene.species_id for call in self.similarity_calls)

    def is_conserved(self, threshold: float = CONSERVATION_SCORE_THRESHOLD) -> bool:
        return self.conservation_score is not None and self.conservation_score >= threshold

    def with_score(self, conservation_score: float | None) -> "MultiSpeciesCall":
        return replace(self, conservation_score=conservation_score)
