"""Capabilities the multi-species call service consumes from its data sources."""

from collections.abc import Collection, Iterable, Mapping, Sequence
from typing import Protocol, runtime_checkable

from multispecies_pipeline.calls.models import ExpressionCall, Gene, GeneFilter
from multispecies_pipeline.similarity.models import (
    AnatEntitySimilarity,
    ConditionFilter,
    DevStageSimilarity,
)
from multispecies_pipeline.taxonomy.models import Species
from multispecies_pipeline.taxonomy.ontology import TaxonOntology


@runtime_checkable
class TaxonomyProvider(Protocol):
    def load_taxon_ontology(self) -> TaxonOntology:
        ...


@runtime_checkable
class GeneProvider(Protocol):
    def load_species_by_taxon(self, taxon_id: int) -> list[Species]:
        """Species whose parent taxon is taxon_id or one of its descendants."""
        ...

    def load_genes(self, gene_ids: Collection[str]) -> list[Gene]:
        """Genes with the given IDs, in every species they occur in."""
        ...


@runtime_checkable
class SimilarityProvider(Protocol):
    def load_anat_entity_similarities(
        self, taxon_id: int, only_trusted: bool
    ) -> list[AnatEntitySimilarity]:
        """Positive anatomical similarity groups built for taxon_id."""
        ...

    def load_dev_stage_similarities(self, taxon_id: int) -> list[DevStageSimilarity]:
        ...


@runtime_checkable
class ExpressionCallProvider(Protocol):
    def load_expression_calls(
        self,
        gene_filters: Sequence[GeneFilter],
        condition_filter: ConditionFilter,
    ) -> Iterable[ExpressionCall]:
        """Calls matching the filters, contiguous by gene."""
        ...


@runtime_checkable
class OrthologyProvider(Protocol):
    def load_ortholog_group_ids(
        self, taxon_id: int, genes: Collection[Gene]
    ) -> Mapping[tuple[str, int], Collection[str]]:
        """Orthologous group IDs at taxon_id, keyed by gene identity."""
        ...
