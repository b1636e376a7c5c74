"""Library entry point for multi-species expression calls."""

from collections.abc import Iterable, Iterator, Sequence

import structlog

from multispecies_pipeline.calls.grouping import CallGroupingEngine
from multispecies_pipeline.calls.models import GeneFilter, SimilarityExpressionCall, gene_filters_for
from multispecies_pipeline.config.schema import PipelineConfig
from multispecies_pipeline.conservation.analyzer import ConservationAnalyzer
from multispecies_pipeline.conservation.models import MultiSpeciesCall, MultiSpeciesExprAnalysis
from multispecies_pipeline.conservation.scoring import WeightedConservationScorer
from multispecies_pipeline.orthology.grouper import OrthologyGrouper
from multispecies_pipeline.providers import (
    ExpressionCallProvider,
    GeneProvider,
    OrthologyProvider,
    SimilarityProvider,
    TaxonomyProvider,
)
from multispecies_pipeline.similarity.expander import ConditionExpander
from multispecies_pipeline.similarity.models import ConditionFilter
from multispecies_pipeline.taxonomy.ontology import TaxonOntology

logger = structlog.get_logger()


class MultiSpeciesCallService:
    """
    Retrieves expression calls comparable across species.

    Wires the condition expander, the call grouping engine, the orthology
    grouper and the conservation analyzer to the data providers. Every
    request is self-contained; the service keeps no per-request state.

    Args:
        taxonomy: Provides the taxonomy
        genes: Provides species and genes
        similarities: Provides anatomical and stage similarity groups
        expression_calls: Provides single-species expression calls
        orthology: Provides orthologous groups (needed only for
            load_multi_species_calls)
        stage_aware: Also align developmental stages through stage groups
    """

    def __init__(
        self,
        taxonomy: TaxonomyProvider,
        genes: GeneProvider,
        similarities: SimilarityProvider,
        expression_calls: ExpressionCallProvider,
        orthology: OrthologyProvider | None = None,
        *,
        expander: ConditionExpander | None = None,
        engine: CallGroupingEngine | None = None,
        analyzer: ConservationAnalyzer | None = None,
        stage_aware: bool = False,
    ):
        self.taxonomy = taxonomy
        self.genes = genes
        self.similarities = similarities
        self.expression_calls = expression_calls
        self.orthology = orthology
        self.expander = expander or ConditionExpander()
        self.engine = engine or CallGroupingEngine()
        self.analyzer = analyzer or ConservationAnalyzer()
        self.stage_aware = stage_aware
        self._ontology: TaxonOntology | None = None

    @classmethod
    def from_config(cls, config: PipelineConfig, source) -> "MultiSpeciesCallService":
        """
        Build a service over one object implementing every provider protocol
        (such as DuckDBDataSource), with analysis settings from config.
        """
        return cls(
            taxonomy=source,
            genes=source,
            similarities=source,
            expression_calls=source,
            orthology=source,
            analyzer=ConservationAnalyzer(WeightedConservationScorer(config.scoring)),
            stage_aware=config.analysis.stage_aware,
        )

    @property
    def ontology(self) -> TaxonOntology:
        if self._ontology is None:
            self._ontology = self.taxonomy.load_taxon_ontology()
        return self._ontology

    def _resolve_gene_filters(
        self, taxon_id: int, gene_filters: Sequence[GeneFilter] | None
    ) -> list[GeneFilter]:
        species = self.genes.load_species_by_taxon(taxon_id)
        species_ids = {s.species_id for s in species}
        if not gene_filters:
            return [GeneFilter(species_id=species_id) for species_id in sorted(species_ids)]

        outside = sorted({f.species_id for f in gene_filters} - species_ids)
        if outside:
            raise ValueError(
                f"Species {outside} requested in gene filters are not part of taxon {taxon_id}"
            )
        return list(gene_filters)

    def load_similarity_expression_calls(
        self,
        taxon_id: int,
        gene_filters: Sequence[GeneFilter] | None = None,
        condition_filter: ConditionFilter | None = None,
        only_trusted: bool = False,
    ) -> Iterator[SimilarityExpressionCall]:
        """
        Expression calls of the requested genes, reconciled per gene and
        multi-species condition at the requested taxon.

        Without gene filters every species under the taxon is used. The
        condition filter is widened to every member of the similarity groups
        it touches before calls are retrieved. Validation happens before the
        returned iterator is consumed.

        Raises:
            ValueError: On a non-positive or unknown taxon ID, a None gene
                filter, or a gene filter on a species outside the taxon
            SimilarityIntegrityError: If similarity groups overlap
        """
        if taxon_id is None or taxon_id <= 0:
            raise ValueError(f"A valid taxon ID must be provided, got {taxon_id}")
        if gene_filters is not None and any(f is None for f in gene_filters):
            raise ValueError("No gene filter can be None")

        taxon = self.ontology.get_taxon(taxon_id)
        gene_filters = self._resolve_gene_filters(taxon_id, gene_filters)

        anat_groups = self.similarities.load_anat_entity_similarities(taxon_id, only_trusted)
        stage_groups = (
            self.similarities.load_dev_stage_similarities(taxon_id) if self.stage_aware else None
        )
        expanded, touched_anat, touched_stages = self.expander.expand_with_groups(
            taxon, condition_filter, anat_groups, stage_groups
        )
        logger.info(
            "similarity_calls_requested",
            taxon_id=taxon_id,
            species_count=len(gene_filters),
            similarity_groups=len(touched_anat),
            only_trusted=only_trusted,
        )
        if not expanded.anat_entity_ids:
            logger.info("no_similarity_for_condition_filter", taxon_id=taxon_id)
            return iter(())

        calls = self.expression_calls.load_expression_calls(gene_filters, expanded)
        return self.engine.iter_reconcile(taxon_id, calls, touched_anat, touched_stages)

    def load_multi_species_expr_analysis(self, gene_ids: Iterable[str]) -> MultiSpeciesExprAnalysis:
        """
        Per-condition expression counts for genes of several species,
        compared at the least common ancestor of their species.

        Raises:
            ValueError: If no gene ID is given, or the genes found belong to
                fewer than two species
        """
        requested = frozenset(gene_ids or ())
        if not requested:
            raise ValueError("Some gene IDs must be provided")

        genes = self.genes.load_genes(requested)
        not_found = requested - {gene.gene_id for gene in genes}
        if not_found:
            logger.warning("requested_genes_not_found", gene_ids=sorted(not_found))

        species_ids = {gene.species_id for gene in genes}
        if len(species_ids) < 2:
            raise ValueError(
                "A multi-species analysis needs genes from at least two species, "
                f"found species {sorted(species_ids)}"
            )

        lca = self.ontology.least_common_ancestor(
            sorted({gene.species.parent_taxon_id for gene in genes})
        )
        logger.info(
            "multi_species_analysis_requested",
            gene_count=len(genes),
            species_count=len(species_ids),
            taxon_id=lca.taxon_id,
        )
        calls = self.load_similarity_expression_calls(
            lca.taxon_id, gene_filters_for(genes), None, only_trusted=False
        )
        return self.analyzer.analyze(requested, not_found, genes, calls)

    def compute_conservation_score(self, call: MultiSpeciesCall) -> float | None:
        return self.analyzer.compute_conservation_score(call)

    def load_multi_species_calls(
        self,
        taxon_id: int,
        gene_filters: Sequence[GeneFilter] | None = None,
        condition_filter: ConditionFilter | None = None,
        only_trusted: bool = False,
    ) -> list[MultiSpeciesCall]:
        """
        Scored calls per orthologous group and multi-species condition.

        Raises:
            ValueError: If the service has no orthology provider, or on the
                errors of load_similarity_expression_calls
            OrthologyIntegrityError: If a gene resolves to several groups
        """
        if self.orthology is None:
            raise ValueError("An orthology provider is needed for multi-species calls")

        calls = list(
            self.load_similarity_expression_calls(
                taxon_id, gene_filters, condition_filter, only_trusted
            )
        )
        return self.build_multi_species_calls(taxon_id, calls)

    def build_multi_species_calls(
        self, taxon_id: int, calls: Sequence[SimilarityExpressionCall]
    ) -> list[MultiSpeciesCall]:
        """Group already reconciled calls by orthologous group and score them."""
        if self.orthology is None:
            raise ValueError("An orthology provider is needed for multi-species calls")
        genes = dict.fromkeys(call.gene for call in calls)
        groups = OrthologyGrouper(self.orthology).group_by_orthology(taxon_id, genes)
        return self.analyzer.build_multi_species_calls(taxon_id, groups, calls)
