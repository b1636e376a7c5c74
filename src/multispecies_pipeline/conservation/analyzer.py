"""Aggregation of reconciled calls into multi-species analyses and calls."""

from collections.abc import Iterable, Mapping

import structlog

from multispecies_pipeline.calls.grouping import CallGroupingEngine
from multispecies_pipeline.calls.models import Gene, SimilarityExpressionCall, SummaryCallType
from multispecies_pipeline.calls.reconcile import ReconciliationPolicy, expressed_dominates
from multispecies_pipeline.conservation.models import (
    MultiGeneExprCounts,
    MultiSpeciesCall,
    MultiSpeciesExprAnalysis,
)
from multispecies_pipeline.conservation.scoring import (
    ConservationEvidence,
    ConservationScorer,
    WeightedConservationScorer,
)
from multispecies_pipeline.similarity.models import MultiSpeciesCondition

logger = structlog.get_logger()


class ConservationAnalyzer:
    """
    Builds per-condition statistics and conservation scores from reconciled calls.

    Args:
        scorer: Conservation score policy (default: WeightedConservationScorer
            with default weights)
        policy: Reconciliation policy used when a gene has several calls in
            the same condition, and across genes of a species when scoring
    """

    def __init__(
        self,
        scorer: ConservationScorer | None = None,
        policy: ReconciliationPolicy = expressed_dominates,
    ):
        self.scorer = scorer or WeightedConservationScorer()
        self.policy = policy

    def analyze(
        self,
        requested_gene_ids: Iterable[str],
        requested_gene_ids_not_found: Iterable[str],
        genes: Iterable[Gene],
        similarity_calls: Iterable[SimilarityExpressionCall],
    ) -> MultiSpeciesExprAnalysis:
        """
        Count, per condition, which genes are expressed, not expressed or
        without data.

        Conditions where no source call of any gene is observed are dropped.

        Raises:
            ValueError: If a call concerns a gene outside the analysed genes
        """
        genes = frozenset(genes)
        by_identity = {gene.identity: gene for gene in genes}

        by_condition: dict[MultiSpeciesCondition, list[SimilarityExpressionCall]] = {}
        for call in similarity_calls:
            if call.gene.identity not in by_identity:
                raise ValueError(
                    f"Call for gene {call.gene.gene_id} of species {call.gene.species_id} "
                    f"is not part of the analysed genes"
                )
            by_condition.setdefault(call.condition, []).append(call)

        cond_to_counts: dict[MultiSpeciesCondition, MultiGeneExprCounts] = {}
        dropped = 0
        for condition, calls in by_condition.items():
            if not any(call.has_observed_data for call in calls):
                dropped += 1
                continue
            cond_to_counts[condition] = self._count(by_identity, calls)

        if dropped:
            logger.debug("conditions_without_observed_data_dropped", count=dropped)
        logger.info(
            "multi_species_analysis_complete",
            gene_count=len(genes),
            condition_count=len(cond_to_counts),
        )
        return MultiSpeciesExprAnalysis(
            requested_gene_ids=frozenset(requested_gene_ids),
            requested_gene_ids_not_found=frozenset(requested_gene_ids_not_found),
            genes=genes,
            cond_to_counts=cond_to_counts,
        )

    def _count(
        self, by_identity: Mapping[tuple[str, int], Gene], calls: list[SimilarityExpressionCall]
    ) -> MultiGeneExprCounts:
        # keyed by the analysed Gene, whatever annotations the call's copy carries
        per_gene: dict[Gene, list[SimilarityExpressionCall]] = {}
        for call in calls:
            per_gene.setdefault(by_identity[call.gene.identity], []).append(call)

        call_type_to_genes: dict[SummaryCallType, set[Gene]] = {}
        gene_to_min_rank: dict[Gene, float | None] = {}
        for gene, gene_calls in per_gene.items():
            call_type = self.policy(call.summary_call_type for call in gene_calls)
            call_type_to_genes.setdefault(call_type, set()).add(gene)
            ranks = [
                call.best_observed_rank
                for call in gene_calls
                if call.best_observed_rank is not None
            ]
            gene_to_min_rank[gene] = min(ranks) if ranks else None

        return MultiGeneExprCounts(
            call_type_to_genes=call_type_to_genes,
            genes_with_no_data=frozenset(by_identity.values()) - set(per_gene),
            gene_to_min_rank=gene_to_min_rank,
        )

    def compute_conservation_score(self, call: MultiSpeciesCall) -> float | None:
        evidence = ConservationEvidence.from_similarity_calls(call.similarity_calls, self.policy)
        return self.scorer(evidence)

    def build_multi_species_calls(
        self,
        taxon_id: int,
        ortholog_groups: Mapping[str, frozenset[Gene]],
        similarity_calls: Iterable[SimilarityExpressionCall],
    ) -> list[MultiSpeciesCall]:
        """
        One scored MultiSpeciesCall per (orthologous group, condition) with calls.
        """
        grouped = CallGroupingEngine.group_by_orthology(similarity_calls, ortholog_groups)
        results = []
        for (group_id, condition), calls in grouped.items():
            call = MultiSpeciesCall(
                condition=condition,
                taxon_id=taxon_id,
                oma_group_id=group_id,
                genes=ortholog_groups[group_id],
                similarity_calls=frozenset(calls),
            )
            results.append(call.with_score(self.compute_conservation_score(call)))

        logger.info(
            "multi_species_calls_built",
            taxon_id=taxon_id,
            group_count=len(ortholog_groups),
            call_count=len(results),
        )
        return results
