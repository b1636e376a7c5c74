"""Reconciliation of single-species calls into multi-species condition calls."""

from collections.abc import Iterable, Iterator, Mapping, Sequence

import structlog

from multispecies_pipeline.calls.models import ExpressionCall, Gene, SimilarityExpressionCall
from multispecies_pipeline.calls.reconcile import ReconciliationPolicy, expressed_dominates
from multispecies_pipeline.similarity.expander import check_group_taxa
from multispecies_pipeline.similarity.index import SimilarityIndex
from multispecies_pipeline.similarity.models import (
    AnatEntitySimilarity,
    DevStageSimilarity,
    MultiSpeciesCondition,
)

logger = structlog.get_logger()

BucketKey = tuple[tuple[str, int], MultiSpeciesCondition]


class _ConditionResolver:
    """Resolves the multi-species condition of a single-species call."""

    def __init__(
        self,
        taxon_id: int,
        anat_groups: Sequence[AnatEntitySimilarity],
        stage_groups: Sequence[DevStageSimilarity] | None,
    ):
        check_group_taxa(taxon_id, anat_groups, stage_groups)
        self.anat_index = SimilarityIndex.for_anat_entities(anat_groups)
        self.stage_index = (
            None if stage_groups is None else SimilarityIndex.for_dev_stages(stage_groups)
        )
        self._cache: dict[tuple[str, str | None], MultiSpeciesCondition | None] = {}

    def __call__(self, call: ExpressionCall) -> MultiSpeciesCondition | None:
        key = (call.condition.anat_entity_id, call.condition.dev_stage_id)
        if key not in self._cache:
            self._cache[key] = self._resolve(*key)
        return self._cache[key]

    def _resolve(self, anat_entity_id: str, dev_stage_id: str | None) -> MultiSpeciesCondition | None:
        anat_similarity = self.anat_index.lookup(anat_entity_id)
        if anat_similarity is None:
            return None
        if self.stage_index is None:
            return MultiSpeciesCondition(anat_similarity=anat_similarity)
        stage_similarity = self.stage_index.lookup(dev_stage_id)
        if stage_similarity is None:
            return None
        return MultiSpeciesCondition(
            anat_similarity=anat_similarity, stage_similarity=stage_similarity
        )


class CallGroupingEngine:
    """
    Groups single-species expression calls by gene and multi-species condition.

    Each call is mapped to the similarity group containing its anatomical
    entity (and, when stage groups are given, to the stage group containing
    its stage). Calls mapping to no group are skipped. The calls of each
    (gene, condition) bucket are reconciled into one SimilarityExpressionCall
    by the reconciliation policy.

    Similarity groups are indexed before the first call is read, so a
    violation of the group partition aborts the request before any result is
    produced.
    """

    def __init__(self, policy: ReconciliationPolicy = expressed_dominates):
        self.policy = policy

    def _build_call(self, key: BucketKey, calls: list[ExpressionCall]) -> SimilarityExpressionCall:
        _, condition = key
        return SimilarityExpressionCall(
            gene=calls[0].gene,
            condition=condition,
            source_calls=frozenset(calls),
            summary_call_type=self.policy(call.summary_call_type for call in calls),
        )

    def reconcile(
        self,
        taxon_id: int,
        calls: Iterable[ExpressionCall],
        anat_groups: Sequence[AnatEntitySimilarity],
        stage_groups: Sequence[DevStageSimilarity] | None = None,
    ) -> list[SimilarityExpressionCall]:
        """
        Buffer all calls, then reconcile every bucket.

        Accepts calls in any order. Output follows the order in which each
        (gene, condition) key was first encountered.
        """
        resolver = _ConditionResolver(taxon_id, anat_groups, stage_groups)

        buckets: dict[BucketKey, list[ExpressionCall]] = {}
        call_count = 0
        skipped = 0
        for call in calls:
            call_count += 1
            condition = resolver(call)
            if condition is None:
                skipped += 1
                continue
            buckets.setdefault((call.gene.identity, condition), []).append(call)

        results = [self._build_call(key, bucket) for key, bucket in buckets.items()]
        self._log_summary(taxon_id, call_count, skipped, len(results))
        return results

    def iter_reconcile(
        self,
        taxon_id: int,
        calls: Iterable[ExpressionCall],
        anat_groups: Sequence[AnatEntitySimilarity],
        stage_groups: Sequence[DevStageSimilarity] | None = None,
    ) -> Iterator[SimilarityExpressionCall]:
        """
        Reconcile a stream of calls ordered by gene, one gene at a time.

        The buckets of a gene are emitted as soon as the next gene starts, so
        buffered calls are bounded by the calls of a single gene. The
        identities of genes already emitted are kept to detect input that is
        not ordered by gene.

        Raises:
            ValueError: While iterating, if a gene shows up again after its
                calls were already emitted
        """
        resolver = _ConditionResolver(taxon_id, anat_groups, stage_groups)
        return self._iter_buckets(taxon_id, calls, resolver)

    def _iter_buckets(
        self,
        taxon_id: int,
        calls: Iterable[ExpressionCall],
        resolver: _ConditionResolver,
    ) -> Iterator[SimilarityExpressionCall]:
        flushed: set[tuple[str, int]] = set()
        current_gene: tuple[str, int] | None = None
        buckets: dict[BucketKey, list[ExpressionCall]] = {}
        call_count = 0
        skipped = 0
        emitted = 0

        for call in calls:
            call_count += 1
            identity = call.gene.identity
            if identity != current_gene:
                for key, bucket in buckets.items():
                    emitted += 1
                    yield self._build_call(key, bucket)
                buckets = {}
                if current_gene is not None:
                    flushed.add(current_gene)
                if identity in flushed:
                    raise ValueError(
                        f"Expression calls are not ordered by gene: gene {identity[0]} "
                        f"of species {identity[1]} appears again after other genes"
                    )
                current_gene = identity

            condition = resolver(call)
            if condition is None:
                skipped += 1
                continue
            buckets.setdefault((identity, condition), []).append(call)

        for key, bucket in buckets.items():
            emitted += 1
            yield self._build_call(key, bucket)
        self._log_summary(taxon_id, call_count, skipped, emitted)

    @staticmethod
    def _log_summary(taxon_id: int, call_count: int, skipped: int, emitted: int) -> None:
        if skipped:
            logger.debug("calls_without_similarity_skipped", taxon_id=taxon_id, count=skipped)
        logger.info(
            "call_grouping_complete",
            taxon_id=taxon_id,
            input_calls=call_count,
            skipped_calls=skipped,
            similarity_calls=emitted,
        )

    @staticmethod
    def group_by_orthology(
        similarity_calls: Iterable[SimilarityExpressionCall],
        ortholog_groups: Mapping[str, frozenset[Gene]],
    ) -> dict[tuple[str, MultiSpeciesCondition], list[SimilarityExpressionCall]]:
        """
        Gather reconciled calls per (orthologous group, condition).

        Calls of genes outside every orthologous group are left out.
        """
        group_of: dict[tuple[str, int], str] = {}
        for group_id, genes in ortholog_groups.items():
            for gene in genes:
                group_of[gene.identity] = group_id

        grouped: dict[tuple[str, MultiSpeciesCondition], list[SimilarityExpressionCall]] = {}
        orphans = 0
        for call in similarity_calls:
            group_id = group_of.get(call.gene.identity)
            if group_id is None:
                orphans += 1
                continue
            grouped.setdefault((group_id, call.condition), []).append(call)
        if orphans:
            logger.debug("calls_without_ortholog_group", count=orphans)
        return grouped
