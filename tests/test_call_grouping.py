"""Tests for the call grouping engine and the reconciliation policy."""

import pytest
from pydantic import ValidationError

from multispecies_pipeline.calls import (
    CallGroupingEngine,
    SimilarityExpressionCall,
    SummaryCallType,
    expressed_dominates,
)
from multispecies_pipeline.similarity import (
    AnatEntity,
    AnatEntitySimilarity,
    AnatEntitySimilarityTaxonSummary,
    MultiSpeciesCondition,
    SimilarityIntegrityError,
)

EXPRESSED = SummaryCallType.EXPRESSED
NOT_EXPRESSED = SummaryCallType.NOT_EXPRESSED


def summarize(calls):
    return [
        (c.gene.gene_id, c.condition.anat_similarity.group_id, c.summary_call_type)
        for c in calls
    ]


def test_expressed_dominates():
    """Test that EXPRESSED wins and all-NOT_EXPRESSED stays NOT_EXPRESSED."""
    assert expressed_dominates([NOT_EXPRESSED, EXPRESSED, NOT_EXPRESSED]) == EXPRESSED
    assert expressed_dominates([NOT_EXPRESSED, NOT_EXPRESSED]) == NOT_EXPRESSED
    with pytest.raises(ValueError, match="empty"):
        expressed_dominates([])


def test_reconcile_two_species_scenario(scenario, scenario_calls):
    """Test the shared two-species calls: four results, unmatched entity skipped."""
    results = CallGroupingEngine().reconcile(10, scenario_calls, scenario.anat_groups)

    assert summarize(results) == [
        ("g1", "aeSim1", EXPRESSED),
        ("g1", "aeSim2", NOT_EXPRESSED),
        ("g2a", "aeSim1", EXPRESSED),
        ("g2b", "aeSim1", NOT_EXPRESSED),
    ]
    assert all(len(call.source_calls) == 1 for call in results)
    assert results[0].source_calls == {scenario_calls[0]}


def test_reconcile_mixes_call_types_across_group_members(scenario, make_call):
    """Test buckets joining calls on different entities of one group.

    Groups: aeSim1 = {1a, 2a}, aeSim2 = {1b}.
    """
    s = scenario
    call1 = make_call(s.g1, "1a", EXPRESSED)
    call2 = make_call(s.g1, "2a", NOT_EXPRESSED)
    call3 = make_call(s.g1, "1b", EXPRESSED)
    call4 = make_call(s.g2a, "2a", EXPRESSED)
    call5 = make_call(s.g2b, "1b", NOT_EXPRESSED)

    results = CallGroupingEngine().reconcile(
        10, [call1, call2, call3, call4, call5], s.anat_groups
    )

    assert summarize(results) == [
        ("g1", "aeSim1", EXPRESSED),
        ("g1", "aeSim2", EXPRESSED),
        ("g2a", "aeSim1", EXPRESSED),
        ("g2b", "aeSim2", NOT_EXPRESSED),
    ]
    assert [call.source_calls for call in results] == [
        {call1, call2},
        {call3},
        {call4},
        {call5},
    ]


def test_streaming_matches_buffered(scenario, scenario_calls):
    """Test that gene-ordered input gives the same output on both paths."""
    engine = CallGroupingEngine()

    buffered = engine.reconcile(10, scenario_calls, scenario.anat_groups)
    streamed = list(engine.iter_reconcile(10, iter(scenario_calls), scenario.anat_groups))

    assert streamed == buffered


def test_precedence_within_bucket(scenario, make_call):
    """Test that conflicting calls of one gene in one group reconcile to EXPRESSED."""
    calls = [
        make_call(scenario.g1, "1a", EXPRESSED, dev_stage_id="s1"),
        make_call(scenario.g1, "1a", NOT_EXPRESSED, dev_stage_id="s2"),
    ]

    results = CallGroupingEngine().reconcile(10, calls, scenario.anat_groups)

    assert len(results) == 1
    assert results[0].summary_call_type == EXPRESSED
    assert results[0].source_calls == set(calls)


def test_all_not_expressed_bucket(scenario, make_call):
    """Test that a bucket of NOT_EXPRESSED calls stays NOT_EXPRESSED."""
    calls = [
        make_call(scenario.g2a, "2a", NOT_EXPRESSED, dev_stage_id="s1"),
        make_call(scenario.g2a, "2a", NOT_EXPRESSED, dev_stage_id="s2"),
    ]

    results = CallGroupingEngine().reconcile(10, calls, scenario.anat_groups)

    assert summarize(results) == [("g2a", "aeSim1", NOT_EXPRESSED)]


def test_custom_policy(scenario, make_call):
    """Test that the reconciliation policy is pluggable."""
    calls = [
        make_call(scenario.g1, "1a", EXPRESSED, dev_stage_id="s1"),
        make_call(scenario.g1, "1a", NOT_EXPRESSED, dev_stage_id="s2"),
    ]

    def not_expressed_dominates(call_types):
        return NOT_EXPRESSED if NOT_EXPRESSED in set(call_types) else EXPRESSED

    results = CallGroupingEngine(not_expressed_dominates).reconcile(
        10, calls, scenario.anat_groups
    )

    assert results[0].summary_call_type == NOT_EXPRESSED


def test_output_order_is_first_encounter(scenario, scenario_calls):
    """Test that output order follows the first encounter of each key."""
    reordered = list(reversed(scenario_calls))

    results = CallGroupingEngine().reconcile(10, reordered, scenario.anat_groups)

    assert summarize(results) == [
        ("g2b", "aeSim1", NOT_EXPRESSED),
        ("g2a", "aeSim1", EXPRESSED),
        ("g1", "aeSim2", NOT_EXPRESSED),
        ("g1", "aeSim1", EXPRESSED),
    ]


def test_reconcile_is_deterministic(scenario, scenario_calls):
    """Test that the same input always gives the same output."""
    engine = CallGroupingEngine()

    assert engine.reconcile(10, scenario_calls, scenario.anat_groups) == engine.reconcile(
        10, scenario_calls, scenario.anat_groups
    )


def test_streaming_rejects_gene_reappearing(scenario, make_call):
    """Test that a gene showing up again after being flushed is an error."""
    calls = [
        make_call(scenario.g1, "1a"),
        make_call(scenario.g2a, "2a"),
        make_call(scenario.g1, "1b"),
    ]

    with pytest.raises(ValueError, match="not ordered by gene"):
        list(CallGroupingEngine().iter_reconcile(10, calls, scenario.anat_groups))


def test_buffered_accepts_any_order(scenario, make_call):
    """Test that the buffered path merges a gene's scattered calls."""
    calls = [
        make_call(scenario.g1, "1a", NOT_EXPRESSED, dev_stage_id="s1"),
        make_call(scenario.g2a, "2a"),
        make_call(scenario.g1, "1a", EXPRESSED, dev_stage_id="s2"),
    ]

    results = CallGroupingEngine().reconcile(10, calls, scenario.anat_groups)

    assert summarize(results) == [("g1", "aeSim1", EXPRESSED), ("g2a", "aeSim1", EXPRESSED)]


def test_conflicting_groups_abort_before_output(scenario, scenario_calls):
    """Test that overlapping groups raise before any call is produced."""
    overlapping = AnatEntitySimilarity(
        similarity_id="aeSim3",
        source_anat_entities=[AnatEntity(anat_entity_id="2a")],
        requested_taxon=scenario.taxon,
        taxon_summaries=[AnatEntitySimilarityTaxonSummary(taxon=scenario.taxon, trusted=True)],
    )
    engine = CallGroupingEngine()

    with pytest.raises(SimilarityIntegrityError):
        engine.reconcile(10, scenario_calls, [scenario.ae_sim1, overlapping])
    with pytest.raises(SimilarityIntegrityError):
        engine.iter_reconcile(10, scenario_calls, [scenario.ae_sim1, overlapping])


def test_groups_of_other_taxon_rejected(scenario, scenario_calls):
    """Test that reconciling with groups built for another taxon fails."""
    with pytest.raises(ValueError, match="not 22"):
        CallGroupingEngine().reconcile(22, scenario_calls, scenario.anat_groups)


def test_stage_aware_grouping(scenario, make_call):
    """Test that stage groups split conditions and calls without stage group are skipped."""
    calls = [
        make_call(scenario.g1, "1a", EXPRESSED, dev_stage_id="s1"),
        make_call(scenario.g1, "1a", NOT_EXPRESSED, dev_stage_id="s2"),
        make_call(scenario.g1, "1a", EXPRESSED, dev_stage_id="s9"),
        make_call(scenario.g1, "1a", EXPRESSED),
    ]

    results = CallGroupingEngine().reconcile(
        10, calls, scenario.anat_groups, [scenario.stage_sim]
    )

    assert len(results) == 1
    assert results[0].condition == MultiSpeciesCondition(
        anat_similarity=scenario.ae_sim1, stage_similarity=scenario.stage_sim
    )
    assert len(results[0].source_calls) == 2


def test_identical_calls_collapse(scenario, make_call):
    """Test that duplicated observations are kept once as source calls."""
    call = make_call(scenario.g1, "1a")

    results = CallGroupingEngine().reconcile(10, [call, call], scenario.anat_groups)

    assert results[0].source_calls == {call}


def test_similarity_call_validation(scenario, make_call):
    """Test that source calls must match the gene and the condition groups."""
    condition = MultiSpeciesCondition(anat_similarity=scenario.ae_sim1)

    with pytest.raises(ValidationError, match="at least one source call"):
        SimilarityExpressionCall(
            gene=scenario.g1, condition=condition, source_calls=[], summary_call_type=EXPRESSED
        )
    with pytest.raises(ValidationError, match="cannot support"):
        SimilarityExpressionCall(
            gene=scenario.g1,
            condition=condition,
            source_calls=[make_call(scenario.g2a, "2a")],
            summary_call_type=EXPRESSED,
        )
    with pytest.raises(ValidationError, match="not part of similarity"):
        SimilarityExpressionCall(
            gene=scenario.g1,
            condition=condition,
            source_calls=[make_call(scenario.g1, "1b")],
            summary_call_type=EXPRESSED,
        )


def test_best_observed_rank(scenario, make_call):
    """Test that only observed calls contribute to the best rank."""
    call = SimilarityExpressionCall(
        gene=scenario.g1,
        condition=MultiSpeciesCondition(anat_similarity=scenario.ae_sim1),
        source_calls=[
            make_call(scenario.g1, "1a", dev_stage_id="s1", rank=30.0),
            make_call(scenario.g1, "1a", dev_stage_id="s2", rank=12.5),
            make_call(scenario.g1, "1a", dev_stage_id="s3", rank=2.0, observed=False),
        ],
        summary_call_type=EXPRESSED,
    )

    assert call.best_observed_rank == 12.5
    assert call.has_observed_data


def test_streaming_emits_gene_when_next_gene_starts(scenario, make_call):
    """Test that a gene's calls are yielded before later genes are read."""
    calls = [
        make_call(scenario.g1, "1a"),
        make_call(scenario.g1, "1b"),
        make_call(scenario.g2a, "2a"),
        make_call(scenario.g2b, "2a"),
    ]
    consumed = []

    def stream():
        for call in calls:
            consumed.append(call)
            yield call

    results = CallGroupingEngine().iter_reconcile(10, stream(), scenario.anat_groups)

    first = next(results)
    assert first.gene == scenario.g1
    assert consumed == calls[:3]
    assert [c.gene.gene_id for c in results] == ["g1", "g2a", "g2b"]
