"""Shared synthetic taxonomy, genes, similarity groups and expression calls.

The scenario compares two species at taxon 10:
- species 1 (under taxon 21) has gene g1 and anatomical entities 1a, 1b, 1c
- species 2 (under taxon 22) has genes g2a, g2b and anatomical entity 2a
- aeSim1 groups 1a with 2a (trusted), aeSim2 holds 1b alone (untrusted)
- 1c belongs to no similarity group
"""

from types import SimpleNamespace

import polars as pl
import pytest

from multispecies_pipeline.calls.models import (
    Condition,
    ExpressionCall,
    Gene,
    SummaryCallType,
    SummaryQuality,
)
from multispecies_pipeline.similarity.models import (
    AnatEntity,
    AnatEntitySimilarity,
    AnatEntitySimilarityTaxonSummary,
    DevStageSimilarity,
)
from multispecies_pipeline.taxonomy import Species, TaxonOntology

TAXA = [
    (1, None, "cellular organisms"),
    (10, 1, "Vertebrata"),
    (21, 10, "Mammalia"),
    (22, 10, "Actinopterygii"),
]


@pytest.fixture
def ontology():
    return TaxonOntology(TAXA)


@pytest.fixture
def scenario(ontology):
    """Species, genes and similarity groups of the two-species scenario."""
    taxon = ontology.get_taxon(10)
    species1 = Species(species_id=1, name="species1", parent_taxon_id=21)
    species2 = Species(species_id=2, name="species2", parent_taxon_id=22)

    ae_sim1 = AnatEntitySimilarity(
        similarity_id="aeSim1",
        source_anat_entities=[
            AnatEntity(anat_entity_id="1a", name="heart"),
            AnatEntity(anat_entity_id="2a", name="cardiac tube"),
        ],
        requested_taxon=taxon,
        taxon_summaries=[AnatEntitySimilarityTaxonSummary(taxon=taxon, trusted=True)],
    )
    ae_sim2 = AnatEntitySimilarity(
        similarity_id="aeSim2",
        source_anat_entities=[AnatEntity(anat_entity_id="1b", name="brain")],
        requested_taxon=taxon,
        taxon_summaries=[AnatEntitySimilarityTaxonSummary(taxon=taxon, trusted=False)],
    )
    stage_sim = DevStageSimilarity(group_id="stSim1", dev_stage_ids={"s1", "s2"}, taxon_id=10)

    return SimpleNamespace(
        taxon=taxon,
        species1=species1,
        species2=species2,
        g1=Gene(gene_id="g1", species=species1, name="gene1"),
        g2a=Gene(gene_id="g2a", species=species2, name="gene2a"),
        g2b=Gene(gene_id="g2b", species=species2, name="gene2b"),
        ae_sim1=ae_sim1,
        ae_sim2=ae_sim2,
        anat_groups=[ae_sim1, ae_sim2],
        stage_sim=stage_sim,
    )


@pytest.fixture
def make_call():
    """Factory for single-species expression calls."""
    def _make(
        gene,
        anat_entity_id,
        call_type=SummaryCallType.EXPRESSED,
        dev_stage_id=None,
        observed=True,
        rank=None,
    ):
        return ExpressionCall(
            gene=gene,
            condition=Condition(
                anat_entity_id=anat_entity_id,
                dev_stage_id=dev_stage_id,
                species_id=gene.species_id,
            ),
            summary_call_type=call_type,
            summary_quality=SummaryQuality.BRONZE,
            observed=observed,
            expression_rank=rank,
        )
    return _make


@pytest.fixture
def scenario_calls(scenario, make_call):
    """Calls ordered by gene: g1 in 1a, 1b, 1c; g2a and g2b in 2a."""
    s = scenario
    return [
        make_call(s.g1, "1a", SummaryCallType.EXPRESSED, rank=10.0),
        make_call(s.g1, "1b", SummaryCallType.NOT_EXPRESSED),
        make_call(s.g1, "1c", SummaryCallType.EXPRESSED),
        make_call(s.g2a, "2a", SummaryCallType.EXPRESSED, rank=20.0),
        make_call(s.g2b, "2a", SummaryCallType.NOT_EXPRESSED, observed=False),
    ]


@pytest.fixture
def scenario_tables():
    """The scenario as working tables, plus a negative group and a HOG table."""
    from multispecies_pipeline.persistence.sources import TABLE_SCHEMAS

    data = {
        "taxon": {
            "taxon_id": [t[0] for t in TAXA],
            "parent_taxon_id": [t[1] for t in TAXA],
            "scientific_name": [t[2] for t in TAXA],
        },
        "species": {
            "species_id": [1, 2],
            "species_name": ["species1", "species2"],
            "parent_taxon_id": [21, 22],
        },
        "gene": {
            "gene_id": ["g1", "g2a", "g2b"],
            "species_id": [1, 2, 2],
            "gene_name": ["gene1", "gene2a", "gene2b"],
            "biotype": ["protein_coding", "protein_coding", None],
        },
        "anat_similarity": {
            "similarity_id": ["aeSim1", "aeSim1", "aeSim1", "aeSim2", "aeSimNeg"],
            "requested_taxon_id": [10, 10, 10, 10, 10],
            "anat_entity_id": ["1a", "2a", "1t", "1b", "9z"],
            "anat_entity_name": ["heart", "cardiac tube", "heart primordium", "brain", None],
            "relation": ["source", "source", "transformation_of", "source", "source"],
        },
        "anat_similarity_taxon": {
            "similarity_id": ["aeSim1", "aeSim1", "aeSim2", "aeSimNeg"],
            "taxon_id": [10, 1, 10, 10],
            "trusted": [True, False, False, True],
            "positive": [True, True, True, False],
        },
        "dev_stage_similarity": {
            "similarity_id": ["stSim1", "stSim1"],
            "taxon_id": [10, 10],
            "dev_stage_id": ["s1", "s2"],
        },
        "expression_call": {
            "gene_id": ["g2b", "g1", "g1", "g1", "g2a"],
            "species_id": [2, 1, 1, 1, 2],
            "anat_entity_id": ["2a", "1a", "1b", "1c", "2a"],
            "dev_stage_id": [None, None, None, None, None],
            "call_type": ["NOT_EXPRESSED", "EXPRESSED", "NOT_EXPRESSED", "EXPRESSED", "EXPRESSED"],
            "quality": ["BRONZE", "GOLD", "SILVER", "BRONZE", "GOLD"],
            "observed": [False, True, True, True, True],
            "expression_rank": [None, 10.0, None, None, 20.0],
        },
        "ortholog_group": {
            "oma_group_id": ["HOG:1", "HOG:1", "HOG:1"],
            "taxon_id": [10, 10, 10],
            "gene_id": ["g1", "g2a", "g2b"],
            "species_id": [1, 2, 2],
        },
    }
    return {table: pl.DataFrame(columns, schema=TABLE_SCHEMAS[table]) for table, columns in data.items()}
