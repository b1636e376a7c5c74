"""Data providers reading the DuckDB working tables into model objects."""

from collections.abc import Collection, Iterator, Sequence

import polars as pl
import structlog

from multispecies_pipeline.calls.models import (
    Condition,
    ExpressionCall,
    Gene,
    GeneFilter,
    SummaryCallType,
    SummaryQuality,
)
from multispecies_pipeline.persistence.duckdb_store import PipelineStore
from multispecies_pipeline.similarity.models import (
    AnatEntity,
    AnatEntitySimilarity,
    AnatEntitySimilarityTaxonSummary,
    ConditionFilter,
    DevStageSimilarity,
)
from multispecies_pipeline.taxonomy.models import Species
from multispecies_pipeline.taxonomy.ontology import TaxonOntology

logger = structlog.get_logger()

TAXON_TABLE = "taxon"
SPECIES_TABLE = "species"
GENE_TABLE = "gene"
ANAT_SIMILARITY_TABLE = "anat_similarity"
ANAT_SIMILARITY_TAXON_TABLE = "anat_similarity_taxon"
DEV_STAGE_SIMILARITY_TABLE = "dev_stage_similarity"
EXPRESSION_CALL_TABLE = "expression_call"
ORTHOLOG_GROUP_TABLE = "ortholog_group"

# Column types of each working table, used when importing TSV files
TABLE_SCHEMAS: dict[str, dict[str, pl.DataType]] = {
    TAXON_TABLE: {
        "taxon_id": pl.Int64,
        "parent_taxon_id": pl.Int64,
        "scientific_name": pl.Utf8,
    },
    SPECIES_TABLE: {
        "species_id": pl.Int64,
        "species_name": pl.Utf8,
        "parent_taxon_id": pl.Int64,
    },
    GENE_TABLE: {
        "gene_id": pl.Utf8,
        "species_id": pl.Int64,
        "gene_name": pl.Utf8,
        "biotype": pl.Utf8,
    },
    ANAT_SIMILARITY_TABLE: {
        "similarity_id": pl.Utf8,
        "requested_taxon_id": pl.Int64,
        "anat_entity_id": pl.Utf8,
        "anat_entity_name": pl.Utf8,
        "relation": pl.Utf8,
    },
    ANAT_SIMILARITY_TAXON_TABLE: {
        "similarity_id": pl.Utf8,
        "taxon_id": pl.Int64,
        "trusted": pl.Boolean,
        "positive": pl.Boolean,
    },
    DEV_STAGE_SIMILARITY_TABLE: {
        "similarity_id": pl.Utf8,
        "taxon_id": pl.Int64,
        "dev_stage_id": pl.Utf8,
    },
    EXPRESSION_CALL_TABLE: {
        "gene_id": pl.Utf8,
        "species_id": pl.Int64,
        "anat_entity_id": pl.Utf8,
        "dev_stage_id": pl.Utf8,
        "call_type": pl.Utf8,
        "quality": pl.Utf8,
        "observed": pl.Boolean,
        "expression_rank": pl.Float64,
    },
    ORTHOLOG_GROUP_TABLE: {
        "oma_group_id": pl.Utf8,
        "taxon_id": pl.Int64,
        "gene_id": pl.Utf8,
        "species_id": pl.Int64,
    },
}

SOURCE_RELATION = "source"
TRANSFORMATION_OF_RELATION = "transformation_of"


class DuckDBDataSource:
    """
    Provides taxonomy, genes, similarity groups, expression calls and
    orthologous groups from the working tables of a PipelineStore.

    Implements every provider protocol used by MultiSpeciesCallService.
    The taxonomy is read once and cached.
    """

    def __init__(self, store: PipelineStore):
        self.store = store
        self._ontology: TaxonOntology | None = None

    def _require(self, table_name: str) -> None:
        if not self.store.has_checkpoint(table_name):
            raise ValueError(
                f"Table '{table_name}' not found in {self.store.db_path}; "
                "load the input tables first"
            )

    def load_taxon_ontology(self) -> TaxonOntology:
        if self._ontology is None:
            self._require(TAXON_TABLE)
            self._ontology = TaxonOntology.from_dataframe(
                self.store.load_dataframe(TAXON_TABLE)
            )
        return self._ontology

    def load_species_by_taxon(self, taxon_id: int) -> list[Species]:
        ontology = self.load_taxon_ontology()
        ontology.get_taxon(taxon_id)
        self._require(SPECIES_TABLE)
        df = self.store.execute_query(
            f"SELECT species_id, species_name, parent_taxon_id FROM {SPECIES_TABLE} "
            "ORDER BY species_id"
        )
        return [
            Species(
                species_id=row["species_id"],
                name=row["species_name"],
                parent_taxon_id=row["parent_taxon_id"],
            )
            for row in df.iter_rows(named=True)
            if row["parent_taxon_id"] in ontology
            and ontology.is_same_or_ancestor(taxon_id, row["parent_taxon_id"])
        ]

    def load_genes(self, gene_ids: Collection[str]) -> list[Gene]:
        if not gene_ids:
            return []
        self._require(GENE_TABLE)
        df = self.store.execute_query(
            f"""
            SELECT g.gene_id, g.species_id, g.gene_name, g.biotype,
                   s.species_name, s.parent_taxon_id
            FROM {GENE_TABLE} g
            JOIN {SPECIES_TABLE} s ON s.species_id = g.species_id
            WHERE list_contains(?, g.gene_id)
            ORDER BY g.gene_id, g.species_id
            """,
            [sorted(gene_ids)],
        )
        return [_gene_from_row(row) for row in df.iter_rows(named=True)]

    def load_anat_entity_similarities(
        self, taxon_id: int, only_trusted: bool
    ) -> list[AnatEntitySimilarity]:
        ontology = self.load_taxon_ontology()
        requested_taxon = ontology.get_taxon(taxon_id)
        self._require(ANAT_SIMILARITY_TABLE)
        self._require(ANAT_SIMILARITY_TAXON_TABLE)

        members = self.store.execute_query(
            f"""
            SELECT similarity_id, anat_entity_id, anat_entity_name, relation
            FROM {ANAT_SIMILARITY_TABLE}
            WHERE requested_taxon_id = ?
            ORDER BY similarity_id, anat_entity_id
            """,
            [taxon_id],
        )
        summaries = self.store.execute_query(
            f"""
            SELECT t.similarity_id, t.taxon_id, t.trusted, t.positive
            FROM {ANAT_SIMILARITY_TAXON_TABLE} t
            WHERE t.similarity_id IN (
                SELECT DISTINCT similarity_id FROM {ANAT_SIMILARITY_TABLE}
                WHERE requested_taxon_id = ?
            )
            ORDER BY t.similarity_id, t.taxon_id
            """,
            [taxon_id],
        )

        summaries_by_group: dict[str, list[AnatEntitySimilarityTaxonSummary]] = {}
        for row in summaries.iter_rows(named=True):
            summaries_by_group.setdefault(row["similarity_id"], []).append(
                AnatEntitySimilarityTaxonSummary(
                    taxon=ontology.get_taxon(row["taxon_id"]),
                    trusted=row["trusted"],
                    positive=row["positive"],
                )
            )

        relations: dict[str, dict[str, set[AnatEntity]]] = {}
        for row in members.iter_rows(named=True):
            relation = row["relation"]
            if relation not in (SOURCE_RELATION, TRANSFORMATION_OF_RELATION):
                raise ValueError(
                    f"Unknown relation '{relation}' in similarity {row['similarity_id']}"
                )
            group = relations.setdefault(
                row["similarity_id"],
                {SOURCE_RELATION: set(), TRANSFORMATION_OF_RELATION: set()},
            )
            group[relation].add(
                AnatEntity(anat_entity_id=row["anat_entity_id"], name=row["anat_entity_name"])
            )

        similarities = []
        negative = 0
        for similarity_id, group in relations.items():
            group_summaries = summaries_by_group.get(similarity_id, [])
            if not any(s.positive for s in group_summaries):
                negative += 1
                continue
            summary_taxa = sorted({s.taxon.taxon_id for s in group_summaries})
            if not ontology.is_single_lineage(summary_taxa):
                raise ValueError(
                    f"Taxon summaries of similarity {similarity_id} are not on one "
                    f"lineage: taxa {summary_taxa}"
                )
            similarity = AnatEntitySimilarity(
                similarity_id=similarity_id,
                source_anat_entities=group[SOURCE_RELATION],
                transformation_of_anat_entities=group[TRANSFORMATION_OF_RELATION],
                requested_taxon=requested_taxon,
                taxon_summaries=group_summaries,
            )
            if only_trusted and not similarity.is_trusted:
                continue
            similarities.append(similarity)

        logger.debug(
            "anat_similarities_loaded",
            taxon_id=taxon_id,
            only_trusted=only_trusted,
            group_count=len(similarities),
            non_positive_groups=negative,
        )
        return similarities

    def load_dev_stage_similarities(self, taxon_id: int) -> list[DevStageSimilarity]:
        self._require(DEV_STAGE_SIMILARITY_TABLE)
        df = self.store.execute_query(
            f"""
            SELECT similarity_id, dev_stage_id
            FROM {DEV_STAGE_SIMILARITY_TABLE}
            WHERE taxon_id = ?
            ORDER BY similarity_id, dev_stage_id
            """,
            [taxon_id],
        )
        stages: dict[str, set[str]] = {}
        for row in df.iter_rows(named=True):
            stages.setdefault(row["similarity_id"], set()).add(row["dev_stage_id"])
        return [
            DevStageSimilarity(group_id=group_id, dev_stage_ids=stage_ids, taxon_id=taxon_id)
            for group_id, stage_ids in stages.items()
        ]

    def load_expression_calls(
        self,
        gene_filters: Sequence[GeneFilter],
        condition_filter: ConditionFilter,
    ) -> Iterator[ExpressionCall]:
        """Calls matching the filters, ordered by species then gene."""
        if not gene_filters:
            return iter(())
        if condition_filter.anat_entity_ids is not None and not condition_filter.anat_entity_ids:
            return iter(())
        if condition_filter.dev_stage_ids is not None and not condition_filter.dev_stage_ids:
            return iter(())
        self._require(EXPRESSION_CALL_TABLE)

        gene_clauses = []
        params: list = []
        for gene_filter in gene_filters:
            if gene_filter.gene_ids:
                gene_clauses.append("(c.species_id = ? AND list_contains(?, c.gene_id))")
                params.extend([gene_filter.species_id, sorted(gene_filter.gene_ids)])
            else:
                gene_clauses.append("c.species_id = ?")
                params.append(gene_filter.species_id)
        clauses = ["(" + " OR ".join(gene_clauses) + ")"]
        if condition_filter.anat_entity_ids is not None:
            clauses.append("list_contains(?, c.anat_entity_id)")
            params.append(sorted(condition_filter.anat_entity_ids))
        if condition_filter.dev_stage_ids is not None:
            clauses.append("list_contains(?, c.dev_stage_id)")
            params.append(sorted(condition_filter.dev_stage_ids))

        df = self.store.execute_query(
            f"""
            SELECT c.gene_id, c.species_id, c.anat_entity_id, c.dev_stage_id,
                   c.call_type, c.quality, c.observed, c.expression_rank,
                   g.gene_name, g.biotype, s.species_name, s.parent_taxon_id
            FROM {EXPRESSION_CALL_TABLE} c
            JOIN {GENE_TABLE} g ON g.gene_id = c.gene_id AND g.species_id = c.species_id
            JOIN {SPECIES_TABLE} s ON s.species_id = c.species_id
            WHERE {" AND ".join(clauses)}
            ORDER BY c.species_id, c.gene_id, c.anat_entity_id, c.dev_stage_id
            """,
            params,
        )
        logger.debug("expression_calls_loaded", row_count=df.height)
        return self._iter_calls(df)

    @staticmethod
    def _iter_calls(df: pl.DataFrame) -> Iterator[ExpressionCall]:
        genes: dict[tuple[str, int], Gene] = {}
        for row in df.iter_rows(named=True):
            identity = (row["gene_id"], row["species_id"])
            gene = genes.get(identity)
            if gene is None:
                gene = genes[identity] = _gene_from_row(row)
            yield ExpressionCall(
                gene=gene,
                condition=Condition(
                    anat_entity_id=row["anat_entity_id"],
                    dev_stage_id=row["dev_stage_id"],
                    species_id=row["species_id"],
                ),
                summary_call_type=SummaryCallType(row["call_type"]),
                summary_quality=SummaryQuality(row["quality"]) if row["quality"] else None,
                observed=bool(row["observed"]),
                expression_rank=row["expression_rank"],
            )

    def load_ortholog_group_ids(
        self, taxon_id: int, genes: Collection[Gene]
    ) -> dict[tuple[str, int], set[str]]:
        if not genes:
            return {}
        self._require(ORTHOLOG_GROUP_TABLE)
        identities = {gene.identity for gene in genes}
        df = self.store.execute_query(
            f"""
            SELECT oma_group_id, gene_id, species_id
            FROM {ORTHOLOG_GROUP_TABLE}
            WHERE taxon_id = ? AND list_contains(?, gene_id)
            """,
            [taxon_id, sorted({gene_id for gene_id, _ in identities})],
        )
        memberships: dict[tuple[str, int], set[str]] = {}
        for row in df.iter_rows(named=True):
            identity = (row["gene_id"], row["species_id"])
            if identity in identities:
                memberships.setdefault(identity, set()).add(row["oma_group_id"])
        return memberships


def _gene_from_row(row: dict) -> Gene:
    return Gene(
        gene_id=row["gene_id"],
        species=Species(
            species_id=row["species_id"],
            name=row["species_name"],
            parent_taxon_id=row["parent_taxon_id"],
        ),
        name=row["gene_name"],
        biotype=row["biotype"],
    )
