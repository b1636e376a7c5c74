"""Value types for genes and expression calls."""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from multispecies_pipeline.similarity.models import MultiSpeciesCondition
from multispecies_pipeline.taxonomy.models import Species


class SummaryCallType(str, Enum):
    EXPRESSED = "EXPRESSED"
    NOT_EXPRESSED = "NOT_EXPRESSED"


class SummaryQuality(str, Enum):
    GOLD = "GOLD"
    SILVER = "SILVER"
    BRONZE = "BRONZE"


class Gene(BaseModel):
    """A gene; identified by its ID together with its species."""

    model_config = ConfigDict(frozen=True)

    gene_id: str = Field(..., min_length=1)
    species: Species
    name: str | None = None
    biotype: str | None = None

    @property
    def species_id(self) -> int:
        return self.species.species_id

    @property
    def identity(self) -> tuple[str, int]:
        return (self.gene_id, self.species.species_id)


class GeneFilter(BaseModel):
    """Genes of one species; no gene IDs means every gene of the species."""

    model_config = ConfigDict(frozen=True)

    species_id: int = Field(..., gt=0)
    gene_ids: frozenset[str] = frozenset()

    def accepts(self, gene: Gene) -> bool:
        return gene.species_id == self.species_id and (
            not self.gene_ids or gene.gene_id in self.gene_ids
        )


def gene_filters_for(genes) -> list[GeneFilter]:
    """One filter per species, listing the given genes of that species."""
    by_species: dict[int, set[str]] = {}
    for gene in genes:
        by_species.setdefault(gene.species_id, set()).add(gene.gene_id)
    return [
        GeneFilter(species_id=species_id, gene_ids=frozenset(gene_ids))
        for species_id, gene_ids in sorted(by_species.items())
    ]


class Condition(BaseModel):
    """A single-species condition an observation was made in."""

    model_config = ConfigDict(frozen=True)

    anat_entity_id: str = Field(..., min_length=1)
    dev_stage_id: str | None = None
    species_id: int = Field(..., gt=0)


class ExpressionCall(BaseModel):
    """A summarized single-species expression observation."""

    model_config = ConfigDict(frozen=True)

    gene: Gene
    condition: Condition
    summary_call_type: SummaryCallType
    summary_quality: SummaryQuality | None = None
    observed: bool = False
    expression_rank: float | None = Field(default=None, gt=0)

    @model_validator(mode="after")
    def check_species(self) -> "ExpressionCall":
        if self.condition.species_id != self.gene.species_id:
            raise ValueError(
                f"Condition species {self.condition.species_id} does not match "
                f"species {self.gene.species_id} of gene {self.gene.gene_id}"
            )
        return self


class SimilarityExpressionCall(BaseModel):
    """
    Reconciled call of one gene in one multi-species condition.

    Keeps every single-species call it was built from. All of them concern
    the call's gene, and their anatomical entities (and stages, when the
    condition has a stage axis) belong to the condition's similarity groups.
    """

    model_config = ConfigDict(frozen=True)

    gene: Gene
    condition: MultiSpeciesCondition
    source_calls: frozenset[ExpressionCall]
    summary_call_type: SummaryCallType

    @field_validator("source_calls")
    @classmethod
    def require_source_calls(cls, v: frozenset[ExpressionCall]) -> frozenset[ExpressionCall]:
        if not v:
            raise ValueError("A similarity expression call needs at least one source call")
        return v

    @model_validator(mode="after")
    def check_source_calls(self) -> "SimilarityExpressionCall":
        anat_ids = self.condition.anat_similarity.all_anat_entity_ids
        stage_similarity = self.condition.stage_similarity
        for call in self.source_calls:
            if call.gene.identity != self.gene.identity:
                raise ValueError(
                    f"Source call for gene {call.gene.gene_id} cannot support a call "
                    f"for gene {self.gene.gene_id}"
                )
            if call.condition.anat_entity_id not in anat_ids:
                raise ValueError(
                    f"Anatomical entity {call.condition.anat_entity_id} is not part of "
                    f"similarity {self.condition.anat_similarity.group_id}"
                )
            if (
                stage_similarity is not None
                and call.condition.dev_stage_id not in stage_similarity.dev_stage_ids
            ):
                raise ValueError(
                    f"Stage {call.condition.dev_stage_id} is not part of "
                    f"stage similarity {stage_similarity.group_id}"
                )
        return self

    @property
    def has_observed_data(self) -> bool:
        return any(call.observed for call in self.source_calls)

    @property
    def best_observed_rank(self) -> float | None:
        """Lowest (best) expression rank among observed source calls."""
        ranks = [
            call.expression_rank
            for call in self.source_calls
            if call.observed and call.expression_rank is not None
        ]
        return min(ranks) if ranks else None
