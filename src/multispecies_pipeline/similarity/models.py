"""Value types for similarity groups and multi-species conditions."""

from pydantic import BaseModel, ConfigDict, Field, field_validator

from multispecies_pipeline.taxonomy.models import Taxon


class AnatEntity(BaseModel):
    """An anatomical entity (Uberon or species-specific ontology term)."""

    model_config = ConfigDict(frozen=True)

    anat_entity_id: str = Field(..., min_length=1)
    name: str | None = None


class DevStage(BaseModel):
    """A developmental stage term."""

    model_config = ConfigDict(frozen=True)

    dev_stage_id: str = Field(..., min_length=1)
    name: str | None = None


class AnatEntitySimilarityTaxonSummary(BaseModel):
    """Summary of the curated similarity annotations of a group at one taxon."""

    model_config = ConfigDict(frozen=True)

    taxon: Taxon
    trusted: bool
    positive: bool = True


class AnatEntitySimilarity(BaseModel):
    """
    A group of anatomical entities considered homologous for a requested taxon.

    Groups built for the same requested taxon partition the anatomical
    entities they cover: an entity never appears in two of them.

    Taxon summaries are kept sorted from the most specific taxon (highest
    level) to the most general one, one summary per taxon. When several
    summaries for the same taxon are supplied, the strongest is kept
    (positive before negative, then trusted before untrusted). Two distinct
    taxa at the same level are rejected here; taxa carry no parent, so the
    full lineage check against the taxonomy is made where groups are loaded
    (see TaxonOntology.is_single_lineage).
    """

    model_config = ConfigDict(frozen=True)

    similarity_id: str | None = None
    source_anat_entities: frozenset[AnatEntity]
    transformation_of_anat_entities: frozenset[AnatEntity] = frozenset()
    requested_taxon: Taxon
    taxon_summaries: tuple[AnatEntitySimilarityTaxonSummary, ...]

    @field_validator("source_anat_entities")
    @classmethod
    def require_sources(cls, v: frozenset[AnatEntity]) -> frozenset[AnatEntity]:
        if not v:
            raise ValueError("Source anatomical entities cannot be empty")
        return v

    @field_validator("transformation_of_anat_entities", mode="before")
    @classmethod
    def default_transformations(cls, v):
        return frozenset() if v is None else v

    @field_validator("taxon_summaries")
    @classmethod
    def normalize_summaries(
        cls, v: tuple[AnatEntitySimilarityTaxonSummary, ...]
    ) -> tuple[AnatEntitySimilarityTaxonSummary, ...]:
        if not v:
            raise ValueError("Taxon summaries cannot be empty")

        by_taxon: dict[int, AnatEntitySimilarityTaxonSummary] = {}
        for summary in v:
            kept = by_taxon.get(summary.taxon.taxon_id)
            if kept is None or (summary.positive, summary.trusted) > (
                kept.positive,
                kept.trusted,
            ):
                by_taxon[summary.taxon.taxon_id] = summary

        ordered = sorted(
            by_taxon.values(),
            key=lambda s: (-s.taxon.level, s.taxon.taxon_id),
        )
        for more_specific, more_general in zip(ordered, ordered[1:]):
            if more_specific.taxon.level == more_general.taxon.level:
                raise ValueError(
                    "Taxon summaries must lie on one lineage, found taxa "
                    f"{more_specific.taxon.taxon_id} and {more_general.taxon.taxon_id} "
                    f"at level {more_specific.taxon.level}"
                )
        return tuple(ordered)

    @property
    def all_anat_entities(self) -> frozenset[AnatEntity]:
        return self.source_anat_entities | self.transformation_of_anat_entities

    @property
    def all_anat_entity_ids(self) -> frozenset[str]:
        return frozenset(e.anat_entity_id for e in self.all_anat_entities)

    @property
    def group_id(self) -> str:
        """Explicit similarity ID, or one derived from the sorted member IDs."""
        if self.similarity_id is not None:
            return self.similarity_id
        return "|".join(sorted(self.all_anat_entity_ids))

    @property
    def is_trusted(self) -> bool:
        return any(s.positive and s.trusted for s in self.taxon_summaries)

    @property
    def least_common_taxon(self) -> Taxon:
        """The most specific taxon with a similarity annotation."""
        return self.taxon_summaries[0].taxon

    def sorted_anat_entities(self) -> list[AnatEntity]:
        return sorted(self.all_anat_entities, key=lambda e: e.anat_entity_id)

    def anat_entity_names(self) -> str:
        """Member names (or IDs when unnamed), ID order, joined with ' - '."""
        return " - ".join(e.name or e.anat_entity_id for e in self.sorted_anat_entities())


class DevStageSimilarity(BaseModel):
    """A group of developmental stages considered equivalent across species."""

    model_config = ConfigDict(frozen=True)

    group_id: str = Field(..., min_length=1)
    dev_stage_ids: frozenset[str]
    taxon_id: int | None = None

    @field_validator("dev_stage_ids")
    @classmethod
    def require_stages(cls, v: frozenset[str]) -> frozenset[str]:
        if not v:
            raise ValueError("Developmental stage similarity cannot be empty")
        return v


class MultiSpeciesCondition(BaseModel):
    """
    A condition comparable across species.

    Cell type and sex axes are carried but not populated by the grouping
    engine yet.
    """

    model_config = ConfigDict(frozen=True)

    anat_similarity: AnatEntitySimilarity
    stage_similarity: DevStageSimilarity | None = None
    cell_type_similarity: AnatEntitySimilarity | None = None
    sex: str | None = None


class ConditionFilter(BaseModel):
    """
    Request-scoped restriction on anatomical entities and stages.

    For ``accepts``, None means no restriction on that axis and an explicit
    empty set matches nothing. ConditionExpander reads an empty set like
    None and widens it to every group on the axis; the filters it returns
    carry explicit anatomical IDs, so an empty result there matches nothing.
    """

    model_config = ConfigDict(frozen=True)

    anat_entity_ids: frozenset[str] | None = None
    dev_stage_ids: frozenset[str] | None = None

    def accepts(self, anat_entity_id: str, dev_stage_id: str | None) -> bool:
        if self.anat_entity_ids is not None and anat_entity_id not in self.anat_entity_ids:
            return False
        if self.dev_stage_ids is not None and dev_stage_id not in self.dev_stage_ids:
            return False
        return True
