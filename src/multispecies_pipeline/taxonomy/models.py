"""Value types for taxa and species."""

from pydantic import BaseModel, ConfigDict, Field


class Taxon(BaseModel):
    """A node of the taxonomy; level 1 is the root."""

    model_config = ConfigDict(frozen=True)

    taxon_id: int = Field(..., gt=0)
    scientific_name: str | None = None
    level: int = Field(..., ge=1)


class Species(BaseModel):
    """A species, attached to its closest taxon."""

    model_config = ConfigDict(frozen=True)

    species_id: int = Field(..., gt=0)
    name: str | None = None
    parent_taxon_id: int = Field(..., gt=0)
