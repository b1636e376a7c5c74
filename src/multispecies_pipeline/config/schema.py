"""Pydantic models for pipeline configuration."""

import hashlib
import json
from pathlib import Path

from pydantic import BaseModel, Field, field_validator


class DataSourceVersions(BaseModel):
    """Releases of the upstream resources the working tables were built from."""

    expression_release: str = Field(
        ...,
        min_length=1,
        description="Release of the expression call database",
    )
    oma_release: str = Field(
        default="All.Jul2023",
        description="OMA release providing hierarchical orthologous groups",
    )
    uberon_version: str = Field(
        default="2023-09-05",
        description="Uberon release used for anatomical similarity annotations",
    )


class AnalysisConfig(BaseModel):
    """Defaults applied to multi-species call requests."""

    only_trusted: bool = Field(
        default=False,
        description="Restrict similarity groups to trusted, positive annotations",
    )
    stage_aware: bool = Field(
        default=False,
        description="Also align developmental stages through stage similarity groups",
    )
    conservation_threshold: float = Field(
        default=0.75,
        ge=0.0,
        le=1.0,
        description="Minimum conservation score for a multi-species call to count as conserved",
    )


class ConservationWeights(BaseModel):
    """Weights of the components of the conservation score."""

    species_agreement: float = Field(
        default=0.6,
        ge=0.0,
        le=1.0,
        description="Weight for the share of species agreeing on the call type",
    )
    rank_concordance: float = Field(
        default=0.4,
        ge=0.0,
        le=1.0,
        description="Weight for the closeness of expression ranks across genes",
    )

    def validate_sum(self) -> None:
        """
        Validate that the weights sum to 1.0.

        Raises:
            ValueError: If weights do not sum to 1.0 (within 1e-6 tolerance)
        """
        total = self.species_agreement + self.rank_concordance

        if abs(total - 1.0) > 1e-6:
            raise ValueError(f"Conservation weights must sum to 1.0, got {total:.6f}")


class PipelineConfig(BaseModel):
    """Main pipeline configuration."""

    data_dir: Path = Field(
        ...,
        description="Directory holding input tables and results",
    )
    duckdb_path: Path = Field(
        ...,
        description="Path to DuckDB database file",
    )
    versions: DataSourceVersions = Field(
        ...,
        description="Data source version information",
    )
    analysis: AnalysisConfig = Field(
        default_factory=AnalysisConfig,
        description="Request defaults for multi-species calls",
    )
    scoring: ConservationWeights = Field(
        default_factory=ConservationWeights,
        description="Conservation score weights",
    )

    @field_validator("data_dir")
    @classmethod
    def create_directory(cls, v: Path) -> Path:
        """Create directory if it doesn't exist."""
        v.mkdir(parents=True, exist_ok=True)
        return v

    def config_hash(self) -> str:
        """
        Compute SHA-256 hash of the configuration.

        The hash is stable across runs for identical settings and is stored
        with every provenance record.
        """
        config_json = json.dumps(
            self.model_dump(mode="python"),
            sort_keys=True,
            default=str,
        )
        return hashlib.sha256(config_json.encode()).hexdigest()
