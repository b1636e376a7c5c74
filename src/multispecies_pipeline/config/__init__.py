"""Configuration loading and validation."""

from multispecies_pipeline.config.loader import load_config, load_config_with_overrides
from multispecies_pipeline.config.schema import (
    AnalysisConfig,
    ConservationWeights,
    DataSourceVersions,
    PipelineConfig,
)

__all__ = [
    "AnalysisConfig",
    "ConservationWeights",
    "DataSourceVersions",
    "PipelineConfig",
    "load_config",
    "load_config_with_overrides",
]
