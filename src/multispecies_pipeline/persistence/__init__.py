"""DuckDB working store, provenance tracking and the providers built on them."""

from multispecies_pipeline.persistence.duckdb_store import PipelineStore
from multispecies_pipeline.persistence.provenance import ProvenanceTracker
from multispecies_pipeline.persistence.sources import TABLE_SCHEMAS, DuckDBDataSource

__all__ = ["DuckDBDataSource", "PipelineStore", "ProvenanceTracker", "TABLE_SCHEMAS"]
