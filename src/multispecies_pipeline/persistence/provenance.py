"""Provenance records for working tables and request outputs."""

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional


class ProvenanceTracker:
    """
    Records what produced a set of results.

    Keeps the pipeline version, the upstream data releases, the config hash,
    the analysis settings and the processing steps of a run.
    """

    def __init__(self, pipeline_version: str, config: "PipelineConfig"):
        self.pipeline_version = pipeline_version
        self.config_hash = config.config_hash()
        self.data_source_versions = config.versions.model_dump()
        self.analysis_settings = config.analysis.model_dump()
        self.processing_steps = []
        self.created_at = datetime.now(timezone.utc)

    def record_step(self, step_name: str, details: Optional[dict] = None) -> None:
        """
        Record a processing step.

        Args:
            step_name: Name of the processing step
            details: Optional dictionary of additional details (row counts,
                request parameters)
        """
        step = {
            "step_name": step_name,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        if details:
            step["details"] = details
        self.processing_steps.append(step)

    def get_steps(self) -> list[dict]:
        return list(self.processing_steps)

    def create_metadata(self) -> dict:
        return {
            "pipeline_version": self.pipeline_version,
            "data_source_versions": self.data_source_versions,
            "analysis_settings": self.analysis_settings,
            "config_hash": self.config_hash,
            "created_at": self.created_at.isoformat(),
            "processing_steps": self.processing_steps,
        }

    def save_sidecar(self, output_path: Path) -> Path:
        """
        Save provenance metadata next to an output file.

        Args:
            output_path: Path to the main output file. The sidecar is written
                to the same path with a .provenance.json suffix.

        Returns:
            Path of the sidecar file
        """
        sidecar_path = output_path.with_suffix(".provenance.json")
        sidecar_path.parent.mkdir(parents=True, exist_ok=True)

        with open(sidecar_path, "w") as f:
            json.dump(self.create_metadata(), f, indent=2, default=str)
        return sidecar_path

    def save_to_store(self, store: "PipelineStore") -> None:
        """Append this run's provenance to the _provenance table of the store."""
        metadata = self.create_metadata()

        store.conn.execute("""
            CREATE TABLE IF NOT EXISTS _provenance (
                version VARCHAR,
                config_hash VARCHAR,
                created_at TIMESTAMP,
                sources_json VARCHAR,
                steps_json VARCHAR
            )
        """)
        store.conn.execute("""
            INSERT INTO _provenance (version, config_hash, created_at, sources_json, steps_json)
            VALUES (?, ?, ?, ?, ?)
        """, [
            metadata["pipeline_version"],
            metadata["config_hash"],
            metadata["created_at"],
            json.dumps(metadata["data_source_versions"], sort_keys=True),
            json.dumps(metadata["processing_steps"], default=str),
        ])

    @staticmethod
    def load_sidecar(sidecar_path: Path) -> dict:
        with open(sidecar_path) as f:
            return json.load(f)

    @classmethod
    def from_config(
        cls,
        config: "PipelineConfig",
        version: Optional[str] = None
    ) -> "ProvenanceTracker":
        """
        Create a tracker for config; version defaults to the installed
        multispecies_pipeline version.
        """
        if version is None:
            from multispecies_pipeline import __version__
            version = __version__

        return cls(version, config)
