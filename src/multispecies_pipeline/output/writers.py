"""Tabular views of multi-species results and their TSV+Parquet writer."""

from collections.abc import Iterable, Sequence
from datetime import datetime, timezone
from pathlib import Path

import polars as pl
import yaml

from multispecies_pipeline.calls.models import SimilarityExpressionCall, SummaryCallType
from multispecies_pipeline.conservation.models import MultiSpeciesCall, MultiSpeciesExprAnalysis
from multispecies_pipeline.similarity.models import MultiSpeciesCondition

SIMILARITY_CALL_SCHEMA = {
    "gene_id": pl.Utf8,
    "species_id": pl.Int64,
    "similarity_id": pl.Utf8,
    "anat_entity_ids": pl.Utf8,
    "anat_entity_names": pl.Utf8,
    "stage_similarity_id": pl.Utf8,
    "trusted": pl.Boolean,
    "call_type": pl.Utf8,
    "source_call_count": pl.Int64,
    "observed": pl.Boolean,
    "best_rank": pl.Float64,
}

ANALYSIS_SCHEMA = {
    "similarity_id": pl.Utf8,
    "anat_entity_ids": pl.Utf8,
    "anat_entity_names": pl.Utf8,
    "stage_similarity_id": pl.Utf8,
    "expressed_count": pl.Int64,
    "not_expressed_count": pl.Int64,
    "no_data_count": pl.Int64,
    "expressed_gene_ids": pl.Utf8,
    "not_expressed_gene_ids": pl.Utf8,
    "no_data_gene_ids": pl.Utf8,
    "min_rank": pl.Float64,
    "max_rank": pl.Float64,
}

MULTI_SPECIES_CALL_SCHEMA = {
    "oma_group_id": pl.Utf8,
    "taxon_id": pl.Int64,
    "similarity_id": pl.Utf8,
    "anat_entity_names": pl.Utf8,
    "stage_similarity_id": pl.Utf8,
    "gene_ids": pl.Utf8,
    "species_count": pl.Int64,
    "expressed_species_count": pl.Int64,
    "conservation_score": pl.Float64,
    "conserved": pl.Boolean,
}


def _join(values: Iterable) -> str:
    return ";".join(str(v) for v in sorted(values))


def _condition_columns(condition: MultiSpeciesCondition) -> dict:
    anat = condition.anat_similarity
    return {
        "similarity_id": anat.group_id,
        "anat_entity_ids": _join(anat.all_anat_entity_ids),
        "anat_entity_names": anat.anat_entity_names(),
        "stage_similarity_id": (
            condition.stage_similarity.group_id if condition.stage_similarity else None
        ),
    }


def similarity_calls_to_frame(calls: Iterable[SimilarityExpressionCall]) -> pl.DataFrame:
    """One row per reconciled call."""
    rows = []
    for call in calls:
        row = {"gene_id": call.gene.gene_id, "species_id": call.gene.species_id}
        row.update(_condition_columns(call.condition))
        row.update({
            "trusted": call.condition.anat_similarity.is_trusted,
            "call_type": call.summary_call_type.value,
            "source_call_count": len(call.source_calls),
            "observed": call.has_observed_data,
            "best_rank": call.best_observed_rank,
        })
        rows.append(row)
    return pl.DataFrame(rows, schema=SIMILARITY_CALL_SCHEMA)


def analysis_to_frame(analysis: MultiSpeciesExprAnalysis) -> pl.DataFrame:
    """One row per condition with gene counts per call type and the rank range."""
    rows = []
    for condition, counts in analysis.cond_to_counts.items():
        expressed = counts.genes_with(SummaryCallType.EXPRESSED)
        not_expressed = counts.genes_with(SummaryCallType.NOT_EXPRESSED)
        ranks = [rank for rank in counts.gene_to_min_rank.values() if rank is not None]
        row = _condition_columns(condition)
        row.update({
            "expressed_count": len(expressed),
            "not_expressed_count": len(not_expressed),
            "no_data_count": len(counts.genes_with_no_data),
            "expressed_gene_ids": _join(g.gene_id for g in expressed),
            "not_expressed_gene_ids": _join(g.gene_id for g in not_expressed),
            "no_data_gene_ids": _join(g.gene_id for g in counts.genes_with_no_data),
            "min_rank": min(ranks) if ranks else None,
            "max_rank": max(ranks) if ranks else None,
        })
        rows.append(row)
    return pl.DataFrame(rows, schema=ANALYSIS_SCHEMA)


def multi_species_calls_to_frame(
    calls: Iterable[MultiSpeciesCall],
    threshold: float | None = None,
) -> pl.DataFrame:
    """One row per orthologous group and condition."""
    rows = []
    for call in calls:
        expressed_species = {
            c.gene.species_id
            for c in call.similarity_calls
            if c.summary_call_type == SummaryCallType.EXPRESSED
        }
        conserved = call.is_conserved() if threshold is None else call.is_conserved(threshold)
        rows.append({
            "oma_group_id": call.oma_group_id,
            "taxon_id": call.taxon_id,
            "similarity_id": call.condition.anat_similarity.group_id,
            "anat_entity_names": call.condition.anat_similarity.anat_entity_names(),
            "stage_similarity_id": (
                call.condition.stage_similarity.group_id
                if call.condition.stage_similarity
                else None
            ),
            "gene_ids": _join(call.gene_ids),
            "species_count": len(call.species_ids),
            "expressed_species_count": len(expressed_species),
            "conservation_score": call.conservation_score,
            "conserved": conserved,
        })
    return pl.DataFrame(rows, schema=MULTI_SPECIES_CALL_SCHEMA)


def write_table_output(
    df: pl.DataFrame | pl.LazyFrame,
    output_dir: Path,
    filename_base: str,
    sort_by: Sequence[str],
    provenance: dict | None = None,
) -> dict:
    """
    Write a result table to TSV and Parquet with a YAML provenance sidecar.

    Args:
        df: Result table (LazyFrame is collected)
        output_dir: Directory to write output files (created if doesn't exist)
        filename_base: Base filename without extension
        sort_by: Columns giving a deterministic row order
        provenance: Extra metadata to embed in the sidecar, such as
            ProvenanceTracker.create_metadata()

    Returns:
        Dictionary with "tsv", "parquet" and "provenance" paths
    """
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    if isinstance(df, pl.LazyFrame):
        df = df.collect()

    df = df.sort(list(sort_by), nulls_last=True)

    tsv_path = output_dir / f"{filename_base}.tsv"
    parquet_path = output_dir / f"{filename_base}.parquet"
    provenance_path = output_dir / f"{filename_base}.provenance.yaml"

    df.write_csv(tsv_path, separator="\t", include_header=True)
    df.write_parquet(parquet_path, compression="snappy", use_pyarrow=True)

    metadata = {
        "generated_at": datetime.now(timezone.utc).isoformat(),
        "output_files": [tsv_path.name, parquet_path.name],
        "statistics": {"row_count": df.height},
        "column_count": len(df.columns),
        "column_names": df.columns,
    }
    if provenance:
        metadata["pipeline"] = provenance

    with open(provenance_path, "w") as f:
        yaml.safe_dump(metadata, f, default_flow_style=False, sort_keys=False)

    return {
        "tsv": tsv_path,
        "parquet": parquet_path,
        "provenance": provenance_path,
    }
