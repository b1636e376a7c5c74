"""Output generation: result tables written as TSV and Parquet."""

from multispecies_pipeline.output.writers import (
    analysis_to_frame,
    multi_species_calls_to_frame,
    similarity_calls_to_frame,
    write_table_output,
)

__all__ = [
    "analysis_to_frame",
    "multi_species_calls_to_frame",
    "similarity_calls_to_frame",
    "write_table_output",
]
