"""Analyze command: per-condition expression of genes from several species."""

import logging
import sys
from pathlib import Path

import click

from multispecies_pipeline.config.loader import load_config
from multispecies_pipeline.output import analysis_to_frame, write_table_output
from multispecies_pipeline.persistence import DuckDBDataSource, PipelineStore, ProvenanceTracker
from multispecies_pipeline.service import MultiSpeciesCallService

logger = logging.getLogger(__name__)


@click.command('analyze')
@click.argument('gene_ids', nargs=-1, required=True)
@click.option(
    '--output-dir',
    type=click.Path(path_type=Path),
    default=None,
    help='Output directory (default: {data_dir}/results)'
)
@click.option(
    '--name',
    default='expression_analysis',
    help='Base name of the output files'
)
@click.pass_context
def analyze(ctx, gene_ids, output_dir, name):
    """Count expressed and not expressed genes per homologous condition.

    The genes must come from at least two species; they are compared at the
    least common ancestor of their species.

    Example:

        multispecies-pipeline analyze ENSG00000139618 ENSMUSG00000041147
    """
    config_path = ctx.obj['config_path']

    store = None
    try:
        config = load_config(config_path)
        store = PipelineStore.from_config(config)
        provenance = ProvenanceTracker.from_config(config)
        service = MultiSpeciesCallService.from_config(config, DuckDBDataSource(store))
        output_dir = output_dir or Path(config.data_dir) / "results"

        click.echo(click.style("=== Multi-Species Expression Analysis ===", bold=True))
        click.echo()

        analysis = service.load_multi_species_expr_analysis(gene_ids)
        if analysis.requested_gene_ids_not_found:
            click.echo(click.style(
                f"  Genes not found: {', '.join(sorted(analysis.requested_gene_ids_not_found))}",
                fg='yellow'
            ))
        click.echo(click.style(
            f"  {len(analysis.genes)} genes in {len(analysis.species_ids)} species, "
            f"{len(analysis.cond_to_counts)} conditions with data",
            fg='green'
        ))
        provenance.record_step('load_multi_species_expr_analysis', {
            'gene_ids': sorted(gene_ids),
            'genes_not_found': sorted(analysis.requested_gene_ids_not_found),
            'condition_count': len(analysis.cond_to_counts),
        })

        paths = write_table_output(
            analysis_to_frame(analysis),
            output_dir,
            name,
            sort_by=["similarity_id", "stage_similarity_id"],
            provenance=provenance.create_metadata(),
        )
        click.echo(f"  Written: {paths['tsv']}")
        click.echo()
        click.echo(click.style("Analysis complete!", fg='green', bold=True))

    except Exception as e:
        click.echo(click.style(f"Analyze command failed: {e}", fg='red'), err=True)
        logger.exception("Analyze command failed")
        sys.exit(1)
    finally:
        if store is not None:
            store.close()
