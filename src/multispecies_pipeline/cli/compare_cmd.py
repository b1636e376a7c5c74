"""Compare command: multi-species expression calls at a taxon."""

import logging
import sys
from pathlib import Path

import click

from multispecies_pipeline.calls.models import GeneFilter
from multispecies_pipeline.config.loader import load_config_with_overrides
from multispecies_pipeline.output import (
    multi_species_calls_to_frame,
    similarity_calls_to_frame,
    write_table_output,
)
from multispecies_pipeline.persistence import DuckDBDataSource, PipelineStore, ProvenanceTracker
from multispecies_pipeline.service import MultiSpeciesCallService
from multispecies_pipeline.similarity.models import ConditionFilter

logger = logging.getLogger(__name__)


def parse_gene_filters(ctx, param, values) -> list[GeneFilter]:
    """Turn SPECIES_ID or SPECIES_ID:GENE_ID options into one filter per species."""
    by_species: dict[int, set[str]] = {}
    for value in values:
        species_part, _, gene_id = value.partition(':')
        try:
            species_id = int(species_part)
        except ValueError:
            raise click.BadParameter(
                f"expected SPECIES_ID or SPECIES_ID:GENE_ID, got {value!r}"
            ) from None
        gene_ids = by_species.setdefault(species_id, set())
        if gene_id:
            gene_ids.add(gene_id)
    return [
        GeneFilter(species_id=species_id, gene_ids=frozenset(gene_ids))
        for species_id, gene_ids in sorted(by_species.items())
    ]


@click.command('compare')
@click.option(
    '--taxon-id',
    type=int,
    required=True,
    help='Taxon at which species are compared'
)
@click.option(
    '--gene',
    'gene_filters',
    multiple=True,
    callback=parse_gene_filters,
    help='SPECIES_ID:GENE_ID, or SPECIES_ID for all genes of a species (repeatable)'
)
@click.option(
    '--anat-entity',
    'anat_entity_ids',
    multiple=True,
    help='Anatomical entity to restrict to (repeatable)'
)
@click.option(
    '--dev-stage',
    'dev_stage_ids',
    multiple=True,
    help='Developmental stage to restrict to (repeatable)'
)
@click.option(
    '--only-trusted/--all-similarities',
    default=None,
    help='Use only trusted similarity groups (default from config)'
)
@click.option(
    '--stage-aware/--no-stage-aware',
    default=None,
    help='Align developmental stages through stage groups (default from config)'
)
@click.option(
    '--orthology',
    is_flag=True,
    help='Also group calls by orthologous gene group and score conservation'
)
@click.option(
    '--output-dir',
    type=click.Path(path_type=Path),
    default=None,
    help='Output directory (default: {data_dir}/results)'
)
@click.pass_context
def compare(
    ctx, taxon_id, gene_filters, anat_entity_ids, dev_stage_ids,
    only_trusted, stage_aware, orthology, output_dir
):
    """Reconcile expression calls of several species at a taxon.

    Calls are aligned onto the anatomical similarity groups built for the
    taxon. Without --gene, every species under the taxon is used.

    Examples:

        multispecies-pipeline compare --taxon-id 7742

        multispecies-pipeline compare --taxon-id 40674 \\
            --gene 9606:ENSG00000139618 --gene 10090:ENSMUSG00000041147 \\
            --anat-entity UBERON:0000955 --orthology
    """
    config_path = ctx.obj['config_path']

    overrides = {}
    if only_trusted is not None:
        overrides['analysis.only_trusted'] = only_trusted
    if stage_aware is not None:
        overrides['analysis.stage_aware'] = stage_aware

    store = None
    try:
        config = load_config_with_overrides(config_path, overrides)
        store = PipelineStore.from_config(config)
        provenance = ProvenanceTracker.from_config(config)
        service = MultiSpeciesCallService.from_config(config, DuckDBDataSource(store))

        condition_filter = ConditionFilter(
            anat_entity_ids=frozenset(anat_entity_ids) or None,
            dev_stage_ids=frozenset(dev_stage_ids) or None,
        )
        output_dir = output_dir or Path(config.data_dir) / "results"

        click.echo(click.style(f"=== Multi-Species Calls at Taxon {taxon_id} ===", bold=True))
        click.echo()

        click.echo("Reconciling expression calls...")
        calls = list(service.load_similarity_expression_calls(
            taxon_id,
            gene_filters or None,
            condition_filter,
            config.analysis.only_trusted,
        ))
        click.echo(click.style(f"  {len(calls)} similarity expression calls", fg='green'))
        provenance.record_step('load_similarity_expression_calls', {
            'taxon_id': taxon_id,
            'gene_filters': [
                {'species_id': f.species_id, 'gene_ids': sorted(f.gene_ids)}
                for f in gene_filters
            ],
            'anat_entity_ids': sorted(anat_entity_ids),
            'dev_stage_ids': sorted(dev_stage_ids),
            'call_count': len(calls),
        })

        paths = write_table_output(
            similarity_calls_to_frame(calls),
            output_dir,
            f"similarity_calls_{taxon_id}",
            sort_by=["species_id", "gene_id", "similarity_id", "stage_similarity_id"],
            provenance=provenance.create_metadata(),
        )
        click.echo(f"  Written: {paths['tsv']}")

        if orthology:
            click.echo()
            click.echo("Grouping calls by orthologous genes...")
            ms_calls = service.build_multi_species_calls(taxon_id, calls)
            conserved = sum(
                1 for c in ms_calls if c.is_conserved(config.analysis.conservation_threshold)
            )
            click.echo(click.style(
                f"  {len(ms_calls)} multi-species calls, {conserved} conserved", fg='green'
            ))
            provenance.record_step('build_multi_species_calls', {
                'call_count': len(ms_calls),
                'conserved_count': conserved,
            })

            paths = write_table_output(
                multi_species_calls_to_frame(ms_calls, config.analysis.conservation_threshold),
                output_dir,
                f"multi_species_calls_{taxon_id}",
                sort_by=["oma_group_id", "similarity_id", "stage_similarity_id"],
                provenance=provenance.create_metadata(),
            )
            click.echo(f"  Written: {paths['tsv']}")

        click.echo()
        click.echo(click.style("Compare complete!", fg='green', bold=True))

    except Exception as e:
        click.echo(click.style(f"Compare command failed: {e}", fg='red'), err=True)
        logger.exception("Compare command failed")
        sys.exit(1)
    finally:
        if store is not None:
            store.close()
