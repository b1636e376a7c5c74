"""Load command: import input TSV files into the DuckDB working tables."""

import logging
import sys
from pathlib import Path

import click

from multispecies_pipeline.config.loader import load_config
from multispecies_pipeline.persistence import PipelineStore, ProvenanceTracker
from multispecies_pipeline.persistence.sources import (
    DEV_STAGE_SIMILARITY_TABLE,
    ORTHOLOG_GROUP_TABLE,
    TABLE_SCHEMAS,
)

logger = logging.getLogger(__name__)

OPTIONAL_TABLES = {DEV_STAGE_SIMILARITY_TABLE, ORTHOLOG_GROUP_TABLE}


@click.command('load')
@click.option(
    '--input-dir',
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    required=True,
    help='Directory holding one <table>.tsv file per working table'
)
@click.option(
    '--force',
    is_flag=True,
    help='Re-import tables even if they are already loaded'
)
@click.pass_context
def load(ctx, input_dir, force):
    """Import taxonomy, genes, similarity groups, calls and orthologs.

    Expects tab-separated files named after the working tables
    (taxon.tsv, species.tsv, gene.tsv, anat_similarity.tsv,
    anat_similarity_taxon.tsv, expression_call.tsv). The files
    dev_stage_similarity.tsv and ortholog_group.tsv are optional.

    Tables already loaded are skipped unless --force is given.

    Examples:

        multispecies-pipeline load --input-dir data/input

        multispecies-pipeline load --input-dir data/input --force
    """
    config_path = ctx.obj['config_path']

    click.echo(click.style("=== Loading Working Tables ===", bold=True))
    click.echo()

    store = None
    try:
        config = load_config(config_path)
        store = PipelineStore.from_config(config)
        provenance = ProvenanceTracker.from_config(config)

        missing = [
            table for table in TABLE_SCHEMAS
            if table not in OPTIONAL_TABLES and not (input_dir / f"{table}.tsv").exists()
        ]
        if missing:
            click.echo(click.style(
                f"Missing required input files: {', '.join(f'{t}.tsv' for t in missing)}",
                fg='red'
            ), err=True)
            sys.exit(1)

        loaded = {}
        for table, schema in TABLE_SCHEMAS.items():
            path = input_dir / f"{table}.tsv"
            if not path.exists():
                click.echo(click.style(f"  {table}: no input file, skipped", fg='yellow'))
                continue
            if store.has_checkpoint(table) and not force:
                click.echo(click.style(
                    f"  {table}: already loaded (use --force to re-import)", fg='yellow'
                ))
                continue

            row_count = store.import_tsv(path, table, schema_overrides=schema)
            loaded[table] = row_count
            click.echo(click.style(f"  {table}: {row_count} rows", fg='green'))

        provenance.record_step('load_tables', {
            'input_dir': str(input_dir),
            'row_counts': loaded,
        })
        provenance.save_to_store(store)

        click.echo()
        click.echo(f"DuckDB Path: {config.duckdb_path}")
        click.echo(click.style("Load complete!", fg='green', bold=True))

    except Exception as e:
        click.echo(click.style(f"Load command failed: {e}", fg='red'), err=True)
        logger.exception("Load command failed")
        sys.exit(1)
    finally:
        if store is not None:
            store.close()
