"""Main CLI entry point for multispecies-pipeline.

Provides the command group with global options and the subcommands.
"""

import logging
from pathlib import Path

import click

from multispecies_pipeline import __version__
from multispecies_pipeline.cli.analyze_cmd import analyze
from multispecies_pipeline.cli.compare_cmd import compare
from multispecies_pipeline.cli.load_cmd import load
from multispecies_pipeline.config.loader import load_config


logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)


@click.group()
@click.option(
    '--config',
    type=click.Path(exists=True, path_type=Path),
    default='config/default.yaml',
    help='Path to pipeline configuration YAML file'
)
@click.option(
    '--verbose',
    is_flag=True,
    help='Enable verbose logging (DEBUG level)'
)
@click.pass_context
def cli(ctx, config, verbose):
    """Multispecies-pipeline: compare gene expression across species.

    Aligns expression calls of several species onto homologous anatomical
    structures and orthologous genes, and scores how conserved expression is.
    """
    ctx.ensure_object(dict)
    ctx.obj['config_path'] = config
    ctx.obj['verbose'] = verbose

    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)
        logging.debug("Verbose logging enabled")


@cli.command()
@click.pass_context
def info(ctx):
    """Display pipeline information and configuration summary."""
    config_path = ctx.obj['config_path']

    click.echo(f"Multispecies Pipeline v{__version__}")
    click.echo(f"Config: {config_path}")
    click.echo()

    try:
        config = load_config(config_path)

        click.echo(f"Config Hash: {config.config_hash()[:16]}...")
        click.echo()

        click.echo(click.style("Data Source Versions:", bold=True))
        click.echo(f"  Expression Release: {config.versions.expression_release}")
        click.echo(f"  OMA Release:        {config.versions.oma_release}")
        click.echo(f"  Uberon Version:     {config.versions.uberon_version}")
        click.echo()

        click.echo(click.style("Paths:", bold=True))
        click.echo(f"  Data Directory: {config.data_dir}")
        click.echo(f"  DuckDB Path: {config.duckdb_path}")
        click.echo()

        click.echo(click.style("Analysis:", bold=True))
        click.echo(f"  Only Trusted Similarities: {config.analysis.only_trusted}")
        click.echo(f"  Stage Aware: {config.analysis.stage_aware}")
        click.echo(f"  Conservation Threshold: {config.analysis.conservation_threshold:.2f}")
        click.echo(
            f"  Weights: agreement={config.scoring.species_agreement:.2f}, "
            f"rank={config.scoring.rank_concordance:.2f}"
        )

    except Exception as e:
        click.echo(click.style(f"Error loading config: {e}", fg='red'), err=True)
        ctx.exit(1)


cli.add_command(load)
cli.add_command(compare)
cli.add_command(analyze)


if __name__ == '__main__':
    cli()
