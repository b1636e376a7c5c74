"""Command line interface for multispecies-pipeline."""
