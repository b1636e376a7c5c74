"""Cross-species expression comparison over homologous structures and orthologous genes."""

__version__ = "0.1.0"
