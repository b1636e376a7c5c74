"""Taxa, species and the taxonomy they hang from."""

from multispecies_pipeline.taxonomy.models import Species, Taxon
from multispecies_pipeline.taxonomy.ontology import TaxonOntology

__all__ = [
    "Species",
    "Taxon",
    "TaxonOntology",
]
