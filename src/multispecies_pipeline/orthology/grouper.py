"""Resolution of genes to hierarchical orthologous groups."""

from collections.abc import Collection, Iterable, Mapping

import polars as pl
import structlog

from multispecies_pipeline.calls.models import Gene
from multispecies_pipeline.providers import OrthologyProvider

logger = structlog.get_logger()

ORTHOLOG_GROUP_COLUMNS = ("oma_group_id", "taxon_id", "gene_id", "species_id")


class OrthologyIntegrityError(ValueError):
    """A gene belongs to more than one orthologous group at one taxon level."""

    def __init__(self, gene: Gene, taxon_id: int, group_ids: Iterable[str]):
        self.gene_id = gene.gene_id
        self.species_id = gene.species_id
        self.taxon_id = taxon_id
        self.group_ids = sorted(group_ids)
        super().__init__(
            f"Gene {gene.gene_id} (species {gene.species_id}) belongs to several "
            f"orthologous groups at taxon {taxon_id}: {', '.join(self.group_ids)}"
        )


class HierarchicalGroupTable:
    """
    In-memory orthology provider over a table of HOG memberships.

    Each row states that a gene belongs to an orthologous group defined at a
    taxon level.
    """

    def __init__(self, df: pl.DataFrame):
        missing = set(ORTHOLOG_GROUP_COLUMNS) - set(df.columns)
        if missing:
            raise ValueError(f"Ortholog group table is missing columns: {sorted(missing)}")
        self.df = df.select(ORTHOLOG_GROUP_COLUMNS)

    def load_ortholog_group_ids(
        self, taxon_id: int, genes: Collection[Gene]
    ) -> dict[tuple[str, int], set[str]]:
        identities = {gene.identity for gene in genes}
        rows = self.df.filter(
            (pl.col("taxon_id") == taxon_id)
            & pl.col("gene_id").is_in([gene_id for gene_id, _ in identities])
        )
        memberships: dict[tuple[str, int], set[str]] = {}
        for row in rows.iter_rows(named=True):
            identity = (row["gene_id"], row["species_id"])
            if identity in identities:
                memberships.setdefault(identity, set()).add(row["oma_group_id"])
        return memberships


class OrthologyGrouper:
    """Groups genes by the orthologous group they belong to at a taxon level."""

    def __init__(self, provider: OrthologyProvider):
        self.provider = provider

    def group_by_orthology(
        self, taxon_id: int, genes: Iterable[Gene]
    ) -> dict[str, frozenset[Gene]]:
        """
        Map each orthologous group ID to its members among the given genes.

        Genes without a group at this taxon level are left out.

        Raises:
            ValueError: If taxon_id is not strictly positive
            OrthologyIntegrityError: If a gene resolves to several groups
        """
        if taxon_id <= 0:
            raise ValueError(f"Taxon ID must be strictly positive, got {taxon_id}")

        genes = list(dict.fromkeys(genes))
        memberships: Mapping[tuple[str, int], Collection[str]] = (
            self.provider.load_ortholog_group_ids(taxon_id, genes) if genes else {}
        )

        groups: dict[str, set[Gene]] = {}
        ungrouped = []
        for gene in genes:
            group_ids = set(memberships.get(gene.identity, ()))
            if not group_ids:
                ungrouped.append(gene.gene_id)
                continue
            if len(group_ids) > 1:
                raise OrthologyIntegrityError(gene, taxon_id, group_ids)
            groups.setdefault(group_ids.pop(), set()).add(gene)

        if ungrouped:
            logger.debug(
                "genes_without_ortholog_group",
                taxon_id=taxon_id,
                count=len(ungrouped),
                gene_ids=ungrouped,
            )
        logger.info(
            "orthology_grouping_complete",
            taxon_id=taxon_id,
            gene_count=len(genes),
            group_count=len(groups),
        )
        return {group_id: frozenset(members) for group_id, members in groups.items()}
