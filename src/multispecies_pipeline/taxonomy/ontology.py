"""Arena-backed taxonomy with precomputed levels and ancestor sets."""

from collections.abc import Iterable

import polars as pl
import structlog

from multispecies_pipeline.taxonomy.models import Taxon

logger = structlog.get_logger()


class TaxonOntology:
    """
    Single-rooted taxonomy stored as parallel lists indexed by position.

    Every taxon is assigned an integer index in insertion order. Parent
    indices, levels and ancestor index sets are computed once at
    construction, so level lookups and ancestor checks are O(1).

    Args:
        taxa: (taxon_id, parent_taxon_id, scientific_name) triples; the
            root has parent_taxon_id None

    Raises:
        ValueError: On duplicate IDs, dangling parents, cycles, or a
            number of roots other than one
    """

    def __init__(self, taxa: Iterable[tuple[int, int | None, str | None]]):
        rows = list(taxa)
        if not rows:
            raise ValueError("Taxonomy must contain at least one taxon")

        self._index: dict[int, int] = {}
        self._ids: list[int] = []
        self._names: list[str | None] = []
        for taxon_id, _, name in rows:
            if taxon_id in self._index:
                raise ValueError(f"Duplicate taxon ID: {taxon_id}")
            self._index[taxon_id] = len(self._ids)
            self._ids.append(taxon_id)
            self._names.append(name)

        self._parents: list[int | None] = []
        roots = []
        for taxon_id, parent_id, _ in rows:
            if parent_id is None:
                self._parents.append(None)
                roots.append(taxon_id)
            elif parent_id not in self._index:
                raise ValueError(
                    f"Parent taxon {parent_id} of taxon {taxon_id} not found"
                )
            else:
                self._parents.append(self._index[parent_id])
        if len(roots) != 1:
            raise ValueError(f"Taxonomy must have exactly one root, found {roots}")

        size = len(self._ids)
        self._levels: list[int] = [0] * size
        self._ancestors: list[frozenset[int]] = [frozenset()] * size
        for idx in range(size):
            self._resolve(idx)

        self._taxa = [
            Taxon(taxon_id=taxon_id, scientific_name=name, level=level)
            for taxon_id, name, level in zip(self._ids, self._names, self._levels)
        ]
        logger.debug("taxonomy_built", taxon_count=size, max_level=max(self._levels))

    def _resolve(self, idx: int) -> None:
        # Walk up to the first resolved node (or past the root), then assign top-down
        path = []
        on_path = set()
        current = idx
        while current is not None and self._levels[current] == 0:
            if current in on_path:
                raise ValueError(f"Cycle in taxonomy at taxon {self._ids[current]}")
            on_path.add(current)
            path.append(current)
            current = self._parents[current]

        if current is None:
            level, ancestors = 0, frozenset()
        else:
            level = self._levels[current]
            ancestors = self._ancestors[current] | {current}

        for node in reversed(path):
            level += 1
            self._levels[node] = level
            self._ancestors[node] = ancestors
            ancestors = ancestors | {node}

    @classmethod
    def from_dataframe(cls, df: pl.DataFrame) -> "TaxonOntology":
        """
        Build from a DataFrame with columns taxon_id, parent_taxon_id, scientific_name.
        """
        missing = {"taxon_id", "parent_taxon_id", "scientific_name"} - set(df.columns)
        if missing:
            raise ValueError(f"Taxonomy table is missing columns: {sorted(missing)}")
        return cls(
            (row["taxon_id"], row["parent_taxon_id"], row["scientific_name"])
            for row in df.iter_rows(named=True)
        )

    def _idx(self, taxon_id: int) -> int:
        try:
            return self._index[taxon_id]
        except KeyError:
            raise ValueError(f"Taxon ID not found: {taxon_id}") from None

    def __contains__(self, taxon_id: object) -> bool:
        return taxon_id in self._index

    def __len__(self) -> int:
        return len(self._ids)

    @property
    def root(self) -> Taxon:
        return self._taxa[self._parents.index(None)]

    def get_taxon(self, taxon_id: int) -> Taxon:
        return self._taxa[self._idx(taxon_id)]

    def get_level(self, taxon_id: int) -> int:
        return self._levels[self._idx(taxon_id)]

    def get_parent(self, taxon_id: int) -> Taxon | None:
        parent = self._parents[self._idx(taxon_id)]
        return None if parent is None else self._taxa[parent]

    def get_ancestor_ids(self, taxon_id: int) -> frozenset[int]:
        """Taxon IDs of all strict ancestors of a taxon."""
        return frozenset(self._ids[i] for i in self._ancestors[self._idx(taxon_id)])

    def get_lineage(self, taxon_id: int) -> list[Taxon]:
        """The taxon followed by its ancestors, closest first, ending at the root."""
        lineage = []
        current: int | None = self._idx(taxon_id)
        while current is not None:
            lineage.append(self._taxa[current])
            current = self._parents[current]
        return lineage

    def get_descendant_ids(self, taxon_id: int) -> frozenset[int]:
        """Taxon IDs of all strict descendants of a taxon."""
        idx = self._idx(taxon_id)
        return frozenset(
            self._ids[i] for i, ancestors in enumerate(self._ancestors) if idx in ancestors
        )

    def is_ancestor(self, ancestor_id: int, taxon_id: int) -> bool:
        """True if ancestor_id is a strict ancestor of taxon_id."""
        return self._idx(ancestor_id) in self._ancestors[self._idx(taxon_id)]

    def is_same_or_ancestor(self, ancestor_id: int, taxon_id: int) -> bool:
        idx = self._idx(taxon_id)
        ancestor_idx = self._idx(ancestor_id)
        return ancestor_idx == idx or ancestor_idx in self._ancestors[idx]

    def is_single_lineage(self, taxon_ids: Iterable[int]) -> bool:
        """True if every given taxon is the same as or an ancestor of the deepest one."""
        indices = {self._idx(taxon_id) for taxon_id in taxon_ids}
        if not indices:
            return True
        deepest = max(indices, key=lambda i: self._levels[i])
        return all(i == deepest or i in self._ancestors[deepest] for i in indices)

    def least_common_ancestor(self, taxon_ids: Iterable[int]) -> Taxon:
        """
        Deepest taxon that is the same as or an ancestor of every given taxon.

        Walks the lineage of the first taxon and returns the first node that
        covers all the others.

        Raises:
            ValueError: If no taxon is given or an ID is unknown
        """
        indices = [self._idx(taxon_id) for taxon_id in dict.fromkeys(taxon_ids)]
        if not indices:
            raise ValueError("At least one taxon is required for a common ancestor")

        others = indices[1:]
        current: int | None = indices[0]
        while current is not None:
            if all(
                other == current or current in self._ancestors[other]
                for other in others
            ):
                return self._taxa[current]
            current = self._parents[current]
        # Unreachable for a single-rooted taxonomy
        raise ValueError(
            f"No common ancestor for taxa {[self._ids[i] for i in indices]}"
        )
