"""Member-to-group lookup over a set of similarity groups."""

from collections.abc import Callable, Iterable
from typing import Generic, TypeVar

from multispecies_pipeline.similarity.models import AnatEntitySimilarity, DevStageSimilarity

G = TypeVar("G")


class SimilarityIntegrityError(ValueError):
    """An entity belongs to more than one similarity group of the same taxon."""

    def __init__(self, entity_id: str, group_ids: Iterable[str], axis: str = "anat_entity"):
        self.entity_id = entity_id
        self.group_ids = sorted(group_ids)
        self.axis = axis
        super().__init__(
            f"{axis} {entity_id} belongs to several similarity groups: "
            f"{', '.join(self.group_ids)}"
        )


class SimilarityIndex(Generic[G]):
    """
    Maps each member ID to the single group containing it.

    Groups are de-duplicated (first occurrence kept). Two distinct groups
    sharing a member violate the partition invariant and raise
    SimilarityIntegrityError at construction, before any lookup happens.
    """

    def __init__(
        self,
        groups: Iterable[G],
        members: Callable[[G], Iterable[str]],
        group_id: Callable[[G], str],
        axis: str,
    ):
        self.axis = axis
        self._groups: tuple[G, ...] = tuple(dict.fromkeys(groups))
        self._by_member: dict[str, G] = {}
        for group in self._groups:
            for member_id in members(group):
                existing = self._by_member.get(member_id)
                if existing is not None and existing != group:
                    raise SimilarityIntegrityError(
                        member_id, {group_id(existing), group_id(group)}, axis
                    )
                self._by_member[member_id] = group

    @classmethod
    def for_anat_entities(
        cls, groups: Iterable[AnatEntitySimilarity]
    ) -> "SimilarityIndex[AnatEntitySimilarity]":
        return cls(groups, lambda g: g.all_anat_entity_ids, lambda g: g.group_id, "anat_entity")

    @classmethod
    def for_dev_stages(
        cls, groups: Iterable[DevStageSimilarity]
    ) -> "SimilarityIndex[DevStageSimilarity]":
        return cls(groups, lambda g: g.dev_stage_ids, lambda g: g.group_id, "dev_stage")

    @property
    def groups(self) -> tuple[G, ...]:
        return self._groups

    @property
    def member_ids(self) -> frozenset[str]:
        return frozenset(self._by_member)

    def lookup(self, member_id: str | None) -> G | None:
        """Group containing member_id, or None if no group contains it."""
        if member_id is None:
            return None
        return self._by_member.get(member_id)

    def __len__(self) -> int:
        return len(self._groups)
