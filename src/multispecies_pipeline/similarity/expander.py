"""Expansion of condition filters to the closure of the similarity groups they touch."""

from collections.abc import Iterable, Sequence

import structlog

from multispecies_pipeline.similarity.index import SimilarityIndex
from multispecies_pipeline.similarity.models import (
    AnatEntitySimilarity,
    ConditionFilter,
    DevStageSimilarity,
)
from multispecies_pipeline.taxonomy.models import Taxon

logger = structlog.get_logger()


def check_group_taxa(
    taxon_id: int,
    anat_groups: Iterable[AnatEntitySimilarity],
    stage_groups: Iterable[DevStageSimilarity] | None = None,
) -> None:
    """
    Reject similarity groups built for a different requested taxon.

    Raises:
        ValueError: If any group belongs to another taxon
    """
    for group in anat_groups:
        if group.requested_taxon.taxon_id != taxon_id:
            raise ValueError(
                f"Anatomical similarity {group.group_id} was built for taxon "
                f"{group.requested_taxon.taxon_id}, not {taxon_id}"
            )
    for group in stage_groups or ():
        if group.taxon_id is not None and group.taxon_id != taxon_id:
            raise ValueError(
                f"Stage similarity {group.group_id} was built for taxon "
                f"{group.taxon_id}, not {taxon_id}"
            )


def _expand_axis(index: SimilarityIndex, requested_ids: Iterable[str]) -> list:
    touched = {}
    dropped = []
    for member_id in sorted(requested_ids):
        group = index.lookup(member_id)
        if group is None:
            dropped.append(member_id)
            continue
        touched.setdefault(group, None)
    if dropped:
        logger.debug(
            "filter_ids_without_similarity",
            axis=index.axis,
            count=len(dropped),
            ids=dropped,
        )
    return list(touched)


class ConditionExpander:
    """
    Widens a caller's condition filter so that it covers every member of each
    similarity group it touches.

    A filter naming only the human heart, for instance, becomes a filter on
    every anatomical entity grouped with it for the requested taxon, so that
    observations made in the homologous structures of other species are
    retrieved too.
    """

    def expand(
        self,
        requested_taxon: Taxon,
        base_filter: ConditionFilter | None,
        anat_groups: Sequence[AnatEntitySimilarity],
        stage_groups: Sequence[DevStageSimilarity] | None = None,
    ) -> ConditionFilter:
        expanded, _, _ = self.expand_with_groups(
            requested_taxon, base_filter, anat_groups, stage_groups
        )
        return expanded

    def expand_with_groups(
        self,
        requested_taxon: Taxon,
        base_filter: ConditionFilter | None,
        anat_groups: Sequence[AnatEntitySimilarity],
        stage_groups: Sequence[DevStageSimilarity] | None = None,
    ) -> tuple[
        ConditionFilter,
        tuple[AnatEntitySimilarity, ...],
        tuple[DevStageSimilarity, ...] | None,
    ]:
        """
        Expand a filter and also return the similarity groups it touched.

        An absent or empty ID set on an axis selects every group on that
        axis. The returned filter always carries explicit anatomical IDs. The
        stage axis is only expanded when stage groups are given; otherwise the
        caller's stage IDs pass through unchanged and None is returned for the
        touched stage groups.

        Raises:
            ValueError: If a group was built for another taxon
            SimilarityIntegrityError: If an ID belongs to several groups
        """
        if requested_taxon is None:
            raise ValueError("A requested taxon is needed to expand a condition filter")
        check_group_taxa(requested_taxon.taxon_id, anat_groups, stage_groups)
        base_filter = base_filter or ConditionFilter()

        anat_index = SimilarityIndex.for_anat_entities(anat_groups)
        touched_anat = _expand_axis(
            anat_index, base_filter.anat_entity_ids or anat_index.member_ids
        )
        anat_ids = frozenset().union(*(g.all_anat_entity_ids for g in touched_anat))

        touched_stages = None
        stage_ids = base_filter.dev_stage_ids
        if stage_groups is not None:
            stage_index = SimilarityIndex.for_dev_stages(stage_groups)
            touched_stages = tuple(
                _expand_axis(stage_index, base_filter.dev_stage_ids or stage_index.member_ids)
            )
            stage_ids = frozenset().union(*(g.dev_stage_ids for g in touched_stages))

        logger.debug(
            "condition_filter_expanded",
            taxon_id=requested_taxon.taxon_id,
            anat_group_count=len(touched_anat),
            anat_entity_count=len(anat_ids),
        )
        return (
            ConditionFilter(anat_entity_ids=anat_ids, dev_stage_ids=stage_ids),
            tuple(touched_anat),
            touched_stages,
        )
