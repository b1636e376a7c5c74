"""Policies turning the call types of one bucket into a single call type."""

from collections.abc import Callable, Iterable

from multispecies_pipeline.calls.models import SummaryCallType

ReconciliationPolicy = Callable[[Iterable[SummaryCallType]], SummaryCallType]


def expressed_dominates(call_types: Iterable[SummaryCallType]) -> SummaryCallType:
    """
    EXPRESSED if any call says so, NOT_EXPRESSED otherwise.

    Raises:
        ValueError: If no call type is given
    """
    seen = set(call_types)
    if not seen:
        raise ValueError("Cannot reconcile an empty set of calls")
    if SummaryCallType.EXPRESSED in seen:
        return SummaryCallType.EXPRESSED
    return SummaryCallType.NOT_EXPRESSED
