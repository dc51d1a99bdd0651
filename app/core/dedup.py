"""
Duplicate resolution policy for messages sharing an external id.

When two records carry the same external_message_id exactly one survives.
The survivor is chosen by comparing, in order:

1. observation time (created_at): the newer record wins;
2. content length: the longer content wins;
3. metadata size (length of its JSON serialization): the richer one wins.

A complete tie keeps the record already stored, so replaying the same data
is a no-op. Records only need ``external_message_id``, ``created_at``,
``content`` and ``external_metadata`` attributes, which lets the same rules
run over ORM rows and inbound candidates alike.
"""

from __future__ import annotations

import json
from collections import OrderedDict
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Iterable, List, Optional, Sequence, Tuple, TypeVar

T = TypeVar("T")

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class Decision(str, Enum):
    """What to do with an inbound candidate."""

    ACCEPT = "accept"  # write as new
    SUPERSEDE = "supersede"  # replace the stored row with the candidate
    REJECT = "reject"  # keep the stored row, drop the candidate


def as_utc(value: Optional[datetime]) -> datetime:
    """Treat naive datetimes as UTC; missing values sort first."""
    if value is None:
        return _EPOCH
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def metadata_size(metadata: Any) -> int:
    if not metadata:
        return 0
    return len(json.dumps(metadata, sort_keys=True, default=str))


def ranking_key(record: Any) -> Tuple[datetime, int, int]:
    """Sort key where a larger value is the better representative."""
    return (
        as_utc(getattr(record, "created_at", None)),
        len(getattr(record, "content", None) or ""),
        metadata_size(getattr(record, "external_metadata", None)),
    )


def prefer(candidate: Any, stored: Any) -> bool:
    """True only when the candidate strictly outranks the stored record."""
    return ranking_key(candidate) > ranking_key(stored)


def decide(candidate: Any, stored: Optional[Any]) -> Decision:
    """Decision for a candidate given the row currently stored under its external id."""
    if not getattr(candidate, "external_message_id", None) or stored is None:
        return Decision.ACCEPT
    return Decision.SUPERSEDE if prefer(candidate, stored) else Decision.REJECT


def split_survivors(records: Sequence[T]) -> Tuple[T, List[T]]:
    """
    Return (survivor, losers) for a group of records sharing one external id.

    Earlier records win full ties, so callers pass already-stored rows first.
    """
    if not records:
        raise ValueError("split_survivors needs at least one record")
    survivor = records[0]
    for record in records[1:]:
        if prefer(record, survivor):
            survivor = record
    losers = [r for r in records if r is not survivor]
    return survivor, losers


def pick_survivor(records: Sequence[T]) -> T:
    return split_survivors(records)[0]


def group_by_external_id(records: Iterable[T]) -> "OrderedDict[str, List[T]]":
    """Group records that carry an external id, preserving first-seen order."""
    groups: "OrderedDict[str, List[T]]" = OrderedDict()
    for record in records:
        external_id = getattr(record, "external_message_id", None)
        if external_id:
            groups.setdefault(external_id, []).append(record)
    return groups


def collapse_batch(candidates: Iterable[T]) -> List[T]:
    """
    Reduce a batch to at most one candidate per external id.

    Candidates without an external id are all kept. Output follows the
    position of each group's first appearance in the input.
    """
    items = list(candidates)
    groups = group_by_external_id(items)
    survivors = {ext_id: pick_survivor(group) for ext_id, group in groups.items()}
    result: List[T] = []
    emitted: set = set()
    for item in items:
        external_id = getattr(item, "external_message_id", None)
        if not external_id:
            result.append(item)
        elif external_id not in emitted:
            emitted.add(external_id)
            result.append(survivors[external_id])
    return result
