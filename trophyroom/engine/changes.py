"""
trophyroom.engine.changes — Change-Feed Envelope
==================================================

One :class:`ChangeEvent` per document change, as delivered to a user's
realtime feed.  ``cursor`` is the journal id; clients resume with
``after=<last cursor>``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from trophyroom.constants import ChangeKind, FeedCollection

__all__ = ["ChangeEvent"]


@dataclass(frozen=True, slots=True)
class ChangeEvent:
    cursor: int
    collection: FeedCollection
    kind: ChangeKind
    doc_id: str
    data: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "cursor": self.cursor,
            "collection": self.collection.value,
            "kind": self.kind.value,
            "docId": self.doc_id,
            "data": self.data,
        }

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> ChangeEvent:
        return cls(
            cursor=int(raw["cursor"]),
            collection=FeedCollection(raw["collection"]),
            kind=ChangeKind(raw["kind"]),
            doc_id=raw["docId"],
            data=raw.get("data") or {},
        )
