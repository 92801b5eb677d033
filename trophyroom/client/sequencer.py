"""
trophyroom.client.sequencer — Stale response guard
====================================================

Each UI element (profile panel, search box, ...) gets a monotonically
increasing sequence.  A response is applied only if its token is still the
latest one issued for that element; anything older has been superseded.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class SequenceToken:
    key: str
    seq: int


class RequestSequencer:
    def __init__(self) -> None:
        self._latest: dict[str, int] = {}

    def issue(self, key: str) -> SequenceToken:
        seq = self._latest.get(key, 0) + 1
        self._latest[key] = seq
        return SequenceToken(key, seq)

    def is_current(self, token: SequenceToken) -> bool:
        return self._latest.get(token.key) == token.seq

    def reset(self) -> None:
        # Outstanding tokens become stale.
        self._latest = {key: seq + 1 for key, seq in self._latest.items()}
