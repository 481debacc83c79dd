from __future__ import annotations

import random

from dashboard.history import HISTORY_CAPACITY, HistoryBuffer
from models.events import SequenceEvent


def _event(n: int) -> SequenceEvent:
    return SequenceEvent(
        sequence_number=n, site_id="S1", partition_id="P1", invoice_type="INV"
    )


def test_push_keeps_newest_first_and_caps_length():
    buf = HistoryBuffer()
    rng = random.Random(7)
    pushed = []
    for _ in range(200):
        n = rng.randint(1, 10_000)
        buf.push(_event(n))
        pushed.append(n)
        assert len(buf) <= HISTORY_CAPACITY
        expected = list(reversed(pushed))[:HISTORY_CAPACITY]
        assert [e.sequence_number for e in buf] == expected


def test_twenty_first_push_evicts_the_oldest():
    buf = HistoryBuffer()
    for n in range(1, 22):
        buf.push(_event(n))
    assert len(buf) == 20
    assert buf.latest.sequence_number == 21
    assert buf[-1].sequence_number == 2
    assert 1 not in {e.sequence_number for e in buf}


def test_chronological_view_is_restartable_and_non_mutating():
    buf = HistoryBuffer(capacity=5)
    for n in range(3):
        buf.push(_event(n))
    view = buf.to_chronological()
    assert [e.sequence_number for e in view] == [0, 1, 2]
    assert [e.sequence_number for e in view] == [0, 1, 2]
    assert [e.sequence_number for e in buf] == [2, 1, 0]
    buf.push(_event(3))
    assert [e.sequence_number for e in view] == [0, 1, 2, 3]


def test_clear_empties_the_buffer():
    buf = HistoryBuffer()
    buf.push(_event(1))
    buf.clear()
    assert len(buf) == 0
    assert buf.latest is None
    assert list(buf.to_chronological()) == []
