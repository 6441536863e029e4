from __future__ import annotations

from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from chat_relay.models import IdSequence, Message, MessageFactory, utc_timestamp


def test_id_sequence_never_repeats_within_one_tick():
    ids = IdSequence(clock=lambda: 1700000000.0)
    a, b, c = ids.next(), ids.next(), ids.next()
    assert a == 1700000000000
    assert b == a + 1
    assert c == b + 1


def test_id_sequence_follows_clock_when_it_moves_ahead():
    ticks = iter([1.0, 5.0])
    ids = IdSequence(clock=lambda: next(ticks))
    assert ids.next() == 1000
    assert ids.next() == 5000


def test_id_sequence_observe_skips_past_existing_ids():
    ids = IdSequence(clock=lambda: 1.0)
    ids.observe(9999)
    assert ids.next() == 10000


def test_utc_timestamp_format():
    ts = utc_timestamp(datetime(2025, 3, 4, 5, 6, 7, 891000, tzinfo=timezone.utc))
    assert ts == "2025-03-04T05:06:07.891Z"


def test_factory_clamps_timestamp_to_last_message():
    factory = MessageFactory(ids=IdSequence(clock=lambda: 1.0), now=lambda: "2020-01-01T00:00:00.000Z")
    prior = [Message(id=5, role="user", text="hi", timestamp="2025-01-01T00:00:00.000Z")]

    msg = factory.create("assistant", "hello", prior)

    assert msg.timestamp == "2025-01-01T00:00:00.000Z"
    assert msg.id > 5


def test_message_rejects_unknown_role_and_empty_text():
    with pytest.raises(ValidationError):
        Message(id=1, role="system", text="x", timestamp="t")
    with pytest.raises(ValidationError):
        Message(id=1, role="user", text="", timestamp="t")
