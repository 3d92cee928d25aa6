"""Tests for canonical hashing of claim events."""

from __future__ import annotations

import hashlib

from claimflow.core.hasher import canonical_json_bytes, compute_event_hash, sha256_hex


def _event(**overrides):
    event = {
        "claim_id": "CLM-ABC123DEF456",
        "event_key": "2026-02-21T10:00:00.000000Z#FNOL_SUBMITTED#0a1b2c3d",
        "created_at": "2026-02-21T10:00:00.000000Z",
        "stage": "FNOL_SUBMITTED",
        "type": "CLAIM_CREATED",
        "data": {"policy_id": "POL-1", "loss_date": "2026-02-18"},
        "prev_hash": None,
    }
    event.update(overrides)
    return event


class TestCanonicalJson:
    def test_sorted_compact(self):
        assert canonical_json_bytes({"b": 1, "a": [1, 2]}) == b'{"a":[1,2],"b":1}'

    def test_non_ascii_escaped(self):
        assert canonical_json_bytes({"name": "Zoë"}) == b'{"name":"Zo\\u00eb"}'

    def test_sha256_hex(self):
        assert sha256_hex(b"abc") == hashlib.sha256(b"abc").hexdigest()


class TestEventHash:
    def test_matches_explicit_canonical_form(self):
        expected = hashlib.sha256(
            b'{"claim_id":"CLM-1","created_at":"t","data":{"a":1},'
            b'"event_key":"k","prev_hash":"","stage":"S","type":"T"}'
        ).hexdigest()
        event = {
            "claim_id": "CLM-1",
            "event_key": "k",
            "created_at": "t",
            "stage": "S",
            "type": "T",
            "data": {"a": 1},
        }
        assert compute_event_hash(event) == expected

    def test_deterministic(self):
        assert compute_event_hash(_event()) == compute_event_hash(_event())

    def test_key_order_irrelevant(self):
        event = _event()
        reordered = dict(reversed(list(event.items())))
        assert compute_event_hash(event) == compute_event_hash(reordered)

    def test_none_prev_hash_equals_empty(self):
        assert compute_event_hash(_event(prev_hash=None)) == compute_event_hash(
            _event(prev_hash="")
        )

    def test_unsealed_fields_ignored(self):
        base = compute_event_hash(_event())
        assert compute_event_hash(_event(hash="deadbeef", actor_id="reviewer-7")) == base

    def test_data_change_changes_hash(self):
        changed = _event(data={"policy_id": "POL-2", "loss_date": "2026-02-18"})
        assert compute_event_hash(changed) != compute_event_hash(_event())

    def test_prev_hash_change_changes_hash(self):
        assert compute_event_hash(_event(prev_hash="a" * 64)) != compute_event_hash(_event())
