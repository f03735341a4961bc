"""Unit tests for webhook signature verification and parsing"""

import json

import pytest

from payout_engine.domain.webhooks import parse_transfer_event, sign, verify_signature

SECRET = "test-webhook-secret-0123456789abcdef"


def test_valid_signature_with_and_without_prefix():
    body = b'{"event_type": "transfers#state-change"}'
    header = sign(body, SECRET)
    assert header.startswith("sha256=")
    assert verify_signature(body, header, SECRET) == (True, None)
    assert verify_signature(body, header[len("sha256="):], SECRET) == (True, None)


def test_missing_and_invalid_signature():
    body = b"{}"
    assert verify_signature(body, None, SECRET) == (False, "MISSING_SIGNATURE")
    assert verify_signature(body, "", SECRET) == (False, "MISSING_SIGNATURE")
    assert verify_signature(body, sign(body, "another-secret-0123456789abcdefgh"), SECRET) == (False, "INVALID_SIGNATURE")


def test_signature_covers_exact_body():
    header = sign(b'{"a": 1}', SECRET)
    assert verify_signature(b'{"a":1}', header, SECRET) == (False, "INVALID_SIGNATURE")


def test_parse_state_change_event():
    payload = json.loads(
        '{"event_type": "transfers#state-change", "data": {"resource": {"id": 999, "type": "transfer"},'
        ' "current_state": "outgoing_payment_sent", "previous_state": "processing"}}'
    )
    event = parse_transfer_event(payload)
    assert event.transfer_id == "999"
    assert event.current_state == "outgoing_payment_sent"
    assert event.previous_state == "processing"


def test_other_event_types_are_ignored():
    assert parse_transfer_event({"event_type": "balances#credit", "data": {}}) is None


def test_state_change_without_resource_is_rejected():
    with pytest.raises(ValueError):
        parse_transfer_event({"event_type": "transfers#state-change", "data": {"current_state": "processing"}})
