"""
Unit tests for payables/services/state_machine.py

Tests: request and payment transition tables, validate_transition errors,
       terminal states.
"""

import pytest

from payables.errors import INVALID_STATE, InvalidState
from payables.services.state_machine import (
    PAYMENT_TRANSITIONS,
    REQUEST_TRANSITIONS,
    is_terminal_state,
    is_valid_transition,
    validate_transition,
)


@pytest.mark.parametrize(
    "current,new",
    [
        ("draft", "pending_approval"),
        ("pending_approval", "approved"),
        ("pending_approval", "rejected"),
    ],
)
def test_allowed_request_transitions(current, new):
    assert is_valid_transition(REQUEST_TRANSITIONS, current, new)
    validate_transition(REQUEST_TRANSITIONS, current, new)


@pytest.mark.parametrize(
    "current,new",
    [
        ("draft", "approved"),
        ("approved", "rejected"),
        ("rejected", "pending_approval"),
        ("approved", "approved"),
    ],
)
def test_forbidden_request_transitions(current, new):
    assert not is_valid_transition(REQUEST_TRANSITIONS, current, new)
    with pytest.raises(InvalidState) as exc_info:
        validate_transition(REQUEST_TRANSITIONS, current, new)
    assert exc_info.value.code == INVALID_STATE
    assert exc_info.value.details["current_status"] == current


def test_unknown_status_has_no_transitions():
    assert not is_valid_transition(REQUEST_TRANSITIONS, "archived", "draft")


def test_payment_transitions():
    assert is_valid_transition(PAYMENT_TRANSITIONS, "pending", "approved")
    assert is_valid_transition(PAYMENT_TRANSITIONS, "pending", "rejected")
    assert not is_valid_transition(PAYMENT_TRANSITIONS, "approved", "rejected")
    assert not is_valid_transition(PAYMENT_TRANSITIONS, "rejected", "approved")


def test_terminal_states():
    assert is_terminal_state(REQUEST_TRANSITIONS, "approved")
    assert is_terminal_state(REQUEST_TRANSITIONS, "rejected")
    assert not is_terminal_state(REQUEST_TRANSITIONS, "draft")
    assert is_terminal_state(PAYMENT_TRANSITIONS, "approved")
    assert not is_terminal_state(PAYMENT_TRANSITIONS, "pending")
