"""
Status transition tables for master data requests and payments.

Request lifecycle:

    draft ──submit──▶ pending_approval ──approve──▶ approved
      │                     │
      └─delete              └──reject──▶ rejected ──resubmit──▶ (new request)

A resubmission never moves the rejected request; it creates a new row in
pending_approval linked through previous_attempt_id.
"""

from payables.errors import InvalidState

REQUEST_TRANSITIONS: dict[str, set[str]] = {
    "draft": {"pending_approval"},
    "pending_approval": {"approved", "rejected"},
    "approved": set(),
    "rejected": set(),
}

PAYMENT_TRANSITIONS: dict[str, set[str]] = {
    "pending": {"approved", "rejected"},
    "approved": set(),
    "rejected": set(),
}

# Statuses whose content the requester may still change.
EDITABLE_REQUEST_STATUSES = frozenset({"draft"})
DELETABLE_REQUEST_STATUSES = frozenset({"draft"})
RESUBMITTABLE_REQUEST_STATUSES = frozenset({"rejected"})


def is_valid_transition(
    table: dict[str, set[str]], current_status: str, new_status: str
) -> bool:
    return new_status in table.get(current_status, set())


def validate_transition(
    table: dict[str, set[str]], current_status: str, new_status: str, entity: str = "Request"
) -> None:
    """Raise InvalidState if current_status -> new_status is not allowed."""
    if not is_valid_transition(table, current_status, new_status):
        allowed = sorted(table.get(current_status, set()))
        raise InvalidState(
            f"{entity} cannot move from {current_status} to {new_status}",
            {
                "current_status": current_status,
                "requested_status": new_status,
                "allowed": allowed,
            },
        )


def is_terminal_state(table: dict[str, set[str]], status: str) -> bool:
    return not table.get(status)
