from __future__ import annotations

import itertools

import pytest

from helpdesk.tickets.actions import TICKET_TRANSITIONS, TicketAction
from helpdesk.tickets.errors import InvalidTransitionError
from helpdesk.tickets.state import TicketStateMachine, TicketStatus

EDGES = {
    (TicketStatus.PENDING_APPROVAL, TicketStatus.ASSIGNED),
    (TicketStatus.PENDING_APPROVAL, TicketStatus.REJECTED),
    (TicketStatus.ASSIGNED, TicketStatus.IN_PROGRESS),
    (TicketStatus.ASSIGNED, TicketStatus.WAITING_FEEDBACK),
    (TicketStatus.ASSIGNED, TicketStatus.PENDING_CLOSE_APPROVAL),
    (TicketStatus.ASSIGNED, TicketStatus.CLOSED),
    (TicketStatus.IN_PROGRESS, TicketStatus.WAITING_FEEDBACK),
    (TicketStatus.IN_PROGRESS, TicketStatus.PENDING_CLOSE_APPROVAL),
    (TicketStatus.IN_PROGRESS, TicketStatus.CLOSED),
    (TicketStatus.WAITING_FEEDBACK, TicketStatus.IN_PROGRESS),
    (TicketStatus.WAITING_FEEDBACK, TicketStatus.PENDING_CLOSE_APPROVAL),
    (TicketStatus.WAITING_FEEDBACK, TicketStatus.CLOSED),
    (TicketStatus.PENDING_CLOSE_APPROVAL, TicketStatus.CLOSED),
    (TicketStatus.PENDING_CLOSE_APPROVAL, TicketStatus.IN_PROGRESS),
    (TicketStatus.CLOSED, TicketStatus.PENDING_APPROVAL),
    (TicketStatus.CLOSED, TicketStatus.ASSIGNED),
    (TicketStatus.REJECTED, TicketStatus.PENDING_APPROVAL),
    (TicketStatus.REJECTED, TicketStatus.ASSIGNED),
}


def test_initial_state_is_pending_approval():
    assert TicketStateMachine.initial_state() is TicketStatus.PENDING_APPROVAL


@pytest.mark.parametrize(
    ("current", "new"),
    [pair for pair in itertools.product(TicketStatus, TicketStatus) if pair[0] != pair[1]],
)
def test_transitions_follow_declared_edges(current, new):
    expected = (current, new) in EDGES

    assert TicketStateMachine.can_transition(current, new) is expected
    if not expected:
        with pytest.raises(InvalidTransitionError) as excinfo:
            TicketStateMachine.assert_transition(current, new)
        assert excinfo.value.field == "status"


def test_staying_in_place_is_allowed():
    assert TicketStateMachine.can_transition(TicketStatus.ASSIGNED, TicketStatus.ASSIGNED)


def test_request_close_not_allowed_twice_or_before_assignment():
    assert TicketStateMachine.allows(TicketAction.REQUEST_CLOSE, TicketStatus.IN_PROGRESS)
    assert not TicketStateMachine.allows(TicketAction.REQUEST_CLOSE, TicketStatus.PENDING_CLOSE_APPROVAL)
    assert not TicketStateMachine.allows(TicketAction.REQUEST_CLOSE, TicketStatus.PENDING_APPROVAL)


@pytest.mark.parametrize("status", list(TicketStatus))
def test_reopen_only_from_terminal(status):
    assert TicketStateMachine.allows(TicketAction.REOPEN, status) is TicketStateMachine.is_terminal(status)


def test_assert_allows_names_action_and_status():
    with pytest.raises(InvalidTransitionError) as excinfo:
        TicketStateMachine.assert_allows(TicketAction.APPROVE_CLOSE, TicketStatus.ASSIGNED)

    assert "APPROVE_CLOSE" in str(excinfo.value)
    assert excinfo.value.kind == "invalid_transition"


def test_every_transition_action_has_source_states():
    for action in TICKET_TRANSITIONS:
        assert any(TicketStateMachine.allows(action, status) for status in TicketStatus)


def test_messages_accepted_only_while_active():
    open_statuses = {status for status in TicketStatus if TicketStateMachine.accepts_messages(status)}

    assert open_statuses == {TicketStatus.ASSIGNED, TicketStatus.IN_PROGRESS, TicketStatus.WAITING_FEEDBACK}
