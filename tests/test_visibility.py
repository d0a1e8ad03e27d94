from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timedelta, timezone

import pytest

from helpdesk.memberships import Role
from helpdesk.tickets.actions import TicketAction
from helpdesk.tickets.models import AuditLogEntry, Message, MessageStatus, Ticket
from helpdesk.tickets.state import TicketStatus
from helpdesk.tickets.visibility import (
    TicketFilters,
    Viewer,
    list_tickets_for_user,
    list_tickets_for_viewer,
    project_audit_label,
    project_audit_log,
    project_message_views,
    project_visible_messages,
)

PROJECT_ID = "project-p"
NOW = datetime(2026, 3, 2, 10, 0, tzinfo=timezone.utc)


def _message(message_id: str, sender_id: str, status: MessageStatus, minutes: int, position: int) -> Message:
    return Message(
        id=message_id,
        ticket_id="t-1",
        sender_id=sender_id,
        content=f"{message_id} content",
        original_content=f"{message_id} original",
        status=status,
        timestamp=NOW + timedelta(minutes=minutes),
        position=position,
    )


def _audit(entry_id: str, user_id: str, role: Role, minutes: int, sequence: int) -> AuditLogEntry:
    return AuditLogEntry(
        id=entry_id,
        ticket_id="t-1",
        sequence=sequence,
        user_id=user_id,
        role=role,
        action=TicketAction.APPROVE_AND_ASSIGN,
        details="Ticket approved and assigned to a responder.",
        timestamp=NOW + timedelta(minutes=minutes),
        metadata={"assignee_id": "bob"},
    )


@pytest.fixture
def ticket() -> Ticket:
    return Ticket(
        id="t-1",
        project_id=PROJECT_ID,
        title="Issue",
        description="X",
        original_description="X",
        status=TicketStatus.IN_PROGRESS,
        querent_id="alice",
        mediator_id="diana",
        responder_id="bob",
        created_at=NOW,
        updated_at=NOW,
        messages=(
            _message("m-alice-pending", "alice", MessageStatus.PENDING_APPROVAL, 4, 3),
            _message("m-bob-approved", "bob", MessageStatus.APPROVED, 1, 0),
            _message("m-alice-rejected", "alice", MessageStatus.REJECTED, 2, 1),
            _message("m-diana", "diana", MessageStatus.APPROVED, 3, 2),
            _message("m-bob-pending", "bob", MessageStatus.PENDING_APPROVAL, 5, 4),
        ),
        audit_log=(
            _audit("a-2", "diana", Role.MEDIATOR, 1, 1),
            _audit("a-1", "alice", Role.MEMBER, 0, 0),
        ),
    )


def _ids(messages) -> list[str]:
    return [message.id for message in messages]


def test_pending_querent_message_hidden_from_responder(ticket, users):
    responder_view = project_visible_messages(ticket, Viewer.for_user(users["bob"], PROJECT_ID))
    querent_view = project_visible_messages(ticket, Viewer.for_user(users["alice"], PROJECT_ID))
    mediator_view = project_visible_messages(ticket, Viewer.for_user(users["diana"], PROJECT_ID))

    assert "m-alice-pending" not in _ids(responder_view)
    assert "m-alice-pending" in _ids(querent_view)
    assert "m-alice-pending" in _ids(mediator_view)


def test_member_views_in_chronological_order(ticket, users):
    assert _ids(project_visible_messages(ticket, Viewer.for_user(users["alice"], PROJECT_ID))) == [
        "m-bob-approved",
        "m-diana",
        "m-alice-pending",
    ]
    assert _ids(project_visible_messages(ticket, Viewer.for_user(users["bob"], PROJECT_ID))) == [
        "m-bob-approved",
        "m-diana",
        "m-bob-pending",
    ]


def test_privileged_viewers_see_everything(ticket, users):
    admin_view = project_visible_messages(ticket, Viewer.for_user(users["edwin"], PROJECT_ID))

    assert len(admin_view) == len(ticket.messages)


def test_message_views_hide_sender_details_from_members(ticket, users):
    views = {view.id: view for view in project_message_views(ticket, Viewer.for_user(users["alice"], PROJECT_ID), directory=users)}

    assert views["m-alice-pending"].sender_label == "You"
    assert views["m-bob-approved"].sender_label == "Assignee"
    assert views["m-diana"].sender_label == "Mediator"
    assert views["m-bob-approved"].sender_id is None
    assert views["m-bob-approved"].original_content is None


def test_message_views_for_mediator_name_the_sender(ticket, users):
    views = {view.id: view for view in project_message_views(ticket, Viewer.for_user(users["diana"], PROJECT_ID), directory=users)}

    assert views["m-alice-rejected"].sender_label == "Alice (Member)"
    assert views["m-alice-rejected"].original_content == "m-alice-rejected original"
    assert views["m-bob-pending"].sender_id == "bob"


def test_responder_sees_querent_as_creator(ticket, users):
    views = {view.id: view for view in project_message_views(ticket, Viewer.for_user(users["bob"], PROJECT_ID), directory=users)}

    approved_from_alice = replace(ticket.messages[0], id="m-alice-approved", status=MessageStatus.APPROVED)
    extended = replace(ticket, messages=(*ticket.messages, approved_from_alice))
    extended_views = {
        view.id: view
        for view in project_message_views(extended, Viewer.for_user(users["bob"], PROJECT_ID), directory=users)
    }

    assert views["m-bob-approved"].sender_label == "You"
    assert extended_views["m-alice-approved"].sender_label == "Creator"


def test_audit_label_depends_on_viewer_role(ticket, users):
    entry = ticket.audit_log[0]

    assert project_audit_label(entry, Role.MEDIATOR, directory=users) == "Diana (Mediator)"
    assert project_audit_label(entry, Role.ADMIN, directory=users) == "Diana (Mediator)"
    assert project_audit_label(entry, Role.MEMBER, directory=users) == "Mediator"
    assert project_audit_label(entry, None) == "Mediator"
    assert project_audit_label(entry, Role.ADMIN) == "Unknown User (Mediator)"


def test_audit_log_projection_hides_identity_from_members(ticket, users):
    member_view = project_audit_log(ticket, Viewer.for_user(users["alice"], PROJECT_ID), directory=users)
    mediator_view = project_audit_log(ticket, Viewer.for_user(users["diana"], PROJECT_ID), directory=users)

    assert [entry.id for entry in member_view] == ["a-1", "a-2"]
    assert all(entry.user_id is None and entry.metadata == {} for entry in member_view)
    assert [entry.actor_label for entry in member_view] == ["Member", "Mediator"]
    assert mediator_view[1].user_id == "diana"
    assert mediator_view[1].metadata == {"assignee_id": "bob"}
    assert mediator_view[0].actor_label == "Alice (Member)"


def test_viewer_for_global_admin_is_elevated(users):
    assert Viewer.for_user(users["edwin"], PROJECT_ID).role is Role.ADMIN
    assert Viewer.for_user(users["edwin"]).role is Role.ADMIN
    assert Viewer.for_user(users["alice"]).role is None


def _tickets() -> list[Ticket]:
    base = dict(
        project_id=PROJECT_ID,
        title="Issue",
        description="X",
        original_description="X",
        mediator_id="diana",
        created_at=NOW,
        updated_at=NOW,
    )
    return [
        Ticket(id="t-1", status=TicketStatus.ASSIGNED, querent_id="alice", responder_id="bob", **base),
        Ticket(id="t-2", status=TicketStatus.PENDING_APPROVAL, querent_id="charlie", **base),
        Ticket(id="t-3", status=TicketStatus.IN_PROGRESS, querent_id="charlie", responder_id="alice", **base),
        Ticket(
            id="t-4",
            status=TicketStatus.ASSIGNED,
            querent_id="frank",
            responder_id="diana",
            **{**base, "project_id": "project-q"},
        ),
    ]


def test_members_see_only_their_tickets(users):
    visible = list_tickets_for_viewer(_tickets(), Viewer.for_user(users["alice"], PROJECT_ID))

    assert [ticket.id for ticket in visible] == ["t-1", "t-3"]


def test_mediators_see_all_tickets_in_scope(users):
    visible = list_tickets_for_viewer(_tickets(), Viewer.for_user(users["diana"], PROJECT_ID))

    assert [ticket.id for ticket in visible] == ["t-1", "t-2", "t-3"]


def test_secondary_filters_apply_after_role_filter(users):
    viewer = Viewer.for_user(users["diana"], PROJECT_ID)

    by_status = list_tickets_for_viewer(_tickets(), viewer, TicketFilters(status=TicketStatus.ASSIGNED))
    by_assignee = list_tickets_for_viewer(_tickets(), viewer, TicketFilters(assignee_id="alice"))
    member_by_status = list_tickets_for_viewer(
        _tickets(), Viewer.for_user(users["bob"], PROJECT_ID), TicketFilters(status=TicketStatus.PENDING_APPROVAL)
    )

    assert [ticket.id for ticket in by_status] == ["t-1"]
    assert [ticket.id for ticket in by_assignee] == ["t-3"]
    assert member_by_status == []


def test_list_tickets_for_user_resolves_role_per_project(users):
    assert [ticket.id for ticket in list_tickets_for_user(_tickets(), users["edwin"])] == ["t-1", "t-2", "t-3", "t-4"]
    # diana moderates project-p but is a plain member of project-q
    assert [ticket.id for ticket in list_tickets_for_user(_tickets(), users["diana"])] == ["t-1", "t-2", "t-3", "t-4"]
    assert [ticket.id for ticket in list_tickets_for_user(_tickets(), users["frank"])] == ["t-4"]
    assert [ticket.id for ticket in list_tickets_for_user(_tickets(), users["bob"])] == ["t-1"]
