from __future__ import annotations

import pytest

from helpdesk.memberships import Actor, Membership, Role, User

PROJECT_ID = "project-p"


def test_user_role_in_project(users):
    assert users["alice"].role_in(PROJECT_ID) is Role.MEMBER
    assert users["diana"].role_in(PROJECT_ID) is Role.MEDIATOR
    assert users["frank"].role_in(PROJECT_ID) is None


def test_global_admin_is_admin_everywhere(users):
    edwin = users["edwin"]

    assert edwin.role_in(PROJECT_ID) is Role.ADMIN
    assert edwin.role_in("any-other-project") is Role.ADMIN
    assert PROJECT_ID not in edwin.memberships


def test_with_memberships_rejects_second_role_in_same_project():
    memberships = [
        Membership(project_id=PROJECT_ID, role=Role.MEMBER),
        Membership(project_id=PROJECT_ID, role=Role.MEDIATOR),
    ]

    with pytest.raises(ValueError):
        User.with_memberships("zoe", "Zoe", memberships)


def test_with_memberships_ignores_insertion_order_and_duplicates():
    first = User.with_memberships(
        "zoe",
        "Zoe",
        [Membership("a", Role.MEMBER), Membership("b", Role.MEDIATOR), Membership("a", Role.MEMBER)],
    )
    second = User.with_memberships("zoe", "Zoe", [Membership("b", Role.MEDIATOR), Membership("a", Role.MEMBER)])

    assert dict(first.memberships) == dict(second.memberships)
    assert sorted(first.membership_list(), key=lambda m: m.project_id) == [
        Membership("a", Role.MEMBER),
        Membership("b", Role.MEDIATOR),
    ]


def test_actor_for_project(users):
    actor = Actor.for_project(users["diana"], PROJECT_ID)

    assert actor == Actor(user_id="diana", role=Role.MEDIATOR)
    assert actor.is_privileged
    assert Actor.for_project(users["frank"], PROJECT_ID) is None
    assert not Actor.for_project(users["alice"], PROJECT_ID).is_privileged


def test_role_labels():
    assert Role.MEMBER.label == "Member"
    assert Role.MEDIATOR.label == "Mediator"
    assert Role.ADMIN.is_privileged
    assert not Role.MEMBER.is_privileged
