"""Tests for assignment selection (first assignment and escalation)."""

import uuid
from datetime import datetime, timedelta, timezone

import pytest

from app.db.enums import AssignmentStatus
from app.db.models import CascadeAssignment, Client, Lead
from app.db.session import SessionLocal
from app.services import (
    automation_config_service,
    cascade_service,
    cascade_store,
    rotation_service,
)
from app.services.cascade_service import ClientNotFoundError, NoEligibleConsultantError
from app.services.cascade_store import StaleTransitionError
from app.services.rotation_service import RotationConflictError

T0 = datetime(2026, 1, 5, 9, 0, tzinfo=timezone.utc)


def _expire(db, assignment, now):
    cascade_store.transition_status(
        db,
        assignment.id,
        AssignmentStatus.ACTIVE,
        AssignmentStatus.EXPIRED,
        finalized_at=now,
        reason="SLA_Expired",
    )
    db.commit()


def test_on_new_lead_assigns_head_of_rotation(db, team, make_client, make_lead, notifier):
    u1, u2, u3 = team
    client = make_client()
    lead = make_lead(client)

    assignment = cascade_service.on_new_lead(db, client.id, lead.id, now=T0)

    assert assignment.consultant_id == u1.id
    assert assignment.sequence == 1
    assert assignment.status == AssignmentStatus.ACTIVE.value
    assert assignment.sla_hours == 24
    assert assignment.started_at == T0
    assert assignment.expires_at == T0 + timedelta(hours=24)
    assert assignment.lead_id == lead.id
    assert notifier.assignments == [(u1.id, client.id, 1)]


def test_on_new_lead_updates_owner_and_rotation(db, team, make_client, make_lead):
    u1, u2, u3 = team
    client = make_client()
    lead = make_lead(client)

    cascade_service.on_new_lead(db, client.id, lead.id, now=T0)

    db.expire_all()
    assert db.get(Client, client.id).current_owner_id == u1.id
    assert db.get(Lead, lead.id).assigned_to_id == u1.id
    assert automation_config_service.get_rotation_order(db) == [u2.id, u3.id, u1.id]


def test_consecutive_leads_rotate_through_team(db, team, make_client):
    clients = [make_client(f"Client {i}") for i in range(4)]

    owners = [
        cascade_service.on_new_lead(db, c.id, None, now=T0).consultant_id for c in clients
    ]

    assert owners == [team[0].id, team[1].id, team[2].id, team[0].id]


def test_on_new_lead_returns_none_when_cascade_running(db, team, make_client, make_lead, notifier):
    client = make_client()
    cascade_service.on_new_lead(db, client.id, make_lead(client).id, now=T0)

    again = cascade_service.on_new_lead(db, client.id, make_lead(client).id, now=T0)

    assert again is None
    assert len(cascade_store.list_history(db, client.id)) == 1
    assert len(notifier.assignments) == 1


def test_recurring_lead_continues_client_sequence(db, team, make_client, make_lead):
    client = make_client()
    first = cascade_service.on_new_lead(db, client.id, make_lead(client).id, now=T0)
    _expire(db, first, T0 + timedelta(hours=30))

    second = cascade_service.on_new_lead(
        db, client.id, make_lead(client).id, now=T0 + timedelta(days=3)
    )

    assert second.sequence == 2
    assert [a.sequence for a in cascade_store.list_history(db, client.id)] == [1, 2]


def test_escalation_picks_next_after_previous(db, team, make_client):
    u1, u2, u3 = team
    client = make_client()
    first = cascade_service.on_new_lead(db, client.id, None, now=T0)
    _expire(db, first, T0 + timedelta(hours=25))

    second = cascade_service.assign_next(
        db, client.id, previous=first, now=T0 + timedelta(hours=25)
    )

    assert second.consultant_id == u2.id
    assert second.sequence == first.sequence + 1
    assert second.expires_at == T0 + timedelta(hours=49)


def test_escalation_inherits_lead_of_previous(db, team, make_client, make_lead):
    client = make_client()
    lead = make_lead(client)
    first = cascade_service.on_new_lead(db, client.id, lead.id, now=T0)
    _expire(db, first, T0 + timedelta(hours=25))

    second = cascade_service.assign_next(db, client.id, previous=first, now=T0)

    assert second.lead_id == lead.id


def test_escalation_wraps_to_head(db, team, make_client, set_rotation):
    u1, u2, u3 = team
    set_rotation([u1, u2, u3])
    client = make_client()
    last = CascadeAssignment(
        client_id=client.id,
        consultant_id=u3.id,
        sequence=1,
        status=AssignmentStatus.EXPIRED.value,
        sla_hours=24,
        started_at=T0,
        expires_at=T0 + timedelta(hours=24),
    )
    db.add(last)
    db.commit()

    nxt = cascade_service.assign_next(db, client.id, previous=last, now=T0)

    assert nxt.consultant_id == u1.id
    assert nxt.sequence == 2


def test_escalation_skips_consultants_holding_active_row(db, team, make_client, set_rotation):
    u1, u2, u3 = team
    set_rotation([u1, u2, u3])
    client = make_client()
    previous = CascadeAssignment(
        client_id=client.id,
        consultant_id=u1.id,
        sequence=1,
        status=AssignmentStatus.EXPIRED.value,
        sla_hours=24,
        started_at=T0,
        expires_at=T0 + timedelta(hours=24),
    )
    busy = CascadeAssignment(
        client_id=client.id,
        consultant_id=u2.id,
        sequence=2,
        status=AssignmentStatus.ACTIVE.value,
        sla_hours=24,
        started_at=T0,
        expires_at=T0 + timedelta(hours=24),
    )
    db.add_all([previous, busy])
    db.commit()

    nxt = cascade_service.assign_next(db, client.id, previous=previous, now=T0)

    assert nxt.consultant_id == u3.id
    assert nxt.sequence == 3


def test_unknown_previous_consultant_falls_back_to_head(
    db, team, make_client, make_consultant, set_rotation
):
    u1, u2, u3 = team
    retired = make_consultant("Retired", is_active=False)
    set_rotation([u1, u2, u3])
    client = make_client()
    previous = CascadeAssignment(
        client_id=client.id,
        consultant_id=retired.id,
        sequence=1,
        status=AssignmentStatus.EXPIRED.value,
        sla_hours=24,
        started_at=T0,
        expires_at=T0 + timedelta(hours=24),
    )
    db.add(previous)
    db.commit()

    nxt = cascade_service.assign_next(db, client.id, previous=previous, now=T0)

    assert nxt.consultant_id == u1.id


def test_no_eligible_consultant_with_empty_rotation(db, make_client):
    client = make_client()

    with pytest.raises(NoEligibleConsultantError):
        cascade_service.on_new_lead(db, client.id, None, now=T0)
    assert cascade_store.list_history(db, client.id) == []


def test_no_eligible_consultant_when_everyone_holds_client(
    db, make_consultant, make_client, set_rotation
):
    solo = make_consultant("Solo")
    set_rotation([solo])
    client = make_client()
    cascade_service.on_new_lead(db, client.id, None, now=T0)

    with pytest.raises(NoEligibleConsultantError):
        cascade_service.assign_next(db, client.id, now=T0)


def test_single_consultant_gets_escalation_back(db, make_consultant, make_client, set_rotation):
    solo = make_consultant("Solo")
    set_rotation([solo])
    client = make_client()
    first = cascade_service.on_new_lead(db, client.id, None, now=T0)
    _expire(db, first, T0 + timedelta(hours=25))

    second = cascade_service.assign_next(db, client.id, previous=first, now=T0)

    assert second.consultant_id == solo.id
    assert second.sequence == 2


def test_sla_hours_come_from_config(db, team, make_client, set_rotation):
    set_rotation(team, sla_hours=6)
    client = make_client()

    assignment = cascade_service.on_new_lead(db, client.id, None, now=T0)

    assert assignment.sla_hours == 6
    assert assignment.expires_at == T0 + timedelta(hours=6)


def test_unknown_client_raises(db, team):
    with pytest.raises(ClientNotFoundError):
        cascade_service.on_new_lead(db, uuid.uuid4(), None, now=T0)


def test_notification_failure_does_not_undo_assignment(db, team, make_client, notifier, monkeypatch):
    def boom(*_args, **_kwargs):
        raise RuntimeError("gateway down")

    monkeypatch.setattr(notifier, "notify_assignment", boom)
    client = make_client()

    assignment = cascade_service.on_new_lead(db, client.id, None, now=T0)

    db.expire_all()
    assert cascade_store.get_assignment(db, assignment.id).status == "Active"


def test_rotation_failure_does_not_undo_assignment(db, team, make_client, monkeypatch):
    def conflict(*_args, **_kwargs):
        raise RotationConflictError("busy")

    monkeypatch.setattr(rotation_service, "rotate_to_tail", conflict)
    client = make_client()

    assignment = cascade_service.on_new_lead(db, client.id, None, now=T0)

    db.expire_all()
    assert cascade_store.get_assignment(db, assignment.id).consultant_id == team[0].id
    assert db.get(Client, client.id).current_owner_id == team[0].id


def test_queries_and_dashboard_data(db, team, make_client):
    u1 = team[0]
    c1 = make_client("Ana")
    c2 = make_client("Bruno")
    cascade_service.on_new_lead(db, c1.id, None, now=T0)
    cascade_service.on_new_lead(db, c2.id, None, now=T0 + timedelta(hours=1))

    queue = cascade_service.get_active_assignments(db, u1.id)
    assert [a.client_id for a in queue] == [c1.id]

    history = cascade_service.get_cascade_history(db, c2.id)
    assert [a.consultant_id for a in history] == [team[1].id]

    rows = cascade_service.list_cascade_data(db)
    assert [(r["client_name"], r["consultant_name"]) for r in rows] == [
        ("Bruno", "U2"),
        ("Ana", "U1"),
    ]
    only_ana = cascade_service.list_cascade_data(db, c1.id)
    assert len(only_ana) == 1
    assert only_ana[0]["status"] == "Active"


def test_concurrent_first_leads_start_a_single_cascade(
    db, team, make_client, make_lead, monkeypatch
):
    u1 = team[0]
    client = make_client()
    lead_a, lead_b = make_lead(client), make_lead(client)
    original = cascade_store.next_sequence
    raced = {"done": False}

    def other_lead_lands_first(session, client_id):
        if not raced["done"]:
            raced["done"] = True
            other = SessionLocal()
            try:
                cascade_service.on_new_lead(other, client_id, lead_a.id, now=T0)
            finally:
                other.close()
        return original(session, client_id)

    monkeypatch.setattr(cascade_store, "next_sequence", other_lead_lands_first)
    late = SessionLocal()
    try:
        result = cascade_service.on_new_lead(late, client.id, lead_b.id, now=T0)
    finally:
        late.close()

    assert result is None
    db.expire_all()
    active = cascade_store.list_active_by_client(db, client.id)
    assert [(a.consultant_id, a.lead_id) for a in active] == [(u1.id, lead_a.id)]
    assert len(cascade_store.list_history(db, client.id)) == 1


def test_escalate_expires_previous_and_assigns_next_together(db, team, make_client):
    u1, u2, _ = team
    client = make_client()
    first = cascade_service.on_new_lead(db, client.id, None, now=T0)

    second = cascade_service.escalate(db, first, now=T0 + timedelta(hours=25))

    db.expire_all()
    history = cascade_store.list_history(db, client.id)
    assert [(a.consultant_id, a.status, a.reason) for a in history] == [
        (u1.id, "Expired", "SLA_Expired"),
        (u2.id, "Active", None),
    ]
    assert history[0].finalized_at == T0 + timedelta(hours=25)
    assert second.id == history[1].id


def test_escalate_of_resolved_row_writes_nothing(db, team, make_client):
    client = make_client()
    first = cascade_service.on_new_lead(db, client.id, None, now=T0)
    _expire(db, first, T0 + timedelta(hours=25))

    with pytest.raises(StaleTransitionError):
        cascade_service.escalate(db, first, now=T0 + timedelta(hours=26))

    db.rollback()
    assert len(cascade_store.list_history(db, client.id)) == 1
