"""Tests for the rotation directory and its compare-and-swap writes."""

import logging
import uuid

import pytest

from app.core.config import settings
from app.db.enums import RotationPolicy
from app.db.session import SessionLocal
from app.services import automation_config_service, cascade_service, rotation_service
from app.services.rotation_service import RotationConflictError


def _order(db) -> list[uuid.UUID]:
    db.expire_all()
    return automation_config_service.get_rotation_order(db)


def test_active_consultants_follow_config_order_and_skip_inactive(
    db, make_consultant, set_rotation
):
    a = make_consultant("A")
    b = make_consultant("B", is_active=False)
    c = make_consultant("C")
    set_rotation([c, b, a, c])

    assert [x.display_name for x in rotation_service.active_consultants(db)] == ["C", "A"]


def test_active_consultants_empty_without_config(db, make_consultant):
    make_consultant("A")
    assert rotation_service.active_consultants(db) == []


def test_unknown_ids_in_order_are_ignored(db, make_consultant):
    a = make_consultant("A")
    automation_config_service.save_config(db, rotation_order=[uuid.uuid4(), a.id])
    db.commit()

    assert [x.id for x in rotation_service.active_consultants(db)] == [a.id]


def test_rotate_to_tail_moves_head(db, team):
    u1, u2, u3 = team

    assert rotation_service.rotate_to_tail(db, u1.id) is True
    assert _order(db) == [u2.id, u3.id, u1.id]
    assert automation_config_service.get_active_config(db).rotation_version == 1


def test_rotate_to_tail_head_only_leaves_non_head_in_place(db, team):
    u1, u2, u3 = team

    assert rotation_service.rotate_to_tail(db, u2.id) is False
    assert _order(db) == [u1.id, u2.id, u3.id]


def test_rotate_to_tail_always_policy_moves_any_member(db, team):
    u1, u2, u3 = team

    assert rotation_service.rotate_to_tail(db, u2.id, policy=RotationPolicy.ALWAYS) is True
    assert _order(db) == [u1.id, u3.id, u2.id]


def test_rotate_to_tail_unknown_consultant_is_noop(db, team):
    assert rotation_service.rotate_to_tail(db, uuid.uuid4()) is False


def _bump_rotation_concurrently(order):
    other = SessionLocal()
    try:
        automation_config_service.save_config(other, rotation_order=order)
        other.commit()
    finally:
        other.close()


def test_rotate_to_tail_retries_after_concurrent_write(db, team, monkeypatch):
    u1, u2, u3 = team
    original = rotation_service._rotated
    calls = {"count": 0}

    def racing_rotated(order, consultant_id, policy):
        calls["count"] += 1
        if calls["count"] == 1:
            # Another assignment rewrites the rotation between our read and our write
            _bump_rotation_concurrently(order)
        return original(order, consultant_id, policy)

    monkeypatch.setattr(rotation_service, "_rotated", racing_rotated)

    assert rotation_service.rotate_to_tail(db, u1.id) is True
    assert calls["count"] == 2
    assert _order(db) == [u2.id, u3.id, u1.id]
    # Concurrent save took version 1, our swap version 2
    assert automation_config_service.get_active_config(db).rotation_version == 2


def test_rotate_to_tail_gives_up_after_max_retries(db, team, monkeypatch):
    u1 = team[0]
    original = rotation_service._rotated

    def always_racing(order, consultant_id, policy):
        _bump_rotation_concurrently(order)
        return original(order, consultant_id, policy)

    monkeypatch.setattr(rotation_service, "_rotated", always_racing)
    monkeypatch.setattr(settings, "CASCADE_ROTATION_MAX_RETRIES", 2)

    with pytest.raises(RotationConflictError):
        rotation_service.rotate_to_tail(db, u1.id)


def test_save_config_bumps_version_only_on_rotation_change(db, team):
    config = automation_config_service.get_active_config(db)
    version = config.rotation_version

    automation_config_service.save_config(db, sla_hours=12)
    db.commit()
    assert automation_config_service.get_active_config(db).rotation_version == version
    assert automation_config_service.get_sla_hours(db) == 12

    automation_config_service.save_config(db, rotation_order=[team[2].id])
    db.commit()
    assert automation_config_service.get_active_config(db).rotation_version == version + 1


def test_inactive_head_freezes_head_only_rotation_with_warning(
    db, make_consultant, make_client, set_rotation, caplog
):
    gone = make_consultant("Gone")
    a, b = make_consultant("A"), make_consultant("B")
    set_rotation([gone, a, b])
    gone.is_active = False
    db.commit()

    with caplog.at_level(logging.WARNING, logger="app.services.rotation_service"):
        owners = [
            cascade_service.on_new_lead(db, make_client(f"C{i}").id, None).consultant_id
            for i in range(2)
        ]

    # The inactive head is never assigned, so it never rotates away
    assert owners == [a.id, a.id]
    assert _order(db) == [gone.id, a.id, b.id]
    assert "head_only rotation is frozen" in caplog.text


def test_always_policy_is_not_blocked_by_inactive_head(db, make_consultant, set_rotation, caplog):
    gone = make_consultant("Gone", is_active=False)
    a, b = make_consultant("A"), make_consultant("B")
    set_rotation([gone, a, b])

    with caplog.at_level(logging.WARNING, logger="app.services.rotation_service"):
        assert rotation_service.rotate_to_tail(db, a.id, RotationPolicy.ALWAYS) is True

    assert _order(db) == [gone.id, b.id, a.id]
    assert "frozen" not in caplog.text
