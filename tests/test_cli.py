"""Tests for the administration CLI."""

from click.testing import CliRunner

from app.cli import cli
from app.db.models import Consultant
from app.services import automation_config_service, cascade_service


def test_add_consultant_appends_to_rotation(db, team):
    result = CliRunner().invoke(
        cli, ["add-consultant", "--name", "Nova", "--email", "NOVA@Example.com"]
    )

    assert result.exit_code == 0
    assert "✓ Created consultant: Nova" in result.output
    db.expire_all()
    nova = db.query(Consultant).filter(Consultant.display_name == "Nova").one()
    assert nova.email == "nova@example.com"
    assert automation_config_service.get_rotation_order(db)[-1] == nova.id


def test_add_consultant_without_rotation(db, team):
    result = CliRunner().invoke(cli, ["add-consultant", "--name", "Backup", "--no-rotate"])

    assert result.exit_code == 0
    db.expire_all()
    assert len(automation_config_service.get_rotation_order(db)) == 3


def test_set_rotation_replaces_order(db, team):
    u1, u2, u3 = team

    result = CliRunner().invoke(
        cli, ["set-rotation", str(u3.id), str(u1.id), "--sla-hours", "8"]
    )

    assert result.exit_code == 0
    assert "✓ Rotation updated (2 consultants)" in result.output
    db.expire_all()
    assert automation_config_service.get_rotation_order(db) == [u3.id, u1.id]
    assert automation_config_service.get_sla_hours(db) == 8


def test_set_rotation_rejects_bad_ids(db, team):
    result = CliRunner().invoke(cli, ["set-rotation", "not-a-uuid"])

    assert "❌ Consultant ids must be UUIDs" in result.output


def test_history_prints_chain(db, team, make_client):
    c1 = make_client()
    cascade_service.on_new_lead(db, c1.id, None)

    result = CliRunner().invoke(cli, ["history", str(c1.id)])

    assert result.exit_code == 0
    assert f"#1 {team[0].id} Active" in result.output


def test_sweep_command_reports_counts(db, team):
    result = CliRunner().invoke(cli, ["sweep"])

    assert result.exit_code == 0
    assert "scanned=0" in result.output
