"""CLI tools for lead cascade administration."""

from uuid import UUID

import click

from app.db.models import Consultant
from app.db.session import SessionLocal
from app.services import automation_config_service, cascade_service
from app.services.cascade_sweeper import get_sweeper


@click.group()
def cli():
    """Lead cascade CLI tools."""
    pass


@cli.command()
@click.option("--name", required=True, help="Consultant display name")
@click.option("--email", default=None, help="Email address for notifications")
@click.option("--phone", default=None, help="WhatsApp phone number")
@click.option("--whatsapp-instance", default=None, help="Evolution API instance name")
@click.option("--rotate/--no-rotate", default=True, help="Append to the rotation order")
def add_consultant(
    name: str,
    email: str | None,
    phone: str | None,
    whatsapp_instance: str | None,
    rotate: bool,
):
    """
    Register a consultant and (by default) append them to the rotation.

    Example:
        lead-cascade add-consultant --name "Ana Souza" --email ana@example.com
    """
    db = SessionLocal()
    try:
        consultant = Consultant(
            display_name=name.strip(),
            email=email.lower() if email else None,
            phone=phone,
            whatsapp_instance=whatsapp_instance,
            is_active=True,
        )
        db.add(consultant)
        db.flush()

        if rotate:
            order = automation_config_service.get_rotation_order(db)
            automation_config_service.save_config(db, rotation_order=[*order, consultant.id])
        db.commit()

        click.echo(f"✓ Created consultant: {name}")
        click.echo(f"  ID: {consultant.id}")
        if rotate:
            click.echo("✓ Appended to the rotation order")
    except Exception as e:
        db.rollback()
        click.echo(f"❌ Error: {e}")
    finally:
        db.close()


@cli.command()
@click.argument("consultant_ids", nargs=-1, required=True)
@click.option("--sla-hours", type=int, default=None, help="SLA window in hours")
def set_rotation(consultant_ids: tuple[str, ...], sla_hours: int | None):
    """
    Replace the rotation order.

    Example:
        lead-cascade set-rotation <id-a> <id-b> <id-c> --sla-hours 24
    """
    try:
        order = [UUID(value) for value in consultant_ids]
    except ValueError:
        click.echo("❌ Consultant ids must be UUIDs")
        return
    if sla_hours is not None and sla_hours < 1:
        click.echo("❌ --sla-hours must be at least 1")
        return

    db = SessionLocal()
    try:
        config = automation_config_service.save_config(
            db, rotation_order=order, sla_hours=sla_hours
        )
        db.commit()
        click.echo(f"✓ Rotation updated ({len(order)} consultants)")
        click.echo(f"  Version: {config.rotation_version}")
        click.echo(f"  SLA: {config.sla_hours}h")
    except Exception as e:
        db.rollback()
        click.echo(f"❌ Error: {e}")
    finally:
        db.close()


@cli.command()
def sweep():
    """Run one SLA sweep now (same guard as the worker)."""
    result = get_sweeper().run()
    click.echo(
        f"✓ Sweep done: scanned={result.scanned} expired={result.expired} "
        f"escalated={result.escalated} stalled={result.stalled} "
        f"skipped={result.skipped} errors={result.errors}"
    )


@cli.command()
@click.argument("client_id")
def history(client_id: str):
    """Print the cascade chain of a client."""
    try:
        client_uuid = UUID(client_id)
    except ValueError:
        click.echo("❌ client_id must be a UUID")
        return

    db = SessionLocal()
    try:
        chain = cascade_service.get_cascade_history(db, client_uuid)
        if not chain:
            click.echo("No cascade assignments for this client")
            return
        for a in chain:
            finalized = a.finalized_at.isoformat() if a.finalized_at else "-"
            click.echo(
                f"#{a.sequence} {a.consultant_id} {a.status} "
                f"expires={a.expires_at.isoformat()} finalized={finalized} "
                f"reason={a.reason or '-'}"
            )
    finally:
        db.close()


if __name__ == "__main__":
    cli()
