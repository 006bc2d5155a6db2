"""CLI tools for schedule permission administration."""

from uuid import UUID

import click

from callwatch.db.models import User
from callwatch.db.session import SessionLocal
from callwatch.services import permission_service, visible_call_service
from callwatch.utils.datetime_utils import ensure_utc


def _user_by_email(db, email: str) -> User | None:
    return db.query(User).filter(User.email == email.lower().strip()).first()


@click.group()
def cli():
    """Call Watch CLI tools."""
    pass


@cli.command()
@click.option("--viewer-email", required=True, help="User who gets access")
@click.option("--target-email", "target_emails", required=True, multiple=True,
              help="Schedule owner (repeatable)")
@click.option("--admin-email", default=None, help="Recorded as the grantor")
def grant(viewer_email: str, target_emails: tuple[str, ...], admin_email: str | None):
    """
    Let a user view one or more other users' call schedules.

    Example:
        python -m callwatch.cli grant --viewer-email caller@acme.com \\
            --target-email ana@acme.com --target-email raj@acme.com
    """
    db = SessionLocal()
    try:
        viewer = _user_by_email(db, viewer_email)
        if not viewer:
            click.echo(f"❌ No user with email {viewer_email}")
            raise SystemExit(1)

        granted_by = _user_by_email(db, admin_email) if admin_email else None
        target_ids = []
        for email in target_emails:
            target = _user_by_email(db, email)
            if not target:
                click.echo(f"❌ No user with email {email}, skipping")
                continue
            target_ids.append(target.id)

        result = permission_service.grant(
            db,
            viewer_id=viewer.id,
            target_ids=target_ids,
            granted_by_id=granted_by.id if granted_by else None,
        )
        click.echo(f"✓ {result.message}")
        for failure in result.failed:
            click.echo(f"  ❌ {failure.target_id}: {failure.error}")
        if result.all_failed:
            raise SystemExit(1)
    finally:
        db.close()


@cli.command()
@click.option("--permission-id", required=True, type=click.UUID)
def revoke(permission_id: UUID):
    """Revoke a schedule grant (no-op if already revoked)."""
    db = SessionLocal()
    try:
        permission_service.revoke(db, permission_id)
        click.echo(f"✓ Revoked permission {permission_id}")
    except permission_service.PermissionServiceError as e:
        click.echo(f"❌ Error: {e}")
        raise SystemExit(1)
    finally:
        db.close()


@cli.command()
@click.option("--permission-id", required=True, type=click.UUID)
@click.option("--admin-email", default=None, help="Recorded as the grantor")
def restore(permission_id: UUID, admin_email: str | None):
    """Reactivate a revoked schedule grant."""
    db = SessionLocal()
    try:
        admin = _user_by_email(db, admin_email) if admin_email else None
        permission_service.restore(db, permission_id, admin.id if admin else None)
        click.echo(f"✓ Restored permission {permission_id}")
    except permission_service.PermissionServiceError as e:
        click.echo(f"❌ Error: {e}")
        raise SystemExit(1)
    finally:
        db.close()


@cli.command("visible-calls")
@click.option("--email", required=True, help="Viewer email")
def visible_calls(email: str):
    """List the calls a user can currently see, soonest first."""
    db = SessionLocal()
    try:
        viewer = _user_by_email(db, email)
        if not viewer:
            click.echo(f"❌ No user with email {email}")
            raise SystemExit(1)

        scope = permission_service.active_targets_for(db, viewer.id)
        calls = visible_call_service.visible_calls(db, viewer.id)
        if not visible_call_service.has_granted_targets(scope, viewer.id):
            click.echo("→ No schedule permissions granted; showing own calls only")
        for call in calls:
            when = ensure_utc(call.scheduled_time).strftime("%Y-%m-%d %H:%M UTC")
            click.echo(f"{when}  {call.status:<12} {call.contact_name}  ({call.id})")
        click.echo(f"{len(calls)} call(s)")
    finally:
        db.close()


if __name__ == "__main__":
    cli()
