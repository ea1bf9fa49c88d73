"""CLI tools for the email automation engine."""

import asyncio

import click

from studio_automation.services.automation_registry import (
    SubjectNotFoundError,
    UnknownWorkflowTypeError,
)


def _get_service(ctx: click.Context):
    service = ctx.obj.get("service")
    if service is None:
        from studio_automation.db.session import SessionLocal
        from studio_automation.services.automation_service import build_automation_service

        service = build_automation_service(SessionLocal)
        ctx.obj["service"] = service
    return service


@click.group()
@click.pass_context
def cli(ctx: click.Context):
    """Studio automation CLI tools."""
    ctx.ensure_object(dict)


@cli.command("seed-settings")
@click.pass_context
def seed_settings(ctx: click.Context):
    """Create missing automation settings rows with their defaults (never overwrites)."""
    created = _get_service(ctx).seed_default_settings()
    if created:
        for workflow_type in created:
            click.echo(f"✓ Seeded {workflow_type}")
    else:
        click.echo("All automation settings already exist")


@cli.command("show-settings")
@click.pass_context
def show_settings(ctx: click.Context):
    """Print every workflow's current settings."""
    rows = _get_service(ctx).get_settings()
    if not rows:
        click.echo("No automation settings; run seed-settings first")
        return
    for row in rows:
        click.echo(
            f"{row.workflow_type:<28} enabled={row.enabled!s:<5} "
            f"timing={row.timing_hours or 0}h{row.timing_minutes or 0:02d}m "
            f"business_hours_only={row.business_hours_only}"
        )


@cli.command("run-tick")
@click.pass_context
def run_tick(ctx: click.Context):
    """Run one scheduler tick now and print what it did."""
    summary = asyncio.run(_get_service(ctx).run_tick())
    if summary is None:
        click.echo("A tick is already in progress")
        return
    for result in summary.workflows:
        line = (
            f"{result.workflow_type:<28} candidates={result.candidates} sent={result.sent} "
            f"failed={result.failed} deferred={result.deferred} duplicates={result.duplicates}"
        )
        if result.error:
            line += f" error={result.error}"
        click.echo(line)
    click.echo(f"✓ Tick done: sent={summary.sent} failed={summary.failed}")


@cli.command()
@click.option("--workflow-type", required=True, help="Workflow type, e.g. review_request")
@click.option("--subject-id", required=True, help="Appointment, customer or request id")
@click.pass_context
def trigger(ctx: click.Context, workflow_type: str, subject_id: str):
    """
    Send one workflow's email to one subject now.

    Example:
        studio-automation trigger --workflow-type review_request --subject-id <uuid>
    """
    try:
        result = asyncio.run(_get_service(ctx).trigger_automation(workflow_type, subject_id))
    except (UnknownWorkflowTypeError, SubjectNotFoundError) as e:
        raise click.ClickException(str(e))

    if result.success:
        click.echo(f"✓ Sent {workflow_type} for {subject_id}")
    else:
        click.echo(f"❌ Not sent: {result.error}")
        ctx.exit(1)


if __name__ == "__main__":
    cli()
