"""Main CLI entry point for the practice-growth command."""

import functools
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .. import __version__
from ..collaborators import OutboxDispatcher
from ..config import settings
from ..core.config import ScoringConfigManager
from ..exceptions import GrowthEngineError
from ..leads.manager import LeadManager
from ..leads.schemas import ConversionEvent, EngagementEvent, LeadCaptureEvent, StaffRosterEntry, parse_input
from ..nurturing.engagement import EngagementType
from ..nurturing.engine import NurtureEngine, ResponseType
from ..nurturing.sequences import SEQUENCE_CATALOG
from ..storage.database import LeadDatabase, SORTABLE_COLUMNS
from ..storage.models import Actor, LeadSource, LeadStatus, StaffRole

console = Console()

STATUS_COLORS = {
    "hot": "red",
    "warm": "yellow",
    "cold": "blue",
    "nurturing": "cyan",
    "ready": "green",
    "converted": "bold green",
    "lost": "dim",
}


def get_db(db_path: Optional[str] = None) -> LeadDatabase:
    """Get database instance."""
    return LeadDatabase(Path(db_path) if db_path else Path(settings.db_path))


def get_manager(db_path: Optional[str] = None) -> LeadManager:
    config = ScoringConfigManager(Path(settings.scoring_config_path)).config
    return LeadManager(get_db(db_path), config)


def get_engine(db_path: Optional[str] = None, dispatcher=None) -> NurtureEngine:
    manager = get_manager(db_path)
    return NurtureEngine(manager.db, manager, dispatcher=dispatcher, timezone_name=settings.timezone)


def _actor(user: Optional[str]) -> Actor:
    return Actor.user(user) if user else Actor.system()


def _utc(value: Optional[datetime]) -> Optional[datetime]:
    return value.replace(tzinfo=timezone.utc) if value else None


def _status(status: LeadStatus) -> str:
    color = STATUS_COLORS.get(status.value, "")
    return f"[{color}]{status.value}[/{color}]" if color else status.value


def handle_errors(func):
    """Report engine errors in red and exit with status 1."""
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except GrowthEngineError as e:
            console.print(f"[red]Error: {e}[/red]")
            raise SystemExit(1)
    return wrapper


db_option = click.option("--db", "db_path", help="Custom database path")
user_option = click.option("--user", help="Staff user id performing the action")


@click.group()
@click.version_option(version=__version__, prog_name="practice-growth")
@click.option("--log-level", help="Logging level (defaults to PG_LOG_LEVEL)")
def cli(log_level: Optional[str]):
    """Practice Growth Engine - lead scoring, routing and nurturing.

    \b
    Quick Start:
      practice-growth capture --first Ana --last Ruiz --email ana@example.com
      practice-growth rankings                         # Who to call first
      practice-growth nurture 1                        # Start a sequence
      practice-growth due                              # Send what is due
    """
    level = (log_level or settings.log_level).upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


# ============================================================================
# LEADS
# ============================================================================

@cli.command()
@click.option("--first", "first_name", required=True, help="First name")
@click.option("--last", "last_name", required=True, help="Last name")
@click.option("--email", help="Email address")
@click.option("--phone", help="Phone number")
@click.option("--source", "-s", type=click.Choice([s.value for s in LeadSource]), default="website",
              help="Lead source")
@click.option("--visits", default=1, help="Website visits")
@click.option("--page-views", default=1, help="Page views")
@click.option("--time-on-site", default=0, help="Seconds on site")
@click.option("--last-page", help="Last page viewed")
@click.option("--form-abandoned", is_flag=True, help="Lead started but did not finish a form")
@click.option("--notes", help="Free-text notes")
@db_option
@handle_errors
def capture(first_name, last_name, email, phone, source, visits, page_views, time_on_site,
            last_page, form_abandoned, notes, db_path):
    """Capture a new lead (duplicates are merged)."""
    event = parse_input(LeadCaptureEvent, {
        "first_name": first_name,
        "last_name": last_name,
        "email": email,
        "phone": phone,
        "source": source,
        "website_visits": visits,
        "page_views": page_views,
        "time_on_site_seconds": time_on_site,
        "last_page_viewed": last_page,
        "form_abandoned": form_abandoned,
        "notes": notes,
    })
    result = get_manager(db_path).capture_lead(event)
    lead = result.lead

    if not result.is_new:
        console.print(f"[yellow]Merged into existing lead #{lead.id} ({lead.display_name})[/yellow]")
        return

    score = result.score
    console.print(Panel.fit(
        f"[green]✓ Lead #{lead.id} captured[/green]\n\n"
        f"[bold]Quality:[/bold] {score.quality}/100\n"
        f"[bold]Urgency:[/bold] {score.urgency}/100\n"
        f"[bold]Probability:[/bold] {score.probability:.0%}\n"
        f"[bold]Status:[/bold] {_status(score.status)}\n\n"
        f"{score.recommendation}\n"
        f"[dim]Next: {score.suggested_action}[/dim]",
        title=lead.display_name,
    ))


@cli.command()
@click.argument("lead_id", type=int)
@click.option("--force", is_flag=True, help="Recalculate even if scores are fresh")
@db_option
@handle_errors
def score(lead_id: int, force: bool, db_path: Optional[str]):
    """Score a single lead."""
    outcome = get_manager(db_path).score_lead(lead_id, force_recalculate=force)

    lines = [
        f"[bold]Quality:[/bold] {outcome.quality}/100",
        f"[bold]Urgency:[/bold] {outcome.urgency}/100",
        f"[bold]Probability:[/bold] {outcome.probability:.1%}",
        f"[bold]Priority rank:[/bold] #{outcome.priority_rank}",
        f"[bold]Status:[/bold] {_status(outcome.status)}",
        "",
        "[bold]Factors:[/bold]",
    ]
    lines.extend(f"  {name.replace('_', ' ')}: {value}" for name, value in outcome.factors.items())
    if outcome.intent_signals:
        lines.extend(["", "[bold]Intent signals:[/bold]"])
        lines.extend(f"  • {signal}" for signal in outcome.intent_signals)
    lines.extend(["", f"{outcome.recommendation}", f"[dim]Next: {outcome.suggested_action}[/dim]"])
    if outcome.cached:
        lines.append("[dim](cached - use --force to recalculate)[/dim]")

    console.print(Panel("\n".join(lines), title=f"Lead #{lead_id} score"))


@cli.command("bulk-score")
@click.option("--status", type=click.Choice([s.value for s in LeadStatus]), help="Only leads in this status")
@click.option("--max", "max_leads", default=100, help="Maximum leads to score")
@db_option
@handle_errors
def bulk_score(status: Optional[str], max_leads: int, db_path: Optional[str]):
    """Rescore active leads, stalest first."""
    result = get_manager(db_path).bulk_score(
        status=LeadStatus(status) if status else None,
        max_leads=max_leads,
    )
    console.print(Panel.fit(
        f"[green]✓ Scored {result.scored} of {result.total} leads[/green]\n\n"
        f"[bold]Newly classified:[/bold]\n"
        f"  Hot:  [red]{result.status_changes['hot']}[/red]\n"
        f"  Warm: [yellow]{result.status_changes['warm']}[/yellow]\n"
        f"  Cold: [blue]{result.status_changes['cold']}[/blue]\n\n"
        f"[bold]Errors:[/bold] {result.errors}",
        title="Scoring Complete",
    ))


@cli.command()
@click.option("--status", type=click.Choice([s.value for s in LeadStatus]), multiple=True,
              help="Filter by status (repeatable)")
@click.option("--min-quality", type=int, help="Minimum quality score")
@click.option("--staff", help="Assigned staff id")
@click.option("--source", "-s", type=click.Choice([s.value for s in LeadSource]), help="Filter by source")
@click.option("--sort", "sort_by", type=click.Choice(SORTABLE_COLUMNS), default="quality_score")
@click.option("--asc", is_flag=True, help="Sort ascending")
@click.option("--limit", "-n", default=20, help="Number of leads to show")
@db_option
@handle_errors
def leads(status, min_quality, staff, source, sort_by, asc, limit, db_path):
    """List leads."""
    results = get_manager(db_path).list_leads(
        status=[LeadStatus(s) for s in status] or None,
        min_quality=min_quality,
        assigned_staff_id=staff,
        source=LeadSource(source) if source else None,
        sort_by=sort_by,
        descending=not asc,
        limit=limit,
    )

    if not results:
        console.print("[yellow]No leads found matching criteria.[/yellow]")
        return

    table = Table(title=f"Leads ({len(results)})")
    table.add_column("ID", justify="right", style="dim")
    table.add_column("Name", style="cyan", max_width=25)
    table.add_column("Quality", justify="right", style="bold")
    table.add_column("Urgency", justify="right")
    table.add_column("Prob.", justify="right")
    table.add_column("Status", justify="center")
    table.add_column("Source")
    table.add_column("Owner")

    for lead in results:
        table.add_row(
            str(lead.id),
            lead.display_name[:25],
            str(lead.quality_score),
            str(lead.urgency_score),
            f"{lead.conversion_probability:.0%}",
            _status(lead.status),
            lead.source.value,
            lead.assigned_staff_id or "-",
        )

    console.print(table)


@cli.command()
@click.option("--limit", "-n", default=20, help="Number of leads to show")
@click.option("--include-converted", is_flag=True, help="Include converted leads")
@db_option
@handle_errors
def rankings(limit: int, include_converted: bool, db_path: Optional[str]):
    """Show leads in priority order."""
    ranked = get_manager(db_path).get_priority_rankings(limit=limit, include_converted=include_converted)

    if not ranked:
        console.print("[yellow]No active leads.[/yellow]")
        return

    table = Table(title="Priority Rankings")
    table.add_column("Rank", justify="right", style="bold")
    table.add_column("ID", justify="right", style="dim")
    table.add_column("Name", style="cyan", max_width=25)
    table.add_column("Quality", justify="right")
    table.add_column("Prob.", justify="right")
    table.add_column("Status", justify="center")
    table.add_column("Next action", max_width=40)

    for entry in ranked:
        table.add_row(
            str(entry.rank),
            str(entry.lead_id),
            entry.name[:25],
            str(entry.quality_score),
            f"{entry.conversion_probability:.0%}",
            _status(entry.status),
            (entry.next_action or "")[:40],
        )

    console.print(table)


@cli.command()
@click.argument("lead_id", type=int)
@db_option
@handle_errors
def predict(lead_id: int, db_path: Optional[str]):
    """Explain a lead's conversion probability."""
    prediction = get_manager(db_path).get_conversion_prediction(lead_id)

    lines = [
        f"[bold]Probability:[/bold] {prediction.probability:.1%} "
        f"(confidence {prediction.confidence:.0%})",
        f"[bold]Time to convert:[/bold] {prediction.estimated_time_to_convert}",
        f"[bold]Expected value:[/bold] ${prediction.estimated_lifetime_value:,}",
    ]
    if prediction.factors:
        lines.extend(["", "[bold]Factors:[/bold]"])
        for factor in prediction.factors:
            sign = "+" if factor.impact == "positive" else "-"
            lines.append(f"  {sign} {factor.factor} ({factor.weight:.2f}): {factor.description}")
    if prediction.recommended_actions:
        lines.extend(["", "[bold]Recommended actions:[/bold]"])
        lines.extend(f"  • {action}" for action in prediction.recommended_actions)

    console.print(Panel("\n".join(lines), title=f"Lead #{lead_id} prediction"))


# ============================================================================
# ROUTING & STATUS
# ============================================================================

@cli.command()
@click.argument("lead_id", type=int)
@click.option("--staff", "preferred", help="Preferred staff id")
@user_option
@db_option
@handle_errors
def assign(lead_id: int, preferred: Optional[str], user: Optional[str], db_path: Optional[str]):
    """Assign a lead to the best available staff member."""
    result = get_manager(db_path).auto_assign(lead_id, preferred_staff_id=preferred, actor=_actor(user))
    console.print(f"[green]✓ Lead #{lead_id} assigned to {result.staff_name or result.staff_id}[/green]")
    console.print(f"[dim]{result.reason}[/dim]")


@cli.command()
@click.argument("lead_id", type=int)
@click.option("--urgency", type=click.Choice(["high", "medium", "low"]), default="high")
@click.option("--reason", default="", help="Why the lead is being escalated")
@click.option("--staff", "preferred", help="Preferred staff id")
@user_option
@db_option
@handle_errors
def escalate(lead_id, urgency, reason, preferred, user, db_path):
    """Escalate a lead for immediate personal attention."""
    result = get_manager(db_path).escalate_lead(
        lead_id, urgency_level=urgency, reason=reason, preferred_staff_id=preferred, actor=_actor(user)
    )
    console.print(f"[red]▲ Lead #{lead_id} escalated ({urgency})[/red]")
    if result.assignment:
        console.print(f"[green]Assigned to {result.assignment.staff_name or result.assignment.staff_id}[/green]")
    else:
        console.print("[yellow]No staff available - lead is unassigned[/yellow]")


@cli.command("status")
@click.argument("lead_id", type=int)
@click.argument("new_status", type=click.Choice([s.value for s in LeadStatus]))
@click.option("--notes", help="Reason for the change")
@user_option
@db_option
@handle_errors
def set_status(lead_id, new_status, notes, user, db_path):
    """Update lead status."""
    manager = get_manager(db_path)
    old_status = manager.get_lead(lead_id).status.value
    lead = manager.update_status(lead_id, LeadStatus(new_status), actor=_actor(user), notes=notes)
    console.print(f"[green]✓ Lead #{lead_id}: {old_status} → {lead.status.value}[/green]")


@cli.command()
@click.argument("lead_id", type=int)
@click.option("--customer", "customer_id", required=True, help="Patient/customer id")
@click.option("--value", type=float, help="Conversion value")
@click.option("--notes", help="Notes")
@user_option
@db_option
@handle_errors
def convert(lead_id, customer_id, value, notes, user, db_path):
    """Record that a lead became a patient."""
    event = parse_input(ConversionEvent, {
        "lead_id": lead_id,
        "customer_id": customer_id,
        "conversion_value": value,
        "notes": notes,
        "user_id": user,
    })
    lead = get_manager(db_path).track_conversion(event)
    console.print(f"[green]✓ Lead #{lead.id} converted (patient {customer_id})[/green]")


@cli.command()
@click.argument("lead_id", type=int)
@click.option("--limit", "-n", default=50, help="Number of entries")
@db_option
@handle_errors
def activity(lead_id: int, limit: int, db_path: Optional[str]):
    """Show a lead's activity history."""
    entries = get_manager(db_path).get_activities(lead_id, limit)

    if not entries:
        console.print(f"[yellow]No activity for lead #{lead_id}[/yellow]")
        return

    table = Table(title=f"Lead #{lead_id} activity")
    table.add_column("When", style="dim")
    table.add_column("Type", style="cyan")
    table.add_column("By")
    table.add_column("Description", max_width=60)

    for entry in entries:
        table.add_row(
            entry.created_at.strftime("%Y-%m-%d %H:%M") if entry.created_at else "",
            entry.activity_type.value,
            str(entry.actor),
            entry.description,
        )

    console.print(table)


@cli.command("roster-add")
@click.argument("staff_id")
@click.option("--name", default="", help="Display name")
@click.option("--role", type=click.Choice([r.value for r in StaffRole]), default="staff")
@click.option("--inactive", is_flag=True, help="Add as inactive")
@click.option("--email", help="Email address")
@db_option
@handle_errors
def roster_add(staff_id, name, role, inactive, email, db_path):
    """Add or update a staff roster member."""
    entry = parse_input(StaffRosterEntry, {
        "id": staff_id,
        "name": name,
        "role": role,
        "is_active": not inactive,
        "email": email,
    })
    member = get_manager(db_path).register_staff(entry)
    state = "active" if member.is_active else "inactive"
    console.print(f"[green]✓ {member.id} ({member.role.value}, {state}) on roster[/green]")


# ============================================================================
# NURTURING
# ============================================================================

@cli.command()
@click.argument("lead_id", type=int)
@click.option("--sequence", "sequence_id", type=click.Choice(SEQUENCE_CATALOG.ids), help="Force a sequence")
@click.option("--delayed", is_flag=True, help="Use optimal timing for the first step too")
@user_option
@db_option
@handle_errors
def nurture(lead_id, sequence_id, delayed, user, db_path):
    """Start or continue nurturing a lead."""
    result = get_engine(db_path).nurture_lead(
        lead_id, sequence_id=sequence_id, immediate_start=not delayed, actor=_actor(user)
    )
    message = result.message
    console.print(Panel.fit(
        f"[bold]Sequence:[/bold] {result.sequence.name}\n"
        f"[bold]Step:[/bold] {result.step_number} of {result.sequence.length} ({message.channel})\n"
        f"[bold]Send at:[/bold] {message.send_at.strftime('%Y-%m-%d %H:%M %Z')}\n"
        + (f"[bold]Subject:[/bold] {message.subject}\n" if message.subject else "")
        + f"\n{message.body[:400]}",
        title=f"Nurturing lead #{lead_id}",
    ))


@cli.command()
@click.argument("lead_id", type=int)
@click.option("--to-step", "skip_to_step", type=int, help="Skip to this step")
@click.option("--engaged", is_flag=True, help="Count an email open")
@user_option
@db_option
@handle_errors
def advance(lead_id, skip_to_step, engaged, user, db_path):
    """Advance a lead to its next nurture step."""
    result = get_engine(db_path).advance_step(
        lead_id, skip_to_step=skip_to_step, mark_engaged=engaged, actor=_actor(user)
    )
    if result.completed:
        console.print(f"[green]✓ Lead #{lead_id} completed {result.sequence.name} "
                      f"({result.lead.status.value})[/green]")
    else:
        console.print(f"[green]✓ Lead #{lead_id} scheduled for step {result.step_number} at "
                      f"{result.message.send_at.strftime('%Y-%m-%d %H:%M %Z')}[/green]")


@cli.command()
@click.argument("lead_id", type=int)
@click.option("--reason", help="Why nurturing is paused")
@user_option
@db_option
@handle_errors
def pause(lead_id, reason, user, db_path):
    """Pause nurturing for a lead."""
    get_engine(db_path).pause(lead_id, reason=reason, actor=_actor(user))
    console.print(f"[yellow]⏸ Nurturing paused for lead #{lead_id}[/yellow]")


@cli.command()
@click.argument("lead_id", type=int)
@click.option("--restart", is_flag=True, help="Start the sequence over")
@user_option
@db_option
@handle_errors
def resume(lead_id, restart, user, db_path):
    """Resume a paused nurture sequence."""
    result = get_engine(db_path).resume(lead_id, restart=restart, actor=_actor(user))
    console.print(f"[green]▶ Lead #{lead_id} resumed at step {result.step_number} of "
                  f"{result.sequence.name}[/green]")


@cli.command()
@click.argument("lead_id", type=int)
@click.argument("event", type=click.Choice([e.value for e in EngagementType]))
@click.option("--step", "step_number", type=int, help="Step the event relates to")
@click.option("--link", "link_url", help="Clicked URL")
@click.option("--content", "reply_content", help="Reply text")
@db_option
@handle_errors
def engage(lead_id, event, step_number, link_url, reply_content, db_path):
    """Record engagement with a nurture message."""
    payload = parse_input(EngagementEvent, {
        "lead_id": lead_id,
        "event": event,
        "step_number": step_number,
        "link_url": link_url,
        "reply_content": reply_content,
    })
    outcome = get_engine(db_path).record_engagement(payload)

    if not outcome.applied:
        console.print(f"[yellow]Lead #{lead_id} not found; nothing recorded[/yellow]")
        return
    console.print(f"[green]✓ {event} recorded[/green] (engagement {outcome.engagement_score}/100, "
                  f"status {outcome.status.value})")
    if outcome.should_escalate:
        console.print(f"[red]▲ Escalation: {outcome.escalation_reason}[/red]")
    if outcome.assignment:
        console.print(f"[green]Assigned to {outcome.assignment.staff_name or outcome.assignment.staff_id}[/green]")


@cli.command()
@click.argument("lead_id", type=int)
@click.argument("response_type", type=click.Choice([r.value for r in ResponseType]))
@click.option("--content", help="Response text")
@user_option
@db_option
@handle_errors
def respond(lead_id, response_type, content, user, db_path):
    """Record and classify a lead's response."""
    outcome = get_engine(db_path).handle_response(lead_id, response_type, content, actor=_actor(user))
    console.print(Panel.fit(
        f"[bold]Sentiment:[/bold] {outcome.sentiment}\n"
        f"[bold]Urgency:[/bold] {outcome.urgency}\n"
        f"[bold]Status:[/bold] {_status(outcome.status)}\n"
        f"[bold]Needs a person:[/bold] {'yes' if outcome.requires_human_follow_up else 'no'}\n\n"
        f"{outcome.suggested_action}",
        title=f"Lead #{lead_id} response",
    ))


@cli.command()
@click.argument("lead_id", type=int)
@click.option("--channel", type=click.Choice(["email", "sms"]), default="email")
@db_option
@handle_errors
def timing(lead_id: int, channel: str, db_path: Optional[str]):
    """Show the best time to contact a lead."""
    result = get_engine(db_path).optimal_timing(lead_id, channel=channel)
    console.print(Panel.fit(
        f"[bold]Best day:[/bold] {result.best_day}\n"
        f"[bold]Best time:[/bold] {result.best_time} ({result.timezone})\n"
        f"[bold]Next slot (UTC):[/bold] {result.next_send_time.strftime('%Y-%m-%d %H:%M')}\n\n"
        f"[dim]{result.reasoning}[/dim]",
        title=f"Lead #{lead_id} {channel} timing",
    ))


@cli.command()
def sequences():
    """List available nurture sequences."""
    table = Table(title=f"Nurture Sequences (catalog {SEQUENCE_CATALOG.version})")
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Name")
    table.add_column("Steps", justify="right")
    table.add_column("Channels")
    table.add_column("Benchmark", justify="right")
    table.add_column("Audience", max_width=40)

    for info in SEQUENCE_CATALOG.describe():
        table.add_row(
            info["id"],
            info["name"],
            str(info["steps"]),
            ", ".join(info["channels"]),
            f"{info['average_conversion_rate']:.0%}",
            info["target_audience"],
        )

    console.print(table)


@cli.command()
@click.option("--limit", default=100, help="Maximum leads to process")
@db_option
@handle_errors
def due(limit: int, db_path: Optional[str]):
    """Dispatch nurture steps whose send time has passed."""
    dispatcher = OutboxDispatcher()
    result = get_engine(db_path, dispatcher=dispatcher).process_due(limit=limit)

    for message in dispatcher.drain():
        target = message.recipient or "no contact"
        console.print(f"  → #{message.lead_id} {message.sequence_id} step {message.step_number} "
                      f"via {message.channel} to {target}")
    console.print(f"[green]✓ Dispatched {result.dispatched} of {result.processed} due steps[/green]"
                  + (f" [red]({result.errors} errors)[/red]" if result.errors else ""))


# ============================================================================
# ANALYTICS
# ============================================================================

@cli.command("source-stats")
@click.option("--start", type=click.DateTime(formats=["%Y-%m-%d"]), help="Created on or after")
@click.option("--end", type=click.DateTime(formats=["%Y-%m-%d"]), help="Created on or before")
@db_option
@handle_errors
def source_stats(start, end, db_path):
    """Lead volume and conversion by source."""
    report = get_manager(db_path).source_analytics(_utc(start), _utc(end))

    if not report:
        console.print("[yellow]No leads in range.[/yellow]")
        return

    table = Table(title="Source Performance")
    table.add_column("Source", style="cyan")
    table.add_column("Leads", justify="right")
    table.add_column("Converted", justify="right")
    table.add_column("Avg quality", justify="right")
    table.add_column("Avg prob.", justify="right")
    table.add_column("Conv. rate", justify="right", style="bold")

    for row in report:
        table.add_row(
            row.source,
            str(row.total_leads),
            str(row.converted_leads),
            str(row.avg_quality_score),
            f"{row.avg_conversion_probability:.0%}",
            f"{row.conversion_rate:.0%}",
        )

    console.print(table)


@cli.command("nurture-stats")
@click.option("--sequence", "sequence_id", type=click.Choice(SEQUENCE_CATALOG.ids), help="Single sequence")
@click.option("--start", type=click.DateTime(formats=["%Y-%m-%d"]), help="Nurture started on or after")
@click.option("--end", type=click.DateTime(formats=["%Y-%m-%d"]), help="Nurture started on or before")
@db_option
@handle_errors
def nurture_stats(sequence_id, start, end, db_path):
    """Nurture sequence performance against benchmarks."""
    report = get_manager(db_path).nurture_analytics(sequence_id, _utc(start), _utc(end))

    table = Table(title=f"Nurture Performance ({report.total_leads_nurtured} leads, "
                        f"{report.overall_conversion_rate:.0%} converted)")
    table.add_column("Sequence", style="cyan")
    table.add_column("Leads", justify="right")
    table.add_column("Completed", justify="right")
    table.add_column("Converted", justify="right")
    table.add_column("Avg steps", justify="right")
    table.add_column("Conv. rate", justify="right", style="bold")
    table.add_column("vs benchmark", justify="right")

    for seq in report.sequences:
        delta = seq.performance_vs_benchmark
        color = "green" if delta >= 0 else "red"
        table.add_row(
            seq.sequence_name,
            str(seq.total_leads),
            str(seq.completed_leads),
            str(seq.converted_leads),
            f"{seq.avg_steps_completed:.1f}",
            f"{seq.conversion_rate:.0%}",
            f"[{color}]{delta:+.0%}[/{color}]",
        )

    console.print(table)


if __name__ == "__main__":
    cli()
