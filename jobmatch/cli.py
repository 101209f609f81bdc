"""Command-line interface for JobMatch."""
import asyncio
import logging
from pathlib import Path
from typing import Optional

import click
import uvicorn
from rich.console import Console
from rich.table import Table

from .config import config, load_profiles, load_records
from .database import Database, ProfilePatch
from .delivery.digest import build_digest
from .domain.opportunity import (
    CareerProfile,
    Opportunity,
    OpportunitySkill,
    OpportunitySource,
    OpportunityStatus,
    utcnow,
)
from .domain.scoring import ScoringEngine
from .domain.skills import extract_skills
from .ingest.client import IngestClient
from .ingest.queue import IngestQueue, QueueConfig
from .ingest.retry import RetryPolicy

console = Console()

DEFAULT_USER = 'local'


def _db(ctx: click.Context) -> Database:
    if ctx.obj.get('db') is None:
        ctx.obj['db'] = Database(ctx.obj['db_url'], echo=config.get_database_config()['echo'])
    return ctx.obj['db']


user_option = click.option(
    '--user', 'user_id', envvar='JOBMATCH_USER_ID', default=DEFAULT_USER, show_default=True,
    help='User the command acts for'
)


@click.group()
@click.option('--db-url', default=None, help='Database URL (defaults to DATABASE_URL)')
@click.pass_context
def cli(ctx: click.Context, db_url: Optional[str]):
    """JobMatch - job listing ingestion and profile matching."""
    logging.basicConfig(
        level=getattr(logging, config.get('LOG_LEVEL', 'INFO').upper(), logging.INFO),
        format='%(asctime)s %(levelname)s %(name)s: %(message)s',
    )
    ctx.ensure_object(dict)
    ctx.obj['db_url'] = db_url or config.get_database_config()['url']


@cli.command('init-db')
@click.pass_context
def init_db(ctx: click.Context):
    """Create the database tables."""
    _db(ctx)
    console.print(f"[green]Database ready at {ctx.obj['db_url']}[/green]")


@cli.command()
@click.option('--host', default=None, help='Host to bind the server to')
@click.option('--port', type=int, default=None, help='Port to bind the server to')
@click.pass_context
def serve(ctx: click.Context, host: Optional[str], port: Optional[int]):
    """Start the HTTP API."""
    from .web.app import create_app

    web_config = config.get_web_config()
    host = host or web_config['host']
    port = port or web_config['port']
    console.print(f"[green]Starting API at http://{host}:{port}[/green]")
    uvicorn.run(create_app(db=_db(ctx)), host=host, port=port)


@cli.group()
def token():
    """Manage personal access tokens."""


@token.command('create')
@click.option('--name', required=True, help='Label for the token')
@user_option
@click.pass_context
def token_create(ctx: click.Context, name: str, user_id: str):
    """Create a token; it is shown only once."""
    from .auth import TokenValidator

    token_id, plain = TokenValidator(_db(ctx)).issue(user_id, name)
    console.print(f"[green]Created token {token_id} for {user_id}[/green]")
    console.print("Store it now, it will not be shown again:")
    click.echo(plain)


@token.command('revoke')
@click.argument('token_id')
@click.pass_context
def token_revoke(ctx: click.Context, token_id: str):
    """Revoke a token by ID."""
    if _db(ctx).revoke_token(token_id):
        console.print(f"[green]Revoked token {token_id}[/green]")
    else:
        console.print(f"[red]No active token {token_id}[/red]")
        ctx.exit(1)


@token.command('list')
@user_option
@click.pass_context
def token_list(ctx: click.Context, user_id: str):
    """List active tokens (IDs are what 'token revoke' takes)."""
    tokens = _db(ctx).list_tokens(user_id)
    if not tokens:
        console.print("[yellow]No active tokens[/yellow]")
        return

    table = Table(title=f"Active Tokens ({user_id})")
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Name", style="green")
    table.add_column("Created", style="blue")
    table.add_column("Last used", style="magenta")
    for item in tokens:
        last_used = item.last_used_at.strftime('%Y-%m-%d') if item.last_used_at else 'never'
        table.add_row(item.id, item.name, item.created_at.strftime('%Y-%m-%d'), last_used)
    console.print(table)


@cli.group()
def profile():
    """Manage career profiles."""


@profile.command('add')
@click.argument('path', type=click.Path(exists=True, dir_okay=False, path_type=Path))
@user_option
@click.pass_context
def profile_add(ctx: click.Context, path: Path, user_id: str):
    """Import career profiles from a YAML file."""
    db = _db(ctx)
    try:
        profiles = load_profiles(path)
    except (ValueError, KeyError) as e:
        console.print(f"[red]Invalid profile file: {str(e)}[/red]")
        ctx.exit(1)
    for item in profiles:
        created = db.create_profile(user_id, item)
        console.print(f"[green]Added profile '{created.title}' ({created.id})[/green]")


@profile.command('list')
@user_option
@click.pass_context
def profile_list(ctx: click.Context, user_id: str):
    """List career profiles."""
    profiles = _db(ctx).get_profiles(user_id)
    if not profiles:
        console.print("[yellow]No profiles found[/yellow]")
        return

    table = Table(title=f"Career Profiles ({user_id})")
    table.add_column("ID", style="cyan")
    table.add_column("Title", style="green")
    table.add_column("Location", style="blue")
    table.add_column("Active", style="magenta")
    table.add_column("Skills", style="yellow")
    for item in profiles:
        skills = ", ".join(
            f"{s.skill_name}{'*' if s.required else ''}:{s.weight}" for s in item.skills
        )
        table.add_row(item.id, item.title, item.location_pref or 'N/A',
                      'yes' if item.is_active else 'no', skills)
    console.print(table)


def _set_active(ctx: click.Context, profile_id: str, user_id: str, active: bool) -> None:
    updated = _db(ctx).update_profile(profile_id, user_id, ProfilePatch.from_values(is_active=active))
    if updated is None:
        console.print(f"[red]Profile {profile_id} not found[/red]")
        ctx.exit(1)
    state = 'active' if active else 'inactive'
    console.print(f"[green]Profile '{updated.title}' is now {state}[/green]")


@profile.command('activate')
@click.argument('profile_id')
@user_option
@click.pass_context
def profile_activate(ctx: click.Context, profile_id: str, user_id: str):
    """Score new listings against a profile again."""
    _set_active(ctx, profile_id, user_id, True)


@profile.command('deactivate')
@click.argument('profile_id')
@user_option
@click.pass_context
def profile_deactivate(ctx: click.Context, profile_id: str, user_id: str):
    """Stop scoring new listings against a profile."""
    _set_active(ctx, profile_id, user_id, False)


@profile.command('delete')
@click.argument('profile_id')
@user_option
@click.pass_context
def profile_delete(ctx: click.Context, profile_id: str, user_id: str):
    """Delete a profile and its scores."""
    if _db(ctx).delete_profile(profile_id, user_id):
        console.print(f"[green]Deleted profile {profile_id}[/green]")
    else:
        console.print(f"[red]Profile {profile_id} not found[/red]")
        ctx.exit(1)


async def _push(queue: IngestQueue, records) -> None:
    for record in records:
        queue.enqueue(record.source, record.page_url, record.collected_at, [record])
    await queue.flush()


@cli.command()
@click.argument('path', type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option('--api-url', default=None, help='Server base URL (defaults to INGEST_API_URL)')
@click.option('--token', 'token_value', default=None, help='Access token (defaults to INGEST_TOKEN)')
def push(path: Path, api_url: Optional[str], token_value: Optional[str]):
    """Send scraped listings from a YAML file to the ingest API."""
    queue_config = config.get_queue_config()
    try:
        records = load_records(path)
    except ValueError as e:
        console.print(f"[red]Invalid records file: {str(e)}[/red]")
        raise click.exceptions.Exit(1)

    client = IngestClient(
        api_url or queue_config['api_url'],
        token_value or queue_config['token'],
        timeout=queue_config['request_timeout'],
    )
    try:
        queue = IngestQueue(
            client,
            config=QueueConfig.from_config(queue_config),
            retry_policy=RetryPolicy.from_config(queue_config),
        )
    except ValueError as e:
        console.print(f"[red]Invalid queue settings: {str(e)}[/red]")
        raise click.exceptions.Exit(1)
    asyncio.run(_push(queue, records))

    status = queue.status()
    table = Table(title="Push Summary")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green")
    for key in ('attempted', 'succeeded', 'failed', 'last_sync_at', 'last_error'):
        table.add_row(key, str(status[key]))
    console.print(table)

    if status['failed']:
        raise click.exceptions.Exit(1)


@cli.command()
@click.option('--profile-id', required=True, help='Profile whose matches to show')
@click.option('--status', type=click.Choice([s.value for s in OpportunityStatus]), default=None)
@click.option('--min-score', type=int, default=None, help='Minimum total score')
@click.option('--limit', type=int, default=20, help='Maximum number of results to show')
@user_option
@click.pass_context
def scores(ctx: click.Context, profile_id: str, status: Optional[str], min_score: Optional[int],
           limit: int, user_id: str):
    """Show scored opportunities for a profile."""
    db = _db(ctx)
    if db.get_profile(profile_id, user_id=user_id) is None:
        console.print(f"[red]Profile {profile_id} not found[/red]")
        ctx.exit(1)

    matches = db.search_scores(profile_id, {'status': status, 'min_score': min_score}, limit=limit)
    if not matches:
        console.print("[yellow]No scored opportunities found[/yellow]")
        return

    table = Table(title="Scored Opportunities")
    table.add_column("Score", style="magenta")
    table.add_column("Rule", style="blue")
    table.add_column("Semantic", style="blue")
    table.add_column("Title", style="cyan")
    table.add_column("Company", style="green")
    table.add_column("Status", style="yellow")
    table.add_column("URL", style="yellow")
    for match in matches:
        table.add_row(
            str(match.total_score), str(match.rule_score), str(match.semantic_score),
            match.opportunity.title, match.opportunity.company, match.status.value,
            match.opportunity.url,
        )
    console.print(table)


@cli.command()
@click.option('--threshold', type=int, default=None, help='Minimum total score')
@click.option('--hours', type=int, default=None, help='Window of scored_at, in hours')
@user_option
@click.pass_context
def digest(ctx: click.Context, threshold: Optional[int], hours: Optional[int], user_id: str):
    """Show new matches above a threshold for each active profile."""
    digest_config = config.get_digest_config()
    result = build_digest(
        _db(ctx),
        user_id,
        threshold=digest_config['threshold'] if threshold is None else threshold,
        window_hours=digest_config['window_hours'] if hours is None else hours,
    )
    if not result['profiles']:
        console.print("[yellow]No new matches[/yellow]")
        return

    for item in result['profiles']:
        table = Table(title=f"New matches for {item['profile_title']}")
        table.add_column("Score", style="magenta")
        table.add_column("Title", style="cyan")
        table.add_column("Company", style="green")
        table.add_column("URL", style="yellow")
        for match in item['opportunities']:
            table.add_row(str(match['total_score']), match['title'], match['company'], match['url'])
        console.print(table)


@cli.command('score-text')
@click.argument('profile_path', type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option('--title', required=True, help='Listing title')
@click.option('--company', default='Unknown', help='Listing company')
@click.option('--location', default=None, help='Listing location')
@click.option('--description', default='', help='Listing description')
def score_text(profile_path: Path, title: str, company: str, location: Optional[str], description: str):
    """Score an ad-hoc listing against the first profile in a YAML file."""
    profiles = load_profiles(profile_path)
    if not profiles:
        console.print("[red]No profiles in file[/red]")
        raise click.exceptions.Exit(1)
    target: CareerProfile = profiles[0]

    opportunity = Opportunity(
        id='adhoc',
        dedupe_key='adhoc',
        source=OpportunitySource.LINKEDIN,
        url='',
        title=title,
        company=company,
        captured_at=utcnow(),
        location=location,
        description_raw=description,
        skills=[OpportunitySkill(s.skill_name, s.confidence) for s in extract_skills(description)],
    )
    result = ScoringEngine().score(target, opportunity)

    console.print(
        f"[bold]Total {result.total_score}[/bold] "
        f"(rule {result.rule_score}, semantic {result.semantic_score}) for '{target.title}'"
    )
    table = Table(title="Reasons")
    table.add_column("Factor", style="cyan")
    table.add_column("Score", style="magenta")
    table.add_column("Detail", style="green")
    for reason in result.reasons:
        table.add_row(reason.factor, str(reason.score), reason.detail)
    console.print(table)


def main():
    """Main entry point for the CLI."""
    cli(obj={})
