"""CLI for watch-merge tool."""

import logging
import os
from datetime import datetime
from pathlib import Path

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from watch_merge import __version__
from watch_merge.backup import (
    BackupFileError,
    create_backup,
    default_backup_filename,
    read_backup_file,
    write_backup,
)
from watch_merge.config import Config, ConfigError
from watch_merge.dedup import deduplicate
from watch_merge.identity import identity_key
from watch_merge.merge import (
    apply_update,
    find_episode,
    is_significant_progress,
    update_episode,
)
from watch_merge.models import (
    CATEGORIES,
    WATCH_HISTORY,
    MediaType,
    WatchRecord,
    parse_timestamp,
    try_parse_timestamp,
    utc_now_iso,
)
from watch_merge.remote import RecordsClient, RemoteAuthError, RemoteConnectionError
from watch_merge.report import RestoreErrorLog
from watch_merge.restore import restore
from watch_merge.storage import DataStore, RestoreInProgressError
from watch_merge.validator import validate

console = Console()


def get_data_dir() -> Path:
    """Get data directory from env or default."""
    env_dir = os.environ.get("WATCH_MERGE_DATA_DIR")
    if env_dir:
        return Path(env_dir)
    return Path.cwd() / "data"


def load_config(data_dir: Path, required: bool = False) -> Config:
    """Load config, exiting with code 1 on errors."""
    config = Config(data_dir=data_dir)
    try:
        if required:
            config.load()
        else:
            config.load_if_exists()
    except ConfigError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise SystemExit(1)
    return config


def format_seconds(seconds: float) -> str:
    seconds = int(seconds or 0)
    hours, rest = divmod(seconds, 3600)
    minutes, secs = divmod(rest, 60)
    if hours:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"


def print_restore_stats(result) -> None:
    table = Table(title="Restore Summary")
    table.add_column("Category", style="cyan")
    table.add_column("Added", style="green")
    table.add_column("Updated", style="yellow")
    table.add_column("Errors", style="red")

    for category, stats in result.stats.items():
        table.add_row(category, str(stats.added), str(stats.updated), str(stats.errors))

    console.print(table)


@click.group()
@click.version_option(version=__version__)
@click.option("--verbose", is_flag=True, help="Show debug logging")
def cli(verbose):
    """Watch history merge tool - Track progress and restore backups."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


@cli.command()
def status():
    """Show counts for each collection."""
    data_dir = get_data_dir()
    store = DataStore(data_dir=data_dir)
    collections = store.load_collections()
    counts = collections.counts()

    if not any(counts.values()):
        console.print("[yellow]No watch data found.[/yellow]")
        console.print("Run [bold]watch-merge track[/bold] or [bold]watch-merge import[/bold].")
        return

    shows = [r for r in collections.watch_history if r.is_tv]
    episodes = sum(len(r.episodes_watched or []) for r in shows)

    table = Table(title="Watch Data")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green")

    table.add_row("Watch History", str(counts[WATCH_HISTORY]))
    table.add_row("  Movies", str(counts[WATCH_HISTORY] - len(shows)))
    table.add_row("  Shows", str(len(shows)))
    table.add_row("  Episodes Tracked", str(episodes))
    table.add_row("Favorites", str(counts["favorites"]))
    table.add_row("Watchlist", str(counts["watchlist"]))

    last_update = store.get_last_update_time()
    if last_update:
        table.add_row("Last Update", last_update.strftime("%Y-%m-%d %H:%M:%S"))

    console.print(table)


@cli.command("continue")
@click.option("--limit", type=int, default=20, help="Maximum rows to show")
def continue_watching(limit):
    """Show the continue watching list, newest first."""
    store = DataStore(data_dir=get_data_dir())
    records = deduplicate(store.load_category(WATCH_HISTORY))

    if not records:
        console.print("[yellow]Nothing to continue.[/yellow]")
        return

    table = Table(title="Continue Watching")
    table.add_column("ID", style="dim")
    table.add_column("Title", style="cyan")
    table.add_column("Progress")
    table.add_column("Last Watched", style="green")

    for record in records[:limit]:
        progress = f"{format_seconds(record.watch_position)} / {format_seconds(record.duration)}"
        if record.is_tv:
            progress = f"S{record.season or 0}E{record.episode or 0} {progress}"
        when = try_parse_timestamp(record.last_watched_at) or parse_timestamp(record.created_at)
        table.add_row(
            record.id or "",
            record.title or identity_key(record),
            progress,
            when.strftime("%Y-%m-%d %H:%M"),
        )

    console.print(table)


@cli.command()
@click.argument("media_type", type=click.Choice([t.value for t in MediaType]))
@click.argument("media_id", type=int)
@click.option("--position", type=float, required=True, help="Playback position in seconds")
@click.option("--duration", type=float, required=True, help="Runtime in seconds")
@click.option("--season", type=int, help="Season number (tv only)")
@click.option("--episode", type=int, help="Episode number (tv only)")
@click.option("--title", default="", help="Title to display")
@click.option("--source", "preferred_source", help="Playback source key")
@click.option("--at", "created_at", help="Event time (ISO-8601), defaults to now")
@click.option(
    "--replay",
    is_flag=True,
    help="Apply as a replayed event instead of live playback",
)
def track(media_type, media_id, position, duration, season, episode, title,
          preferred_source, created_at, replay):
    """Record playback progress for a movie or episode."""
    if media_type == MediaType.TV.value and (season is None or episode is None):
        raise click.UsageError("--season and --episode are required for tv")

    if created_at:
        try:
            parse_timestamp(created_at)
        except ValueError:
            raise click.BadParameter(f"Invalid timestamp: {created_at}", param_hint="--at")
    else:
        created_at = utc_now_iso()

    data_dir = get_data_dir()
    config = load_config(data_dir)
    store = DataStore(data_dir=data_dir)
    history = store.load_category(WATCH_HISTORY)

    incoming = WatchRecord(
        media_id=media_id,
        media_type=MediaType(media_type),
        created_at=created_at,
        user_id=config.user_id,
        title=title,
        season=season,
        episode=episode,
        watch_position=position,
        duration=duration,
        preferred_source=preferred_source,
    )
    existing = next((r for r in history if identity_key(r) == identity_key(incoming)), None)

    if existing and not replay:
        if incoming.is_tv:
            entry = find_episode(existing, season, episode)
            previous = entry.watch_position if entry else None
        else:
            previous = existing.watch_position
        if previous is not None and not is_significant_progress(
            previous, position, config.min_progress_seconds
        ):
            console.print("[dim]Progress change too small, not saved.[/dim]")
            return

    if existing and incoming.is_tv and not replay:
        record = update_episode(existing, season, episode, position, duration, now=created_at)
        if preferred_source:
            record.preferred_source = preferred_source
        history = [record] + [r for r in history if r is not existing]
    else:
        if not existing:
            incoming.id = f"{media_type}-{media_id}"
        result = apply_update(history, incoming)
        if result.touched is None:
            console.print("[yellow]Update is older than stored progress, ignored.[/yellow]")
            return
        history = result.collection
        record = result.touched

    store.save_category(WATCH_HISTORY, history)

    label = record.title or identity_key(record)
    if record.is_tv:
        label += f" S{record.season}E{record.episode}"
    console.print(f"[green]✓ Saved progress[/green] {label} at {format_seconds(record.watch_position)}")


@cli.command()
@click.option("--output", type=click.Path(path_type=Path), help="Backup file path")
@click.option("--user", "user_id", help="User ID recorded in the backup")
def export(output, user_id):
    """Write a JSON backup of all local collections."""
    data_dir = get_data_dir()
    config = load_config(data_dir)
    store = DataStore(data_dir=data_dir)

    user_id = user_id or config.user_id or "local"
    backup = create_backup(store.load_collections(), user_id)
    path = write_backup(backup, output or Path.cwd() / default_backup_filename(user_id))

    counts = backup["metadata"]["counts"]
    console.print(f"[green]✓ Backup written[/green] ({sum(counts.values())} items)")
    console.print(f"  Saved to: {path}")


@cli.command("validate-backup")
@click.argument("backup_file", type=click.Path(path_type=Path))
def validate_backup(backup_file):
    """Check a backup file without importing it."""
    config = load_config(get_data_dir())

    try:
        dataset = read_backup_file(backup_file, max_size=config.max_backup_bytes)
    except BackupFileError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise SystemExit(1)

    result = validate(dataset)

    for error in result.errors:
        console.print(f"[red]✗[/red] {error}")
    for warning in result.warnings:
        console.print(f"[yellow]![/yellow] {warning}")

    if not result.is_valid:
        console.print("[red]Backup is invalid.[/red]")
        raise SystemExit(1)

    console.print("[green]✓ Backup is valid[/green]")


def run_restore(store: DataStore, dataset: dict, user_id, source: str, dry_run: bool):
    """Restore a dataset into the store under the restore lock."""
    result = restore(dataset, store.load_collections(), user_id=user_id)

    if not result.success:
        console.print(f"[red]Restore failed:[/red] {result.message}")
        raise SystemExit(1)

    if not dry_run:
        store.save_collections(result.collections)

    error_log = RestoreErrorLog(data_dir=store.data_dir)
    error_log.log_all(result.failures, source=source)
    error_log.save()

    print_restore_stats(result)
    if dry_run:
        console.print("[bold]Dry run - no changes were saved[/bold]")
    else:
        console.print(f"\n[green]✓ {result.message}[/green]")
    if error_log.count():
        console.print(f"  Failed items: {error_log.count()} (see {error_log.report_path})")
    return result


@cli.command("import")
@click.argument("backup_file", type=click.Path(path_type=Path))
@click.option("--dry-run", is_flag=True, help="Preview without saving")
@click.option("--force-unlock", is_flag=True, help="Remove a leftover restore lock first")
def import_backup(backup_file, dry_run, force_unlock):
    """Merge a JSON backup into local collections."""
    data_dir = get_data_dir()
    config = load_config(data_dir)
    store = DataStore(data_dir=data_dir)
    if force_unlock:
        store.release_restore_lock()

    try:
        with store.restore_lock():
            dataset = read_backup_file(backup_file, max_size=config.max_backup_bytes)
            run_restore(store, dataset, config.user_id, str(backup_file), dry_run)
    except RestoreInProgressError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise SystemExit(4)
    except BackupFileError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise SystemExit(1)


@cli.command()
@click.argument("category", type=click.Choice(CATEGORIES))
@click.argument("record_id")
@click.option("--remote", is_flag=True, help="Also delete it from the records API")
def remove(category, record_id, remote):
    """Remove a single record by id."""
    data_dir = get_data_dir()
    store = DataStore(data_dir=data_dir)
    if not any(record.id == record_id for record in store.load_category(category)):
        console.print(f"[yellow]No record {record_id} in {category}.[/yellow]")
        raise SystemExit(1)

    if remote:
        delete_remote(load_config(data_dir, required=True), {category: [record_id]})

    store.remove_item(category, record_id)
    console.print(f"[green]✓ Removed {record_id} from {category}[/green]")


@cli.command()
@click.option(
    "--category",
    "categories",
    type=click.Choice(CATEGORIES),
    multiple=True,
    help="Category to clear (default all)",
)
@click.option("--yes", is_flag=True, help="Do not ask for confirmation")
@click.option("--remote", is_flag=True, help="Also delete the records from the records API")
def clear(categories, yes, remote):
    """Delete local collections."""
    names = ", ".join(categories or CATEGORIES)
    where = "local and remote" if remote else "local"
    if not yes and not click.confirm(f"Delete all {where} data for {names}?"):
        console.print("[dim]Clear cancelled.[/dim]")
        return

    data_dir = get_data_dir()
    store = DataStore(data_dir=data_dir)

    if remote:
        ids = {
            category: [record.id for record in store.load_category(category) if record.id]
            for category in categories or CATEGORIES
        }
        deleted = delete_remote(load_config(data_dir, required=True), ids)
        console.print(f"[green]✓ Deleted {deleted} remote record(s)[/green]")

    cleared = store.clear(categories or None)
    console.print(f"[green]✓ Cleared {len(cleared)} collection(s)[/green]")


def delete_remote(config: Config, ids: dict) -> int:
    """Delete records from the records API, exiting on failure."""
    client = remote_client(config)
    deleted = 0
    try:
        for category, record_ids in ids.items():
            deleted += client.delete_records(category, record_ids)
    except RemoteAuthError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise SystemExit(2)
    except RemoteConnectionError as e:
        console.print(f"[red]Remote delete failed:[/red] {e}")
        raise SystemExit(3)
    return deleted


@cli.command("remote-setup")
def remote_setup():
    """Configure the remote records API."""
    data_dir = get_data_dir()
    config = load_config(data_dir)

    if config.remote_configured:
        console.print("[yellow]Records API already configured.[/yellow]")
        if not click.confirm("Reconfigure?"):
            return

    console.print("\n[bold]Records API Setup[/bold]\n")

    base_url = click.prompt("API base URL", type=str).rstrip("/")
    user_id = click.prompt("User ID", type=str)
    access_token = click.prompt("Access token", hide_input=True, type=str)

    console.print("\n[dim]Testing connection...[/dim]")
    client = RecordsClient(base_url=base_url, user_id=user_id, access_token=access_token)
    if not client.test_connection():
        console.print("[red]✗ Connection failed.[/red]")
        raise SystemExit(2)

    config.set_remote_credentials(base_url, user_id, access_token)
    config.save()

    console.print("\n[green]✓ Setup complete![/green]")
    console.print(f"  Config saved to: {config.config_path}")


def remote_client(config: Config) -> RecordsClient:
    if not config.remote_configured:
        console.print("[red]Records API not configured.[/red]")
        console.print("Run [bold]watch-merge remote-setup[/bold] first.")
        raise SystemExit(1)
    return RecordsClient(
        base_url=config.base_url,
        user_id=config.user_id,
        access_token=config.access_token,
    )


@cli.command()
@click.option("--dry-run", is_flag=True, help="Preview without saving")
@click.option("--force-unlock", is_flag=True, help="Remove a leftover restore lock first")
def pull(dry_run, force_unlock):
    """Merge remote records into local collections."""
    data_dir = get_data_dir()
    config = load_config(data_dir, required=True)
    client = remote_client(config)
    store = DataStore(data_dir=data_dir)

    try:
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            console=console,
        ) as progress:
            data = {}
            for category in CATEGORIES:
                task = progress.add_task(f"Fetching {category}...", total=None)
                data[category] = client.fetch_records(category)
                progress.remove_task(task)
    except (RemoteAuthError, RemoteConnectionError) as e:
        console.print(f"[red]Error:[/red] {e}")
        raise SystemExit(2)

    if force_unlock:
        store.release_restore_lock()

    dataset = {
        "metadata": {"createdAt": datetime.now().astimezone().isoformat()},
        "data": data,
    }

    try:
        with store.restore_lock():
            run_restore(store, dataset, config.user_id, config.base_url, dry_run)
    except RestoreInProgressError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise SystemExit(4)


@cli.command()
@click.option(
    "--category",
    "categories",
    type=click.Choice(CATEGORIES),
    multiple=True,
    help="Category to push (default all)",
)
def push(categories):
    """Upsert local records to the remote records API."""
    data_dir = get_data_dir()
    config = load_config(data_dir, required=True)
    client = remote_client(config)
    collections = DataStore(data_dir=data_dir).load_collections()

    pushed = {}
    try:
        for category in categories or CATEGORIES:
            records = collections.get(category)
            for record in records:
                if not record.id:
                    record.id = f"{record.media_type.value}-{record.media_id}"
                client.persist_record(category, record.to_dict())
            pushed[category] = len(records)
    except RemoteAuthError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise SystemExit(2)
    except RemoteConnectionError as e:
        console.print(f"[red]Push failed:[/red] {e}")
        raise SystemExit(3)

    console.print("\n[green]✓ Pushed to records API[/green]")
    for category, count in pushed.items():
        console.print(f"  {category}: {count}")


if __name__ == "__main__":
    cli()
