"""Command-line interface for the save relocator."""

import queue
import sys
from pathlib import Path
from typing import Optional

import click
from rich import print as rprint
from rich.console import Console
from rich.table import Table

from . import __version__
from .config.settings import DEFAULT_PATH_FILE, ConfigurationError, RelocatorConfig, load_config
from .sync.snapshot import compute_changed_files
from .sync.sync_controller import (
    ActionResult,
    ActionStatus,
    PendingNotification,
    SyncController,
    SyncDirection,
)
from .utils.file_utils import FileHelper
from .utils.logging import setup_logging

console = Console()

NOTIFICATION_MESSAGES = {
    PendingNotification.CLOUD_NEWER_AT_STARTUP: (
        "We found newer cloud saves.",
        "Download (restore) them now?",
    ),
    PendingNotification.LOCAL_CHANGED_AFTER_GAME: (
        "Game closed - new local saves found.",
        "Upload them now?",
    ),
}

EXIT_FAILED = 1
EXIT_BLOCKED = 2


@click.group()
@click.version_option(version=__version__)
@click.option('--config', '-c', 'config_path',
              type=click.Path(dir_okay=False, path_type=Path),
              default=DEFAULT_PATH_FILE,
              show_default=True,
              help='Path file (local, cloud, process name) or YAML configuration')
@click.option('--log-level',
              type=click.Choice(['DEBUG', 'INFO', 'WARNING', 'ERROR'], case_sensitive=False),
              help='Override the configured console log level')
@click.pass_context
def cli(ctx, config_path: Path, log_level: Optional[str]):
    """Game Save Relocator

    Keeps a local save folder and a cloud folder in sync, watching the
    game process and backing up saves before every transfer.
    """
    ctx.ensure_object(dict)
    ctx.obj['config_path'] = config_path
    ctx.obj['log_level'] = log_level


def _load_config(ctx) -> RelocatorConfig:
    """Load configuration and logging, exiting on configuration errors."""
    try:
        config = load_config(ctx.obj['config_path'])
    except ConfigurationError as e:
        console.print(f"❌ Configuration error: {e}", style="red bold")
        sys.exit(EXIT_FAILED)

    setup_logging(
        log_level=ctx.obj.get('log_level') or config.log_level,
        log_file=config.log_file,
    )
    return config


def _create_controller(ctx, notifier=None) -> SyncController:
    config = _load_config(ctx)
    return SyncController(config, notifier=notifier)


@cli.command()
@click.option('--no-prompt', is_flag=True,
              help='Report notifications without asking to transfer')
@click.pass_context
def run(ctx, no_prompt: bool):
    """Watch the game and offer to sync saves when needed."""
    notifications: "queue.Queue[PendingNotification]" = queue.Queue()
    controller = _create_controller(ctx, notifier=notifications.put)

    console.print(f"🎮 Watching saves in {controller.config.local_path}", style="green")
    if not controller.monitor.enabled:
        console.print("No game process configured; game detection disabled", style="yellow")

    controller.startup_check()
    controller.start()
    try:
        while True:
            try:
                notification = notifications.get(timeout=1.0)
            except queue.Empty:
                continue
            _handle_notification(controller, notification, prompt=not no_prompt)
    except (KeyboardInterrupt, click.Abort):
        console.print("\nStopping...", style="yellow")
    finally:
        controller.stop(timeout=5.0)


def _handle_notification(controller: SyncController, notification: PendingNotification,
                         prompt: bool) -> Optional[ActionResult]:
    if controller.pending_notification != notification:
        # Already acknowledged or replaced by a newer one
        return None

    headline, question = NOTIFICATION_MESSAGES[notification]
    console.print(f"🔔 {headline}", style="cyan bold")

    accept = prompt and click.confirm(question, default=True)
    result = controller.acknowledge_notification(accept)
    if result is not None:
        _display_action_result(result)
    return result


def _run_action(ctx, upload: bool) -> None:
    controller = _create_controller(ctx)
    try:
        # One tick so a running game blocks the transfer
        controller.poll()
        result = controller.backup_and_upload() if upload else controller.download_and_restore()
    finally:
        controller.stop()

    _display_action_result(result)
    if result.blocked:
        sys.exit(EXIT_BLOCKED)
    if not result.succeeded:
        sys.exit(EXIT_FAILED)


@cli.command()
@click.pass_context
def backup(ctx):
    """Back up local saves and upload them to the cloud folder."""
    _run_action(ctx, upload=True)


@cli.command()
@click.pass_context
def restore(ctx):
    """Back up local saves and restore newer saves from the cloud folder."""
    _run_action(ctx, upload=False)


def _display_action_result(result: ActionResult) -> None:
    """Render an action result."""
    title = "Backup & Upload" if result.direction == SyncDirection.UPLOAD else "Download & Restore"

    if result.status == ActionStatus.BLOCKED_GAME_RUNNING:
        console.print(f"⚠️ {title} blocked: {result.message}", style="yellow bold")
        return
    if result.status == ActionStatus.BUSY:
        console.print(f"⚠️ {title} skipped: {result.message}", style="yellow")
        return

    style = {
        ActionStatus.COMPLETED: "green",
        ActionStatus.COMPLETED_WITH_ERRORS: "yellow",
        ActionStatus.FAILED: "red",
    }[result.status]
    icon = "✅" if result.status == ActionStatus.COMPLETED else ("⚠️" if result.succeeded else "❌")
    console.print(f"{icon} {title} {result.status.value.replace('_', ' ')}: {result.message}",
                  style=f"{style} bold")

    if result.backup_path:
        rprint(f"   • Backup: {result.backup_path}")
    if result.transfer is not None:
        for name in result.transfer.copied:
            rprint(f"   • Copied [green]{name}[/green]")
        for name, error in result.transfer.failed.items():
            rprint(f"   • [red]Failed {name}: {error}[/red]")


@cli.command()
@click.pass_context
def check(ctx):
    """Show which saves differ between the local and cloud folders."""
    config = _load_config(ctx)

    table = Table(title="Save Differences")
    table.add_column("Direction", style="cyan")
    table.add_column("Newer Saves", style="magenta")

    directions = [
        ("cloud → local", config.cloud_path, config.local_path),
        ("local → cloud", config.local_path, config.cloud_path),
    ]
    for label, source, destination in directions:
        changed = compute_changed_files(source, destination, config.save_extension)
        table.add_row(label, ", ".join(p.name for p in changed) or "-")

    console.print(table)


@cli.command()
@click.pass_context
def status(ctx):
    """Show configuration and sync status."""
    controller = _create_controller(ctx)
    try:
        controller.poll()
        info = controller.status()
    finally:
        controller.stop()
    config = controller.config

    table = Table(title="Save Relocator Status")
    table.add_column("Setting", style="cyan")
    table.add_column("Value")

    synced = "[green]Synced[/green]" if info['saves_synced'] else "[yellow]Out of sync[/yellow]"
    table.add_row("Local folder", str(config.local_path))
    table.add_row("Cloud folder", str(config.cloud_path))
    table.add_row("Save extension", config.save_extension)
    table.add_row("Game", info['game_status'])
    table.add_row("Saves", synced)
    table.add_row("Local backups", f"{len(controller.rotator.list_backups(config.local_path))}"
                                   f" / {config.max_backups}")
    table.add_row("Polling interval", f"{config.poll_interval:g}s")

    console.print(table)


@cli.command()
@click.option('--cloud', is_flag=True, help='List backups of the cloud folder instead')
@click.pass_context
def backups(ctx, cloud: bool):
    """List backup archives, newest first."""
    controller = _create_controller(ctx)
    folder = controller.config.cloud_path if cloud else controller.config.local_path
    archives = controller.rotator.list_backups(folder)

    if not archives:
        console.print(f"No backups found in {controller.rotator.backup_dir_for(folder)}", style="yellow")
        return

    table = Table(title=f"Backups of {folder}")
    table.add_column("Archive", style="cyan")
    table.add_column("Created")
    table.add_column("Size", justify="right")

    for archive in archives:
        table.add_row(
            archive.name,
            FileHelper.format_timestamp(FileHelper.get_modified_time(archive)),
            FileHelper.format_file_size(archive.stat().st_size),
        )

    console.print(table)


@cli.command()
@click.option('--output', '-o',
              type=click.Path(dir_okay=False, path_type=Path),
              default=Path('config.yaml'),
              help='Path to save configuration file')
@click.option('--local', 'local_path', prompt='Local save folder',
              type=click.Path(exists=True, file_okay=False, path_type=Path))
@click.option('--cloud', 'cloud_path', prompt='Cloud save folder',
              type=click.Path(exists=True, file_okay=False, path_type=Path))
@click.option('--process', 'process_name', prompt='Game process name (blank to disable)',
              default='', show_default=False)
def init(output: Path, local_path: Path, cloud_path: Path, process_name: str):
    """Initialize a new YAML configuration file."""
    if output.exists():
        if not click.confirm(f"Configuration file {output} already exists. Overwrite?"):
            return

    try:
        config = RelocatorConfig(
            local_path=local_path,
            cloud_path=cloud_path,
            process_name=process_name,
        )
    except ValueError as e:
        console.print(f"❌ Error: {e}", style="red bold")
        sys.exit(EXIT_FAILED)

    config.to_yaml(output)

    console.print(f"✅ Configuration saved to {output}", style="green")
    console.print("\n📝 Next steps:")
    console.print(f"1. Run 'save-relocator -c {output} check' to compare the folders")
    console.print(f"2. Run 'save-relocator -c {output} run' to start watching the game")


if __name__ == '__main__':
    cli()
