"""Sync controller orchestrating monitoring, backups and transfers."""

import dataclasses
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from ..config.settings import RelocatorConfig
from ..monitor.process_monitor import ProcessMonitor, ProcessWatch
from ..utils.logging import TimedOperation
from .backup_rotator import BackupRotator
from .snapshot import (
    Snapshot,
    compute_changed_files,
    has_any_change,
    scan_save_files,
    take_snapshot,
)
from .transfer import TransferResult, TransferStatus, transfer

logger = logging.getLogger(__name__)

GAME_RUNNING_MESSAGE = "Game is currently running. Please close the game before transferring files."


class ControllerState(str, Enum):
    """States of the sync controller."""
    IDLE = "idle"
    MONITORING = "monitoring"
    TRANSFER_IN_FLIGHT = "transfer_in_flight"


class MonitorState(str, Enum):
    """Whether the watched game is believed to be running."""
    NOT_RUNNING = "game_not_running"
    RUNNING = "game_running"


class PendingNotification(str, Enum):
    """Prompt the user should be shown next."""
    NONE = "none"
    CLOUD_NEWER_AT_STARTUP = "cloud_newer_at_startup"
    LOCAL_CHANGED_AFTER_GAME = "local_changed_after_game"


class SyncDirection(str, Enum):
    """Direction of a user-invoked transfer."""
    UPLOAD = "upload"  # local -> cloud
    DOWNLOAD = "download"  # cloud -> local


class ActionStatus(str, Enum):
    """Outcome of a backup/upload or download/restore request."""
    COMPLETED = "completed"
    COMPLETED_WITH_ERRORS = "completed_with_errors"
    FAILED = "failed"
    BLOCKED_GAME_RUNNING = "blocked_game_running"
    BUSY = "busy"


@dataclass
class SyncSession:
    """Mutable session state owned by the controller."""
    state: ControllerState = ControllerState.IDLE
    last_sync_time: Optional[datetime] = None
    pre_launch_snapshot: Optional[Snapshot] = None
    pending_notification: PendingNotification = PendingNotification.NONE
    polling_enabled: bool = True

    @property
    def monitor_state(self) -> MonitorState:
        if self.state == ControllerState.MONITORING:
            return MonitorState.RUNNING
        return MonitorState.NOT_RUNNING


@dataclass
class ActionResult:
    """Result of a user-invoked transfer, reported to the presentation layer."""
    direction: SyncDirection
    status: ActionStatus
    message: str
    backup_path: Optional[Path] = None
    transfer: Optional[TransferResult] = None
    finished_at: datetime = field(default_factory=datetime.now)

    @property
    def succeeded(self) -> bool:
        return self.status in (ActionStatus.COMPLETED, ActionStatus.COMPLETED_WITH_ERRORS)

    @property
    def blocked(self) -> bool:
        return self.status in (ActionStatus.BLOCKED_GAME_RUNNING, ActionStatus.BUSY)


_ACTION_LABELS = {
    SyncDirection.UPLOAD: "Backup & Upload",
    SyncDirection.DOWNLOAD: "Download & Restore",
}

_TRANSFER_TO_ACTION = {
    TransferStatus.NO_CHANGES: ActionStatus.COMPLETED,
    TransferStatus.COMPLETED: ActionStatus.COMPLETED,
    TransferStatus.COMPLETED_WITH_ERRORS: ActionStatus.COMPLETED_WITH_ERRORS,
    TransferStatus.FAILED: ActionStatus.FAILED,
}


class SyncController:
    """Decide when saves may be transferred and when the user should be asked.

    All session mutations go through one re-entrant lock: the polling
    tick, process exit callbacks and user actions never change the session
    concurrently. Backup and copy I/O runs with the lock released while
    the session is marked ``transfer_in_flight``.
    """

    def __init__(self, config: RelocatorConfig,
                 monitor: Optional[ProcessMonitor] = None,
                 rotator: Optional[BackupRotator] = None,
                 notifier: Optional[Callable[[PendingNotification], None]] = None):
        """Initialize sync controller.

        Args:
            config: Relocator configuration
            monitor: Process monitor, built from the config if omitted
            rotator: Backup rotator, built from the config if omitted
            notifier: Called with each newly raised notification
        """
        self.config = config
        self.monitor = monitor if monitor is not None else ProcessMonitor(config.process_name)
        self.rotator = rotator if rotator is not None else BackupRotator(
            max_backups=config.max_backups,
            extension=config.save_extension
        )
        self.notifier = notifier

        self._lock = threading.RLock()
        self._session = SyncSession()
        self._watch: Optional[ProcessWatch] = None
        self._startup_checked = False

        self._stop_event = threading.Event()
        self._poll_thread: Optional[threading.Thread] = None

    # Session access

    @property
    def session(self) -> SyncSession:
        """Copy of the current session."""
        with self._lock:
            return dataclasses.replace(self._session)

    @property
    def state(self) -> ControllerState:
        with self._lock:
            return self._session.state

    @property
    def pending_notification(self) -> PendingNotification:
        with self._lock:
            return self._session.pending_notification

    # Startup

    def startup_check(self) -> PendingNotification:
        """Check once whether the cloud folder holds newer saves than the local one."""
        with self._lock:
            if self._startup_checked:
                logger.debug("Startup check already performed")
                return self._session.pending_notification
            self._startup_checked = True

            logger.info("Checking if cloud saves are newer than local at startup")
            changed = compute_changed_files(
                self.config.cloud_path, self.config.local_path, self.config.save_extension
            )
            if not changed:
                logger.info("Local saves are up to date with the cloud")
                return self._session.pending_notification

            logger.info(f"Cloud is newer than local for {len(changed)} save(s): "
                        f"{', '.join(p.name for p in changed)}")
            self._session.pending_notification = PendingNotification.CLOUD_NEWER_AT_STARTUP

        self._notify(PendingNotification.CLOUD_NEWER_AT_STARTUP)
        return PendingNotification.CLOUD_NEWER_AT_STARTUP

    # Process monitoring

    def poll(self) -> None:
        """Run one polling tick looking for the game process to start."""
        with self._lock:
            if not self._session.polling_enabled:
                return
            if self._session.state != ControllerState.IDLE:
                return
            if not self.monitor.enabled:
                return

            process = self.monitor.poll()
            if process is None:
                return

            self._session.pre_launch_snapshot = take_snapshot(
                self.config.local_path, self.config.save_extension
            )
            self._session.state = ControllerState.MONITORING
            self._watch = self.monitor.watch(process, self._on_game_exit)
            logger.info(f"Detected '{self.monitor.process_name}' started (pid {process.pid}). "
                        f"Captured {len(self._session.pre_launch_snapshot)} local save timestamp(s)")

    def _on_game_exit(self, watch: ProcessWatch) -> None:
        notification = None
        with self._lock:
            if watch is not self._watch:
                logger.debug(f"Ignoring exit of unwatched process {watch.pid}")
                return
            self._watch = None

            logger.info(f"Detected '{self.monitor.process_name}' has exited")
            pre = self._session.pre_launch_snapshot or Snapshot(folder=self.config.local_path)
            post = take_snapshot(self.config.local_path, self.config.save_extension)
            self._session.pre_launch_snapshot = None
            self._session.state = ControllerState.IDLE

            if has_any_change(pre, post):
                logger.info("Local save files changed after game exit")
                self._session.pending_notification = PendingNotification.LOCAL_CHANGED_AFTER_GAME
                notification = PendingNotification.LOCAL_CHANGED_AFTER_GAME
            else:
                logger.info("No local save changes detected after game exit")

        if notification is not None:
            self._notify(notification)

    def pause_polling(self) -> None:
        with self._lock:
            self._session.polling_enabled = False
        logger.info("Polling paused")

    def resume_polling(self) -> None:
        with self._lock:
            self._session.polling_enabled = True
        logger.info("Polling resumed")

    def toggle_polling(self) -> bool:
        """Flip polling on or off and return the new setting."""
        with self._lock:
            enabled = not self._session.polling_enabled
        if enabled:
            self.resume_polling()
        else:
            self.pause_polling()
        return enabled

    # User actions

    def backup_and_upload(self) -> ActionResult:
        """Back up local saves, then copy newer local saves to the cloud."""
        return self._run_action(SyncDirection.UPLOAD)

    def download_and_restore(self) -> ActionResult:
        """Back up local saves, then copy newer cloud saves to the local folder."""
        return self._run_action(SyncDirection.DOWNLOAD)

    def acknowledge_notification(self, accept: bool) -> Optional[ActionResult]:
        """Clear the pending notification and run its action if accepted.

        Args:
            accept: Whether the user accepted the prompt

        Returns:
            Result of the triggered action, or None if nothing ran
        """
        with self._lock:
            pending = self._session.pending_notification
            self._session.pending_notification = PendingNotification.NONE

        if pending == PendingNotification.NONE:
            logger.debug("Notification acknowledged but none was pending")
            return None

        if not accept:
            logger.info(f"User dismissed '{pending.value}' prompt")
            return None

        logger.info(f"User accepted '{pending.value}' prompt")
        if pending == PendingNotification.CLOUD_NEWER_AT_STARTUP:
            return self.download_and_restore()
        return self.backup_and_upload()

    def _run_action(self, direction: SyncDirection) -> ActionResult:
        label = _ACTION_LABELS[direction]
        logger.info(f"Starting {label} procedure")

        with self._lock:
            if self._session.state == ControllerState.MONITORING:
                logger.warning(f"Attempted {label} while game is running; blocking")
                return ActionResult(direction, ActionStatus.BLOCKED_GAME_RUNNING, GAME_RUNNING_MESSAGE)
            if self._session.state == ControllerState.TRANSFER_IN_FLIGHT:
                logger.warning(f"Attempted {label} while another transfer is in flight")
                return ActionResult(direction, ActionStatus.BUSY, "Another transfer is already in progress.")
            self._session.state = ControllerState.TRANSFER_IN_FLIGHT

        result = None
        try:
            result = self._perform_transfer(direction, label)
        except Exception as e:
            logger.error(f"Exception in {label}: {e}")
            result = ActionResult(direction, ActionStatus.FAILED, f"{label} failed: {e}")
        finally:
            with self._lock:
                if result is not None and result.succeeded:
                    self._session.last_sync_time = result.finished_at
                self._session.state = ControllerState.IDLE

        log = logger.info if result.succeeded else logger.error
        log(f"{label} finished: {result.status.value} - {result.message}")
        return result

    def _perform_transfer(self, direction: SyncDirection, label: str) -> ActionResult:
        if direction == SyncDirection.UPLOAD:
            source, destination = self.config.local_path, self.config.cloud_path
        else:
            source, destination = self.config.cloud_path, self.config.local_path

        with TimedOperation(logger, label):
            # Local saves are always archived first, whichever way the copy goes
            backup_path = self.rotator.create_backup(self.config.local_path)
            if backup_path is None:
                logger.error("Backup of local saves failed; continuing with the transfer")

            transfer_result = transfer(source, destination, self.config.save_extension)

        message = transfer_result.summary()
        if backup_path is None:
            message += " (local backup could not be created)"

        return ActionResult(
            direction=direction,
            status=_TRANSFER_TO_ACTION[transfer_result.status],
            message=message,
            backup_path=backup_path,
            transfer=transfer_result,
        )

    # Status

    def are_saves_synced(self) -> bool:
        """True when both folders hold the same saves with equal modification times."""
        extension = self.config.save_extension
        try:
            local = scan_save_files(self.config.local_path, extension)
            cloud = scan_save_files(self.config.cloud_path, extension)
        except OSError as e:
            logger.warning(f"Could not compare save folders: {e}")
            return False

        def by_name(save_files):
            return {sf.name: sf.modified_time for sf in save_files}

        return by_name(local) == by_name(cloud)

    def status(self) -> Dict[str, Any]:
        """Summarize the session for display."""
        session = self.session
        if not self.monitor.enabled:
            game_status = "No Game Monitoring"
        elif session.monitor_state == MonitorState.RUNNING:
            game_status = "Game Running"
        else:
            game_status = "Game Not Running"

        return {
            'state': session.state.value,
            'game_status': game_status,
            'last_sync_time': session.last_sync_time,
            'saves_synced': self.are_saves_synced(),
            'polling_enabled': session.polling_enabled,
            'pending_notification': session.pending_notification.value,
            'process_name': self.monitor.process_name,
        }

    # Scheduler

    @property
    def is_running(self) -> bool:
        return self._poll_thread is not None and self._poll_thread.is_alive()

    def start(self) -> None:
        """Start the background polling tick."""
        if self.is_running:
            return
        self._stop_event.clear()
        self._poll_thread = threading.Thread(target=self._poll_loop, name="save-relocator-poll", daemon=True)
        self._poll_thread.start()
        logger.info(f"Polling for '{self.monitor.process_name or '(disabled)'}' "
                    f"every {self.config.poll_interval:g}s")

    def stop(self, timeout: Optional[float] = None) -> None:
        """Stop polling and drop any live process subscription."""
        self._stop_event.set()
        if self._poll_thread is not None:
            self._poll_thread.join(timeout)
            self._poll_thread = None

        with self._lock:
            if self._watch is not None:
                self._watch.cancel()
                self._watch = None
            if self._session.state == ControllerState.MONITORING:
                self._session.state = ControllerState.IDLE
                self._session.pre_launch_snapshot = None
        logger.info("Sync controller stopped")

    def _poll_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                self.poll()
            except Exception:
                logger.exception("Exception in poll for game process")
            self._stop_event.wait(self.config.poll_interval)

    def _notify(self, notification: PendingNotification) -> None:
        if self.notifier is None:
            return
        try:
            self.notifier(notification)
        except Exception:
            logger.exception(f"Notifier failed for '{notification.value}'")
