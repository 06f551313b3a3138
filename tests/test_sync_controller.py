"""Tests for the sync controller state machine."""

import shutil
import threading
import time
from types import SimpleNamespace

import pytest

from conftest import write_save
from save_relocator.config.settings import RelocatorConfig
from save_relocator.sync.backup_rotator import BackupRotator
from save_relocator.sync.sync_controller import (
    ActionStatus,
    ControllerState,
    PendingNotification,
    SyncController,
    SyncDirection,
)


class FakeWatch:
    def __init__(self, process, on_exit):
        self.process = process
        self.pid = process.pid
        self.on_exit = on_exit
        self.cancelled = False

    def cancel(self):
        self.cancelled = True

    def exit(self):
        self.on_exit(self)


class FakeMonitor:
    """Process monitor whose game can be started and stopped by the test."""

    def __init__(self, process_name="Game"):
        self.process_name = process_name
        self.running = False
        self.watches = []

    @property
    def enabled(self):
        return bool(self.process_name)

    def poll(self):
        return SimpleNamespace(pid=4242) if self.running else None

    def watch(self, process, on_exit):
        watch = FakeWatch(process, on_exit)
        self.watches.append(watch)
        return watch

    def exit_game(self):
        self.running = False
        self.watches[-1].exit()


@pytest.fixture
def config(local_dir, cloud_dir, tmp_path):
    return RelocatorConfig(
        local_path=local_dir,
        cloud_path=cloud_dir,
        process_name="Game",
        poll_interval=0.05,
        log_file=tmp_path / "log.txt",
    )


@pytest.fixture
def monitor():
    return FakeMonitor()


@pytest.fixture
def notifications():
    return []


@pytest.fixture
def controller(config, monitor, notifications):
    ctrl = SyncController(config, monitor=monitor, notifier=notifications.append)
    yield ctrl
    ctrl.stop(timeout=2)


def _start_game(controller, monitor):
    monitor.running = True
    controller.poll()
    assert controller.state == ControllerState.MONITORING


class TestStartupCheck:
    def test_local_ahead_does_not_prompt(self, controller, local_dir, notifications):
        write_save(local_dir, "slot1.save", 100)

        assert controller.startup_check() == PendingNotification.NONE
        assert notifications == []

    def test_cloud_newer_prompts(self, controller, local_dir, cloud_dir, notifications):
        write_save(local_dir, "slot1.save", 100)
        write_save(cloud_dir, "slot1.save", 200)

        assert controller.startup_check() == PendingNotification.CLOUD_NEWER_AT_STARTUP
        assert controller.pending_notification == PendingNotification.CLOUD_NEWER_AT_STARTUP
        assert notifications == [PendingNotification.CLOUD_NEWER_AT_STARTUP]

    def test_runs_only_once(self, controller, cloud_dir, notifications):
        write_save(cloud_dir, "slot1.save", 200)

        controller.startup_check()
        controller.acknowledge_notification(False)
        controller.startup_check()

        assert notifications == [PendingNotification.CLOUD_NEWER_AT_STARTUP]
        assert controller.pending_notification == PendingNotification.NONE


class TestMonitoring:
    def test_poll_without_game_stays_idle(self, controller, monitor):
        controller.poll()

        assert controller.state == ControllerState.IDLE
        assert monitor.watches == []

    def test_game_start_records_snapshot(self, controller, monitor, local_dir):
        write_save(local_dir, "a.save", 1000)

        _start_game(controller, monitor)

        session = controller.session
        assert session.pre_launch_snapshot is not None
        assert "a.save" in session.pre_launch_snapshot
        assert session.monitor_state.value == "game_running"

    def test_poll_while_monitoring_does_not_resubscribe(self, controller, monitor):
        _start_game(controller, monitor)
        controller.poll()

        assert len(monitor.watches) == 1

    def test_exit_with_changes_prompts_upload(self, controller, monitor, local_dir, notifications):
        write_save(local_dir, "a.save", 1000)
        _start_game(controller, monitor)

        write_save(local_dir, "a.save", 2000)
        write_save(local_dir, "b.save", 3000)
        monitor.exit_game()

        assert controller.state == ControllerState.IDLE
        assert controller.pending_notification == PendingNotification.LOCAL_CHANGED_AFTER_GAME
        assert notifications == [PendingNotification.LOCAL_CHANGED_AFTER_GAME]
        assert controller.session.pre_launch_snapshot is None

    def test_exit_without_changes_is_quiet(self, controller, monitor, local_dir, notifications):
        write_save(local_dir, "a.save", 1000)
        _start_game(controller, monitor)

        monitor.exit_game()

        assert controller.state == ControllerState.IDLE
        assert controller.pending_notification == PendingNotification.NONE
        assert notifications == []

    def test_deleted_save_is_not_a_change(self, controller, monitor, local_dir):
        write_save(local_dir, "a.save", 1000)
        write_save(local_dir, "b.save", 1000)
        _start_game(controller, monitor)

        (local_dir / "b.save").unlink()
        monitor.exit_game()

        assert controller.pending_notification == PendingNotification.NONE

    def test_stale_watch_is_ignored(self, controller, monitor):
        _start_game(controller, monitor)
        stale = monitor.watches[0]
        monitor.exit_game()
        _start_game(controller, monitor)

        stale.exit()

        assert controller.state == ControllerState.MONITORING

    def test_paused_polling_does_not_detect(self, controller, monitor):
        controller.pause_polling()
        monitor.running = True
        controller.poll()

        assert controller.state == ControllerState.IDLE
        assert controller.toggle_polling() is True
        controller.poll()
        assert controller.state == ControllerState.MONITORING

    def test_disabled_monitor_never_polls(self, config, notifications):
        monitor = FakeMonitor(process_name="")
        monitor.running = True
        ctrl = SyncController(config, monitor=monitor)

        ctrl.poll()

        assert ctrl.state == ControllerState.IDLE

    def test_stop_cancels_subscription(self, controller, monitor):
        _start_game(controller, monitor)

        controller.stop()

        assert monitor.watches[0].cancelled
        assert controller.state == ControllerState.IDLE

    def test_background_polling_detects_game(self, controller, monitor):
        monitor.running = True
        controller.start()

        for _ in range(100):
            if controller.state == ControllerState.MONITORING:
                break
            time.sleep(0.02)

        assert controller.is_running
        assert controller.state == ControllerState.MONITORING


class TestActions:
    def test_upload_backs_up_then_copies(self, controller, local_dir, cloud_dir):
        write_save(local_dir, "slot1.save", 100, "progress")

        result = controller.backup_and_upload()

        assert result.direction == SyncDirection.UPLOAD
        assert result.status == ActionStatus.COMPLETED
        assert result.backup_path.parent == local_dir / "Backup"
        assert (cloud_dir / "slot1.save").read_text() == "progress"
        assert controller.session.last_sync_time == result.finished_at
        assert controller.state == ControllerState.IDLE

    def test_download_restores_and_backs_up_local(self, controller, local_dir, cloud_dir):
        write_save(local_dir, "slot1.save", 100, "old")
        write_save(cloud_dir, "slot1.save", 200, "new")

        result = controller.download_and_restore()

        assert result.succeeded
        assert (local_dir / "slot1.save").read_text() == "new"
        assert len(controller.rotator.list_backups(local_dir)) == 1
        assert controller.rotator.list_backups(cloud_dir) == []

    def test_backup_taken_even_without_changes(self, controller, local_dir):
        result = controller.backup_and_upload()

        assert result.status == ActionStatus.COMPLETED
        assert result.backup_path.exists()
        assert result.transfer.changed == []

    def test_guard_blocks_while_game_running(self, controller, monitor, local_dir, cloud_dir):
        write_save(local_dir, "slot1.save", 100)
        write_save(cloud_dir, "slot2.save", 100)
        _start_game(controller, monitor)

        upload = controller.backup_and_upload()
        download = controller.download_and_restore()

        assert upload.status == ActionStatus.BLOCKED_GAME_RUNNING
        assert download.status == ActionStatus.BLOCKED_GAME_RUNNING
        assert "Game is currently running" in upload.message
        assert controller.session.last_sync_time is None
        assert not (local_dir / "Backup").exists()
        assert not (cloud_dir / "slot1.save").exists()
        assert not (local_dir / "slot2.save").exists()
        assert controller.state == ControllerState.MONITORING

    def test_backup_failure_does_not_block_transfer(self, config, monitor, local_dir, cloud_dir):
        class BrokenRotator(BackupRotator):
            def create_backup(self, folder):
                return None

        ctrl = SyncController(config, monitor=monitor, rotator=BrokenRotator())
        write_save(local_dir, "slot1.save", 100)

        result = ctrl.backup_and_upload()

        assert result.status == ActionStatus.COMPLETED
        assert result.backup_path is None
        assert "backup could not be created" in result.message
        assert (cloud_dir / "slot1.save").exists()

    def test_upload_from_missing_folder_reports_failed_backup(self, controller, local_dir):
        shutil.rmtree(local_dir)

        result = controller.backup_and_upload()

        assert result.backup_path is None
        assert "backup could not be created" in result.message
        assert not local_dir.exists()

    def test_unexpected_error_returns_to_idle(self, config, monitor):
        class ExplodingRotator(BackupRotator):
            def create_backup(self, folder):
                raise RuntimeError("disk on fire")

        ctrl = SyncController(config, monitor=monitor, rotator=ExplodingRotator())

        result = ctrl.backup_and_upload()

        assert result.status == ActionStatus.FAILED
        assert "disk on fire" in result.message
        assert ctrl.state == ControllerState.IDLE
        assert ctrl.session.last_sync_time is None

    def test_concurrent_action_is_busy(self, config, monitor, local_dir):
        entered = threading.Event()
        release = threading.Event()
        results = {}

        class SlowRotator(BackupRotator):
            def create_backup(self, folder):
                entered.set()
                release.wait(5)
                return super().create_backup(folder)

        ctrl = SyncController(config, monitor=monitor, rotator=SlowRotator())
        worker = threading.Thread(target=lambda: results.setdefault('first', ctrl.backup_and_upload()))
        worker.start()
        assert entered.wait(5)

        assert ctrl.state == ControllerState.TRANSFER_IN_FLIGHT
        assert ctrl.download_and_restore().status == ActionStatus.BUSY
        monitor.running = True
        ctrl.poll()
        assert ctrl.state == ControllerState.TRANSFER_IN_FLIGHT

        release.set()
        worker.join(5)
        assert results['first'].succeeded
        assert ctrl.state == ControllerState.IDLE


class TestNotifications:
    def test_accept_cloud_newer_restores(self, controller, local_dir, cloud_dir):
        write_save(cloud_dir, "slot1.save", 200, "cloud")
        controller.startup_check()

        result = controller.acknowledge_notification(True)

        assert result.direction == SyncDirection.DOWNLOAD
        assert (local_dir / "slot1.save").read_text() == "cloud"
        assert controller.pending_notification == PendingNotification.NONE

    def test_accept_local_changed_uploads(self, controller, monitor, local_dir, cloud_dir):
        _start_game(controller, monitor)
        write_save(local_dir, "slot1.save", 500, "fresh")
        monitor.exit_game()

        result = controller.acknowledge_notification(True)

        assert result.direction == SyncDirection.UPLOAD
        assert (cloud_dir / "slot1.save").read_text() == "fresh"

    def test_decline_clears_without_transfer(self, controller, local_dir, cloud_dir):
        write_save(cloud_dir, "slot1.save", 200)
        controller.startup_check()

        assert controller.acknowledge_notification(False) is None
        assert controller.pending_notification == PendingNotification.NONE
        assert not (local_dir / "slot1.save").exists()

    def test_accept_while_game_running_is_blocked(self, controller, monitor, cloud_dir):
        write_save(cloud_dir, "slot1.save", 200)
        controller.startup_check()
        _start_game(controller, monitor)

        result = controller.acknowledge_notification(True)

        assert result.status == ActionStatus.BLOCKED_GAME_RUNNING
        assert controller.pending_notification == PendingNotification.NONE

    def test_nothing_pending(self, controller):
        assert controller.acknowledge_notification(True) is None

    def test_notifier_errors_are_contained(self, config, monitor, cloud_dir):
        def broken(notification):
            raise RuntimeError("tray gone")

        ctrl = SyncController(config, monitor=monitor, notifier=broken)
        write_save(cloud_dir, "slot1.save", 200)

        assert ctrl.startup_check() == PendingNotification.CLOUD_NEWER_AT_STARTUP


class TestStatus:
    def test_status_summary(self, controller, local_dir, cloud_dir):
        write_save(local_dir, "slot1.save", 100)
        write_save(cloud_dir, "slot1.save", 100)

        info = controller.status()

        assert info['game_status'] == "Game Not Running"
        assert info['saves_synced'] is True
        assert info['polling_enabled'] is True
        assert info['last_sync_time'] is None

    def test_saves_out_of_sync(self, controller, local_dir, cloud_dir):
        write_save(local_dir, "slot1.save", 100)
        write_save(cloud_dir, "slot1.save", 101)

        assert controller.are_saves_synced() is False

    def test_missing_folder_is_not_synced(self, controller, local_dir, caplog):
        shutil.rmtree(local_dir)

        assert controller.are_saves_synced() is False
        assert controller.status()['saves_synced'] is False
        assert "Could not compare save folders" in caplog.text

    def test_game_running_status(self, controller, monitor):
        _start_game(controller, monitor)

        assert controller.status()['game_status'] == "Game Running"
