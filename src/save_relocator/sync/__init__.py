"""Sync engine for save backups and transfers."""

from .backup_rotator import BackupRotator
from .snapshot import Snapshot, compute_changed_files, has_any_change, take_snapshot
from .sync_controller import (
    ActionResult,
    ActionStatus,
    ControllerState,
    PendingNotification,
    SyncController,
    SyncDirection,
)
from .transfer import TransferResult, TransferStatus, transfer

__all__ = [
    "BackupRotator",
    "Snapshot",
    "take_snapshot",
    "compute_changed_files",
    "has_any_change",
    "transfer",
    "TransferResult",
    "TransferStatus",
    "SyncController",
    "SyncDirection",
    "ActionResult",
    "ActionStatus",
    "ControllerState",
    "PendingNotification",
]
