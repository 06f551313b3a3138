"""Timestamped zip backups of a save folder with bounded retention."""

import logging
import zipfile
from datetime import datetime
from pathlib import Path
from typing import Callable, List, Optional, Union

from ..utils.file_utils import FileHelper
from .snapshot import DEFAULT_EXTENSION

logger = logging.getLogger(__name__)

BACKUP_DIR_NAME = "Backup"
ARCHIVE_PREFIX = "SaveBackup_"
ARCHIVE_SUFFIX = ".zip"
TIMESTAMP_FORMAT = "%Y%m%d_%H%M%S"
DEFAULT_MAX_BACKUPS = 5


class BackupRotator:
    """Create save archives and keep only the newest ``max_backups`` of them."""

    def __init__(self, max_backups: int = DEFAULT_MAX_BACKUPS,
                 extension: str = DEFAULT_EXTENSION,
                 clock: Callable[[], datetime] = datetime.now):
        """Initialize backup rotator.

        Args:
            max_backups: Number of archives to retain per folder
            extension: Save file extension to archive
            clock: Source of the archive timestamp
        """
        if max_backups < 1:
            raise ValueError("max_backups must be at least 1")
        self.max_backups = max_backups
        self.extension = extension
        self._clock = clock

    @staticmethod
    def backup_dir_for(folder: Union[str, Path]) -> Path:
        return Path(folder) / BACKUP_DIR_NAME

    def create_backup(self, folder: Union[str, Path]) -> Optional[Path]:
        """Archive every save file in ``folder`` and evict old archives.

        Backups are a safety net: failures are logged and ``None`` is
        returned instead of raising.

        Args:
            folder: Save folder to back up

        Returns:
            Path of the new archive, or None if it could not be created
        """
        folder = Path(folder)
        backup_dir = self.backup_dir_for(folder)
        archive_path = None
        created = False

        try:
            # The save folder itself must already exist
            backup_dir.mkdir(exist_ok=True)
            archive_path = self._next_archive_path(backup_dir)
            save_files = FileHelper.list_save_files(folder, self.extension)

            with zipfile.ZipFile(archive_path, 'x', compression=zipfile.ZIP_DEFLATED) as zipf:
                created = True
                for save_file in save_files:
                    zipf.write(save_file, arcname=save_file.name)

            logger.info(f"Backup created: {archive_path} ({len(save_files)} file(s))")
        except (OSError, zipfile.BadZipFile, zipfile.LargeZipFile) as e:
            logger.error(f"Error creating backup in '{folder}': {e}")
            if created:
                self._discard_partial(archive_path)
            return None

        self.evict_oldest(backup_dir)
        return archive_path

    def evict_oldest(self, backup_dir: Union[str, Path],
                     max_backups: Optional[int] = None) -> List[Path]:
        """Delete archives beyond the ``max_backups`` newest.

        Args:
            backup_dir: Folder holding the archives
            max_backups: Retention count, defaults to the rotator's

        Returns:
            Paths of the deleted archives
        """
        keep = self.max_backups if max_backups is None else max_backups
        deleted: List[Path] = []

        try:
            archives = self._sorted_archives(Path(backup_dir))
        except OSError as e:
            logger.error(f"Error cleaning up old backups in '{backup_dir}': {e}")
            return deleted

        if len(archives) <= keep:
            logger.debug(f"Found {len(archives)} backup(s) (<= limit {keep})")
            return deleted

        for old_archive in archives[keep:]:
            try:
                old_archive.unlink()
                deleted.append(old_archive)
                logger.info(f"Deleted old backup: {old_archive.name}")
            except OSError as e:
                logger.error(f"Error deleting old backup {old_archive.name}: {e}")

        return deleted

    def list_backups(self, folder: Union[str, Path]) -> List[Path]:
        """List archives of a save folder, newest first."""
        backup_dir = self.backup_dir_for(folder)
        if not backup_dir.is_dir():
            return []
        try:
            return self._sorted_archives(backup_dir)
        except OSError as e:
            logger.error(f"Error listing backups in '{backup_dir}': {e}")
            return []

    def _next_archive_path(self, backup_dir: Path) -> Path:
        stamp = self._clock().strftime(TIMESTAMP_FORMAT)
        candidate = backup_dir / f"{ARCHIVE_PREFIX}{stamp}{ARCHIVE_SUFFIX}"
        counter = 1
        while candidate.exists():
            # Several backups within one second
            candidate = backup_dir / f"{ARCHIVE_PREFIX}{stamp}_{counter:02d}{ARCHIVE_SUFFIX}"
            counter += 1
        return candidate

    @staticmethod
    def _sorted_archives(backup_dir: Path) -> List[Path]:
        # Archives are never rewritten, so mtime is their creation time
        archives = [
            p for p in backup_dir.iterdir()
            if p.is_file() and p.name.startswith(ARCHIVE_PREFIX) and p.suffix == ARCHIVE_SUFFIX
        ]
        return sorted(archives, key=_archive_order, reverse=True)

    @staticmethod
    def _discard_partial(archive_path: Path) -> None:
        try:
            archive_path.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Could not remove incomplete backup {archive_path}: {e}")


def _archive_order(archive: Path):
    # SaveBackup_<date>_<time>[_<counter>]; the counter compares numerically
    parts = archive.stem[len(ARCHIVE_PREFIX):].split("_")
    counter = int(parts[2]) if len(parts) > 2 and parts[2].isdigit() else 0
    return archive.stat().st_mtime, "_".join(parts[:2]), counter, archive.name
