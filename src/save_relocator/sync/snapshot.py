"""Save folder snapshots and modification-time change detection."""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from types import MappingProxyType
from typing import List, Mapping, Union

from ..utils.file_utils import FileHelper

logger = logging.getLogger(__name__)

DEFAULT_EXTENSION = ".save"


@dataclass(frozen=True)
class SaveFile:
    """A single save file in a folder."""
    name: str
    path: Path
    modified_time: datetime


@dataclass(frozen=True, eq=False)
class Snapshot:
    """Point-in-time mapping of save file name to last-modified time."""
    folder: Path
    files: Mapping[str, datetime] = field(default_factory=dict)
    taken_at: datetime = field(default_factory=datetime.now)

    def __post_init__(self):
        # Freeze the mapping so a snapshot cannot drift after capture
        object.__setattr__(self, 'files', MappingProxyType(dict(self.files)))

    def __len__(self) -> int:
        return len(self.files)

    def __contains__(self, name: str) -> bool:
        return name in self.files

    def __eq__(self, other) -> bool:
        if not isinstance(other, Snapshot):
            return NotImplemented
        return dict(self.files) == dict(other.files)

    def get(self, name: str):
        return self.files.get(name)


def scan_save_files(folder: Union[str, Path], extension: str = DEFAULT_EXTENSION) -> List[SaveFile]:
    """Enumerate save files in a folder.

    Raises:
        OSError: If the folder cannot be read
    """
    save_files = []
    for path in FileHelper.list_save_files(Path(folder), extension):
        try:
            modified = FileHelper.get_modified_time(path)
        except FileNotFoundError:
            # Removed between listing and stat
            continue
        save_files.append(SaveFile(name=path.name, path=path.absolute(), modified_time=modified))
    return save_files


def take_snapshot(folder: Union[str, Path], extension: str = DEFAULT_EXTENSION) -> Snapshot:
    """Record the last-modified time of every save file in a folder.

    Enumeration errors are logged and produce an empty snapshot so the
    caller can carry on with a partial picture.

    Args:
        folder: Folder to scan (non-recursive)
        extension: Save file extension

    Returns:
        Snapshot of the folder
    """
    folder = Path(folder)
    logger.debug(f"Taking snapshot of {extension} files in '{folder}'")
    try:
        files = {sf.name: sf.modified_time for sf in scan_save_files(folder, extension)}
    except OSError as e:
        logger.warning(f"Could not snapshot save files in '{folder}': {e}")
        files = {}
    return Snapshot(folder=folder, files=files)


def compute_changed_files(source: Union[str, Path], destination: Union[str, Path],
                          extension: str = DEFAULT_EXTENSION) -> List[Path]:
    """Find save files in ``source`` that are newer than, or missing from, ``destination``.

    Only the source side is considered; files that exist solely in the
    destination are never reported. Equal modification times count as
    unchanged.

    Args:
        source: Folder to copy from
        destination: Folder to compare against
        extension: Save file extension

    Returns:
        Changed source file paths ordered by file name
    """
    source = Path(source)
    destination = Path(destination)

    try:
        source_files = scan_save_files(source, extension)
    except OSError as e:
        logger.warning(f"Could not list save files in '{source}': {e}")
        return []

    changed = []
    for save_file in source_files:
        dest_file = destination / save_file.name
        try:
            dest_modified = FileHelper.get_modified_time(dest_file)
        except FileNotFoundError:
            changed.append(save_file.path)
            continue
        except OSError as e:
            logger.warning(f"Could not stat '{dest_file}', treating as missing: {e}")
            changed.append(save_file.path)
            continue

        if save_file.modified_time > dest_modified:
            changed.append(save_file.path)

    logger.debug(f"{len(changed)} changed save file(s) from '{source}' to '{destination}'")
    return changed


def has_any_change(pre: Snapshot, post: Snapshot) -> bool:
    """Check whether ``post`` holds a save that is new or newer than in ``pre``.

    Files deleted between the two snapshots are not reported.
    """
    for name, modified in post.files.items():
        previous = pre.files.get(name)
        if previous is None or modified > previous:
            return True
    return False
