"""Directional copy of changed save files between two folders."""

import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, List, Union

from ..utils.file_utils import FileHelper
from .snapshot import DEFAULT_EXTENSION, compute_changed_files

logger = logging.getLogger(__name__)


class TransferStatus(str, Enum):
    """Outcome of a transfer batch."""
    NO_CHANGES = "no_changes"
    COMPLETED = "completed"
    COMPLETED_WITH_ERRORS = "completed_with_errors"
    FAILED = "failed"


@dataclass
class TransferResult:
    """Per-batch record of what was copied and what failed."""
    source: Path
    destination: Path
    changed: List[str] = field(default_factory=list)
    copied: List[str] = field(default_factory=list)
    failed: Dict[str, str] = field(default_factory=dict)  # file name -> error

    @property
    def status(self) -> TransferStatus:
        if not self.changed:
            return TransferStatus.NO_CHANGES
        if not self.failed:
            return TransferStatus.COMPLETED
        if self.copied:
            return TransferStatus.COMPLETED_WITH_ERRORS
        return TransferStatus.FAILED

    @property
    def succeeded(self) -> bool:
        return self.status != TransferStatus.FAILED

    def summary(self) -> str:
        if self.status == TransferStatus.NO_CHANGES:
            return "No changed save files"
        text = f"Copied {len(self.copied)} of {len(self.changed)} changed save file(s)"
        if self.failed:
            text += f", {len(self.failed)} failed"
        return text


def transfer(source: Union[str, Path], destination: Union[str, Path],
             extension: str = DEFAULT_EXTENSION) -> TransferResult:
    """Copy save files that are newer in ``source`` over to ``destination``.

    Copies keep the source modification time, so running the same
    transfer twice copies nothing the second time. A failed copy is logged
    and skipped without aborting the rest of the batch.

    Args:
        source: Folder to copy from
        destination: Folder to copy into
        extension: Save file extension

    Returns:
        TransferResult describing the batch
    """
    source = Path(source)
    destination = Path(destination)
    result = TransferResult(source=source, destination=destination)

    changed_files = compute_changed_files(source, destination, extension)
    result.changed = [p.name for p in changed_files]

    if not changed_files:
        logger.info(f"No changed {extension} files to copy from '{source}' to '{destination}'")
        return result

    logger.info(f"Copying {len(changed_files)} changed file(s) from '{source}' to '{destination}'...")

    for file_path in changed_files:
        try:
            FileHelper.copy_preserving_mtime(file_path, destination / file_path.name)
            result.copied.append(file_path.name)
            logger.info(f"Copied '{file_path.name}' to '{destination}'")
        except OSError as e:
            result.failed[file_path.name] = str(e)
            logger.error(f"Error copying '{file_path.name}': {e}")

    if result.failed:
        logger.warning(f"Transfer to '{destination}' finished with {len(result.failed)} failure(s)")

    return result
