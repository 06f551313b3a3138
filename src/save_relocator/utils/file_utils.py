"""File utility functions."""

import os
import shutil
from datetime import datetime
from pathlib import Path
from typing import List, Optional


class FileHelper:
    """Helper class for save-file operations."""

    @staticmethod
    def normalize_extension(extension: str) -> str:
        """Return the extension with a single leading dot.

        Args:
            extension: Extension such as ``save`` or ``.save``

        Returns:
            Normalized extension
        """
        extension = extension.strip()
        if not extension:
            raise ValueError("Save file extension must not be empty")
        return "." + extension.lstrip(".")

    @staticmethod
    def is_save_file(file_path: Path, extension: str) -> bool:
        """Check if a path is a regular file with the save extension.

        Args:
            file_path: Path to check
            extension: Normalized save file extension

        Returns:
            True if the path is a save file
        """
        suffix = file_path.suffix
        if os.name == "nt":
            suffix, extension = suffix.lower(), extension.lower()
        return suffix == extension and file_path.is_file()

    @staticmethod
    def list_save_files(folder: Path, extension: str) -> List[Path]:
        """List save files directly inside a folder (non-recursive).

        Args:
            folder: Folder to scan
            extension: Normalized save file extension

        Returns:
            Save file paths sorted by name

        Raises:
            OSError: If the folder cannot be enumerated
        """
        return sorted(
            (entry for entry in Path(folder).iterdir()
             if FileHelper.is_save_file(entry, extension)),
            key=lambda p: p.name
        )

    @staticmethod
    def get_modified_time(file_path: Path) -> datetime:
        """Get the last-modified time of a file."""
        return datetime.fromtimestamp(file_path.stat().st_mtime)

    @staticmethod
    def copy_preserving_mtime(source: Path, destination: Path) -> Path:
        """Copy a file, overwriting the destination and keeping the source mtime.

        Args:
            source: File to copy
            destination: Target file path

        Returns:
            Destination path
        """
        return Path(shutil.copy2(source, destination))

    @staticmethod
    def format_file_size(size_bytes: int) -> str:
        """Format file size in human readable format.

        Args:
            size_bytes: Size in bytes

        Returns:
            Formatted size string
        """
        if size_bytes == 0:
            return "0 B"

        size_names = ["B", "KB", "MB", "GB", "TB"]
        i = 0

        while size_bytes >= 1024 and i < len(size_names) - 1:
            size_bytes /= 1024.0
            i += 1

        return f"{size_bytes:.1f} {size_names[i]}"

    @staticmethod
    def format_timestamp(value: Optional[datetime], default: str = "never") -> str:
        """Format a timestamp for display."""
        if value is None:
            return default
        return value.strftime("%Y-%m-%d %H:%M:%S")
