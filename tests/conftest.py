"""Shared fixtures for the save relocator tests."""

import logging
import os
import sys
from pathlib import Path

import pytest

# Add src to Python path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))


def write_save(folder: Path, name: str, mtime: float, content: str = "data") -> Path:
    """Create a save file with a fixed modification time."""
    path = folder / name
    path.write_text(content, encoding="utf-8")
    os.utime(path, (mtime, mtime))
    return path


@pytest.fixture
def local_dir(tmp_path):
    folder = tmp_path / "local"
    folder.mkdir()
    return folder


@pytest.fixture
def cloud_dir(tmp_path):
    folder = tmp_path / "cloud"
    folder.mkdir()
    return folder


@pytest.fixture
def path_file(tmp_path, local_dir, cloud_dir):
    path = tmp_path / "pathFile.txt"
    path.write_text(f"{local_dir}\n{cloud_dir}\n", encoding="utf-8")
    return path


@pytest.fixture(autouse=True)
def reset_app_logger():
    """Drop handlers installed by setup_logging so streams do not leak between tests."""
    yield
    logger = logging.getLogger("save_relocator")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
