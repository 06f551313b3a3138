"""
Game Save Relocator

Keeps a local game save folder and a cloud-synced folder consistent,
watching the game process and rotating zip backups before every transfer.
"""

__version__ = "1.0.0"
__author__ = "Save Relocator"
__description__ = "Keep game saves in sync between a local folder and a cloud folder"

from .config.settings import RelocatorConfig
from .sync.sync_controller import SyncController

__all__ = ["RelocatorConfig", "SyncController"]
