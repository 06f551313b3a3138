"""Game process monitoring."""

from .process_monitor import DEFAULT_POLL_INTERVAL, ProcessMonitor, ProcessWatch

__all__ = ["ProcessMonitor", "ProcessWatch", "DEFAULT_POLL_INTERVAL"]
