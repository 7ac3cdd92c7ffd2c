"""IPC (Inter-Process Communication) for Queue Minion.

Front ends talk to the daemon over a Unix socket, one JSON object per line.
"""

from .client import send_command

__all__ = ["send_command"]
