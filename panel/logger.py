"""
Panel - Logger
================
Dual-output logger: prints tagged lines to the terminal running the server
and appends them to per-day log files (data/logs/YYYY-MM-DD.log).

Line format:
    [14:03:12] [TERM] Session opened for admin (pid 4242) in /root
"""

import os
from datetime import datetime


class PanelLogger:
    """
    Attributes:
        log_dir: Directory for log files, or None to print only.
    """

    def __init__(self, log_dir: str | None = None):
        """
        Initialize the logger.

        Args:
            log_dir: Directory path for log files. Created if missing.
        """
        self.log_dir = log_dir
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)

    def _get_log_path(self) -> str:
        """Get today's log file path."""
        today = datetime.now().strftime("%Y-%m-%d")
        return os.path.join(self.log_dir, f"{today}.log")

    def _timestamp(self) -> str:
        """Get current time formatted for log entries."""
        return datetime.now().strftime("%H:%M:%S")

    def _write(self, text: str) -> None:
        """Append a line to today's log file."""
        if not self.log_dir:
            return
        try:
            with open(self._get_log_path(), "a", encoding="utf-8") as f:
                f.write(text + "\n")
        except OSError:
            pass

    def log(self, tag: str, text: str) -> str:
        """Emit one tagged line and return it."""
        line = f"[{self._timestamp()}] [{tag}] {text}"
        self._write(line)
        print(line, flush=True)
        return line

    def info(self, text: str) -> str:
        return self.log("INFO", text)

    def warn(self, text: str) -> str:
        return self.log("WARN", text)

    def error(self, text: str) -> str:
        return self.log("ERROR", text)

    def terminal(self, text: str) -> str:
        """Terminal session lifecycle events (open, close, spawn failure)."""
        return self.log("TERM", text)
