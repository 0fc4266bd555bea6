"""
Panel - Terminal Session Manager
==================================
Owns the spawn settings for terminal shells and keeps track of the PTY
sessions that are currently alive, so the server can kill them all when it
shuts down.

Sessions are private to the connection that opened them. The registry is
only used for cleanup and the live-session count, never for attaching a
second client to an existing shell.

Usage:
    manager = TerminalManager(config["terminal"], logger)
    session = manager.open(cwd, identity)      # spawn + register
    manager.close(session)                     # terminate + forget
    manager.shutdown()                         # on application exit
"""

import threading

from panel.auth import Identity
from panel.logger import PanelLogger
from panel.pty_session import PtySession, spawn


class TerminalManager:
    """
    Attributes:
        shell:  Shell executable for new sessions.
        term:   TERM value exported to the shell.
        locale: LANG / LC_ALL value exported to the shell.
        logger: Where lifecycle events are reported.
    """

    def __init__(self, settings: dict | None = None, logger: PanelLogger | None = None):
        """
        Args:
            settings: The "terminal" section of the configuration.
            logger:   Panel logger; a print-only logger when omitted.
        """
        settings = settings or {}
        self.shell = settings.get("shell", "/bin/bash")
        self.term = settings.get("term", "xterm-256color")
        self.locale = settings.get("locale", "en_US.UTF-8")
        self.logger = logger or PanelLogger()

        self._sessions: dict[int, PtySession] = {}
        self._lock = threading.Lock()

    @property
    def session_count(self) -> int:
        """Number of live terminal sessions."""
        with self._lock:
            return len(self._sessions)

    def open(self, cwd: str | None, identity: Identity | None = None) -> PtySession:
        """
        Spawn a shell for a freshly upgraded connection.

        Raises:
            SpawnError: Propagated from spawn().
        """
        session = spawn(
            cwd=cwd,
            shell=self.shell,
            term=self.term,
            locale=self.locale,
            identity=identity,
        )
        with self._lock:
            self._sessions[session.pid] = session

        who = identity.username if identity else "unknown"
        self.logger.terminal(
            f"Session opened for {who} (pid {session.pid}) in {session.cwd}"
        )
        return session

    def close(self, session: PtySession) -> None:
        """Forget a session and make sure its shell is gone."""
        with self._lock:
            self._sessions.pop(session.pid, None)
        session.terminate()
        who = session.identity.username if session.identity else "unknown"
        self.logger.terminal(f"Session closed for {who} (pid {session.pid})")

    def shutdown(self) -> int:
        """
        Terminate every live session.

        Returns:
            How many sessions were terminated by this call.
        """
        with self._lock:
            sessions = list(self._sessions.values())
            self._sessions.clear()

        count = 0
        for session in sessions:
            if session.terminate():
                count += 1
        if count:
            self.logger.terminal(f"Terminated {count} session(s) on shutdown")
        return count
