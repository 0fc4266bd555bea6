"""
Panel - PTY Sessions
======================
Spawns an interactive shell attached to a pseudo-terminal and owns its
lifecycle: start, resize, read/write, terminate.

One PtySession pairs one WebSocket connection with one shell process.
Sessions are never shared or re-attached; they live exactly as long as the
connection that created them.

I/O model:
    The PTY master fd is switched to non-blocking mode and driven by the
    asyncio event loop (add_reader / add_writer), so a session costs no
    threads. read() and write() are coroutines.

Teardown:
    terminate() is guarded by the session lock and the closed flag. It can
    be called from any exit path (client disconnect, shell exit, server
    shutdown) any number of times; only the first call releases anything.
"""

import asyncio
import fcntl
import os
import pty
import pwd
import signal
import struct
import subprocess
import termios
import threading

from panel.auth import Identity


DEFAULT_COLS = 80
DEFAULT_ROWS = 24
FALLBACK_HOME = "/root"

# Seconds to wait for the killed shell to be reaped
REAP_TIMEOUT = 2


class SpawnError(Exception):
    """PTY allocation or shell start failed."""


def default_home_dir() -> str:
    """Home directory of the user running the panel, else /root."""
    try:
        home = pwd.getpwuid(os.getuid()).pw_dir
    except KeyError:
        home = ""
    if not home:
        home = os.environ.get("HOME", "")
    return home or FALLBACK_HOME


def resolve_working_dir(requested: str | None) -> str:
    """
    Pick the shell's starting directory.

    The requested directory is used only if it exists and is a directory;
    anything else falls back to default_home_dir() without raising.
    """
    if requested and os.path.isdir(requested):
        return requested
    return default_home_dir()


def set_winsize(fd: int, cols: int, rows: int) -> None:
    """Update the PTY window size."""
    fcntl.ioctl(fd, termios.TIOCSWINSZ, struct.pack("HHHH", rows, cols, 0, 0))


def _make_controlling_tty() -> None:
    # Runs in the child after setsid(): stdin is the PTY slave.
    fcntl.ioctl(0, termios.TIOCSCTTY, 0)


class PtySession:
    """
    A running shell and the master side of its PTY.

    Attributes:
        process:  The shell's subprocess.Popen handle.
        master_fd: PTY master file descriptor (non-blocking).
        identity: Who opened the session, if known.
        cwd:      Directory the shell started in.
        cols, rows: Last geometry applied.
        closed:   True once terminate() has run.
    """

    def __init__(
        self,
        process: subprocess.Popen,
        master_fd: int,
        identity: Identity | None = None,
        cwd: str = "",
    ):
        self.process = process
        self.master_fd = master_fd
        self.identity = identity
        self.cwd = cwd
        self.cols = DEFAULT_COLS
        self.rows = DEFAULT_ROWS
        self.closed = False

        self._lock = threading.Lock()
        self._loop: asyncio.AbstractEventLoop | None = None
        self._read_waiter: asyncio.Future | None = None
        self._write_waiter: asyncio.Future | None = None

    @property
    def pid(self) -> int:
        return self.process.pid

    @property
    def geometry(self) -> tuple[int, int]:
        """Current (cols, rows)."""
        with self._lock:
            return self.cols, self.rows

    def resize(self, cols: int, rows: int) -> None:
        """
        Apply a new window size. Best-effort: ioctl failures are ignored.
        """
        with self._lock:
            if self.closed:
                return
            try:
                set_winsize(self.master_fd, cols, rows)
            except OSError:
                pass
            self.cols, self.rows = cols, rows

    # -- I/O ------------------------------------------------------------------

    async def read(self, size: int = 4096) -> bytes:
        """
        Read up to `size` bytes of terminal output.

        Returns:
            The bytes read; b"" once the session is closed or the PTY
            reports end-of-file.

        Raises:
            OSError: On a read failure, typically EIO after the shell exits.
        """
        while True:
            if self.closed:
                return b""
            try:
                return os.read(self.master_fd, size)
            except BlockingIOError:
                pass
            await self._wait_ready(writable=False)

    async def write(self, data: bytes) -> None:
        """
        Write all of `data` to the shell's input.

        Raises:
            OSError: If the session is closed or the PTY rejects the write.
        """
        view = memoryview(data)
        while view:
            if self.closed:
                raise OSError("terminal session is closed")
            try:
                written = os.write(self.master_fd, view)
            except BlockingIOError:
                await self._wait_ready(writable=True)
                continue
            view = view[written:]

    async def _wait_ready(self, writable: bool) -> None:
        """Suspend until the master fd is readable (or writable)."""
        loop = asyncio.get_running_loop()
        self._loop = loop
        waiter = loop.create_future()

        def _wake() -> None:
            if not waiter.done():
                waiter.set_result(None)

        if writable:
            self._write_waiter = waiter
            loop.add_writer(self.master_fd, _wake)
        else:
            self._read_waiter = waiter
            loop.add_reader(self.master_fd, _wake)
        try:
            await waiter
        finally:
            if writable:
                self._write_waiter = None
                if not self.closed:
                    loop.remove_writer(self.master_fd)
            else:
                self._read_waiter = None
                if not self.closed:
                    loop.remove_reader(self.master_fd)

    # -- Teardown -------------------------------------------------------------

    def terminate(self) -> bool:
        """
        Kill the shell and release the PTY.

        Returns:
            True if this call performed the release, False if the session
            was already closed.
        """
        with self._lock:
            if self.closed:
                return False
            self.closed = True

        if self._loop is not None and not self._loop.is_closed():
            self._loop.remove_reader(self.master_fd)
            self._loop.remove_writer(self.master_fd)
        for waiter in (self._read_waiter, self._write_waiter):
            if waiter is not None and not waiter.done():
                waiter.set_result(None)

        # The shell leads its own session; SIGHUP reaches its jobs too.
        try:
            os.killpg(self.process.pid, signal.SIGHUP)
        except OSError:
            pass
        try:
            self.process.kill()
        except OSError:
            pass

        try:
            os.close(self.master_fd)
        except OSError:
            pass

        if self.process.poll() is None:
            try:
                loop = asyncio.get_running_loop()
            except RuntimeError:
                self._reap()
            else:
                # Keep the event loop free while the kernel reaps the shell
                loop.run_in_executor(None, self._reap)
        return True

    def _reap(self) -> None:
        try:
            self.process.wait(timeout=REAP_TIMEOUT)
        except subprocess.TimeoutExpired:
            pass


def spawn(
    cwd: str | None = None,
    shell: str = "/bin/bash",
    term: str = "xterm-256color",
    locale: str = "en_US.UTF-8",
    identity: Identity | None = None,
) -> PtySession:
    """
    Start an interactive shell on a fresh PTY.

    Args:
        cwd:      Requested working directory (validated, may fall back).
        shell:    Shell executable.
        term:     TERM value for the child.
        locale:   LANG / LC_ALL value for the child.
        identity: Owner of the session, kept for logging.

    Returns:
        The running PtySession with geometry 80x24.

    Raises:
        SpawnError: If the PTY cannot be allocated or the shell cannot start.
    """
    workdir = resolve_working_dir(cwd)

    env = dict(os.environ)
    env.update({
        "TERM": term,
        "LANG": locale,
        "LC_ALL": locale,
        "HOME": default_home_dir(),
    })

    try:
        master_fd, slave_fd = pty.openpty()
    except OSError as e:
        raise SpawnError(f"openpty failed: {e}") from e

    try:
        process = subprocess.Popen(
            [shell],
            stdin=slave_fd,
            stdout=slave_fd,
            stderr=slave_fd,
            cwd=workdir,
            env=env,
            start_new_session=True,
            preexec_fn=_make_controlling_tty,
            close_fds=True,
        )
    except (OSError, subprocess.SubprocessError) as e:
        os.close(master_fd)
        os.close(slave_fd)
        raise SpawnError(f"failed to start {shell}: {e}") from e

    # Parent keeps only the master side
    os.close(slave_fd)
    os.set_blocking(master_fd, False)

    session = PtySession(process, master_fd, identity=identity, cwd=workdir)
    session.resize(DEFAULT_COLS, DEFAULT_ROWS)
    return session
