"""
Panel - One-Shot Command Executor
===================================
Runs a single shell command to completion and returns its combined output
and exit code. Used by POST /api/terminal/exec; unrelated to PTY sessions.

Safety:
    A short denylist rejects a few catastrophic commands by literal prefix
    (recursive delete of /, mkfs, raw writes to /dev/sda, dd, fork bomb).
    This only catches accidents typed verbatim. It is not a sandbox and
    anything cleverer than a plain prefix walks straight past it.

Result:
    {"output": "<lines joined by \\n, each newline-terminated>",
     "exit_code": <int>,
     "timed_out": <bool>}

    A non-zero exit code is a normal result, not an error. Processes killed
    by a signal or by the timeout report ABNORMAL_EXIT_CODE (-1).
"""

import asyncio
import os
import signal
from typing import Any


DANGEROUS_COMMAND_PREFIXES = (
    "rm -rf /",
    "mkfs",
    "> /dev/sda",
    "dd if=",
    ":(){:|:&};:",
)

ABNORMAL_EXIT_CODE = -1

# Seconds to collect leftover output after a timeout kill
KILL_GRACE = 1

_READ_SIZE = 65536


class CommandError(Exception):
    """Base class for executor failures."""


class ValidationError(CommandError):
    """The request was rejected before anything ran."""


class ForbiddenCommandError(ValidationError):
    """The command matches the denylist."""


class ExecutionError(CommandError):
    """The shell process could not be started."""


def check_command(command: str) -> None:
    """
    Reject empty or denylisted commands.

    Raises:
        ValidationError:       If command is empty.
        ForbiddenCommandError: If command starts with a denylisted prefix.
    """
    if not command:
        raise ValidationError("Command must not be empty")
    for prefix in DANGEROUS_COMMAND_PREFIXES:
        if command.startswith(prefix):
            raise ForbiddenCommandError("Refusing to run a dangerous command")


def join_lines(data: bytes) -> str:
    """
    Split raw output into lines and re-join them newline-terminated.

    A final line without a trailing newline still gets one; a trailing
    carriage return on each line is dropped.
    """
    lines = data.split(b"\n")
    if lines and lines[-1] == b"":
        lines.pop()
    out = []
    for line in lines:
        if line.endswith(b"\r"):
            line = line[:-1]
        out.append(line.decode("utf-8", errors="replace") + "\n")
    return "".join(out)


class CommandExecutor:
    """
    Stateless runner for one-off shell commands.

    Attributes:
        shell:       Interpreter invoked as `<shell> -c <command>`.
        max_timeout: Upper bound in seconds for any request's timeout;
                     0 disables the bound.
    """

    def __init__(self, shell: str = "bash", max_timeout: float = 0):
        self.shell = shell
        self.max_timeout = max_timeout

    def effective_timeout(self, timeout: float | None) -> float | None:
        """Requested timeout clamped to max_timeout; None means no limit."""
        limit = timeout if timeout and timeout > 0 else None
        if self.max_timeout and self.max_timeout > 0:
            limit = min(limit, self.max_timeout) if limit else self.max_timeout
        return limit

    async def execute(
        self,
        command: str,
        cwd: str | None = None,
        timeout: float | None = None,
    ) -> dict[str, Any]:
        """
        Run a command and wait for it to finish.

        Args:
            command: Shell command line.
            cwd:     Working directory for the child, if given.
            timeout: Seconds before the process group is killed.

        Returns:
            Dict with output, exit_code and timed_out.

        Raises:
            ValidationError:       Empty command.
            ForbiddenCommandError: Denylisted command.
            ExecutionError:        The shell could not be started.
        """
        check_command(command)

        try:
            proc = await asyncio.create_subprocess_exec(
                self.shell, "-c", command,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
                cwd=cwd or None,
                start_new_session=True,
            )
        except OSError as e:
            raise ExecutionError(str(e)) from e

        chunks: list[bytes] = []

        async def _drain() -> None:
            while True:
                chunk = await proc.stdout.read(_READ_SIZE)
                if not chunk:
                    break
                chunks.append(chunk)

        timed_out = False
        try:
            await asyncio.wait_for(
                asyncio.gather(_drain(), proc.wait()),
                self.effective_timeout(timeout),
            )
        except asyncio.TimeoutError:
            timed_out = True
            _kill_group(proc)
            try:
                await asyncio.wait_for(_drain(), KILL_GRACE)
            except asyncio.TimeoutError:
                # A child that left the process group still holds stdout
                proc._transport.close()
            await proc.wait()

        exit_code = proc.returncode
        if timed_out or exit_code is None or exit_code < 0:
            exit_code = ABNORMAL_EXIT_CODE

        return {
            "output": join_lines(b"".join(chunks)),
            "exit_code": exit_code,
            "timed_out": timed_out,
        }


def _kill_group(proc: asyncio.subprocess.Process) -> None:
    """SIGKILL the command and everything it spawned."""
    try:
        os.killpg(proc.pid, signal.SIGKILL)
    except OSError:
        try:
            proc.kill()
        except ProcessLookupError:
            pass
