import asyncio
import shutil
import time

import pytest

from panel.executor import (
    ABNORMAL_EXIT_CODE,
    DANGEROUS_COMMAND_PREFIXES,
    CommandExecutor,
    ExecutionError,
    ForbiddenCommandError,
    ValidationError,
    check_command,
    join_lines,
)


pytestmark = pytest.mark.skipif(shutil.which("bash") is None, reason="needs bash")


def run(command, **kwargs):
    executor = kwargs.pop("executor", None) or CommandExecutor()
    return asyncio.run(executor.execute(command, **kwargs))


def test_empty_command_is_validation_error():
    with pytest.raises(ValidationError) as exc:
        run("")
    assert not isinstance(exc.value, ForbiddenCommandError)


@pytest.mark.parametrize("command", [
    "rm -rf /",
    "rm -rf /home/someone",
    "mkfs.ext4 /dev/sdb1",
    "> /dev/sda",
    "dd if=/dev/zero of=/dev/sda",
    ":(){:|:&};:",
])
def test_denylisted_commands_forbidden(command):
    with pytest.raises(ForbiddenCommandError):
        check_command(command)


def test_denylist_is_prefix_only():
    # Only a leading match counts
    check_command("echo rm -rf /")
    assert "rm -rf /" in DANGEROUS_COMMAND_PREFIXES


def test_echo():
    assert run("echo hi") == {"output": "hi\n", "exit_code": 0, "timed_out": False}


def test_exit_code_propagated_with_empty_output():
    assert run("exit 7") == {"output": "", "exit_code": 7, "timed_out": False}


def test_stderr_is_captured():
    result = run("echo out; echo err 1>&2; exit 3")
    assert result["exit_code"] == 3
    assert "out\n" in result["output"]
    assert "err\n" in result["output"]


def test_unterminated_last_line_gets_newline():
    assert run("printf 'a\\nb'")["output"] == "a\nb\n"


def test_working_directory(tmp_path):
    result = run("pwd", cwd=str(tmp_path))
    assert result["output"].strip().endswith(tmp_path.name)


def test_missing_working_directory_is_execution_error(tmp_path):
    with pytest.raises(ExecutionError):
        run("pwd", cwd=str(tmp_path / "nope"))


def test_missing_shell_is_execution_error(tmp_path):
    executor = CommandExecutor(shell=str(tmp_path / "no-shell"))
    with pytest.raises(ExecutionError):
        run("echo hi", executor=executor)


def test_killed_process_reports_sentinel():
    assert run("kill -9 $$")["exit_code"] == ABNORMAL_EXIT_CODE


def test_timeout_kills_and_keeps_partial_output():
    result = run("echo started; sleep 30", timeout=0.5)
    assert result["timed_out"] is True
    assert result["exit_code"] == ABNORMAL_EXIT_CODE
    assert result["output"] == "started\n"


@pytest.mark.skipif(shutil.which("setsid") is None, reason="needs setsid")
def test_timeout_not_held_open_by_detached_child():
    # The detached sleep escapes the group kill and keeps the pipe open
    started = time.monotonic()
    result = run("setsid sleep 10 & echo started; sleep 30", timeout=1)
    assert time.monotonic() - started < 5
    assert result["timed_out"] is True
    assert result["exit_code"] == ABNORMAL_EXIT_CODE
    assert result["output"] == "started\n"


def test_effective_timeout():
    assert CommandExecutor().effective_timeout(None) is None
    assert CommandExecutor().effective_timeout(0) is None
    assert CommandExecutor().effective_timeout(5) == 5
    assert CommandExecutor(max_timeout=10).effective_timeout(None) == 10
    assert CommandExecutor(max_timeout=10).effective_timeout(30) == 10
    assert CommandExecutor(max_timeout=10).effective_timeout(3) == 3


def test_join_lines():
    assert join_lines(b"") == ""
    assert join_lines(b"one\r\ntwo\n") == "one\ntwo\n"
    assert join_lines(b"\n\n") == "\n\n"


def test_exec_route(client, token):
    headers = {"Authorization": f"Bearer {token}"}

    resp = client.post("/api/terminal/exec", json={"command": "echo hi"}, headers=headers)
    assert resp.status_code == 200
    assert resp.json() == {"status": True, "output": "hi\n", "exit_code": 0, "timed_out": False}

    resp = client.post("/api/terminal/exec", json={"command": "exit 7"}, headers=headers)
    assert resp.status_code == 200
    assert resp.json()["exit_code"] == 7

    resp = client.post("/api/terminal/exec", json={"command": ""}, headers=headers)
    assert resp.status_code == 400

    resp = client.post("/api/terminal/exec", json={"command": "rm -rf /"}, headers=headers)
    assert resp.status_code == 403

    resp = client.post(
        "/api/terminal/exec",
        json={"command": "pwd", "cwd": "/definitely/not/here"},
        headers=headers,
    )
    assert resp.status_code == 500


def test_exec_route_requires_auth(client):
    resp = client.post("/api/terminal/exec", json={"command": "echo hi"})
    assert resp.status_code == 401
