"""
Tests for shell command callbacks.
"""

import threading
import time
from pathlib import Path

import pytest

from cronjob import CancellationToken, JobState
from cronjob.commands import CommandExecutor, JobExecutionError, command_callback, job_from_config
from cronjob.config import JobConfig
from cronjob.schedule import InvalidScheduleError


@pytest.fixture
def executor():
    return CommandExecutor()


def test_execute_captures_output(executor):
    result = executor.execute_command("echo hello; echo world")

    assert result['returncode'] == 0
    assert result['stdout'] == "hello\nworld"
    assert result['stderr'] == ""


def test_execute_nonzero_exit(executor):
    with pytest.raises(JobExecutionError, match="exit code 3: oops"):
        executor.execute_command("echo oops >&2; exit 3")


def test_execute_in_working_dir(executor, tmp_path):
    result = executor.execute_command("pwd", working_dir=str(tmp_path))

    assert Path(result['stdout']).resolve() == tmp_path.resolve()


def test_execute_with_env(executor):
    result = executor.execute_command("echo $GREETING", env={'GREETING': 'hi', 'PATH': '/usr/bin:/bin'})

    assert result['stdout'] == "hi"


def test_execute_timeout(executor):
    start = time.monotonic()
    with pytest.raises(JobExecutionError, match="timed out"):
        executor.execute_command("sleep 5", timeout=1)

    assert time.monotonic() - start < 4


def test_execute_cancelled(executor):
    token = CancellationToken()
    threading.Timer(0.3, token.cancel).start()

    start = time.monotonic()
    with pytest.raises(JobExecutionError, match="cancelled"):
        executor.execute_command("sleep 5", token=token)

    assert time.monotonic() - start < 4


def test_run_records_success(executor):
    stats = executor.run("true", job_name="ok")

    assert stats['status'] == 'success'
    assert stats['returncode'] == 0
    assert executor.get_job_stats("ok") == stats


def test_run_records_failure(executor):
    with pytest.raises(JobExecutionError):
        executor.run("exit 1", job_name="bad")

    stats = executor.get_job_stats("bad")
    assert stats['status'] == 'failed'
    assert "exit code 1" in stats['error']
    assert set(executor.get_job_stats()) == {"bad"}


def test_callback_swallows_failures(executor):
    callback = command_callback("exit 2", job_name="flaky", executor=executor)

    callback(CancellationToken())

    assert executor.get_job_stats("flaky")['status'] == 'failed'


def test_job_from_config():
    job = job_from_config(JobConfig(
        name="report",
        schedule="30 8 * * 1-5",
        command="echo report",
        blocking=True,
        timezone="America/Chicago",
    ))

    assert job.expression == "30 8 * * 1-5"
    assert job.blocking is True
    assert job.timezone.key == "America/Chicago"
    assert callable(job.callback)
    assert job.state is JobState.NOT_STARTED


def test_job_from_config_invalid_schedule():
    with pytest.raises(InvalidScheduleError):
        job_from_config(JobConfig(name="x", schedule="61 * * * *", command="true"))


def test_scheduled_command_runs(tmp_path):
    out = tmp_path / "ticks.txt"
    executor = CommandExecutor()
    job = job_from_config(
        JobConfig(name="tick", schedule="* * * * * *", command=f"echo tick >> {out}", blocking=True),
        executor=executor
    )

    job.start()
    time.sleep(2.2)
    job.stop()
    assert job.join(5.0)

    assert out.read_text().count("tick") >= 1
    assert executor.get_job_stats("tick")['status'] == 'success'
