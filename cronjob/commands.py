"""
Shell commands as job callbacks.

Runs shell commands with timeout, cancellation and logging. The scheduler
knows nothing about what a command does; it only decides when to run it.
"""

import logging
import subprocess
import threading
import time
import uuid
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional
from zoneinfo import ZoneInfo

from cronjob.cancellation import CancellationToken
from cronjob.config import JobConfig
from cronjob.job import Job

logger = logging.getLogger(__name__)

# How often a running command checks its token
POLL_INTERVAL = 0.2


class JobExecutionError(Exception):
    """Raised when a command fails, times out or is cancelled."""
    pass


class CommandExecutor:
    """
    Executes shell commands and keeps the latest result per job.

    One executor may be shared by several jobs; statistics are keyed by
    job name and guarded by a lock since non-blocking jobs fire on
    separate threads.
    """

    def __init__(self):
        """Initialize command executor."""
        self.job_stats: Dict[str, Dict[str, Any]] = {}
        self._stats_lock = threading.Lock()

    def execute_command(
        self,
        command: str,
        timeout: Optional[int] = 3600,
        working_dir: Optional[str] = None,
        env: Optional[Dict[str, str]] = None,
        job_name: Optional[str] = None,
        run_id: Optional[str] = None,
        token: Optional[CancellationToken] = None
    ) -> Dict[str, Any]:
        """
        Execute a shell command.

        Output lines are logged as they arrive.

        Args:
            command: Shell command to execute
            timeout: Timeout in seconds (None = no timeout)
            working_dir: Working directory for command execution
            env: Environment for the command (None = inherit)
            job_name: Name of the job (for logging)
            run_id: Unique run identifier (for logging)
            token: Cancellation token; the command is killed when it fires

        Returns:
            Dict with stdout, stderr, returncode

        Raises:
            JobExecutionError: If the command exits non-zero, times out or
                is cancelled
        """
        log_prefix = ""
        if job_name and run_id:
            log_prefix = f"[{job_name}:{run_id}] "
        elif job_name:
            log_prefix = f"[{job_name}] "

        logger.info(f"{log_prefix}Executing command: {command}")

        try:
            process = subprocess.Popen(
                command,
                shell=True,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                cwd=working_dir,
                env=env
            )
        except OSError as e:
            logger.error(f"{log_prefix}Command execution failed: {e}")
            raise JobExecutionError(f"Command execution failed: {e}") from e

        stdout_lines: List[str] = []
        stderr_lines: List[str] = []

        def read_stream(stream, output_list, log_func):
            for line in stream:
                line = line.rstrip('\n')
                output_list.append(line)
                log_func(f"{log_prefix}{line}")

        stdout_thread = threading.Thread(
            target=read_stream,
            args=(process.stdout, stdout_lines, logger.info),
            daemon=True
        )
        stderr_thread = threading.Thread(
            target=read_stream,
            args=(process.stderr, stderr_lines, logger.warning),
            daemon=True
        )
        stdout_thread.start()
        stderr_thread.start()

        deadline = time.monotonic() + timeout if timeout else None
        while True:
            try:
                process.wait(timeout=POLL_INTERVAL)
                break
            except subprocess.TimeoutExpired:
                pass

            if token is not None and token.cancelled:
                process.kill()
                process.wait()
                logger.warning(f"{log_prefix}Command cancelled: {command}")
                raise JobExecutionError("Command cancelled")

            if deadline is not None and time.monotonic() >= deadline:
                process.kill()
                process.wait()
                logger.error(f"{log_prefix}Command timed out after {timeout}s: {command}")
                raise JobExecutionError(f"Command timed out after {timeout}s")

        stdout_thread.join()
        stderr_thread.join()

        stdout = '\n'.join(stdout_lines)
        stderr = '\n'.join(stderr_lines)

        if process.returncode != 0:
            raise JobExecutionError(
                f"Command failed with exit code {process.returncode}: {stderr}"
            )

        return {
            'stdout': stdout,
            'stderr': stderr,
            'returncode': process.returncode
        }

    def run(
        self,
        command: str,
        job_name: str,
        timeout: Optional[int] = 3600,
        working_dir: Optional[str] = None,
        token: Optional[CancellationToken] = None
    ) -> Dict[str, Any]:
        """
        Execute a command once and record statistics for the job.

        Failures are not retried; the next scheduled fire is the next attempt.

        Returns:
            Dict with execution statistics

        Raises:
            JobExecutionError: If the command fails
        """
        # Short run ID for readability
        run_id = str(uuid.uuid4())[:8]
        log_prefix = f"[{job_name}:{run_id}]"
        start_time = datetime.now()

        logger.info(f"{log_prefix} Starting job run")

        stats = {
            'job_name': job_name,
            'run_id': run_id,
            'command': command,
            'start_time': start_time.isoformat(),
        }

        try:
            result = self.execute_command(
                command,
                timeout=timeout,
                working_dir=working_dir,
                job_name=job_name,
                run_id=run_id,
                token=token
            )
        except JobExecutionError as e:
            duration = (datetime.now() - start_time).total_seconds()
            stats.update({'status': 'failed', 'duration_seconds': duration, 'error': str(e)})
            self._record(job_name, stats)
            raise

        duration = (datetime.now() - start_time).total_seconds()
        stats.update({
            'status': 'success',
            'duration_seconds': duration,
            'returncode': result['returncode'],
        })
        self._record(job_name, stats)
        logger.info(f"{log_prefix} Completed successfully in {duration:.2f}s")
        return stats

    def _record(self, job_name: str, stats: Dict[str, Any]):
        with self._stats_lock:
            self.job_stats[job_name] = stats

    def get_job_stats(self, job_name: str = None) -> Dict[str, Any]:
        """
        Get job execution statistics.

        Args:
            job_name: Specific job name, or None for all jobs

        Returns:
            Job statistics dictionary
        """
        with self._stats_lock:
            if job_name:
                return dict(self.job_stats.get(job_name, {}))
            return dict(self.job_stats)


def command_callback(
    command: str,
    job_name: str,
    timeout: Optional[int] = 3600,
    working_dir: Optional[str] = None,
    executor: Optional[CommandExecutor] = None
) -> Callable[[CancellationToken], None]:
    """
    Build a job callback that runs ``command`` on every fire.

    A failing command is logged and swallowed by the callback itself so one
    bad run does not end a blocking job's schedule.
    """
    executor = executor or CommandExecutor()

    def callback(token: CancellationToken):
        try:
            executor.run(
                command,
                job_name=job_name,
                timeout=timeout,
                working_dir=working_dir,
                token=token
            )
        except JobExecutionError as e:
            logger.error(f"[{job_name}] {e}")

    return callback


def job_from_config(job_config: JobConfig, executor: Optional[CommandExecutor] = None) -> Job:
    """
    Build an unstarted Job from a JobConfig.

    Raises:
        InvalidScheduleError: If the job's schedule is malformed
        zoneinfo.ZoneInfoNotFoundError: If the job's timezone is unknown
    """
    callback = command_callback(
        job_config.command,
        job_name=job_config.name,
        timeout=job_config.timeout,
        working_dir=job_config.working_dir,
        executor=executor
    )
    return (
        Job(job_config.schedule)
        .set_blocking(job_config.blocking)
        .set_timezone(ZoneInfo(job_config.timezone))
        .set_callback(callback)
    )
