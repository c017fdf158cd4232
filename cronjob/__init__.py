"""
Cron Jobs

Run a function on a cron schedule in a background thread.

Main Components:
- Job / schedule_job: The scheduling loop and its fluent configuration
- CronSchedule: Cron expression parsing and next-fire-time evaluation
- CancellationToken: Cooperative cancellation with parent/child links
- CommandExecutor: Shell commands as job callbacks
- CronConfig: Configuration file of named jobs

Example:
    from cronjob import schedule_job

    job = schedule_job("* * * * * *").set_callback(lambda token: print("tick"))
    job.start()
    ...
    job.stop()
"""

# Scheduling
from .schedule import CronSchedule, InvalidScheduleError
from .cancellation import CancellationToken, CancelledError, DeadlineExceeded
from .job import Job, JobState, schedule_job

# Commands and configuration
from .config import ConfigError, CronConfig, JobConfig, LoggingConfig
from .commands import CommandExecutor, JobExecutionError, command_callback, job_from_config

__version__ = "0.1.0"

__all__ = [
    # Scheduling
    "CronSchedule",
    "InvalidScheduleError",
    "CancellationToken",
    "CancelledError",
    "DeadlineExceeded",
    "Job",
    "JobState",
    "schedule_job",
    # Commands and configuration
    "ConfigError",
    "CronConfig",
    "JobConfig",
    "LoggingConfig",
    "CommandExecutor",
    "JobExecutionError",
    "command_callback",
    "job_from_config",
]
