"""
Scheduler configuration management.

Handles loading, saving, and validating the configuration file that lists
named cron jobs (each a shell command on a schedule) and logging settings.
"""

import json
import logging
import os
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Dict, List, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dotenv import load_dotenv

from cronjob.schedule import CronSchedule, InvalidScheduleError

load_dotenv()

logger = logging.getLogger(__name__)

ENV_CONFIG_PATH = "CRONJOB_CONFIG_PATH"
ENV_HOME = "CRONJOB_HOME"
ENV_LOG_DIR = "CRONJOB_LOG_DIR"


class ConfigError(ValueError):
    """Raised when a configuration file cannot be used."""

    def __init__(self, message: str, errors: Optional[List[str]] = None):
        super().__init__(message)
        self.errors = errors or []


def get_home_dir() -> Path:
    """Get the base directory for scheduler files."""
    home = os.environ.get(ENV_HOME)
    if home:
        return Path(home).expanduser()
    return Path.home() / ".cronjob"


def get_log_dir() -> Path:
    """Get the log directory from environment or default."""
    if os.environ.get(ENV_LOG_DIR):
        return Path(os.environ[ENV_LOG_DIR]).expanduser()
    return get_home_dir() / "logs"


@dataclass
class JobConfig:
    """
    Individual job configuration.

    Jobs are command-based - the scheduler doesn't know or care what
    the command does. It just executes it on the specified schedule.
    """
    name: str
    schedule: str  # cron expression, 5 or 6 fields
    command: str  # Shell command to execute
    enabled: bool = True
    blocking: bool = False
    timezone: str = "UTC"  # IANA zone name
    timeout: int = 3600  # Command timeout in seconds (default: 1 hour)
    working_dir: Optional[str] = None  # Working directory for command
    description: Optional[str] = None  # Human-readable description

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'JobConfig':
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ConfigError(f"Job {data.get('name', '?')}: unknown keys {sorted(unknown)}")
        try:
            return cls(**data)
        except TypeError as e:
            raise ConfigError(f"Job {data.get('name', '?')}: {e}") from e


@dataclass
class LoggingConfig:
    """Logging configuration."""
    level: str = "INFO"
    file: Optional[str] = None  # Set dynamically in __post_init__
    max_bytes: int = 10 * 1024 * 1024  # 10MB
    backup_count: int = 5

    def __post_init__(self):
        if self.file is None:
            self.file = str(get_log_dir() / "cronjob.log")


class CronConfig:
    """
    Scheduler configuration manager.

    Configuration path priority:
    1. Explicit config_path argument
    2. CRONJOB_CONFIG_PATH environment variable
    3. Default: ~/.cronjob/config.json (or $CRONJOB_HOME/config.json)
    """

    def __init__(self, config_path: Optional[str] = None):
        """
        Initialize scheduler configuration.

        Args:
            config_path: Path to configuration file. If None, uses env var or default.
        """
        if config_path:
            self.config_path = Path(config_path).expanduser()
        elif os.environ.get(ENV_CONFIG_PATH):
            self.config_path = Path(os.environ[ENV_CONFIG_PATH]).expanduser()
        else:
            self.config_path = get_home_dir() / "config.json"

        self.jobs: List[JobConfig] = []
        self.logging: LoggingConfig = LoggingConfig()

        if self.config_path.exists():
            self.load()
        else:
            logger.info(f"No config found at {self.config_path}, using defaults")

    def load(self):
        """Load configuration from JSON file."""
        try:
            with open(self.config_path, 'r') as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Failed to load config from {self.config_path}: {e}")
            raise ConfigError(f"Failed to load config from {self.config_path}: {e}") from e

        self.jobs = [JobConfig.from_dict(job_data) for job_data in data.get('jobs', [])]

        if 'logging' in data:
            self.logging = LoggingConfig(**data['logging'])

        logger.info(f"Loaded {len(self.jobs)} job(s) from {self.config_path}")

    def save(self):
        """Save configuration to JSON file."""
        self.config_path.parent.mkdir(parents=True, exist_ok=True)

        data = {
            'jobs': [asdict(job) for job in self.jobs],
            'logging': asdict(self.logging)
        }

        with open(self.config_path, 'w') as f:
            json.dump(data, f, indent=2)

        logger.info(f"Saved configuration to {self.config_path}")

    def add_job(self, job: JobConfig):
        """Add a new job to configuration."""
        if any(j.name == job.name for j in self.jobs):
            raise ValueError(f"Job with name '{job.name}' already exists")

        self.jobs.append(job)
        logger.info(f"Added job: {job.name}")

    def remove_job(self, name: str) -> bool:
        """
        Remove a job by name.

        Returns:
            True if job was removed, False if not found
        """
        initial_len = len(self.jobs)
        self.jobs = [j for j in self.jobs if j.name != name]

        if len(self.jobs) < initial_len:
            logger.info(f"Removed job: {name}")
            return True
        return False

    def get_job(self, name: str) -> Optional[JobConfig]:
        """Get job configuration by name."""
        for job in self.jobs:
            if job.name == name:
                return job
        return None

    def update_job(self, name: str, **kwargs):
        """Update job configuration."""
        job = self.get_job(name)
        if not job:
            raise ValueError(f"Job '{name}' not found")

        for key, value in kwargs.items():
            if not hasattr(job, key):
                raise ValueError(f"Unknown job setting '{key}'")
            setattr(job, key, value)

        logger.info(f"Updated job: {name}")

    def enable_job(self, name: str):
        """Enable a job."""
        self.update_job(name, enabled=True)

    def disable_job(self, name: str):
        """Disable a job."""
        self.update_job(name, enabled=False)

    def get_enabled_jobs(self) -> List[JobConfig]:
        """Get list of enabled jobs."""
        return [j for j in self.jobs if j.enabled]

    def validate(self) -> List[str]:
        """
        Validate configuration.

        Returns:
            List of validation errors (empty if valid)
        """
        errors = []
        seen = set()

        for job in self.jobs:
            if job.name in seen:
                errors.append(f"Job {job.name}: duplicate name")
            seen.add(job.name)

            if not job.command or not job.command.strip():
                errors.append(f"Job {job.name}: 'command' cannot be empty")

            try:
                CronSchedule(job.schedule)
            except InvalidScheduleError as e:
                errors.append(f"Job {job.name}: {e}")

            try:
                ZoneInfo(job.timezone)
            except (ZoneInfoNotFoundError, ValueError, TypeError):
                errors.append(f"Job {job.name}: unknown timezone '{job.timezone}'")

            if not isinstance(job.timeout, int) or job.timeout <= 0:
                errors.append(f"Job {job.name}: 'timeout' must be positive")

        return errors

    def require_valid(self):
        """
        Raise if the configuration has validation errors.

        Raises:
            ConfigError: With every validation error in ``errors``
        """
        errors = self.validate()
        if errors:
            raise ConfigError(
                f"Configuration {self.config_path} has {len(errors)} error(s)",
                errors=errors
            )

    def __repr__(self):
        return f"CronConfig(jobs={len(self.jobs)}, path={self.config_path})"
