"""
Command-line interface for cron jobs.

Provides commands for:
- Previewing when a cron expression fires
- Running a shell command on a schedule in the foreground
- Running every job from the configuration file
- Adding/removing/enabling/disabling configured jobs
"""

import argparse
import logging
import signal
import sys
from datetime import datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import List, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from cronjob.cancellation import CancellationToken, DeadlineExceeded
from cronjob.commands import CommandExecutor, command_callback, job_from_config
from cronjob.config import ConfigError, CronConfig, JobConfig
from cronjob.job import Job
from cronjob.schedule import CronSchedule

logger = logging.getLogger(__name__)


def setup_logging(
    log_file: Optional[str] = None,
    verbose: bool = False,
    level: str = "INFO",
    max_bytes: int = 10 * 1024 * 1024,
    backup_count: int = 5
):
    """Setup logging configuration."""
    level = logging.DEBUG if verbose else getattr(logging, level.upper(), logging.INFO)

    # Console handler
    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_formatter = logging.Formatter(
        '%(asctime)s [%(levelname)s] %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )
    console_handler.setFormatter(console_formatter)

    # Root logger
    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.addHandler(console_handler)

    # File handler
    if log_file:
        log_path = Path(log_file).expanduser()
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = RotatingFileHandler(
            log_path,
            maxBytes=max_bytes,
            backupCount=backup_count
        )
        file_handler.setLevel(level)
        file_formatter = logging.Formatter(
            '%(asctime)s [%(levelname)s] %(name)s: %(message)s'
        )
        file_handler.setFormatter(file_formatter)
        root_logger.addHandler(file_handler)


def resolve_timezone(name: str) -> ZoneInfo:
    """Resolve an IANA zone name, raising ValueError if it is unknown."""
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ValueError(f"Unknown timezone '{name}'") from e


def cancel_on_signals(token: CancellationToken, signals=(signal.SIGINT, signal.SIGTERM)):
    """Cancel ``token`` when the process receives one of ``signals``."""

    def signal_handler(signum, frame):
        logger.info(f"Received signal {signum}, shutting down...")
        token.cancel()

    for signum in signals:
        signal.signal(signum, signal_handler)


def _wait_and_stop(jobs: List[Job], token: CancellationToken):
    """Block until ``token`` fires, then stop every job."""
    token.wait()

    if isinstance(token.error, DeadlineExceeded):
        logger.info("Duration reached, stopping")
    else:
        logger.info("Stopping")

    for job in jobs:
        job.stop()
    for job in jobs:
        if not job.join(timeout=5.0):
            logger.warning(f"Job '{job.expression}' did not stop cleanly")


def cmd_next(args):
    """Print upcoming fire times for an expression."""
    setup_logging(verbose=args.verbose)

    try:
        schedule = CronSchedule(args.expression)
        tz = resolve_timezone(args.timezone)
    except ValueError as e:
        logger.error(str(e))
        sys.exit(1)

    when = datetime.now(tz)
    for _ in range(args.count):
        when = schedule.next(when)
        if when is None:
            print("(no further fire times)")
            break
        print(when.isoformat())


def cmd_show(args):
    """Print the serialized form of a job."""
    setup_logging(verbose=args.verbose)

    try:
        job = (
            Job(args.expression)
            .set_timezone(resolve_timezone(args.timezone))
            .set_blocking(args.blocking)
        )
    except ValueError as e:
        logger.error(str(e))
        sys.exit(1)

    print(job.to_json(indent=2))


def cmd_run(args):
    """Run a command on a schedule in the foreground."""
    setup_logging(log_file=args.log_file, verbose=args.verbose)

    try:
        job = (
            Job(args.expression)
            .set_timezone(resolve_timezone(args.timezone))
            .set_blocking(args.blocking)
        )
    except ValueError as e:
        logger.error(str(e))
        sys.exit(1)

    root = CancellationToken()
    cancel_on_signals(root)
    token = root.with_timeout(args.duration) if args.duration else root

    job.with_cancellation(token).set_callback(
        command_callback(args.command, job_name=args.name, timeout=args.timeout)
    )
    job.start()

    next_run = job.next_fire_time()
    logger.info(f"Running '{args.command}' on '{args.expression}'. Press Ctrl+C to stop.")
    logger.info(f"Next run at {next_run.isoformat() if next_run else 'never'}")

    _wait_and_stop([job], token)


def cmd_start(args):
    """Run every enabled job from the configuration file."""
    try:
        config = CronConfig(args.config)
    except ValueError as e:
        setup_logging(verbose=args.verbose)
        logger.error(f"Failed to load configuration: {e}")
        sys.exit(1)

    setup_logging(
        log_file=args.log_file or config.logging.file,
        verbose=args.verbose,
        level=config.logging.level,
        max_bytes=config.logging.max_bytes,
        backup_count=config.logging.backup_count
    )

    try:
        config.require_valid()
    except ConfigError as e:
        logger.error("Configuration validation failed:")
        for error in e.errors:
            logger.error(f"  - {error}")
        sys.exit(1)

    enabled = config.get_enabled_jobs()
    if not enabled:
        logger.warning("No enabled jobs in configuration")
        return

    root = CancellationToken()
    cancel_on_signals(root)
    token = root.with_timeout(args.duration) if args.duration else root

    executor = CommandExecutor()
    jobs = []
    for job_config in enabled:
        job = job_from_config(job_config, executor=executor).with_cancellation(token)
        job.start()
        jobs.append(job)
        next_run = job.next_fire_time()
        logger.info(f"  - {job_config.name}: next run at {next_run.isoformat() if next_run else 'never'}")

    logger.info(f"Started {len(jobs)} job(s). Press Ctrl+C to stop.")
    _wait_and_stop(jobs, token)


def _print_config_jobs(config: CronConfig):
    """Helper to print jobs from a config file."""
    print(f"=== Configured Jobs ({len(config.jobs)}) ===\n")

    for job in config.jobs:
        status = "✓" if job.enabled else "✗"
        print(f"{status} {job.name}")
        print(f"    Command: {job.command}")
        print(f"    Schedule: {job.schedule} ({job.timezone})")
        if job.blocking:
            print("    Blocking: yes")

        try:
            next_run = Job(job.schedule).set_timezone(ZoneInfo(job.timezone)).next_fire_time()
            print(f"    Next run: {next_run.isoformat() if next_run else 'never'}")
        except (ValueError, ZoneInfoNotFoundError):
            print("    Next run: invalid schedule")

        if job.description:
            print(f"    Description: {job.description}")
        if job.timeout != 3600:
            print(f"    Timeout: {job.timeout}s")
        print()


def cmd_list(args):
    """List configured jobs."""
    setup_logging(verbose=args.verbose)

    try:
        config = CronConfig(args.config)
    except ValueError as e:
        logger.error(f"Failed to list jobs: {e}")
        sys.exit(1)

    _print_config_jobs(config)


def cmd_add(args):
    """Add a new scheduled job."""
    setup_logging(verbose=args.verbose)

    try:
        CronSchedule(args.cron)
        resolve_timezone(args.timezone)

        config = CronConfig(args.config)
        job = JobConfig(
            name=args.name,
            schedule=args.cron,
            command=args.command,
            enabled=not args.disabled,
            blocking=args.blocking,
            timezone=args.timezone,
            timeout=args.timeout,
            working_dir=args.working_dir,
            description=args.description
        )

        config.add_job(job)
        config.save()

        logger.info(f"Added job '{args.name}'")
        logger.info(f"Command: {args.command}")
        logger.info("Restart the scheduler for changes to take effect")

    except ValueError as e:
        logger.error(f"Failed to add job: {e}")
        sys.exit(1)


def cmd_remove(args):
    """Remove a scheduled job."""
    setup_logging(verbose=args.verbose)

    try:
        config = CronConfig(args.config)

        if config.remove_job(args.name):
            config.save()
            logger.info(f"Removed job '{args.name}'")
            logger.info("Restart the scheduler for changes to take effect")
        else:
            logger.error(f"Job '{args.name}' not found")
            sys.exit(1)

    except ValueError as e:
        logger.error(f"Failed to remove job: {e}")
        sys.exit(1)


def _set_enabled(args, enabled: bool):
    setup_logging(verbose=args.verbose)
    action = "enable" if enabled else "disable"

    try:
        config = CronConfig(args.config)
        config.update_job(args.name, enabled=enabled)
        config.save()

        logger.info(f"{action.capitalize()}d job '{args.name}'")
        logger.info("Restart the scheduler for changes to take effect")

    except ValueError as e:
        logger.error(f"Failed to {action} job: {e}")
        sys.exit(1)


def cmd_enable(args):
    """Enable a job."""
    _set_enabled(args, True)


def cmd_disable(args):
    """Disable a job."""
    _set_enabled(args, False)


def cmd_validate(args):
    """Validate the configuration file."""
    setup_logging(verbose=args.verbose)

    try:
        config = CronConfig(args.config)
    except ValueError as e:
        logger.error(f"Failed to load configuration: {e}")
        sys.exit(1)

    errors = config.validate()
    if errors:
        for error in errors:
            print(f"✗ {error}")
        sys.exit(1)

    print(f"✓ {config.config_path}: {len(config.jobs)} job(s), no problems found")


def cmd_init(args):
    """Initialize scheduler configuration."""
    setup_logging(verbose=args.verbose)

    try:
        config = CronConfig(args.config)
        config.save()
        logger.info(f"Initialized scheduler configuration at: {config.config_path}")

        log_dir = Path(config.logging.file).expanduser().parent
        log_dir.mkdir(parents=True, exist_ok=True)
        logger.info(f"Created log directory: {log_dir}")

    except (OSError, ValueError) as e:
        logger.error(f"Failed to initialize: {e}")
        sys.exit(1)


def cmd_show_config(args):
    """Show current configuration."""
    setup_logging(verbose=args.verbose)

    try:
        config = CronConfig(args.config)
    except ValueError as e:
        logger.error(f"Failed to show config: {e}")
        sys.exit(1)

    print(f"\nConfiguration file: {config.config_path}")
    print(f"\nJobs: {len(config.jobs)} ({len(config.get_enabled_jobs())} enabled)")
    print(f"Logging level: {config.logging.level}")
    print(f"Log file: {config.logging.file}")
    print(f"Log rotation: {config.logging.max_bytes} bytes x {config.logging.backup_count} files")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="cronjob",
        description="Run callbacks and shell commands on cron schedules",
        formatter_class=argparse.RawDescriptionHelpFormatter
    )

    parser.add_argument(
        '-c', '--config',
        type=str,
        help='Path to configuration file'
    )
    parser.add_argument(
        '-v', '--verbose',
        action='store_true',
        help='Enable verbose logging'
    )

    subparsers = parser.add_subparsers(dest='subcommand', help='Command to run')

    # Next command
    next_parser = subparsers.add_parser('next', help='Show upcoming fire times for an expression')
    next_parser.add_argument('expression', help='Cron expression (5 or 6 fields)')
    next_parser.add_argument('--count', '-n', type=int, default=5, help='How many fire times (default: 5)')
    next_parser.add_argument('--timezone', '-z', default='UTC', help='IANA timezone (default: UTC)')
    next_parser.set_defaults(func=cmd_next)

    # Show command
    show_parser = subparsers.add_parser('show', help='Print the serialized form of a job')
    show_parser.add_argument('expression', help='Cron expression (5 or 6 fields)')
    show_parser.add_argument('--timezone', '-z', default='UTC', help='IANA timezone (default: UTC)')
    show_parser.add_argument('--blocking', action='store_true', help='Blocking mode')
    show_parser.set_defaults(func=cmd_show)

    # Run command
    run_parser = subparsers.add_parser('run', help='Run a command on a schedule in the foreground')
    run_parser.add_argument('expression', help='Cron expression (5 or 6 fields)')
    run_parser.add_argument('command', help='Shell command to execute')
    run_parser.add_argument('--name', default='run', help='Job name used in logs')
    run_parser.add_argument('--timezone', '-z', default='UTC', help='IANA timezone (default: UTC)')
    run_parser.add_argument('--blocking', action='store_true',
                            help='Wait for each run to finish before scheduling the next')
    run_parser.add_argument('--duration', type=float, help='Stop after this many seconds')
    run_parser.add_argument('--timeout', type=int, default=3600,
                            help='Command timeout in seconds (default: 3600)')
    run_parser.add_argument('--log-file', type=str, help='Also log to this file')
    run_parser.set_defaults(func=cmd_run)

    # Start command
    start_parser = subparsers.add_parser('start', help='Run all enabled jobs from the configuration')
    start_parser.add_argument('--duration', type=float, help='Stop after this many seconds')
    start_parser.add_argument('--log-file', type=str, help='Log file (default: from configuration)')
    start_parser.set_defaults(func=cmd_start)

    # List command
    list_parser = subparsers.add_parser('list', help='List configured jobs')
    list_parser.set_defaults(func=cmd_list)

    # Add command
    add_parser = subparsers.add_parser('add', help='Add a new scheduled job')
    add_parser.add_argument('name', help='Job name')
    add_parser.add_argument('--cron', required=True, help='Cron expression (5 or 6 fields)')
    add_parser.add_argument('--command', required=True, help='Shell command to execute')
    add_parser.add_argument('--timezone', '-z', default='UTC', help='IANA timezone (default: UTC)')
    add_parser.add_argument('--blocking', action='store_true', help='Blocking mode')
    add_parser.add_argument('--timeout', type=int, default=3600,
                            help='Command timeout in seconds (default: 3600)')
    add_parser.add_argument('--working-dir', type=str, help='Working directory for the command')
    add_parser.add_argument('--description', type=str, help='Human-readable description')
    add_parser.add_argument('--disabled', action='store_true', help='Add the job disabled')
    add_parser.set_defaults(func=cmd_add)

    # Remove command
    remove_parser = subparsers.add_parser('remove', help='Remove a scheduled job')
    remove_parser.add_argument('name', help='Job name to remove')
    remove_parser.set_defaults(func=cmd_remove)

    # Enable command
    enable_parser = subparsers.add_parser('enable', help='Enable a job')
    enable_parser.add_argument('name', help='Job name to enable')
    enable_parser.set_defaults(func=cmd_enable)

    # Disable command
    disable_parser = subparsers.add_parser('disable', help='Disable a job')
    disable_parser.add_argument('name', help='Job name to disable')
    disable_parser.set_defaults(func=cmd_disable)

    # Validate command
    validate_parser = subparsers.add_parser('validate', help='Validate the configuration file')
    validate_parser.set_defaults(func=cmd_validate)

    # Init command
    init_parser = subparsers.add_parser('init', help='Initialize scheduler configuration')
    init_parser.set_defaults(func=cmd_init)

    # Show config command
    show_config_parser = subparsers.add_parser('show-config', help='Show configuration')
    show_config_parser.set_defaults(func=cmd_show_config)

    return parser


def main(argv: Optional[List[str]] = None):
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.subcommand:
        parser.print_help()
        sys.exit(1)

    args.func(args)


if __name__ == '__main__':
    main()
