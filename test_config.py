"""
Tests for the job configuration file.
"""

import json

import pytest

from cronjob.config import ConfigError, CronConfig, JobConfig, LoggingConfig


@pytest.fixture
def config_path(tmp_path):
    return tmp_path / "config.json"


def make_job(name="backup", **overrides):
    data = dict(name=name, schedule="0 2 * * *", command="echo backup")
    data.update(overrides)
    return JobConfig(**data)


def test_missing_file_uses_defaults(config_path):
    config = CronConfig(str(config_path))

    assert config.config_path == config_path
    assert config.jobs == []
    assert config.logging.level == "INFO"
    assert not config_path.exists()


def test_config_path_from_environment(monkeypatch, tmp_path):
    path = tmp_path / "from_env.json"
    monkeypatch.setenv("CRONJOB_CONFIG_PATH", str(path))

    assert CronConfig().config_path == path


def test_config_path_from_home(monkeypatch, tmp_path):
    monkeypatch.delenv("CRONJOB_CONFIG_PATH", raising=False)
    monkeypatch.setenv("CRONJOB_HOME", str(tmp_path))

    assert CronConfig().config_path == tmp_path / "config.json"


def test_log_file_defaults_to_log_dir(monkeypatch, tmp_path):
    monkeypatch.setenv("CRONJOB_LOG_DIR", str(tmp_path / "logs"))

    assert LoggingConfig().file == str(tmp_path / "logs" / "cronjob.log")


def test_save_and_load_round_trip(config_path):
    config = CronConfig(str(config_path))
    config.add_job(make_job(blocking=True, timezone="Europe/Paris", description="Nightly backup"))
    config.logging.level = "DEBUG"
    config.save()

    with open(config_path) as f:
        data = json.load(f)
    assert data['jobs'][0]['name'] == "backup"
    assert data['logging']['level'] == "DEBUG"

    reloaded = CronConfig(str(config_path))
    assert reloaded.jobs == config.jobs
    assert reloaded.logging.level == "DEBUG"


def test_add_duplicate_job(config_path):
    config = CronConfig(str(config_path))
    config.add_job(make_job())

    with pytest.raises(ValueError):
        config.add_job(make_job())


def test_remove_job(config_path):
    config = CronConfig(str(config_path))
    config.add_job(make_job())

    assert config.remove_job("backup") is True
    assert config.remove_job("backup") is False
    assert config.get_job("backup") is None


def test_enable_and_disable(config_path):
    config = CronConfig(str(config_path))
    config.add_job(make_job("a"))
    config.add_job(make_job("b"))

    config.disable_job("a")
    assert [j.name for j in config.get_enabled_jobs()] == ["b"]

    config.enable_job("a")
    assert [j.name for j in config.get_enabled_jobs()] == ["a", "b"]


def test_update_job_errors(config_path):
    config = CronConfig(str(config_path))
    config.add_job(make_job())

    with pytest.raises(ValueError):
        config.update_job("missing", enabled=False)
    with pytest.raises(ValueError):
        config.update_job("backup", retries=3)


def test_validate_clean_config(config_path):
    config = CronConfig(str(config_path))
    config.add_job(make_job())
    config.add_job(make_job("ticker", schedule="*/10 * * * * *", timezone="Asia/Tokyo"))

    assert config.validate() == []


def test_validate_reports_every_problem(config_path):
    config = CronConfig(str(config_path))
    config.jobs.append(make_job("broken", schedule="not a schedule", command="  ",
                                timezone="Mars/Olympus_Mons", timeout=0))
    config.jobs.append(make_job("dup"))
    config.jobs.append(make_job("dup"))

    errors = config.validate()

    assert "Job broken: 'command' cannot be empty" in errors
    assert "Job broken: unknown timezone 'Mars/Olympus_Mons'" in errors
    assert "Job broken: 'timeout' must be positive" in errors
    assert any(e.startswith("Job broken: Invalid cron expression") for e in errors)
    assert "Job dup: duplicate name" in errors
    assert len(errors) == 5


def test_invalid_json_raises_config_error(config_path):
    config_path.write_text("{not json")

    with pytest.raises(ConfigError):
        CronConfig(str(config_path))


def test_unknown_job_key_raises_config_error(config_path):
    config_path.write_text(json.dumps({
        'jobs': [{'name': 'x', 'schedule': '* * * * *', 'command': 'true', 'retries': 3}]
    }))

    with pytest.raises(ConfigError, match="retries"):
        CronConfig(str(config_path))


def test_missing_job_key_raises_config_error(config_path):
    config_path.write_text(json.dumps({'jobs': [{'name': 'x', 'schedule': '* * * * *'}]}))

    with pytest.raises(ConfigError):
        CronConfig(str(config_path))


def test_require_valid(config_path):
    config = CronConfig(str(config_path))
    config.add_job(make_job())
    config.require_valid()

    config.add_job(make_job("late", timeout=-1))
    with pytest.raises(ConfigError) as exc:
        config.require_valid()
    assert exc.value.errors == ["Job late: 'timeout' must be positive"]
