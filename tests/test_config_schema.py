# tests/test_config_schema.py
import pytest

from service import config_schema


def _job(**over):
    job = {"id": "crawl", "module": "modules.job_watch.main", "trigger": {"interval": {"hours": 6}}}
    job.update(over)
    return job


def test_load_and_validate_from_config_path(write_schedule_config):
    write_schedule_config({"timezone": "America/Argentina/Buenos_Aires", "jobs": [_job(kwargs={"renderer": "static"})]})

    cfg = config_schema.load_config()  # CONFIG_PATH set by fixture
    config_schema.validate(cfg)
    assert cfg["timezone"] == "America/Argentina/Buenos_Aires"
    assert cfg["jobs"][0]["kwargs"] == {"renderer": "static"}


def test_load_yaml(tmp_path):
    p = tmp_path / "config.yaml"
    p.write_text(
        "jobs:\n"
        "  - name: crawl\n"
        "    module: modules.job_watch.main\n"
        "    trigger:\n"
        "      daily_time: {time: ['08:00', '20:00']}\n"
        "    coalesce: 'yes'\n",
        encoding="utf-8",
    )
    cfg = config_schema.load_config(str(p))
    config_schema.validate(cfg)
    job = cfg["jobs"][0]
    assert job["id"] == "crawl"
    assert job["coalesce"] is True


def test_no_path_gives_empty_schedule(monkeypatch):
    monkeypatch.setenv("TZ", "UTC")
    cfg = config_schema.load_config()
    assert cfg == {"jobs": [], "timezone": "UTC"}
    config_schema.validate(cfg)


def test_missing_file_and_bad_json(tmp_path):
    with pytest.raises(config_schema.ConfigError):
        config_schema.load_config(str(tmp_path / "nope.json"))

    bad = tmp_path / "bad.json"
    bad.write_text("{not json", encoding="utf-8")
    with pytest.raises(config_schema.ConfigError):
        config_schema.load_config(str(bad))


@pytest.mark.parametrize(
    "jobs",
    [
        [_job(module="")],
        [_job(trigger=None)],
        [_job(trigger={})],
        [_job(trigger={"cron": "0 * * * *", "interval": {"hours": 1}})],
        [_job(trigger={"interval": "6h"})],
        [_job(trigger={"daily_time": "8am"})],
        [_job(trigger={"daily_time": "24:00"})],
        [_job(kwargs=["renderer=static"])],
        [_job(), _job()],
    ],
)
def test_validate_rejects(jobs):
    with pytest.raises(config_schema.ConfigError):
        config_schema.validate({"jobs": jobs})


def test_normalizes_numeric_fields(write_schedule_config):
    write_schedule_config({"jobs": [_job(timeout_sec="900", max_instances="1")]})
    job = config_schema.load_config()["jobs"][0]
    assert job["timeout_sec"] == 900
    assert job["max_instances"] == 1


def test_invalid_numeric_field_rejected_at_load(write_schedule_config):
    write_schedule_config({"jobs": [_job(max_instances=0)]})
    with pytest.raises(config_schema.ConfigError):
        config_schema.load_config()


def test_crawler_kwargs_are_checked_against_settings():
    with pytest.raises(config_schema.ConfigError, match="max_age_day"):
        config_schema.validate({"jobs": [_job(kwargs={"max_age_day": 3})]})

    config_schema.validate({"jobs": [_job(kwargs={"max_age_days": None, "headless": "false"})]})


def test_other_modules_kwargs_are_not_checked():
    config_schema.validate({"jobs": [_job(module="modules.other.main", kwargs={"anything": 1})]})


@pytest.mark.parametrize("value", [10, "2025-03-10T08:00:00", {"run_at": "2025-03-10T08:00:00"}])
def test_date_trigger_values_accepted(value):
    config_schema.validate({"jobs": [_job(trigger={"date": value})]})


def test_crawler_env_indirection_keys_are_known():
    config_schema.validate({"jobs": [_job(kwargs={"sqlite_path_env": "JOB_WATCH_DB"})]})
